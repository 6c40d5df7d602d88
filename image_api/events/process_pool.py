"""Process pool for the blocking decode, transform and encode unit.

Workers are spawned, never forked, so the event loop and Robyn's runtime are
not duplicated into them. Each worker registers Pillow's plugins once at
start so the first image it receives does not pay for it.
"""

import asyncio
import multiprocessing as mp
import os
from collections.abc import Callable, Iterator
from concurrent.futures import ProcessPoolExecutor
from contextlib import contextmanager
from functools import partial
from typing import Any, TypeVar

from PIL import Image

from image_api.core.lifespan import BaseEvent, State
from image_api.core.logger import LogIcon, logger
from image_api.core.settings import settings as st


def pool_size(requested: int | None) -> int:
    """Worker count: the requested one, else one per CPU."""
    return requested or os.cpu_count() or 1


def _prepare_worker() -> None:
    Image.init()


def create_process_pool(max_workers: int | None = None) -> ProcessPoolExecutor:
    """Spawn-context pool whose workers have Pillow ready."""
    return ProcessPoolExecutor(
        max_workers=pool_size(max_workers),
        mp_context=mp.get_context("spawn"),
        initializer=_prepare_worker,
    )


@contextmanager
def process_pool_context(max_workers: int | None = None) -> Iterator[ProcessPoolExecutor]:
    """Pool scoped to a ``with`` block, waited on at exit."""
    pool = create_process_pool(max_workers)
    try:
        yield pool
    finally:
        pool.shutdown(wait=True)


T = TypeVar("T")


async def run_blocking(state: State | None, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run ``func`` as one blocking unit: on the pool when there is one, else in a thread.

    ``func`` and its arguments must be picklable when a pool is used; typed
    ``ImageAPIError`` subclasses raised in a worker come back unchanged.
    """
    pool = state.get(ProcessPoolEvent.name) if state is not None else None
    if pool is None:
        return await asyncio.to_thread(func, *args, **kwargs)
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(pool, partial(func, *args, **kwargs))


class ProcessPoolEvent(BaseEvent[ProcessPoolExecutor]):
    """Owns the shared pool for the lifetime of the app."""

    name = "process_pool"

    async def startup(self) -> ProcessPoolExecutor:
        workers = pool_size(st.MAX_WORKERS)
        logger.info("Spawning image workers", icon=LogIcon.PROCESSOR, workers=workers)
        return create_process_pool(max_workers=workers)

    async def shutdown(self, instance: ProcessPoolExecutor) -> None:
        # Let in-flight images finish, drop queued ones
        instance.shutdown(wait=True, cancel_futures=True)
