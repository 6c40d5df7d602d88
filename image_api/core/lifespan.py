"""Application lifespan: ordered startup and reverse shutdown of shared resources.

Each event builds one resource (the codec, the process pool) and stores it on
``State`` under the event name. Handlers reach the state through
``global_dependencies["state"]`` once startup has injected it.
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine, Iterator
from typing import Any, Generic, TypeVar

from robyn import Robyn

from image_api.core.logger import LogIcon, logger
from image_api.core.settings import settings as st

AsyncHandler = Callable[[], Coroutine[Any, Any, None]]


class State:
    """Resources built at startup, readable by attribute or by event name."""

    __slots__ = ("_resources",)

    def __init__(self, **resources: Any) -> None:
        object.__setattr__(self, "_resources", dict(resources))

    def __getattr__(self, name: str) -> Any:
        try:
            return self._resources[name]
        except KeyError:
            raise AttributeError(f"No resource named '{name}' in state") from None

    def __setattr__(self, name: str, value: Any) -> None:
        self._resources[name] = value

    def __delattr__(self, name: str) -> None:
        try:
            del self._resources[name]
        except KeyError:
            raise AttributeError(f"No resource named '{name}' in state") from None

    def __contains__(self, name: str) -> bool:
        return name in self._resources

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._resources))

    def __len__(self) -> int:
        return len(self._resources)

    def __repr__(self) -> str:
        return f"State({', '.join(self._resources)})"

    def get(self, name: str, default: Any = None) -> Any:
        return self._resources.get(name, default)

    def clear(self) -> None:
        self._resources.clear()


T = TypeVar("T")


class BaseEvent(ABC, Generic[T]):
    """One shared resource with an async startup and an optional shutdown."""

    name: str
    state: State

    @abstractmethod
    async def startup(self) -> T:
        """Build and return the resource."""
        ...

    async def shutdown(self, instance: T) -> None:  # noqa: B027
        """Release the resource. Override if cleanup is needed."""

    @classmethod
    def has_shutdown(cls) -> bool:
        return cls.shutdown is not BaseEvent.shutdown


class Lifespan:
    """Starts registered events in order and stops the started ones in reverse."""

    def __init__(self, app: Robyn) -> None:
        self._app = app
        self._registered: list[BaseEvent[Any]] = []
        self._started: list[BaseEvent[Any]] = []
        self._state: State | None = None

    def register(self, event: BaseEvent[Any] | type[BaseEvent[Any]]) -> "Lifespan":
        """Register an event class or instance. Returns self for chaining."""
        self._registered.append(event() if isinstance(event, type) else event)
        return self

    @property
    def state(self) -> State | None:
        return self._state

    @property
    def events(self) -> list[BaseEvent[Any]]:
        """Events currently started, in startup order."""
        return list(self._started)

    @property
    def startup(self) -> AsyncHandler:
        """Async startup handler for ``app.startup_handler``.

        If an event fails to start, the events already running are shut down
        in reverse order before the error propagates and nothing is injected.
        """

        async def _startup() -> None:
            logger.info("Starting application lifespan", icon=LogIcon.START, version=st.API_VERSION)
            self._state = State()

            for event in self._registered:
                await self._start(event)

            self._app.inject_global(state=self._state)
            logger.info("App state ready", icon=LogIcon.COMPLETE, resources=",".join(self._state))

        return _startup

    @property
    def shutdown(self) -> AsyncHandler:
        """Async shutdown handler for ``app.shutdown_handler``."""

        async def _shutdown() -> None:
            if self._state is None:
                logger.info("No state to cleanup", icon=LogIcon.WARNING)
                return

            logger.info("Cleaning up app state", icon=LogIcon.TOOL, resources=len(self._state))
            await self._stop_started()
            logger.info("Cleanup complete", icon=LogIcon.COMPLETE)

        return _shutdown

    async def _start(self, event: BaseEvent[Any]) -> None:
        event.state = self._state
        started = time.perf_counter()
        logger.info(f"Starting event: {event.name}", icon=LogIcon.PROCESSING)

        try:
            instance = await event.startup()
        except Exception:
            logger.error(f"Event failed to start: {event.name}", icon=LogIcon.ERROR)
            await self._stop_started()
            raise

        setattr(self._state, event.name, instance)
        self._started.append(event)
        logger.info(
            f"Event ready: {event.name}",
            icon=LogIcon.SUCCESS,
            elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
        )

    async def _stop_started(self) -> None:
        """Shut started events down newest first, then empty the state."""
        while self._started:
            event = self._started.pop()
            if not event.has_shutdown() or event.name not in self._state:
                continue
            logger.info(f"Shutting down: {event.name}", icon=LogIcon.PROCESSING)
            await event.shutdown(self._state.get(event.name))
            logger.info(f"Shutdown complete: {event.name}", icon=LogIcon.SUCCESS)

        self._state.clear()


def create_lifespan(app: Robyn) -> Lifespan:
    """Create lifespan manager for event registration."""
    return Lifespan(app)
