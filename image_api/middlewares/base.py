"""Middleware registry for Robyn before/after request hooks."""

from collections.abc import Callable

from robyn import Request, Response, Robyn

from image_api.core.logger import LogIcon, logger


class BaseMiddleware:
    """Middleware overriding ``before``, ``after`` or both.

    Only overridden hooks are registered with Robyn. An empty ``endpoints``
    set applies the middleware to every route known at registration time.
    """

    endpoints: frozenset[str]

    def __init__(self, endpoints: frozenset[str] | list[str] | None = None) -> None:
        self.endpoints = frozenset(endpoints or ())

    def __init_subclass__(cls, **kwargs) -> None:
        super().__init_subclass__(**kwargs)
        if not (cls.overrides("before") or cls.overrides("after")):
            raise TypeError(f"{cls.__name__} must implement at least one of before/after")

    @classmethod
    def overrides(cls, hook: str) -> bool:
        return getattr(cls, hook) is not getattr(BaseMiddleware, hook)

    @property
    def has_before(self) -> bool:
        return self.overrides("before")

    @property
    def has_after(self) -> bool:
        return self.overrides("after")

    def before(self, request: Request) -> Request | Response:
        """Return the request to continue, or a Response to answer immediately."""
        return request

    def after(self, response: Response) -> Response:
        return response


class MiddlewareHandler:
    """Registers middleware hooks on a Robyn app, in registration order."""

    def __init__(self, app: Robyn) -> None:
        self._app = app
        self._middlewares: list[BaseMiddleware] = []

    @property
    def middlewares(self) -> list[BaseMiddleware]:
        return list(self._middlewares)

    def register(self, middleware: BaseMiddleware | type[BaseMiddleware]) -> "MiddlewareHandler":
        """Register a middleware instance or class. Returns self for chaining."""
        if isinstance(middleware, type):
            middleware = middleware()

        endpoints = middleware.endpoints or self._route_paths()
        hooks: list[tuple[Callable, Callable]] = []
        if middleware.has_before:
            hooks.append((self._attach_before, middleware.before))
        if middleware.has_after:
            hooks.append((self._attach_after, middleware.after))

        for endpoint in sorted(endpoints):
            for attach, hook in hooks:
                attach(endpoint, hook)

        self._middlewares.append(middleware)
        logger.info(
            f"Registered middleware: {type(middleware).__name__}",
            icon=LogIcon.ADAPTER,
            endpoints=len(endpoints),
            hooks=len(hooks),
        )
        return self

    def _route_paths(self) -> frozenset[str]:
        return frozenset(path for _, path, *_ in self._app.get_all_routes())

    def _attach_before(self, endpoint: str, hook: Callable[[Request], Request | Response]) -> None:
        @self._app.before_request(endpoint)
        async def before_hook(request: Request) -> Request | Response:
            return hook(request)

    def _attach_after(self, endpoint: str, hook: Callable[[Response], Response]) -> None:
        @self._app.after_request(endpoint)
        def after_hook(response: Response) -> Response:
            return hook(response)
