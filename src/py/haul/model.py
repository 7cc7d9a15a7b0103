from typing import Any, ClassVar, Coroutine, Iterator, Optional

from mypy_extensions import mypyc_attr

from .http.model import HTTPRequest, HTTPResponse
from .routing import Dispatcher, Handler
from .utils.logging import info

# -----------------------------------------------------------------------------
#
# SERVICE
#
# -----------------------------------------------------------------------------


# Services are subclassed by interpreted code, even when this module is
# compiled with mypyc.
@mypyc_attr(allow_interpreted_subclasses=True)
class Service:
    """A service groups handlers (methods decorated with `@on`), which are
    registered under the service's `prefix` when mounted in an application."""

    PREFIX: ClassVar[str] = ""

    def __init__(
        self, name: Optional[str] = None, *, prefix: str | None = None
    ) -> None:
        self.name: str = name or type(self).__name__
        self.prefix: str = prefix or self.PREFIX
        self.app: Optional[Application] = None
        self._handlers: Optional[list[Handler]] = None

    async def start(self) -> None:
        """Called when the server starts, before accepting connections."""

    async def stop(self) -> None:
        """Called once the server has stopped accepting connections."""

    @property
    def isMounted(self) -> bool:
        return self.app is not None

    @property
    def handlers(self) -> list[Handler]:
        if self._handlers is None:
            self._handlers = list(self.iterHandlers())
        return self._handlers

    def iterHandlers(self) -> Iterator[Handler]:
        """Yields the handlers defined by the service's class hierarchy, an
        override shadows the parent's method."""
        seen: set[str] = set()
        for cls in type(self).__mro__:
            for name, value in vars(cls).items():
                if name in seen or name.startswith("__") or not callable(value):
                    continue
                seen.add(name)
                handler = Handler.Get(getattr(self, name))
                if handler:
                    yield handler

    def __repr__(self) -> str:
        return f"(Service {self.name}{' :mounted' if self.isMounted else ''})"


# -----------------------------------------------------------------------------
#
# APPLICATION
#
# -----------------------------------------------------------------------------


class Application:
    """Mounts services and dispatches requests to their handlers."""

    def __init__(self, services: list[Service] | None = None) -> None:
        self.dispatcher: Dispatcher = Dispatcher()
        self.services: list[Service] = []
        for service in services or ():
            self.mount(service)

    def mount(self, service: Service, prefix: Optional[str] = None) -> Service:
        if service.isMounted:
            raise RuntimeError(f"Service is already mounted: {service}")
        path = service.prefix if prefix is None else prefix
        for handler in service.handlers:
            self.dispatcher.register(handler, path)
        service.app = self
        self.services.append(service)
        info("Mounted service", Name=service.name, Prefix=path or "/")
        return service

    async def start(self) -> "Application":
        self.dispatcher.prepare()
        for service in self.services:
            await service.start()
        return self

    async def stop(self) -> "Application":
        for service in reversed(self.services):
            await service.stop()
        return self

    def process(
        self, request: HTTPRequest
    ) -> HTTPResponse | Coroutine[Any, Any, HTTPResponse]:
        route, params = self.dispatcher.match(request.method, request.path or "/")
        if route is None:
            return self.onRouteNotFound(request)
        elif route.handler is None:
            raise RuntimeError(f"Route has no handler: {route}")
        else:
            return route.handler(request, params or {})

    def onRouteNotFound(self, request: HTTPRequest) -> HTTPResponse:
        """Answers `405` with the allowed methods when the path matches for
        other methods, `404` otherwise."""
        allowed = self.dispatcher.methods(request.path or "/")
        if allowed:
            return request.error(405, headers={"Allow": ", ".join(sorted(allowed))})
        return request.notFound()


def mount(*components: Application | Service) -> Application:
    """Mounts the given services into the first given application, or into
    a new one."""
    app: Application | None = None
    services: list[Service] = []
    for item in components:
        if isinstance(item, Application):
            if app is None:
                app = item
        elif isinstance(item, Service):
            services.append(item)
        else:
            raise RuntimeError(f"Unsupported component type {type(item)}: {item}")
    app = app or Application()
    for service in services:
        app.mount(service)
    return app


# EOF
