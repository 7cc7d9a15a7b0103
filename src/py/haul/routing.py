import re
from inspect import isawaitable
from typing import Any, Callable, ClassVar, NamedTuple, Optional, Pattern

from .decorators import Meta
from .errors import HTTPRequestError
from .http.model import HTTPRequest, HTTPResponse
from .utils.logging import debug, logged, warning

# -----------------------------------------------------------------------------
#
# ROUTE
#
# -----------------------------------------------------------------------------
#
# Routes are path templates where parameters are written `{name}` or
# `{name:type}`. The type is either a registered pattern (see
# `Route.PATTERNS`) or an inline regular expression.


class RoutePattern(NamedTuple):
    """What a parameter matches, and how its value is converted."""

    expr: str
    convert: Callable[[str], Any] = str


class Route:
    """A path template compiled to a regular expression. Routes take the
    priority of their handler, which the dispatcher uses to order them."""

    RE_TEMPLATE: ClassVar[Pattern[str]] = re.compile(
        r"\{(?P<name>[A-Za-z_]\w*)(?::(?P<type>[^}]+))?\}"
    )

    PATTERNS: ClassVar[dict[str, RoutePattern]] = {
        "id": RoutePattern(r"[A-Za-z0-9_\-]+"),
        "name": RoutePattern(r"\w[\w\-]*"),
        "segment": RoutePattern(r"[^/]+"),
        "string": RoutePattern(r"[^/]+"),
        "digits": RoutePattern(r"\d+", int),
        "int": RoutePattern(r"-?\d+", int),
        "any": RoutePattern(r".*"),
        "rest": RoutePattern(r".+"),
    }

    @classmethod
    def AddPattern(
        cls, type: str, expr: str, convert: Callable[[str], Any] = str
    ) -> RoutePattern:
        """Registers a named pattern, usable as `{name:type}`."""
        try:
            re.compile(expr)
        except re.error as e:
            raise ValueError(f"Route pattern '{type}' is malformed: {e}") from e
        pattern = RoutePattern(expr, convert)
        cls.PATTERNS[type.lower()] = pattern
        return pattern

    @classmethod
    def Pattern(cls, name: str, type: str | None) -> RoutePattern:
        """Returns the pattern for a `{name:type}` parameter. Without a type,
        the name is used when it is a pattern, otherwise it's a segment."""
        if type is None:
            return cls.PATTERNS.get(name.lower(), cls.PATTERNS["segment"])
        elif type.lower() in cls.PATTERNS:
            return cls.PATTERNS[type.lower()]
        elif type.isalpha():
            raise ValueError(
                f"Route pattern '{type}' is not registered, pick one of: {', '.join(sorted(cls.PATTERNS))}"
            )
        else:
            return RoutePattern(type)

    def __init__(self, text: str, handler: Optional["Handler"] = None):
        self.text: str = text
        self.handler: Optional[Handler] = handler
        self.params: dict[str, RoutePattern] = {}
        expr: list[str] = []
        offset: int = 0
        for match in self.RE_TEMPLATE.finditer(text):
            name = match.group("name")
            pattern = self.Pattern(name, match.group("type"))
            self.params[name] = pattern
            expr.append(re.escape(text[offset : match.start()]))
            expr.append(f"(?P<{name}>{pattern.expr})")
            offset = match.end()
        expr.append(re.escape(text[offset:]))
        try:
            self.regexp: Pattern[str] = re.compile(f"^{''.join(expr)}$")
        except re.error as e:
            raise ValueError(f"Route syntax is malformed: {text!r}: {e}") from e

    @property
    def priority(self) -> int:
        return self.handler.priority if self.handler else 0

    def match(self, path: str) -> dict[str, Any] | None:
        """Returns the converted parameters when `path` matches, `None`
        otherwise."""
        matched = self.regexp.match(path)
        if not matched:
            return None
        return {k: v.convert(matched.group(k)) for k, v in self.params.items()}

    def __repr__(self) -> str:
        return f"(Route {self.text!r} {self.priority})"


# -----------------------------------------------------------------------------
#
# HANDLER
#
# -----------------------------------------------------------------------------


class Handler:
    """Wraps a function annotated with `@on`, along with the paths it
    answers for each HTTP method."""

    @staticmethod
    def Get(value: Any) -> Optional["Handler"]:
        routes = Meta.Attr(value, Meta.ON)
        if not routes:
            return None
        return Handler(value, routes, Meta.Attr(value, Meta.ON_PRIORITY, 0))

    def __init__(
        self,
        functor: Callable[..., Any],
        methods: list[tuple[str, str]],
        priority: int = 0,
    ):
        self.functor = functor
        self.priority = priority
        self.methods: dict[str, list[str]] = {}
        for method, path in methods:
            self.methods.setdefault(method, []).append(path)

    async def __call__(
        self, request: HTTPRequest, params: dict[str, Any]
    ) -> HTTPResponse:
        """Calls the function, turning `HTTPRequestError` into an error
        response. Other exceptions are left to the server."""
        try:
            response = self.functor(request, **params)
            return await response if isawaitable(response) else response
        except HTTPRequestError as e:
            status: int = e.status or 500
            if status >= 500:
                warning(e.message, Method=request.method, Status=status)
            else:
                logged(debug) and debug(
                    e.message, Method=request.method, Path=request.path, Status=status
                )
            payload = e.payload
            return request.error(
                status,
                payload.decode("utf8", "replace")
                if isinstance(payload, bytes)
                else payload,
                e.contentType or "text/plain",
            )

    def __repr__(self) -> str:
        return f"(Handler {self.functor.__name__} {self.priority} {self.methods})"


# -----------------------------------------------------------------------------
#
# DISPATCHER
#
# -----------------------------------------------------------------------------


class Dispatcher:
    """Finds the route matching a request's method and path. Routes are
    tried by decreasing priority, then in registration order."""

    def __init__(self) -> None:
        self.routes: dict[str, list[Route]] = {}
        self.isPrepared: bool = True

    def register(self, handler: Handler, prefix: str | None = None) -> "Dispatcher":
        for method, paths in handler.methods.items():
            for path in paths:
                full = f"{prefix or ''}{path}"
                full = full if full.startswith("/") else f"/{full}"
                logged(debug) and debug("Registered route", Method=method, Path=full)
                self.routes.setdefault(method, []).append(Route(full, handler))
        self.isPrepared = False
        return self

    def prepare(self) -> "Dispatcher":
        for routes in self.routes.values():
            # Sorting is stable, equal priorities keep their order
            routes.sort(key=lambda _: -_.priority)
        self.isPrepared = True
        return self

    def methods(self, path: str) -> list[str]:
        """The methods for which some route matches `path`."""
        return [
            method
            for method, routes in self.routes.items()
            if any(_.match(path) is not None for _ in routes)
        ]

    def match(
        self, method: str, path: str
    ) -> tuple[Route | None, dict[str, Any] | None]:
        if not self.isPrepared:
            self.prepare()
        for route in self.routes.get(method, ()):
            params = route.match(path)
            if params is not None:
                return route, params
        return None, None


# EOF
