from typing import Any, Callable, ClassVar, TypeVar, Union, cast

T = TypeVar("T")


class Meta:
    """Defines the attributes used by decorators to annotate handlers"""

    ON: ClassVar[str] = "_haul_on"
    ON_PRIORITY: ClassVar[str] = "_haul_on_priority"
    # When using MyPyC, functions can't be patched, so annotations are
    # collected by object id instead.
    Annotations: ClassVar[dict[int, dict[str, Any]]] = {}

    @staticmethod
    def Get(scope: Any) -> dict[str, Any]:
        """Returns the dictionary of meta attributes for the given value."""
        if hasattr(scope, "__dict__"):
            return cast(dict[str, Any], scope.__dict__)
        else:
            return Meta.Annotations.setdefault(id(scope), {})

    @staticmethod
    def Attr(value: Any, key: str, default: Any = None) -> Any:
        """Returns the meta attribute `key` of `value`, looking through
        bound methods to their function."""
        function = getattr(value, "__func__", value)
        annotations = Meta.Annotations.get(id(function))
        if annotations and key in annotations:
            return annotations[key]
        return getattr(function, key, default)


def on(
    priority: int = 0, **methods: Union[str, list[str], tuple[str, ...]]
) -> Callable[[T], T]:
    """The @on decorator marks a method as the handler of HTTP requests.

    It takes HTTP methods as keyword arguments (joined with `_` to register
    more than one, as in `GET_HEAD`), each with one or more route templates
    (see `Route`). The decorated method takes the `request` followed by
    the template parameters, and returns a response:

    >    @on(GET="/files/{path:any}")
    >    def download(self, request, path):
    >        return request.respond(...)

    When more than one route matches, the handler with the highest
    `priority` wins."""

    def decorator(function: T) -> T:
        meta = Meta.Get(function)
        routes: list[tuple[str, str]] = meta.setdefault(Meta.ON, [])
        meta.setdefault(Meta.ON_PRIORITY, priority)
        for names, templates in methods.items():
            paths = (templates,) if isinstance(templates, str) else tuple(templates)
            routes.extend(
                (method, path) for method in names.upper().split("_") for path in paths
            )
        return function

    return decorator


# EOF
