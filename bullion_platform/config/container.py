import inspect
from typing import Any, TypeVar, get_type_hints

T = TypeVar("T")


class Container:
    """Constructor-based DI container. Stores pre-built objects and injects
    them into class constructors by matching parameter type hints.

    Parameters whose type is not registered are left to their default value
    when they have one (e.g. ``metrics: MetricsInterface | None = None``);
    otherwise resolution fails with a ``TypeError``.
    """

    def __init__(self) -> None:
        self._registry: dict[type, Any] = {}

    def register_instance(self, type_key: type, instance: Any) -> None:
        """Register a pre-built instance keyed by its type."""
        self._registry[type_key] = instance

    def get(self, type_key: type[T]) -> T:
        """Return the registered instance for *type_key*."""
        try:
            return self._registry[type_key]
        except KeyError:
            raise KeyError(f"No registration found for type {type_key.__name__!r}") from None

    def resolve(self, cls: type[T]) -> T:
        """Instantiate *cls* by injecting registered dependencies into its constructor."""
        try:
            hints = get_type_hints(cls.__init__)
        except Exception as exc:
            raise TypeError(f"Cannot read type hints for {cls.__name__}.__init__: {exc}") from exc

        hints.pop("return", None)

        sig = inspect.signature(cls.__init__)
        kwargs: dict[str, Any] = {}
        for name, param in sig.parameters.items():
            if name == "self" or param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            hint = hints.get(name)
            if hint is None:
                raise TypeError(
                    f"Parameter '{name}' of {cls.__name__}.__init__ has no type hint"
                )
            key = self._lookup_key(hint)
            if key is not None:
                kwargs[name] = self._registry[key]
            elif param.default is not param.empty:
                continue
            else:
                raise TypeError(
                    f"No registration found for type {getattr(hint, '__name__', hint)!r} "
                    f"(parameter '{name}' of {cls.__name__}.__init__)"
                )

        return cls(**kwargs)

    def has(self, type_key: type) -> bool:
        """Check whether a type is registered."""
        return type_key in self._registry

    def _lookup_key(self, hint: Any) -> type | None:
        if hint in self._registry:
            return hint
        # ``X | None`` -> try the non-None member
        for arg in getattr(hint, "__args__", ()):
            if arg is not type(None) and arg in self._registry:
                return arg
        return None
