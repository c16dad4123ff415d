from typing import Any

_TRUE = {"true", "1", "yes", "on"}


class ModuleConfig:
    """Parsed module arguments (from ``module.json`` defaults and CLI flags).

    Values may arrive already cast by the runner or as raw strings when a
    module is built by hand, so the typed getters accept both.
    """

    def __init__(self, args: dict[str, Any]) -> None:
        self._args = dict(args)

    def get(self, key: str, default: Any = None) -> Any:
        return self._args.get(key, default)

    def get_int(self, key: str, default: int) -> int:
        value = self._args.get(key)
        return default if value is None else int(value)

    def get_float(self, key: str, default: float) -> float:
        value = self._args.get(key)
        return default if value is None else float(value)

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._args.get(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in _TRUE

    def get_str(self, key: str, default: str | None = None) -> str | None:
        """String value with surrounding whitespace removed; blank counts as unset."""
        value = self._args.get(key)
        if value is None:
            return default
        text = str(value).strip()
        return text or default

    def __contains__(self, key: str) -> bool:
        return key in self._args

    def __repr__(self) -> str:
        return f"ModuleConfig({self._args})"
