import sys
from datetime import datetime, timezone
from typing import Any

from bullion_platform.services.logger.interface import LoggingInterface

_COLORS = {
    "INFO": "\033[32m",   # green
    "WARN": "\033[33m",   # yellow
    "ERROR": "\033[31m",  # red
    "DEBUG": "\033[36m",  # cyan
}
_RESET = "\033[0m"


def _format_ctx(ctx: dict[str, Any]) -> str:
    return " ".join(f"{key}={value}" for key, value in ctx.items())


class PrettyLogger(LoggingInterface):
    """Colorized human-readable logger for local development.

    Context is rendered as ``key=value`` pairs after the message. A
    ``component`` key, when present, is lifted into the prefix.
    """

    def info(self, msg: str, **ctx: Any) -> None:
        self._log("INFO", msg, ctx)

    def warn(self, msg: str, **ctx: Any) -> None:
        self._log("WARN", msg, ctx)

    def error(self, msg: str, **ctx: Any) -> None:
        self._log("ERROR", msg, ctx)

    def debug(self, msg: str, **ctx: Any) -> None:
        self._log("DEBUG", msg, ctx)

    def _log(self, level: str, msg: str, ctx: dict[str, Any]) -> None:
        ts = datetime.now(timezone.utc).strftime("%H:%M:%S")
        color = _COLORS.get(level, "")
        ctx = dict(ctx)
        component = ctx.pop("component", None)
        prefix = f"{ts} [{level}]" + (f" {component}:" if component else "")
        extra = f"  {_format_ctx(ctx)}" if ctx else ""
        print(f"{color}{prefix}{_RESET} {msg}{extra}", file=sys.stderr)
