"""Loads ``.env/<name>.env`` files with KEY=VALUE lines.

Supports:
- Comments (lines starting with #) and blank lines
- An optional leading ``export`` so files can also be sourced by a shell
- Quoted values (single or double quotes are stripped)

Inline comments after values are kept as part of the value, so URLs and API
keys containing ``#`` survive unchanged.

``${NAME}`` in an unquoted or double-quoted value expands to a key defined
earlier in the same file, then to the process environment, else to "".
Single-quoted values are taken literally.
"""

import os
import re
from pathlib import Path

_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

# Project root: two levels up from bullion_platform/config/
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


def load_env_file(env_name: str = "local", project_root: Path | None = None) -> dict[str, str]:
    """Load .env/<env_name>.env and return as dict. Returns empty dict if file is missing."""
    root = project_root or _PROJECT_ROOT
    env_file = root / ".env" / f"{env_name}.env"
    if not env_file.exists():
        return {}
    return _parse_env_file(env_file)


def _parse_env_file(path: Path) -> dict[str, str]:
    result: dict[str, str] = {}
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] == "'":
            result[key] = value[1:-1]
            continue
        if len(value) >= 2 and value[0] == value[-1] == '"':
            value = value[1:-1]
        result[key] = _expand(value, result)
    return result


def _expand(value: str, seen: dict[str, str]) -> str:
    return _REFERENCE.sub(lambda m: seen.get(m.group(1), os.environ.get(m.group(1), "")), value)
