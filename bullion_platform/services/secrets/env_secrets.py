from __future__ import annotations

import os
from pathlib import Path

from bullion_platform.config.env_loader import load_env_file
from bullion_platform.services.secrets.interface import SecretsInterface


class EnvSecrets(SecretsInterface):
    """Reads secrets from environment variables with optional overrides.

    Precedence (highest first): *overrides*, the process environment.
    """

    def __init__(self, overrides: dict[str, str] | None = None) -> None:
        self._env = dict(os.environ)
        if overrides:
            self._env.update(overrides)

    @classmethod
    def with_env_file(
        cls,
        env_name: str | None,
        overrides: dict[str, str] | None = None,
        project_root: Path | None = None,
    ) -> EnvSecrets:
        """Layer ``.env/<env_name>.env`` under *overrides*.

        File values beat the process environment but lose to explicit
        overrides (the ``--env`` JSON flag).
        """
        merged: dict[str, str] = {}
        if env_name:
            merged.update(load_env_file(env_name, project_root=project_root))
        if overrides:
            merged.update(overrides)
        return cls(overrides=merged)

    def get(self, key: str) -> str | None:
        return self._env.get(key)

    def get_or_default(self, key: str, default: str) -> str:
        return self._env.get(key, default)

    def require(self, key: str) -> str:
        value = self._env.get(key)
        if value is None:
            raise KeyError(f"Required secret '{key}' is not set")
        return value
