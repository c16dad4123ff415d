from __future__ import annotations

from typing import Any

import asyncpg

from bullion_platform.services.database.interface import DatabaseInterface
from bullion_platform.services.secrets.interface import SecretsInterface


class PostgresDatabase(DatabaseInterface):
    """PostgreSQL implementation using asyncpg with connection pooling.

    Settings are read from secrets under *prefix* (``DB_DEFAULT`` unless the
    runner was given a named ``--db name=postgres`` entry):

        <prefix>_URL                 - asyncpg DSN (required)
        <prefix>_POOL_MIN            - minimum pool size (default 2)
        <prefix>_POOL_MAX            - maximum pool size (default 10)
        <prefix>_STATEMENT_TIMEOUT   - per-statement timeout in ms (default 30000)
    """

    def __init__(self, secrets: SecretsInterface, prefix: str = "DB_DEFAULT") -> None:
        self._secrets = secrets
        self._prefix = prefix
        self._pool: asyncpg.Pool | None = None

    # -- Connection management ------------------------------------------------

    async def connect_async(self) -> None:
        if self._pool is not None:
            return
        url = self._secrets.require(f"{self._prefix}_URL")
        min_size = self._secrets.get_int(f"{self._prefix}_POOL_MIN", 2)
        max_size = self._secrets.get_int(f"{self._prefix}_POOL_MAX", 10)
        timeout = self._secrets.get_int(f"{self._prefix}_STATEMENT_TIMEOUT", 30000)
        self._pool = await asyncpg.create_pool(
            url,
            min_size=min_size,
            max_size=max_size,
            command_timeout=timeout / 1000,
        )

    async def disconnect_async(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    def is_connected(self) -> bool:
        return self._pool is not None and not self._pool._closed  # type: ignore[attr-defined]

    def _check_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database is not connected. Call connect_async() first.")
        return self._pool

    # -- Query methods --------------------------------------------------------

    async def execute_async(self, query: str, params: list[Any] | None = None) -> int:
        async with self._check_pool().acquire() as conn:
            result = await conn.execute(query, *(params or []))
        # asyncpg returns e.g. "UPDATE 1"; extract the affected count
        parts = result.split()
        return int(parts[-1]) if parts and parts[-1].isdigit() else 0

    async def fetch_one_async(
        self, query: str, params: list[Any] | None = None
    ) -> dict[str, Any] | None:
        async with self._check_pool().acquire() as conn:
            row = await conn.fetchrow(query, *(params or []))
        return dict(row) if row else None

    async def fetch_all_async(
        self, query: str, params: list[Any] | None = None
    ) -> list[dict[str, Any]]:
        async with self._check_pool().acquire() as conn:
            rows = await conn.fetch(query, *(params or []))
        return [dict(r) for r in rows]

    async def insert_one_async(self, table: str, row: dict[str, Any]) -> int:
        columns = list(row.keys())
        placeholders = ", ".join(f"${i + 1}" for i in range(len(columns)))
        query = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"
        return await self.execute_async(query, [row[c] for c in columns])

    async def health_check_async(self) -> bool:
        try:
            async with self._check_pool().acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except Exception:
            return False
