from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class DatabaseInterface(ABC):
    """Abstract async interface for relational data access.

    Queries use asyncpg-style positional placeholders (``$1``, ``$2`` ...)
    so the same SQL runs against Postgres and the in-memory test double.
    """

    @abstractmethod
    async def connect_async(self) -> None: ...

    @abstractmethod
    async def disconnect_async(self) -> None: ...

    @abstractmethod
    def is_connected(self) -> bool: ...

    @abstractmethod
    async def execute_async(self, query: str, params: list[Any] | None = None) -> int:
        """Execute a statement, return rows affected."""
        ...

    @abstractmethod
    async def fetch_one_async(
        self, query: str, params: list[Any] | None = None
    ) -> dict[str, Any] | None:
        """Fetch a single row as a dict. Returns None if no rows."""
        ...

    @abstractmethod
    async def fetch_all_async(
        self, query: str, params: list[Any] | None = None
    ) -> list[dict[str, Any]]:
        """Fetch all rows as a list of dicts."""
        ...

    @abstractmethod
    async def insert_one_async(self, table: str, row: dict[str, Any]) -> int:
        """Insert a single row (partial columns allowed). Return rows affected."""
        ...

    def health_check(self) -> bool:
        """Cheap synchronous probe used by the readiness endpoint."""
        return self.is_connected()
