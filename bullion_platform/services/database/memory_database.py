import re
from typing import Any

from bullion_platform.services.database.interface import DatabaseInterface

_SELECT = re.compile(
    r"^SELECT \* FROM (?P<table>\w+)"
    r"(?: WHERE (?P<where>.+?))?"
    r"(?: ORDER BY (?P<order>\w+)(?: (?P<direction>ASC|DESC))?)?"
    r"(?: LIMIT (?P<limit>\d+))?;?$",
    re.IGNORECASE,
)
_UPDATE = re.compile(
    r"^UPDATE (?P<table>\w+) SET (?P<assignments>.+?) WHERE (?P<where>.+?);?$",
    re.IGNORECASE,
)
_DELETE = re.compile(
    r"^DELETE FROM (?P<table>\w+)(?: WHERE (?P<where>.+?))?;?$",
    re.IGNORECASE,
)
_PLACEHOLDER = re.compile(r"^(\w+)\s*=\s*\$(\d+)$")


class MemoryDatabase(DatabaseInterface):
    """In-memory database for unit testing.

    Tables are lists of dicts. Understands the small SQL dialect the rate
    gateway and migration runner use:

    - ``SELECT * FROM t [WHERE a = $1 [AND b = $2 ...]] [ORDER BY c [ASC|DESC]] [LIMIT n]``
    - ``UPDATE t SET a = $1, b = $2 WHERE c = $3 [AND ...]``
    - ``DELETE FROM t [WHERE a = $1 [AND ...]]``

    Every other statement (DDL) is accepted as a no-op.
    """

    def __init__(self) -> None:
        self._tables: dict[str, list[dict[str, Any]]] = {}
        self._connected = False

    # -- Connection management ------------------------------------------------

    def connect(self) -> None:
        self._connected = True

    def disconnect(self) -> None:
        self._connected = False

    async def connect_async(self) -> None:
        self.connect()

    async def disconnect_async(self) -> None:
        self.disconnect()

    def is_connected(self) -> bool:
        return self._connected

    # -- Sync API (handy for seeding and asserting in tests) ------------------

    def execute(self, query: str, params: list[Any] | None = None) -> int:
        self._check_connected()
        sql = _normalize(query)
        params = params or []

        update = _UPDATE.match(sql)
        if update:
            assignments = _parse_assignments(update.group("assignments"), params)
            matches = _where_filter(update.group("where"), params)
            count = 0
            for row in self._tables.get(update.group("table"), []):
                if matches(row):
                    row.update(assignments)
                    count += 1
            return count

        delete = _DELETE.match(sql)
        if delete:
            table = delete.group("table")
            rows = self._tables.get(table, [])
            matches = _where_filter(delete.group("where"), params)
            kept = [r for r in rows if not matches(r)]
            self._tables[table] = kept
            return len(rows) - len(kept)

        return 0

    def fetch_one(self, query: str, params: list[Any] | None = None) -> dict[str, Any] | None:
        rows = self.fetch_all(query, params)
        return rows[0] if rows else None

    def fetch_all(self, query: str, params: list[Any] | None = None) -> list[dict[str, Any]]:
        self._check_connected()
        match = _SELECT.match(_normalize(query))
        if not match:
            return []
        params = params or []
        matches = _where_filter(match.group("where"), params)
        rows = [dict(r) for r in self._tables.get(match.group("table"), []) if matches(r)]

        order = match.group("order")
        if order:
            descending = (match.group("direction") or "ASC").upper() == "DESC"
            rows.sort(key=lambda r: (r.get(order) is not None, r.get(order)), reverse=descending)

        limit = match.group("limit")
        if limit is not None:
            rows = rows[: int(limit)]
        return rows

    def insert_one(self, table: str, row: dict[str, Any]) -> int:
        self._check_connected()
        self._tables.setdefault(table, []).append(dict(row))
        return 1

    # -- Async API ------------------------------------------------------------

    async def execute_async(self, query: str, params: list[Any] | None = None) -> int:
        return self.execute(query, params)

    async def fetch_one_async(
        self, query: str, params: list[Any] | None = None
    ) -> dict[str, Any] | None:
        return self.fetch_one(query, params)

    async def fetch_all_async(
        self, query: str, params: list[Any] | None = None
    ) -> list[dict[str, Any]]:
        return self.fetch_all(query, params)

    async def insert_one_async(self, table: str, row: dict[str, Any]) -> int:
        return self.insert_one(table, row)

    def _check_connected(self) -> None:
        if not self._connected:
            raise RuntimeError("Database is not connected. Call connect() first.")


def _normalize(query: str) -> str:
    return " ".join(query.split())


def _param(params: list[Any], index: str) -> Any:
    position = int(index) - 1
    if position < 0 or position >= len(params):
        raise ValueError(f"Missing value for placeholder ${index}")
    return params[position]


def _parse_assignments(clause: str, params: list[Any]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for part in clause.split(","):
        match = _PLACEHOLDER.match(part.strip())
        if not match:
            raise ValueError(f"Unsupported SET clause: {part.strip()!r}")
        result[match.group(1)] = _param(params, match.group(2))
    return result


def _where_filter(clause: str | None, params: list[Any]):
    if not clause:
        return lambda row: True
    conditions: list[tuple[str, Any]] = []
    for part in re.split(r"\s+AND\s+", clause, flags=re.IGNORECASE):
        match = _PLACEHOLDER.match(part.strip())
        if not match:
            raise ValueError(f"Unsupported WHERE clause: {part.strip()!r}")
        conditions.append((match.group(1), _param(params, match.group(2))))
    return lambda row: all(row.get(col) == val for col, val in conditions)
