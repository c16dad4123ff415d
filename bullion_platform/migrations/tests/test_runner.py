from pathlib import Path

import pytest

from bullion_platform.migrations import runner as runner_module
from bullion_platform.migrations.runner import (
    MigrationRunner,
    _split_statements,
    create_migration,
    discover_sql_migrations,
)
from bullion_platform.services.database.memory_database import MemoryDatabase


def _make_db():
    db = MemoryDatabase()
    db.connect()
    return db


@pytest.fixture
def scratch_migrations(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Three throwaway migrations under a temporary migrations root."""
    monkeypatch.setattr(runner_module, "MIGRATIONS_DIR", tmp_path)
    directory = tmp_path / "scratch"
    directory.mkdir()
    for number, table in ((1, "a"), (2, "b"), (3, "c")):
        base = f"{number:03d}_create_{table}"
        (directory / f"{base}.up.sql").write_text(f"CREATE TABLE {table} (id TEXT);")
        (directory / f"{base}.down.sql").write_text(f"DROP TABLE {table};")
    return directory


def test_discover_rate_migrations():
    migrations = discover_sql_migrations("rates")
    assert migrations[0].name == "001_create_metal_rates"
    assert "CREATE TABLE IF NOT EXISTS metal_rates" in migrations[0].up_sql
    assert "DROP TABLE" in migrations[0].down_sql


def test_discover_nonexistent_db():
    assert discover_sql_migrations("nonexistent") == []


def test_missing_down_file_rejected(scratch_migrations: Path):
    (scratch_migrations / "004_orphan.up.sql").write_text("SELECT 1;")
    with pytest.raises(FileNotFoundError, match="004_orphan.up.sql"):
        discover_sql_migrations("scratch")


async def test_up_applies_rate_schema():
    runner = MigrationRunner(_make_db())
    assert await runner.up() == ["001_create_metal_rates"]
    assert await runner.up() == []


async def test_up_with_target(scratch_migrations: Path):
    runner = MigrationRunner(_make_db(), db_name="scratch")
    assert await runner.up(target=2) == ["001_create_a", "002_create_b"]
    statuses = await runner.status()
    assert [s.applied for s in statuses] == [True, True, False]
    assert statuses[0].applied_at is not None


async def test_down_then_up(scratch_migrations: Path):
    runner = MigrationRunner(_make_db(), db_name="scratch")
    await runner.up()
    assert await runner.down(count=2) == ["003_create_c", "002_create_b"]
    assert await runner.up() == ["002_create_b", "003_create_c"]


def test_create_migration_numbers_sequentially(scratch_migrations: Path):
    up_path, down_path = create_migration("scratch", "add_source_index")
    assert up_path.name == "004_add_source_index.up.sql"
    assert down_path.name == "004_add_source_index.down.sql"
    assert [m.number for m in discover_sql_migrations("scratch")] == [1, 2, 3, 4]


def test_split_statements_ignores_comments():
    sql = "-- header\nCREATE TABLE a (id TEXT);\n\n-- only a comment;\nDROP TABLE b;"
    assert _split_statements(sql) == ["CREATE TABLE a (id TEXT)", "DROP TABLE b"]
