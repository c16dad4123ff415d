"""Root-level pytest fixtures: the fake upstream provider and a
testcontainer-backed Postgres with the rate schema applied."""

from __future__ import annotations

from typing import AsyncIterator

import pytest

from tests.helpers.fake_upstream import FakeUpstream, serve_fake_upstream


@pytest.fixture
async def fake_upstream() -> AsyncIterator[FakeUpstream]:
    async for fake in serve_fake_upstream():
        yield fake


@pytest.fixture(scope="session")
def postgres_container():
    """Single Postgres container for the test session."""
    from testcontainers.postgres import PostgresContainer

    with PostgresContainer("postgres:16") as pg:
        yield pg


@pytest.fixture
async def rates_db(postgres_container):
    """Connected + migrated Postgres for the 'rates' schema."""
    from bullion_platform.migrations.runner import MigrationRunner
    from bullion_platform.services.database.postgres_database import PostgresDatabase
    from bullion_platform.services.secrets.env_secrets import EnvSecrets

    # testcontainers gives a psycopg2-style URL; convert to asyncpg format
    url = postgres_container.get_connection_url()
    asyncpg_url = url.replace("postgresql+psycopg2://", "postgresql://")

    secrets = EnvSecrets(overrides={"DB_DEFAULT_URL": asyncpg_url})
    db = PostgresDatabase(secrets=secrets, prefix="DB_DEFAULT")
    await db.connect_async()

    runner = MigrationRunner(db, db_name="rates")
    await runner.up()

    yield db

    # Teardown: rollback all migrations then disconnect
    await runner.down(count=999)
    await db.disconnect_async()
