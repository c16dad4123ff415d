"""CLI subcommand for database migrations.

    python -m bullion_platform migrate up [--target N] [--db memory|postgres] [--env-file NAME]
    python -m bullion_platform migrate down [--count N]
    python -m bullion_platform migrate status
    python -m bullion_platform migrate create <name>
"""

from __future__ import annotations

import asyncio
import sys
from typing import Any

from bullion_platform.config.container import Container
from bullion_platform.migrations.runner import MigrationRunner, create_migration
from bullion_platform.services.database.interface import DatabaseInterface
from bullion_platform.services.registry import resolve_implementation
from bullion_platform.services.secrets.env_secrets import EnvSecrets
from bullion_platform.services.secrets.interface import SecretsInterface

USAGE = "Usage: python -m bullion_platform migrate <up|down|status|create> [options]"


def _parse_migrate_args(argv: list[str]) -> dict[str, Any]:
    """Parse migrate subcommand arguments."""
    if not argv:
        raise ValueError(USAGE)

    args: dict[str, Any] = {
        "command": argv[0],
        "target": None,
        "count": 1,
        "name": None,
        "db": "memory",
        "db_name": "rates",
        "env_file": None,
    }
    i = 1
    while i < len(argv):
        flag = argv[i]
        if flag == "--target" and i + 1 < len(argv):
            args["target"] = int(argv[i + 1])
            i += 2
        elif flag == "--count" and i + 1 < len(argv):
            args["count"] = int(argv[i + 1])
            i += 2
        elif flag == "--db" and i + 1 < len(argv):
            args["db"] = argv[i + 1]
            i += 2
        elif flag == "--schema" and i + 1 < len(argv):
            args["db_name"] = argv[i + 1]
            i += 2
        elif flag == "--env-file" and i + 1 < len(argv):
            args["env_file"] = argv[i + 1]
            i += 2
        else:
            # Positional arg (migration name for 'create')
            if args["name"] is None:
                args["name"] = argv[i]
            i += 1
    return args


def _build_db(impl_name: str, env_file: str | None) -> DatabaseInterface:
    container = Container()
    container.register_instance(SecretsInterface, EnvSecrets.with_env_file(env_file))
    return container.resolve(resolve_implementation("db", impl_name))


async def _run(args: dict[str, Any]) -> int:
    command = args["command"]
    db = _build_db(args["db"], args["env_file"])
    await db.connect_async()
    try:
        runner = MigrationRunner(db, db_name=args["db_name"])

        if command == "up":
            applied = await runner.up(target=args["target"])
            for name in applied:
                print(f"  Applied: {name}")
            print(f"\n{len(applied)} migration(s) applied." if applied else "No pending migrations.")
            return 0

        if command == "down":
            rolled_back = await runner.down(count=args["count"])
            for name in rolled_back:
                print(f"  Rolled back: {name}")
            print(
                f"\n{len(rolled_back)} migration(s) rolled back."
                if rolled_back
                else "No migrations to roll back."
            )
            return 0

        if command == "status":
            statuses = await runner.status()
            if not statuses:
                print("No migrations found.")
                return 0
            print(f"{'Migration':<45} {'Status':<10} {'Applied At'}")
            print("-" * 80)
            for s in statuses:
                status = "applied" if s.applied else "pending"
                print(f"{s.name:<45} {status:<10} {s.applied_at or ''}")
            return 0

        print(f"Unknown migrate command: {command}", file=sys.stderr)
        return 1
    finally:
        await db.disconnect_async()


def run_migrate(argv: list[str]) -> int:
    """Entry point for the migrate subcommand."""
    args = _parse_migrate_args(argv)

    if args["command"] == "create":
        if not args["name"]:
            print("Usage: python -m bullion_platform migrate create <name>", file=sys.stderr)
            return 1
        up_path, down_path = create_migration(args["db_name"], args["name"])
        print(f"Created: {up_path}")
        print(f"Created: {down_path}")
        return 0

    return asyncio.run(_run(args))
