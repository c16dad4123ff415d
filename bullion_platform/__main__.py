"""Entry point: ``python -m bullion_platform <run|migrate> ...``."""

import sys

USAGE = """Usage:
  python -m bullion_platform run <module> [--db memory|postgres] [flags] [module args]
  python -m bullion_platform migrate <up|down|status|create> [options]

Modules: rates_api, rates_watch (add --help after the module name for its arguments)
"""


def main(argv: list[str]) -> int:
    if not argv or argv[0] in ("-h", "--help"):
        print(USAGE)
        return 0 if argv else 1

    if argv[0] == "migrate":
        from bullion_platform.cli.migrate import run_migrate

        return run_migrate(argv[1:])

    from bullion_platform.cli.runner import run_cli

    run_cli(argv)
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
