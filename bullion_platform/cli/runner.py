from __future__ import annotations

import asyncio
import importlib
import json
import sys
from pathlib import Path
from typing import Any

from bullion_platform.config.container import Container
from bullion_platform.config.context import ModuleConfig
from bullion_platform.modules.base import AsyncModule
from bullion_platform.services.health.health_server import HealthCheckServer
from bullion_platform.services.lifecycle.lifecycle_manager import LifecycleManager
from bullion_platform.services.logger.factory import LoggerFactory
from bullion_platform.services.metrics.interface import MetricsInterface
from bullion_platform.services.metrics.noop_metrics import NoopMetrics
from bullion_platform.services.registry import resolve_implementation, resolve_interface_type
from bullion_platform.services.secrets.env_secrets import EnvSecrets
from bullion_platform.services.secrets.interface import SecretsInterface

MODULES_DIR = Path(__file__).resolve().parent.parent / "modules"

USAGE = "Usage: python -m bullion_platform run <module_name> [flags] [module args]"

# Global flags that select interface implementations.
# Maps flag name -> default value (None = not registered unless explicitly requested).
_GLOBAL_FLAGS: dict[str, str | None] = {
    "db": None,
    "metrics": "noop",
    "log": "pretty",
}

# Module types that get the health check server and signal handling
_SERVICE_TYPES = {"service", "worker"}


def load_module_descriptor(module_name: str) -> dict[str, Any]:
    module_json = MODULES_DIR / module_name / "module.json"
    if not module_json.exists():
        raise FileNotFoundError(f"module '{module_name}' not found at {module_json}")
    with open(module_json) as f:
        return json.load(f)


def parse_module_args(
    descriptor: dict[str, Any], raw_args: list[str]
) -> dict[str, Any]:
    """Parse CLI args against the module.json arg definitions."""
    arg_defs: list[dict[str, Any]] = descriptor.get("args", [])
    parsed: dict[str, Any] = {}

    i = 0
    while i < len(raw_args):
        arg = raw_args[i]
        if arg.startswith("--"):
            key = arg[2:]
            if i + 1 < len(raw_args) and not raw_args[i + 1].startswith("--"):
                parsed[key] = raw_args[i + 1]
                i += 2
            else:
                parsed[key] = "true"
                i += 1
        else:
            i += 1

    known = {d["name"] for d in arg_defs}
    errors = [f"Unknown argument: --{name}" for name in parsed if name not in known]

    result: dict[str, Any] = {}
    for arg_def in arg_defs:
        name = arg_def["name"]
        if name in parsed:
            try:
                result[name] = _cast_value(parsed[name], arg_def.get("type", "string"))
            except ValueError:
                errors.append(f"Invalid {arg_def.get('type')} for --{name}: '{parsed[name]}'")
                continue
        elif "default" in arg_def:
            result[name] = arg_def["default"]
        elif arg_def.get("required", False):
            errors.append(f"Missing required argument: --{name}")

        if name in result and "choices" in arg_def:
            if result[name] not in arg_def["choices"]:
                errors.append(
                    f"Invalid value for --{name}: '{result[name]}' "
                    f"(choices: {', '.join(str(c) for c in arg_def['choices'])})"
                )

    if errors:
        raise ValueError("; ".join(errors))

    return result


def _cast_value(value: str, type_name: str) -> Any:
    match type_name:
        case "integer":
            return int(value)
        case "float":
            return float(value)
        case "boolean":
            return value.lower() in ("true", "1", "yes")
        case _:
            return value


def _parse_env_overrides(raw: str) -> dict[str, str]:
    """Parse a JSON string into env overrides. Validates types."""
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("--env value must be a JSON object")
    for k, v in data.items():
        if not isinstance(k, str) or not isinstance(v, str):
            raise ValueError("--env JSON must have string keys and string values")
    return data


def _extract_global_flags(
    remaining: list[str],
) -> tuple[dict[str, str], dict[str, str], str | None, list[str], int]:
    """Split global flags from module args.

    Returns (impl_flags, env_overrides, env_file, module_args, health_port).
    """
    impl_flags: dict[str, str] = {}
    env_overrides: dict[str, str] = {}
    env_file: str | None = None
    health_port = 8080
    filtered_args: list[str] = []

    all_flag_names = set(_GLOBAL_FLAGS) | {"env", "env-file", "health-port"}

    i = 0
    while i < len(remaining):
        flag = remaining[i]
        if flag.startswith("--") and flag[2:] in all_flag_names and i + 1 < len(remaining):
            name = flag[2:]
            value = remaining[i + 1]
            if name == "env":
                env_overrides.update(_parse_env_overrides(value))
            elif name == "env-file":
                env_file = value
            elif name == "health-port":
                health_port = int(value)
            else:
                impl_flags[name] = value
            i += 2
        else:
            filtered_args.append(flag)
            i += 1

    return impl_flags, env_overrides, env_file, filtered_args, health_port


def print_module_help(descriptor: dict[str, Any]) -> None:
    version = descriptor.get("version", "")
    version_suffix = f" v{version}" if version else ""
    print(f"\n  {descriptor['display_name']}{version_suffix}")
    print(f"  {descriptor['description']}\n")
    module_type = descriptor.get("type")
    if module_type:
        print(f"  Type: {module_type}\n")

    args = descriptor.get("args", [])
    if args:
        print("  Module arguments:")
        for arg in args:
            required = " (required)" if arg.get("required") else ""
            default = f" [default: {arg['default']}]" if "default" in arg else ""
            choices_list = arg.get("choices")
            choices = (
                f" (choices: {', '.join(str(c) for c in choices_list)})"
                if choices_list
                else ""
            )
            print(f"    --{arg['name']:20s} {arg['description']}{required}{default}{choices}")
        print()

    print("  Global flags:")
    print(f"    --{'db':20s} Database: memory, postgres [default: none]")
    print(f"    --{'metrics':20s} Metrics: noop, memory, prometheus [default: noop]")
    print(f"    --{'log':20s} Logging format: pretty, memory [default: pretty]")
    print(f"    --{'health-port':20s} Health check HTTP port (service/worker only) [default: 8080]")
    print(f"    --{'env':20s} JSON string of env var overrides")
    print(f"    --{'env-file':20s} Environment file name (loads .env/<name>.env)")
    print()


def _build_container(
    impl_flags: dict[str, str],
    env_overrides: dict[str, str],
    module_args: dict[str, Any],
    env_file: str | None = None,
    health_port: int = 8080,
    module_type: str = "job",
) -> Container:
    """Build the DI container with all registered services."""
    container = Container()
    container.register_instance(Container, container)

    # 1. Secrets: --env JSON over .env/<name>.env over the process environment
    secrets = EnvSecrets.with_env_file(env_file, overrides=env_overrides)
    container.register_instance(SecretsInterface, secrets)
    container.register_instance(ModuleConfig, ModuleConfig(module_args))

    # 2. Logger factory: --log flag, then LOG_IMPL, then pretty
    log_impl = impl_flags.get("log") or secrets.get_or_default("LOG_IMPL", "pretty")
    logger_factory = LoggerFactory(default_impl=log_impl)
    container.register_instance(LoggerFactory, logger_factory)

    # 3. Lifecycle manager (always registered so any module can use it)
    lifecycle = LifecycleManager(log=logger_factory.for_component("lifecycle"))
    container.register_instance(LifecycleManager, lifecycle)

    health_server: HealthCheckServer | None = None
    if module_type in _SERVICE_TYPES:
        health_server = HealthCheckServer(port=health_port, log=logger_factory.for_component("health"))
        lifecycle.set_health_server(health_server)
        container.register_instance(HealthCheckServer, health_server)

    # 4. Interface implementations selected by flags (defaults applied)
    selected = {
        name: impl_flags.get(name) or default
        for name, default in _GLOBAL_FLAGS.items()
        if name != "log"
    }
    for flag_name, impl_name in selected.items():
        if impl_name is None:
            continue
        impl_cls = resolve_implementation(flag_name, impl_name)
        instance = container.resolve(impl_cls)
        container.register_instance(resolve_interface_type(flag_name), instance)

        if health_server is not None and hasattr(instance, "health_check"):
            health_server.register_check(flag_name, instance.health_check)

    # 5. MetricsInterface is always available
    if not container.has(MetricsInterface):
        container.register_instance(MetricsInterface, NoopMetrics())

    return container


async def _run_service_module(module_instance: AsyncModule, container: Container) -> int:
    """Run a service/worker module with health check server and lifecycle management."""
    lifecycle = container.get(LifecycleManager)
    health_server = container.get(HealthCheckServer)

    await health_server.start()
    lifecycle.install_signal_handlers(asyncio.get_running_loop())

    try:
        health_server.mark_started()
        return await module_instance.run()
    finally:
        await lifecycle.shutdown()


def run_module(argv: list[str]) -> tuple[int, AsyncModule | None]:
    """Testable entry point: parses args, builds container, runs module, returns (exit_code, module)."""
    if len(argv) < 2 or argv[0] != "run":
        raise ValueError(USAGE)

    module_name = argv[1]
    remaining = argv[2:]

    descriptor = load_module_descriptor(module_name)

    if "--help" in remaining or "-h" in remaining:
        print_module_help(descriptor)
        return (0, None)

    module_type = descriptor.get("type", "job")

    impl_flags, env_overrides, env_file, filtered_args, health_port = _extract_global_flags(remaining)
    module_args = parse_module_args(descriptor, filtered_args)

    container = _build_container(
        impl_flags, env_overrides, module_args,
        env_file=env_file, health_port=health_port, module_type=module_type,
    )

    mod = importlib.import_module(f"bullion_platform.modules.{module_name}.main")
    if not hasattr(mod, "module_class"):
        raise AttributeError(
            f"Module 'bullion_platform.modules.{module_name}.main' must define a 'module_class' attribute"
        )

    module_instance = container.resolve(mod.module_class)

    if module_type in _SERVICE_TYPES:
        exit_code = asyncio.run(_run_service_module(module_instance, container))
    else:
        exit_code = asyncio.run(module_instance.run())

    return (exit_code, module_instance)


def run_cli(argv: list[str] | None = None) -> None:
    args = argv if argv is not None else sys.argv[1:]
    try:
        exit_code, _ = run_module(args)
        sys.exit(exit_code)
    except (ValueError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
