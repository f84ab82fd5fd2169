"""Clubhouse command-line entry point."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from clubhouse.engine.config import ClubhouseConfig
from clubhouse.engine.errors import OrchestrationError
from clubhouse.engine.yaml_config import OrchestrationConfig, find_config_path, load_yaml_config

logger = logging.getLogger(__name__)

LOG_FILENAME = "clubhouse.log"


def _configure_logging(config: ClubhouseConfig, to_file: bool = True) -> Path | None:
    """Root logger: rotating file under the log dir plus stderr."""
    log_level = os.getenv("CLUBHOUSE_LOG_LEVEL", config.log_level).upper()
    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level, logging.INFO))
    root.handlers.clear()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"
    )
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if not to_file:
        return None
    log_dir = Path(config.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILENAME
    file_handler = RotatingFileHandler(
        log_file, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)
    return log_file


def _load_config(config_arg: str | None) -> OrchestrationConfig:
    """Environment config, layered under the YAML file when one exists."""
    base = ClubhouseConfig.from_env()
    path = find_config_path(config_arg)
    if path is None:
        logger.info("No clubhouse.yaml found; using environment config only")
        return OrchestrationConfig(engine=base)
    return load_yaml_config(path, base=base)


def _build_registry(orch: OrchestrationConfig):
    from clubhouse.engine.providers.registry import build_provider_registry

    return build_provider_registry(
        orch.providers,
        probe_timeout=orch.engine.probe_timeout_seconds,
    )


def _build_runtime(orch: OrchestrationConfig):
    """Wire resolver, registrations, bus, hook server and supervisor."""
    from clubhouse.adapters.event_bus import EventBus
    from clubhouse.engine.registrations import AgentRegistry
    from clubhouse.engine.resolver import ProviderResolver
    from clubhouse.engine.supervisor import AgentSupervisor
    from clubhouse.hooks.server import HookServer

    config = orch.engine
    resolver = ProviderResolver(_build_registry(orch), config.default_provider)
    registrations = AgentRegistry()
    event_bus = EventBus()
    hook_server = HookServer(
        registrations,
        resolver.resolve,
        event_bus=event_bus,
        host=config.host,
        port=config.port,
    )
    supervisor = AgentSupervisor(
        resolver, registrations, hook_server, event_bus=event_bus, config=config,
    )

    def _log_event(event) -> None:
        logger.info("event %s agent=%s", event.event_type, event.agent_id)

    event_bus.subscribe(_log_event)
    return supervisor, hook_server, event_bus


async def _serve(orch: OrchestrationConfig) -> None:
    supervisor, hook_server, event_bus = _build_runtime(orch)
    port = await hook_server.start()
    print(json.dumps({"port": port}), flush=True)
    try:
        # Drain the queue so emitters never block on a full bus
        async for _ in event_bus.consume():
            pass
    finally:
        await supervisor.shutdown()
        await hook_server.stop()
        event_bus.close()


async def _run_agent(orch: OrchestrationConfig, request, headless: bool) -> int | None:
    """Spawn one agent and print bus events as JSON lines until it ends.

    Returns the agent's exit code, or None when it was killed.
    """
    from clubhouse.adapters.events import AgentExited, AgentKilled, event_to_dict

    supervisor, hook_server, event_bus = _build_runtime(orch)
    port = await hook_server.start()
    print(json.dumps({"port": port}), flush=True)
    exit_code: int | None = None
    try:
        if headless:
            await supervisor.spawn_headless(request)
        else:
            await supervisor.spawn(request)
        async for event in event_bus.consume():
            print(json.dumps(event_to_dict(event)), flush=True)
            if event.agent_id != request.agent_id:
                continue
            if isinstance(event, AgentExited):
                exit_code = event.exit_code
                break
            if isinstance(event, AgentKilled):
                break
    finally:
        await supervisor.shutdown()
        await hook_server.stop()
        event_bus.close()
    return exit_code


def _cmd_serve(args, orch: OrchestrationConfig) -> int:
    if args.port is not None:
        orch.engine.port = args.port
    if args.host:
        orch.engine.host = args.host
    logger.info(
        "Starting clubhouse hook server host=%s port=%s config=%s",
        orch.engine.host, orch.engine.port, orch.source or "<none>",
    )
    try:
        asyncio.run(_serve(orch))
    except KeyboardInterrupt:
        logger.info("Interrupted; shut down")
    return 0


def _cmd_run(args, orch: OrchestrationConfig) -> int:
    from clubhouse.engine.supervisor import SpawnRequest

    if args.port is not None:
        orch.engine.port = args.port
    request = SpawnRequest(
        agent_id=args.agent_id,
        workspace_path=args.workspace,
        cwd=args.cwd,
        kind=args.kind,
        provider_id=args.provider,
        model=args.model,
        mission=args.mission,
        free_agent_mode=True if args.free_agent else None,
        output_format=args.output_format,
    )
    logger.info(
        "Running %s agent %s in %s (provider=%s)",
        "headless" if args.headless else "interactive",
        args.agent_id, args.workspace, args.provider or "<resolved>",
    )
    try:
        exit_code = asyncio.run(_run_agent(orch, request, args.headless))
    except KeyboardInterrupt:
        logger.info("Interrupted; agent %s stopped", args.agent_id)
        return 130
    return 0 if exit_code in (0, None) else 1


def _cmd_providers(args, orch: OrchestrationConfig) -> int:
    registry = _build_registry(orch)
    for entry in registry.list_orchestrators():
        provider = registry.get(entry["id"])
        available, error = provider.check_availability()
        status = "available" if available else f"unavailable ({error})"
        badge = f" [{entry['badge']}]" if entry.get("badge") else ""
        print(f"  {entry['id']:<12} {entry['display_name']}{badge}: {status}")
    return 0


def _cmd_models(args, orch: OrchestrationConfig) -> int:
    registry = _build_registry(orch)
    provider = registry.get_or_raise(args.provider)
    options = asyncio.run(provider.get_model_options())
    for option in options:
        print(f"  {option.id:<28} {option.label}")
    return 0


def _cmd_write_hooks(args, orch: OrchestrationConfig) -> int:
    from clubhouse.engine.providers.types import HookConfigOptions

    registry = _build_registry(orch)
    provider = registry.get_or_raise(args.provider)
    options = HookConfigOptions(
        hook_url=f"http://{orch.engine.host}:{args.port}/hook",
        timeout_seconds=orch.engine.hook_timeout_seconds,
    )
    provider.write_hooks_config(args.workspace, args.agent_id, options)
    if provider.get_capabilities().hooks:
        print(f"Wrote hooks to {provider.hooks_config_path(args.workspace)}")
    else:
        print(f"{provider.display_name} does not support hooks; nothing written")
    return 0


def main(argv: list[str] | None = None) -> None:
    import argparse

    parser = argparse.ArgumentParser(
        prog="clubhouse",
        description="Supervise CLI coding agents behind one hook server",
    )
    parser.add_argument(
        "--config", metavar="PATH",
        help="YAML config file for server, defaults and providers",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Start the hook server and run until interrupted")
    serve.add_argument("--host", help="Bind address (default: 127.0.0.1)")
    serve.add_argument(
        "--port", type=int, default=None,
        help="Server port (0=random available port)",
    )
    serve.set_defaults(handler=_cmd_serve, log_to_file=True)

    run = sub.add_parser(
        "run", help="Start the hook server, spawn one agent and stream its events",
    )
    run.add_argument("workspace", metavar="WORKSPACE")
    run.add_argument("agent_id", metavar="AGENT_ID")
    run.add_argument("--provider", metavar="ID", help="Provider id (default: resolved for the workspace)")
    run.add_argument("--model", help="Model id passed to the agent")
    run.add_argument("--mission", help="Initial prompt; required with --headless")
    run.add_argument("--cwd", help="Working directory (default: WORKSPACE)")
    run.add_argument("--kind", choices=("durable", "quick"), default="durable")
    run.add_argument("--headless", action="store_true", help="Single-shot run reading stdout")
    run.add_argument("--output-format", dest="output_format", help="Headless output format")
    run.add_argument(
        "--free-agent", dest="free_agent", action="store_true",
        help="Skip the tool's permission prompts",
    )
    run.add_argument("--port", type=int, default=None, help="Hook server port (0=random)")
    run.set_defaults(handler=_cmd_run, log_to_file=True)

    providers = sub.add_parser("providers", help="List providers and whether they are installed")
    providers.set_defaults(handler=_cmd_providers, log_to_file=False)

    models = sub.add_parser("models", help="List model options for a provider")
    models.add_argument("provider", metavar="PROVIDER")
    models.set_defaults(handler=_cmd_models, log_to_file=False)

    write_hooks = sub.add_parser(
        "write-hooks", help="Merge hook registration into a workspace's tool config",
    )
    write_hooks.add_argument("workspace", metavar="WORKSPACE")
    write_hooks.add_argument("agent_id", metavar="AGENT_ID")
    write_hooks.add_argument("--provider", required=True, metavar="ID")
    write_hooks.add_argument("--port", type=int, required=True)
    write_hooks.set_defaults(handler=_cmd_write_hooks, log_to_file=False)

    args = parser.parse_args(argv)

    try:
        orch = _load_config(args.config)
    except (FileNotFoundError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)

    log_file = _configure_logging(orch.engine, to_file=args.log_to_file)
    if log_file:
        logger.info("Logging to %s", log_file)

    try:
        code = args.handler(args, orch)
    except OrchestrationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
