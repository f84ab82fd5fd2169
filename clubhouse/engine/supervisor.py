"""Process supervisor for spawned CLI agents.

Owns the lifecycle of each agent process:

- spawn: resolve provider → register (fresh nonce) → write hook config
  → build command → launch with asyncio.create_subprocess_exec
- kill: provider exit command → terminate → kill after a grace period
  → unregister, which revokes the nonce
- exit watcher: unregisters agents whose process ends on its own

Headless agents have their stdout translated into hook events, since
headless runs do not fire hooks.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any

from clubhouse.adapters.event_bus import EventBus
from clubhouse.adapters.events import AgentExited, AgentKilled, AgentSpawned
from clubhouse.shared.services.project_settings import PERMISSION_TEMPLATES, ProjectSettings

from . import hook_config
from .config import ClubhouseConfig
from .errors import AgentNotFoundError, AgentSpawnError, OrchestrationError
from .headless import (
    StreamJsonMapper,
    parse_json_line,
    stderr_event,
    text_mode_start_event,
    text_mode_stop_event,
)
from .providers.base import Provider
from .providers.types import (
    AgentKind,
    HeadlessOptions,
    HookConfigOptions,
    NormalizedHookEvent,
    SpawnCommand,
    SpawnOptions,
)
from .registrations import AgentRegistry
from .resolver import ProviderResolver

logger = logging.getLogger(__name__)

# Markers that make a nested Claude Code session refuse to start
_STRIPPED_ENV = ("CLAUDECODE", "CLAUDE_CODE_ENTRYPOINT")


@dataclass
class SpawnRequest:
    """What the caller wants launched.

    ``cwd`` defaults to ``workspace_path``. ``free_agent_mode`` of None
    defers to the workspace's project settings.
    """
    agent_id: str
    workspace_path: str
    cwd: str | None = None
    kind: AgentKind = "durable"
    provider_id: str | None = None
    model: str | None = None
    mission: str | None = None
    system_prompt: str | None = None
    allowed_tools: list[str] | None = None
    disallowed_tools: list[str] | None = None
    free_agent_mode: bool | None = None
    resume: bool = False
    output_format: str | None = None


@dataclass
class AgentHandle:
    agent_id: str
    provider_id: str
    kind: AgentKind
    headless: bool
    pid: int | None
    process: asyncio.subprocess.Process = field(repr=False)
    started_at: float = field(default_factory=time.time)
    transcript_path: Path | None = None
    killed: bool = False
    watcher: asyncio.Task | None = field(default=None, repr=False)

    @property
    def running(self) -> bool:
        return self.process.returncode is None


class AgentSupervisor:
    """Spawns, tracks and terminates agent processes."""

    def __init__(
        self,
        resolver: ProviderResolver,
        registrations: AgentRegistry,
        hook_server: Any,
        event_bus: EventBus | None = None,
        config: ClubhouseConfig | None = None,
    ) -> None:
        self._resolver = resolver
        self._registrations = registrations
        self._hook_server = hook_server
        self._event_bus = event_bus
        self._config = config or ClubhouseConfig()
        self._agents: dict[str, AgentHandle] = {}

    # ── Queries ──

    def get(self, agent_id: str) -> AgentHandle | None:
        return self._agents.get(agent_id)

    def list_agents(self) -> list[AgentHandle]:
        return list(self._agents.values())

    def is_running(self, agent_id: str) -> bool:
        handle = self._agents.get(agent_id)
        return handle is not None and handle.running

    # ── Spawning ──

    async def spawn(self, request: SpawnRequest) -> AgentHandle:
        """Launch an interactive agent session."""
        return await self._spawn(request, headless=False)

    async def spawn_headless(self, request: SpawnRequest) -> AgentHandle:
        """Launch a single-shot headless run.

        Raises AgentSpawnError when no mission is given.
        """
        return await self._spawn(request, headless=True)

    async def _spawn(self, request: SpawnRequest, headless: bool) -> AgentHandle:
        provider = self._resolver.resolve(request.workspace_path, request.provider_id)

        if request.agent_id in self._agents:
            logger.info("Agent %s already running; replacing it", request.agent_id)
            await self.kill(request.agent_id)

        if headless and not request.mission:
            raise AgentSpawnError(request.agent_id, "headless run requires a mission")

        # Pin the resolved provider so later settings changes cannot reroute hooks
        registration = self._registrations.register(
            request.agent_id, request.workspace_path, provider.id,
        )
        cwd = request.cwd or request.workspace_path
        try:
            await self._hook_server.wait_ready()
            hook_url = self._hook_server.hook_url
            if provider.get_capabilities().hooks:
                provider.write_hooks_config(
                    cwd,
                    request.agent_id,
                    HookConfigOptions(
                        hook_url=hook_url,
                        timeout_seconds=self._config.hook_timeout_seconds,
                    ),
                )

            options = self._build_options(provider, request, cwd, headless)
            if headless:
                command = provider.build_headless_command(options)
                if command is None:
                    raise AgentSpawnError(request.agent_id, "headless run requires a mission")
            else:
                command = provider.build_spawn_command(options)

            env = self._build_env(command, request.agent_id, registration.nonce, hook_url)
            process = await self._launch(command, cwd, env, request.agent_id, headless)
        except AgentSpawnError:
            self._registrations.remove(request.agent_id)
            raise
        except (OrchestrationError, OSError) as exc:
            self._registrations.remove(request.agent_id)
            logger.error("Failed to spawn agent %s: %s", request.agent_id, exc)
            raise AgentSpawnError(request.agent_id, str(exc)) from exc

        handle = AgentHandle(
            agent_id=request.agent_id,
            provider_id=provider.id,
            kind=request.kind,
            headless=headless,
            pid=process.pid,
            process=process,
        )
        self._agents[request.agent_id] = handle
        logger.info(
            "Spawned %s agent %s with %s (pid=%s)",
            "headless" if headless else "interactive",
            request.agent_id, provider.id, process.pid,
        )
        await self._emit(AgentSpawned(
            agent_id=request.agent_id,
            provider_id=provider.id,
            workspace_path=request.workspace_path,
            pid=process.pid,
            headless=headless,
        ))

        if headless:
            output_kind = getattr(command, "output_kind", "text")
            handle.transcript_path = self._transcript_path(request.agent_id)
            handle.watcher = asyncio.create_task(
                self._run_headless(handle, provider, output_kind),
            )
        else:
            handle.watcher = asyncio.create_task(self._watch_exit(handle, provider))
        return handle

    def _build_options(
        self,
        provider: Provider,
        request: SpawnRequest,
        cwd: str,
        headless: bool,
    ) -> SpawnOptions:
        settings = ProjectSettings.load(request.workspace_path)
        free_agent_mode = request.free_agent_mode
        if free_agent_mode is None:
            free_agent_mode = settings.free_agent_mode

        allowed_tools = request.allowed_tools
        if allowed_tools is None:
            if request.kind == "quick":
                allowed_tools = provider.get_default_permissions("quick")
            elif settings.permission_template in PERMISSION_TEMPLATES:
                allowed_tools = provider.get_default_permissions(settings.permission_template)

        system_prompt = request.system_prompt
        if request.kind == "quick":
            instruction = provider.build_summary_instruction(request.agent_id)
            system_prompt = f"{system_prompt}\n\n{instruction}" if system_prompt else instruction

        common: dict[str, Any] = dict(
            cwd=cwd,
            model=request.model or self._config.default_model,
            mission=request.mission,
            system_prompt=system_prompt,
            allowed_tools=allowed_tools,
            disallowed_tools=request.disallowed_tools,
            free_agent_mode=free_agent_mode,
            resume=request.resume,
            agent_id=request.agent_id,
        )
        if headless:
            return HeadlessOptions(
                **common,
                output_format=request.output_format,
                no_session_persistence=True,
            )
        return SpawnOptions(**common)

    @staticmethod
    def _build_env(
        command: SpawnCommand,
        agent_id: str,
        nonce: str,
        hook_url: str,
    ) -> dict[str, str]:
        env = dict(os.environ)
        for key in _STRIPPED_ENV:
            env.pop(key, None)
        env.update(command.env or {})
        env[hook_config.AGENT_ID_ENV] = agent_id
        env[hook_config.NONCE_ENV] = nonce
        env[hook_config.HOOK_URL_ENV] = hook_url
        return env

    async def _launch(
        self,
        command: SpawnCommand,
        cwd: str,
        env: dict[str, str],
        agent_id: str,
        headless: bool,
    ) -> asyncio.subprocess.Process:
        logger.debug("Launching %s %s in %s", command.binary, command.args, cwd)
        if headless:
            # Prompt is in argv; an open stdin can make some CLIs wait for input
            return await asyncio.create_subprocess_exec(
                command.binary, *command.args,
                cwd=cwd,
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        output = self._open_session_log(agent_id)
        try:
            return await asyncio.create_subprocess_exec(
                command.binary, *command.args,
                cwd=cwd,
                env=env,
                stdin=asyncio.subprocess.PIPE,
                stdout=output,
                stderr=asyncio.subprocess.STDOUT,
            )
        finally:
            if not isinstance(output, int):
                output.close()

    def _open_session_log(self, agent_id: str) -> IO[bytes] | int:
        if not self._config.save_transcripts:
            return asyncio.subprocess.DEVNULL
        log_dir = Path(self._config.log_dir) / "agents"
        log_dir.mkdir(parents=True, exist_ok=True)
        return open(log_dir / f"{agent_id}.log", "ab")

    # ── Exit handling ──

    async def _watch_exit(self, handle: AgentHandle, provider: Provider) -> None:
        exit_code = await handle.process.wait()
        await self._finish(handle, provider, exit_code)

    async def _finish(self, handle: AgentHandle, provider: Provider, exit_code: int | None) -> None:
        # A newer agent may have been spawned under the same id
        if self._agents.get(handle.agent_id) is handle:
            del self._agents[handle.agent_id]
            self._registrations.remove(handle.agent_id)
        if handle.killed:
            return

        summary = provider.read_quick_summary(handle.agent_id) if handle.kind == "quick" else None
        logger.info("Agent %s exited with code %s", handle.agent_id, exit_code)
        await self._emit(AgentExited(
            agent_id=handle.agent_id,
            exit_code=exit_code,
            summary=summary.summary if summary else None,
            files_modified=summary.files_modified if summary else None,
        ))

    # ── Headless output ──

    def _transcript_path(self, agent_id: str) -> Path | None:
        if not self._config.save_transcripts:
            return None
        self._config.transcript_dir.mkdir(parents=True, exist_ok=True)
        return self._config.transcript_dir / f"{agent_id}.jsonl"

    async def _run_headless(
        self, handle: AgentHandle, provider: Provider, output_kind: str,
    ) -> None:
        transcript: IO[str] | None = None
        text_chunks: list[str] = []
        try:
            if handle.transcript_path is not None:
                transcript = open(handle.transcript_path, "w", encoding="utf-8")
            if output_kind == "text":
                await self._publish(handle.agent_id, text_mode_start_event(), provider)
            await asyncio.gather(
                self._read_stdout(handle, provider, output_kind, transcript, text_chunks),
                self._read_stderr(handle, provider),
            )
            await handle.process.wait()

            if output_kind == "text" and text_chunks and not handle.killed:
                output = "".join(text_chunks)
                if transcript is not None:
                    transcript.write(json.dumps({
                        "type": "result",
                        "result": output.strip(),
                        "duration_ms": int((time.time() - handle.started_at) * 1000),
                    }) + "\n")
                await self._publish(handle.agent_id, text_mode_stop_event(output), provider)
        except (OSError, ValueError) as exc:
            logger.error("Headless output handling failed for agent %s: %s", handle.agent_id, exc)
            if handle.process.returncode is None:
                await self._terminate(handle.process, handle.agent_id)
        finally:
            if transcript is not None:
                transcript.close()
            await self._finish(handle, provider, handle.process.returncode)

    async def _read_stdout(
        self,
        handle: AgentHandle,
        provider: Provider,
        output_kind: str,
        transcript: IO[str] | None,
        text_chunks: list[str],
    ) -> None:
        stream = handle.process.stdout
        if stream is None:
            return
        mapper = StreamJsonMapper() if output_kind == "stream-json" else None
        while True:
            line = await stream.readline()
            if not line:
                break
            text = line.decode("utf-8", errors="replace")
            if mapper is None:
                text_chunks.append(text)
                continue
            event = parse_json_line(text)
            if event is None:
                continue
            if transcript is not None:
                transcript.write(json.dumps(event) + "\n")
            for hook_event in mapper.map(event):
                await self._publish(handle.agent_id, hook_event, provider)

    async def _read_stderr(self, handle: AgentHandle, provider: Provider) -> None:
        stream = handle.process.stderr
        if stream is None:
            return
        while True:
            line = await stream.readline()
            if not line:
                break
            message = line.decode("utf-8", errors="replace").strip()
            if not message:
                continue
            logger.warning("Agent %s stderr: %s", handle.agent_id, message)
            await self._publish(handle.agent_id, stderr_event(message), provider)

    def read_transcript(self, agent_id: str) -> str | None:
        """Saved JSONL transcript of a headless run, if any."""
        path = self._config.transcript_dir / f"{agent_id}.jsonl"
        try:
            return path.read_text(encoding="utf-8")
        except OSError:
            return None

    # ── Termination ──

    async def kill(self, agent_id: str) -> bool:
        """Stop an agent and revoke its nonce.

        Interactive sessions are first asked to exit via the provider's
        exit command. Returns False when the agent was not running.
        """
        handle = self._agents.get(agent_id)
        if handle is None:
            self._registrations.remove(agent_id)
            return False

        handle.killed = True
        process = handle.process
        if process.returncode is None and not handle.headless:
            provider = self._resolver.registry.get(handle.provider_id)
            await self._request_exit(process, provider)
        if process.returncode is None:
            await self._terminate(process, agent_id)

        if self._agents.get(agent_id) is handle:
            del self._agents[agent_id]
        self._registrations.remove(agent_id)
        if handle.watcher is not None and not handle.watcher.done():
            try:
                await asyncio.wait_for(handle.watcher, timeout=self._config.kill_grace_seconds)
            except asyncio.TimeoutError:
                handle.watcher.cancel()

        logger.info("Killed agent %s", agent_id)
        await self._emit(AgentKilled(agent_id=agent_id))
        return True

    async def _request_exit(
        self, process: asyncio.subprocess.Process, provider: Provider | None,
    ) -> None:
        if process.stdin is None or provider is None:
            return
        try:
            process.stdin.write(provider.get_exit_command().encode("utf-8"))
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=self._config.exit_wait_seconds)
        except asyncio.TimeoutError:
            pass

    async def _terminate(self, process: asyncio.subprocess.Process, agent_id: str) -> None:
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=self._config.kill_grace_seconds)
        except asyncio.TimeoutError:
            logger.warning("Agent %s ignored SIGTERM; killing", agent_id)
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()

    async def shutdown(self) -> None:
        """Kill every live agent."""
        agent_ids = list(self._agents)
        if agent_ids:
            logger.info("Shutting down %d agent(s)", len(agent_ids))
        for agent_id in agent_ids:
            try:
                await self.kill(agent_id)
            except Exception as exc:
                logger.error("Error killing agent %s during shutdown: %s", agent_id, exc)

    def require(self, agent_id: str) -> AgentHandle:
        handle = self._agents.get(agent_id)
        if handle is None:
            raise AgentNotFoundError(agent_id)
        return handle

    # ── Fan-out ──

    async def _publish(
        self, agent_id: str, event: NormalizedHookEvent, provider: Provider,
    ) -> None:
        await self._hook_server.publish(agent_id, event, provider)

    async def _emit(self, event: Any) -> None:
        if self._event_bus is not None:
            await self._event_bus.emit(event)
