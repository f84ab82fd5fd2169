"""OpenAI Codex CLI provider.

Codex has no per-tool hook registration; its only callback is the
``notify`` program, which receives kebab-case ``type`` events. Hook
config writing is therefore a no-op, but payloads that reach the
ingestion server (for example from a notify wrapper) are still mapped.

Instructions live in ``AGENTS.md`` at the worktree root.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from .base import Provider
from .shared import home_path, join_prompt, read_text_or_empty
from .types import (
    AgentKind,
    HeadlessCommandResult,
    HeadlessOptions,
    HookConfigOptions,
    HookEventKind,
    ModelOption,
    NormalizedHookEvent,
    ProviderCapabilities,
    ProviderConventions,
    SpawnCommand,
    SpawnOptions,
)

logger = logging.getLogger(__name__)

FULL_AUTO_FLAG = "--full-auto"

TOOL_VERBS = {
    "shell": "Running command",
    "shell_command": "Running command",
    "apply_patch": "Editing file",
}

FALLBACK_MODEL_OPTIONS = [
    ModelOption("default", "Default"),
    ModelOption("gpt-5.3-codex", "GPT 5.3 Codex"),
    ModelOption("gpt-5.2-codex", "GPT 5.2 Codex"),
    ModelOption("codex-mini-latest", "Codex Mini"),
    ModelOption("gpt-5", "GPT 5"),
]

# Codex permissions are sandbox-based; these are coarse categories.
DEFAULT_DURABLE_PERMISSIONS = ["shell(git:*)", "shell(npm:*)", "shell(npx:*)"]
DEFAULT_QUICK_PERMISSIONS = DEFAULT_DURABLE_PERMISSIONS + ["shell(*)", "apply_patch"]

EVENT_TYPE_MAP = {
    "agent-turn-complete": HookEventKind.STOP,
    "exec-command-begin": HookEventKind.PRE_TOOL,
    "exec-command-end": HookEventKind.POST_TOOL,
    "exec-approval-request": HookEventKind.PERMISSION_REQUEST,
    "apply-patch-approval-request": HookEventKind.PERMISSION_REQUEST,
    "error": HookEventKind.TOOL_ERROR,
    "notification": HookEventKind.NOTIFICATION,
    "background-event": HookEventKind.NOTIFICATION,
}

_PATCH_EVENTS = ("apply-patch-approval-request",)
_COMMAND_EVENTS = ("exec-command-begin", "exec-command-end", "exec-approval-request")


def _command_input(raw: dict[str, Any]) -> dict[str, Any] | None:
    command = raw.get("command")
    if isinstance(command, list):
        command = " ".join(str(part) for part in command)
    if not isinstance(command, str):
        return None
    tool_input: dict[str, Any] = {"command": command}
    if isinstance(raw.get("cwd"), str):
        tool_input["cwd"] = raw["cwd"]
    return tool_input


class CodexCliProvider(Provider):
    """Provider backed by the OpenAI Codex CLI.

    Auth works with the CLI's own login by default. If ``api_key_env``
    is set and that variable exists, it is passed through as
    ``OPENAI_API_KEY``.
    """

    id = "codex-cli"
    display_name = "Codex CLI"
    short_name = "CX"
    badge = "Beta"
    binary_names = ("codex",)
    api_key_var = "OPENAI_API_KEY"
    conventions = ProviderConventions(
        config_dir=".codex",
        local_instructions_file="AGENTS.md",
        legacy_instructions_file="AGENTS.md",
        mcp_config_file=".codex/config.toml",
        skills_dir="skills",
        agent_templates_dir="agents",
        local_settings_file="config.toml",
    )

    def extra_binary_paths(self) -> list[str]:
        return [
            home_path(".local", "bin", "codex"),
            home_path(".npm-global", "bin", "codex"),
            "/usr/local/bin/codex",
            "/opt/homebrew/bin/codex",
            home_path(".volta", "bin", "codex"),
            home_path(".local", "share", "pnpm", "codex"),
        ]

    def get_capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            headless=True,
            structured_output=False,
            hooks=False,
            session_resume=True,
            permissions=True,
        )

    def build_spawn_command(self, options: SpawnOptions) -> SpawnCommand:
        args: list[str] = []
        if options.resume:
            args.extend(["resume", "--last"])
        if options.free_agent_mode:
            args.append(FULL_AUTO_FLAG)
        if options.model and options.model != "default":
            args.extend(["--model", options.model])
        prompt = join_prompt(options.system_prompt, options.mission)
        if prompt:
            args.append(prompt)
        return SpawnCommand(
            binary=self.find_binary(), args=args, env=self._build_env(),
        )

    def build_headless_command(
        self, options: HeadlessOptions,
    ) -> HeadlessCommandResult | None:
        if not options.mission:
            return None
        prompt = join_prompt(options.system_prompt, options.mission)
        args = ["exec", prompt, "--json", FULL_AUTO_FLAG]
        if options.model and options.model != "default":
            args.extend(["--model", options.model])
        return HeadlessCommandResult(
            binary=self.find_binary(),
            args=args,
            env=self._build_env(),
            output_kind="text",
        )

    def write_hooks_config(
        self,
        workspace_path: str,
        agent_id: str,
        options: HookConfigOptions | None = None,
    ) -> None:
        # notify only reports turn completion, too coarse for tool events
        logger.debug(
            "Codex CLI has no hook registration; skipping for agent %s", agent_id,
        )

    def parse_hook_event(self, raw: Any) -> NormalizedHookEvent | None:
        if not isinstance(raw, dict):
            return None
        event_type = raw.get("type")
        kind = EVENT_TYPE_MAP.get(event_type) if isinstance(event_type, str) else None
        if kind is None:
            return None

        if kind == HookEventKind.POST_TOOL:
            exit_code = raw.get("exit_code")
            if isinstance(exit_code, int) and exit_code != 0:
                kind = HookEventKind.TOOL_ERROR

        tool_name = None
        tool_input = None
        if event_type in _COMMAND_EVENTS:
            tool_name = "shell"
            tool_input = _command_input(raw)
        elif event_type in _PATCH_EVENTS:
            tool_name = "apply_patch"
            changes = raw.get("changes")
            tool_input = {"changes": changes} if isinstance(changes, dict) else None

        message = raw.get("last-assistant-message")
        if message is None:
            message = raw.get("message")
        if message is None and kind == HookEventKind.TOOL_ERROR:
            message = raw.get("stderr")

        return NormalizedHookEvent(
            kind=kind,
            tool_name=tool_name,
            tool_input=tool_input,
            message=message if isinstance(message, str) else None,
        )

    def tool_verb(self, tool_name: str) -> str | None:
        return TOOL_VERBS.get(tool_name)

    def get_default_permissions(self, kind: AgentKind) -> list[str]:
        if kind == "durable":
            return list(DEFAULT_DURABLE_PERMISSIONS)
        return list(DEFAULT_QUICK_PERMISSIONS)

    async def get_model_options(self) -> list[ModelOption]:
        return await self._probe_help_models(FALLBACK_MODEL_OPTIONS)

    def read_instructions(self, worktree_path: str) -> str:
        return read_text_or_empty(Path(worktree_path) / "AGENTS.md")

    def write_instructions(self, worktree_path: str, content: str) -> None:
        (Path(worktree_path) / "AGENTS.md").write_text(content, encoding="utf-8")
