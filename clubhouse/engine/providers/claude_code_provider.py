"""Claude Code CLI provider.

Interactive sessions run ``claude`` with flags; headless runs use
``claude -p <mission> --output-format stream-json``. Hooks are
registered in ``.claude/settings.local.json`` (gitignored by Claude
Code) using its nested matcher-group format.
"""
from __future__ import annotations

import logging
from typing import Any

from .. import hook_config
from .base import Provider
from .shared import home_path
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

SKIP_PERMISSIONS_FLAG = "--dangerously-skip-permissions"

TOOL_VERBS = {
    "Bash": "Running command",
    "Edit": "Editing file",
    "Write": "Writing file",
    "Read": "Reading file",
    "Glob": "Searching files",
    "Grep": "Searching code",
    "Task": "Running task",
    "WebSearch": "Searching web",
    "WebFetch": "Fetching page",
    "EnterPlanMode": "Planning",
    "ExitPlanMode": "Finishing plan",
    "NotebookEdit": "Editing notebook",
}

FALLBACK_MODEL_OPTIONS = [
    ModelOption("default", "Default"),
    ModelOption("opus", "Opus"),
    ModelOption("sonnet", "Sonnet"),
    ModelOption("haiku", "Haiku"),
]

DEFAULT_DURABLE_PERMISSIONS = ["Bash(git:*)", "Bash(npm:*)", "Bash(npx:*)"]
DEFAULT_QUICK_PERMISSIONS = DEFAULT_DURABLE_PERMISSIONS + [
    "Read", "Write", "Edit", "Glob", "Grep",
]

EVENT_NAME_MAP = {
    "PreToolUse": HookEventKind.PRE_TOOL,
    "PostToolUse": HookEventKind.POST_TOOL,
    "PostToolUseFailure": HookEventKind.TOOL_ERROR,
    "Stop": HookEventKind.STOP,
    "Notification": HookEventKind.NOTIFICATION,
    "PermissionRequest": HookEventKind.PERMISSION_REQUEST,
}


def _is_own_group(group: Any) -> bool:
    if not isinstance(group, dict):
        return False
    hooks = group.get("hooks")
    if not isinstance(hooks, list):
        return False
    return any(
        isinstance(h, dict) and hook_config.is_own_command(h.get("command"))
        for h in hooks
    )


class ClaudeCodeProvider(Provider):
    """Provider backed by the Claude Code CLI."""

    id = "claude-code"
    display_name = "Claude Code"
    short_name = "CC"
    badge = None
    binary_names = ("claude",)
    api_key_var = "ANTHROPIC_API_KEY"
    conventions = ProviderConventions(
        config_dir=".claude",
        local_instructions_file="CLAUDE.local.md",
        legacy_instructions_file="CLAUDE.md",
        mcp_config_file=".mcp.json",
        skills_dir="skills",
        agent_templates_dir="agents",
        local_settings_file="settings.local.json",
    )

    def extra_binary_paths(self) -> list[str]:
        return [
            home_path(".local", "bin", "claude"),
            home_path(".claude", "local", "claude"),
            home_path(".npm-global", "bin", "claude"),
            "/usr/local/bin/claude",
            "/opt/homebrew/bin/claude",
        ]

    def get_capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            headless=True,
            structured_output=True,
            hooks=True,
            session_resume=True,
            permissions=True,
        )

    def _common_args(self, options: SpawnOptions) -> list[str]:
        args: list[str] = []
        if options.model and options.model != "default":
            args.extend(["--model", options.model])
        for tool in options.allowed_tools or []:
            args.extend(["--allowedTools", tool])
        for tool in options.disallowed_tools or []:
            args.extend(["--disallowedTools", tool])
        if options.system_prompt:
            args.extend(["--append-system-prompt", options.system_prompt])
        return args

    def build_spawn_command(self, options: SpawnOptions) -> SpawnCommand:
        args: list[str] = []
        if options.free_agent_mode:
            args.append(SKIP_PERMISSIONS_FLAG)
        if options.resume:
            args.append("--continue")
        args.extend(self._common_args(options))
        if options.mission:
            args.append(options.mission)
        return SpawnCommand(
            binary=self.find_binary(), args=args, env=self._build_env(),
        )

    def build_headless_command(
        self, options: HeadlessOptions,
    ) -> HeadlessCommandResult | None:
        if not options.mission:
            return None

        output_format = options.output_format or "stream-json"
        args = ["-p", options.mission, "--output-format", output_format]
        if output_format == "stream-json":
            # -p with stream-json is rejected without --verbose
            args.append("--verbose")
        args.extend(self._common_args(options))
        if options.no_session_persistence:
            args.append("--no-session-persistence")
        # Headless runs can never answer a prompt
        args.append(SKIP_PERMISSIONS_FLAG)

        return HeadlessCommandResult(
            binary=self.find_binary(),
            args=args,
            env=self._build_env(),
            output_kind="stream-json" if output_format == "stream-json" else "text",
        )

    def write_hooks_config(
        self,
        workspace_path: str,
        agent_id: str,
        options: HookConfigOptions | None = None,
    ) -> None:
        hook_url = options.hook_url if options else "${" + hook_config.HOOK_URL_ENV + "}"
        timeout = options.timeout_seconds if options else 5
        command = hook_config.build_hook_command(hook_url)

        own_entries: dict[str, Any] = {}
        for event_name in EVENT_NAME_MAP:
            group: dict[str, Any] = {
                "hooks": [{
                    "type": "command",
                    "command": command,
                    "async": True,
                    "timeout": timeout,
                }],
            }
            if event_name == "Notification":
                group = {"matcher": "", **group}
            own_entries[event_name] = group

        path = self.hooks_config_path(workspace_path)
        existing = hook_config.read_json_config(path)
        existing["hooks"] = hook_config.merge_hooks_section(
            existing.get("hooks"), own_entries, _is_own_group,
        )
        hook_config.write_json_config(path, existing)
        logger.info(
            "Wrote Claude Code hooks for agent %s at %s", agent_id, path,
        )

    def parse_hook_event(self, raw: Any) -> NormalizedHookEvent | None:
        if not isinstance(raw, dict):
            return None
        kind = EVENT_NAME_MAP.get(raw.get("hook_event_name") or "")
        if kind is None:
            return None
        tool_name = raw.get("tool_name")
        tool_input = raw.get("tool_input")
        message = raw.get("message")
        return NormalizedHookEvent(
            kind=kind,
            tool_name=tool_name if isinstance(tool_name, str) else None,
            tool_input=tool_input if isinstance(tool_input, dict) else None,
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
