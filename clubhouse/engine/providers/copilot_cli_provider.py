"""GitHub Copilot CLI provider.

Copilot hook payloads do not carry the event name, so each registered
hook command posts to ``/hook/<agent>/<eventName>`` and the ingestion
server injects the URL segment as ``hook_event_name``. Hooks live in
``.github/hooks/hooks.json`` as flat ``{type, bash, timeoutSec}``
entries under a ``version: 1`` wrapper.
"""
from __future__ import annotations

import json
import logging
from typing import Any

from .. import hook_config
from .base import Provider
from .shared import home_path, join_prompt
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

YOLO_FLAG = "--yolo"

# Copilot CLI uses lowercase tool names
TOOL_VERBS = {
    "shell": "Running command",
    "bash": "Running command",
    "edit": "Editing file",
    "write": "Writing file",
    "read": "Reading file",
    "view": "Reading file",
    "search": "Searching code",
    "agent": "Running agent",
}

FALLBACK_MODEL_OPTIONS = [
    ModelOption("default", "Default"),
    ModelOption("claude-sonnet-4.5", "Claude Sonnet 4.5"),
    ModelOption("claude-sonnet-4", "Claude Sonnet 4"),
    ModelOption("claude-haiku-4.5", "Claude Haiku 4.5"),
    ModelOption("gpt-5", "GPT 5"),
]

DEFAULT_DURABLE_PERMISSIONS = ["shell(git:*)", "shell(npm:*)", "shell(npx:*)"]
DEFAULT_QUICK_PERMISSIONS = DEFAULT_DURABLE_PERMISSIONS + ["read", "edit", "search"]

EVENT_NAME_MAP = {
    "preToolUse": HookEventKind.PRE_TOOL,
    "postToolUse": HookEventKind.POST_TOOL,
    "errorOccurred": HookEventKind.TOOL_ERROR,
    "sessionEnd": HookEventKind.STOP,
    "notification": HookEventKind.NOTIFICATION,
    "permissionRequest": HookEventKind.PERMISSION_REQUEST,
}

# Events Copilot can actually be configured to fire.
REGISTERED_EVENTS = ("preToolUse", "postToolUse", "errorOccurred", "sessionEnd")


def _is_own_entry(entry: Any) -> bool:
    return isinstance(entry, dict) and hook_config.is_own_command(entry.get("bash"))


def _tool_input(raw: dict[str, Any]) -> dict[str, Any] | None:
    value = raw.get("tool_input")
    if value is None:
        value = raw.get("toolArgs")
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return None
    return value if isinstance(value, dict) else None


class CopilotCliProvider(Provider):
    """Provider backed by the GitHub Copilot CLI."""

    id = "copilot-cli"
    display_name = "GitHub Copilot CLI"
    short_name = "GH"
    badge = "Beta"
    binary_names = ("copilot",)
    api_key_var = "GITHUB_TOKEN"
    conventions = ProviderConventions(
        config_dir=".github",
        local_instructions_file="copilot-instructions.md",
        legacy_instructions_file="copilot-instructions.md",
        mcp_config_file=".github/mcp.json",
        skills_dir="skills",
        agent_templates_dir="agents",
        local_settings_file="hooks/hooks.json",
    )

    def extra_binary_paths(self) -> list[str]:
        return [
            home_path(".local", "bin", "copilot"),
            "/usr/local/bin/copilot",
            "/opt/homebrew/bin/copilot",
        ]

    def get_capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            headless=True,
            structured_output=False,
            hooks=True,
            session_resume=True,
            permissions=True,
        )

    def build_spawn_command(self, options: SpawnOptions) -> SpawnCommand:
        args: list[str] = []
        if options.free_agent_mode:
            args.append(YOLO_FLAG)
        if options.resume:
            args.append("--continue")
        if options.model and options.model != "default":
            args.extend(["--model", options.model])
        for tool in options.allowed_tools or []:
            args.extend(["--allow-tool", tool])
        for tool in options.disallowed_tools or []:
            args.extend(["--deny-tool", tool])
        prompt = join_prompt(options.system_prompt, options.mission)
        if prompt:
            args.extend(["-p", prompt])
        return SpawnCommand(
            binary=self.find_binary(), args=args, env=self._build_env(),
        )

    def build_headless_command(
        self, options: HeadlessOptions,
    ) -> HeadlessCommandResult | None:
        if not options.mission:
            return None
        prompt = join_prompt(options.system_prompt, options.mission)
        args = ["-p", prompt, "--allow-all", "--silent"]
        if options.model and options.model != "default":
            args.extend(["--model", options.model])
        for tool in options.disallowed_tools or []:
            args.extend(["--deny-tool", tool])
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
        hook_url = options.hook_url if options else "${" + hook_config.HOOK_URL_ENV + "}"
        timeout = options.timeout_seconds if options else 5
        own_entries = {
            event_name: {
                "type": "command",
                "bash": hook_config.build_hook_command(hook_url, event_name),
                "timeoutSec": timeout,
            }
            for event_name in REGISTERED_EVENTS
        }

        path = self.hooks_config_path(workspace_path)
        existing = hook_config.read_json_config(path)
        existing.setdefault("version", 1)
        existing["hooks"] = hook_config.merge_hooks_section(
            existing.get("hooks"), own_entries, _is_own_entry,
        )
        hook_config.write_json_config(path, existing)
        logger.info(
            "Wrote Copilot CLI hooks for agent %s at %s", agent_id, path,
        )

    def parse_hook_event(self, raw: Any) -> NormalizedHookEvent | None:
        if not isinstance(raw, dict):
            return None
        kind = EVENT_NAME_MAP.get(raw.get("hook_event_name") or "")
        if kind is None:
            return None
        # Copilot sends camelCase (toolName, toolArgs); snake_case is a fallback
        tool_name = raw.get("tool_name") or raw.get("toolName")
        message = raw.get("message")
        if message is None and isinstance(raw.get("error"), dict):
            message = raw["error"].get("message")
        return NormalizedHookEvent(
            kind=kind,
            tool_name=tool_name if isinstance(tool_name, str) else None,
            tool_input=_tool_input(raw),
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
