"""OpenCode provider.

OpenCode has no native hook or permission system. Any events that reach
the ingestion server already carry a normalized ``kind`` field, so
parsing only validates it against the closed kind set.
"""
from __future__ import annotations

import logging
from typing import Any

from .base import Provider
from .shared import home_path, join_prompt, probe_output
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

TOOL_VERBS = {
    "bash": "Running command",
    "edit": "Editing file",
    "write": "Writing file",
    "read": "Reading file",
    "glob": "Searching files",
    "grep": "Searching code",
    "task": "Running task",
    "webfetch": "Fetching page",
}

FALLBACK_MODEL_OPTIONS = [ModelOption("default", "Default")]

DEFAULT_DURABLE_PERMISSIONS = ["bash(git:*)", "bash(npm:*)", "bash(npx:*)"]
DEFAULT_QUICK_PERMISSIONS = DEFAULT_DURABLE_PERMISSIONS + [
    "read", "edit", "glob", "grep",
]


def parse_model_list(output: str) -> list[ModelOption] | None:
    """Parse ``opencode models`` output: one ``provider/model`` per line."""
    ids = [
        line.strip() for line in output.splitlines()
        if "/" in line and " " not in line.strip()
    ]
    if not ids:
        return None
    return [ModelOption("default", "Default")] + [
        ModelOption(model_id, model_id) for model_id in ids
    ]


class OpenCodeProvider(Provider):
    """Provider backed by the OpenCode CLI."""

    id = "opencode"
    display_name = "OpenCode"
    short_name = "OC"
    badge = "Beta"
    binary_names = ("opencode",)
    conventions = ProviderConventions(
        config_dir=".opencode",
        local_instructions_file="instructions.md",
        legacy_instructions_file="instructions.md",
        mcp_config_file="opencode.json",
        skills_dir="skills",
        agent_templates_dir="agents",
        local_settings_file="opencode.json",
    )

    def extra_binary_paths(self) -> list[str]:
        return [
            home_path(".local", "bin", "opencode"),
            home_path(".opencode", "bin", "opencode"),
            home_path("go", "bin", "opencode"),
            "/usr/local/bin/opencode",
            "/opt/homebrew/bin/opencode",
        ]

    def get_capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            headless=True,
            structured_output=False,
            hooks=False,
            session_resume=True,
            permissions=False,
        )

    def build_spawn_command(self, options: SpawnOptions) -> SpawnCommand:
        args: list[str] = []
        if options.resume:
            args.append("--continue")
        if options.model and options.model != "default":
            args.extend(["--model", options.model])
        prompt = join_prompt(options.system_prompt, options.mission)
        if prompt:
            args.extend(["--prompt", prompt])
        # No permission concept; free_agent_mode maps to nothing.
        return SpawnCommand(binary=self.find_binary(), args=args)

    def build_headless_command(
        self, options: HeadlessOptions,
    ) -> HeadlessCommandResult | None:
        if not options.mission:
            return None
        prompt = join_prompt(options.system_prompt, options.mission)
        args = ["run", prompt, "--format", "json"]
        if options.model and options.model != "default":
            args.extend(["--model", options.model])
        return HeadlessCommandResult(
            binary=self.find_binary(), args=args, output_kind="text",
        )

    def write_hooks_config(
        self,
        workspace_path: str,
        agent_id: str,
        options: HookConfigOptions | None = None,
    ) -> None:
        logger.debug(
            "OpenCode has no hook registration; skipping for agent %s", agent_id,
        )

    def parse_hook_event(self, raw: Any) -> NormalizedHookEvent | None:
        if not isinstance(raw, dict):
            return None
        kind = HookEventKind.coerce(raw.get("kind"))
        if kind is None:
            return None
        tool_name = raw.get("toolName") or raw.get("tool_name")
        tool_input = raw.get("toolInput") or raw.get("tool_input")
        message = raw.get("message")
        return NormalizedHookEvent(
            kind=kind,
            tool_name=tool_name if isinstance(tool_name, str) else None,
            tool_input=tool_input if isinstance(tool_input, dict) else None,
            message=message if isinstance(message, str) else None,
        )

    def tool_verb(self, tool_name: str) -> str | None:
        return TOOL_VERBS.get(tool_name.lower())

    def get_default_permissions(self, kind: AgentKind) -> list[str]:
        if kind == "durable":
            return list(DEFAULT_DURABLE_PERMISSIONS)
        return list(DEFAULT_QUICK_PERMISSIONS)

    async def get_model_options(self) -> list[ModelOption]:
        try:
            output = await probe_output(
                self.find_binary(), "models", timeout=self._probe_timeout,
            )
        except Exception as exc:
            logger.debug("Model probe failed for %s: %s", self.id, exc)
            return list(FALLBACK_MODEL_OPTIONS)
        return parse_model_list(output) or list(FALLBACK_MODEL_OPTIONS)
