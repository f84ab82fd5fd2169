"""Abstract base for CLI agent providers.

Each provider adapts one external coding-agent CLI (Claude Code,
Copilot CLI, Codex CLI, OpenCode). The supervisor asks a provider for
command lines and hook registration; the hook server asks it what a
raw hook payload means. Providers hold no per-agent state.
"""
from __future__ import annotations

import abc
import logging
import os
from pathlib import Path
from typing import Any

from ..errors import ProviderNotAvailableError
from . import shared
from .types import (
    AgentKind,
    HeadlessCommandResult,
    HeadlessOptions,
    HookConfigOptions,
    ModelOption,
    NormalizedHookEvent,
    ProviderCapabilities,
    ProviderConventions,
    QuickSummary,
    SpawnCommand,
    SpawnOptions,
)

logger = logging.getLogger(__name__)


class Provider(abc.ABC):
    """Abstract provider interface.

    Implementations:
    - ClaudeCodeProvider: ``claude``
    - CopilotCliProvider: ``copilot``
    - CodexCliProvider: ``codex``
    - OpenCodeProvider: ``opencode``
    """

    id: str
    display_name: str
    short_name: str
    badge: str | None = None
    conventions: ProviderConventions
    binary_names: tuple[str, ...] = ()
    # Variable the CLI reads its API key from, when it accepts one.
    api_key_var: str | None = None

    def __init__(
        self,
        command: str | None = None,
        api_key_env: str | None = None,
        probe_timeout: float = shared.DEFAULT_PROBE_TIMEOUT,
    ) -> None:
        self._command = command
        self._api_key_env = api_key_env
        self._probe_timeout = probe_timeout

    def _build_env(self) -> dict[str, str] | None:
        """Extra subprocess environment carrying an optional API key.

        Auth otherwise relies on the CLI's own cached login.
        """
        if self._api_key_env and self.api_key_var:
            key = os.environ.get(self._api_key_env)
            if key:
                return {self.api_key_var: key}
        return None

    def extra_binary_paths(self) -> list[str]:
        """Install locations checked before PATH."""
        return []

    def find_binary(self) -> str:
        """Resolve the CLI binary, preferring an explicit command override."""
        if self._command:
            if os.path.isabs(self._command) and os.path.isfile(self._command):
                return self._command
            try:
                return shared.find_binary([self._command], [])
            except ProviderNotAvailableError:
                logger.debug(
                    "Command %s not found; falling back to defaults for %s",
                    self._command, self.id,
                )
        return shared.find_binary(list(self.binary_names), self.extra_binary_paths())

    def check_availability(self) -> tuple[bool, str | None]:
        """Return (available, error message)."""
        try:
            self.find_binary()
        except ProviderNotAvailableError as exc:
            return False, str(exc)
        return True, None

    def is_available(self) -> bool:
        return self.check_availability()[0]

    @abc.abstractmethod
    def get_capabilities(self) -> ProviderCapabilities:
        """Static capability flags for this tool."""

    @abc.abstractmethod
    def build_spawn_command(self, options: SpawnOptions) -> SpawnCommand:
        """Command line for an interactive session."""

    @abc.abstractmethod
    def build_headless_command(
        self, options: HeadlessOptions,
    ) -> HeadlessCommandResult | None:
        """Command line for a single-shot, non-interactive run.

        Returns None when no mission was supplied.
        """

    @abc.abstractmethod
    def write_hooks_config(
        self,
        workspace_path: str,
        agent_id: str,
        options: HookConfigOptions | None = None,
    ) -> None:
        """Merge hook callback registration into the tool's config file."""

    @abc.abstractmethod
    def parse_hook_event(self, raw: Any) -> NormalizedHookEvent | None:
        """Map a tool-native payload to a normalized event, or None."""

    @abc.abstractmethod
    def tool_verb(self, tool_name: str) -> str | None:
        """Human-readable gerund phrase for a tool, if known."""

    @abc.abstractmethod
    def get_default_permissions(self, kind: AgentKind) -> list[str]:
        """Default allowed-tool list in the tool's own permission syntax."""

    @abc.abstractmethod
    async def get_model_options(self) -> list[ModelOption]:
        """Models offered by the installed CLI, with a static fallback."""

    async def _probe_help_models(
        self, fallback: list[ModelOption],
    ) -> list[ModelOption]:
        try:
            binary = self.find_binary()
            help_text = await shared.probe_help_output(
                binary, timeout=self._probe_timeout,
            )
        except Exception as exc:
            logger.debug("Model probe failed for %s: %s", self.id, exc)
            return list(fallback)
        parsed = shared.parse_model_choices_from_help(help_text)
        return parsed if parsed else list(fallback)

    def get_exit_command(self) -> str:
        return "/exit\r"

    def hooks_config_path(self, workspace_path: str) -> Path:
        return (
            Path(workspace_path)
            / self.conventions.config_dir
            / self.conventions.local_settings_file
        )

    def read_instructions(self, worktree_path: str) -> str:
        """Local instructions file, falling back to the legacy location."""
        root = Path(worktree_path)
        local = root / self.conventions.config_dir / self.conventions.local_instructions_file
        content = shared.read_text_or_empty(local)
        if content:
            return content
        return shared.read_text_or_empty(root / self.conventions.legacy_instructions_file)

    def write_instructions(self, worktree_path: str, content: str) -> None:
        target = (
            Path(worktree_path)
            / self.conventions.config_dir
            / self.conventions.local_instructions_file
        )
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    def build_summary_instruction(self, agent_id: str) -> str:
        return shared.build_summary_instruction(agent_id)

    def read_quick_summary(self, agent_id: str) -> QuickSummary | None:
        return shared.read_quick_summary(agent_id)

    def describe(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "short_name": self.short_name,
            "badge": self.badge,
        }
