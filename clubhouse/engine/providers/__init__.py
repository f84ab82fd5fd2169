"""Provider abstraction over the supported coding-agent CLIs."""
from .base import Provider
from .registry import DEFAULT_PROVIDER_ORDER, ProviderRegistry, build_provider_registry
from .claude_code_provider import ClaudeCodeProvider
from .copilot_cli_provider import CopilotCliProvider
from .codex_cli_provider import CodexCliProvider
from .opencode_provider import OpenCodeProvider
from .types import (
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

__all__ = [
    "Provider",
    "ProviderRegistry",
    "DEFAULT_PROVIDER_ORDER",
    "build_provider_registry",
    "ClaudeCodeProvider",
    "CopilotCliProvider",
    "CodexCliProvider",
    "OpenCodeProvider",
    "HeadlessCommandResult",
    "HeadlessOptions",
    "HookConfigOptions",
    "HookEventKind",
    "ModelOption",
    "NormalizedHookEvent",
    "ProviderCapabilities",
    "ProviderConventions",
    "SpawnCommand",
    "SpawnOptions",
]
