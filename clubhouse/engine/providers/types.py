"""Value types shared by every provider.

These describe the provider contract: spawn options in, command lines
and normalized hook events out. Providers themselves are stateless.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Literal

AgentKind = Literal["quick", "durable"]
HeadlessOutputKind = Literal["stream-json", "text"]


class HookEventKind(str, enum.Enum):
    """Closed set of normalized hook event kinds."""
    PRE_TOOL = "pre_tool"
    POST_TOOL = "post_tool"
    TOOL_ERROR = "tool_error"
    STOP = "stop"
    NOTIFICATION = "notification"
    PERMISSION_REQUEST = "permission_request"

    @classmethod
    def coerce(cls, value: Any) -> HookEventKind | None:
        """Return the matching kind, or None for anything outside the set."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class ProviderConventions:
    """File and directory layout a tool expects inside a workspace."""
    config_dir: str
    local_instructions_file: str
    legacy_instructions_file: str
    mcp_config_file: str
    skills_dir: str
    agent_templates_dir: str
    local_settings_file: str


@dataclass(frozen=True)
class ProviderCapabilities:
    headless: bool
    structured_output: bool
    hooks: bool
    session_resume: bool
    permissions: bool

    def to_dict(self) -> dict[str, bool]:
        return {
            "headless": self.headless,
            "structured_output": self.structured_output,
            "hooks": self.hooks,
            "session_resume": self.session_resume,
            "permissions": self.permissions,
        }


@dataclass
class SpawnOptions:
    """Abstract intent for launching an agent.

    Each provider maps these onto its own flag syntax.
    """
    cwd: str
    model: str | None = None
    mission: str | None = None
    system_prompt: str | None = None
    allowed_tools: list[str] | None = None
    disallowed_tools: list[str] | None = None
    free_agent_mode: bool = False
    resume: bool = False
    agent_id: str | None = None


@dataclass
class HeadlessOptions(SpawnOptions):
    output_format: str | None = None
    no_session_persistence: bool = False


@dataclass
class SpawnCommand:
    binary: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] | None = None


@dataclass
class HeadlessCommandResult(SpawnCommand):
    output_kind: HeadlessOutputKind = "stream-json"


@dataclass
class ModelOption:
    id: str
    label: str


@dataclass
class NormalizedHookEvent:
    """A tool-native hook payload mapped onto the closed kind set.

    ``tool_verb`` and ``timestamp`` are filled in by the ingestion
    server at fan-out time.
    """
    kind: HookEventKind
    tool_name: str | None = None
    tool_input: dict[str, Any] | None = None
    message: str | None = None
    tool_verb: str | None = None
    timestamp: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "toolName": self.tool_name,
            "toolInput": self.tool_input,
            "message": self.message,
            "toolVerb": self.tool_verb,
            "timestamp": self.timestamp,
        }


@dataclass
class HookConfigOptions:
    """Where spawned tools should deliver hook callbacks."""
    hook_url: str
    timeout_seconds: int = 5


@dataclass
class QuickSummary:
    summary: str | None
    files_modified: list[str] = field(default_factory=list)
