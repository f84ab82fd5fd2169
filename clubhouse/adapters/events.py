"""Event types published on the internal event bus.

Each event is a typed dataclass; ``event_to_dict``/``dict_to_event``
convert to and from the plain dict form used by callbacks and JSON.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class OrchestratorEvent:
    """Base event from the orchestration core."""
    event_type: str = ""
    agent_id: str = ""


@dataclass
class HookEventReceived(OrchestratorEvent):
    """A normalized hook event accepted by the ingestion server."""
    event_type: str = "hook_event"
    kind: str = ""
    tool_name: str | None = None
    tool_input: dict[str, Any] | None = None
    message: str | None = None
    tool_verb: str | None = None
    timestamp: int = 0


@dataclass
class AgentSpawned(OrchestratorEvent):
    event_type: str = "agent_spawned"
    provider_id: str = ""
    workspace_path: str = ""
    pid: int | None = None
    headless: bool = False


@dataclass
class AgentExited(OrchestratorEvent):
    event_type: str = "agent_exited"
    exit_code: int | None = None
    # Quick agents only: contents of the summary file they left behind
    summary: str | None = None
    files_modified: list[str] | None = None


@dataclass
class AgentKilled(OrchestratorEvent):
    event_type: str = "agent_killed"


# Map of event type strings to dataclass constructors
_EVENT_MAP: dict[str, type[OrchestratorEvent]] = {
    "hook_event": HookEventReceived,
    "agent_spawned": AgentSpawned,
    "agent_exited": AgentExited,
    "agent_killed": AgentKilled,
}


def event_to_dict(event: OrchestratorEvent) -> dict[str, Any]:
    """Convert a typed event dataclass to a plain dict for JSON serialization."""
    d: dict[str, Any] = {}
    for f in event.__dataclass_fields__:
        val = getattr(event, f)
        if val is not None:
            d[f] = val
    # Callbacks and the wire form use "event" rather than "event_type"
    if "event_type" in d:
        d["event"] = d.pop("event_type")
    return d


def dict_to_event(data: dict[str, Any]) -> OrchestratorEvent:
    """Convert a plain event dict to a typed event dataclass."""
    event_type = data.get("event", "")
    cls = _EVENT_MAP.get(event_type, OrchestratorEvent)
    valid_fields = {f for f in cls.__dataclass_fields__}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    if "event" in data and "event_type" not in filtered:
        filtered["event_type"] = data["event"]
    return cls(**filtered)
