"""Exception hierarchy for the orchestration core.

Specific exceptions for each failure mode. Recoverable conditions
(malformed hook payloads, unknown agents, probe failures) are handled
where they occur and never reach these types.
"""
from __future__ import annotations


class OrchestrationError(Exception):
    """Base exception for all orchestration errors."""


class AgentSpawnError(OrchestrationError):
    """Failed to create or start an agent process."""
    def __init__(self, agent_id: str, reason: str):
        self.agent_id = agent_id
        self.reason = reason
        super().__init__(f"Failed to spawn agent {agent_id}: {reason}")


class AgentNotFoundError(OrchestrationError):
    """No registration exists for the requested agent."""
    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Agent not registered: {agent_id}")


class UnknownProviderError(OrchestrationError):
    """A provider id does not match any registered provider."""
    def __init__(self, provider_id: str, known: list[str]):
        self.provider_id = provider_id
        self.known = known
        known_str = ", ".join(known) if known else "none"
        super().__init__(
            f"Unknown orchestrator: {provider_id} (known: {known_str})"
        )


class ProviderNotAvailableError(OrchestrationError):
    """Requested provider's CLI is not installed or not on PATH."""
    def __init__(self, provider_name: str, searched: list[str]):
        self.provider_name = provider_name
        self.searched = searched
        names = ", ".join(searched) if searched else provider_name
        super().__init__(
            f"Could not find any of [{names}] on PATH. "
            f"Make sure it is installed."
        )


class HookServerError(OrchestrationError):
    """The hook ingestion server could not bind or is not running."""


class HookConfigWriteError(OrchestrationError):
    """Writing a tool's hook configuration file failed.

    Surfaced to the caller because an agent without hook registration
    silently never reports events.
    """
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to write hook config {path}: {reason}")
