"""Agent registration table.

Maps agent id to workspace, optional provider override and the
per-spawn hook nonce. The hook server reads it from request handlers
while the supervisor inserts and removes entries; a lock keeps those
operations atomic. Removing an entry revokes the nonce.
"""
from __future__ import annotations

import logging
import secrets
import threading
import time
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


def generate_nonce() -> str:
    return secrets.token_urlsafe(32)


@dataclass(frozen=True)
class AgentRegistration:
    agent_id: str
    workspace_path: str
    provider_id: str | None = None
    nonce: str = field(default_factory=generate_nonce, repr=False)
    created_at: float = field(default_factory=time.time)


class AgentRegistry:
    """Thread-safe agent_id → AgentRegistration table."""

    def __init__(self) -> None:
        self._entries: dict[str, AgentRegistration] = {}
        self._lock = threading.Lock()

    def register(
        self,
        agent_id: str,
        workspace_path: str,
        provider_id: str | None = None,
        nonce: str | None = None,
    ) -> AgentRegistration:
        """Create (or replace) the registration for ``agent_id``.

        Re-registering an id issues a new nonce, so hooks from the
        previous process are rejected.
        """
        registration = AgentRegistration(
            agent_id=agent_id,
            workspace_path=workspace_path,
            provider_id=provider_id,
            nonce=nonce or generate_nonce(),
        )
        with self._lock:
            replaced = agent_id in self._entries
            self._entries[agent_id] = registration
        if replaced:
            logger.info("Re-registered agent %s (nonce rotated)", agent_id)
        else:
            logger.debug("Registered agent %s in %s", agent_id, workspace_path)
        return registration

    def get(self, agent_id: str) -> AgentRegistration | None:
        with self._lock:
            return self._entries.get(agent_id)

    def remove(self, agent_id: str) -> AgentRegistration | None:
        with self._lock:
            registration = self._entries.pop(agent_id, None)
        if registration is not None:
            logger.debug("Unregistered agent %s", agent_id)
        return registration

    def nonce_for(self, agent_id: str) -> str | None:
        registration = self.get(agent_id)
        return registration.nonce if registration else None

    def list_ids(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, agent_id: object) -> bool:
        with self._lock:
            return agent_id in self._entries
