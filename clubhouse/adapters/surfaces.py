"""UI surfaces that receive fanned-out hook events.

A surface is any window or frontend connection able to accept a message
on a named channel. The desktop shell owns the real implementations;
this module only tracks them and broadcasts.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

HOOK_EVENT_CHANNEL = "agent:hook-event"


@runtime_checkable
class Surface(Protocol):
    def is_destroyed(self) -> bool: ...

    def is_focused(self) -> bool: ...

    def send(self, channel: str, agent_id: str, payload: dict[str, Any]) -> None: ...


class SurfaceRegistry:
    """Set of live surfaces, in registration order."""

    def __init__(self) -> None:
        self._surfaces: list[Surface] = []
        self._lock = threading.Lock()

    def add(self, surface: Surface) -> None:
        with self._lock:
            if surface not in self._surfaces:
                self._surfaces.append(surface)

    def remove(self, surface: Surface) -> None:
        with self._lock:
            if surface in self._surfaces:
                self._surfaces.remove(surface)

    def all(self) -> list[Surface]:
        """Live surfaces; destroyed ones are pruned as a side effect."""
        with self._lock:
            self._surfaces = [s for s in self._surfaces if not s.is_destroyed()]
            return list(self._surfaces)

    def focused(self) -> Surface | None:
        for surface in self.all():
            if surface.is_focused():
                return surface
        return None

    def others(self) -> list[Surface]:
        """Live surfaces other than the focused one."""
        focused = self.focused()
        return [s for s in self.all() if s is not focused]

    def broadcast(self, channel: str, agent_id: str, payload: dict[str, Any]) -> int:
        """Send to every live surface; returns how many received it.

        A failing surface is logged and skipped.
        """
        delivered = 0
        for surface in self.all():
            try:
                surface.send(channel, agent_id, payload)
                delivered += 1
            except Exception:
                logger.exception("Surface send failed on %s for agent %s", channel, agent_id)
        return delivered

    def __len__(self) -> int:
        return len(self.all())
