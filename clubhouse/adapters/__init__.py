"""Adapters package - bridge between the orchestration core and UI frontends.

Holds the event bus and the surface registry that the hook server fans
normalized events out to.
"""
from __future__ import annotations

__all__ = [
    "EventBus",
    "Surface",
    "SurfaceRegistry",
]

from clubhouse.adapters.event_bus import EventBus
from clubhouse.adapters.surfaces import Surface, SurfaceRegistry
