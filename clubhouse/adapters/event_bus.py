"""Async event bus carrying agent lifecycle and hook events.

The hook server and supervisor publish here; consumers either iterate
``consume()`` or register listener callbacks with ``subscribe()``.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

from clubhouse.adapters.events import HookEventReceived, OrchestratorEvent, dict_to_event
from clubhouse.engine.providers.types import NormalizedHookEvent

logger = logging.getLogger(__name__)

Listener = Callable[[OrchestratorEvent], Any]


class EventBus:
    """Async queue plus listener fan-out for orchestration events."""

    def __init__(self, maxsize: int = 5000) -> None:
        self._queue: asyncio.Queue[OrchestratorEvent] = asyncio.Queue(
            maxsize=maxsize
        )
        self._listeners: list[Listener] = []
        self._closed = False

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it.

        Listeners may be plain functions or coroutine functions.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _notify(self, event: OrchestratorEvent) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "EventBus listener failed for %s", event.event_type,
                )

    async def emit(self, event: OrchestratorEvent) -> None:
        """Publish an event to listeners and the consume() queue."""
        if self._closed:
            return
        await self._notify(event)
        try:
            # Backpressure rather than silent drops, bounded at 30s
            await asyncio.wait_for(self._queue.put(event), timeout=30.0)
        except asyncio.TimeoutError:
            logger.error(
                "EventBus queue blocked for 30s, dropping: %s (queue size: %d)",
                event.event_type,
                self._queue.qsize(),
            )

    async def emit_dict(self, data: dict[str, Any]) -> None:
        """Publish an event given in plain dict form."""
        await self.emit(dict_to_event(data))

    async def emit_hook_event(self, agent_id: str, event: NormalizedHookEvent) -> None:
        await self.emit(HookEventReceived(
            agent_id=agent_id,
            kind=event.kind.value,
            tool_name=event.tool_name,
            tool_input=event.tool_input,
            message=event.message,
            tool_verb=event.tool_verb,
            timestamp=event.timestamp or 0,
        ))

    async def consume(self) -> AsyncIterator[OrchestratorEvent]:
        """Yield events as they arrive. Stops on close()."""
        while not self._closed:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=0.5)
                yield event
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        """Stop the consumer loop permanently."""
        self._closed = True

    def reset(self) -> None:
        """Drain leftover events and re-open the bus."""
        while not self._queue.empty():
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
        self._closed = False
