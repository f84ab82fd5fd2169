"""Mapping of headless CLI output onto normalized hook events.

Headless runs do not fire hooks, so status comes from stdout instead.

Claude Code ``stream-json`` with ``--verbose`` emits conversation-level
lines::

    {"type": "assistant", "message": {"content": [{"type": "tool_use", ...}]}}
    {"type": "user", "message": {"content": [{"type": "tool_result", ...}]}}
    {"type": "result", "result": "...", "duration_ms": ...}

Older builds emit ``content_block_start``/``content_block_stop`` pairs
instead; both are handled. Text-mode tools only produce a start notice
and a final ``stop`` carrying the (truncated) output.
"""
from __future__ import annotations

import json
import logging
from typing import Any

from .providers.types import HookEventKind, NormalizedHookEvent

logger = logging.getLogger(__name__)

TEXT_MODE_NOTICE = "Agent running (text output, live events unavailable)"
STOP_MESSAGE_LIMIT = 500


def parse_json_line(line: str) -> dict[str, Any] | None:
    line = line.strip()
    if not line:
        return None
    try:
        value = json.loads(line)
    except ValueError:
        logger.debug("Skipping non-JSON headless line: %.200s", line)
        return None
    return value if isinstance(value, dict) else None


def _content_blocks(event: dict[str, Any]) -> list[dict[str, Any]]:
    message = event.get("message")
    if not isinstance(message, dict):
        return []
    content = message.get("content")
    if not isinstance(content, list):
        return []
    return [block for block in content if isinstance(block, dict)]


def _tool_result_text(block: dict[str, Any]) -> str | None:
    content = block.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            part.get("text") for part in content
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        ]
        return "\n".join(parts) or None
    return None


class StreamJsonMapper:
    """Stateful stream-json → NormalizedHookEvent translator.

    State is the set of open tool blocks in the legacy streaming format,
    keyed by content block index.
    """

    def __init__(self) -> None:
        self._active_tool_blocks: dict[int, str] = {}

    def map(self, event: dict[str, Any]) -> list[NormalizedHookEvent]:
        results: list[NormalizedHookEvent] = []
        event_type = event.get("type")

        if event_type == "assistant":
            for block in _content_blocks(event):
                if block.get("type") == "tool_use" and isinstance(block.get("name"), str):
                    tool_input = block.get("input")
                    results.append(NormalizedHookEvent(
                        kind=HookEventKind.PRE_TOOL,
                        tool_name=block["name"],
                        tool_input=tool_input if isinstance(tool_input, dict) else None,
                    ))

        elif event_type == "user":
            for block in _content_blocks(event):
                if block.get("type") != "tool_result":
                    continue
                if block.get("is_error"):
                    results.append(NormalizedHookEvent(
                        kind=HookEventKind.TOOL_ERROR,
                        message=_tool_result_text(block),
                    ))
                else:
                    results.append(NormalizedHookEvent(kind=HookEventKind.POST_TOOL))

        elif event_type == "result":
            result = event.get("result")
            results.append(NormalizedHookEvent(
                kind=HookEventKind.STOP,
                message=result if isinstance(result, str) else None,
            ))

        # Legacy streaming format
        index = event.get("index")
        if not isinstance(index, int):
            index = -1
        block = event.get("content_block")
        if event_type == "content_block_start" and isinstance(block, dict) \
                and block.get("type") == "tool_use":
            name = block.get("name") or "unknown"
            if index >= 0:
                self._active_tool_blocks[index] = name
            results.append(NormalizedHookEvent(kind=HookEventKind.PRE_TOOL, tool_name=name))
        elif event_type == "content_block_stop" and index in self._active_tool_blocks:
            name = self._active_tool_blocks.pop(index)
            results.append(NormalizedHookEvent(kind=HookEventKind.POST_TOOL, tool_name=name))

        return results


def text_mode_start_event() -> NormalizedHookEvent:
    return NormalizedHookEvent(kind=HookEventKind.NOTIFICATION, message=TEXT_MODE_NOTICE)


def text_mode_stop_event(output: str) -> NormalizedHookEvent:
    return NormalizedHookEvent(
        kind=HookEventKind.STOP,
        message=output.strip()[:STOP_MESSAGE_LIMIT],
    )


def stderr_event(line: str) -> NormalizedHookEvent:
    return NormalizedHookEvent(kind=HookEventKind.NOTIFICATION, message=line.strip())
