"""Hook configuration writer.

Merges this system's callback registration into a tool's native hook
config file without clobbering anything the user wrote there.

Entries written by us are recognized by a stable signature: the hook
command references the ``${CLUBHOUSE_AGENT_ID}`` placeholder, or posts
to a loopback ``http://127.0.0.1:<port>/hook/`` URL. Re-running the
writer replaces those entries instead of accumulating duplicates.

The command never contains the nonce itself. Agent id and nonce are
environment references resolved inside the spawned process, so one
workspace file serves every agent launched there.
"""
from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Callable

from .errors import HookConfigWriteError

logger = logging.getLogger(__name__)

AGENT_ID_ENV = "CLUBHOUSE_AGENT_ID"
NONCE_ENV = "CLUBHOUSE_HOOK_NONCE"
HOOK_URL_ENV = "CLUBHOUSE_HOOK_URL"
NONCE_HEADER = "X-Clubhouse-Nonce"

_AGENT_PLACEHOLDER = "${" + AGENT_ID_ENV + "}"
_LOOPBACK_HOOK_RE = re.compile(r"https?://127\.0\.0\.1:\d+/hook/")


def build_hook_command(hook_url: str, event_hint: str | None = None) -> str:
    """Shell command that forwards the hook's stdin payload to the server.

    ``event_hint`` is appended as a trailing path segment for tools that
    omit the event name from the payload body.
    """
    url = f"{hook_url.rstrip('/')}/{_AGENT_PLACEHOLDER}"
    if event_hint:
        url = f"{url}/{event_hint}"
    return (
        f"cat | curl -s -X POST {url} "
        f"-H 'Content-Type: application/json' "
        f'-H "{NONCE_HEADER}: ${{{NONCE_ENV}}}" '
        f"--data-binary @- || true"
    )


def is_own_command(command: Any) -> bool:
    """True when a hook command string was written by this system."""
    if not isinstance(command, str):
        return False
    return _AGENT_PLACEHOLDER in command or bool(_LOOPBACK_HOOK_RE.search(command))


def merge_hook_entry(
    existing_entries: Any,
    new_entry: Any,
    is_own_entry: Callable[[Any], bool],
) -> list[Any]:
    """Replace stale self-authored entries with ``new_entry``.

    Foreign entries keep their relative order; the fresh entry is
    appended last. A non-list ``existing_entries`` is treated as empty.
    """
    if not isinstance(existing_entries, list):
        existing_entries = []
    kept = [entry for entry in existing_entries if not is_own_entry(entry)]
    kept.append(new_entry)
    return kept


def merge_hooks_section(
    existing_hooks: Any,
    own_entries: dict[str, Any],
    is_own_entry: Callable[[Any], bool],
) -> dict[str, Any]:
    """Apply ``merge_hook_entry`` for every event category.

    Categories we do not register for are carried over untouched.
    """
    merged: dict[str, Any] = dict(existing_hooks) if isinstance(existing_hooks, dict) else {}
    for category, entry in own_entries.items():
        merged[category] = merge_hook_entry(merged.get(category), entry, is_own_entry)
    return merged


def read_json_config(path: Path) -> dict[str, Any]:
    """Load a JSON config object; missing or corrupt files read as empty."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable hook config %s: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring non-object hook config %s", path)
        return {}
    return data


def write_json_config(path: Path, data: dict[str, Any]) -> None:
    """Serialize ``data`` to ``path``, creating parent directories."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    except OSError as exc:
        raise HookConfigWriteError(str(path), str(exc)) from exc
