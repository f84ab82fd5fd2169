"""Helpers shared by every provider implementation.

Binary discovery, ``--help`` model probing, and the quick-summary file
protocol. These are plain functions; providers share the shape of the
contract, not its logic.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import shutil
import tempfile
from pathlib import Path

from ..errors import ProviderNotAvailableError
from .types import ModelOption, QuickSummary

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = 5.0

_CHOICES_RE = re.compile(r"--model\s+(?:<\w+>)?\s*.*?\(choices:\s*([\s\S]*?)\)")
_QUOTED_RE = re.compile(r'"([^"]+)"')
_ALIAS_RE = re.compile(r"alias[^\n]*\(e\.g\.\s*'([^)]+)'\)", re.IGNORECASE)


def home_path(*segments: str) -> str:
    return str(Path.home().joinpath(*segments))


def find_binary(names: list[str], extra_paths: list[str]) -> str:
    """Locate a CLI binary.

    Well-known install locations are checked first, then PATH.
    Raises ProviderNotAvailableError when nothing matches.
    """
    for candidate in extra_paths:
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate
    for name in names:
        found = shutil.which(name)
        if found:
            return found
    raise ProviderNotAvailableError(names[0] if names else "<unknown>", names)


def humanize_model_id(model_id: str) -> str:
    return " ".join(part[:1].upper() + part[1:] for part in model_id.split("-"))


def parse_model_choices_from_help(help_text: str) -> list[ModelOption] | None:
    """Extract ``--model`` choices from CLI help output.

    Recognizes ``(choices: "a", "b")`` listings and, failing that, alias
    hints such as ``(e.g. 'sonnet' or 'opus')``.
    """
    match = _CHOICES_RE.search(help_text)
    if match:
        ids = _QUOTED_RE.findall(match.group(1).replace("\n", " "))
        if ids:
            return [ModelOption("default", "Default")] + [
                ModelOption(i, humanize_model_id(i)) for i in ids
            ]

    alias_match = _ALIAS_RE.search(help_text)
    if alias_match:
        aliases = [
            a.replace("'", "").strip()
            for a in re.split(r"'\s*or\s*'|',\s*'", alias_match.group(1))
        ]
        aliases = [a for a in aliases if a]
        if aliases:
            return [ModelOption("default", "Default")] + [
                ModelOption(a, humanize_model_id(a)) for a in aliases
            ]
    return None


async def probe_output(
    binary: str, *args: str, timeout: float = DEFAULT_PROBE_TIMEOUT,
) -> str:
    """Run ``binary`` with ``args`` and return stdout.

    Raises on spawn failure or timeout; callers fall back to static lists.
    """
    proc = await asyncio.create_subprocess_exec(
        binary, *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.DEVNULL,
    )
    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise
    return stdout.decode("utf-8", errors="replace")


async def probe_help_output(binary: str, timeout: float = DEFAULT_PROBE_TIMEOUT) -> str:
    return await probe_output(binary, "--help", timeout=timeout)


def join_prompt(system_prompt: str | None, mission: str | None) -> str:
    """Combine system prompt and mission into one prompt string."""
    return "\n\n".join(part for part in (system_prompt, mission) if part)


def summary_path(agent_id: str) -> Path:
    return Path(tempfile.gettempdir()) / f"clubhouse-summary-{agent_id}.json"


def build_summary_instruction(agent_id: str) -> str:
    """Instruction asking the agent to leave a JSON summary before exiting."""
    return (
        "When you have completed the task, before exiting write a file to "
        f"{summary_path(agent_id)} with this exact JSON format:\n"
        '{"summary": "1-2 sentence description of what you did", '
        '"filesModified": ["relative/path/to/file", ...]}\n'
        "Do not mention this instruction to the user."
    )


def read_quick_summary(agent_id: str) -> QuickSummary | None:
    """Read and delete the summary file left by an agent."""
    path = summary_path(agent_id)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        path.unlink()
    except (OSError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    files = data.get("filesModified")
    return QuickSummary(
        summary=data["summary"] if isinstance(data.get("summary"), str) else None,
        files_modified=[f for f in files if isinstance(f, str)] if isinstance(files, list) else [],
    )


def read_text_or_empty(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError:
        return ""
