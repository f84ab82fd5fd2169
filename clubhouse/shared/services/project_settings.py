"""Per-project settings stored in <workspace>/.clubhouse/settings.json.

Only the keys this core reads are modelled; any other keys already in
the file (written by other parts of the application) are preserved on
save.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

SETTINGS_DIR = ".clubhouse"
SETTINGS_FILE = "settings.json"

# Permission presets; each names a provider default-permission set
PERMISSION_TEMPLATES = ("quick", "durable")

# JSON key → dataclass field
_KEY_MAP = {
    "orchestrator": "orchestrator",
    "permissionTemplate": "permission_template",
    "freeAgentMode": "free_agent_mode",
}


def settings_path(workspace_path: str | Path) -> Path:
    return Path(workspace_path) / SETTINGS_DIR / SETTINGS_FILE


def _read_raw(target: Path) -> dict:
    try:
        data = json.loads(target.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, ValueError):
        logger.warning("Failed to read project settings from %s; using defaults", target)
        return {}
    return data if isinstance(data, dict) else {}


@dataclass
class ProjectSettings:
    """Project-level agent settings.

    Attributes:
        orchestrator: Provider id preferred for this workspace, if any.
        permission_template: Permission preset ("quick" or "durable") applied
            to agents spawned without an explicit tool list.
        free_agent_mode: Launch agents with the tool's permission bypass.
    """

    orchestrator: str | None = None
    permission_template: str | None = None
    free_agent_mode: bool = False

    def validate(self) -> None:
        """Drop values of the wrong type."""
        if not isinstance(self.orchestrator, str) or not self.orchestrator:
            self.orchestrator = None
        if self.permission_template not in PERMISSION_TEMPLATES:
            self.permission_template = None
        if not isinstance(self.free_agent_mode, bool):
            self.free_agent_mode = False

    def save(self, workspace_path: str | Path) -> None:
        """Persist settings, keeping unrelated keys already in the file."""
        target = settings_path(workspace_path)
        data = _read_raw(target)
        for key, attr in _KEY_MAP.items():
            value = getattr(self, attr)
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(data, indent=2), encoding="utf-8")
        logger.debug("Saved project settings to %s", target)

    @classmethod
    def load(cls, workspace_path: str | Path) -> ProjectSettings:
        """Load settings, returning defaults if missing/corrupt."""
        data = _read_raw(settings_path(workspace_path))
        settings = cls(**{
            attr: data[key] for key, attr in _KEY_MAP.items() if key in data
        })
        settings.validate()
        return settings
