"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via CLUBHOUSE_* env vars.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


def _default_log_dir() -> str:
    return str(Path.home() / ".clubhouse" / "logs")


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").lower() in {"1", "true", "yes"}


@dataclass
class ClubhouseConfig:
    """Orchestration core configuration."""

    # Hook ingestion server. Port 0 lets the OS pick a free port.
    host: str = "127.0.0.1"
    port: int = 0
    # Per-hook curl timeout written into tool configs.
    hook_timeout_seconds: int = 5

    # Provider used when neither the agent nor the workspace names one.
    default_provider: str | None = None
    # Model passed to agents spawned without one.
    default_model: str | None = None
    probe_timeout_seconds: float = 5.0

    # Process supervision
    exit_wait_seconds: float = 2.0
    kill_grace_seconds: float = 5.0
    # Headless transcripts are written under log_dir/transcripts.
    save_transcripts: bool = True

    # Logging
    log_level: str = "INFO"
    log_dir: str = ""

    def __post_init__(self) -> None:
        if not self.log_dir:
            self.log_dir = _default_log_dir()

    @property
    def transcript_dir(self) -> Path:
        return Path(self.log_dir) / "transcripts"

    @classmethod
    def from_env(cls) -> ClubhouseConfig:
        """Load configuration from CLUBHOUSE_* environment variables."""
        overrides = {
            k: v for k, v in os.environ.items()
            if k.startswith("CLUBHOUSE_")
            # Per-agent variables set on spawned children, not config
            and k not in {"CLUBHOUSE_AGENT_ID", "CLUBHOUSE_HOOK_NONCE", "CLUBHOUSE_HOOK_URL"}
        }
        if overrides:
            logger.info(
                "ClubhouseConfig.from_env: CLUBHOUSE_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(overrides.items())),
            )
        else:
            logger.debug(
                "ClubhouseConfig.from_env: no CLUBHOUSE_* env vars set, using defaults"
            )

        config = cls(
            host=os.getenv("CLUBHOUSE_HOST", cls.host),
            port=int(os.getenv("CLUBHOUSE_PORT", str(cls.port))),
            hook_timeout_seconds=int(os.getenv(
                "CLUBHOUSE_HOOK_TIMEOUT", str(cls.hook_timeout_seconds)
            )),
            default_provider=os.getenv("CLUBHOUSE_DEFAULT_PROVIDER") or None,
            default_model=os.getenv("CLUBHOUSE_DEFAULT_MODEL") or None,
            probe_timeout_seconds=float(os.getenv(
                "CLUBHOUSE_PROBE_TIMEOUT", str(cls.probe_timeout_seconds)
            )),
            exit_wait_seconds=float(os.getenv(
                "CLUBHOUSE_EXIT_WAIT", str(cls.exit_wait_seconds)
            )),
            kill_grace_seconds=float(os.getenv(
                "CLUBHOUSE_KILL_GRACE", str(cls.kill_grace_seconds)
            )),
            save_transcripts=not _env_flag("CLUBHOUSE_NO_TRANSCRIPTS"),
            log_level=os.getenv("CLUBHOUSE_LOG_LEVEL", cls.log_level),
            log_dir=os.getenv("CLUBHOUSE_LOG_DIR", ""),
        )
        logger.info(
            "ClubhouseConfig.from_env: host=%s port=%d default_provider=%s log_level=%s",
            config.host, config.port, config.default_provider, config.log_level,
        )
        return config
