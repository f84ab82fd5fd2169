"""YAML configuration loader.

Optional file layered over the environment-derived ClubhouseConfig.
When no YAML file exists, env vars alone decide everything.

Example YAML:
    server:
      host: 127.0.0.1
      port: 0
      hook_timeout_seconds: 5

    defaults:
      provider: claude-code
      model: sonnet
      kill_grace_seconds: 5

    providers:
      claude-code:
        command: /opt/claude/bin/claude
        api_key_env: MY_ANTHROPIC_KEY
      opencode:
        enabled: false
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .config import ClubhouseConfig

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "clubhouse.yaml"


@dataclass
class ProviderConfig:
    """Configuration for a single provider."""
    command: str | None = None  # path or name of the CLI binary
    api_key_env: str | None = None
    enabled: bool = True


@dataclass
class OrchestrationConfig:
    """Complete parsed YAML configuration.

    ``server`` and ``defaults`` sections are folded into ``engine``.
    """
    engine: ClubhouseConfig
    providers: dict[str, ProviderConfig] = field(default_factory=dict)
    source: Path | None = None


def find_config_path(explicit: str | Path | None = None, cwd: str | Path | None = None) -> Path | None:
    """Locate the config file.

    Order: explicit path, ``<cwd>/.clubhouse/clubhouse.yaml``,
    ``~/.clubhouse/clubhouse.yaml``. An explicit path is returned even
    when missing so the loader can report it.
    """
    if explicit:
        return Path(explicit)
    candidates = [
        Path(cwd or Path.cwd()) / ".clubhouse" / CONFIG_FILENAME,
        Path.home() / ".clubhouse" / CONFIG_FILENAME,
    ]
    for candidate in candidates:
        if candidate.is_file():
            logger.debug("find_config_path: using %s", candidate)
            return candidate
    return None


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"'{name}' section must be a mapping, got {type(value).__name__}")
    return value


def load_yaml_config(path: str | Path, base: ClubhouseConfig | None = None) -> OrchestrationConfig:
    """Load and parse a YAML config file.

    ``base`` (normally from ``ClubhouseConfig.from_env()``) supplies
    values the file does not set. Raises FileNotFoundError for a missing
    file and ValueError for malformed YAML or wrongly shaped sections.
    """
    path = Path(path)
    logger.info(
        "load_yaml_config: loading config from %s (exists=%s)",
        path, path.exists(),
    )
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error("load_yaml_config: config file not found at %s", path)
        raise
    except yaml.YAMLError as exc:
        logger.error("load_yaml_config: YAML parse error in %s: %s", path, exc)
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ValueError(f"Top level of {path} must be a mapping")

    logger.info(
        "Parsed YAML config %s, sections: %s",
        path.name, ", ".join(sorted(raw.keys())) or "(empty)",
    )

    base = base or ClubhouseConfig()
    server_raw = _section(raw, "server")
    defaults_raw = _section(raw, "defaults")

    engine = ClubhouseConfig(
        host=server_raw.get("host", base.host),
        port=int(server_raw.get("port", base.port)),
        hook_timeout_seconds=int(server_raw.get(
            "hook_timeout_seconds", base.hook_timeout_seconds
        )),
        default_provider=defaults_raw.get("provider", base.default_provider),
        default_model=defaults_raw.get("model", base.default_model),
        probe_timeout_seconds=float(defaults_raw.get(
            "probe_timeout_seconds", base.probe_timeout_seconds
        )),
        exit_wait_seconds=float(defaults_raw.get(
            "exit_wait_seconds", base.exit_wait_seconds
        )),
        kill_grace_seconds=float(defaults_raw.get(
            "kill_grace_seconds", base.kill_grace_seconds
        )),
        save_transcripts=bool(defaults_raw.get(
            "save_transcripts", base.save_transcripts
        )),
        log_level=defaults_raw.get("log_level", base.log_level),
        log_dir=defaults_raw.get("log_dir", base.log_dir),
    )

    providers: dict[str, ProviderConfig] = {}
    for name, cfg in _section(raw, "providers").items():
        cfg = cfg or {}
        if not isinstance(cfg, dict):
            raise ValueError(f"Provider '{name}' config must be a mapping")
        providers[str(name)] = ProviderConfig(
            command=cfg.get("command"),
            api_key_env=cfg.get("api_key_env"),
            enabled=bool(cfg.get("enabled", True)),
        )

    logger.info(
        "load_yaml_config: %d provider override(s), default provider=%s model=%s",
        len(providers), engine.default_provider, engine.default_model,
    )
    return OrchestrationConfig(engine=engine, providers=providers, source=path)
