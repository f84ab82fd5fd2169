"""Tests for env config, YAML config and project settings."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from clubhouse.engine.config import ClubhouseConfig
from clubhouse.engine.yaml_config import find_config_path, load_yaml_config
from clubhouse.shared.services.project_settings import ProjectSettings, settings_path


class TestClubhouseConfig:

    def test_defaults(self):
        config = ClubhouseConfig()
        assert config.host == "127.0.0.1"
        assert config.port == 0
        assert config.default_provider is None
        assert config.log_dir.endswith(str(Path(".clubhouse") / "logs"))
        assert config.transcript_dir == Path(config.log_dir) / "transcripts"

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CLUBHOUSE_PORT", "5555")
        monkeypatch.setenv("CLUBHOUSE_DEFAULT_PROVIDER", "opencode")
        monkeypatch.setenv("CLUBHOUSE_DEFAULT_MODEL", "gpt-5")
        monkeypatch.setenv("CLUBHOUSE_KILL_GRACE", "1.5")
        monkeypatch.setenv("CLUBHOUSE_NO_TRANSCRIPTS", "true")
        monkeypatch.setenv("CLUBHOUSE_LOG_DIR", str(tmp_path))
        config = ClubhouseConfig.from_env()
        assert config.port == 5555
        assert config.default_provider == "opencode"
        assert config.default_model == "gpt-5"
        assert config.kill_grace_seconds == 1.5
        assert config.save_transcripts is False
        assert config.log_dir == str(tmp_path)

    def test_from_env_defaults(self, monkeypatch):
        for key in (
            "CLUBHOUSE_PORT", "CLUBHOUSE_DEFAULT_PROVIDER",
            "CLUBHOUSE_DEFAULT_MODEL", "CLUBHOUSE_NO_TRANSCRIPTS",
        ):
            monkeypatch.delenv(key, raising=False)
        config = ClubhouseConfig.from_env()
        assert config.port == 0
        assert config.default_provider is None
        assert config.default_model is None
        assert config.save_transcripts is True


class TestYamlConfig:

    def test_load_full(self, tmp_path):
        path = tmp_path / "clubhouse.yaml"
        path.write_text(
            "server:\n"
            "  port: 7001\n"
            "defaults:\n"
            "  provider: codex-cli\n"
            "  model: gpt-5\n"
            "  kill_grace_seconds: 2\n"
            "providers:\n"
            "  claude-code:\n"
            "    command: /opt/claude\n"
            "    api_key_env: TEAM_KEY\n"
            "  opencode:\n"
            "    enabled: false\n"
        )
        orch = load_yaml_config(path, base=ClubhouseConfig(host="0.0.0.0"))
        assert orch.engine.port == 7001
        assert orch.engine.host == "0.0.0.0"
        assert orch.engine.default_provider == "codex-cli"
        assert orch.engine.kill_grace_seconds == 2.0
        assert orch.engine.default_model == "gpt-5"
        assert orch.providers["claude-code"].command == "/opt/claude"
        assert orch.providers["claude-code"].api_key_env == "TEAM_KEY"
        assert orch.providers["opencode"].enabled is False
        assert orch.source == path

    def test_empty_file(self, tmp_path):
        path = tmp_path / "clubhouse.yaml"
        path.write_text("")
        orch = load_yaml_config(path)
        assert orch.providers == {}
        assert orch.engine.port == 0

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "clubhouse.yaml"
        path.write_text("server: [unclosed\n")
        with pytest.raises(ValueError):
            load_yaml_config(path)

    def test_wrong_section_shape(self, tmp_path):
        path = tmp_path / "clubhouse.yaml"
        path.write_text("providers:\n  - claude-code\n")
        with pytest.raises(ValueError):
            load_yaml_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_yaml_config(tmp_path / "absent.yaml")

    def test_find_config_path(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path / "home"))
        assert find_config_path(None, tmp_path) is None
        local = tmp_path / ".clubhouse" / "clubhouse.yaml"
        local.parent.mkdir()
        local.write_text("")
        assert find_config_path(None, tmp_path) == local
        assert find_config_path("other.yaml", tmp_path) == Path("other.yaml")


class TestProjectSettings:

    def test_missing_returns_defaults(self, tmp_path):
        settings = ProjectSettings.load(tmp_path)
        assert settings == ProjectSettings()

    def test_corrupt_returns_defaults(self, tmp_path):
        target = settings_path(tmp_path)
        target.parent.mkdir()
        target.write_text("{{{")
        assert ProjectSettings.load(tmp_path).orchestrator is None

    def test_round_trip_preserves_unrelated_keys(self, tmp_path):
        target = settings_path(tmp_path)
        target.parent.mkdir()
        target.write_text(json.dumps({"theme": "dark", "orchestrator": "opencode"}))

        settings = ProjectSettings.load(tmp_path)
        assert settings.orchestrator == "opencode"
        settings.free_agent_mode = True
        settings.orchestrator = None
        settings.save(tmp_path)

        data = json.loads(target.read_text())
        assert data == {"theme": "dark", "freeAgentMode": True}

    def test_wrong_types_dropped(self, tmp_path):
        target = settings_path(tmp_path)
        target.parent.mkdir()
        target.write_text(json.dumps({"orchestrator": 3, "freeAgentMode": "yes"}))
        settings = ProjectSettings.load(tmp_path)
        assert settings.orchestrator is None
        assert settings.free_agent_mode is False

    def test_permission_template_limited_to_presets(self, tmp_path):
        target = settings_path(tmp_path)
        target.parent.mkdir()
        target.write_text(json.dumps({"permissionTemplate": "durable"}))
        assert ProjectSettings.load(tmp_path).permission_template == "durable"
        target.write_text(json.dumps({"permissionTemplate": "everything"}))
        assert ProjectSettings.load(tmp_path).permission_template is None
