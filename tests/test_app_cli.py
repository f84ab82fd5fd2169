"""Tests for the clubhouse command-line entry point."""
from __future__ import annotations

import asyncio
import json
from unittest.mock import patch

import pytest

from clubhouse import app
from clubhouse.engine.errors import ProviderNotAvailableError
from clubhouse.engine.providers.base import Provider


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("CLUBHOUSE_LOG_DIR", str(tmp_path / "logs"))
    with patch.object(app, "_configure_logging", return_value=None):
        yield


def _run(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as exc_info:
        app.main(argv)
    return exc_info.value.code


def test_write_hooks(tmp_path, capsys):
    workspace = tmp_path / "ws"
    workspace.mkdir()
    with patch.object(Provider, "find_binary", return_value="/usr/bin/claude"):
        code = _run(["write-hooks", str(workspace), "a1", "--provider", "claude-code", "--port", "6100"])
    assert code == 0
    data = json.loads((workspace / ".claude" / "settings.local.json").read_text())
    command = data["hooks"]["PreToolUse"][0]["hooks"][0]["command"]
    assert "http://127.0.0.1:6100/hook/" in command
    assert "Wrote hooks" in capsys.readouterr().out


def test_write_hooks_for_hookless_provider(tmp_path, capsys):
    code = _run(["write-hooks", str(tmp_path), "a1", "--provider", "opencode", "--port", "6100"])
    assert code == 0
    assert "does not support hooks" in capsys.readouterr().out


def test_unknown_provider_exits_nonzero(tmp_path, capsys):
    code = _run(["write-hooks", str(tmp_path), "a1", "--provider", "gemini", "--port", "1"])
    assert code == 1
    assert "Unknown orchestrator: gemini" in capsys.readouterr().err


def test_providers_listing(capsys):
    def check(self):
        return (self.id == "opencode"), None if self.id == "opencode" else "missing"

    with patch.object(Provider, "check_availability", check):
        assert _run(["providers"]) == 0
    out = capsys.readouterr().out
    assert "opencode" in out
    assert "OpenCode [Beta]: available" in out
    assert "Claude Code: unavailable (missing)" in out


def test_models_uses_fallback_without_binary(capsys):
    missing = ProviderNotAvailableError("codex-cli", ["codex"])
    with patch.object(Provider, "find_binary", side_effect=missing):
        assert _run(["models", "codex-cli"]) == 0
    out = capsys.readouterr().out
    assert "default" in out
    assert "gpt-5" in out


def test_bad_config_file(tmp_path, capsys):
    config = tmp_path / "bad.yaml"
    config.write_text("server: [oops\n")
    assert _run(["--config", str(config), "providers"]) == 2
    assert "Invalid YAML" in capsys.readouterr().err


class FinishedProcess:
    """A child process that has already exited with the given output."""

    def __init__(self, stdout: list[str], returncode: int = 0) -> None:
        self.pid = 4242
        self.returncode = returncode
        self.stdin = None
        self.stdout = asyncio.StreamReader()
        for line in stdout:
            self.stdout.feed_data(line.encode("utf-8") + b"\n")
        self.stdout.feed_eof()
        self.stderr = asyncio.StreamReader()
        self.stderr.feed_eof()

    async def wait(self) -> int:
        return self.returncode


def _fake_exec(launched: list, stdout: list[str], returncode: int = 0):
    async def create_subprocess_exec(binary, *args, **kwargs):
        launched.append((binary, list(args), kwargs))
        return FinishedProcess(stdout, returncode)
    return create_subprocess_exec


def _json_lines(out: str) -> list[dict]:
    return [json.loads(line) for line in out.splitlines() if line.strip()]


def test_run_headless_streams_events(tmp_path, capsys):
    workspace = tmp_path / "ws"
    workspace.mkdir()
    launched: list = []
    result = json.dumps({"type": "result", "result": "Summary done"})
    with patch.object(Provider, "find_binary", lambda self: f"/usr/bin/{self.id}"), \
            patch("asyncio.create_subprocess_exec", new=_fake_exec(launched, [result])):
        code = _run([
            "run", str(workspace), "h1", "--provider", "claude-code",
            "--headless", "--mission", "Summarize", "--port", "0",
        ])
    assert code == 0

    lines = _json_lines(capsys.readouterr().out)
    assert lines[0]["port"] > 0
    assert [line["event"] for line in lines[1:]] == ["agent_spawned", "hook_event", "agent_exited"]
    assert lines[1]["provider_id"] == "claude-code"
    assert lines[2]["kind"] == "stop"
    assert lines[3]["exit_code"] == 0

    binary, args, kwargs = launched[0]
    assert binary == "/usr/bin/claude-code"
    assert args[args.index("-p") + 1] == "Summarize"
    assert kwargs["env"]["CLUBHOUSE_AGENT_ID"] == "h1"
    assert kwargs["env"]["CLUBHOUSE_HOOK_URL"] == f"http://127.0.0.1:{lines[0]['port']}/hook"


def test_run_interactive_reports_failed_exit(tmp_path, capsys):
    workspace = tmp_path / "ws"
    workspace.mkdir()
    launched: list = []
    with patch.object(Provider, "find_binary", lambda self: f"/usr/bin/{self.id}"), \
            patch("asyncio.create_subprocess_exec", new=_fake_exec(launched, [], returncode=3)):
        code = _run(["run", str(workspace), "a1", "--provider", "codex-cli", "--model", "gpt-5"])
    assert code == 1

    lines = _json_lines(capsys.readouterr().out)
    assert [line["event"] for line in lines[1:]] == ["agent_spawned", "agent_exited"]
    assert lines[-1]["exit_code"] == 3
    assert "gpt-5" in launched[0][1]


def test_run_headless_without_mission(tmp_path, capsys):
    workspace = tmp_path / "ws"
    workspace.mkdir()
    with patch.object(Provider, "find_binary", lambda self: f"/usr/bin/{self.id}"), \
            patch("asyncio.create_subprocess_exec") as exec_mock:
        code = _run(["run", str(workspace), "h1", "--provider", "claude-code", "--headless"])
    assert code == 1
    assert "headless run requires a mission" in capsys.readouterr().err
    exec_mock.assert_not_called()
    assert not (workspace / ".claude").exists()
