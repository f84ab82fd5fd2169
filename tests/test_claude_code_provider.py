"""Tests for ClaudeCodeProvider."""
from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest

from clubhouse.engine.hook_config import AGENT_ID_ENV
from clubhouse.engine.providers.claude_code_provider import ClaudeCodeProvider
from clubhouse.engine.providers.types import (
    HeadlessOptions,
    HookConfigOptions,
    HookEventKind,
    SpawnOptions,
)

BINARY = "/usr/local/bin/claude"


@pytest.fixture
def provider():
    p = ClaudeCodeProvider()
    with patch.object(ClaudeCodeProvider, "find_binary", return_value=BINARY):
        yield p


def test_identity_and_capabilities():
    p = ClaudeCodeProvider()
    assert p.id == "claude-code"
    assert p.display_name == "Claude Code"
    assert p.short_name == "CC"
    assert p.badge is None
    caps = p.get_capabilities()
    assert caps.to_dict() == {
        "headless": True,
        "structured_output": True,
        "hooks": True,
        "session_resume": True,
        "permissions": True,
    }


def test_spawn_command_full_options(provider):
    cmd = provider.build_spawn_command(SpawnOptions(
        cwd="/ws",
        model="opus",
        mission="Fix the bug",
        system_prompt="Be brief",
        allowed_tools=["Read", "Bash(git:*)"],
        disallowed_tools=["Write"],
        free_agent_mode=True,
        resume=True,
    ))
    assert cmd.binary == BINARY
    assert cmd.args == [
        "--dangerously-skip-permissions",
        "--continue",
        "--model", "opus",
        "--allowedTools", "Read",
        "--allowedTools", "Bash(git:*)",
        "--disallowedTools", "Write",
        "--append-system-prompt", "Be brief",
        "Fix the bug",
    ]


def test_spawn_command_omits_default_model(provider):
    cmd = provider.build_spawn_command(SpawnOptions(cwd="/ws", model="default"))
    assert "--model" not in cmd.args
    assert cmd.args == []


def test_headless_requires_mission(provider):
    assert provider.build_headless_command(HeadlessOptions(cwd="/ws")) is None


def test_headless_stream_json_adds_verbose(provider):
    result = provider.build_headless_command(HeadlessOptions(
        cwd="/ws", mission="do it", no_session_persistence=True,
    ))
    assert result.output_kind == "stream-json"
    assert result.args[:5] == ["-p", "do it", "--output-format", "stream-json", "--verbose"]
    assert "--no-session-persistence" in result.args
    assert result.args[-1] == "--dangerously-skip-permissions"


def test_headless_text_output_kind(provider):
    result = provider.build_headless_command(HeadlessOptions(
        cwd="/ws", mission="do it", output_format="text",
    ))
    assert result.output_kind == "text"
    assert "--verbose" not in result.args


def test_api_key_env_passthrough(monkeypatch):
    monkeypatch.setenv("MY_ANTHROPIC_KEY", "sk-test")
    p = ClaudeCodeProvider(api_key_env="MY_ANTHROPIC_KEY")
    with patch.object(ClaudeCodeProvider, "find_binary", return_value=BINARY):
        cmd = p.build_spawn_command(SpawnOptions(cwd="/ws"))
    assert cmd.env == {"ANTHROPIC_API_KEY": "sk-test"}


def test_no_env_without_api_key_env(provider):
    assert provider.build_spawn_command(SpawnOptions(cwd="/ws")).env is None


class TestParseHookEvent:

    def test_pre_tool(self):
        event = ClaudeCodeProvider().parse_hook_event({
            "hook_event_name": "PreToolUse",
            "tool_name": "Edit",
            "tool_input": {"file_path": "a.py"},
        })
        assert event.kind == HookEventKind.PRE_TOOL
        assert event.tool_name == "Edit"
        assert event.tool_input == {"file_path": "a.py"}

    def test_all_event_names(self):
        p = ClaudeCodeProvider()
        expected = {
            "PostToolUse": HookEventKind.POST_TOOL,
            "PostToolUseFailure": HookEventKind.TOOL_ERROR,
            "Stop": HookEventKind.STOP,
            "Notification": HookEventKind.NOTIFICATION,
            "PermissionRequest": HookEventKind.PERMISSION_REQUEST,
        }
        for name, kind in expected.items():
            assert p.parse_hook_event({"hook_event_name": name}).kind == kind

    def test_notification_message(self):
        event = ClaudeCodeProvider().parse_hook_event({
            "hook_event_name": "Notification", "message": "Needs input",
        })
        assert event.message == "Needs input"
        assert event.tool_name is None

    def test_unknown_and_malformed(self):
        p = ClaudeCodeProvider()
        assert p.parse_hook_event({"hook_event_name": "SubagentStop"}) is None
        assert p.parse_hook_event({}) is None
        assert p.parse_hook_event(None) is None
        assert p.parse_hook_event("PreToolUse") is None

    def test_wrongly_typed_fields_dropped(self):
        event = ClaudeCodeProvider().parse_hook_event({
            "hook_event_name": "PreToolUse", "tool_name": 5, "tool_input": "x",
        })
        assert event.tool_name is None
        assert event.tool_input is None


def test_tool_verbs():
    p = ClaudeCodeProvider()
    assert p.tool_verb("Bash") == "Running command"
    assert p.tool_verb("Grep") == "Searching code"
    assert p.tool_verb("mcp__custom") is None


def test_default_permissions():
    p = ClaudeCodeProvider()
    assert p.get_default_permissions("durable") == ["Bash(git:*)", "Bash(npm:*)", "Bash(npx:*)"]
    quick = p.get_default_permissions("quick")
    assert quick[:3] == ["Bash(git:*)", "Bash(npm:*)", "Bash(npx:*)"]
    assert {"Read", "Write", "Edit", "Glob", "Grep"} <= set(quick)


class TestWriteHooksConfig:

    def _read(self, tmp_path):
        return json.loads((tmp_path / ".claude" / "settings.local.json").read_text())

    def test_writes_all_categories(self, tmp_path):
        ClaudeCodeProvider().write_hooks_config(
            str(tmp_path), "a1", HookConfigOptions("http://127.0.0.1:5000/hook"),
        )
        hooks = self._read(tmp_path)["hooks"]
        assert set(hooks) == {
            "PreToolUse", "PostToolUse", "PostToolUseFailure",
            "Stop", "Notification", "PermissionRequest",
        }
        entry = hooks["PreToolUse"][0]["hooks"][0]
        assert entry["type"] == "command"
        assert entry["async"] is True
        assert entry["timeout"] == 5
        assert "${" + AGENT_ID_ENV + "}" in entry["command"]
        assert "http://127.0.0.1:5000/hook/" in entry["command"]
        assert hooks["Notification"][0]["matcher"] == ""

    def test_idempotent_and_preserves_foreign(self, tmp_path):
        target = tmp_path / ".claude" / "settings.local.json"
        target.parent.mkdir()
        foreign = {"matcher": "Bash", "hooks": [{"type": "command", "command": "echo mine"}]}
        target.write_text(json.dumps({
            "permissions": {"allow": ["Read"]},
            "hooks": {"PreToolUse": [foreign], "SessionStart": [foreign]},
        }))

        p = ClaudeCodeProvider()
        p.write_hooks_config(str(tmp_path), "a1", HookConfigOptions("http://127.0.0.1:5000/hook"))
        # Port changed between runs: stale entry must be replaced, not kept
        p.write_hooks_config(str(tmp_path), "a2", HookConfigOptions("http://127.0.0.1:6000/hook"))

        data = self._read(tmp_path)
        assert data["permissions"] == {"allow": ["Read"]}
        assert data["hooks"]["SessionStart"] == [foreign]
        pre = data["hooks"]["PreToolUse"]
        assert len(pre) == 2
        assert pre[0] == foreign
        assert "6000" in pre[1]["hooks"][0]["command"]

    def test_corrupt_file_replaced(self, tmp_path):
        target = tmp_path / ".claude" / "settings.local.json"
        target.parent.mkdir()
        target.write_text("{not json")
        ClaudeCodeProvider().write_hooks_config(
            str(tmp_path), "a1", HookConfigOptions("http://127.0.0.1:5000/hook"),
        )
        assert "PreToolUse" in self._read(tmp_path)["hooks"]


def test_instructions_fall_back_to_legacy(tmp_path):
    p = ClaudeCodeProvider()
    (tmp_path / "CLAUDE.md").write_text("legacy")
    assert p.read_instructions(str(tmp_path)) == "legacy"
    p.write_instructions(str(tmp_path), "local")
    assert (tmp_path / ".claude" / "CLAUDE.local.md").read_text() == "local"
    assert p.read_instructions(str(tmp_path)) == "local"


@pytest.mark.asyncio
async def test_model_options_from_help(provider):
    help_text = "  --model <model>  Model alias (e.g. 'sonnet' or 'opus')\n"
    with patch(
        "clubhouse.engine.providers.shared.probe_help_output",
        new=AsyncMock(return_value=help_text),
    ):
        options = await provider.get_model_options()
    assert [o.id for o in options] == ["default", "sonnet", "opus"]


@pytest.mark.asyncio
async def test_model_options_fallback_on_probe_failure(provider):
    with patch(
        "clubhouse.engine.providers.shared.probe_help_output",
        new=AsyncMock(side_effect=TimeoutError()),
    ):
        options = await provider.get_model_options()
    assert [o.id for o in options] == ["default", "opus", "sonnet", "haiku"]


def test_exit_command():
    assert ClaudeCodeProvider().get_exit_command() == "/exit\r"
