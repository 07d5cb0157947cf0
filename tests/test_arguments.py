"""Tests for agent CLI argument construction."""
from __future__ import annotations

import json

import pytest

from agentbridge.engine.arguments import ArgumentBuilder, probe_mcp_config
from agentbridge.engine.config import BridgeConfig
from agentbridge.engine.models import PLAN_MODE_TOOLS, SessionRequest, ToolsSettings


@pytest.fixture
def builder(tmp_path):
    config = BridgeConfig(mcp_config_path=str(tmp_path / "missing.json"))
    return ArgumentBuilder(config)


def _values_after(args: list[str], flag: str) -> list[str]:
    return [args[i + 1] for i, a in enumerate(args) if a == flag]


def test_fresh_session_with_instruction(builder):
    args = builder.build(SessionRequest(command="fix the bug"))

    assert args[:2] == ["--print", "fix the bug"]
    assert "--resume" not in args
    assert args[2:5] == ["--output-format", "stream-json", "--verbose"]
    assert _values_after(args, "--model") == ["sonnet"]
    assert "--mcp-config" not in args
    assert "--permission-mode" not in args


def test_instruction_is_a_single_argument(builder):
    command = 'say "hi"; rm -rf / && echo $HOME\nsecond line'
    args = builder.build(SessionRequest(command=command))
    assert args[1] == command


def test_blank_instruction_starts_interactive(builder):
    args = builder.build(SessionRequest(command="   "))
    assert "--print" not in args


def test_resume_adds_session_and_skips_model(builder):
    request = SessionRequest(command="continue", session_id="abc-123", resume=True)
    args = builder.build(request)

    assert _values_after(args, "--resume") == ["abc-123"]
    assert "--model" not in args


def test_resume_without_id_has_no_resume_flag(builder):
    args = builder.build(SessionRequest(command="x", resume=True))
    assert "--resume" not in args
    assert "--model" not in args


def test_command_override_replaces_instruction(builder):
    request = SessionRequest(command="look")
    args = builder.build(request, command="look\n\n[Images provided at the following paths:]\n1. /a.png")
    assert args[1].startswith("look\n\n[Images provided")


def test_skip_permissions_overrides_everything(builder):
    request = SessionRequest(
        command="go",
        permission_mode="acceptEdits",
        tools=ToolsSettings(
            allowed_tools=["Bash", "Edit"],
            disallowed_tools=["WebFetch"],
            skip_permissions=True,
        ),
    )
    args = builder.build(request)

    assert args.count("--dangerously-skip-permissions") == 1
    assert "--allowedTools" not in args
    assert "--disallowedTools" not in args
    assert "--permission-mode" not in args


def test_permission_mode_and_tool_lists(builder):
    request = SessionRequest(
        command="go",
        permission_mode="acceptEdits",
        tools=ToolsSettings(allowed_tools=["Bash"], disallowed_tools=["WebFetch", "Write"]),
    )
    args = builder.build(request)

    assert _values_after(args, "--permission-mode") == ["acceptEdits"]
    assert _values_after(args, "--allowedTools") == ["Bash"]
    assert _values_after(args, "--disallowedTools") == ["WebFetch", "Write"]


def test_plan_mode_merges_tools_without_duplicates(builder):
    request = SessionRequest(
        command="plan it",
        permission_mode="plan",
        tools=ToolsSettings(allowed_tools=["Read", "Bash"]),
    )
    args = builder.build(request)

    allowed = _values_after(args, "--allowedTools")
    assert allowed[:2] == ["Read", "Bash"]
    assert allowed.count("Read") == 1
    for tool in PLAN_MODE_TOOLS:
        assert tool in allowed
    assert _values_after(args, "--permission-mode") == ["plan"]


def test_default_permission_mode_not_passed(builder):
    args = builder.build(SessionRequest(command="x", permission_mode="default"))
    assert "--permission-mode" not in args


def test_custom_default_model(tmp_path):
    config = BridgeConfig(
        default_model="opus",
        mcp_config_path=str(tmp_path / "missing.json"),
    )
    args = ArgumentBuilder(config).build(SessionRequest(command="x"))
    assert _values_after(args, "--model") == ["opus"]


# ── MCP config probe ──


def test_probe_global_servers(tmp_path):
    path = tmp_path / "claude.json"
    path.write_text(json.dumps({"mcpServers": {"fs": {"command": "npx"}}}))
    assert probe_mcp_config(path, None) == path


def test_probe_project_servers(tmp_path):
    path = tmp_path / "claude.json"
    project = str(tmp_path / "proj")
    path.write_text(json.dumps({
        "mcpServers": {},
        "claudeProjects": {project: {"mcpServers": {"db": {"type": "http"}}}},
    }))
    assert probe_mcp_config(path, project) == path
    assert probe_mcp_config(path, str(tmp_path / "other")) is None


def test_probe_projects_key(tmp_path):
    path = tmp_path / "claude.json"
    project = str(tmp_path / "proj")
    path.write_text(json.dumps({"projects": {project: {"mcpServers": {"x": {}}}}}))
    assert probe_mcp_config(path, project) == path


def test_probe_no_servers(tmp_path):
    path = tmp_path / "claude.json"
    path.write_text(json.dumps({"mcpServers": {}}))
    assert probe_mcp_config(path, None) is None


def test_probe_malformed_file_is_ignored(tmp_path):
    path = tmp_path / "claude.json"
    path.write_text("{not json")
    assert probe_mcp_config(path, None) is None


def test_probe_missing_file(tmp_path):
    assert probe_mcp_config(tmp_path / "nope.json", None) is None


def test_builder_adds_mcp_config(tmp_path):
    path = tmp_path / "claude.json"
    path.write_text(json.dumps({"mcpServers": {"fs": {}}}))
    builder = ArgumentBuilder(BridgeConfig(mcp_config_path=str(path)))
    args = builder.build(SessionRequest(command="x"))
    assert _values_after(args, "--mcp-config") == [str(path)]
