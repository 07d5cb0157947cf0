"""Tests for env and YAML configuration."""
from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from agentbridge.engine.config import BridgeConfig
from agentbridge.engine.yaml_config import load_yaml_config


def test_defaults():
    config = BridgeConfig()
    assert config.base_argv == ["claude"]
    assert config.default_model == "sonnet"
    assert config.resolve_mcp_config_path() == Path.home() / ".claude.json"


def test_from_env(monkeypatch):
    monkeypatch.setenv("AGENTBRIDGE_COMMAND", "/opt/agent")
    monkeypatch.setenv("AGENTBRIDGE_COMMAND_ARGS", "--flag 'two words'")
    monkeypatch.setenv("AGENTBRIDGE_DEFAULT_MODEL", "opus")
    monkeypatch.setenv("AGENTBRIDGE_PORT", "3001")
    monkeypatch.setenv("AGENTBRIDGE_READ_CHUNK_SIZE", "1024")
    monkeypatch.setenv("AGENTBRIDGE_MCP_CONFIG", "~/mcp.json")

    config = BridgeConfig.from_env()
    assert config.base_argv == ["/opt/agent", "--flag", "two words"]
    assert config.default_model == "opus"
    assert config.port == 3001
    assert config.read_chunk_size == 1024
    assert config.resolve_mcp_config_path() == Path.home() / "mcp.json"


def test_yaml_overlays_base(tmp_path, caplog):
    path = tmp_path / "bridge.yaml"
    path.write_text(yaml.safe_dump({
        "bridge": {
            "command": "agent",
            "command_args": ["--x", 1],
            "port": "4000",
            "log_level": "DEBUG",
            "colour": "blue",
        },
    }))

    config = load_yaml_config(path, base=BridgeConfig())
    assert config.base_argv == ["agent", "--x", "1"]
    assert config.port == 4000
    assert config.log_level == "DEBUG"
    assert config.default_model == "sonnet"
    assert "unknown bridge config key: colour" in caplog.text


def test_yaml_without_bridge_section(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_yaml_config(path, base=BridgeConfig()).command == "claude"


def test_yaml_bad_structure(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ValueError):
        load_yaml_config(path, base=BridgeConfig())

    path.write_text("bridge:\n  command_args: not-a-list\n")
    with pytest.raises(ValueError):
        load_yaml_config(path, base=BridgeConfig())


def test_yaml_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_yaml_config(tmp_path / "nope.yaml")


def test_yaml_syntax_error(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("bridge: [unclosed\n")
    with pytest.raises(yaml.YAMLError):
        load_yaml_config(path, base=BridgeConfig())
