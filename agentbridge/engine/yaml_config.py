"""YAML configuration loader.

Overlays a ``bridge:`` section on top of the env-derived BridgeConfig.
When no YAML is provided, env vars work exactly as before.

Example YAML:
    bridge:
      command: claude
      command_args: []
      default_model: sonnet
      mcp_config_path: ~/.claude.json
      temp_dir_name: .tmp/images
      host: 127.0.0.1
      port: 3001
      log_level: DEBUG
"""
from __future__ import annotations

import logging
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from .config import BridgeConfig

logger = logging.getLogger(__name__)

_INT_FIELDS = {"port", "read_chunk_size"}


def _apply_section(config: BridgeConfig, section: dict[str, Any]) -> None:
    known = {f.name for f in fields(BridgeConfig)}
    for key, value in section.items():
        if key not in known:
            logger.warning("Ignoring unknown bridge config key: %s", key)
            continue
        if value is None:
            continue
        if key == "command_args":
            if not isinstance(value, list):
                raise ValueError("bridge.command_args must be a list")
            value = [str(v) for v in value]
        elif key in _INT_FIELDS:
            value = int(value)
        else:
            value = str(value)
        setattr(config, key, value)


def load_yaml_config(
    path: str | Path,
    base: BridgeConfig | None = None,
) -> BridgeConfig:
    """Load a YAML config file and return the resulting BridgeConfig.

    ``base`` defaults to BridgeConfig.from_env(). Missing files and
    YAML syntax errors are logged and re-raised.
    """
    path = Path(path)
    logger.info(
        "load_yaml_config: attempting to load config from %s (exists=%s)",
        path, path.exists(),
    )
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error(
            "load_yaml_config: config file not found at %s (absolute path: %s)",
            path, path.absolute(),
        )
        raise
    except yaml.YAMLError as exc:
        logger.error("load_yaml_config: YAML parse error in %s: %s", path, exc)
        raise

    if not isinstance(raw, dict):
        raise ValueError(f"{path}: top level must be a mapping")

    config = base if base is not None else BridgeConfig.from_env()
    section = raw.get("bridge") or {}
    if not isinstance(section, dict):
        raise ValueError(f"{path}: 'bridge' section must be a mapping")
    _apply_section(config, section)

    logger.info(
        "Parsed YAML config %s: command=%s model=%s port=%s",
        path.name, config.command, config.default_model, config.port,
    )
    return config
