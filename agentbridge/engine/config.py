"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via AGENTBRIDGE_* env vars.
"""
from __future__ import annotations

import logging
import os
import shlex
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path

from .events import StreamEvent

logger = logging.getLogger(__name__)


# Async callback receiving every event of one session, in order.
# Signature: async def callback(event: StreamEvent) -> None
EventCallback = Callable[[StreamEvent], Awaitable[None]]

USAGE_LIMIT_MARKER = "Claude AI usage limit reached|"


async def fire_event(
    callback: EventCallback | None,
    event: StreamEvent,
) -> None:
    """Fire an event callback if set, logging and absorbing errors."""
    if callback is None:
        return
    try:
        await callback(event)
    except Exception as exc:
        # A closed client connection must never break the session
        logger.debug(
            "Event delivery failed type=%s session=%s: %s",
            event.type, event.session_id, exc,
        )


@dataclass
class BridgeConfig:
    """Session engine configuration."""

    # Agent CLI binary and any arguments placed before the built argv.
    command: str = "claude"
    command_args: list[str] = field(default_factory=list)

    # Model pinned for fresh (non-resumed) sessions.
    default_model: str = "sonnet"

    # MCP configuration probe. None means ~/.claude.json.
    mcp_config_path: str | None = None

    # Image attachments are written under <cwd>/<temp_dir_name>/<stamp>/
    # so the sandboxed CLI can read them.
    temp_dir_name: str = ".tmp/images"

    usage_limit_marker: str = USAGE_LIMIT_MARKER

    # Bytes read from a child stream per call.
    read_chunk_size: int = 65536

    # Server
    host: str = "127.0.0.1"
    port: int = 0

    # Logging
    log_level: str = "INFO"

    def resolve_mcp_config_path(self) -> Path:
        if self.mcp_config_path:
            return Path(self.mcp_config_path).expanduser()
        return Path.home() / ".claude.json"

    @property
    def base_argv(self) -> list[str]:
        return [self.command, *self.command_args]

    @classmethod
    def from_env(cls) -> BridgeConfig:
        """Load configuration from AGENTBRIDGE_* environment variables."""
        bridge_vars = {
            k: v for k, v in os.environ.items() if k.startswith("AGENTBRIDGE_")
        }
        if bridge_vars:
            logger.info(
                "BridgeConfig.from_env: AGENTBRIDGE_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(bridge_vars.items())),
            )
        else:
            logger.debug("BridgeConfig.from_env: no AGENTBRIDGE_* env vars set, using defaults")

        config = cls(
            command=os.getenv("AGENTBRIDGE_COMMAND", cls.command),
            command_args=shlex.split(os.getenv("AGENTBRIDGE_COMMAND_ARGS", "")),
            default_model=os.getenv(
                "AGENTBRIDGE_DEFAULT_MODEL", cls.default_model
            ),
            mcp_config_path=os.getenv("AGENTBRIDGE_MCP_CONFIG") or None,
            temp_dir_name=os.getenv(
                "AGENTBRIDGE_TEMP_DIR", cls.temp_dir_name
            ),
            usage_limit_marker=os.getenv(
                "AGENTBRIDGE_USAGE_LIMIT_MARKER", cls.usage_limit_marker
            ),
            read_chunk_size=int(os.getenv(
                "AGENTBRIDGE_READ_CHUNK_SIZE", str(cls.read_chunk_size)
            )),
            host=os.getenv("AGENTBRIDGE_HOST", cls.host),
            port=int(os.getenv("AGENTBRIDGE_PORT", str(cls.port))),
            log_level=os.getenv("AGENTBRIDGE_LOG_LEVEL", cls.log_level),
        )
        logger.info(
            "BridgeConfig.from_env: command=%s model=%s log_level=%s",
            config.command, config.default_model, config.log_level,
        )
        return config
