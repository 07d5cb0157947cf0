"""Command-line entry point for agentbridge.

Usage:
    agentbridge --server [--port PORT] [--config PATH]
    agentbridge --check
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import shutil
import subprocess
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from agentbridge.engine.config import BridgeConfig

logger = logging.getLogger(__name__)


def configure_logging(level_name: str, log_dir: Path | None = None) -> Path:
    """Send logs to a rotating file and stderr. Returns the log file path."""
    log_dir = log_dir or Path.home() / ".agentbridge" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "agentbridge.log"

    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name.upper(), logging.INFO))
    root.handlers.clear()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"
    )
    file_handler = RotatingFileHandler(
        log_file, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    root.addHandler(file_handler)
    root.addHandler(stream_handler)
    return log_file


def _load_config(args: argparse.Namespace) -> BridgeConfig:
    if args.config:
        from agentbridge.engine.yaml_config import load_yaml_config

        config = load_yaml_config(args.config)
    else:
        config = BridgeConfig.from_env()
    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.command is not None:
        config.command = args.command
    return config


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="agentbridge",
        description="Run an agent CLI per client session and stream its output",
    )
    parser.add_argument(
        "--server", action="store_true",
        help="Start the HTTP + WebSocket server",
    )
    parser.add_argument(
        "--check", action="store_true",
        help="Report whether the agent CLI is on PATH and exit",
    )
    parser.add_argument(
        "--host", default=None,
        help="Bind address (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port", type=int, default=None,
        help="Server port (0=random available port)",
    )
    parser.add_argument(
        "--command", metavar="BINARY", default=None,
        help="Agent CLI binary (default: claude)",
    )
    parser.add_argument(
        "--config", metavar="PATH",
        help="YAML config file with a 'bridge' section",
    )
    args = parser.parse_args()

    if not args.server and not args.check:
        parser.print_help()
        sys.exit(2)

    config = _load_config(args)

    if args.check:
        found = shutil.which(config.command)
        if found:
            print(f"{config.command}: {found}")
            sys.exit(0)
        print(f"{config.command}: not found on PATH")
        sys.exit(1)

    from agentbridge.server.server import BridgeServer
    from agentbridge.shared.services.process_cleanup import (
        cleanup_stale_agent_processes,
    )

    log_file = configure_logging(config.log_level)
    logger.info(
        "Starting agentbridge server cwd=%s port=%s config=%s log=%s",
        Path.cwd(), config.port, args.config or "<none>", log_file,
    )

    if os.getenv("AGENTBRIDGE_CLEANUP_STALE", "0").lower() in {"1", "true", "yes"}:
        try:
            reaped = cleanup_stale_agent_processes(command=config.command)
            if reaped:
                logger.warning("Reaped %d stale agent process(es) at startup", reaped)
        except (OSError, subprocess.SubprocessError):
            logger.exception("Startup stale-process cleanup failed")

    server = BridgeServer(config)
    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        logger.info("Interrupted.")


if __name__ == "__main__":
    main()
