"""Argument vector construction for the agent CLI.

Arguments are always passed as a list to create_subprocess_exec, so
the instruction text is a single opaque argv item and never goes
through a shell.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from .config import BridgeConfig
from .models import PLAN_MODE_TOOLS, PermissionMode, SessionRequest

logger = logging.getLogger(__name__)


def _has_servers(section: Any) -> bool:
    if not isinstance(section, dict):
        return False
    servers = section.get("mcpServers")
    return isinstance(servers, dict) and len(servers) > 0


def probe_mcp_config(config_path: Path, project_dir: str | None) -> Path | None:
    """Return ``config_path`` if it declares any MCP servers.

    Servers may be global (top-level ``mcpServers``) or scoped to the
    project directory under ``claudeProjects`` / ``projects``. A missing,
    unreadable or malformed file yields None.
    """
    if not config_path.is_file():
        logger.debug("No MCP config at %s", config_path)
        return None
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Failed to read MCP config %s: %s", config_path, exc)
        return None
    if not isinstance(data, dict):
        logger.warning("MCP config %s is not a JSON object, ignoring", config_path)
        return None

    if _has_servers(data):
        logger.info(
            "Found %d global MCP servers in %s",
            len(data["mcpServers"]), config_path,
        )
        return config_path

    if project_dir:
        for projects_key in ("claudeProjects", "projects"):
            projects = data.get(projects_key)
            if not isinstance(projects, dict):
                continue
            project = projects.get(project_dir)
            if _has_servers(project):
                logger.info(
                    "Found %d project MCP servers for %s",
                    len(project["mcpServers"]), project_dir,
                )
                return config_path
    return None


class ArgumentBuilder:
    """Builds the agent CLI argv for one SessionRequest."""

    def __init__(self, config: BridgeConfig | None = None) -> None:
        self._config = config or BridgeConfig()

    def build(
        self,
        request: SessionRequest,
        *,
        command: str | None = None,
        cwd: str | None = None,
    ) -> list[str]:
        """Return the argv (without the binary) for ``request``.

        ``command`` overrides the request's instruction, e.g. after
        image paths were appended to it.
        """
        instruction = request.command if command is None else command
        args: list[str] = []

        if instruction and instruction.strip():
            args.extend(["--print", instruction])

        if request.resume and request.session_id:
            args.extend(["--resume", request.session_id])

        args.extend(["--output-format", "stream-json", "--verbose"])

        mcp_config = probe_mcp_config(
            self._config.resolve_mcp_config_path(),
            cwd or request.cwd,
        )
        if mcp_config is not None:
            logger.info("Adding MCP config: %s", mcp_config)
            args.extend(["--mcp-config", str(mcp_config)])

        if not request.resume:
            args.extend(["--model", self._config.default_model])

        args.extend(self._permission_args(request))
        return args

    def _permission_args(self, request: SessionRequest) -> list[str]:
        tools = request.tools
        if tools.skip_permissions:
            logger.warning(
                "Using --dangerously-skip-permissions; ignoring permission "
                "mode and tool lists"
            )
            return ["--dangerously-skip-permissions"]

        args: list[str] = []
        mode = request.permission_mode or PermissionMode.DEFAULT.value
        if mode != PermissionMode.DEFAULT.value:
            args.extend(["--permission-mode", mode])
            logger.info("Using permission mode: %s", mode)

        allowed = list(tools.allowed_tools)
        if mode == PermissionMode.PLAN.value:
            for tool in PLAN_MODE_TOOLS:
                if tool not in allowed:
                    allowed.append(tool)
            logger.debug("Plan mode: allowed tools now %s", allowed)

        for tool in allowed:
            args.extend(["--allowedTools", tool])
        for tool in tools.disallowed_tools:
            args.extend(["--disallowedTools", tool])
        return args
