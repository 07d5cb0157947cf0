"""Core data models for the session engine.

All dataclasses, enums, and type aliases. Single source of truth
to avoid circular imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SessionPhase(str, Enum):
    """Session lifecycle phases. See lifecycle.py for transition rules."""
    SPAWNING = "spawning"
    RUNNING = "running"
    FINALIZING = "finalizing"
    DONE = "done"


class PermissionMode(str, Enum):
    """Maps to the agent CLI's --permission-mode values."""
    DEFAULT = "default"
    ACCEPT_EDITS = "acceptEdits"
    BYPASS = "bypassPermissions"
    PLAN = "plan"


# Tools granted automatically in plan mode.
PLAN_MODE_TOOLS: tuple[str, ...] = (
    "Read",
    "Task",
    "exit_plan_mode",
    "TodoRead",
    "TodoWrite",
)


@dataclass
class ToolsSettings:
    """Tool permission settings sent by the client."""
    allowed_tools: list[str] = field(default_factory=list)
    disallowed_tools: list[str] = field(default_factory=list)
    skip_permissions: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ToolsSettings:
        if not data:
            return cls()
        return cls(
            allowed_tools=[str(t) for t in data.get("allowedTools") or []],
            disallowed_tools=[str(t) for t in data.get("disallowedTools") or []],
            skip_permissions=bool(data.get("skipPermissions", False)),
        )


@dataclass(frozen=True)
class SessionFlags:
    """Per-session flags, fixed at creation."""
    resume: bool = False
    background: bool = False
    smart_commit: bool = False


@dataclass
class SessionRequest:
    """A request to run the agent CLI once.

    ``command`` is the instruction text; ``None`` or blank starts an
    interactive session whose stdin stays open.
    """
    command: str | None = None
    session_id: str | None = None
    cwd: str | None = None
    project_path: str | None = None
    resume: bool = False
    tools: ToolsSettings = field(default_factory=ToolsSettings)
    permission_mode: str = PermissionMode.DEFAULT.value
    images: list[Any] = field(default_factory=list)
    background: bool = False
    smart_commit: bool = False

    @property
    def has_instruction(self) -> bool:
        return bool(self.command and self.command.strip())

    @property
    def is_new_session(self) -> bool:
        """No caller id but an instruction: the CLI will create a session."""
        return not self.session_id and bool(self.command)

    @property
    def flags(self) -> SessionFlags:
        return SessionFlags(
            resume=self.resume,
            background=self.background,
            smart_commit=self.smart_commit,
        )

    @classmethod
    def from_options(
        cls,
        command: str | None,
        options: dict[str, Any] | None,
    ) -> SessionRequest:
        """Build a request from a client ``claude-command`` payload."""
        options = options or {}
        return cls(
            command=command,
            session_id=options.get("sessionId") or None,
            cwd=options.get("cwd") or None,
            project_path=options.get("projectPath") or None,
            resume=bool(options.get("resume", False)),
            tools=ToolsSettings.from_dict(options.get("toolsSettings")),
            permission_mode=(
                options.get("permissionMode") or PermissionMode.DEFAULT.value
            ),
            images=list(options.get("images") or []),
            background=bool(options.get("background", False)),
            smart_commit=bool(options.get("smartCommit", False)),
        )
