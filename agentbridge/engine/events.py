"""Event types emitted for a running session.

Each event is a typed dataclass; event_to_dict() turns it into the
JSON envelope sent to the client, keyed by a ``type`` discriminator.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any


@dataclass
class StreamEvent:
    """Base event for one session."""
    type: str = ""
    session_id: str | None = None


@dataclass
class SessionCreated(StreamEvent):
    type: str = "session-created"


@dataclass
class SessionEvent(StreamEvent):
    """Event carrying the session's background/smart-commit flags."""
    background: bool = False
    smart_commit: bool = False


@dataclass
class ClaudeResponse(SessionEvent):
    """A structured (JSON) line from the agent CLI."""
    type: str = "claude-response"
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class ClaudeOutput(SessionEvent):
    """A stdout line that is not a JSON object."""
    type: str = "claude-output"
    data: str = ""


@dataclass
class ClaudeError(SessionEvent):
    """A stderr line, or a spawn failure message."""
    type: str = "claude-error"
    error: str = ""


@dataclass
class ClaudeComplete(SessionEvent):
    type: str = "claude-complete"
    exit_code: int | None = None
    is_new_session: bool = False


@dataclass
class SessionAborted(StreamEvent):
    type: str = "session-aborted"
    success: bool = False


@dataclass
class ProtocolError(StreamEvent):
    """Reply to a client message the server could not handle."""
    type: str = "error"
    error: str = ""


_WIRE_NAMES = {
    "session_id": "sessionId",
    "smart_commit": "smartCommit",
    "exit_code": "exitCode",
    "is_new_session": "isNewSession",
}


def event_to_dict(event: StreamEvent) -> dict[str, Any]:
    """Convert a typed event to its JSON envelope."""
    d: dict[str, Any] = {}
    for f in fields(event):
        val = getattr(event, f.name)
        if val is not None:
            d[_WIRE_NAMES.get(f.name, f.name)] = val
    return d
