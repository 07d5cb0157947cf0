"""Exception hierarchy for the session engine.

Only spawn failures and abnormal exits reach the caller; parse
failures, usage-limit stops and cleanup failures are logged.
"""
from __future__ import annotations


class BridgeError(Exception):
    """Base exception for all session engine errors."""


class SessionSpawnError(BridgeError):
    """The agent CLI process could not be started."""
    def __init__(self, session_key: str, reason: str):
        self.session_key = session_key
        self.reason = reason
        super().__init__(
            f"Failed to spawn agent CLI for session {session_key}: {reason}"
        )


class SessionExitError(BridgeError):
    """The agent CLI exited with a non-zero status."""
    def __init__(self, session_key: str, exit_code: int | None):
        self.session_key = session_key
        self.exit_code = exit_code
        super().__init__(
            f"Agent CLI for session {session_key} exited with code {exit_code}"
        )
