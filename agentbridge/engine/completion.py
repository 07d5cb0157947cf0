"""Session finalization after the agent CLI exits or fails to start."""
from __future__ import annotations

import asyncio
import logging

from .config import EventCallback, fire_event
from .errors import SessionExitError, SessionSpawnError
from .events import ClaudeComplete, ClaudeError
from .models import SessionPhase
from .process_session import ProcessSession
from .registry import SessionRegistry
from .sanitizer import clean_signatures, has_signature

logger = logging.getLogger(__name__)


async def _run_git(cwd: str, *args: str) -> tuple[int, str, str]:
    proc = await asyncio.create_subprocess_exec(
        "git", *args,
        cwd=cwd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await proc.communicate()
    return (
        proc.returncode,
        stdout.decode("utf-8", errors="replace"),
        stderr.decode("utf-8", errors="replace"),
    )


async def amend_commit_signature(cwd: str) -> bool:
    """Strip agent signatures from the latest commit message in ``cwd``.

    Returns True when the commit was amended. Failures are logged,
    never raised.
    """
    try:
        code, message, err = await _run_git(cwd, "log", "--format=%B", "-n", "1")
        if code != 0 or not message.strip():
            logger.warning("[SmartCommit] Failed to read commit message: %s", err.strip())
            return False
        if not has_signature(message):
            logger.info("[SmartCommit] No agent signature found in commit")
            return False

        logger.info("[SmartCommit] Found agent signature in commit, cleaning")
        cleaned = clean_signatures(message)
        code, _, err = await _run_git(cwd, "commit", "--amend", "-m", cleaned)
        if code != 0:
            logger.warning("[SmartCommit] Failed to amend commit message: %s", err.strip())
            return False
        logger.info("[SmartCommit] Successfully cleaned commit message")
        return True
    except OSError as exc:
        logger.error("[SmartCommit] Error during post-processing: %s", exc)
        return False


class CompletionCoordinator:
    """Releases a session's resources and emits its terminal event."""

    def __init__(
        self,
        registry: SessionRegistry,
        emit: EventCallback | None,
    ) -> None:
        self._registry = registry
        self._emit = emit

    def release(self, session: ProcessSession) -> None:
        """Drop the registry entry and temp files. Safe to call twice."""
        if not self._registry.remove(session):
            logger.debug("Session %s was already unregistered", session.key)
        if session.assets is not None:
            session.assets.cleanup()

    async def finalize(self, session: ProcessSession, exit_code: int | None) -> int:
        """Run post-exit work and settle.

        Returns 0 on success; raises SessionExitError otherwise.
        """
        session.transition(SessionPhase.FINALIZING)
        logger.info("Agent CLI session=%s exited with code %s", session.key, exit_code)

        if exit_code == 0 and session.flags.smart_commit:
            logger.info("[SmartCommit] Post-processing: cleaning commit message")
            await amend_commit_signature(session.request.cwd or ".")

        self.release(session)

        logger.debug(
            "Sending claude-complete exit=%s session_id=%s original=%s captured=%s",
            exit_code, session.session_id,
            session.request.session_id, session.external_id,
        )
        await fire_event(self._emit, ClaudeComplete(
            session_id=session.session_id,
            background=session.flags.background,
            smart_commit=session.flags.smart_commit,
            exit_code=exit_code,
            is_new_session=session.request.is_new_session,
        ))
        session.transition(SessionPhase.DONE)

        if exit_code != 0:
            raise SessionExitError(session.key, exit_code)
        return 0

    async def handle_spawn_failure(
        self,
        session: ProcessSession,
        exc: BaseException,
    ) -> SessionSpawnError:
        """Clean up after a failed spawn and return the error to raise."""
        session.transition(SessionPhase.FINALIZING)
        logger.error("Agent CLI process error session=%s: %s", session.key, exc)
        self.release(session)
        await fire_event(self._emit, ClaudeError(
            session_id=session.session_id,
            background=session.flags.background,
            smart_commit=session.flags.smart_commit,
            error=str(exc),
        ))
        session.transition(SessionPhase.DONE)
        return SessionSpawnError(session.key or "<unregistered>", str(exc))
