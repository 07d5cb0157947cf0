"""Line framing and classification of the agent CLI's output streams.

Pipe reads return arbitrary byte chunks: a JSON line may arrive split
across several reads, or several lines in one. LineBuffer carries the
unterminated tail of each chunk over to the next read so the parser
only ever sees complete lines.
"""
from __future__ import annotations

import json
import logging
from typing import Any

from .config import USAGE_LIMIT_MARKER, EventCallback, fire_event
from .events import ClaudeError, ClaudeOutput, ClaudeResponse, SessionCreated
from .process_session import ProcessSession
from .registry import SessionRegistry
from .sanitizer import sanitize_record

logger = logging.getLogger(__name__)


class LineBuffer:
    """Reassembles newline-terminated lines from byte chunks."""

    def __init__(self) -> None:
        self._pending = b""

    @property
    def pending(self) -> bytes:
        return self._pending

    def feed(self, chunk: bytes) -> list[str]:
        """Add ``chunk`` and return every line it completed."""
        if not chunk:
            return []
        parts = (self._pending + chunk).split(b"\n")
        self._pending = parts.pop()
        return [_decode(part) for part in parts]

    def flush(self) -> list[str]:
        """Return the unterminated tail (at EOF) and reset."""
        tail, self._pending = self._pending, b""
        return [_decode(tail)] if tail else []


def _decode(raw: bytes) -> str:
    # Decoding whole lines keeps multibyte characters split across reads intact.
    return raw.decode("utf-8", errors="replace").rstrip("\r")


def _parse_record(line: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(line)
    except (ValueError, RecursionError):
        # Deeply nested input exhausts the decoder; treated as raw text.
        return None
    return parsed if isinstance(parsed, dict) else None


def content_has_marker(record: dict[str, Any], marker: str) -> bool:
    """Check ``message.content`` (string or text parts) for ``marker``."""
    message = record.get("message")
    if not isinstance(message, dict):
        return False
    content = message.get("content")
    if isinstance(content, str):
        return marker in content
    if isinstance(content, list):
        for part in content:
            if (
                isinstance(part, dict)
                and part.get("type") == "text"
                and isinstance(part.get("text"), str)
                and marker in part["text"]
            ):
                return True
    return False


class StreamDemultiplexer:
    """Turns one session's stdout/stderr bytes into StreamEvents.

    Stdout lines that parse as JSON objects become ``claude-response``
    events, anything else ``claude-output``; stderr lines always become
    ``claude-error``. A usage-limit marker stops the session: the
    offending line is still delivered, then the process is terminated
    and nothing else is emitted from either stream.
    """

    def __init__(
        self,
        session: ProcessSession,
        registry: SessionRegistry,
        emit: EventCallback | None,
        *,
        usage_limit_marker: str = USAGE_LIMIT_MARKER,
    ) -> None:
        self._session = session
        self._registry = registry
        self._emit = emit
        self._marker = usage_limit_marker
        self._stdout = LineBuffer()
        self._stderr = LineBuffer()

    async def feed_output(self, chunk: bytes) -> None:
        for line in self._stdout.feed(chunk):
            if self._session.halted:
                return
            await self._handle_output_line(line)

    async def feed_error(self, chunk: bytes) -> None:
        for line in self._stderr.feed(chunk):
            if self._session.halted:
                return
            await self._handle_error_line(line)

    async def finish_output(self) -> None:
        """Handle a final unterminated stdout line at EOF."""
        for line in self._stdout.flush():
            if self._session.halted:
                return
            await self._handle_output_line(line)

    async def finish_error(self) -> None:
        for line in self._stderr.flush():
            if self._session.halted:
                return
            await self._handle_error_line(line)

    # ── Line handling ──

    async def _handle_output_line(self, line: str) -> None:
        if not line.strip():
            return
        record = _parse_record(line)
        if record is None:
            await self._handle_raw_line(line)
            return

        if content_has_marker(record, self._marker):
            logger.warning(
                "Usage limit detected for session %s, terminating agent CLI",
                self._session.key,
            )
            await fire_event(self._emit, self._response(record))
            self._halt()
            return

        await self._capture_identity(record)

        if self._session.flags.smart_commit:
            record = sanitize_record(record)
        await fire_event(self._emit, self._response(record))

    async def _handle_raw_line(self, line: str) -> None:
        logger.debug("Non-JSON output session=%s: %s", self._session.key, line)
        event = ClaudeOutput(
            session_id=self._session.session_id,
            background=self._session.flags.background,
            smart_commit=self._session.flags.smart_commit,
            data=line,
        )
        await fire_event(self._emit, event)
        if self._marker in line:
            logger.warning(
                "Usage limit detected in raw output for session %s, "
                "terminating agent CLI",
                self._session.key,
            )
            self._halt()

    async def _handle_error_line(self, line: str) -> None:
        if not line.strip():
            return
        logger.debug("Agent CLI stderr session=%s: %s", self._session.key, line)
        await fire_event(self._emit, ClaudeError(
            session_id=self._session.session_id,
            background=self._session.flags.background,
            smart_commit=self._session.flags.smart_commit,
            error=line,
        ))

    async def _capture_identity(self, record: dict[str, Any]) -> None:
        session = self._session
        reported = record.get("session_id")
        if not isinstance(reported, str) or not reported:
            return
        if session.external_id is not None:
            return

        session.external_id = reported
        logger.info("Captured session ID %s (key was %s)", reported, session.key)
        self._registry.rekey(session, reported)

        if (
            not session.request.session_id
            and not session.flags.smart_commit
            and not session.created_event_sent
        ):
            session.created_event_sent = True
            await fire_event(self._emit, SessionCreated(session_id=reported))

    def _response(self, record: dict[str, Any]) -> ClaudeResponse:
        return ClaudeResponse(
            session_id=self._session.session_id,
            background=self._session.flags.background,
            smart_commit=self._session.flags.smart_commit,
            data=record,
        )

    def _halt(self) -> None:
        self._session.halted = True
        self._session.abort()
