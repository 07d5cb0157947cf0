"""One agent CLI child process and its bookkeeping.

A ProcessSession owns the spawned process, its three pipes and its
temporary assets. It is created per request, registered once the
process is running, and finalized exactly once.
"""
from __future__ import annotations

import asyncio
import logging

from .lifecycle import validate_transition
from .models import SessionFlags, SessionPhase, SessionRequest
from .temp_assets import TempAssets

logger = logging.getLogger(__name__)


def _format_argv(argv: list[str]) -> str:
    parts = []
    for arg in argv:
        clean = arg.replace("\n", "\\n").replace("\r", "\\r")
        parts.append(f'"{clean}"' if " " in clean else clean)
    return " ".join(parts)


class ProcessSession:
    """State for a single agent CLI run."""

    def __init__(
        self,
        request: SessionRequest,
        assets: TempAssets | None = None,
    ) -> None:
        self.request = request
        self.flags: SessionFlags = request.flags
        # Provisional key; the registry fills in a placeholder if None.
        self.key: str | None = request.session_id
        self.external_id: str | None = None
        self.created_event_sent = False
        self.assets = assets
        self.process: asyncio.subprocess.Process | None = None
        self.phase = SessionPhase.SPAWNING
        # Set once a usage-limit marker was seen; no more events after that.
        self.halted = False

    @property
    def session_id(self) -> str | None:
        """Best-known session identifier for outgoing events."""
        return self.external_id or self.request.session_id

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process is not None else None

    @property
    def returncode(self) -> int | None:
        return self.process.returncode if self.process is not None else None

    def transition(self, target: SessionPhase) -> None:
        validate_transition(self.phase, target)
        logger.debug(
            "Session %s phase %s -> %s", self.key, self.phase.value, target.value,
        )
        self.phase = target

    async def spawn(self, argv: list[str], cwd: str) -> None:
        """Start the CLI. OSError (e.g. FileNotFoundError) propagates."""
        logger.info("Spawning agent CLI: %s", _format_argv(argv))
        logger.info(
            "Working directory: %s session_id=%s resume=%s",
            cwd, self.request.session_id, self.request.resume,
        )
        # create_subprocess_exec passes args as an array, no shell
        self.process = await asyncio.create_subprocess_exec(
            *argv,
            cwd=cwd,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        self.transition(SessionPhase.RUNNING)
        logger.info("Agent CLI started pid=%d", self.process.pid)

        if self.request.has_instruction:
            # One-shot --print run: nothing will ever be written to stdin.
            self.close_input()

    async def write_input(self, text: str) -> None:
        """Send a line to an interactive session's stdin."""
        stdin = self.process.stdin if self.process is not None else None
        if stdin is None or stdin.is_closing():
            raise RuntimeError(f"stdin of session {self.key} is closed")
        stdin.write(text.encode("utf-8") + b"\n")
        await stdin.drain()

    def close_input(self) -> None:
        stdin = self.process.stdin if self.process is not None else None
        if stdin is not None and not stdin.is_closing():
            stdin.close()

    def abort(self) -> bool:
        """Send SIGTERM. Returns False if the process is already gone."""
        if self.process is None or self.process.returncode is not None:
            return False
        try:
            self.process.terminate()
        except ProcessLookupError:
            return False
        logger.info("Sent SIGTERM to agent CLI pid=%d session=%s", self.process.pid, self.key)
        return True

    async def wait(self) -> int | None:
        if self.process is None:
            return None
        return await self.process.wait()
