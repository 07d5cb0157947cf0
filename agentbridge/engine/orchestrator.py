"""Session orchestrator: runs agent CLI sessions end to end.

run_session() prepares inputs, spawns the CLI, pumps its output
through a StreamDemultiplexer and finalizes once the process exits.
abort() terminates a registered session from outside that flow.
"""
from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable

from .arguments import ArgumentBuilder
from .completion import CompletionCoordinator
from .config import BridgeConfig, EventCallback
from .models import SessionRequest
from .process_session import ProcessSession
from .registry import SessionRegistry
from .stream import StreamDemultiplexer
from .temp_assets import TempAssetManager

logger = logging.getLogger(__name__)


async def _stop_pumps(pumps: list[asyncio.Task]) -> None:
    for task in pumps:
        if not task.done():
            task.cancel()
    await asyncio.gather(*pumps, return_exceptions=True)


class SessionOrchestrator:
    """Owns the session registry and drives individual sessions.

    Each orchestrator has its own registry, so independent instances
    (e.g. one per test) never see each other's sessions.
    """

    def __init__(
        self,
        config: BridgeConfig | None = None,
        registry: SessionRegistry | None = None,
    ) -> None:
        self._config = config or BridgeConfig()
        self.registry = registry or SessionRegistry()
        self._builder = ArgumentBuilder(self._config)
        self._assets = TempAssetManager(self._config.temp_dir_name)

    @property
    def config(self) -> BridgeConfig:
        return self._config

    def active_sessions(self) -> list[str]:
        return self.registry.keys()

    async def run_session(
        self,
        request: SessionRequest,
        emit: EventCallback | None = None,
    ) -> int:
        """Run one agent CLI session to completion.

        Events go to ``emit`` in order, ending with ``claude-complete``
        (or a single ``claude-error`` when the process never started).
        Returns 0 on a clean exit; raises SessionExitError for a
        non-zero exit and SessionSpawnError when spawning failed.
        """
        cwd = request.cwd or os.getcwd()
        assets, command = self._assets.prepare(cwd, request.images, request.command)
        session = ProcessSession(request, assets)
        coordinator = CompletionCoordinator(self.registry, emit)

        argv = self._config.base_argv + self._builder.build(
            request, command=command, cwd=cwd,
        )
        try:
            await session.spawn(argv, cwd)
        except (OSError, ValueError) as exc:
            # ValueError: NUL byte in an argument or the working directory.
            error = await coordinator.handle_spawn_failure(session, exc)
            raise error from exc

        key = self.registry.register(session)
        logger.info("Session %s running pid=%s", key, session.pid)

        demux = StreamDemultiplexer(
            session,
            self.registry,
            emit,
            usage_limit_marker=self._config.usage_limit_marker,
        )
        pumps = [
            asyncio.create_task(
                self._pump(session.process.stdout, demux.feed_output, demux.finish_output)
            ),
            asyncio.create_task(
                self._pump(session.process.stderr, demux.feed_error, demux.finish_error)
            ),
        ]
        try:
            await asyncio.gather(*pumps)
            exit_code = await session.wait()
        except asyncio.CancelledError:
            logger.info("Session %s cancelled, terminating agent CLI", session.key)
            session.abort()
            await _stop_pumps(pumps)
            coordinator.release(session)
            raise
        except Exception:
            logger.exception("Stream handling failed for session %s", session.key)
            session.abort()
            # The surviving pump must not emit after claude-complete.
            await _stop_pumps(pumps)
            exit_code = await session.wait()

        return await coordinator.finalize(session, exit_code)

    async def _pump(
        self,
        reader: asyncio.StreamReader,
        feed: Callable[[bytes], Awaitable[None]],
        finish: Callable[[], Awaitable[None]],
    ) -> None:
        # Keep reading after a halt so the child never blocks on a full pipe.
        while True:
            chunk = await reader.read(self._config.read_chunk_size)
            if not chunk:
                break
            await feed(chunk)
        await finish()

    def abort(self, key: str) -> bool:
        """Terminate the session registered under ``key``.

        The registry entry is removed immediately; the exit path still
        cleans up temp files and emits ``claude-complete``.
        """
        session = self.registry.pop(key)
        if session is None:
            logger.debug("Abort requested for unknown session %s", key)
            return False
        logger.info("Aborting agent CLI session: %s", key)
        session.abort()
        return True

    async def write_input(self, key: str, text: str) -> bool:
        """Write a line to an interactive session's stdin."""
        session = self.registry.get(key)
        if session is None:
            return False
        await session.write_input(text)
        return True

    def close_input(self, key: str) -> bool:
        session = self.registry.get(key)
        if session is None:
            return False
        session.close_input()
        return True

    def shutdown(self) -> int:
        """Abort every registered session. Returns how many were signalled."""
        aborted = 0
        for key in self.registry.keys():
            if self.abort(key):
                aborted += 1
        if aborted:
            logger.info("Aborted %d session(s) on shutdown", aborted)
        return aborted
