"""Registry of live agent sessions keyed by session id.

Every mutation happens inside one lock so a rekey is never observed
half-done: a lookup resolves either the old key or the new key,
never both and never neither.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .process_session import ProcessSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Lock-guarded mapping from session key to ProcessSession."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[str, ProcessSession] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._sessions

    def get(self, key: str) -> ProcessSession | None:
        with self._lock:
            return self._sessions.get(key)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def register(self, session: ProcessSession) -> str:
        """Insert a session under its key and return the key.

        Sessions without a caller-supplied id get a millisecond
        timestamp placeholder, bumped until it is unused.
        """
        with self._lock:
            key = session.key
            if key is None:
                stamp = int(time.time() * 1000)
                while str(stamp) in self._sessions:
                    stamp += 1
                key = str(stamp)
                session.key = key
            existing = self._sessions.get(key)
            if existing is not None and existing is not session:
                logger.warning(
                    "Session key %s already registered, replacing previous session",
                    key,
                )
            self._sessions[key] = session
            active = len(self._sessions)
        logger.debug("Registered session key=%s active=%d", key, active)
        return key

    def rekey(self, session: ProcessSession, new_key: str) -> bool:
        """Move a session from its current key to ``new_key``.

        Returns False when the session is no longer registered
        (for example after an abort); only ``session.key`` is updated then.
        """
        with self._lock:
            old_key = session.key
            if self._sessions.get(old_key) is not session:
                session.key = new_key
                return False
            if old_key == new_key:
                return True
            existing = self._sessions.get(new_key)
            if existing is not None and existing is not session:
                logger.warning(
                    "Rekey %s -> %s replaces another live session",
                    old_key, new_key,
                )
            del self._sessions[old_key]
            self._sessions[new_key] = session
            session.key = new_key
        logger.info("Rekeyed session %s -> %s", old_key, new_key)
        return True

    def pop(self, key: str) -> ProcessSession | None:
        """Remove and return whatever session is registered under ``key``."""
        with self._lock:
            return self._sessions.pop(key, None)

    def remove(self, session: ProcessSession) -> bool:
        """Remove ``session`` under whichever key currently maps to it.

        No-op (returns False) if it was already removed.
        """
        with self._lock:
            for key, registered in self._sessions.items():
                if registered is session:
                    del self._sessions[key]
                    return True
        return False
