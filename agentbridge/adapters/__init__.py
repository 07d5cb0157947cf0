"""Adapters package - Bridge between the session engine and client connections."""
from __future__ import annotations

__all__ = [
    "EventBus",
]

from agentbridge.adapters.event_bus import EventBus
