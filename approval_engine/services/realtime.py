"""In-process realtime fan-out.

Subscribers hold a bounded queue per connection; publishing never blocks,
and a full queue drops the event for that subscriber only.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

ADMINS_CHANNEL = "admins"

RealtimeEvent = tuple[str, dict[str, Any]]


def user_channel(login_id: str) -> str:
    return f"user:{login_id}"


@runtime_checkable
class Broadcaster(Protocol):
    """Interface for realtime fan-out."""

    async def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        """Push ``payload`` to every subscriber of ``channel``."""
        ...


class BroadcastHub:
    """Channel-keyed fan-out to per-connection asyncio queues."""

    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._subscribers: dict[str, set[asyncio.Queue[RealtimeEvent]]] = defaultdict(set)

    @asynccontextmanager
    async def subscribe(self, channels: Iterable[str]) -> AsyncIterator[asyncio.Queue[RealtimeEvent]]:
        """Register a queue on every channel for the lifetime of the context."""
        queue: asyncio.Queue[RealtimeEvent] = asyncio.Queue(maxsize=self._queue_size)
        joined = sorted(set(channels))
        for channel in joined:
            self._subscribers[channel].add(queue)
        try:
            yield queue
        finally:
            for channel in joined:
                subscribers = self._subscribers.get(channel)
                if subscribers is None:
                    continue
                subscribers.discard(queue)
                if not subscribers:
                    del self._subscribers[channel]

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, ()))

    async def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        for queue in list(self._subscribers.get(channel, ())):
            try:
                queue.put_nowait((event, payload))
            except asyncio.QueueFull:
                logger.warning("Realtime queue full on %s; dropping %s", channel, event)


_broadcaster: BroadcastHub = BroadcastHub()


def get_broadcaster() -> BroadcastHub:
    """FastAPI dependency for the realtime hub."""
    return _broadcaster


def set_broadcaster(hub: BroadcastHub) -> None:
    """Replace the hub (for testing)."""
    global _broadcaster
    _broadcaster = hub
