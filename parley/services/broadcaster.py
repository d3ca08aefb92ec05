"""Per-user fan-out of server-sent events."""

import asyncio
from typing import Any

from parley.core.logging import get_logger

logger = get_logger("broadcaster")


class Broadcaster:
    """Map of user id to that user's open event queues.

    Creating or removing a user's channel takes the lock. Publishing copies
    the queue set out of the map without awaiting, so it never contends
    with other publishers.
    """

    def __init__(self, queue_size: int = 100) -> None:
        self._channels: dict[int, set[asyncio.Queue[dict[str, Any]]]] = {}
        self._lock = asyncio.Lock()
        self._queue_size = queue_size

    async def subscribe(self, user_id: int) -> asyncio.Queue[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self._queue_size)
        async with self._lock:
            self._channels.setdefault(user_id, set()).add(queue)
        logger.debug(f"User {user_id} subscribed to events")
        return queue

    async def unsubscribe(self, user_id: int, queue: asyncio.Queue[dict[str, Any]]) -> None:
        async with self._lock:
            queues = self._channels.get(user_id)
            if queues is None:
                return
            queues.discard(queue)
            if not queues:
                del self._channels[user_id]

    def publish(self, user_id: int, event: dict[str, Any]) -> int:
        """Queue an event for every open subscription of a user.

        Slow subscribers whose queue is full miss the event. Returns the
        number of queues the event reached.
        """
        delivered = 0
        for queue in tuple(self._channels.get(user_id, ())):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(f"Dropping event for user {user_id}: subscriber queue full")
        return delivered

    def publish_many(self, user_ids: list[int], event: dict[str, Any]) -> int:
        return sum(self.publish(user_id, event) for user_id in user_ids)

    def stats(self) -> dict[str, int]:
        return {
            "users": len(self._channels),
            "subscriptions": sum(len(q) for q in self._channels.values()),
        }
