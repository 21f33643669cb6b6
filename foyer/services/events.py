from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Set


def project_topic(project_id: str) -> str:
    return f"project:{project_id}"


def recycle_bin_topic(client_id: str) -> str:
    return f"recycle_bin_{client_id}"


class EventBus:
    """
    Pub/sub bus with optional topics.

    subscribe() with no topic receives every event; subscribe(topic) only
    receives events published to that topic.
    """

    def __init__(self, max_history: int = 100, max_queue: int = 1000):
        self._subscribers: Dict[Optional[str], Set[asyncio.Queue]] = {}
        self._history: Deque[dict] = deque(maxlen=max_history)
        self._max_queue = max_queue
        self._lock = asyncio.Lock()

    async def subscribe(self, topic: Optional[str] = None) -> asyncio.Queue:
        """Subscribe to a topic (or everything), returns a queue for receiving."""
        queue = asyncio.Queue(maxsize=self._max_queue)
        async with self._lock:
            self._subscribers.setdefault(topic, set()).add(queue)
        return queue

    async def unsubscribe(self, queue: asyncio.Queue) -> None:
        async with self._lock:
            for topic in list(self._subscribers):
                queues = self._subscribers[topic]
                queues.discard(queue)
                if not queues:
                    del self._subscribers[topic]

    async def publish(self, event_type: str, data: dict, topic: Optional[str] = None) -> None:
        """Publish to the topic's subscribers and the global stream."""
        event = {
            "type": event_type,
            "topic": topic,
            "data": data,
            "timestamp": time.time(),
        }
        self._history.append(event)

        async with self._lock:
            targets = set(self._subscribers.get(None, ()))
            if topic is not None:
                targets |= self._subscribers.get(topic, set())
            for queue in targets:
                try:
                    queue.put_nowait(event)
                except asyncio.QueueFull:
                    pass  # Slow consumer

    def subscriber_count(self, topic: Optional[str] = None) -> int:
        return len(self._subscribers.get(topic, ()))

    def get_recent(self, count: int = 20, topic: Optional[str] = None) -> list:
        """Recent events, optionally limited to one topic."""
        events = [e for e in self._history if topic is None or e["topic"] == topic]
        return events[-count:]


def build_recycle_publisher(event_bus: EventBus) -> Callable[[str, Dict[str, Any]], Awaitable[None]]:
    """Publisher for RecycleBinService: client events go to recycle_bin_{clientId}."""

    async def publish(event_type: str, data: Dict[str, Any]) -> None:
        client_id = data.get("clientId")
        topic = recycle_bin_topic(client_id) if client_id else None
        await event_bus.publish(event_type, data, topic=topic)

    return publish


__all__ = ["EventBus", "build_recycle_publisher", "project_topic", "recycle_bin_topic"]
