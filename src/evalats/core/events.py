from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any

logger = logging.getLogger(__name__)

ACTIVITY_CHANNEL = "activity"

Subscriber = tuple[asyncio.Queue, asyncio.AbstractEventLoop]


def job_channel(job_id: int) -> str:
    return f"job:{job_id}"


def member_channel(member_id: int) -> str:
    return f"member:{member_id}"


class EventBus:
    """In-process fan-out of feed events to websocket subscribers, keyed by channel.

    A queue is only ever filled on the loop that registered it; publishers on
    other threads (sync endpoints run in a worker pool) hand the event over.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscriber]] = defaultdict(list)

    def register(self, channel: str) -> asyncio.Queue[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._subscribers[channel].append((queue, asyncio.get_running_loop()))
        return queue

    def unregister(self, channel: str, queue: asyncio.Queue[dict[str, Any]]) -> None:
        self._subscribers[channel] = [item for item in self._subscribers.get(channel, []) if item[0] is not queue]

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, []))

    def publish_nowait(self, channel: str, event: dict[str, Any]) -> int:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        delivered = 0
        for queue, loop in list(self._subscribers.get(channel, [])):
            if loop is running:
                queue.put_nowait(event)
            elif loop.is_running():
                loop.call_soon_threadsafe(queue.put_nowait, event)
            else:
                logger.debug("Dropping event for channel=%s; subscriber loop is closed", channel)
                continue
            delivered += 1
        return delivered
