"""Outbound event channel from the engine to whatever UI is attached.

``publish()`` never blocks: every subscriber gets a bounded queue and, when a
slow consumer lets it fill up, the oldest queued event is dropped to make room.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sleepchat.config import EVENT_HISTORY_SIZE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    kind: str  # invite_sent, request_ignored, location_unresolved, poll_failed, ...
    message: str
    data: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class EventChannel:
    def __init__(self, history_size: int = EVENT_HISTORY_SIZE, queue_size: int = 100):
        self._history: deque[Event] = deque(maxlen=history_size)
        self._subscribers: list[asyncio.Queue[Event]] = []
        self._queue_size = queue_size

    def publish(self, kind: str, message: str, **data) -> Event:
        event = Event(kind=kind, message=message, data=data)
        self._history.append(event)

        for queue in self._subscribers:
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(event)

        logger.debug(f"Event {kind}: {message}")
        return event

    def subscribe(self) -> asyncio.Queue[Event]:
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[Event]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def recent(self, limit: int | None = None) -> list[Event]:
        events = list(self._history)
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events
