"""Bounded, insertion-ordered sets of already-handled identifiers.

Entries never expire by age. They are only evicted by volume, oldest first,
once a set grows past its capacity. Nothing here is persisted: a restart
starts with empty sets.
"""

import logging
from collections import OrderedDict
from threading import Lock

from sleepchat.config import settings

logger = logging.getLogger(__name__)


class HandledIdSet:
    def __init__(self, capacity: int, name: str = "ids"):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.name = name
        self._items: OrderedDict[str, None] = OrderedDict()
        self._lock = Lock()

    def add(self, item: str) -> None:
        """Record ``item``; re-adding an existing id keeps its original position."""
        with self._lock:
            self._items.setdefault(item, None)
            self._evict()

    def enforce_capacity(self) -> int:
        """Trim back to capacity. Returns how many entries were evicted."""
        with self._lock:
            return self._evict()

    def _evict(self) -> int:
        evicted = 0
        while len(self._items) > self.capacity:
            self._items.popitem(last=False)
            evicted += 1
        return evicted

    def snapshot(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._items)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __contains__(self, item: object) -> bool:
        with self._lock:
            return item in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class DedupTracker:
    """Handled notification ids and handled sender ids, tracked independently."""

    def __init__(
        self,
        notification_capacity: int | None = None,
        sender_capacity: int | None = None,
    ):
        self.notifications = HandledIdSet(
            notification_capacity or settings.max_handled_invite_ids, name="notifications"
        )
        self.senders = HandledIdSet(sender_capacity or settings.max_handled_sender_ids, name="senders")

    def mark_handled(self, notification_id: str, sender_id: str | None = None) -> None:
        self.notifications.add(notification_id)
        if sender_id:
            self.senders.add(sender_id)

    def cleanup(self) -> int:
        evicted = self.notifications.enforce_capacity() + self.senders.enforce_capacity()
        if evicted:
            logger.debug(f"Dedup cleanup evicted {evicted} entries")
        return evicted

    def counts(self) -> dict[str, int]:
        return {"notifications": len(self.notifications), "senders": len(self.senders)}
