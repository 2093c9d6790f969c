# Overview: In-process change feed; delivers committed row changes to subscribers.

"""
Change Feed Invariants (authoritative)

- Only committed changes are published (change_capture publishes once the
  outermost transaction has committed). Within one transaction events keep
  flush order. Across concurrent writers publishing happens after COMMIT
  returns, so a later commit can reach subscribers first; readers order
  updates of one row by its version_id.
- Only ORM unit-of-work changes are captured. Bulk statements (the
  inventory_usage detach on item delete) bypass the session events and
  publish nothing; the DELETE of the inventory row is published.
- Each subscription owns a bounded queue. A full queue does not block the
  writer: the subscription is marked disconnected and its reader must
  resynchronize from the store.
- A disconnected subscription raises TransportError from get(); it never
  silently resumes.
- Rows are plain dicts (InventoryItem.to_dict() shape). Subscribers never
  receive ORM objects.
"""
from __future__ import annotations

import enum
import itertools
import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Any

from flask import current_app

from ..errors import TransportError
from locksmith.time_utils import utcnow

logger = logging.getLogger(__name__)

_DISCONNECTED = object()


class ChangeType(str, enum.Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    type: ChangeType
    row: dict[str, Any]
    sequence: int
    published_at: Any = field(default_factory=utcnow, compare=False)

    @property
    def row_id(self):
        return self.row.get("id")

    def to_dict(self) -> dict:
        return {
            "table": self.table,
            "type": self.type.value,
            "row": dict(self.row),
            "sequence": self.sequence,
        }


class Subscription:
    """A reader's end of the feed for one table."""

    def __init__(self, feed: "ChangeFeed", table: str, maxsize: int):
        self.feed = feed
        self.table = table
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._disconnected = False
        self._closed = False
        self.disconnect_reason: str | None = None

    @property
    def connected(self) -> bool:
        return not self._disconnected and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    def _offer(self, event: ChangeEvent) -> None:
        if not self.connected:
            return
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            self._mark_disconnected("subscriber queue overflow")

    def _mark_disconnected(self, reason: str) -> None:
        if self._disconnected:
            return
        self._disconnected = True
        self.disconnect_reason = reason
        # Buffered events are meaningless after a gap; drop them and wake any reader
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
        self._queue.put_nowait(_DISCONNECTED)
        logger.warning("change feed subscription disconnected", extra={"table": self.table, "reason": reason})

    def get(self, timeout: float | None = None) -> ChangeEvent | None:
        """
        Next event, or None when nothing arrives within ``timeout``.

        timeout=0 polls without blocking; timeout=None blocks.
        Raises TransportError once the subscription is disconnected.
        """
        if self._closed:
            raise TransportError("subscription is closed", table=self.table)
        if self._disconnected:
            raise TransportError(self.disconnect_reason or "change feed disconnected", table=self.table)
        try:
            if timeout == 0:
                item = self._queue.get_nowait()
            else:
                item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _DISCONNECTED:
            raise TransportError(self.disconnect_reason or "change feed disconnected", table=self.table)
        return item

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.feed.unsubscribe(self)


class ChangeFeed:
    def __init__(self, queue_size: int = 1000):
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._subscriptions: list[Subscription] = []
        self._sequence = itertools.count(1)

    def subscribe(self, table: str) -> Subscription:
        subscription = Subscription(self, table, self.queue_size)
        with self._lock:
            self._subscriptions.append(subscription)
        logger.debug("change feed subscribed", extra={"table": table})
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def subscriber_count(self, table: str | None = None) -> int:
        with self._lock:
            return sum(1 for s in self._subscriptions if table is None or s.table == table)

    def publish(self, table: str, change_type: ChangeType | str, row: dict[str, Any]) -> ChangeEvent:
        with self._lock:
            event = ChangeEvent(
                table=table,
                type=ChangeType(change_type),
                row=dict(row),
                sequence=next(self._sequence),
            )
            targets = [s for s in self._subscriptions if s.table == table]
            for subscription in targets:
                subscription._offer(event)
        return event

    def disconnect_all(self, reason: str = "transport lost") -> None:
        """Drop every live subscription, as a lost connection would."""
        with self._lock:
            targets = list(self._subscriptions)
            self._subscriptions.clear()
        for subscription in targets:
            subscription._mark_disconnected(reason)
        logger.warning("change feed disconnected all subscribers", extra={"count": len(targets), "reason": reason})


def get_change_feed() -> ChangeFeed:
    return current_app.extensions["change_feed"]
