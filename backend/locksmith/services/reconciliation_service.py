# Overview: Keeps a local inventory cache consistent with the store through the change feed.

"""
Reconciliation Invariants (authoritative)

State machine:

    CONNECTING --connect()--> SUBSCRIBED --transport error--> DISCONNECTED
         ^                                                        |
         +---------------------- reconnect() ---------------------+

- The cache is owned by the reconciler. Readers get StockRecord snapshots
  and never mutate; every change arrives as a feed event.
- Events are applied in arrival order. Arrival order can differ from commit
  order when writers commit concurrently, so rows carry version_id.
- INSERT adds the row when its id is absent (a replayed insert is a no-op).
- UPDATE replaces the row by id. An UPDATE for an unknown id is logged and
  ignored; it never inserts. An UPDATE whose version_id is lower than the
  cached row's is stale and ignored.
- DELETE removes by id and is idempotent.
- After a disconnect nothing is replayed: reconnect() subscribes first and
  then reloads the full collection from the store, so no change committed
  in between is lost.
- After close() no further events are applied.
"""
from __future__ import annotations

import enum
import logging
import threading
from typing import Callable, Iterable, Mapping

from ..errors import TransportError
from .change_feed import ChangeEvent, ChangeFeed, ChangeType, Subscription
from .inventory_filters import StockRecord

logger = logging.getLogger(__name__)


class ReconcilerState(str, enum.Enum):
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    DISCONNECTED = "disconnected"
    CLOSED = "closed"


class InventoryCache:
    """Id-keyed collection of StockRecord snapshots. Insertion order is kept."""

    def __init__(self):
        self._records: dict[int, StockRecord] = {}
        self._version = 0
        self._lock = threading.Lock()

    def records(self) -> list[StockRecord]:
        with self._lock:
            return list(self._records.values())

    def get(self, item_id: int) -> StockRecord | None:
        with self._lock:
            return self._records.get(item_id)

    def __contains__(self, item_id) -> bool:
        with self._lock:
            return item_id in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    @property
    def version(self) -> int:
        """Bumped on every applied change; derived views compare it to decide recompute."""
        return self._version

    def _replace_all(self, records: Iterable[StockRecord]) -> None:
        fresh = {r.id: r for r in records}
        with self._lock:
            self._records = fresh
            self._version += 1

    def _insert(self, record: StockRecord) -> bool:
        with self._lock:
            if record.id in self._records:
                return False
            self._records[record.id] = record
            self._version += 1
            return True

    def _update(self, record: StockRecord) -> bool | None:
        """True when applied, False for an unknown id, None when older than the cached row."""
        with self._lock:
            current = self._records.get(record.id)
            if current is None:
                return False
            if _is_older(record, current):
                return None
            self._records[record.id] = record
            self._version += 1
            return True

    def _delete(self, item_id: int) -> bool:
        with self._lock:
            if self._records.pop(item_id, None) is None:
                return False
            self._version += 1
            return True


def _is_older(incoming: StockRecord, current: StockRecord) -> bool:
    if incoming.version_id is None or current.version_id is None:
        return False
    return incoming.version_id < current.version_id


class InventoryReconciler:
    def __init__(
        self,
        feed: ChangeFeed,
        loader: Callable[[], Iterable[Mapping]],
        *,
        table: str = "inventory",
    ):
        self.feed = feed
        self.loader = loader
        self.table = table
        self.cache = InventoryCache()
        self.state = ReconcilerState.CONNECTING
        self._subscription: Subscription | None = None
        self._listeners: list[Callable[[ChangeEvent | None], None]] = []
        self._lock = threading.RLock()

    def add_listener(self, listener: Callable[[ChangeEvent | None], None]) -> None:
        """listener(event) runs after each applied change; event is None after a full reload."""
        self._listeners.append(listener)

    def _notify(self, event: ChangeEvent | None) -> None:
        for listener in list(self._listeners):
            listener(event)

    def connect(self) -> "InventoryReconciler":
        with self._lock:
            if self.state is ReconcilerState.CLOSED:
                raise TransportError("reconciler is closed", table=self.table)
            self.state = ReconcilerState.CONNECTING
            # Subscribe before loading so changes committed during the load are queued
            self._subscription = self.feed.subscribe(self.table)
            try:
                rows = self.loader()
                self.cache._replace_all(StockRecord.from_row(row) for row in rows)
            except Exception:
                self._subscription.close()
                self._subscription = None
                self.state = ReconcilerState.DISCONNECTED
                logger.exception("initial inventory load failed", extra={"table": self.table})
                raise
            self.state = ReconcilerState.SUBSCRIBED
            logger.info("inventory cache loaded", extra={"table": self.table, "count": len(self.cache)})
        self._notify(None)
        return self

    def reconnect(self) -> "InventoryReconciler":
        """Drop the old subscription and resynchronize from the store in full."""
        with self._lock:
            if self._subscription is not None:
                self._subscription.close()
                self._subscription = None
        logger.info("inventory reconciler resyncing", extra={"table": self.table})
        return self.connect()

    def _disconnect(self, exc: TransportError) -> None:
        self.state = ReconcilerState.DISCONNECTED
        logger.warning("inventory reconciler disconnected", extra={"table": self.table, "error": exc.message})

    def apply(self, event: ChangeEvent) -> bool:
        """Apply one event to the cache. Returns True when the cache changed."""
        if event.table != self.table:
            return False
        row_id = event.row_id
        if event.type is ChangeType.INSERT:
            changed = self.cache._insert(StockRecord.from_row(event.row))
        elif event.type is ChangeType.UPDATE:
            record = StockRecord.from_row(event.row)
            outcome = self.cache._update(record)
            changed = outcome is True
            if outcome is False:
                logger.warning(
                    "update for unknown inventory id ignored",
                    extra={"table": self.table, "item_id": row_id, "sequence": event.sequence},
                )
            elif outcome is None:
                cached = self.cache.get(row_id)
                logger.info(
                    "stale inventory update ignored",
                    extra={
                        "table": self.table,
                        "item_id": row_id,
                        "sequence": event.sequence,
                        "version_id": record.version_id,
                        "cached_version_id": cached.version_id if cached else None,
                    },
                )
        elif event.type is ChangeType.DELETE:
            changed = self.cache._delete(row_id)
        else:
            changed = False
        return changed

    def process_pending(self, limit: int | None = None) -> int:
        """Apply queued events without blocking. Returns the number processed."""
        processed = 0
        with self._lock:
            if self.state is not ReconcilerState.SUBSCRIBED or self._subscription is None:
                return 0
            while limit is None or processed < limit:
                try:
                    event = self._subscription.get(timeout=0)
                except TransportError as exc:
                    self._disconnect(exc)
                    break
                if event is None:
                    break
                processed += 1
                if self.apply(event):
                    self._notify(event)
        return processed

    def run(self, stop_event: threading.Event, *, poll_interval: float = 0.5) -> None:
        """Blocking loop for a background thread. Reconnects after transport loss."""
        while not stop_event.is_set():
            if self.state is ReconcilerState.CLOSED:
                return
            if self.state is not ReconcilerState.SUBSCRIBED:
                try:
                    self.reconnect()
                except Exception:
                    logger.exception("inventory reconciler reconnect failed", extra={"table": self.table})
                    stop_event.wait(timeout=poll_interval)
                continue

            subscription = self._subscription
            try:
                event = subscription.get(timeout=poll_interval) if subscription else None
            except TransportError as exc:
                with self._lock:
                    if self.state is ReconcilerState.SUBSCRIBED:
                        self._disconnect(exc)
                continue
            if event is None:
                continue
            with self._lock:
                if self.state is not ReconcilerState.SUBSCRIBED:
                    continue
                changed = self.apply(event)
            if changed:
                self._notify(event)

    def close(self) -> None:
        with self._lock:
            if self._subscription is not None:
                self._subscription.close()
                self._subscription = None
            self.state = ReconcilerState.CLOSED
        logger.info("inventory reconciler closed", extra={"table": self.table})
