# Overview: Entry point for presentation code; reads from the reconciled cache, writes through the services.

from __future__ import annotations

import logging
import threading
from typing import Any, Iterable

from flask import current_app

from ..errors import NotFoundError, ValidationError
from . import csv_normalizer, inventory_service, usage_service
from .change_feed import get_change_feed
from .inventory_filters import FilterState, Facets, StockRecord, apply_filters, facet_values, stock_summary
from .reconciliation_service import InventoryReconciler, ReconcilerState
from .stock_status import StockStatus

logger = logging.getLogger(__name__)


class InventoryEngine:
    """
    Reads come from the local cache, which only changes through the feed.
    Commands go to the store and return once committed; the cache catches
    up on the next sync(). Callers that need read-your-writes call sync()
    after a command.
    """

    def __init__(self, reconciler: InventoryReconciler):
        self.reconciler = reconciler
        self._view_memo: tuple | None = None
        self._facets_memo: tuple | None = None

    @classmethod
    def for_app(cls) -> "InventoryEngine":
        reconciler = InventoryReconciler(get_change_feed(), inventory_service.load_snapshot)
        return cls(reconciler).start()

    def start(self) -> "InventoryEngine":
        if self.reconciler.state is not ReconcilerState.SUBSCRIBED:
            self.reconciler.connect()
        return self

    def close(self) -> None:
        self.reconciler.close()

    @property
    def cache(self):
        return self.reconciler.cache

    def sync(self) -> int:
        """Drain pending feed events; resync in full if the feed dropped us."""
        if self.reconciler.state is ReconcilerState.DISCONNECTED:
            self.reconciler.reconnect()
        applied = self.reconciler.process_pending()
        if self.reconciler.state is ReconcilerState.DISCONNECTED:
            self.reconciler.reconnect()
        return applied

    # Reads

    def view(self, state: FilterState | None = None) -> list[StockRecord]:
        state = state or FilterState()
        version = self.cache.version
        memo = self._view_memo
        if memo is None or memo[0] != (version, state):
            memo = ((version, state), apply_filters(self.cache.records(), state))
            self._view_memo = memo
        return list(memo[1])

    def facets(self) -> Facets:
        version = self.cache.version
        memo = self._facets_memo
        if memo is None or memo[0] != version:
            memo = (version, facet_values(self.cache.records()))
            self._facets_memo = memo
        return memo[1]

    def summary(self) -> dict:
        return stock_summary(self.cache.records())

    def record(self, item_id: int) -> StockRecord:
        record = self.cache.get(item_id)
        if record is None:
            raise NotFoundError("inventory item not found", item_id=item_id)
        return record

    def status(self, item_id: int) -> StockStatus:
        return self.record(item_id).status

    # Commands

    def create(self, payload: dict) -> dict:
        return inventory_service.create_item(payload).to_dict()

    def update(self, item_id: int, payload: dict) -> dict:
        return inventory_service.update_item(item_id, payload).to_dict()

    def delete(self, item_id: int) -> bool:
        return inventory_service.delete_item(item_id)

    def adjust_quantity(
        self,
        item_id: int,
        *,
        quantity: int | None = None,
        delta: int | None = None,
        expected_quantity: int | None = None,
        note: str | None = None,
    ) -> dict:
        if (quantity is None) == (delta is None):
            raise ValidationError("provide exactly one of quantity or delta")
        if quantity is not None:
            item = inventory_service.set_quantity(
                item_id, quantity, expected_quantity=expected_quantity, note=note
            )
        else:
            item = inventory_service.adjust_by(item_id, delta, expected_quantity=expected_quantity, note=note)
        return item.to_dict()

    def record_usage(self, item_id: int, quantity_used: int, **kwargs: Any) -> dict:
        return usage_service.record_usage(item_id, quantity_used, **kwargs).to_dict()

    def parse_csv(self, raw_text: str, *, run_stamp: str | None = None) -> list[csv_normalizer.StagedItem]:
        return csv_normalizer.parse(
            raw_text,
            run_stamp=run_stamp,
            default_make=current_app.config.get("CSV_DEFAULT_MAKE", csv_normalizer.DEFAULT_MAKE),
        )

    def commit_staged(self, staged: Iterable[csv_normalizer.StagedItem]) -> inventory_service.CommitResult:
        return inventory_service.commit_staged(staged)


_ENGINE_LOCK = threading.Lock()


def get_inventory_engine() -> InventoryEngine:
    """Per-app engine, created once on first use and synced on every call."""
    engine = current_app.extensions.get("inventory_engine")
    if engine is None:
        with _ENGINE_LOCK:
            engine = current_app.extensions.get("inventory_engine")
            if engine is None:
                engine = InventoryEngine.for_app()
                current_app.extensions["inventory_engine"] = engine
    engine.sync()
    return engine
