# Overview: Captures committed row changes from the ORM session and publishes them to the change feed.

"""
Change Capture Invariants (authoritative)

- after_flush records a snapshot of every new, dirty and deleted tracked row.
  Snapshots are taken at flush time, so a row changed twice in one
  transaction produces two events in order.
- Nothing is published until the outermost transaction commits.
- Rolling back a savepoint drops only the changes flushed inside it; rolling
  back the outer transaction drops everything.
- Closing a session without commit publishes nothing.
- Listeners are module level and bound to the Session class; importing this
  module installs them once per process.
"""
from __future__ import annotations

import logging

from flask import current_app, has_app_context
from sqlalchemy import event
from sqlalchemy.orm import Session

from ..models import InventoryItem, InventoryUsage
from .change_feed import ChangeType

logger = logging.getLogger(__name__)

TRACKED_TABLES = {
    InventoryItem: "inventory",
    InventoryUsage: "inventory_usage",
}

_PENDING_KEY = "locksmith.pending_changes"
_COMMITTED_KEY = "locksmith.root_committed"


def _pending(session) -> list:
    return session.info.setdefault(_PENDING_KEY, [])


def _table_for(obj) -> str | None:
    for model, table in TRACKED_TABLES.items():
        if isinstance(obj, model):
            return table
    return None


def _nearest_savepoint(transaction):
    while transaction is not None and not transaction.nested:
        transaction = transaction.parent
    return transaction


def _inside(tag, transaction) -> bool:
    while tag is not None:
        if tag is transaction:
            return True
        tag = tag.parent
    return False


@event.listens_for(Session, "after_flush")
def _collect_changes(session, flush_context):
    tag = session.get_nested_transaction()
    pending = _pending(session)

    for change_type, objects in (
        (ChangeType.INSERT, session.new),
        (ChangeType.UPDATE, session.dirty),
        (ChangeType.DELETE, session.deleted),
    ):
        for obj in objects:
            table = _table_for(obj)
            if table is None:
                continue
            if change_type is ChangeType.UPDATE and not session.is_modified(obj, include_collections=False):
                continue
            pending.append((tag, table, change_type, obj.to_dict()))


@event.listens_for(Session, "after_soft_rollback")
def _discard_rolled_back(session, previous_transaction):
    pending = session.info.get(_PENDING_KEY)
    if not pending:
        return
    if previous_transaction.nested:
        session.info[_PENDING_KEY] = [p for p in pending if not _inside(p[0], previous_transaction)]
    else:
        pending.clear()


@event.listens_for(Session, "after_commit")
def _mark_committed(session):
    # Fires for savepoint release too; only the outermost commit counts
    if session.get_nested_transaction() is None:
        session.info[_COMMITTED_KEY] = True


@event.listens_for(Session, "after_transaction_end")
def _publish_or_promote(session, transaction):
    if transaction.nested:
        parent = _nearest_savepoint(transaction.parent)
        pending = session.info.get(_PENDING_KEY)
        if pending:
            session.info[_PENDING_KEY] = [
                (parent if tag is transaction else tag, table, change_type, row)
                for tag, table, change_type, row in pending
            ]
        return

    if transaction.parent is not None:
        return

    committed = session.info.pop(_COMMITTED_KEY, False)
    pending = session.info.pop(_PENDING_KEY, [])
    if not committed or not pending:
        return

    if not has_app_context():
        logger.warning("committed changes dropped: no app context", extra={"count": len(pending)})
        return

    feed = current_app.extensions.get("change_feed")
    if feed is None:
        return

    for _tag, table, change_type, row in pending:
        feed.publish(table, change_type, row)
    logger.debug("change feed published", extra={"count": len(pending)})
