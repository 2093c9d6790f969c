import pytest

from locksmith.errors import ConflictError, TransportError
from locksmith.extensions import db
from locksmith.models import InventoryItem
from locksmith.services import csv_normalizer, inventory_service, usage_service
from locksmith.services.change_feed import ChangeFeed, ChangeType


def _drain(subscription):
    events = []
    while True:
        event = subscription.get(timeout=0)
        if event is None:
            return events
        events.append(event)


@pytest.fixture
def inventory_events(db_session, feed):
    subscription = feed.subscribe("inventory")
    yield subscription
    subscription.close()


class TestChangeFeed:
    def test_publish_reaches_matching_subscribers_in_order(self):
        feed = ChangeFeed(queue_size=10)
        inv = feed.subscribe("inventory")
        other = feed.subscribe("inventory_usage")
        feed.publish("inventory", "INSERT", {"id": 1})
        feed.publish("inventory", ChangeType.UPDATE, {"id": 1})

        events = _drain(inv)
        assert [e.type for e in events] == [ChangeType.INSERT, ChangeType.UPDATE]
        assert events[0].sequence < events[1].sequence
        assert _drain(other) == []

    def test_overflow_disconnects_subscriber(self):
        feed = ChangeFeed(queue_size=2)
        sub = feed.subscribe("inventory")
        for i in range(3):
            feed.publish("inventory", "INSERT", {"id": i})
        assert not sub.connected
        with pytest.raises(TransportError):
            sub.get(timeout=0)

    def test_disconnect_all(self):
        feed = ChangeFeed()
        sub = feed.subscribe("inventory")
        feed.disconnect_all()
        with pytest.raises(TransportError):
            sub.get(timeout=0)
        assert feed.subscriber_count() == 0

    def test_closed_subscription_gets_nothing(self):
        feed = ChangeFeed()
        sub = feed.subscribe("inventory")
        sub.close()
        feed.publish("inventory", "INSERT", {"id": 1})
        assert feed.subscriber_count("inventory") == 0
        with pytest.raises(TransportError):
            sub.get(timeout=0)


class TestChangeCapture:
    def test_committed_writes_are_published(self, inventory_events, make_item):
        item = make_item(sku="CAP-1", quantity=5)
        item_id = item.id
        inventory_service.set_quantity(item_id, 4)
        inventory_service.delete_item(item_id)

        events = _drain(inventory_events)
        assert [e.type for e in events] == [ChangeType.INSERT, ChangeType.UPDATE, ChangeType.DELETE]
        assert all(e.row["id"] == item_id for e in events)
        assert events[0].row["sku"] == "CAP-1"
        assert events[1].row["quantity"] == 4

    def test_rolled_back_writes_are_not_published(self, inventory_events, db_session):
        db_session.add(InventoryItem(sku="NOPE", quantity=1, low_stock_threshold=3))
        db_session.flush()
        db_session.rollback()
        assert _drain(inventory_events) == []

    def test_failed_command_publishes_nothing(self, inventory_events, make_item):
        make_item(sku="DUP")
        _drain(inventory_events)
        with pytest.raises(ConflictError):
            inventory_service.create_item({"sku": "DUP"})
        assert _drain(inventory_events) == []

    def test_savepoint_rollback_drops_only_its_rows(self, inventory_events, make_item):
        make_item(sku="SH-1")
        _drain(inventory_events)
        text = "\n".join([
            "Item Name,Item Type,Quantity,FCC ID,Module,Unit Cost,Total Cost,Supplier,SKU,Price",
            "remote shell,shell,2,,,1.00,,Acme,SH-1,",
            "Toyota 3-Button Flip Key,flip key,1,,,12.00,,Acme,TOY-3,",
        ])
        inventory_service.commit_staged(csv_normalizer.parse(text, run_stamp="20261018120000"))

        events = _drain(inventory_events)
        assert [(e.type, e.row["sku"]) for e in events] == [(ChangeType.INSERT, "TOY-3")]

    def test_usage_publishes_item_update_and_usage_insert(self, db_session, feed, make_item):
        item_id = make_item(quantity=3).id
        inv = feed.subscribe("inventory")
        usage = feed.subscribe("inventory_usage")
        try:
            usage_service.record_usage(item_id, 1, job_id="J-1")
            [item_event] = _drain(inv)
            [usage_event] = _drain(usage)
            assert item_event.type is ChangeType.UPDATE
            assert item_event.row["quantity"] == 2
            assert usage_event.type is ChangeType.INSERT
            assert usage_event.row["job_id"] == "J-1"
        finally:
            inv.close()
            usage.close()

    def test_nothing_published_before_commit(self, inventory_events, db_session):
        db_session.add(InventoryItem(sku="LATER", quantity=1, low_stock_threshold=3))
        db_session.flush()
        assert _drain(inventory_events) == []
        db_session.commit()
        [event] = _drain(inventory_events)
        assert event.row["sku"] == "LATER"
        assert db.session.query(InventoryItem).count() == 1

    def test_delete_publishes_item_but_not_usage_detach(self, db_session, feed, make_item):
        item_id = make_item(sku="DET-1", quantity=3).id
        usage_service.record_usage(item_id, 1, job_id="J-9")
        inv = feed.subscribe("inventory")
        usage = feed.subscribe("inventory_usage")
        try:
            inventory_service.delete_item(item_id)
            [item_event] = _drain(inv)
            assert item_event.type is ChangeType.DELETE
            assert _drain(usage) == []

            [row] = usage_service.list_usage(job_id="J-9")
            assert row.inventory_id is None
            assert row.sku_at_use == "DET-1"
        finally:
            inv.close()
            usage.close()
