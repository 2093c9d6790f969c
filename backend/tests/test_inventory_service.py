import pytest

from locksmith.errors import ConflictError, NotFoundError, StaleQuantityError, ValidationError
from locksmith.extensions import db
from locksmith.models import ActivityLog, InventoryItem, InventoryUsage
from locksmith.services import csv_normalizer, inventory_service, usage_service
from locksmith.services.stock_status import StockStatus, classify_item

HEADER = "Item Name,Item Type,Quantity,FCC ID,Module,Unit Cost,Total Cost,Supplier,SKU,Price"


class TestCreateItem:
    def test_create_sets_defaults_and_derived_value(self, db_session):
        item = inventory_service.create_item({"sku": "HON-4B", "quantity": 4, "cost_cents": 850})
        assert item.id is not None
        assert item.low_stock_threshold == 3
        assert item.total_cost_value_cents == 3400
        assert item.usage_count == 0
        assert classify_item(item) is StockStatus.IN_STOCK

    def test_create_writes_activity(self, db_session):
        item = inventory_service.create_item({"sku": "HON-4B"})
        rows = db_session.query(ActivityLog).filter_by(entity_id=item.id).all()
        assert [r.action_type for r in rows] == ["create"]

    def test_duplicate_sku_is_conflict(self, db_session):
        inventory_service.create_item({"sku": "DUP-1"})
        with pytest.raises(ConflictError):
            inventory_service.create_item({"sku": "DUP-1"})
        assert db_session.query(InventoryItem).count() == 1

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"sku": ""},
            {"sku": "X", "quantity": -1},
            {"sku": "X", "quantity": 1.5},
            {"sku": "X", "cost_cents": -5},
            {"sku": "X", "year_from": 2020, "year_to": 2010},
            {"sku": "X", "unknown": 1},
            {"sku": "X", "low_stock_threshold": None},
        ],
    )
    def test_invalid_payloads_never_reach_the_store(self, db_session, payload):
        with pytest.raises(ValidationError):
            inventory_service.create_item(payload)
        assert db_session.query(InventoryItem).count() == 0


class TestUpdateItem:
    def test_update_recomputes_total(self, db_session, make_item):
        item = make_item(quantity=2, cost_cents=1000)
        updated = inventory_service.update_item(item.id, {"cost_cents": 1500, "make": "Ford"})
        assert updated.total_cost_value_cents == 3000
        assert updated.make == "Ford"

    def test_rename_to_existing_sku_conflicts(self, db_session, make_item):
        make_item(sku="A")
        b = make_item(sku="B")
        with pytest.raises(ConflictError):
            inventory_service.update_item(b.id, {"sku": "A"})

    def test_year_rule_checks_merged_state(self, db_session, make_item):
        item = make_item(year_from=2015, year_to=2018)
        with pytest.raises(ValidationError):
            inventory_service.update_item(item.id, {"year_to": 2010})

    def test_missing_item(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.update_item(999, {"make": "Ford"})


class TestQuantity:
    def test_set_quantity_is_last_write_wins(self, db_session, make_item):
        item = make_item(quantity=5)
        inventory_service.set_quantity(item.id, 4)
        inventory_service.set_quantity(item.id, 9)
        assert inventory_service.get_item(item.id).quantity == 9

    def test_expected_quantity_makes_it_conditional(self, db_session, make_item):
        item = make_item(quantity=5)
        inventory_service.set_quantity(item.id, 4, expected_quantity=5)
        with pytest.raises(StaleQuantityError) as exc_info:
            inventory_service.set_quantity(item.id, 3, expected_quantity=5)
        assert exc_info.value.actual == 4
        assert inventory_service.get_item(item.id).quantity == 4

    @pytest.mark.parametrize("expected", ["5", 5.0, True, -1])
    def test_malformed_expected_quantity_is_rejected(self, db_session, make_item, expected):
        item = make_item(quantity=5)
        with pytest.raises(ValidationError):
            inventory_service.set_quantity(item.id, 4, expected_quantity=expected)
        with pytest.raises(ValidationError):
            inventory_service.adjust_by(item.id, -1, expected_quantity=expected)
        assert inventory_service.get_item(item.id).quantity == 5

    def test_negative_is_rejected(self, db_session, make_item):
        item = make_item(quantity=1)
        with pytest.raises(ValidationError):
            inventory_service.set_quantity(item.id, -1)
        with pytest.raises(ValidationError):
            inventory_service.adjust_by(item.id, -2)
        assert inventory_service.get_item(item.id).quantity == 1

    def test_adjust_by(self, db_session, make_item):
        item = make_item(quantity=1, cost_cents=200)
        updated = inventory_service.adjust_by(item.id, 3)
        assert updated.quantity == 4
        assert updated.total_cost_value_cents == 800
        actions = [a.action_type for a in db_session.query(ActivityLog).order_by(ActivityLog.id)]
        assert actions == ["create", "adjust"]


class TestDeleteItem:
    def test_delete_is_hard_and_keeps_usage_history(self, db_session, make_item):
        item = make_item(sku="GONE", quantity=5, cost_cents=700)
        item_id = item.id
        usage_service.record_usage(item_id, 2, job_id="JOB-9")

        assert inventory_service.delete_item(item_id) is True
        db_session.expire_all()
        assert db_session.get(InventoryItem, item_id) is None

        usage = db_session.query(InventoryUsage).one()
        assert usage.inventory_id is None
        assert usage.sku_at_use == "GONE"
        assert usage.total_cost_cents_at_use == 1400
        assert usage_service.job_material_cost("JOB-9")["material_cost_cents"] == 1400

    def test_delete_missing_returns_false(self, db_session):
        assert inventory_service.delete_item(12345) is False


class TestCommitStaged:
    def test_round_trip_creates_one_item_per_row(self, db_session):
        text = "\n".join([
            HEADER,
            "2013-2020 Ford/Lincoln 5-Button Smart Key,smart key,1,,,24.20,24.20,KeylessFactory,RSK-FD-FML3,24.20",
            "2010-2014 Honda 4-Button Remote,remote,3,KR5V2X,,8.50,,Acme,,",
            "remote shell,shell,2,,,1.00,,Acme,SH-1,",
        ])
        staged = csv_normalizer.parse(text, run_stamp="20261018120000")
        result = inventory_service.commit_staged(staged)

        assert len(result.created) == 3
        assert result.conflicts == [] and result.errors == []

        ford = db_session.query(InventoryItem).filter_by(sku="RSK-FD-FML3").one()
        assert (ford.make, ford.year_from, ford.year_to) == ("Ford/Lincoln", 2013, 2020)
        assert ford.description == "Ford/Lincoln 2013-2020 5-Button smart key"
        assert ford.cost_cents == 2420

        honda = db_session.query(InventoryItem).filter_by(sku="IMP-20261018120000-0002").one()
        assert honda.make == "Honda"
        assert honda.fcc_id == "KR5V2X"

        imports = db_session.query(ActivityLog).filter_by(action_type="import").all()
        assert len(imports) == 1

    def test_blank_item_name_still_creates_item(self, db_session):
        text = HEADER + "\n,smart key,2,,,5.00,,Acme,SK-1,"
        result = inventory_service.commit_staged(csv_normalizer.parse(text, run_stamp="20261018120000"))

        assert len(result.created) == 1 and result.errors == []
        item = db_session.query(InventoryItem).filter_by(sku="SK-1").one()
        assert item.description == "Universal smart key"
        assert item.quantity == 2

    def test_conflicting_rows_do_not_abort_batch(self, db_session, make_item):
        make_item(sku="SH-1")
        text = "\n".join([
            HEADER,
            "remote shell,shell,2,,,1.00,,Acme,SH-1,",
            "Toyota 3-Button Flip Key,flip key,1,,,12.00,,Acme,TOY-3,",
            "1850-1860 Ford Key,shell,2,,,1.00,,Acme,SH-2,",
            "Kia Key,key,1,,,1.00,,Acme,TOY-3,",
        ])
        result = inventory_service.commit_staged(csv_normalizer.parse(text, run_stamp="20261018120000"))

        assert [c["row_number"] for c in result.conflicts] == [1, 4]
        assert [e["row_number"] for e in result.errors] == [3]
        assert [c["item"]["sku"] for c in result.created] == ["TOY-3"]
        assert db_session.query(InventoryItem).count() == 2

    def test_reimport_with_new_stamp_duplicates_synthetic_rows(self, db_session):
        text = HEADER + "\nHonda Remote,remote,2,,,5,10,Acme,,5"
        inventory_service.commit_staged(csv_normalizer.parse(text, run_stamp="20261018120000"))
        inventory_service.commit_staged(csv_normalizer.parse(text, run_stamp="20261018130000"))
        assert db_session.query(InventoryItem).count() == 2

    def test_reimport_with_same_stamp_conflicts(self, db_session):
        text = HEADER + "\nHonda Remote,remote,2,,,5,10,Acme,,5"
        inventory_service.commit_staged(csv_normalizer.parse(text, run_stamp="20261018120000"))
        result = inventory_service.commit_staged(csv_normalizer.parse(text, run_stamp="20261018120000"))
        assert len(result.conflicts) == 1
        assert db.session.query(InventoryItem).count() == 1


def test_list_items_filters(db_session, make_item):
    make_item(sku="A", make="Ford", quantity=1)
    make_item(sku="B", make="Honda", quantity=10)
    assert [i.sku for i in inventory_service.list_items(make="Ford")] == ["A"]
    assert [i.sku for i in inventory_service.list_items(min_quantity=5)] == ["B"]
    assert [row["sku"] for row in inventory_service.load_snapshot()] == ["A", "B"]
