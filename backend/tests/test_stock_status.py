import pytest

from locksmith.errors import ValidationError
from locksmith.services.inventory_filters import StockRecord
from locksmith.services.stock_status import (
    StockStatus,
    adjust_quantity,
    apply_delta,
    classify,
    classify_item,
    total_cost_value,
)


class _Item:
    def __init__(self, quantity, threshold=3, cost_cents=250, id=1):
        self.id = id
        self.quantity = quantity
        self.low_stock_threshold = threshold
        self.cost_cents = cost_cents


class TestClassify:
    @pytest.mark.parametrize(
        "quantity,threshold,expected",
        [
            (0, 3, StockStatus.OUT),
            (1, 3, StockStatus.LOW),
            (3, 3, StockStatus.LOW),
            (4, 3, StockStatus.IN_STOCK),
            (0, 0, StockStatus.OUT),
            (1, 0, StockStatus.IN_STOCK),
        ],
    )
    def test_boundaries(self, quantity, threshold, expected):
        assert classify(quantity, threshold) is expected

    def test_missing_threshold_uses_default(self):
        assert classify(3) is StockStatus.LOW
        assert classify(4) is StockStatus.IN_STOCK

    def test_missing_threshold_uses_app_config(self, app):
        original = app.config["DEFAULT_LOW_STOCK_THRESHOLD"]
        app.config["DEFAULT_LOW_STOCK_THRESHOLD"] = 10
        try:
            with app.app_context():
                assert classify(7) is StockStatus.LOW
        finally:
            app.config["DEFAULT_LOW_STOCK_THRESHOLD"] = original

    def test_classify_item_accepts_models_records_and_dicts(self):
        assert classify_item(_Item(2)) is StockStatus.LOW
        assert classify_item({"quantity": 0, "low_stock_threshold": 3}) is StockStatus.OUT
        record = StockRecord.from_row({"id": 9, "sku": "X", "quantity": 8, "low_stock_threshold": 3})
        assert classify_item(record) is StockStatus.IN_STOCK

    @pytest.mark.parametrize("threshold", [0, 1, 3, 10])
    def test_status_never_regresses_as_quantity_grows(self, threshold):
        rank = {StockStatus.OUT: 0, StockStatus.LOW: 1, StockStatus.IN_STOCK: 2}
        ranks = [rank[classify(q, threshold)] for q in range(0, threshold + 25)]
        assert ranks == sorted(ranks)
        assert ranks[0] == 0 and ranks[-1] == 2


class TestAdjustQuantity:
    def test_returns_next_state_without_mutating(self):
        item = _Item(5, cost_cents=250)
        level = adjust_quantity(item, 2)
        assert level.quantity == 2
        assert level.total_cost_value_cents == 500
        assert level.status is StockStatus.LOW
        assert item.quantity == 5

    def test_zero_is_out(self):
        assert adjust_quantity(_Item(5), 0).status is StockStatus.OUT

    def test_negative_is_rejected_not_clamped(self):
        with pytest.raises(ValidationError):
            adjust_quantity(_Item(5), -1)

    @pytest.mark.parametrize("bad", [1.5, "3", None, True])
    def test_non_integer_is_rejected(self, bad):
        with pytest.raises(ValidationError):
            adjust_quantity(_Item(5), bad)

    def test_unset_cost_gives_no_total(self):
        assert adjust_quantity(_Item(5, cost_cents=None), 4).total_cost_value_cents is None

    def test_apply_delta(self):
        assert apply_delta(_Item(5), -2).quantity == 3
        assert apply_delta(_Item(5), 1).quantity == 6
        with pytest.raises(ValidationError):
            apply_delta(_Item(1), -2)


def test_total_cost_value():
    assert total_cost_value(2420, 3) == 7260
    assert total_cost_value(None, 3) is None
    assert total_cost_value(2420, 0) == 0
