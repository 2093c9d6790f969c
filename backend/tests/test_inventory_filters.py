import pytest

from locksmith.errors import ValidationError
from locksmith.services.inventory_filters import (
    FilterState,
    PriceRange,
    SortDirection,
    SortField,
    StockFilter,
    StockRecord,
    apply_filters,
    facet_values,
    price_bucket,
    stock_summary,
)


def _rec(id, **kw):
    row = {"id": id, "sku": f"SKU-{id}", "quantity": 5, "low_stock_threshold": 3}
    row.update(kw)
    return StockRecord.from_row(row)


@pytest.fixture
def records():
    return [
        _rec(1, sku="RSK-FD-FML3", make="Ford/Lincoln", category="smart key", supplier="KeylessFactory",
             fcc_id="M3N-A2C93142300", cost_cents=2420, quantity=1, description="Ford/Lincoln 2013-2020 5-Button smart key"),
        _rec(2, sku="HON-4B", make="Honda", category="remote", supplier="Acme", fcc_id="KR5V2X",
             cost_cents=850, quantity=0),
        _rec(3, sku="TOY-3B", make="Toyota", category="remote", supplier="KeylessFactory", fcc_id=None,
             cost_cents=None, quantity=12),
        _rec(4, sku="GM-PROX", make="GM", category="smart key", supplier=None, fcc_id="HYQ4EA",
             cost_cents=6500, quantity=3),
        _rec(5, sku="blank-1", make=None, category=None, supplier="Acme", cost_cents=1000, quantity=7),
    ]


def _ids(result):
    return [r.id for r in result]


class TestFiltering:
    def test_default_state_keeps_everything(self, records):
        assert sorted(_ids(apply_filters(records, FilterState()))) == [1, 2, 3, 4, 5]

    def test_search_is_case_insensitive_or_across_fields(self, records):
        assert _ids(apply_filters(records, FilterState(search="keylessfactory"))) == [1, 3]
        assert _ids(apply_filters(records, FilterState(search="kr5v"))) == [2]
        assert _ids(apply_filters(records, FilterState(search="5-button"))) == [1]
        assert _ids(apply_filters(records, FilterState(search="nothing-matches"))) == []

    def test_facets_are_anded(self, records):
        state = FilterState(category="remote", supplier="KeylessFactory")
        assert _ids(apply_filters(records, state)) == [3]
        state = FilterState(category="smart key", make="GM")
        assert _ids(apply_filters(records, state)) == [4]

    def test_all_sentinel_never_excludes(self, records):
        state = FilterState(category="all", make="all", supplier="all",
                            price_range=PriceRange.ALL, stock_status=StockFilter.ALL)
        assert len(apply_filters(records, state)) == len(records)

    def test_stock_status_facet_matches_classifier(self, records):
        assert _ids(apply_filters(records, FilterState(stock_status=StockFilter.OUT))) == [2]
        assert sorted(_ids(apply_filters(records, FilterState(stock_status=StockFilter.LOW)))) == [1, 4]
        assert sorted(_ids(apply_filters(records, FilterState(stock_status=StockFilter.IN_STOCK)))) == [3, 5]
        for record in apply_filters(records, FilterState(stock_status=StockFilter.LOW)):
            assert record.status.value == "low"

    def test_price_buckets(self, records):
        assert _ids(apply_filters(records, FilterState(price_range=PriceRange.NONE))) == [3]
        assert _ids(apply_filters(records, FilterState(price_range=PriceRange.UNDER_10))) == [2]
        assert sorted(_ids(apply_filters(records, FilterState(price_range=PriceRange.TEN_TO_50)))) == [1, 5]
        assert _ids(apply_filters(records, FilterState(price_range=PriceRange.OVER_50))) == [4]

    @pytest.mark.parametrize(
        "cents,bucket",
        [(None, PriceRange.NONE), (0, PriceRange.UNDER_10), (999, PriceRange.UNDER_10),
         (1000, PriceRange.TEN_TO_50), (4999, PriceRange.TEN_TO_50), (5000, PriceRange.OVER_50)],
    )
    def test_price_bucket_edges(self, cents, bucket):
        assert price_bucket(cents) is bucket

    def test_fcc_id_substring(self, records):
        assert _ids(apply_filters(records, FilterState(fcc_id="hyq"))) == [4]

    def test_filtering_is_idempotent(self, records):
        for state in (
            FilterState(search="key"),
            FilterState(category="remote", sort_field=SortField.QUANTITY, sort_direction=SortDirection.DESC),
            FilterState(stock_status=StockFilter.LOW, sort_field=SortField.COST),
        ):
            once = apply_filters(records, state)
            assert apply_filters(once, state) == once

    def test_input_is_not_mutated(self, records):
        before = list(records)
        apply_filters(records, FilterState(sort_field=SortField.QUANTITY))
        assert records == before


class TestSorting:
    def test_default_sort_is_sku_case_insensitive(self, records):
        skus = [r.sku for r in apply_filters(records, FilterState())]
        assert skus == sorted(skus, key=str.casefold)

    def test_none_sorts_last_both_directions(self, records):
        asc = apply_filters(records, FilterState(sort_field=SortField.COST))
        desc = apply_filters(records, FilterState(sort_field=SortField.COST, sort_direction=SortDirection.DESC))
        assert _ids(asc) == [2, 5, 1, 4, 3]
        assert _ids(desc) == [4, 1, 5, 2, 3]

    def test_ties_break_on_id(self):
        items = [_rec(9, quantity=2), _rec(4, quantity=2), _rec(7, quantity=1)]
        assert _ids(apply_filters(items, FilterState(sort_field=SortField.QUANTITY))) == [7, 4, 9]
        desc = FilterState(sort_field=SortField.QUANTITY, sort_direction=SortDirection.DESC)
        assert _ids(apply_filters(items, desc)) == [4, 9, 7]

    def test_text_fields(self, records):
        by_make = apply_filters(records, FilterState(sort_field=SortField.MAKE))
        assert _ids(by_make) == [1, 4, 2, 3, 5]

    def test_total_value(self, records):
        result = apply_filters(records, FilterState(sort_field=SortField.TOTAL_VALUE, sort_direction=SortDirection.DESC))
        assert _ids(result) == [4, 5, 1, 2, 3]


class TestFilterStateFromArgs:
    def test_parses_query_args(self):
        state = FilterState.from_args({
            "search": "  ford ", "make": "Ford/Lincoln", "price_range": "10_to_50",
            "stock_status": "LOW", "sort": "quantity", "direction": "desc",
        })
        assert state.search == "ford"
        assert state.make == "Ford/Lincoln"
        assert state.category == "all"
        assert state.price_range is PriceRange.TEN_TO_50
        assert state.stock_status is StockFilter.LOW
        assert state.sort_field is SortField.QUANTITY
        assert state.sort_direction is SortDirection.DESC

    def test_empty_args_give_defaults(self):
        assert FilterState.from_args({}) == FilterState()

    @pytest.mark.parametrize("key", ["price_range", "stock_status", "sort", "direction"])
    def test_unknown_enum_values_raise(self, key):
        with pytest.raises(ValidationError):
            FilterState.from_args({key: "bogus"})


def test_facet_values_from_unfiltered_collection(records):
    facets = facet_values(records)
    assert facets.categories == ("remote", "smart key")
    assert facets.makes == ("Ford/Lincoln", "GM", "Honda", "Toyota")
    assert facets.suppliers == ("Acme", "KeylessFactory")


def test_stock_summary(records):
    summary = stock_summary(records)
    assert summary["counts"] == {"out": 1, "low": 2, "in_stock": 2}
    assert summary["item_count"] == 5
    assert summary["needs_reorder"] == 3
    assert summary["total_units"] == 23
    assert summary["total_value_cents"] == 2420 + 0 + 6500 * 3 + 1000 * 7
