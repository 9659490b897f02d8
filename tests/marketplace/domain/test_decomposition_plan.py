"""Tests for order decomposition planning and money helpers."""

from decimal import Decimal

import pytest
from marketplace.order.decomposition import plan_decomposition
from marketplace.shared.errors import error_codes
from marketplace.shared.money import split_evenly, to_decimal
from protean.exceptions import ValidationError

ITEMS = [
    {"store_id": "store-acme", "product_id": "p1", "quantity": 2, "unit_price": 50.0},
    {"store_id": "store-bolt", "product_id": "p2", "quantity": 1, "unit_price": 25.0},
    {"store_id": "store-acme", "product_id": "p3", "quantity": 1, "unit_price": 15.0},
]


class TestPlanDecomposition:
    def test_groups_by_store_in_first_appearance_order(self):
        plans = plan_decomposition(ITEMS, 140.0, 10.0)
        assert [p["store_id"] for p in plans] == ["store-acme", "store-bolt"]
        assert [len(p["items"]) for p in plans] == [2, 1]

    def test_store_subtotals(self):
        plans = plan_decomposition(ITEMS, 140.0, 0)
        assert [p["items_subtotal"] for p in plans] == [Decimal("115.00"), Decimal("25.00")]

    def test_shipping_is_split_with_remainder_first(self):
        plans = plan_decomposition(ITEMS, 140.0, 10.01)
        assert [p["shipping_cost"] for p in plans] == [Decimal("5.01"), Decimal("5.00")]

    def test_mismatched_subtotal(self):
        with pytest.raises(ValidationError) as exc:
            plan_decomposition(ITEMS, 139.99, 0)
        assert "decomposition_mismatch" in error_codes(exc.value)

    def test_empty_order(self):
        with pytest.raises(ValidationError):
            plan_decomposition([], 0, 0)

    def test_non_positive_quantity(self):
        items = [{"store_id": "store-acme", "product_id": "p1", "quantity": 0, "unit_price": 5.0}]
        with pytest.raises(ValidationError):
            plan_decomposition(items, 0, 0)

    def test_item_needs_store(self):
        items = [{"product_id": "p1", "quantity": 1, "unit_price": 5.0}]
        with pytest.raises(ValidationError):
            plan_decomposition(items, 5.0, 0)


class TestMoney:
    def test_to_decimal_rounds_half_up(self):
        assert to_decimal(0.125) == Decimal("0.13")
        assert to_decimal(None) == Decimal("0.00")

    def test_split_evenly_sums_back(self):
        shares = split_evenly(Decimal("10.00"), 3)
        assert shares == [Decimal("3.34"), Decimal("3.33"), Decimal("3.33")]
        assert sum(shares) == Decimal("10.00")

    def test_split_into_nothing(self):
        assert split_evenly(Decimal("10.00"), 0) == []
