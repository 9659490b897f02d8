"""Application tests for PaymentCapturedEventHandler — the marketplace reacts to Payment events."""

import json
from datetime import UTC, datetime

from marketplace.commission.calculation import find_record
from marketplace.order.order import Order
from marketplace.order.payment_events import PaymentCapturedEventHandler
from marketplace.order.status import OrderStatus
from marketplace.order.sub_order import SellerSubOrder
from protean import current_domain
from shared.events.payments import PaymentCaptured

ITEMS = [
    {"store_id": "store-acme", "product_id": "prod-1", "category": "Electronics", "quantity": 1, "unit_price": 80.0},
    {"store_id": "store-bolt", "product_id": "prod-2", "category": "Books", "quantity": 2, "unit_price": 10.0},
]


def _captured(transaction_id="txn-100"):
    return PaymentCaptured(
        payment_id="pay-001",
        buyer_id="buyer-001",
        payment_transaction_id=transaction_id,
        amount=106.0,
        items_subtotal=100.0,
        shipping_total=6.0,
        items=json.dumps(ITEMS),
        delivery_address=json.dumps(
            {"street": "1 Main St", "city": "Springfield", "postal_code": "12345", "country": "US"}
        ),
        captured_at=datetime(2025, 3, 3, 9, 0, tzinfo=UTC),
    )


def _orders():
    return current_domain.repository_for(Order)._dao.query.all().items


class TestPaymentCapturedHandler:
    def test_order_is_decomposed(self):
        PaymentCapturedEventHandler().on_payment_captured(_captured())
        orders = _orders()
        assert len(orders) == 1
        assert orders[0].status == OrderStatus.PAID.value
        assert orders[0].payment_transaction_id == "txn-100"
        sub_orders = current_domain.repository_for(SellerSubOrder)._dao.query.all().items
        assert sorted(s.store_id for s in sub_orders) == ["store-acme", "store-bolt"]

    def test_commission_is_recorded(self):
        PaymentCapturedEventHandler().on_payment_captured(_captured())
        order_id = str(_orders()[0].id)
        assert find_record(order_id, "store-acme").commission_amount == 8.0
        assert find_record(order_id, "store-bolt").commission_amount == 2.0

    def test_redelivered_event_is_ignored(self):
        handler = PaymentCapturedEventHandler()
        handler.on_payment_captured(_captured())
        handler.on_payment_captured(_captured())
        assert len(_orders()) == 1
