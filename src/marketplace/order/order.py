"""Order aggregate — the buyer-facing record of a multi-seller purchase.

The order keeps the buyer, the amounts and the delivery address snapshot.
Fulfillment happens on its SellerSubOrders, which reference the order by id.
The order's own status is set independently and is never derived from the
statuses of its sub-orders.
"""

import json
from uuid import uuid4

from protean.fields import DateTime, Float, Identifier, Integer, String, ValueObject

from marketplace.domain import marketplace
from marketplace.order.events import OrderDecomposed, OrderStatusChanged
from marketplace.order.status import OrderStatus, assert_can_transition
from marketplace.shared.clock import utc_now


@marketplace.value_object(part_of="Order")
class DeliveryAddress:
    """Shipping address as it was when the order was placed."""

    recipient_name = String(max_length=200)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=100)


@marketplace.aggregate
class Order:
    buyer_id = Identifier(required=True)
    order_number = String(required=True, max_length=20)
    status = String(
        choices=OrderStatus,
        default=OrderStatus.NEW.value,
    )
    items_subtotal = Float(required=True, min_value=0.0)
    shipping_total = Float(default=0.0, min_value=0.0)
    total_amount = Float(required=True, min_value=0.0)
    delivery_address = ValueObject(DeliveryAddress)
    payment_transaction_id = String(max_length=255)
    created_at = DateTime()
    confirmed_at = DateTime()
    updated_at = DateTime()
    revision = Integer(default=0)

    @classmethod
    def create(
        cls,
        buyer_id,
        items_subtotal,
        shipping_total,
        delivery_address=None,
        payment_transaction_id=None,
        created_at=None,
    ):
        now = created_at or utc_now()
        return cls(
            buyer_id=buyer_id,
            order_number=f"ORD-{uuid4().hex[:8].upper()}",
            items_subtotal=items_subtotal,
            shipping_total=shipping_total,
            total_amount=round(items_subtotal + shipping_total, 2),
            delivery_address=delivery_address,
            payment_transaction_id=payment_transaction_id,
            created_at=now,
            updated_at=now,
        )

    def transition_to(self, target: OrderStatus, override: bool = False, at=None) -> None:
        current = OrderStatus(self.status)
        assert_can_transition(current, target, override=override)

        now = at or utc_now()
        self.status = target.value
        if target == OrderStatus.PAID and self.confirmed_at is None:
            self.confirmed_at = now
        self._touch(now)

        self.raise_(
            OrderStatusChanged(
                order_id=self.id,
                previous_status=current.value,
                new_status=target.value,
                changed_at=now,
            )
        )

    def record_decomposition(self, allocations: list[dict], payment_captured: bool, at=None) -> None:
        now = at or utc_now()
        self._touch(now)
        self.raise_(
            OrderDecomposed(
                order_id=self.id,
                order_number=self.order_number,
                buyer_id=self.buyer_id,
                payment_transaction_id=self.payment_transaction_id,
                payment_captured=payment_captured,
                items_subtotal=self.items_subtotal,
                allocations=json.dumps(allocations),
                decomposed_at=now,
            )
        )

    def _touch(self, at) -> None:
        self.updated_at = at
        self.revision = (self.revision or 0) + 1
