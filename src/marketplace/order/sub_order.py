"""SellerSubOrder aggregate — the part of an order fulfilled by one store.

Each sub-order moves through the fulfillment state machine on its own and
keeps an append-only shipping status history. Its items carry a coarser
status of their own; refunds are tracked financially by cases and the
commission ledger, never as an item status.

Item State Machine:
    NEW → {PREPARING, SHIPPED, CANCELLED}
    PREPARING → {SHIPPED, CANCELLED}
    SHIPPED → DELIVERED
"""

from decimal import Decimal
from enum import Enum

from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String, Text

from marketplace.domain import marketplace
from marketplace.order.events import (
    SubOrderItemStatusChanged,
    SubOrderStatusChanged,
    SubOrderTrackingUpdated,
)
from marketplace.order.status import OrderStatus, assert_can_transition
from marketplace.shared.actors import ActorRole
from marketplace.shared.clock import utc_now
from marketplace.shared.errors import ErrorCode, domain_error
from marketplace.shared.money import to_decimal


class ItemStatus(Enum):
    NEW = "New"
    PREPARING = "Preparing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


_ITEM_TRANSITIONS = {
    ItemStatus.NEW: {ItemStatus.PREPARING, ItemStatus.SHIPPED, ItemStatus.CANCELLED},
    ItemStatus.PREPARING: {ItemStatus.SHIPPED, ItemStatus.CANCELLED},
    ItemStatus.SHIPPED: {ItemStatus.DELIVERED},
    ItemStatus.DELIVERED: set(),  # terminal
    ItemStatus.CANCELLED: set(),  # terminal
}


@marketplace.entity(part_of="SellerSubOrder")
class SellerSubOrderItem:
    """A purchased product line fulfilled by the sub-order's store."""

    product_id = Identifier(required=True)
    product_title = String(max_length=255)
    category = String(max_length=100)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    status = String(
        max_length=20,
        choices=ItemStatus,
        default=ItemStatus.NEW.value,
    )

    @property
    def line_total(self) -> Decimal:
        return to_decimal(self.unit_price) * self.quantity


@marketplace.entity(part_of="SellerSubOrder")
class ShippingStatusHistory:
    """One status change of the sub-order. Never updated once written."""

    previous_status = String(max_length=20)
    new_status = String(required=True, max_length=20)
    actor_id = String(required=True, max_length=100)
    actor_role = String(max_length=20, choices=ActorRole)
    changed_at = DateTime(required=True)
    carrier = String(max_length=100)
    tracking_number = String(max_length=255)
    note = Text()


@marketplace.aggregate
class SellerSubOrder:
    order_id = Identifier(required=True)
    store_id = Identifier(required=True)
    store_name = String(max_length=200)
    sub_order_number = String(required=True, max_length=40)
    status = String(
        choices=OrderStatus,
        default=OrderStatus.NEW.value,
    )
    items = HasMany(SellerSubOrderItem)
    status_history = HasMany(ShippingStatusHistory)
    items_subtotal = Float(required=True, min_value=0.0)
    shipping_cost = Float(default=0.0, min_value=0.0)
    total_amount = Float(required=True, min_value=0.0)
    payment_captured = Boolean(default=False)
    carrier = String(max_length=100)
    tracking_number = String(max_length=255)
    created_at = DateTime()
    shipped_at = DateTime()
    delivered_at = DateTime()
    cancelled_at = DateTime()
    refunded_at = DateTime()
    refund_case_id = Identifier()
    updated_at = DateTime()
    revision = Integer(default=0)

    @classmethod
    def create(cls, order_id, store_id, store_name, sub_order_number, items_data, shipping_cost, created_at=None):
        now = created_at or utc_now()
        items = [
            SellerSubOrderItem(
                product_id=item["product_id"],
                product_title=item.get("product_title"),
                category=item.get("category"),
                quantity=item["quantity"],
                unit_price=item["unit_price"],
            )
            for item in items_data
        ]
        items_subtotal = sum((item.line_total for item in items), Decimal("0.00"))
        return cls(
            order_id=order_id,
            store_id=store_id,
            store_name=store_name,
            sub_order_number=sub_order_number,
            items=items,
            items_subtotal=float(items_subtotal),
            shipping_cost=float(shipping_cost),
            total_amount=float(items_subtotal + to_decimal(shipping_cost)),
            created_at=now,
            updated_at=now,
        )

    # -------------------------------------------------------------------
    # Sub-order state machine
    # -------------------------------------------------------------------
    def transition_to(
        self,
        target: OrderStatus,
        actor_id: str,
        actor_role: str,
        carrier: str | None = None,
        tracking_number: str | None = None,
        note: str | None = None,
        approved_case_id: str | None = None,
        override: bool = False,
        at=None,
    ) -> None:
        """Move the sub-order to ``target`` and append a history entry.

        Refunding a delivered sub-order needs the id of an approved case for
        it; refunding a cancelled one needs the payment to have been captured.
        Overrides are reserved for admins.
        """
        current = OrderStatus(self.status)
        if override and actor_role != ActorRole.ADMIN.value:
            raise domain_error(ErrorCode.NOT_AUTHORIZED, "Only admins may override the fulfillment flow")
        assert_can_transition(current, target, override=override)

        if target == OrderStatus.REFUNDED:
            if current == OrderStatus.DELIVERED and not approved_case_id:
                raise domain_error(
                    ErrorCode.INVALID_TRANSITION,
                    "A delivered sub-order can only be refunded through an approved case",
                )
            if current == OrderStatus.CANCELLED and not self.payment_captured:
                raise domain_error(
                    ErrorCode.INVALID_TRANSITION,
                    "A cancelled sub-order can only be refunded when payment was captured",
                )

        now = at or utc_now()
        self.status = target.value
        if target == OrderStatus.PAID:
            self.payment_captured = True
        elif target == OrderStatus.SHIPPED:
            self.carrier = carrier or self.carrier
            self.tracking_number = tracking_number or self.tracking_number
            self.shipped_at = now
        elif target == OrderStatus.DELIVERED:
            self.delivered_at = now
        elif target == OrderStatus.CANCELLED:
            self.cancelled_at = now
        elif target == OrderStatus.REFUNDED:
            self.refunded_at = now
            self.refund_case_id = approved_case_id

        self.add_status_history(
            ShippingStatusHistory(
                previous_status=current.value,
                new_status=target.value,
                actor_id=str(actor_id),
                actor_role=actor_role,
                changed_at=now,
                carrier=carrier,
                tracking_number=tracking_number,
                note=note,
            )
        )
        self._touch(now)

        self.raise_(
            SubOrderStatusChanged(
                sub_order_id=self.id,
                order_id=self.order_id,
                store_id=self.store_id,
                previous_status=current.value,
                new_status=target.value,
                actor_id=str(actor_id),
                actor_role=actor_role,
                carrier=self.carrier,
                tracking_number=self.tracking_number,
                is_override=override,
                changed_at=now,
            )
        )

    def update_tracking(self, tracking_number: str, carrier: str | None = None, at=None) -> None:
        if OrderStatus(self.status) != OrderStatus.SHIPPED:
            raise domain_error(
                ErrorCode.INVALID_TRANSITION,
                "Tracking can only be updated while the sub-order is Shipped",
            )
        now = at or utc_now()
        self.tracking_number = tracking_number
        if carrier:
            self.carrier = carrier
        self._touch(now)
        self.raise_(
            SubOrderTrackingUpdated(
                sub_order_id=self.id,
                carrier=self.carrier,
                tracking_number=tracking_number,
                updated_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Item state machine
    # -------------------------------------------------------------------
    def get_item(self, item_id: str) -> SellerSubOrderItem | None:
        return next((i for i in (self.items or []) if str(i.id) == str(item_id)), None)

    def transition_item(self, item_id: str, target: ItemStatus, at=None) -> None:
        item = self.get_item(item_id)
        if item is None:
            raise domain_error(ErrorCode.NOT_FOUND, f"Item {item_id} not found in sub-order {self.id}")

        current = ItemStatus(item.status)
        if target not in _ITEM_TRANSITIONS[current]:
            raise domain_error(
                ErrorCode.INVALID_TRANSITION,
                f"Cannot transition item from {current.value} to {target.value}",
            )

        now = at or utc_now()
        item.status = target.value
        self._touch(now)
        self.raise_(
            SubOrderItemStatusChanged(
                sub_order_id=self.id,
                item_id=item.id,
                previous_status=current.value,
                new_status=target.value,
                changed_at=now,
            )
        )

    def _touch(self, at) -> None:
        self.updated_at = at
        self.revision = (self.revision or 0) + 1
