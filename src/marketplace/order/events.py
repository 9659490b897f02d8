"""Domain events for orders and seller sub-orders."""

from protean.fields import Boolean, DateTime, Float, Identifier, String, Text

from marketplace.domain import marketplace


@marketplace.event(part_of="Order")
class OrderDecomposed:
    """A paid order was split into one sub-order per store."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    buyer_id = Identifier(required=True)
    payment_transaction_id = String()
    payment_captured = Boolean(default=False)
    items_subtotal = Float(required=True)
    allocations = Text(required=True)  # JSON list of {sub_order_id, store_id, items_subtotal, shipping_cost, category}
    decomposed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_at = DateTime(required=True)


@marketplace.event(part_of="SellerSubOrder")
class SubOrderStatusChanged:
    """A sub-order moved along its fulfillment state machine."""

    __version__ = 1

    sub_order_id = Identifier(required=True)
    order_id = Identifier(required=True)
    store_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    actor_id = String(required=True)
    actor_role = String(required=True)
    carrier = String()
    tracking_number = String()
    is_override = Boolean(default=False)
    changed_at = DateTime(required=True)


@marketplace.event(part_of="SellerSubOrder")
class SubOrderTrackingUpdated:
    __version__ = 1

    sub_order_id = Identifier(required=True)
    carrier = String()
    tracking_number = String(required=True)
    updated_at = DateTime(required=True)


@marketplace.event(part_of="SellerSubOrder")
class SubOrderItemStatusChanged:
    __version__ = 1

    sub_order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_at = DateTime(required=True)
