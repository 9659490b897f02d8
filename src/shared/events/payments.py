"""Cross-domain event contracts for Payments domain events.

These classes define the event shape for consumption by the marketplace
context. They are registered as external events via
domain.register_external_event() with matching __type__ strings so Protean's
stream deserialization works correctly.
"""

from protean.core.event import BaseEvent
from protean.fields import DateTime, Float, Identifier, String, Text


class PaymentCaptured(BaseEvent):
    """The buyer's payment for a whole multi-seller order was captured."""

    __version__ = 1

    payment_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    payment_transaction_id = String(required=True)
    amount = Float(required=True)
    items_subtotal = Float(required=True)
    shipping_total = Float(default=0.0)
    items = Text(required=True)  # JSON list of {store_id, product_id, product_title, category, quantity, unit_price}
    delivery_address = Text()  # JSON dict
    captured_at = DateTime(required=True)
