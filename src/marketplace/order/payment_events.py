"""Inbound cross-domain event handler — the marketplace reacts to Payment events.

A captured payment is the moment a multi-seller order becomes real: it is
decomposed into per-store sub-orders and starts its fulfillment.
"""

import structlog
from protean.utils.globals import current_domain
from protean.utils.mixins import handle
from shared.events.payments import PaymentCaptured

from marketplace.domain import marketplace
from marketplace.order.decomposition import DecomposeOrder
from marketplace.order.order import Order

logger = structlog.get_logger(__name__)

# Register external event so Protean can deserialize it
marketplace.register_external_event(PaymentCaptured, "Payments.PaymentCaptured.v1")


@marketplace.event_handler(part_of=Order, stream_category="payments::payment")
class PaymentCapturedEventHandler:
    """Decomposes an order when its payment is captured."""

    @handle(PaymentCaptured)
    def on_payment_captured(self, event: PaymentCaptured) -> None:
        logger.info(
            "Payment captured, decomposing order",
            payment_id=str(event.payment_id),
            payment_transaction_id=event.payment_transaction_id,
        )
        current_domain.process(
            DecomposeOrder(
                buyer_id=event.buyer_id,
                items=event.items,
                items_subtotal=event.items_subtotal,
                shipping_total=event.shipping_total,
                delivery_address=event.delivery_address,
                payment_transaction_id=event.payment_transaction_id,
                payment_captured=True,
                occurred_at=event.captured_at,
            ),
            asynchronous=False,
        )
