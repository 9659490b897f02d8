"""Order decomposition — split a paid multi-seller order into sub-orders.

Line items are grouped by store in order of first appearance, one
SellerSubOrder per store. The store subtotals must add up exactly to the
declared items subtotal, otherwise nothing is created. Shipping is split
evenly across the sub-orders with the rounding remainder on the first one.
The order and all of its sub-orders are written in the same unit of work.
"""

import json
from decimal import Decimal

import structlog
from protean import handle
from protean.fields import Boolean, DateTime, Float, Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.directory import get_directory
from marketplace.domain import marketplace
from marketplace.order.order import DeliveryAddress, Order
from marketplace.order.status import OrderStatus
from marketplace.order.sub_order import SellerSubOrder
from marketplace.shared.actors import SYSTEM_ACTOR_ID, ActorRole
from marketplace.shared.clock import as_utc, utc_now
from marketplace.shared.errors import ErrorCode, domain_error
from marketplace.shared.money import split_evenly, to_amount, to_decimal

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Order")
class DecomposeOrder:
    """Create an order and its per-store sub-orders from a captured payment."""

    buyer_id = Identifier(required=True)
    items = Text(required=True)  # JSON list of {store_id, product_id, product_title, category, quantity, unit_price}
    items_subtotal = Float(required=True)
    shipping_total = Float(default=0.0)
    delivery_address = Text()  # JSON dict matching DeliveryAddress
    payment_transaction_id = String(max_length=255)
    payment_captured = Boolean(default=True)
    occurred_at = DateTime()


def plan_decomposition(items_data: list[dict], items_subtotal, shipping_total) -> list[dict]:
    """Group line items by store and allocate shipping.

    Returns one plan per store, in first-appearance order, with Decimal
    ``items_subtotal`` and ``shipping_cost``. Raises before anything is built
    when the store subtotals do not reconcile with ``items_subtotal``.
    """
    if not items_data:
        raise domain_error(ErrorCode.VALIDATION, "An order needs at least one line item")

    groups: dict[str, list[dict]] = {}
    for item in items_data:
        if not item.get("store_id") or not item.get("product_id"):
            raise domain_error(ErrorCode.VALIDATION, "Every line item needs a store_id and a product_id")
        if int(item.get("quantity", 0)) <= 0:
            raise domain_error(ErrorCode.VALIDATION, f"Quantity must be positive for product {item['product_id']}")
        if to_decimal(item.get("unit_price")) < 0:
            raise domain_error(ErrorCode.VALIDATION, f"Unit price cannot be negative for product {item['product_id']}")
        groups.setdefault(str(item["store_id"]), []).append(item)

    store_subtotals = {
        store_id: sum((to_decimal(i["unit_price"]) * int(i["quantity"]) for i in items), Decimal("0.00"))
        for store_id, items in groups.items()
    }
    declared = to_decimal(items_subtotal)
    computed = sum(store_subtotals.values(), Decimal("0.00"))
    if computed != declared:
        raise domain_error(
            ErrorCode.DECOMPOSITION_MISMATCH,
            f"Store subtotals add up to {computed} but the order declares {declared}",
        )

    shipping_shares = split_evenly(to_decimal(shipping_total), len(groups))
    return [
        {
            "store_id": store_id,
            "items": items,
            "items_subtotal": store_subtotals[store_id],
            "shipping_cost": shipping_shares[index],
        }
        for index, (store_id, items) in enumerate(groups.items())
    ]


def _shared_category(items: list[dict]) -> str | None:
    categories = {item.get("category") for item in items}
    return categories.pop() if len(categories) == 1 else None


@marketplace.command_handler(part_of=Order)
class DecomposeOrderHandler:
    @handle(DecomposeOrder)
    def decompose(self, command: DecomposeOrder):
        order_repo = current_domain.repository_for(Order)
        sub_order_repo = current_domain.repository_for(SellerSubOrder)

        if command.payment_transaction_id:
            existing = order_repo._dao.query.filter(payment_transaction_id=command.payment_transaction_id).all()
            if existing and existing.items:
                order = existing.first
                logger.info(
                    "Payment already decomposed",
                    order_id=str(order.id),
                    payment_transaction_id=command.payment_transaction_id,
                )
                sub_orders = sub_order_repo._dao.query.filter(order_id=str(order.id)).all().items
                return {
                    "order_id": str(order.id),
                    "order_number": order.order_number,
                    "sub_order_ids": [str(s.id) for s in sub_orders],
                }

        items_data = json.loads(command.items) if isinstance(command.items, str) else command.items
        plans = plan_decomposition(items_data, command.items_subtotal, command.shipping_total or 0.0)

        now = as_utc(command.occurred_at) or utc_now()
        address_data = command.delivery_address
        if isinstance(address_data, str):
            address_data = json.loads(address_data)

        order = Order.create(
            buyer_id=command.buyer_id,
            items_subtotal=to_amount(to_decimal(command.items_subtotal)),
            shipping_total=to_amount(to_decimal(command.shipping_total)),
            delivery_address=DeliveryAddress(**address_data) if address_data else None,
            payment_transaction_id=command.payment_transaction_id,
            created_at=now,
        )

        directory = get_directory()
        sub_orders = []
        allocations = []
        for index, plan in enumerate(plans, start=1):
            sub_order = SellerSubOrder.create(
                order_id=order.id,
                store_id=plan["store_id"],
                store_name=directory.store_name(plan["store_id"]),
                sub_order_number=f"{order.order_number}-S{index}",
                items_data=plan["items"],
                shipping_cost=plan["shipping_cost"],
                created_at=now,
            )
            if command.payment_captured:
                sub_order.transition_to(
                    OrderStatus.PAID,
                    actor_id=SYSTEM_ACTOR_ID,
                    actor_role=ActorRole.SYSTEM.value,
                    note="Payment captured",
                    at=now,
                )
            sub_orders.append(sub_order)
            allocations.append(
                {
                    "sub_order_id": str(sub_order.id),
                    "store_id": str(plan["store_id"]),
                    "items_subtotal": str(plan["items_subtotal"]),
                    "shipping_cost": str(plan["shipping_cost"]),
                    "category": _shared_category(plan["items"]),
                }
            )

        if command.payment_captured:
            order.transition_to(OrderStatus.PAID, at=now)
        order.record_decomposition(allocations, payment_captured=bool(command.payment_captured), at=now)

        order_repo.add(order)
        for sub_order in sub_orders:
            sub_order_repo.add(sub_order)

        logger.info(
            "Order decomposed",
            order_id=str(order.id),
            order_number=order.order_number,
            sub_orders=len(sub_orders),
        )
        return {
            "order_id": str(order.id),
            "order_number": order.order_number,
            "sub_order_ids": [str(s.id) for s in sub_orders],
        }
