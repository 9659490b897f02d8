"""Shared fixtures for the marketplace tests.

Times are pinned: orders are placed at ``T0``, delivered a day later and
cases are opened two days after that, so return windows and SLA deadlines
never depend on the wall clock.
"""

import json
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from protean import current_domain

from marketplace.case.creation import CreateCase
from marketplace.directory import get_directory, reset_directory
from marketplace.order.decomposition import DecomposeOrder
from marketplace.order.shipping import TransitionSubOrderStatus
from marketplace.order.sub_order import SellerSubOrder
from marketplace.shared.actors import ActorRole
from marketplace.sla.configuration import SaveSlaConfiguration

T0 = datetime(2025, 3, 3, 9, 0, tzinfo=UTC)
DELIVERED_AT = T0 + timedelta(days=1)
CASE_OPENED_AT = DELIVERED_AT + timedelta(days=2)

BUYER_ID = "buyer-001"
ACME_STORE, ACME_SELLER = "store-acme", "seller-acme"
BOLT_STORE, BOLT_SELLER = "store-bolt", "seller-bolt"

DEFAULT_ITEMS = [
    {
        "store_id": ACME_STORE,
        "product_id": "prod-headphones",
        "product_title": "Studio Headphones",
        "category": "Electronics",
        "quantity": 2,
        "unit_price": 50.00,
    },
    {
        "store_id": ACME_STORE,
        "product_id": "prod-cable",
        "product_title": "Braided USB-C Cable",
        "category": "Electronics",
        "quantity": 1,
        "unit_price": 15.00,
    },
    {
        "store_id": BOLT_STORE,
        "product_id": "prod-novel",
        "product_title": "The Long Harbour",
        "category": "Books",
        "quantity": 1,
        "unit_price": 25.00,
    },
]


@pytest.fixture(autouse=True)
def stores():
    reset_directory()
    directory = get_directory()
    directory.register_store(ACME_STORE, "Acme Gadgets", seller_id=ACME_SELLER)
    directory.register_store(BOLT_STORE, "Bolt Books", seller_id=BOLT_SELLER)
    yield directory
    reset_directory()


@pytest.fixture()
def place_order():
    """Decompose an order; returns the handler's {order_id, order_number, sub_order_ids}."""

    def _place(items=None, shipping_total=10.0, payment_transaction_id=None, payment_captured=True, at=T0):
        items = items or DEFAULT_ITEMS
        subtotal = sum(Decimal(str(i["unit_price"])) * i["quantity"] for i in items)
        return current_domain.process(
            DecomposeOrder(
                buyer_id=BUYER_ID,
                items=json.dumps(items),
                items_subtotal=float(subtotal),
                shipping_total=shipping_total,
                payment_transaction_id=payment_transaction_id,
                payment_captured=payment_captured,
                occurred_at=at,
            ),
            asynchronous=False,
        )

    return _place


def _sub_order_for_store(sub_order_ids, store_id) -> SellerSubOrder:
    repo = current_domain.repository_for(SellerSubOrder)
    return next(s for s in (repo.get(i) for i in sub_order_ids) if str(s.store_id) == store_id)


@pytest.fixture()
def sub_order_of():
    """Look up the sub-order of ``store_id`` among a placed order's sub-orders."""
    return _sub_order_for_store


@pytest.fixture()
def deliver():
    """Walk a Paid sub-order through Preparing and Shipped to Delivered as its seller."""

    def _deliver(sub_order_id, delivered_at=DELIVERED_AT):
        sub_order = current_domain.repository_for(SellerSubOrder).get(sub_order_id)
        seller_id = get_directory().seller_of(sub_order.store_id)
        steps = [
            ("Preparing", {}),
            ("Shipped", {"carrier": "FastShip", "tracking_number": "FS-1001"}),
            ("Delivered", {}),
        ]
        for offset, (target, extra) in enumerate(steps):
            current_domain.process(
                TransitionSubOrderStatus(
                    sub_order_id=sub_order_id,
                    target_status=target,
                    actor_id=seller_id,
                    actor_role=ActorRole.SELLER.value,
                    occurred_at=delivered_at - timedelta(hours=len(steps) - 1 - offset),
                    **extra,
                ),
                asynchronous=False,
            )
        return current_domain.repository_for(SellerSubOrder).get(sub_order_id)

    return _deliver


@pytest.fixture()
def delivered_acme(place_order, deliver):
    """The Acme sub-order of a fresh order, delivered at DELIVERED_AT."""
    placed = place_order()
    acme = _sub_order_for_store(placed["sub_order_ids"], ACME_STORE)
    return deliver(str(acme.id))


@pytest.fixture()
def default_sla():
    """A global default SLA: 24h to first response, 72h to resolution."""
    return current_domain.process(
        SaveSlaConfiguration(
            name="Default",
            first_response_hours=24,
            resolution_hours=72,
            priority=0,
            actor_role=ActorRole.ADMIN.value,
        ),
        asynchronous=False,
    )


@pytest.fixture()
def open_case():
    """Open a case as the buyer; ``selections`` maps item ids to quantities."""

    def _open(sub_order, selections=None, case_type="Return", reason="Arrived damaged", at=CASE_OPENED_AT):
        if selections is None:
            selections = {str(sub_order.items[0].id): 1}
        return current_domain.process(
            CreateCase(
                sub_order_id=str(sub_order.id),
                buyer_id=BUYER_ID,
                case_type=case_type,
                reason=reason,
                items=json.dumps([{"item_id": k, "quantity": v} for k, v in selections.items()]),
                occurred_at=at,
            ),
            asynchronous=False,
        )

    return _open
