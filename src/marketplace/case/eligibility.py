"""Return eligibility — whether a buyer may open a case on a sub-order."""

from dataclasses import dataclass
from datetime import timedelta

from protean.utils.globals import current_domain

from marketplace.case.case import Case
from marketplace.order.order import Order
from marketplace.order.status import OrderStatus
from marketplace.order.sub_order import SellerSubOrder
from marketplace.settings import return_window_days
from marketplace.shared.clock import as_utc, utc_now
from marketplace.shared.errors import ErrorCode


@dataclass(frozen=True)
class Eligibility:
    allowed: bool
    blocked_reason: str | None = None
    code: str | None = None


def _cases_of(sub_order_id: str) -> list[Case]:
    return current_domain.repository_for(Case)._dao.query.filter(sub_order_id=str(sub_order_id)).all().items


def open_case_item_ids(sub_order_id: str) -> set[str]:
    """Item ids of the sub-order that are already covered by an open case."""
    covered: set[str] = set()
    for case in _cases_of(sub_order_id):
        if case.is_open:
            covered |= case.covered_item_ids()
    return covered


def returned_quantities(sub_order_id: str) -> dict[str, int]:
    """Quantity of each item already granted a refund by an approved case.

    Approved cases stay counted after they close, so a unit can be refunded
    only once across the life of the sub-order.
    """
    returned: dict[str, int] = {}
    for case in _cases_of(sub_order_id):
        if case.approved_at is None:
            continue
        for item in case.items or []:
            key = str(item.sub_order_item_id)
            returned[key] = returned.get(key, 0) + item.quantity
    return returned


def check_eligibility(sub_order: SellerSubOrder, order: Order, buyer_id: str, now=None) -> Eligibility:
    if str(order.buyer_id) != str(buyer_id):
        return Eligibility(
            False, "You are not authorized to open a case for this order.", ErrorCode.NOT_AUTHORIZED.value
        )

    if OrderStatus(sub_order.status) != OrderStatus.DELIVERED or sub_order.delivered_at is None:
        return Eligibility(False, "Cases can only be created for delivered orders.", ErrorCode.INVALID_TRANSITION.value)

    window = return_window_days()
    now = as_utc(now) or utc_now()
    if now - as_utc(sub_order.delivered_at) > timedelta(days=window):
        return Eligibility(
            False,
            f"Return window has expired. Cases must be created within {window} days of delivery.",
            ErrorCode.VALIDATION.value,
        )

    item_ids = {str(item.id) for item in (sub_order.items or [])}
    in_open_cases = open_case_item_ids(sub_order.id)
    if item_ids and item_ids <= in_open_cases:
        return Eligibility(
            False,
            "All items in this sub-order already have open cases.",
            ErrorCode.ITEM_ALREADY_IN_OPEN_CASE.value,
        )

    returned = returned_quantities(sub_order.id)
    fully_returned = {
        str(item.id) for item in (sub_order.items or []) if returned.get(str(item.id), 0) >= item.quantity
    }
    if item_ids and item_ids <= in_open_cases | fully_returned:
        return Eligibility(
            False,
            "Every item in this sub-order is already refunded or in an open case.",
            ErrorCode.VALIDATION.value,
        )

    return Eligibility(True)


def can_initiate_return(sub_order_id: str, buyer_id: str, now=None) -> Eligibility:
    """Can ``buyer_id`` open a case on the sub-order right now?

    True only for the buyer's own sub-order, once delivered and within the
    return window, while at least one item is not already in an open case.
    """
    sub_order = current_domain.repository_for(SellerSubOrder).get(sub_order_id)
    order = current_domain.repository_for(Order).get(sub_order.order_id)
    return check_eligibility(sub_order, order, buyer_id, now=now)
