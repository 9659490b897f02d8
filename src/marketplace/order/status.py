"""Fulfillment status machine shared by orders and seller sub-orders.

    New → Paid → Preparing → Shipped → Delivered → Refunded
    {New, Paid, Preparing, Shipped} → Cancelled → Refunded

An administrative override may skip forward along the linear path or cancel,
but never move backward.
"""

from enum import Enum

from marketplace.shared.errors import ErrorCode, domain_error


class OrderStatus(Enum):
    NEW = "New"
    PAID = "Paid"
    PREPARING = "Preparing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
    REFUNDED = "Refunded"


_VALID_TRANSITIONS = {
    OrderStatus.NEW: {OrderStatus.PAID, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: {OrderStatus.REFUNDED},
    OrderStatus.REFUNDED: set(),  # terminal
}

_FORWARD_PATH = [
    OrderStatus.NEW,
    OrderStatus.PAID,
    OrderStatus.PREPARING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
]

_CANCELLABLE_STATUSES = {
    OrderStatus.NEW,
    OrderStatus.PAID,
    OrderStatus.PREPARING,
    OrderStatus.SHIPPED,
}


def _invalid(current: OrderStatus, target: OrderStatus):
    return domain_error(
        ErrorCode.INVALID_TRANSITION,
        f"Cannot transition from {current.value} to {target.value}",
    )


def assert_can_transition(current: OrderStatus, target: OrderStatus, override: bool = False) -> None:
    if target in _VALID_TRANSITIONS[current]:
        return
    if override:
        if target == OrderStatus.CANCELLED and current in _CANCELLABLE_STATUSES:
            return
        if (
            current in _FORWARD_PATH
            and target in _FORWARD_PATH
            and _FORWARD_PATH.index(target) > _FORWARD_PATH.index(current)
        ):
            return
    raise _invalid(current, target)
