"""Sub-order fulfillment transitions — commands and handler.

Sellers move their own sub-orders forward; admins may also override the
flow. A delivered sub-order is refunded only through an approved case for
that same sub-order.
"""

import structlog
from protean import handle
from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.order.status import OrderStatus
from marketplace.order.sub_order import SellerSubOrder
from marketplace.shared.actors import ActorRole, ensure_store_staff
from marketplace.shared.clock import as_utc
from marketplace.shared.errors import ErrorCode, check_revision, domain_error

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="SellerSubOrder")
class TransitionSubOrderStatus:
    sub_order_id = Identifier(required=True)
    target_status = String(required=True, choices=OrderStatus)
    actor_id = String(required=True, max_length=100)
    actor_role = String(required=True, choices=ActorRole)
    carrier = String(max_length=100)
    tracking_number = String(max_length=255)
    note = Text()
    approved_case_id = Identifier()
    override = Boolean(default=False)
    expected_revision = Integer()
    occurred_at = DateTime()


@marketplace.command(part_of="SellerSubOrder")
class UpdateTrackingInfo:
    sub_order_id = Identifier(required=True)
    tracking_number = String(required=True, max_length=255)
    carrier = String(max_length=100)
    actor_id = String(required=True, max_length=100)
    actor_role = String(required=True, choices=ActorRole)
    expected_revision = Integer()
    occurred_at = DateTime()


def _ensure_refundable_case(sub_order: SellerSubOrder, case_id: str) -> None:
    from marketplace.case.case import Case, CaseStatus

    case = current_domain.repository_for(Case).get(case_id)
    approved = case.approved_at is not None and CaseStatus(case.status) in (
        CaseStatus.APPROVED,
        CaseStatus.CLOSED,
    )
    if str(case.sub_order_id) != str(sub_order.id) or not approved:
        raise domain_error(
            ErrorCode.INVALID_TRANSITION,
            f"Case {case_id} is not an approved case for sub-order {sub_order.id}",
        )


@marketplace.command_handler(part_of=SellerSubOrder)
class SubOrderFulfillmentHandler:
    @handle(TransitionSubOrderStatus)
    def transition(self, command: TransitionSubOrderStatus):
        repo = current_domain.repository_for(SellerSubOrder)
        sub_order = repo.get(command.sub_order_id)

        ensure_store_staff(command.actor_id, command.actor_role, sub_order.store_id)
        check_revision(sub_order, command.expected_revision)

        target = OrderStatus(command.target_status)
        if (
            target == OrderStatus.REFUNDED
            and OrderStatus(sub_order.status) == OrderStatus.DELIVERED
            and command.approved_case_id
        ):
            _ensure_refundable_case(sub_order, command.approved_case_id)

        previous = sub_order.status
        sub_order.transition_to(
            target,
            actor_id=command.actor_id,
            actor_role=command.actor_role,
            carrier=command.carrier,
            tracking_number=command.tracking_number,
            note=command.note,
            approved_case_id=command.approved_case_id,
            override=bool(command.override),
            at=as_utc(command.occurred_at),
        )
        repo.add(sub_order)

        logger.info(
            "Sub-order status changed",
            sub_order_id=str(sub_order.id),
            previous_status=previous,
            new_status=sub_order.status,
            actor_role=command.actor_role,
            override=bool(command.override),
        )
        return sub_order.revision

    @handle(UpdateTrackingInfo)
    def update_tracking(self, command: UpdateTrackingInfo):
        repo = current_domain.repository_for(SellerSubOrder)
        sub_order = repo.get(command.sub_order_id)

        ensure_store_staff(command.actor_id, command.actor_role, sub_order.store_id)
        check_revision(sub_order, command.expected_revision)

        sub_order.update_tracking(
            tracking_number=command.tracking_number,
            carrier=command.carrier,
            at=as_utc(command.occurred_at),
        )
        repo.add(sub_order)
        return sub_order.revision
