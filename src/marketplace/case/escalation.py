"""Admin escalation — an admin takes a case over and records the final decision."""

import structlog
from protean import handle
from protean.fields import DateTime, Float, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from marketplace.case.case import AdminDecision, Case, CaseStatus
from marketplace.case.eligibility import open_case_item_ids, returned_quantities
from marketplace.commission.calculation import ensure_refund_fits
from marketplace.domain import marketplace
from marketplace.order.sub_order import SellerSubOrder
from marketplace.shared.actors import ActorRole
from marketplace.shared.clock import as_utc
from marketplace.shared.errors import ErrorCode, check_revision, domain_error

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Case")
class EscalateCase:
    case_id = Identifier(required=True)
    actor_id = String(required=True, max_length=100)
    actor_role = String(required=True, choices=ActorRole)
    reason = Text(required=True)
    expected_revision = Integer()
    occurred_at = DateTime()


@marketplace.command(part_of="Case")
class RecordAdminDecision:
    case_id = Identifier(required=True)
    decision = String(required=True, choices=AdminDecision)
    actor_id = String(required=True, max_length=100)
    actor_role = String(required=True, choices=ActorRole)
    reason = Text()
    refund_amount = Float()
    expected_revision = Integer()
    occurred_at = DateTime()


def _ensure_admin(actor_id: str, actor_role: str) -> None:
    if actor_role != ActorRole.ADMIN.value:
        raise domain_error(ErrorCode.NOT_AUTHORIZED, f"{actor_role} {actor_id} is not an admin")


def _ensure_items_still_returnable(case: Case) -> None:
    """A rejected case frees its items, so a later case may have claimed or refunded them since."""
    if case.covered_item_ids() & open_case_item_ids(case.sub_order_id):
        raise domain_error(
            ErrorCode.ITEM_ALREADY_IN_OPEN_CASE,
            f"Items of case {case.case_number} are now part of another open case",
        )
    sub_order = current_domain.repository_for(SellerSubOrder).get(case.sub_order_id)
    purchased = {str(item.id): item.quantity for item in (sub_order.items or [])}
    returned = returned_quantities(case.sub_order_id)
    for item in case.items or []:
        key = str(item.sub_order_item_id)
        if returned.get(key, 0) + item.quantity > purchased.get(key, 0):
            raise domain_error(ErrorCode.VALIDATION, f"Item {key} was already refunded by another case")


@marketplace.command_handler(part_of=Case)
class CaseEscalationHandler:
    @handle(EscalateCase)
    def escalate(self, command: EscalateCase):
        _ensure_admin(command.actor_id, command.actor_role)
        repo = current_domain.repository_for(Case)
        case = repo.get(command.case_id)
        check_revision(case, command.expected_revision)

        case.escalate(command.actor_id, command.reason, at=as_utc(command.occurred_at))
        repo.add(case)

        logger.info(
            "Case escalated",
            case_id=str(case.id),
            case_number=case.case_number,
            status=case.status,
        )
        return case.revision

    @handle(RecordAdminDecision)
    def record_decision(self, command: RecordAdminDecision):
        _ensure_admin(command.actor_id, command.actor_role)
        repo = current_domain.repository_for(Case)
        case = repo.get(command.case_id)
        check_revision(case, command.expected_revision)

        previous = case.status
        case.record_admin_decision(
            AdminDecision(command.decision),
            actor_id=command.actor_id,
            reason=command.reason,
            refund_amount=command.refund_amount,
            at=as_utc(command.occurred_at),
        )
        if case.status == CaseStatus.APPROVED.value:
            if previous == CaseStatus.REJECTED.value:
                _ensure_items_still_returnable(case)
            ensure_refund_fits(case.order_id, case.store_id, case.id, case.refund_amount)
        repo.add(case)

        logger.info(
            "Admin decision recorded",
            case_id=str(case.id),
            case_number=case.case_number,
            decision=case.admin_decision,
            previous_status=previous,
            new_status=case.status,
        )
        return case.revision
