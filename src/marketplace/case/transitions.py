"""Case status transitions — command and handler.

An approval is refused up front when the commission ledger could not absorb
its refund, so the case and the ledger never disagree.
"""

import structlog
from protean import handle
from protean.fields import DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from marketplace.case.case import Case, CaseStatus
from marketplace.commission.calculation import ensure_refund_fits
from marketplace.domain import marketplace
from marketplace.shared.actors import ActorRole, ensure_store_staff
from marketplace.shared.clock import as_utc
from marketplace.shared.errors import check_revision

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Case")
class TransitionCase:
    case_id = Identifier(required=True)
    target_status = String(required=True, choices=CaseStatus)
    actor_id = String(required=True, max_length=100)
    actor_role = String(required=True, choices=ActorRole)
    note = Text()
    expected_revision = Integer()
    occurred_at = DateTime()


@marketplace.command_handler(part_of=Case)
class CaseTransitionHandler:
    @handle(TransitionCase)
    def transition(self, command: TransitionCase):
        repo = current_domain.repository_for(Case)
        case = repo.get(command.case_id)

        ensure_store_staff(command.actor_id, command.actor_role, case.store_id)
        check_revision(case, command.expected_revision)

        previous = case.status
        case.transition_to(
            CaseStatus(command.target_status),
            actor_id=command.actor_id,
            actor_role=command.actor_role,
            note=command.note,
            at=as_utc(command.occurred_at),
        )
        if case.status == CaseStatus.APPROVED.value:
            ensure_refund_fits(case.order_id, case.store_id, case.id, case.refund_amount)
        repo.add(case)

        logger.info(
            "Case status changed",
            case_id=str(case.id),
            case_number=case.case_number,
            previous_status=previous,
            new_status=case.status,
        )
        return case.revision
