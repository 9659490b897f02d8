"""Refund-driven commission recalculation.

Runs only off ``CaseApproved``, which is raised when the approval is
committed, so the ledger never reacts to a refund that is not final. The
approval itself is refused when the refund would not fit the ledger, so a
failure here is a real fault and propagates. Each case is applied at most
once per record, which makes replays harmless.
"""

import structlog
from protean import handle
from protean.fields import DateTime, Float, Identifier, Integer
from protean.utils.globals import current_domain

from marketplace.case.events import CaseApproved
from marketplace.commission.calculation import find_record
from marketplace.commission.commission import CommissionRecord
from marketplace.domain import marketplace
from marketplace.shared.clock import as_utc
from marketplace.shared.errors import ErrorCode, check_revision, domain_error

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="CommissionRecord")
class ApplyCommissionRefund:
    order_id = Identifier(required=True)
    store_id = Identifier(required=True)
    case_id = Identifier(required=True)
    refund_amount = Float(required=True)
    expected_revision = Integer()
    occurred_at = DateTime()


@marketplace.command_handler(part_of=CommissionRecord)
class ApplyCommissionRefundHandler:
    @handle(ApplyCommissionRefund)
    def apply_refund(self, command: ApplyCommissionRefund):
        record = find_record(command.order_id, command.store_id)
        if record is None:
            raise domain_error(
                ErrorCode.NOT_FOUND,
                f"No commission recorded for order {command.order_id} and store {command.store_id}",
            )
        check_revision(record, command.expected_revision)

        if record.apply_refund(command.case_id, command.refund_amount, at=as_utc(command.occurred_at)):
            current_domain.repository_for(CommissionRecord).add(record)
            logger.info(
                "Commission adjusted for refund",
                order_id=str(command.order_id),
                store_id=str(command.store_id),
                case_id=str(command.case_id),
                gmv=str(record.gmv),
                net_commission=str(record.net_commission_amount),
            )
        return record.revision


@marketplace.event_handler(part_of=CommissionRecord, stream_category="marketplace::case")
class CaseRefundEventHandler:
    @handle(CaseApproved)
    def on_case_approved(self, event: CaseApproved) -> None:
        if not event.refund_amount:
            return
        if find_record(event.order_id, event.store_id) is None:
            logger.info(
                "No commission recorded for refunded order",
                case_id=str(event.case_id),
                order_id=str(event.order_id),
                store_id=str(event.store_id),
            )
            return
        current_domain.process(
            ApplyCommissionRefund(
                order_id=event.order_id,
                store_id=event.store_id,
                case_id=event.case_id,
                refund_amount=event.refund_amount,
                occurred_at=event.approved_at,
            ),
            asynchronous=False,
        )
