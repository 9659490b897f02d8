"""Commission calculation — command, handler and the events that trigger it.

A commission record is written for every store of an order once its
payment is captured. Writing it twice for the same (order, store) is a no-op.
"""

import json
from decimal import ROUND_HALF_UP

import structlog
from protean import handle
from protean.fields import DateTime, Float, Identifier, String
from protean.utils.globals import current_domain

from marketplace.commission.commission import CommissionRecord
from marketplace.commission.rules import find_rule
from marketplace.domain import marketplace
from marketplace.order.events import OrderDecomposed
from marketplace.settings import default_commission_rate
from marketplace.shared.clock import as_utc, utc_now
from marketplace.shared.money import CENT, to_decimal

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="CommissionRecord")
class RecordCommission:
    order_id = Identifier(required=True)
    store_id = Identifier(required=True)
    order_amount = Float(required=True, min_value=0.0)
    category = String(max_length=100)
    payment_transaction_id = String(max_length=255)
    occurred_at = DateTime()


def find_record(order_id: str, store_id: str) -> CommissionRecord | None:
    results = (
        current_domain.repository_for(CommissionRecord)
        ._dao.query.filter(order_id=str(order_id), store_id=str(store_id))
        .all()
    )
    if not results or not results.items:
        return None
    return results.first


def ensure_refund_fits(order_id: str, store_id: str, case_id: str, amount) -> None:
    """Raise when the ledger could not absorb a refund about to be approved.

    Orders whose payment was never captured carry no commission and accept
    any refund.
    """
    if not amount:
        return
    record = find_record(order_id, store_id)
    if record is None or str(case_id) in record.applied_case_ids():
        return
    record.check_refund(amount)


@marketplace.command_handler(part_of=CommissionRecord)
class RecordCommissionHandler:
    @handle(RecordCommission)
    def record_commission(self, command: RecordCommission):
        existing = find_record(command.order_id, command.store_id)
        if existing is not None:
            logger.info(
                "Commission already recorded",
                order_id=str(command.order_id),
                store_id=str(command.store_id),
            )
            return str(existing.id)

        amount = to_decimal(command.order_amount)
        rule = find_rule(command.store_id, command.category)
        if rule is not None:
            rate = to_decimal(rule.rate)
            commission = rule.commission_for(amount)
        else:
            rate = default_commission_rate()
            commission = (amount * rate / 100).quantize(CENT, rounding=ROUND_HALF_UP)

        record = CommissionRecord.calculate(
            order_id=command.order_id,
            store_id=command.store_id,
            order_amount=amount,
            rate=rate,
            commission=commission,
            payment_transaction_id=command.payment_transaction_id,
            rule=rule,
            calculated_at=as_utc(command.occurred_at) or utc_now(),
        )
        current_domain.repository_for(CommissionRecord).add(record)

        logger.info(
            "Commission recorded",
            order_id=str(command.order_id),
            store_id=str(command.store_id),
            rate=str(rate),
            commission=str(commission),
        )
        return str(record.id)


@marketplace.event_handler(part_of=CommissionRecord, stream_category="marketplace::order")
class OrderCommissionEventHandler:
    @handle(OrderDecomposed)
    def on_order_decomposed(self, event: OrderDecomposed) -> None:
        if not event.payment_captured:
            return
        for allocation in json.loads(event.allocations):
            current_domain.process(
                RecordCommission(
                    order_id=event.order_id,
                    store_id=allocation["store_id"],
                    order_amount=float(to_decimal(allocation["items_subtotal"])),
                    category=allocation.get("category"),
                    payment_transaction_id=event.payment_transaction_id,
                    occurred_at=event.decomposed_at,
                ),
                asynchronous=False,
            )
