"""CommissionRecord aggregate — what the marketplace earns on one store's sale.

One record exists per (order, store). It is written when the payment is
captured and changes afterwards only when an approved case refunds part of
the sale. Refunds reverse commission in proportion to the refunded share of
the order amount, so a full refund leaves no commission behind.

GMV and net payout are derived from the stored amounts on every read:

    GMV        = order_amount − refunded_amount
    net payout = GMV − net_commission_amount
"""

import json
from decimal import ROUND_HALF_UP, Decimal

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from marketplace.commission.events import CommissionRecorded, CommissionRefundApplied
from marketplace.domain import marketplace
from marketplace.shared.clock import utc_now
from marketplace.shared.errors import ErrorCode, domain_error
from marketplace.shared.money import CENT, to_amount, to_decimal


def gmv(order_amount, refunded_amount) -> Decimal:
    return to_decimal(order_amount) - to_decimal(refunded_amount)


def net_payout(order_amount, refunded_amount, net_commission_amount) -> Decimal:
    return gmv(order_amount, refunded_amount) - to_decimal(net_commission_amount)


@marketplace.aggregate
class CommissionRecord:
    order_id = Identifier(required=True)
    store_id = Identifier(required=True)
    payment_transaction_id = String(max_length=255)
    order_amount = Float(required=True, min_value=0.0)
    commission_rate = Float(required=True, min_value=0.0)
    commission_amount = Float(required=True, min_value=0.0)
    refunded_amount = Float(default=0.0)
    refunded_commission_amount = Float(default=0.0)
    net_commission_amount = Float(required=True)
    rule_id = Identifier()
    rule_description = String(max_length=255)
    refunded_case_ids = Text(default="[]")  # JSON list of case ids already applied
    calculated_at = DateTime(required=True)
    last_refund_at = DateTime()
    revision = Integer(default=0)

    @classmethod
    def calculate(
        cls,
        order_id,
        store_id,
        order_amount: Decimal,
        rate: Decimal,
        commission: Decimal,
        payment_transaction_id=None,
        rule=None,
        calculated_at=None,
    ):
        now = calculated_at or utc_now()
        record = cls(
            order_id=order_id,
            store_id=store_id,
            payment_transaction_id=payment_transaction_id,
            order_amount=to_amount(order_amount),
            commission_rate=float(rate),
            commission_amount=to_amount(commission),
            net_commission_amount=to_amount(commission),
            rule_id=rule.id if rule else None,
            rule_description=rule.description if rule else f"Default rate ({rate}%)",
            calculated_at=now,
        )
        record.raise_(
            CommissionRecorded(
                commission_record_id=record.id,
                order_id=order_id,
                store_id=store_id,
                order_amount=record.order_amount,
                commission_rate=record.commission_rate,
                commission_amount=record.commission_amount,
                calculated_at=now,
            )
        )
        return record

    @property
    def gmv(self) -> Decimal:
        return gmv(self.order_amount, self.refunded_amount)

    @property
    def net_payout(self) -> Decimal:
        return net_payout(self.order_amount, self.refunded_amount, self.net_commission_amount)

    @property
    def remaining_amount(self) -> Decimal:
        return self.gmv

    def applied_case_ids(self) -> list[str]:
        return json.loads(self.refunded_case_ids) if self.refunded_case_ids else []

    def check_refund(self, amount) -> Decimal:
        """Raise unless ``amount`` fits in what is left of the order amount."""
        amount = to_decimal(amount)
        if amount <= 0:
            raise domain_error(ErrorCode.VALIDATION, "Refund amount must be positive")
        if amount > self.remaining_amount:
            raise domain_error(
                ErrorCode.VALIDATION,
                f"Refund of {amount} exceeds the remaining {self.remaining_amount}",
            )
        return amount

    def apply_refund(self, case_id: str, amount, at=None) -> bool:
        """Apply a finalized refund. Returns False when the case was already applied."""
        case_id = str(case_id)
        applied = self.applied_case_ids()
        if case_id in applied:
            return False

        amount = self.check_refund(amount)
        now = at or utc_now()
        order_amount = to_decimal(self.order_amount)
        commission = to_decimal(self.commission_amount)
        refunded = to_decimal(self.refunded_amount) + amount

        # Reversal is recomputed from the totals, not accumulated per refund.
        if order_amount > 0:
            refunded_commission = (commission * refunded / order_amount).quantize(CENT, rounding=ROUND_HALF_UP)
        else:
            refunded_commission = Decimal("0.00")
        refunded_commission = min(refunded_commission, commission)

        self.refunded_amount = to_amount(refunded)
        self.refunded_commission_amount = to_amount(refunded_commission)
        self.net_commission_amount = to_amount(commission - refunded_commission)
        self.refunded_case_ids = json.dumps(applied + [case_id])
        self.last_refund_at = now
        self.revision = (self.revision or 0) + 1

        self.raise_(
            CommissionRefundApplied(
                commission_record_id=self.id,
                order_id=self.order_id,
                store_id=self.store_id,
                case_id=case_id,
                refund_amount=to_amount(amount),
                refunded_amount=self.refunded_amount,
                net_commission_amount=self.net_commission_amount,
                applied_at=now,
            )
        )
        return True
