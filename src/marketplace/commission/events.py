"""Domain events for the commission ledger."""

from protean.fields import DateTime, Float, Identifier, String

from marketplace.domain import marketplace


@marketplace.event(part_of="CommissionRecord")
class CommissionRecorded:
    __version__ = 1

    commission_record_id = Identifier(required=True)
    order_id = Identifier(required=True)
    store_id = Identifier(required=True)
    order_amount = Float(required=True)
    commission_rate = Float(required=True)
    commission_amount = Float(required=True)
    calculated_at = DateTime(required=True)


@marketplace.event(part_of="CommissionRecord")
class CommissionRefundApplied:
    """A refund reduced the order amount and reversed part of the commission."""

    __version__ = 1

    commission_record_id = Identifier(required=True)
    order_id = Identifier(required=True)
    store_id = Identifier(required=True)
    case_id = String(required=True)
    refund_amount = Float(required=True)
    refunded_amount = Float(required=True)
    net_commission_amount = Float(required=True)
    applied_at = DateTime(required=True)
