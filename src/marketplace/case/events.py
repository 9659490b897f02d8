"""Domain events for return and complaint cases."""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Case")
class CaseOpened:
    """A buyer opened a return or complaint case against a delivered sub-order."""

    __version__ = 1

    case_id = Identifier(required=True)
    case_number = String(required=True)
    sub_order_id = Identifier(required=True)
    order_id = Identifier(required=True)
    store_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    case_type = String(required=True)
    category = String()
    item_count = Integer(required=True)
    requested_amount = Float(required=True)
    created_at = DateTime(required=True)


@marketplace.event(part_of="Case")
class CaseStatusChanged:
    __version__ = 1

    case_id = Identifier(required=True)
    case_number = String(required=True)
    store_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    actor_id = String(required=True)
    actor_role = String(required=True)
    is_first_response = Boolean(default=False)
    is_resolution = Boolean(default=False)
    changed_at = DateTime(required=True)


@marketplace.event(part_of="Case")
class CaseApproved:
    """The case was approved; its refund amount is final."""

    __version__ = 1

    case_id = Identifier(required=True)
    case_number = String(required=True)
    sub_order_id = Identifier(required=True)
    order_id = Identifier(required=True)
    store_id = Identifier(required=True)
    refund_amount = Float(required=True)
    approved_at = DateTime(required=True)


@marketplace.event(part_of="Case")
class CaseMessagePosted:
    __version__ = 1

    case_id = Identifier(required=True)
    message_id = Identifier(required=True)
    sender_id = String(required=True)
    sender_role = String(required=True)
    sent_at = DateTime(required=True)


@marketplace.event(part_of="Case")
class CaseEscalated:
    """An admin took the case over from the seller."""

    __version__ = 1

    case_id = Identifier(required=True)
    case_number = String(required=True)
    store_id = Identifier(required=True)
    escalated_by = String(required=True)
    reason = String(required=True)
    escalated_at = DateTime(required=True)


@marketplace.event(part_of="Case")
class CaseAdminDecisionRecorded:
    __version__ = 1

    case_id = Identifier(required=True)
    case_number = String(required=True)
    store_id = Identifier(required=True)
    decision = String(required=True)
    decided_by = String(required=True)
    reason = String()
    enforced_refund_amount = Float()
    decided_at = DateTime(required=True)
