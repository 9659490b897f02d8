"""Case aggregate — a buyer's return or complaint against a delivered sub-order.

State Machine:
    REQUESTED → UNDER_REVIEW → {APPROVED, REJECTED} → CLOSED

The first status change out of REQUESTED is the first response. Reaching
APPROVED or REJECTED resolves the case for SLA purposes. A case is open while
it is REQUESTED, UNDER_REVIEW or APPROVED, and an item may belong to at most
one open case at a time.

Escalation does not change the status. An admin takes the case over, and the
decision they record then moves the case along paths the seller cannot take,
e.g. approving a case the seller rejected or closing it straight away.
"""

from decimal import Decimal
from enum import Enum
from uuid import uuid4

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, Text

from marketplace.case.events import (
    CaseAdminDecisionRecorded,
    CaseApproved,
    CaseEscalated,
    CaseMessagePosted,
    CaseOpened,
    CaseStatusChanged,
)
from marketplace.domain import marketplace
from marketplace.shared.actors import ActorRole
from marketplace.shared.clock import utc_now
from marketplace.shared.errors import ErrorCode, domain_error
from marketplace.shared.money import to_amount, to_decimal

MAX_REASON_LENGTH = 2000


class CaseType(Enum):
    RETURN = "Return"
    COMPLAINT = "Complaint"


class CaseStatus(Enum):
    REQUESTED = "Requested"
    UNDER_REVIEW = "UnderReview"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    CLOSED = "Closed"


_VALID_TRANSITIONS = {
    CaseStatus.REQUESTED: {CaseStatus.UNDER_REVIEW},
    CaseStatus.UNDER_REVIEW: {CaseStatus.APPROVED, CaseStatus.REJECTED},
    CaseStatus.APPROVED: {CaseStatus.CLOSED},
    CaseStatus.REJECTED: {CaseStatus.CLOSED},
    CaseStatus.CLOSED: set(),  # terminal
}

OPEN_STATUSES = {
    CaseStatus.REQUESTED,
    CaseStatus.UNDER_REVIEW,
    CaseStatus.APPROVED,
}

_RESOLVING_STATUSES = {CaseStatus.APPROVED, CaseStatus.REJECTED, CaseStatus.CLOSED}


class AdminDecision(Enum):
    APPROVE_RETURN = "ApproveReturn"
    OVERRIDE_SELLER_DECISION = "OverrideSellerDecision"
    ENFORCE_REFUND = "EnforceRefund"
    REJECT_RETURN = "RejectReturn"
    CLOSE_WITHOUT_ACTION = "CloseWithoutAction"


_DECISION_TARGETS = {
    AdminDecision.APPROVE_RETURN: CaseStatus.APPROVED,
    AdminDecision.OVERRIDE_SELLER_DECISION: CaseStatus.APPROVED,
    AdminDecision.ENFORCE_REFUND: CaseStatus.APPROVED,
    AdminDecision.REJECT_RETURN: CaseStatus.REJECTED,
    AdminDecision.CLOSE_WITHOUT_ACTION: CaseStatus.CLOSED,
}

_DECISION_SOURCES = {
    CaseStatus.APPROVED: {CaseStatus.REQUESTED, CaseStatus.UNDER_REVIEW, CaseStatus.REJECTED},
    CaseStatus.REJECTED: {CaseStatus.REQUESTED, CaseStatus.UNDER_REVIEW},
    CaseStatus.CLOSED: {CaseStatus.REQUESTED, CaseStatus.UNDER_REVIEW, CaseStatus.APPROVED, CaseStatus.REJECTED},
}


@marketplace.entity(part_of="Case")
class CaseItem:
    """A sub-order item the buyer wants back, with the quantity returned."""

    sub_order_item_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    refund_amount = Float(default=0.0)


@marketplace.entity(part_of="Case")
class CaseStatusHistory:
    previous_status = String(max_length=20)
    new_status = String(required=True, max_length=20)
    actor_id = String(required=True, max_length=100)
    actor_role = String(max_length=20, choices=ActorRole)
    changed_at = DateTime(required=True)
    note = Text()


@marketplace.entity(part_of="Case")
class CaseMessage:
    sender_id = String(required=True, max_length=100)
    sender_role = String(required=True, max_length=20, choices=ActorRole)
    body = Text(required=True)
    sent_at = DateTime(required=True)


@marketplace.aggregate
class Case:
    sub_order_id = Identifier(required=True)
    order_id = Identifier(required=True)
    store_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    case_type = String(required=True, choices=CaseType)
    case_number = String(required=True, max_length=20)
    status = String(
        choices=CaseStatus,
        default=CaseStatus.REQUESTED.value,
    )
    reason = Text(required=True)
    category = String(max_length=100)
    items = HasMany(CaseItem)
    status_history = HasMany(CaseStatusHistory)
    messages = HasMany(CaseMessage)
    refund_amount = Float(default=0.0)
    created_at = DateTime()
    first_response_at = DateTime()
    approved_at = DateTime()
    resolved_at = DateTime()
    closed_at = DateTime()
    escalated_at = DateTime()
    escalated_by = String(max_length=100)
    escalation_reason = Text()
    admin_decision = String(choices=AdminDecision)
    admin_decision_reason = Text()
    admin_decision_at = DateTime()
    admin_decision_by = String(max_length=100)
    enforced_refund_amount = Float()
    updated_at = DateTime()
    revision = Integer(default=0)

    @invariant.post
    def an_item_appears_once(self):
        item_ids = [str(item.sub_order_item_id) for item in (self.items or [])]
        if len(item_ids) != len(set(item_ids)):
            raise ValidationError({"items": ["A sub-order item can appear only once in a case"]})

    @classmethod
    def create(
        cls,
        sub_order_id,
        order_id,
        store_id,
        buyer_id,
        case_type,
        reason,
        items_data,
        category=None,
        created_at=None,
    ):
        """Open a case in REQUESTED status.

        ``items_data`` is a list of dicts with ``sub_order_item_id``,
        ``quantity`` and ``unit_price``; the refund amount of each case item is
        its unit price times the returned quantity.
        """
        reason = (reason or "").strip()
        if not reason:
            raise domain_error(ErrorCode.VALIDATION, "A reason is required")
        if len(reason) > MAX_REASON_LENGTH:
            raise domain_error(ErrorCode.VALIDATION, f"Reason cannot exceed {MAX_REASON_LENGTH} characters")
        if not items_data:
            raise domain_error(ErrorCode.NO_ITEMS_SELECTED, "Select at least one item")

        now = created_at or utc_now()
        items = [
            CaseItem(
                sub_order_item_id=item["sub_order_item_id"],
                quantity=item["quantity"],
                refund_amount=to_amount(to_decimal(item["unit_price"]) * item["quantity"]),
            )
            for item in items_data
        ]
        requested = sum((to_decimal(i.refund_amount) for i in items), Decimal("0.00"))

        case = cls(
            sub_order_id=sub_order_id,
            order_id=order_id,
            store_id=store_id,
            buyer_id=buyer_id,
            case_type=case_type,
            case_number=f"CASE-{uuid4().hex[:8].upper()}",
            reason=reason,
            category=category,
            items=items,
            refund_amount=to_amount(requested),
            created_at=now,
            updated_at=now,
        )
        case.add_status_history(
            CaseStatusHistory(
                previous_status=None,
                new_status=CaseStatus.REQUESTED.value,
                actor_id=str(buyer_id),
                actor_role=ActorRole.BUYER.value,
                changed_at=now,
                note="Case opened",
            )
        )
        case.raise_(
            CaseOpened(
                case_id=case.id,
                case_number=case.case_number,
                sub_order_id=sub_order_id,
                order_id=order_id,
                store_id=store_id,
                buyer_id=buyer_id,
                case_type=case_type,
                category=category,
                item_count=len(items),
                requested_amount=case.refund_amount,
                created_at=now,
            )
        )
        return case

    @property
    def is_open(self) -> bool:
        return CaseStatus(self.status) in OPEN_STATUSES

    def covered_item_ids(self) -> set[str]:
        return {str(item.sub_order_item_id) for item in (self.items or [])}

    def _assert_not_closed(self) -> None:
        if CaseStatus(self.status) == CaseStatus.CLOSED:
            raise domain_error(ErrorCode.CASE_CLOSED, f"Case {self.case_number} is closed")

    @property
    def is_awaiting_admin_decision(self) -> bool:
        return self.escalated_at is not None and self.admin_decision is None

    def requested_amount(self) -> Decimal:
        return sum((to_decimal(item.refund_amount) for item in (self.items or [])), Decimal("0.00"))

    def transition_to(self, target: CaseStatus, actor_id: str, actor_role: str, note: str | None = None, at=None):
        self._assert_not_closed()
        current = CaseStatus(self.status)
        if target not in _VALID_TRANSITIONS[current]:
            raise domain_error(
                ErrorCode.INVALID_TRANSITION,
                f"Cannot transition from {current.value} to {target.value}",
            )
        self._enter(target, actor_id, actor_role, note, at or utc_now())

    def escalate(self, actor_id: str, reason: str, at=None) -> None:
        """Hand the case to an admin. The status stays where it is."""
        self._assert_not_closed()
        if self.is_awaiting_admin_decision:
            raise domain_error(ErrorCode.VALIDATION, f"Case {self.case_number} is already awaiting an admin decision")
        reason = (reason or "").strip()
        if not reason:
            raise domain_error(ErrorCode.VALIDATION, "An escalation reason is required")
        if len(reason) > MAX_REASON_LENGTH:
            raise domain_error(ErrorCode.VALIDATION, f"Reason cannot exceed {MAX_REASON_LENGTH} characters")

        now = at or utc_now()
        self.escalated_at = now
        self.escalated_by = str(actor_id)
        self.escalation_reason = reason
        self.admin_decision = None
        self.admin_decision_reason = None
        self.admin_decision_at = None
        self.admin_decision_by = None
        self.enforced_refund_amount = None

        self.add_status_history(
            CaseStatusHistory(
                previous_status=self.status,
                new_status=self.status,
                actor_id=str(actor_id),
                actor_role=ActorRole.ADMIN.value,
                changed_at=now,
                note=f"Escalated to admin review. Reason: {reason}",
            )
        )
        self._touch(now)
        self.raise_(
            CaseEscalated(
                case_id=self.id,
                case_number=self.case_number,
                store_id=self.store_id,
                escalated_by=str(actor_id),
                reason=reason,
                escalated_at=now,
            )
        )

    def record_admin_decision(
        self, decision: AdminDecision, actor_id: str, reason: str | None = None, refund_amount=None, at=None
    ) -> None:
        """Settle an escalated case.

        Enforcing a refund approves the case for ``refund_amount`` instead of
        the sum of its items; the amount must be positive and cannot exceed
        what the buyer asked for.
        """
        self._assert_not_closed()
        if not self.is_awaiting_admin_decision:
            raise domain_error(
                ErrorCode.INVALID_TRANSITION,
                f"Case {self.case_number} must be escalated before an admin decision is recorded",
            )

        current = CaseStatus(self.status)
        target = _DECISION_TARGETS[decision]
        if current not in _DECISION_SOURCES[target]:
            raise domain_error(
                ErrorCode.INVALID_TRANSITION,
                f"{decision.value} cannot be applied to a case in {current.value}",
            )

        enforced = None
        if decision == AdminDecision.ENFORCE_REFUND:
            if refund_amount is None or to_decimal(refund_amount) <= 0:
                raise domain_error(ErrorCode.VALIDATION, "An enforced refund must be greater than zero")
            enforced = to_decimal(refund_amount)
            if enforced > self.requested_amount():
                raise domain_error(
                    ErrorCode.VALIDATION,
                    f"An enforced refund cannot exceed the requested {to_amount(self.requested_amount()):.2f}",
                )
        elif refund_amount is not None:
            raise domain_error(ErrorCode.VALIDATION, "A refund amount is only accepted when enforcing a refund")

        reason = (reason or "").strip() or None
        now = at or utc_now()
        self.admin_decision = decision.value
        self.admin_decision_reason = reason
        self.admin_decision_at = now
        self.admin_decision_by = str(actor_id)
        self.enforced_refund_amount = to_amount(enforced) if enforced is not None else None

        self.raise_(
            CaseAdminDecisionRecorded(
                case_id=self.id,
                case_number=self.case_number,
                store_id=self.store_id,
                decision=decision.value,
                decided_by=str(actor_id),
                reason=reason,
                enforced_refund_amount=self.enforced_refund_amount,
                decided_at=now,
            )
        )
        note = f"Admin decision: {decision.value}" + (f". Reason: {reason}" if reason else "")
        self._enter(target, actor_id, ActorRole.ADMIN.value, note, now, refund_amount=enforced)

    def _enter(self, target: CaseStatus, actor_id, actor_role, note, now, refund_amount=None) -> None:
        current = CaseStatus(self.status)
        is_first_response = current == CaseStatus.REQUESTED and self.first_response_at is None
        is_resolution = target in _RESOLVING_STATUSES and self.resolved_at is None

        self.status = target.value
        if is_first_response:
            self.first_response_at = now
        if is_resolution:
            self.resolved_at = now
        if target == CaseStatus.APPROVED:
            self.approved_at = now
            self.refund_amount = to_amount(refund_amount if refund_amount is not None else self.requested_amount())
        elif target == CaseStatus.CLOSED:
            self.closed_at = now

        self.add_status_history(
            CaseStatusHistory(
                previous_status=current.value,
                new_status=target.value,
                actor_id=str(actor_id),
                actor_role=actor_role,
                changed_at=now,
                note=note,
            )
        )
        self._touch(now)

        self.raise_(
            CaseStatusChanged(
                case_id=self.id,
                case_number=self.case_number,
                store_id=self.store_id,
                previous_status=current.value,
                new_status=target.value,
                actor_id=str(actor_id),
                actor_role=actor_role,
                is_first_response=is_first_response,
                is_resolution=is_resolution,
                changed_at=now,
            )
        )
        if target == CaseStatus.APPROVED:
            self.raise_(
                CaseApproved(
                    case_id=self.id,
                    case_number=self.case_number,
                    sub_order_id=self.sub_order_id,
                    order_id=self.order_id,
                    store_id=self.store_id,
                    refund_amount=self.refund_amount,
                    approved_at=now,
                )
            )

    def post_message(self, sender_id: str, sender_role: str, body: str, at=None) -> CaseMessage:
        self._assert_not_closed()
        body = (body or "").strip()
        if not body:
            raise domain_error(ErrorCode.VALIDATION, "A message cannot be empty")

        now = at or utc_now()
        message = CaseMessage(
            sender_id=str(sender_id),
            sender_role=sender_role,
            body=body,
            sent_at=now,
        )
        self.add_messages(message)
        self._touch(now)
        self.raise_(
            CaseMessagePosted(
                case_id=self.id,
                message_id=message.id,
                sender_id=str(sender_id),
                sender_role=sender_role,
                sent_at=now,
            )
        )
        return message

    def _touch(self, at) -> None:
        self.updated_at = at
        self.revision = (self.revision or 0) + 1
