"""Tests for the Case aggregate — creation, state machine and messages."""

from datetime import UTC, datetime, timedelta

import pytest
from marketplace.case.case import MAX_REASON_LENGTH, AdminDecision, Case, CaseStatus
from marketplace.case.events import (
    CaseAdminDecisionRecorded,
    CaseApproved,
    CaseEscalated,
    CaseOpened,
    CaseStatusChanged,
)
from marketplace.shared.errors import error_codes
from protean.exceptions import ValidationError

OPENED = datetime(2025, 3, 6, 9, 0, tzinfo=UTC)


def _make_case(items_data=None, reason="Screen arrived cracked"):
    return Case.create(
        sub_order_id="sub-001",
        order_id="ord-001",
        store_id="store-acme",
        buyer_id="buyer-001",
        case_type="Return",
        reason=reason,
        items_data=items_data
        or [
            {"sub_order_item_id": "item-1", "quantity": 2, "unit_price": 50.0},
            {"sub_order_item_id": "item-2", "quantity": 1, "unit_price": 15.0},
        ],
        category="Electronics",
        created_at=OPENED,
    )


def _move(case, *targets, hours=1):
    at = OPENED
    for target in targets:
        at += timedelta(hours=hours)
        case.transition_to(target, actor_id="seller-acme", actor_role="Seller", at=at)
    return case


class TestCaseCreation:
    def test_starts_requested(self):
        case = _make_case()
        assert case.status == CaseStatus.REQUESTED.value
        assert case.is_open

    def test_case_number_format(self):
        assert _make_case().case_number.startswith("CASE-")

    def test_refund_amount_is_unit_price_times_quantity(self):
        case = _make_case()
        amounts = sorted(item.refund_amount for item in case.items)
        assert amounts == [15.0, 100.0]
        assert case.refund_amount == 115.0

    def test_initial_history_entry(self):
        case = _make_case()
        assert len(case.status_history) == 1
        assert case.status_history[0].new_status == "Requested"
        assert case.status_history[0].actor_role == "Buyer"

    def test_raises_case_opened(self):
        event = _make_case()._events[-1]
        assert isinstance(event, CaseOpened)
        assert event.item_count == 2

    def test_reason_is_required(self):
        with pytest.raises(ValidationError) as exc:
            _make_case(reason="   ")
        assert "validation" in error_codes(exc.value)

    def test_reason_length_is_limited(self):
        with pytest.raises(ValidationError):
            _make_case(reason="x" * (MAX_REASON_LENGTH + 1))

    def test_reason_at_the_limit_is_accepted(self):
        assert _make_case(reason="x" * MAX_REASON_LENGTH).reason

    def test_items_are_required(self):
        with pytest.raises(ValidationError) as exc:
            Case.create(
                sub_order_id="sub-001",
                order_id="ord-001",
                store_id="store-acme",
                buyer_id="buyer-001",
                case_type="Return",
                reason="Broken",
                items_data=[],
            )
        assert "no_items_selected" in error_codes(exc.value)

    def test_item_can_appear_only_once(self):
        with pytest.raises(ValidationError):
            _make_case(
                items_data=[
                    {"sub_order_item_id": "item-1", "quantity": 1, "unit_price": 50.0},
                    {"sub_order_item_id": "item-1", "quantity": 1, "unit_price": 50.0},
                ]
            )


class TestCaseStateMachine:
    def test_first_review_is_first_response(self):
        case = _move(_make_case(), CaseStatus.UNDER_REVIEW)
        assert case.first_response_at == OPENED + timedelta(hours=1)
        event = case._events[-1]
        assert isinstance(event, CaseStatusChanged)
        assert event.is_first_response is True
        assert event.is_resolution is False

    def test_approval_resolves_and_raises_case_approved(self):
        case = _move(_make_case(), CaseStatus.UNDER_REVIEW, CaseStatus.APPROVED)
        assert case.resolved_at == OPENED + timedelta(hours=2)
        assert case.approved_at == case.resolved_at
        approved = case._events[-1]
        assert isinstance(approved, CaseApproved)
        assert approved.refund_amount == 115.0
        assert case._events[-2].is_resolution is True

    def test_rejection_resolves_without_approval(self):
        case = _move(_make_case(), CaseStatus.UNDER_REVIEW, CaseStatus.REJECTED)
        assert case.resolved_at is not None
        assert case.approved_at is None
        assert not case.is_open

    def test_closing_keeps_resolution_time(self):
        case = _move(_make_case(), CaseStatus.UNDER_REVIEW, CaseStatus.APPROVED, CaseStatus.CLOSED)
        assert case.status == CaseStatus.CLOSED.value
        assert case.resolved_at == OPENED + timedelta(hours=2)
        assert case.closed_at == OPENED + timedelta(hours=3)
        assert case._events[-1].is_resolution is False

    def test_approved_case_is_still_open(self):
        case = _move(_make_case(), CaseStatus.UNDER_REVIEW, CaseStatus.APPROVED)
        assert case.is_open

    @pytest.mark.parametrize(
        "path,target",
        [
            ([], CaseStatus.APPROVED),
            ([], CaseStatus.CLOSED),
            ([CaseStatus.UNDER_REVIEW], CaseStatus.REQUESTED),
            ([CaseStatus.UNDER_REVIEW, CaseStatus.REJECTED], CaseStatus.APPROVED),
        ],
    )
    def test_invalid_transitions(self, path, target):
        case = _move(_make_case(), *path)
        with pytest.raises(ValidationError) as exc:
            _move(case, target)
        assert "invalid_transition" in error_codes(exc.value)

    def test_closed_case_rejects_changes(self):
        case = _move(_make_case(), CaseStatus.UNDER_REVIEW, CaseStatus.REJECTED, CaseStatus.CLOSED)
        with pytest.raises(ValidationError) as exc:
            _move(case, CaseStatus.UNDER_REVIEW)
        assert "case_closed" in error_codes(exc.value)

    def test_history_records_every_change(self):
        case = _move(_make_case(), CaseStatus.UNDER_REVIEW, CaseStatus.APPROVED)
        assert [h.new_status for h in case.status_history] == ["Requested", "UnderReview", "Approved"]


class TestCaseMessages:
    def test_post_message(self):
        case = _make_case()
        case.post_message("buyer-001", "Buyer", "Any update?")
        assert len(case.messages) == 1
        assert case.messages[0].body == "Any update?"

    def test_empty_message_is_rejected(self):
        with pytest.raises(ValidationError):
            _make_case().post_message("buyer-001", "Buyer", "  ")

    def test_closed_case_rejects_messages(self):
        case = _move(_make_case(), CaseStatus.UNDER_REVIEW, CaseStatus.REJECTED, CaseStatus.CLOSED)
        with pytest.raises(ValidationError) as exc:
            case.post_message("buyer-001", "Buyer", "Hello?")
        assert "case_closed" in error_codes(exc.value)


def _escalated(*targets):
    case = _move(_make_case(), *targets)
    case.escalate("admin-1", "Seller stopped answering", at=OPENED + timedelta(hours=30))
    return case


def _decide(case, decision, **kwargs):
    case.record_admin_decision(decision, actor_id="admin-1", at=OPENED + timedelta(hours=31), **kwargs)
    return case


class TestCaseEscalation:
    def test_escalation_keeps_status(self):
        case = _escalated(CaseStatus.UNDER_REVIEW)
        assert case.status == CaseStatus.UNDER_REVIEW.value
        assert case.is_open
        assert case.is_awaiting_admin_decision
        assert case.escalated_by == "admin-1"
        assert case.escalation_reason == "Seller stopped answering"

    def test_escalation_is_recorded_in_history(self):
        case = _escalated(CaseStatus.UNDER_REVIEW)
        entry = case.status_history[-1]
        assert entry.previous_status == entry.new_status == "UnderReview"
        assert entry.note == "Escalated to admin review. Reason: Seller stopped answering"
        assert isinstance(case._events[-1], CaseEscalated)

    def test_reason_is_required(self):
        with pytest.raises(ValidationError) as exc:
            _make_case().escalate("admin-1", "  ")
        assert "validation" in error_codes(exc.value)

    def test_cannot_escalate_twice(self):
        case = _escalated()
        with pytest.raises(ValidationError) as exc:
            case.escalate("admin-2", "Again")
        assert "validation" in error_codes(exc.value)

    def test_closed_case_cannot_be_escalated(self):
        case = _move(_make_case(), CaseStatus.UNDER_REVIEW, CaseStatus.REJECTED, CaseStatus.CLOSED)
        with pytest.raises(ValidationError) as exc:
            case.escalate("admin-1", "Too late")
        assert "case_closed" in error_codes(exc.value)

    def test_decision_requires_escalation(self):
        with pytest.raises(ValidationError) as exc:
            _decide(_make_case(), AdminDecision.APPROVE_RETURN)
        assert "invalid_transition" in error_codes(exc.value)

    def test_approve_return_from_requested(self):
        case = _decide(_escalated(), AdminDecision.APPROVE_RETURN, reason="Photos are clear")
        assert case.status == CaseStatus.APPROVED.value
        assert case.refund_amount == 115.0
        assert case.first_response_at == OPENED + timedelta(hours=31)
        assert case.resolved_at == OPENED + timedelta(hours=31)
        assert case.admin_decision == "ApproveReturn"
        assert not case.is_awaiting_admin_decision
        assert case.status_history[-1].note == "Admin decision: ApproveReturn. Reason: Photos are clear"
        assert case.status_history[-1].actor_role == "Admin"

    def test_decision_raises_events(self):
        case = _decide(_escalated(CaseStatus.UNDER_REVIEW), AdminDecision.APPROVE_RETURN)
        kinds = [type(event) for event in case._events[-3:]]
        assert kinds == [CaseAdminDecisionRecorded, CaseStatusChanged, CaseApproved]

    def test_override_rejected_case(self):
        case = _decide(
            _escalated(CaseStatus.UNDER_REVIEW, CaseStatus.REJECTED), AdminDecision.OVERRIDE_SELLER_DECISION
        )
        assert case.status == CaseStatus.APPROVED.value
        # the seller's rejection already resolved the case
        assert case.resolved_at == OPENED + timedelta(hours=2)
        assert case._events[-2].is_resolution is False

    def test_enforce_refund_sets_amount(self):
        case = _decide(_escalated(CaseStatus.UNDER_REVIEW), AdminDecision.ENFORCE_REFUND, refund_amount=40)
        assert case.status == CaseStatus.APPROVED.value
        assert case.refund_amount == 40.0
        assert case.enforced_refund_amount == 40.0
        assert case._events[-1].refund_amount == 40.0

    @pytest.mark.parametrize("amount", [None, 0, -5, 115.01])
    def test_enforce_refund_amount_bounds(self, amount):
        case = _escalated(CaseStatus.UNDER_REVIEW)
        with pytest.raises(ValidationError) as exc:
            _decide(case, AdminDecision.ENFORCE_REFUND, refund_amount=amount)
        assert "validation" in error_codes(exc.value)
        assert case.status == CaseStatus.UNDER_REVIEW.value

    def test_amount_only_with_enforced_refund(self):
        with pytest.raises(ValidationError):
            _decide(_escalated(), AdminDecision.APPROVE_RETURN, refund_amount=10)

    def test_reject_return(self):
        case = _decide(_escalated(CaseStatus.UNDER_REVIEW), AdminDecision.REJECT_RETURN)
        assert case.status == CaseStatus.REJECTED.value
        assert case.approved_at is None

    def test_reject_after_approval_is_invalid(self):
        case = _escalated(CaseStatus.UNDER_REVIEW, CaseStatus.APPROVED)
        with pytest.raises(ValidationError) as exc:
            _decide(case, AdminDecision.REJECT_RETURN)
        assert "invalid_transition" in error_codes(exc.value)
        assert case.is_awaiting_admin_decision

    def test_close_without_action(self):
        case = _decide(_escalated(), AdminDecision.CLOSE_WITHOUT_ACTION)
        assert case.status == CaseStatus.CLOSED.value
        assert case.closed_at == OPENED + timedelta(hours=31)
        assert case.resolved_at == OPENED + timedelta(hours=31)
        assert case.approved_at is None

    def test_case_can_be_escalated_again_after_a_decision(self):
        case = _decide(_escalated(CaseStatus.UNDER_REVIEW), AdminDecision.REJECT_RETURN)
        case.escalate("admin-2", "Buyer sent new evidence", at=OPENED + timedelta(hours=40))
        assert case.is_awaiting_admin_decision
        assert case.admin_decision is None
