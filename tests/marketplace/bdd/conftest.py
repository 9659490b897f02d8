"""Shared BDD fixtures and step definitions for the marketplace."""

import json
from datetime import UTC, datetime, timedelta

import pytest
from marketplace.case.case import Case
from marketplace.case.creation import CreateCase
from marketplace.case.transitions import TransitionCase
from marketplace.shared.errors import error_codes
from marketplace.sla.configuration import SaveSlaConfiguration
from marketplace.sla.tracking import SlaTrackingRecord
from protean import current_domain
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then, when

CASE_OPENED_AT = datetime(2025, 3, 6, 9, 0, tzinfo=UTC)


@pytest.fixture()
def error():
    """Container for captured validation errors."""
    return {"exc": None}


def _selection(sub_order, product_id):
    item = next(i for i in sub_order.items if i.product_id == product_id)
    return json.dumps([{"item_id": str(item.id), "quantity": item.quantity}])


def _move_case(case_id, target, hours):
    current_domain.process(
        TransitionCase(
            case_id=case_id,
            target_status=target,
            actor_id="seller-acme",
            actor_role="Seller",
            occurred_at=CASE_OPENED_AT + timedelta(hours=hours),
        ),
        asynchronous=False,
    )


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse("a global SLA of {first:d} hours to respond and {resolution:d} hours to resolve"))
def global_sla(first, resolution):
    current_domain.process(
        SaveSlaConfiguration(
            name="Global",
            first_response_hours=first,
            resolution_hours=resolution,
            actor_role="Admin",
        ),
        asynchronous=False,
    )


@given(parsers.cfparse('a delivered "{store_id}" sub-order'), target_fixture="sub_order")
def delivered_sub_order(store_id, place_order, sub_order_of, deliver):
    placed = place_order()
    return deliver(str(sub_order_of(placed["sub_order_ids"], store_id).id))


@given(parsers.cfparse('the buyer opened a case for "{product_id}"'), target_fixture="case_id")
def buyer_opened_case(sub_order, product_id):
    result = current_domain.process(
        CreateCase(
            sub_order_id=str(sub_order.id),
            buyer_id="buyer-001",
            case_type="Return",
            reason="Stopped working after a day",
            items=_selection(sub_order, product_id),
            occurred_at=CASE_OPENED_AT,
        ),
        asynchronous=False,
    )
    return result.value["case_id"]


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('the buyer opens a case for "{product_id}"'))
def buyer_opens_case(sub_order, product_id, error):
    try:
        current_domain.process(
            CreateCase(
                sub_order_id=str(sub_order.id),
                buyer_id="buyer-001",
                case_type="Return",
                reason="Same problem again",
                items=_selection(sub_order, product_id),
                occurred_at=CASE_OPENED_AT,
            ),
            asynchronous=False,
        )
    except ValidationError as exc:
        error["exc"] = exc


@when(parsers.cfparse("the seller reviews the case after {hours:d} hours"))
def seller_reviews_case(case_id, hours):
    _move_case(case_id, "UnderReview", hours)


@when(parsers.cfparse("the seller approves the case after {hours:d} hours"))
def seller_approves_case(case_id, hours):
    _move_case(case_id, "Approved", hours)


@when(parsers.cfparse("the seller rejects the case after {hours:d} hours"))
def seller_rejects_case(case_id, hours):
    _move_case(case_id, "Rejected", hours)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the action fails with "{code}"'))
def action_fails(error, code):
    assert error["exc"] is not None
    assert code in error_codes(error["exc"])


@then(parsers.cfparse('the case is "{status}"'))
def case_status_is(case_id, status):
    assert current_domain.repository_for(Case).get(case_id).status == status


@then(parsers.cfparse('the SLA status is "{status}"'))
def sla_status_is(case_id, status):
    assert current_domain.repository_for(SlaTrackingRecord).get(case_id).status == status
