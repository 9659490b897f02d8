"""Case creation — command and handler.

Opening a case validates the buyer's selection against the sub-order,
against every open case of that sub-order and against the quantities earlier
approved cases already refunded, then writes the case together
with its SLA tracking record.
"""

import json

import structlog
from protean import handle
from protean.fields import DateTime, Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.case.case import Case, CaseType
from marketplace.case.eligibility import check_eligibility, open_case_item_ids, returned_quantities
from marketplace.directory import get_directory
from marketplace.domain import marketplace
from marketplace.order.order import Order
from marketplace.order.sub_order import SellerSubOrder
from marketplace.shared.clock import as_utc, utc_now
from marketplace.shared.errors import ErrorCode, domain_error
from marketplace.shared.result import ErrorEntry, OperationResult
from marketplace.sla.configuration import resolve_configuration
from marketplace.sla.tracking import SlaTrackingRecord

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Case")
class CreateCase:
    """Open a return or complaint case for items of a delivered sub-order."""

    sub_order_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    case_type = String(required=True, choices=CaseType)
    reason = Text(required=True)
    items = Text(required=True)  # JSON list of {item_id, quantity}
    occurred_at = DateTime()


def _validate_selection(sub_order: SellerSubOrder, selections: list[dict]) -> list[dict]:
    """Resolve the buyer's selection into case item data, or raise."""
    if not selections:
        raise domain_error(ErrorCode.NO_ITEMS_SELECTED, "Select at least one item")

    in_open_cases = open_case_item_ids(sub_order.id)
    returned = returned_quantities(sub_order.id)
    seen: set[str] = set()
    items_data = []
    for selection in selections:
        item_id = str(selection.get("item_id") or "")
        quantity = int(selection.get("quantity") or 0)
        if not item_id:
            raise domain_error(ErrorCode.VALIDATION, "Every selected item needs an item_id")
        if item_id in seen:
            raise domain_error(ErrorCode.VALIDATION, f"Item {item_id} is selected more than once")
        seen.add(item_id)

        item = sub_order.get_item(item_id)
        if item is None:
            raise domain_error(ErrorCode.VALIDATION, f"Item {item_id} does not belong to this sub-order")
        if quantity <= 0:
            raise domain_error(ErrorCode.VALIDATION, f"Quantity for item {item_id} must be positive")
        if quantity > item.quantity:
            raise domain_error(
                ErrorCode.VALIDATION,
                f"Quantity for item {item_id} cannot exceed the {item.quantity} purchased",
            )
        returnable = item.quantity - returned.get(item_id, 0)
        if quantity > returnable and item_id not in in_open_cases:
            raise domain_error(
                ErrorCode.VALIDATION,
                f"Only {returnable} of item {item_id} can still be returned; the rest was already refunded",
            )
        items_data.append(
            {
                "sub_order_item_id": item_id,
                "quantity": quantity,
                "unit_price": item.unit_price,
                "category": item.category,
            }
        )

    already_open = seen & in_open_cases
    if already_open:
        raise domain_error(
            ErrorCode.ITEM_ALREADY_IN_OPEN_CASE,
            f"Items already in an open case: {', '.join(sorted(already_open))}",
        )
    return items_data


@marketplace.command_handler(part_of=Case)
class CreateCaseHandler:
    @handle(CreateCase)
    def create_case(self, command: CreateCase):
        sub_order = current_domain.repository_for(SellerSubOrder).get(command.sub_order_id)
        order = current_domain.repository_for(Order).get(sub_order.order_id)
        now = as_utc(command.occurred_at) or utc_now()

        eligibility = check_eligibility(sub_order, order, command.buyer_id, now=now)
        if not eligibility.allowed:
            raise domain_error(ErrorCode(eligibility.code), eligibility.blocked_reason)

        selections = json.loads(command.items) if isinstance(command.items, str) else command.items
        items_data = _validate_selection(sub_order, selections or [])
        category = items_data[0]["category"]

        case = Case.create(
            sub_order_id=sub_order.id,
            order_id=sub_order.order_id,
            store_id=sub_order.store_id,
            buyer_id=command.buyer_id,
            case_type=command.case_type,
            reason=command.reason,
            items_data=items_data,
            category=category,
            created_at=now,
        )

        configuration = resolve_configuration(command.case_type, category, as_of=now)
        record = SlaTrackingRecord.start(
            case_id=case.id,
            case_number=case.case_number,
            case_type=case.case_type,
            store_id=case.store_id,
            store_name=sub_order.store_name or get_directory().store_name(case.store_id),
            case_created_at=now,
            configuration=configuration,
            category=category,
        )

        current_domain.repository_for(Case).add(case)
        current_domain.repository_for(SlaTrackingRecord).add(record)

        logger.info(
            "Case opened",
            case_id=str(case.id),
            case_number=case.case_number,
            sub_order_id=str(sub_order.id),
            items=len(items_data),
            sla_configured=configuration is not None,
        )

        value = {"case_id": str(case.id), "case_number": case.case_number}
        if configuration is None:
            return OperationResult.success(
                value,
                warnings=[
                    ErrorEntry(
                        ErrorCode.CONFIGURATION_MISSING.value,
                        "No SLA configuration applies; breach tracking is deferred",
                    )
                ],
            )
        return OperationResult.success(value)
