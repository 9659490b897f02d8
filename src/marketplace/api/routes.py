"""FastAPI routes for the marketplace context.

Every command goes through ``execute`` so expected failures come back as
coded error entries; the HTTP status is chosen from the first error code.
The caller's identity is resolved upstream and arrives in the
``X-Actor-Id`` and ``X-Actor-Role`` headers; the System role is reserved for
in-process work and is refused here.
"""

import json
from dataclasses import asdict
from datetime import datetime

from fastapi import APIRouter, Depends, Header, HTTPException
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from marketplace.api.schemas import (
    AdminDecisionRequest,
    BreachedCaseResponse,
    CaseCreatedResponse,
    CaseMessageRequest,
    CaseOverviewResponse,
    CommissionRuleRequest,
    CreateCaseRequest,
    DashboardSlaStatisticsResponse,
    DecomposeOrderRequest,
    DecomposeOrderResponse,
    EligibilityResponse,
    EscalateCaseRequest,
    ErrorEntryResponse,
    IdResponse,
    ItemStatusChangeRequest,
    OrderResponse,
    RevisionResponse,
    SellerCommissionSummaryResponse,
    SellerOrderRowResponse,
    ShippingHistoryEntryResponse,
    SlaConfigurationRequest,
    StatusChangeRequest,
    StoreSlaStatisticsResponse,
    SubOrderItemResponse,
    SubOrderResponse,
    SubOrderStatusChangeRequest,
    SweepRequest,
    SweepResponse,
    TrackingUpdateRequest,
)
from marketplace.case.creation import CreateCase
from marketplace.case.eligibility import can_initiate_return
from marketplace.case.escalation import EscalateCase, RecordAdminDecision
from marketplace.case.messaging import PostCaseMessage
from marketplace.case.transitions import TransitionCase
from marketplace.commission.rules import AddCommissionRule
from marketplace.commission.summary import seller_order_rows, seller_summary
from marketplace.order.decomposition import DecomposeOrder
from marketplace.order.items import TransitionItemStatus
from marketplace.order.order import Order
from marketplace.order.order_status import UpdateOrderStatus
from marketplace.order.shipping import TransitionSubOrderStatus, UpdateTrackingInfo
from marketplace.order.sub_order import SellerSubOrder
from marketplace.projections.case_overview import CaseOverview
from marketplace.shared.actors import ActorRole
from marketplace.shared.errors import ErrorCode
from marketplace.shared.result import OperationResult, execute
from marketplace.sla.configuration import DeactivateSlaConfiguration, SaveSlaConfiguration
from marketplace.sla.statistics import breached_open_cases, dashboard_statistics, store_statistics
from marketplace.sla.sweep import run_breach_sweep

_STATUS_BY_CODE = {
    ErrorCode.NOT_FOUND.value: 404,
    ErrorCode.NOT_AUTHORIZED.value: 403,
    ErrorCode.INVALID_TRANSITION.value: 409,
    ErrorCode.CASE_CLOSED.value: 409,
    ErrorCode.ITEM_ALREADY_IN_OPEN_CASE.value: 409,
    ErrorCode.CONCURRENCY_CONFLICT.value: 409,
}


def _unwrap(result: OperationResult):
    if result.succeeded:
        return result.value
    status_code = _STATUS_BY_CODE.get(result.errors[0].code, 400)
    raise HTTPException(
        status_code=status_code,
        detail={"errors": [{"code": e.code, "message": e.message} for e in result.errors]},
    )


def caller_role(x_actor_role: str = Header(...)) -> str:
    """Role of the caller, from ``X-Actor-Role``."""
    if x_actor_role == ActorRole.SYSTEM.value:
        raise HTTPException(
            status_code=403,
            detail={
                "errors": [
                    {
                        "code": ErrorCode.NOT_AUTHORIZED.value,
                        "message": "The System role cannot be used through the API",
                    }
                ]
            },
        )
    return x_actor_role


def _get_or_404(cls, identifier: str):
    try:
        return current_domain.repository_for(cls).get(identifier)
    except ObjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail=f"{cls.__name__} {identifier} not found") from exc


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=DecomposeOrderResponse)
async def decompose_order(body: DecomposeOrderRequest) -> DecomposeOrderResponse:
    """Create an order and its per-store sub-orders from a captured payment."""
    command = DecomposeOrder(
        buyer_id=body.buyer_id,
        items=json.dumps([item.model_dump() for item in body.items]),
        items_subtotal=body.items_subtotal,
        shipping_total=body.shipping_total,
        delivery_address=json.dumps(body.delivery_address.model_dump()) if body.delivery_address else None,
        payment_transaction_id=body.payment_transaction_id,
        payment_captured=body.payment_captured,
    )
    return DecomposeOrderResponse(**_unwrap(execute(command)))


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    order = _get_or_404(Order, order_id)
    sub_orders = current_domain.repository_for(SellerSubOrder)._dao.query.filter(order_id=order_id).all().items
    return OrderResponse(
        order_id=str(order.id),
        order_number=order.order_number,
        buyer_id=str(order.buyer_id),
        status=order.status,
        items_subtotal=order.items_subtotal,
        shipping_total=order.shipping_total,
        total_amount=order.total_amount,
        revision=order.revision,
        sub_order_ids=[str(s.id) for s in sub_orders],
    )


@order_router.put("/{order_id}/status", response_model=RevisionResponse)
async def update_order_status(
    order_id: str,
    body: StatusChangeRequest,
    x_actor_id: str = Header(...),
    x_actor_role: str = Depends(caller_role),
) -> RevisionResponse:
    command = UpdateOrderStatus(
        order_id=order_id,
        target_status=body.target_status,
        actor_id=x_actor_id,
        actor_role=x_actor_role,
        override=body.override,
        expected_revision=body.expected_revision,
    )
    return RevisionResponse(revision=_unwrap(execute(command)))


# ---------------------------------------------------------------------------
# Sub-order Router
# ---------------------------------------------------------------------------
sub_order_router = APIRouter(prefix="/sub-orders", tags=["sub-orders"])


@sub_order_router.get("/{sub_order_id}", response_model=SubOrderResponse)
async def get_sub_order(sub_order_id: str) -> SubOrderResponse:
    """Sub-order with its items and shipping status history."""
    sub_order = _get_or_404(SellerSubOrder, sub_order_id)
    history = sorted(sub_order.status_history or [], key=lambda entry: entry.changed_at)
    return SubOrderResponse(
        sub_order_id=str(sub_order.id),
        sub_order_number=sub_order.sub_order_number,
        order_id=str(sub_order.order_id),
        store_id=str(sub_order.store_id),
        store_name=sub_order.store_name,
        status=sub_order.status,
        items_subtotal=sub_order.items_subtotal,
        shipping_cost=sub_order.shipping_cost,
        total_amount=sub_order.total_amount,
        carrier=sub_order.carrier,
        tracking_number=sub_order.tracking_number,
        delivered_at=sub_order.delivered_at,
        revision=sub_order.revision,
        items=[
            SubOrderItemResponse(
                item_id=str(item.id),
                product_id=str(item.product_id),
                product_title=item.product_title,
                category=item.category,
                quantity=item.quantity,
                unit_price=item.unit_price,
                status=item.status,
            )
            for item in (sub_order.items or [])
        ],
        history=[
            ShippingHistoryEntryResponse(
                previous_status=entry.previous_status,
                new_status=entry.new_status,
                actor_id=entry.actor_id,
                actor_role=entry.actor_role,
                changed_at=entry.changed_at,
                carrier=entry.carrier,
                tracking_number=entry.tracking_number,
                note=entry.note,
            )
            for entry in history
        ],
    )


@sub_order_router.put("/{sub_order_id}/status", response_model=RevisionResponse)
async def transition_sub_order(
    sub_order_id: str,
    body: SubOrderStatusChangeRequest,
    x_actor_id: str = Header(...),
    x_actor_role: str = Depends(caller_role),
) -> RevisionResponse:
    command = TransitionSubOrderStatus(
        sub_order_id=sub_order_id,
        target_status=body.target_status,
        actor_id=x_actor_id,
        actor_role=x_actor_role,
        carrier=body.carrier,
        tracking_number=body.tracking_number,
        note=body.note,
        approved_case_id=body.approved_case_id,
        override=body.override,
        expected_revision=body.expected_revision,
    )
    return RevisionResponse(revision=_unwrap(execute(command)))


@sub_order_router.put("/{sub_order_id}/tracking", response_model=RevisionResponse)
async def update_tracking(
    sub_order_id: str,
    body: TrackingUpdateRequest,
    x_actor_id: str = Header(...),
    x_actor_role: str = Depends(caller_role),
) -> RevisionResponse:
    command = UpdateTrackingInfo(
        sub_order_id=sub_order_id,
        tracking_number=body.tracking_number,
        carrier=body.carrier,
        actor_id=x_actor_id,
        actor_role=x_actor_role,
        expected_revision=body.expected_revision,
    )
    return RevisionResponse(revision=_unwrap(execute(command)))


@sub_order_router.put("/{sub_order_id}/items/{item_id}/status", response_model=RevisionResponse)
async def transition_item(
    sub_order_id: str,
    item_id: str,
    body: ItemStatusChangeRequest,
    x_actor_id: str = Header(...),
    x_actor_role: str = Depends(caller_role),
) -> RevisionResponse:
    command = TransitionItemStatus(
        sub_order_id=sub_order_id,
        item_id=item_id,
        target_status=body.target_status,
        actor_id=x_actor_id,
        actor_role=x_actor_role,
        expected_revision=body.expected_revision,
    )
    return RevisionResponse(revision=_unwrap(execute(command)))


@sub_order_router.get("/{sub_order_id}/return-eligibility", response_model=EligibilityResponse)
async def return_eligibility(sub_order_id: str, x_actor_id: str = Header(...)) -> EligibilityResponse:
    _get_or_404(SellerSubOrder, sub_order_id)
    eligibility = can_initiate_return(sub_order_id, x_actor_id)
    return EligibilityResponse(allowed=eligibility.allowed, blocked_reason=eligibility.blocked_reason)


# ---------------------------------------------------------------------------
# Case Router
# ---------------------------------------------------------------------------
case_router = APIRouter(prefix="/cases", tags=["cases"])


@case_router.post("", status_code=201, response_model=CaseCreatedResponse)
async def create_case(body: CreateCaseRequest, x_actor_id: str = Header(...)) -> CaseCreatedResponse:
    """Open a return or complaint case as the buyer identified by ``X-Actor-Id``."""
    command = CreateCase(
        sub_order_id=body.sub_order_id,
        buyer_id=x_actor_id,
        case_type=body.case_type,
        reason=body.reason,
        items=json.dumps([item.model_dump() for item in body.items]),
    )
    result = execute(command)
    value = _unwrap(result)
    return CaseCreatedResponse(
        **value,
        warnings=[ErrorEntryResponse(code=e.code, message=e.message) for e in result.errors],
    )


@case_router.get("/{case_id}", response_model=CaseOverviewResponse)
async def get_case(case_id: str) -> CaseOverviewResponse:
    view = _get_or_404(CaseOverview, case_id)
    return CaseOverviewResponse(
        case_id=str(view.case_id),
        case_number=view.case_number,
        sub_order_id=str(view.sub_order_id) if view.sub_order_id else None,
        store_id=str(view.store_id) if view.store_id else None,
        case_type=view.case_type,
        status=view.status,
        refund_amount=view.refund_amount,
        message_count=view.message_count,
        created_at=view.created_at,
        first_response_at=view.first_response_at,
        resolved_at=view.resolved_at,
        sla_status=view.sla_status,
        first_response_due_at=view.first_response_due_at,
        resolution_due_at=view.resolution_due_at,
        is_first_response_breached=bool(view.is_first_response_breached),
        is_resolution_breached=bool(view.is_resolution_breached),
        is_escalated=bool(view.is_escalated),
        admin_decision=view.admin_decision,
    )


@case_router.put("/{case_id}/status", response_model=RevisionResponse)
async def transition_case(
    case_id: str,
    body: StatusChangeRequest,
    x_actor_id: str = Header(...),
    x_actor_role: str = Depends(caller_role),
) -> RevisionResponse:
    command = TransitionCase(
        case_id=case_id,
        target_status=body.target_status,
        actor_id=x_actor_id,
        actor_role=x_actor_role,
        note=body.note,
        expected_revision=body.expected_revision,
    )
    return RevisionResponse(revision=_unwrap(execute(command)))


@case_router.post("/{case_id}/messages", status_code=201, response_model=IdResponse)
async def post_case_message(
    case_id: str,
    body: CaseMessageRequest,
    x_actor_id: str = Header(...),
    x_actor_role: str = Depends(caller_role),
) -> IdResponse:
    command = PostCaseMessage(
        case_id=case_id,
        sender_id=x_actor_id,
        sender_role=x_actor_role,
        body=body.body,
    )
    return IdResponse(id=_unwrap(execute(command)))


@case_router.post("/{case_id}/escalation", response_model=RevisionResponse)
async def escalate_case(
    case_id: str,
    body: EscalateCaseRequest,
    x_actor_id: str = Header(...),
    x_actor_role: str = Depends(caller_role),
) -> RevisionResponse:
    """Hand the case to an admin; the case keeps its status."""
    command = EscalateCase(
        case_id=case_id,
        actor_id=x_actor_id,
        actor_role=x_actor_role,
        reason=body.reason,
        expected_revision=body.expected_revision,
    )
    return RevisionResponse(revision=_unwrap(execute(command)))


@case_router.post("/{case_id}/admin-decision", response_model=RevisionResponse)
async def record_admin_decision(
    case_id: str,
    body: AdminDecisionRequest,
    x_actor_id: str = Header(...),
    x_actor_role: str = Depends(caller_role),
) -> RevisionResponse:
    command = RecordAdminDecision(
        case_id=case_id,
        decision=body.decision,
        actor_id=x_actor_id,
        actor_role=x_actor_role,
        reason=body.reason,
        refund_amount=body.refund_amount,
        expected_revision=body.expected_revision,
    )
    return RevisionResponse(revision=_unwrap(execute(command)))


# ---------------------------------------------------------------------------
# SLA Router
# ---------------------------------------------------------------------------
sla_router = APIRouter(prefix="/sla", tags=["sla"])


@sla_router.post("/configurations", status_code=201, response_model=IdResponse)
async def create_sla_configuration(
    body: SlaConfigurationRequest, x_actor_role: str = Depends(caller_role)
) -> IdResponse:
    command = SaveSlaConfiguration(actor_role=x_actor_role, **body.model_dump())
    return IdResponse(id=_unwrap(execute(command)))


@sla_router.put("/configurations/{configuration_id}", response_model=IdResponse)
async def update_sla_configuration(
    configuration_id: str, body: SlaConfigurationRequest, x_actor_role: str = Depends(caller_role)
) -> IdResponse:
    command = SaveSlaConfiguration(configuration_id=configuration_id, actor_role=x_actor_role, **body.model_dump())
    return IdResponse(id=_unwrap(execute(command)))


@sla_router.delete("/configurations/{configuration_id}", status_code=204)
async def deactivate_sla_configuration(configuration_id: str, x_actor_role: str = Depends(caller_role)) -> None:
    _unwrap(execute(DeactivateSlaConfiguration(configuration_id=configuration_id, actor_role=x_actor_role)))


@sla_router.post("/sweep", response_model=SweepResponse)
async def sweep_sla(body: SweepRequest) -> SweepResponse:
    """Re-evaluate breach flags of every running SLA clock."""
    return SweepResponse(changed=run_breach_sweep(as_of=body.as_of))


@sla_router.get("/dashboard", response_model=DashboardSlaStatisticsResponse)
async def sla_dashboard(start: datetime | None = None, end: datetime | None = None) -> DashboardSlaStatisticsResponse:
    return DashboardSlaStatisticsResponse(**asdict(dashboard_statistics(start=start, end=end)))


@sla_router.get("/stores", response_model=list[StoreSlaStatisticsResponse])
async def sla_store_statistics(
    start: datetime | None = None, end: datetime | None = None
) -> list[StoreSlaStatisticsResponse]:
    return [StoreSlaStatisticsResponse(**asdict(row)) for row in store_statistics(start=start, end=end)]


@sla_router.get("/breached", response_model=list[BreachedCaseResponse])
async def sla_breached_cases(store_id: str | None = None) -> list[BreachedCaseResponse]:
    return [
        BreachedCaseResponse(
            case_id=str(record.case_id),
            case_number=record.case_number,
            store_id=str(record.store_id),
            sla_status=record.status,
            case_created_at=record.case_created_at,
        )
        for record in breached_open_cases(store_id=store_id)
    ]


# ---------------------------------------------------------------------------
# Commission Router
# ---------------------------------------------------------------------------
commission_router = APIRouter(prefix="/commissions", tags=["commissions"])


@commission_router.post("/rules", status_code=201, response_model=IdResponse)
async def add_commission_rule(body: CommissionRuleRequest, x_actor_role: str = Depends(caller_role)) -> IdResponse:
    command = AddCommissionRule(actor_role=x_actor_role, **body.model_dump())
    return IdResponse(id=_unwrap(execute(command)))


@commission_router.get("/sellers", response_model=list[SellerCommissionSummaryResponse])
async def commission_summary(
    start: datetime | None = None, end: datetime | None = None
) -> list[SellerCommissionSummaryResponse]:
    return [
        SellerCommissionSummaryResponse(
            store_id=row.store_id,
            store_name=row.store_name,
            order_count=row.order_count,
            gmv=str(row.gmv),
            commission=str(row.commission),
            net_payout=str(row.net_payout),
        )
        for row in seller_summary(start=start, end=end)
    ]


@commission_router.get("/sellers/{store_id}/orders", response_model=list[SellerOrderRowResponse])
async def commission_order_rows(
    store_id: str, start: datetime | None = None, end: datetime | None = None
) -> list[SellerOrderRowResponse]:
    return [
        SellerOrderRowResponse(
            order_id=row.order_id,
            order_amount=str(row.order_amount),
            refunded_amount=str(row.refunded_amount),
            commission_rate=str(row.commission_rate),
            net_commission=str(row.net_commission),
            gmv=str(row.gmv),
            net_payout=str(row.net_payout),
            calculated_at=row.calculated_at,
        )
        for row in seller_order_rows(store_id, start=start, end=end)
    ]
