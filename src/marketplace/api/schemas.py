"""Pydantic API schemas for the marketplace context.

These are the external API contracts — separate from domain commands.
The API layer translates between these schemas and domain commands.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class LineItemRequest(BaseModel):
    store_id: str
    product_id: str
    product_title: str | None = None
    category: str | None = None
    quantity: int
    unit_price: float


class DeliveryAddressRequest(BaseModel):
    recipient_name: str | None = None
    street: str
    city: str
    state: str | None = None
    postal_code: str
    country: str


class DecomposeOrderRequest(BaseModel):
    buyer_id: str
    items: list[LineItemRequest]
    items_subtotal: float
    shipping_total: float = 0.0
    delivery_address: DeliveryAddressRequest | None = None
    payment_transaction_id: str | None = None
    payment_captured: bool = True


class StatusChangeRequest(BaseModel):
    target_status: str
    note: str | None = None
    override: bool = False
    expected_revision: int | None = None


class SubOrderStatusChangeRequest(StatusChangeRequest):
    carrier: str | None = None
    tracking_number: str | None = None
    approved_case_id: str | None = None


class TrackingUpdateRequest(BaseModel):
    tracking_number: str
    carrier: str | None = None
    expected_revision: int | None = None


class ItemStatusChangeRequest(BaseModel):
    target_status: str
    expected_revision: int | None = None


class CaseItemSelection(BaseModel):
    item_id: str
    quantity: int


class CreateCaseRequest(BaseModel):
    sub_order_id: str
    case_type: str
    reason: str
    items: list[CaseItemSelection]


class CaseMessageRequest(BaseModel):
    body: str


class EscalateCaseRequest(BaseModel):
    reason: str
    expected_revision: int | None = None


class AdminDecisionRequest(BaseModel):
    decision: str
    reason: str | None = None
    refund_amount: float | None = None
    expected_revision: int | None = None


class SlaConfigurationRequest(BaseModel):
    name: str
    case_type: str | None = None
    category: str | None = None
    first_response_hours: int
    resolution_hours: int
    priority: int = 0
    effective_from: datetime | None = None
    effective_to: datetime | None = None


class SweepRequest(BaseModel):
    as_of: datetime | None = None


class CommissionRuleRequest(BaseModel):
    name: str
    store_id: str | None = None
    category: str | None = None
    rate: float
    min_commission: float | None = None
    max_commission: float | None = None
    priority: int = 0


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class ErrorEntryResponse(BaseModel):
    code: str
    message: str


class DecomposeOrderResponse(BaseModel):
    order_id: str
    order_number: str
    sub_order_ids: list[str]


class RevisionResponse(BaseModel):
    revision: int


class IdResponse(BaseModel):
    id: str


class CaseCreatedResponse(BaseModel):
    case_id: str
    case_number: str
    warnings: list[ErrorEntryResponse] = Field(default_factory=list)


class EligibilityResponse(BaseModel):
    allowed: bool
    blocked_reason: str | None = None


class ShippingHistoryEntryResponse(BaseModel):
    previous_status: str | None = None
    new_status: str
    actor_id: str
    actor_role: str | None = None
    changed_at: datetime
    carrier: str | None = None
    tracking_number: str | None = None
    note: str | None = None


class SubOrderItemResponse(BaseModel):
    item_id: str
    product_id: str
    product_title: str | None = None
    category: str | None = None
    quantity: int
    unit_price: float
    status: str


class SubOrderResponse(BaseModel):
    sub_order_id: str
    sub_order_number: str
    order_id: str
    store_id: str
    store_name: str | None = None
    status: str
    items_subtotal: float
    shipping_cost: float
    total_amount: float
    carrier: str | None = None
    tracking_number: str | None = None
    delivered_at: datetime | None = None
    revision: int
    items: list[SubOrderItemResponse]
    history: list[ShippingHistoryEntryResponse]


class OrderResponse(BaseModel):
    order_id: str
    order_number: str
    buyer_id: str
    status: str
    items_subtotal: float
    shipping_total: float
    total_amount: float
    revision: int
    sub_order_ids: list[str]


class CaseOverviewResponse(BaseModel):
    case_id: str
    case_number: str | None = None
    sub_order_id: str | None = None
    store_id: str | None = None
    case_type: str | None = None
    status: str | None = None
    refund_amount: float | None = None
    message_count: int | None = None
    created_at: datetime | None = None
    first_response_at: datetime | None = None
    resolved_at: datetime | None = None
    sla_status: str | None = None
    first_response_due_at: datetime | None = None
    resolution_due_at: datetime | None = None
    is_first_response_breached: bool = False
    is_resolution_breached: bool = False
    is_escalated: bool = False
    admin_decision: str | None = None


class SweepResponse(BaseModel):
    changed: int


class StoreSlaStatisticsResponse(BaseModel):
    store_id: str
    store_name: str
    total_cases: int
    resolved_within_sla: int
    responded_within_sla: int
    first_response_breaches: int
    resolution_breaches: int
    average_response_hours: float | None = None
    average_resolution_hours: float | None = None


class DashboardSlaStatisticsResponse(BaseModel):
    start: datetime | None = None
    end: datetime | None = None
    total_cases: int
    open_cases: int
    currently_breached_cases: int
    resolved_within_sla: int
    responded_within_sla: int
    first_response_breaches: int
    resolution_breaches: int
    average_response_hours: float | None = None
    average_resolution_hours: float | None = None


class BreachedCaseResponse(BaseModel):
    case_id: str
    case_number: str | None = None
    store_id: str
    sla_status: str
    case_created_at: datetime


class SellerCommissionSummaryResponse(BaseModel):
    store_id: str
    store_name: str
    order_count: int
    gmv: str
    commission: str
    net_payout: str


class SellerOrderRowResponse(BaseModel):
    order_id: str
    order_amount: str
    refunded_amount: str
    commission_rate: str
    net_commission: str
    gmv: str
    net_payout: str
    calculated_at: datetime
