"""Case overview — per-case status and SLA fields for support and seller dashboards."""

from protean.core.projector import on
from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from marketplace.case.case import Case
from marketplace.case.events import (
    CaseAdminDecisionRecorded,
    CaseApproved,
    CaseEscalated,
    CaseMessagePosted,
    CaseOpened,
    CaseStatusChanged,
)
from marketplace.domain import marketplace
from marketplace.sla.events import SlaBreached, SlaClockStarted, SlaStatusChanged, SlaTargetsAssigned
from marketplace.sla.tracking import SlaStatus, SlaTrackingRecord


@marketplace.projection
class CaseOverview:
    case_id = Identifier(identifier=True, required=True)
    case_number = String()
    sub_order_id = Identifier()
    order_id = Identifier()
    store_id = Identifier()
    buyer_id = Identifier()
    case_type = String()
    status = String()
    item_count = Integer(default=0)
    refund_amount = Float(default=0.0)
    message_count = Integer(default=0)
    is_escalated = Boolean(default=False)
    admin_decision = String()
    created_at = DateTime()
    first_response_at = DateTime()
    resolved_at = DateTime()
    sla_status = String(default=SlaStatus.PENDING.value)
    first_response_due_at = DateTime()
    resolution_due_at = DateTime()
    is_first_response_breached = Boolean(default=False)
    is_resolution_breached = Boolean(default=False)
    updated_at = DateTime()


def _load(case_id) -> CaseOverview:
    """Case and SLA events can arrive in either order, so either side may create the row."""
    repo = current_domain.repository_for(CaseOverview)
    try:
        return repo.get(str(case_id))
    except ObjectNotFoundError:
        return CaseOverview(case_id=str(case_id))


@marketplace.projector(projector_for=CaseOverview, aggregates=[Case, SlaTrackingRecord])
class CaseOverviewProjector:
    @on(CaseOpened)
    def on_case_opened(self, event):
        view = _load(event.case_id)
        view.case_number = event.case_number
        view.sub_order_id = event.sub_order_id
        view.order_id = event.order_id
        view.store_id = event.store_id
        view.buyer_id = event.buyer_id
        view.case_type = event.case_type
        view.status = "Requested"
        view.item_count = event.item_count
        view.refund_amount = event.requested_amount
        view.created_at = event.created_at
        view.updated_at = event.created_at
        current_domain.repository_for(CaseOverview).add(view)

    @on(CaseStatusChanged)
    def on_case_status_changed(self, event):
        view = _load(event.case_id)
        view.status = event.new_status
        if event.is_first_response:
            view.first_response_at = event.changed_at
        if event.is_resolution:
            view.resolved_at = event.changed_at
        view.updated_at = event.changed_at
        current_domain.repository_for(CaseOverview).add(view)

    @on(CaseApproved)
    def on_case_approved(self, event):
        view = _load(event.case_id)
        view.refund_amount = event.refund_amount
        current_domain.repository_for(CaseOverview).add(view)

    @on(CaseMessagePosted)
    def on_message_posted(self, event):
        view = _load(event.case_id)
        view.message_count = (view.message_count or 0) + 1
        view.updated_at = event.sent_at
        current_domain.repository_for(CaseOverview).add(view)

    @on(CaseEscalated)
    def on_case_escalated(self, event):
        view = _load(event.case_id)
        view.is_escalated = True
        view.admin_decision = None
        view.updated_at = event.escalated_at
        current_domain.repository_for(CaseOverview).add(view)

    @on(CaseAdminDecisionRecorded)
    def on_admin_decision_recorded(self, event):
        view = _load(event.case_id)
        view.admin_decision = event.decision
        current_domain.repository_for(CaseOverview).add(view)

    @on(SlaClockStarted)
    def on_sla_clock_started(self, event):
        view = _load(event.case_id)
        view.store_id = event.store_id
        view.first_response_due_at = event.first_response_due_at
        view.resolution_due_at = event.resolution_due_at
        current_domain.repository_for(CaseOverview).add(view)

    @on(SlaTargetsAssigned)
    def on_sla_targets_assigned(self, event):
        view = _load(event.case_id)
        view.first_response_due_at = event.first_response_due_at
        view.resolution_due_at = event.resolution_due_at
        current_domain.repository_for(CaseOverview).add(view)

    @on(SlaBreached)
    def on_sla_breached(self, event):
        view = _load(event.case_id)
        if event.breach_type == "first_response":
            view.is_first_response_breached = True
        else:
            view.is_resolution_breached = True
        current_domain.repository_for(CaseOverview).add(view)

    @on(SlaStatusChanged)
    def on_sla_status_changed(self, event):
        view = _load(event.case_id)
        view.sla_status = event.new_status
        current_domain.repository_for(CaseOverview).add(view)
