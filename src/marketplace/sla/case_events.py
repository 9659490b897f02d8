"""SLA tracking reacts to case status changes.

The first entry into review stops the first-response clock and the first
approval or rejection stops the resolution clock. Both are recorded once.
"""

import structlog
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from marketplace.case.events import CaseStatusChanged
from marketplace.domain import marketplace
from marketplace.sla.tracking import SlaTrackingRecord

logger = structlog.get_logger(__name__)


@marketplace.event_handler(part_of=SlaTrackingRecord, stream_category="marketplace::case")
class CaseSlaEventHandler:
    @handle(CaseStatusChanged)
    def on_case_status_changed(self, event: CaseStatusChanged) -> None:
        if not (event.is_first_response or event.is_resolution):
            return

        repo = current_domain.repository_for(SlaTrackingRecord)
        record = repo.get(str(event.case_id))

        if event.is_first_response and record.record_first_response(event.changed_at):
            logger.info(
                "First response recorded",
                case_id=str(event.case_id),
                breached=record.is_first_response_breached,
            )
        if event.is_resolution and record.record_resolution(event.changed_at):
            logger.info(
                "Case resolution recorded",
                case_id=str(event.case_id),
                sla_status=record.status,
            )
        repo.add(record)
