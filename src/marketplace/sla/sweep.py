"""SLA breach sweep — periodic re-evaluation of running SLA clocks.

Each record is evaluated in its own unit of work, so an interrupted sweep
keeps every flag it already wrote and a restarted one simply evaluates the
remaining records again. Evaluation is a deterministic function of the
record's timestamps, which makes reprocessing harmless. Records that opened
without an SLA configuration are matched again on every sweep and pick up
targets as soon as one applies.

Usage:
    python src/manage.py sweep-sla
"""

import structlog
from protean import handle
from protean.fields import DateTime, Identifier
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.shared.clock import as_utc, utc_now
from marketplace.sla.configuration import resolve_configuration
from marketplace.sla.tracking import FINISHED_STATUSES, SlaTrackingRecord

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="SlaTrackingRecord")
class EvaluateSlaRecord:
    """Re-evaluate the breach flags of one case."""

    case_id = Identifier(required=True)
    as_of = DateTime()  # Optional: evaluate as of this time (defaults to now)


@marketplace.command_handler(part_of=SlaTrackingRecord)
class EvaluateSlaRecordHandler:
    @handle(EvaluateSlaRecord)
    def evaluate(self, command: EvaluateSlaRecord):
        repo = current_domain.repository_for(SlaTrackingRecord)
        record = repo.get(command.case_id)
        now = as_utc(command.as_of) or utc_now()

        assigned = False
        if not record.has_targets:
            configuration = resolve_configuration(record.case_type, record.category, as_of=now)
            if configuration is None:
                return False
            assigned = record.assign_targets(configuration, at=now)
            logger.info(
                "SLA targets assigned",
                case_id=str(record.case_id),
                configuration_id=str(configuration.id),
            )

        changed = record.evaluate(now)
        repo.add(record)
        return changed or assigned


def pending_records() -> list[SlaTrackingRecord]:
    """Records whose SLA clock is still running."""
    finished = {status.value for status in FINISHED_STATUSES}
    records = current_domain.repository_for(SlaTrackingRecord)._dao.query.all().items
    return [record for record in records if record.status not in finished]


def run_breach_sweep(as_of=None) -> int:
    """Evaluate every running record as of ``as_of``. Returns how many changed."""
    as_of = as_utc(as_of) or utc_now()
    changed = 0
    for record in pending_records():
        if current_domain.process(EvaluateSlaRecord(case_id=record.case_id, as_of=as_of), asynchronous=False):
            changed += 1

    logger.info("SLA breach sweep finished", as_of=as_of.isoformat(), changed=changed)
    return changed
