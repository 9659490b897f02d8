"""SLA read side — dashboard totals, per-store compliance statistics and the breach watchlist.

Breach flags are recomputed on read with ``compute_breach`` so reports are
current even between sweeps. Nothing here writes.
"""

from dataclasses import dataclass
from datetime import datetime

from protean.utils.globals import current_domain

from marketplace.settings import UNKNOWN_SELLER_LABEL
from marketplace.shared.clock import as_utc, utc_now
from marketplace.sla.tracking import FINISHED_STATUSES, SlaStatus, SlaTrackingRecord, compute_breach


@dataclass(frozen=True)
class StoreSlaStatistics:
    store_id: str
    store_name: str
    total_cases: int
    resolved_within_sla: int
    responded_within_sla: int
    first_response_breaches: int
    resolution_breaches: int
    average_response_hours: float | None
    average_resolution_hours: float | None


@dataclass(frozen=True)
class DashboardSlaStatistics:
    start: datetime | None
    end: datetime | None
    total_cases: int
    open_cases: int
    currently_breached_cases: int
    resolved_within_sla: int
    responded_within_sla: int
    first_response_breaches: int
    resolution_breaches: int
    average_response_hours: float | None
    average_resolution_hours: float | None


def _average(values: list[float]) -> float | None:
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def _in_range(record: SlaTrackingRecord, start: datetime | None, end: datetime | None) -> bool:
    created = as_utc(record.case_created_at)
    if start is not None and created < as_utc(start):
        return False
    if end is not None and created > as_utc(end):
        return False
    return True


def _all_records() -> list[SlaTrackingRecord]:
    return current_domain.repository_for(SlaTrackingRecord)._dao.query.all().items


def summarize(records: list[SlaTrackingRecord], now: datetime) -> dict:
    """Counts and averages over one group of records.

    Averages only include records that have the measured timestamp, so
    unanswered or unresolved cases do not pull them down.
    """
    flags = [compute_breach(now, record) for record in records]
    return {
        "total_cases": len(records),
        "resolved_within_sla": sum(1 for r in records if r.status == SlaStatus.RESOLVED_WITHIN_SLA.value),
        "responded_within_sla": sum(
            1
            for r, f in zip(records, flags, strict=True)
            if r.first_response_at is not None and not f.first_response_breached
        ),
        "first_response_breaches": sum(1 for f in flags if f.first_response_breached),
        "resolution_breaches": sum(1 for f in flags if f.resolution_breached),
        "average_response_hours": _average(
            [r.response_hours_taken for r in records if r.response_hours_taken is not None]
        ),
        "average_resolution_hours": _average(
            [r.resolution_hours_taken for r in records if r.resolution_hours_taken is not None]
        ),
    }


def store_statistics(start=None, end=None, as_of=None) -> list[StoreSlaStatistics]:
    """Per-store SLA statistics for cases created between ``start`` and ``end`` (inclusive)."""
    now = as_utc(as_of) or utc_now()
    groups: dict[str, list[SlaTrackingRecord]] = {}
    for record in _all_records():
        if _in_range(record, start, end):
            groups.setdefault(str(record.store_id), []).append(record)

    rows = [
        StoreSlaStatistics(
            store_id=store_id,
            store_name=records[0].store_name or UNKNOWN_SELLER_LABEL,
            **summarize(records, now),
        )
        for store_id, records in groups.items()
    ]
    return sorted(rows, key=lambda row: (-row.total_cases, row.store_name))


def dashboard_statistics(start=None, end=None, as_of=None) -> DashboardSlaStatistics:
    """Marketplace-wide SLA totals for cases created between ``start`` and ``end``.

    ``open_cases`` counts the cases of the period that are not resolved yet.
    ``currently_breached_cases`` is the size of the breach watchlist and is not
    limited to the period.
    """
    now = as_utc(as_of) or utc_now()
    records = [record for record in _all_records() if _in_range(record, start, end)]
    return DashboardSlaStatistics(
        start=start,
        end=end,
        open_cases=sum(1 for r in records if r.resolved_at is None),
        currently_breached_cases=len(breached_open_cases(as_of=now)),
        **summarize(records, now),
    )


def breached_open_cases(as_of=None, store_id=None) -> list[SlaTrackingRecord]:
    """Cases past a deadline that are still unresolved, newest first.

    A case resolved within its SLA, or already closed, never shows up here
    whatever its flags say.
    """
    now = as_utc(as_of) or utc_now()
    finished = {status.value for status in FINISHED_STATUSES}
    breached = []
    for record in _all_records():
        if record.status in finished:
            continue
        if store_id is not None and str(record.store_id) != str(store_id):
            continue
        flags = compute_breach(now, record)
        if flags.first_response_breached or flags.resolution_breached:
            breached.append(record)
    return sorted(breached, key=lambda r: as_utc(r.case_created_at), reverse=True)
