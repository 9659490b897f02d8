"""SlaTrackingRecord aggregate — SLA clock of a single case.

Targets are copied from the resolved SlaConfiguration when the case opens,
so editing a configuration later never moves the deadlines of cases that
are already running. A case that opens with no applicable configuration
runs without targets until the sweep finds one; deadlines still count from
the case's creation. Breach flags are never set by hand: they come from
``compute_breach``, a pure function of the record's timestamps and a clock
reading, and once raised they stay raised.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from protean.fields import Boolean, DateTime, Identifier, Integer, String

from marketplace.domain import marketplace
from marketplace.shared.clock import as_utc, hours_between, utc_now
from marketplace.sla.events import SlaBreached, SlaClockStarted, SlaStatusChanged, SlaTargetsAssigned


class SlaStatus(Enum):
    PENDING = "Pending"
    RESPONDED = "Responded"
    RESOLVED_WITHIN_SLA = "ResolvedWithinSla"
    FIRST_RESPONSE_BREACHED = "FirstResponseBreached"
    RESOLUTION_BREACHED = "ResolutionBreached"
    CLOSED = "Closed"


FINISHED_STATUSES = {SlaStatus.RESOLVED_WITHIN_SLA, SlaStatus.CLOSED}


@dataclass(frozen=True)
class BreachFlags:
    first_response_breached: bool
    resolution_breached: bool


def _deadline(start: datetime, hours: int | None) -> datetime | None:
    if hours is None:
        return None
    return as_utc(start) + timedelta(hours=hours)


def _is_breached(deadline: datetime | None, recorded_at: datetime | None, now: datetime) -> bool:
    if deadline is None:
        return False
    if recorded_at is not None:
        return as_utc(recorded_at) > deadline
    return as_utc(now) > deadline


def compute_breach(now: datetime, record) -> BreachFlags:
    """Breach flags of ``record`` as seen at ``now``.

    A target is breached when nothing was recorded and ``now`` is past the
    deadline, or when the recorded time itself is past the deadline. Records
    without targets never breach. Flags already raised on the record stay
    raised.
    """
    first_response = _is_breached(
        _deadline(record.case_created_at, record.first_response_hours),
        record.first_response_at,
        now,
    )
    resolution = _is_breached(
        _deadline(record.case_created_at, record.resolution_hours),
        record.resolved_at,
        now,
    )
    return BreachFlags(
        first_response_breached=bool(record.is_first_response_breached) or first_response,
        resolution_breached=bool(record.is_resolution_breached) or resolution,
    )


@marketplace.aggregate
class SlaTrackingRecord:
    case_id = Identifier(identifier=True)
    case_number = String(max_length=20)
    case_type = String(max_length=20)
    category = String(max_length=100)
    store_id = Identifier(required=True)
    store_name = String(max_length=200)
    case_created_at = DateTime(required=True)
    first_response_at = DateTime()
    resolved_at = DateTime()
    first_response_hours = Integer()
    resolution_hours = Integer()
    configuration_id = Identifier()
    status = String(
        choices=SlaStatus,
        default=SlaStatus.PENDING.value,
    )
    is_first_response_breached = Boolean(default=False)
    is_resolution_breached = Boolean(default=False)
    last_evaluated_at = DateTime()

    @classmethod
    def start(
        cls, case_id, case_number, case_type, store_id, store_name, case_created_at, configuration=None, category=None
    ):
        record = cls(
            case_id=case_id,
            case_number=case_number,
            case_type=case_type,
            category=category,
            store_id=store_id,
            store_name=store_name,
            case_created_at=case_created_at,
            first_response_hours=configuration.first_response_hours if configuration else None,
            resolution_hours=configuration.resolution_hours if configuration else None,
            configuration_id=configuration.id if configuration else None,
        )
        record.raise_(
            SlaClockStarted(
                case_id=case_id,
                store_id=store_id,
                configuration_id=record.configuration_id,
                first_response_due_at=record.first_response_deadline,
                resolution_due_at=record.resolution_deadline,
                started_at=case_created_at,
            )
        )
        return record

    @property
    def has_targets(self) -> bool:
        return self.first_response_hours is not None or self.resolution_hours is not None

    def assign_targets(self, configuration, at=None) -> bool:
        """Snapshot targets for a record that opened without any. Returns False if it already has them."""
        if self.has_targets:
            return False
        self.first_response_hours = configuration.first_response_hours
        self.resolution_hours = configuration.resolution_hours
        self.configuration_id = configuration.id
        self.raise_(
            SlaTargetsAssigned(
                case_id=self.case_id,
                store_id=self.store_id,
                configuration_id=configuration.id,
                first_response_due_at=self.first_response_deadline,
                resolution_due_at=self.resolution_deadline,
                assigned_at=as_utc(at) or utc_now(),
            )
        )
        return True

    @property
    def first_response_deadline(self) -> datetime | None:
        return _deadline(self.case_created_at, self.first_response_hours)

    @property
    def resolution_deadline(self) -> datetime | None:
        return _deadline(self.case_created_at, self.resolution_hours)

    @property
    def response_hours_taken(self) -> float | None:
        if self.first_response_at is None:
            return None
        return hours_between(self.case_created_at, self.first_response_at)

    @property
    def resolution_hours_taken(self) -> float | None:
        if self.resolved_at is None:
            return None
        return hours_between(self.case_created_at, self.resolved_at)

    @property
    def is_finished(self) -> bool:
        return SlaStatus(self.status) in FINISHED_STATUSES

    def record_first_response(self, at: datetime) -> bool:
        """Only the first response counts. Returns False when one was already recorded."""
        if self.first_response_at is not None:
            return False
        self.first_response_at = as_utc(at)
        self.evaluate(at)
        return True

    def record_resolution(self, at: datetime) -> bool:
        if self.resolved_at is not None:
            return False
        self.resolved_at = as_utc(at)
        self.evaluate(at)
        return True

    def evaluate(self, now=None) -> bool:
        """Refresh breach flags and status as of ``now``. Returns True when anything changed."""
        now = as_utc(now) or utc_now()
        flags = compute_breach(now, self)
        changed = False

        if flags.first_response_breached and not self.is_first_response_breached:
            self.is_first_response_breached = True
            self._raise_breach("first_response", self.first_response_deadline, now)
            changed = True
        if flags.resolution_breached and not self.is_resolution_breached:
            self.is_resolution_breached = True
            self._raise_breach("resolution", self.resolution_deadline, now)
            changed = True

        new_status = self._derive_status()
        if new_status.value != self.status:
            previous = self.status
            self.status = new_status.value
            self.raise_(
                SlaStatusChanged(
                    case_id=self.case_id,
                    previous_status=previous,
                    new_status=new_status.value,
                    changed_at=now,
                )
            )
            changed = True

        self.last_evaluated_at = now
        return changed

    def _derive_status(self) -> SlaStatus:
        breached = self.is_first_response_breached or self.is_resolution_breached
        if self.resolved_at is not None:
            return SlaStatus.CLOSED if breached else SlaStatus.RESOLVED_WITHIN_SLA
        if self.is_resolution_breached:
            return SlaStatus.RESOLUTION_BREACHED
        if self.is_first_response_breached:
            return SlaStatus.FIRST_RESPONSE_BREACHED
        if self.first_response_at is not None:
            return SlaStatus.RESPONDED
        return SlaStatus.PENDING

    def _raise_breach(self, breach_type: str, deadline: datetime, now: datetime) -> None:
        self.raise_(
            SlaBreached(
                case_id=self.case_id,
                store_id=self.store_id,
                breach_type=breach_type,
                deadline=deadline,
                detected_at=now,
            )
        )
