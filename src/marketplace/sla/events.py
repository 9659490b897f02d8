"""Domain events for SLA tracking."""

from protean.fields import DateTime, Identifier, String

from marketplace.domain import marketplace


@marketplace.event(part_of="SlaTrackingRecord")
class SlaBreached:
    """A case went past one of its SLA deadlines."""

    __version__ = 1

    case_id = Identifier(required=True)
    store_id = Identifier(required=True)
    breach_type = String(required=True)  # "first_response" or "resolution"
    deadline = DateTime(required=True)
    detected_at = DateTime(required=True)


@marketplace.event(part_of="SlaTrackingRecord")
class SlaStatusChanged:
    __version__ = 1

    case_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_at = DateTime(required=True)


@marketplace.event(part_of="SlaTrackingRecord")
class SlaClockStarted:
    """Targets were snapshotted for a newly opened case."""

    __version__ = 1

    case_id = Identifier(required=True)
    store_id = Identifier(required=True)
    configuration_id = Identifier()
    first_response_due_at = DateTime()
    resolution_due_at = DateTime()
    started_at = DateTime(required=True)


@marketplace.event(part_of="SlaTrackingRecord")
class SlaTargetsAssigned:
    """A configuration became available for a case that opened without one."""

    __version__ = 1

    case_id = Identifier(required=True)
    store_id = Identifier(required=True)
    configuration_id = Identifier(required=True)
    first_response_due_at = DateTime()
    resolution_due_at = DateTime()
    assigned_at = DateTime(required=True)
