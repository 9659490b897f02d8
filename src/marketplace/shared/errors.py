"""Error taxonomy shared by every marketplace operation.

Domain code raises ``protean.exceptions.ValidationError`` keyed by one of the
codes below, so callers (API routes, ``shared.result.execute``) can tell the
failure kinds apart without a custom exception hierarchy.
"""

from enum import Enum

from protean.exceptions import ValidationError


class ErrorCode(Enum):
    VALIDATION = "validation"
    NOT_AUTHORIZED = "not_authorized"
    INVALID_TRANSITION = "invalid_transition"
    NOT_FOUND = "not_found"
    CONFIGURATION_MISSING = "configuration_missing"
    ITEM_ALREADY_IN_OPEN_CASE = "item_already_in_open_case"
    NO_ITEMS_SELECTED = "no_items_selected"
    CASE_CLOSED = "case_closed"
    DECOMPOSITION_MISMATCH = "decomposition_mismatch"
    CONCURRENCY_CONFLICT = "concurrency_conflict"


def domain_error(code: ErrorCode, message: str) -> ValidationError:
    """Build a ValidationError carrying a single coded message."""
    return ValidationError({code.value: [message]})


def error_codes(exc: ValidationError) -> set[str]:
    return set(exc.messages.keys())


def check_revision(aggregate, expected_revision: int | None) -> None:
    """Optimistic concurrency guard.

    Commands may carry the revision the caller last read. A mismatch means
    another writer got there first and the caller must retry with a fresh read.
    """
    if expected_revision is None:
        return
    if aggregate.revision != expected_revision:
        raise domain_error(
            ErrorCode.CONCURRENCY_CONFLICT,
            f"Expected revision {expected_revision} but found {aggregate.revision}",
        )
