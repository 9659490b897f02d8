"""Explicit success/failure results for marketplace operations.

Command handlers raise ``ValidationError`` for expected failures, the same way
the aggregates do. ``execute`` is the boundary that turns those into an
``OperationResult`` carrying zero or more coded error entries. Anything else
(storage down, programming errors) propagates to the caller untouched.
"""

from dataclasses import dataclass, field
from typing import Any

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from marketplace.shared.errors import ErrorCode

logger = structlog.get_logger(__name__)

_KNOWN_CODES = {code.value for code in ErrorCode}


@dataclass(frozen=True)
class ErrorEntry:
    code: str
    message: str


@dataclass
class OperationResult:
    succeeded: bool
    value: Any = None
    errors: list[ErrorEntry] = field(default_factory=list)

    @classmethod
    def success(cls, value: Any = None, warnings: list[ErrorEntry] | None = None) -> "OperationResult":
        """A successful result; ``warnings`` carries soft failures such as a missing SLA configuration."""
        return cls(succeeded=True, value=value, errors=list(warnings or []))

    @classmethod
    def failure(cls, code: ErrorCode | str, message: str) -> "OperationResult":
        code_value = code.value if isinstance(code, ErrorCode) else code
        return cls(succeeded=False, errors=[ErrorEntry(code_value, message)])

    @classmethod
    def from_validation_error(cls, exc: ValidationError) -> "OperationResult":
        entries = []
        for key, messages in exc.messages.items():
            if not isinstance(messages, list):
                messages = [messages]
            for message in messages:
                if key in _KNOWN_CODES:
                    entries.append(ErrorEntry(key, str(message)))
                else:
                    # Field-level validation from protean, e.g. {"reason": ["is required"]}
                    entries.append(ErrorEntry(ErrorCode.VALIDATION.value, f"{key}: {message}"))
        return cls(succeeded=False, errors=entries)

    @property
    def error_codes(self) -> list[str]:
        return [entry.code for entry in self.errors]

    def has_error(self, code: ErrorCode) -> bool:
        return code.value in self.error_codes


def execute(command) -> OperationResult:
    """Process a command synchronously and report the outcome as a result."""
    try:
        value = current_domain.process(command, asynchronous=False)
    except ValidationError as exc:
        logger.info(
            "Command rejected",
            command=command.__class__.__name__,
            errors=exc.messages,
        )
        return OperationResult.from_validation_error(exc)
    except ObjectNotFoundError as exc:
        logger.info("Command target not found", command=command.__class__.__name__)
        return OperationResult.failure(ErrorCode.NOT_FOUND, str(exc))

    if isinstance(value, OperationResult):
        return value
    return OperationResult.success(value)
