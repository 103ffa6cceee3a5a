"""
Typed outcomes for workflow operations.

Services return an OperationResult instead of raising for expected
failures, so callers can tell "not found", "invalid transition",
"storage unavailable" and "lost a concurrent write" apart. Side effects that
fail after the primary write committed (audit entry, notification) are
reported in `warnings`; the primary change is not rolled back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from domain.quote import Quote


class ErrorKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    CONFLICT = "CONFLICT"
    VALIDATION = "VALIDATION"
    DELIVERY_FAILED = "DELIVERY_FAILED"


@dataclass(frozen=True, slots=True)
class OperationResult:
    """
    Result of a single-quote operation.

    success: True if the primary change was stored (or was a no-op)
    quote: The quote after the operation (the unchanged quote on failure,
        when it could be read)
    error: What went wrong (None if success=True)
    message: Human-readable description
    warnings: Side effects that failed after the change committed
    """

    success: bool
    quote: Optional[Quote] = None
    error: Optional[ErrorKind] = None
    message: str = ""
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def ok(cls, quote: Optional[Quote], message: str = "", warnings: Optional[List[str]] = None) -> "OperationResult":
        return cls(success=True, quote=quote, message=message, warnings=list(warnings or []))

    @classmethod
    def fail(cls, error: ErrorKind, message: str, quote: Optional[Quote] = None) -> "OperationResult":
        return cls(success=False, quote=quote, error=error, message=message)


@dataclass(frozen=True, slots=True)
class BatchAssignmentResult:
    """
    Per-quote outcome of a batch assignment.

    assigned: quote ids given a new (or re-pointed) assignment
    unchanged: quote ids already actively assigned to the same agent
    failures: quote id -> error kind for quotes that were not assigned
    messages: quote id -> failure description
    warnings: side-effect failures for quotes that were assigned
    """

    assigned: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    failures: Dict[str, ErrorKind] = field(default_factory=dict)
    messages: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures


__all__ = ["BatchAssignmentResult", "ErrorKind", "OperationResult"]
