"""
Domain: Quote assignments and the agent pool.

Contract excerpts implemented here:
- A quote has at most one active assignment at a time.
- Assignment status moves ASSIGNED -> CLAIMED -> (REJECTED | COMPLETED).
  An ASSIGNED quote may also be rejected before it is claimed.
  REJECTED and COMPLETED are terminal.
- claimed_at is set for CLAIMED and COMPLETED assignments and never
  precedes assigned_at. rejected_at and rejection_reason are set iff
  REJECTED. completed_at is set iff COMPLETED.
- Agent notes are purely additive.
- Assignment history entries are immutable facts, appended in order.
- Urgency is derived from assigned_at and the evaluation time; it is never
  stored.

This module contains only pure domain entities/value objects: no I/O.
All timestamps must be passed explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Tuple

from .time import require_utc_timestamp


class AssignmentStatus(str, Enum):
    ASSIGNED = "ASSIGNED"
    CLAIMED = "CLAIMED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"


class RejectionReason(str, Enum):
    NO_ANSWER = "NO_ANSWER"
    CONTACTED_IN_WHATSAPP = "CONTACTED_IN_WHATSAPP"
    ALREADY_INSURED = "ALREADY_INSURED"
    DROPPED_THE_CALL = "DROPPED_THE_CALL"
    NOT_INTERESTED = "NOT_INTERESTED"
    CUSTOMER_DECLINED_TO_PROCEED = "CUSTOMER_DECLINED_TO_PROCEED"
    OFFER_REJECTED = "OFFER_REJECTED"
    WILL_THINK_ABOUT_IT = "WILL_THINK_ABOUT_IT"
    FIND_BETTER_OFFER = "FIND_BETTER_OFFER"
    AWAITING_CUSTOMER_DECISION = "AWAITING_CUSTOMER_DECISION"
    CUSTOMER_WILL_CALL_BACK_LATER = "CUSTOMER_WILL_CALL_BACK_LATER"


class UrgencyLevel(str, Enum):
    URGENT = "URGENT"
    SOON = "SOON"
    NORMAL = "NORMAL"

    @property
    def rank(self) -> int:
        return {"URGENT": 3, "SOON": 2, "NORMAL": 1}[self.value]


class HistoryAction(str, Enum):
    ASSIGNED = "ASSIGNED"
    CLAIMED = "CLAIMED"
    EDITED = "EDITED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"


class AssignmentStateError(ValueError):
    """Raised when an assignment transition is not allowed from its current status."""


URGENT_AFTER = timedelta(hours=24)
SOON_AFTER = timedelta(hours=12)


def classify_urgency(assigned_at: datetime, as_of: datetime) -> UrgencyLevel:
    """
    Classify how long an assignment has been waiting.

    Strictly greater-than on both thresholds: exactly 24h is SOON and
    exactly 12h is NORMAL.
    """

    require_utc_timestamp("assigned_at", assigned_at)
    require_utc_timestamp("as_of", as_of)

    waited = as_of - assigned_at
    if waited > URGENT_AFTER:
        return UrgencyLevel.URGENT
    if waited > SOON_AFTER:
        return UrgencyLevel.SOON
    return UrgencyLevel.NORMAL


@dataclass(frozen=True, slots=True)
class AgentNote:
    """Private note left by the agent working an assignment."""

    id: str
    note_text: str
    created_at: datetime
    created_by: str
    created_by_name: str
    is_reminder: bool = False
    reminder_date: Optional[datetime] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        if self.reminder_date is not None:
            require_utc_timestamp("reminder_date", self.reminder_date)
            if not self.is_reminder:
                raise ValueError("reminder_date requires is_reminder")
        if not self.note_text.strip():
            raise ValueError("note_text must not be empty")


@dataclass(frozen=True, slots=True)
class AssignmentHistoryEntry:
    """Immutable record of something that happened to a quote's assignment."""

    id: str
    timestamp: datetime
    action: HistoryAction
    performed_by: str
    performed_by_name: str
    details: str

    def __post_init__(self) -> None:
        require_utc_timestamp("timestamp", self.timestamp)


@dataclass(frozen=True, slots=True)
class QuoteAssignment:
    """
    Which agent currently owns working a quote from the shared pool.

    Transitions return new instances; the receiver is never modified.
    """

    id: str
    quote_id: str
    assigned_to_agent_id: str
    assigned_to_agent_name: str
    assigned_by_agent_id: str
    assigned_by_agent_name: str
    assigned_at: datetime
    status: AssignmentStatus = AssignmentStatus.ASSIGNED
    claimed_at: Optional[datetime] = None
    claimed_by_agent_id: Optional[str] = None
    claimed_by_agent_name: Optional[str] = None
    rejection_reason: Optional[RejectionReason] = None
    rejection_note: Optional[str] = None
    rejected_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    agent_notes: Tuple[AgentNote, ...] = ()
    last_contacted_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("assigned_at", self.assigned_at)
        for name in ("claimed_at", "rejected_at", "completed_at", "last_contacted_at"):
            value = getattr(self, name)
            if value is not None:
                require_utc_timestamp(name, value)

        if self.claimed_at is not None and self.claimed_at < self.assigned_at:
            raise ValueError("claimed_at must be >= assigned_at")

        status = self.status
        if status == AssignmentStatus.ASSIGNED and self.claimed_at is not None:
            raise ValueError("ASSIGNED assignment cannot carry claimed_at")
        if status in (AssignmentStatus.CLAIMED, AssignmentStatus.COMPLETED) and self.claimed_at is None:
            raise ValueError(f"{status.value} assignment requires claimed_at")

        is_rejected = status == AssignmentStatus.REJECTED
        if is_rejected != (self.rejected_at is not None):
            raise ValueError("rejected_at is set iff status is REJECTED")
        if is_rejected != (self.rejection_reason is not None):
            raise ValueError("rejection_reason is set iff status is REJECTED")

        is_completed = status == AssignmentStatus.COMPLETED
        if is_completed != (self.completed_at is not None):
            raise ValueError("completed_at is set iff status is COMPLETED")

    @property
    def is_terminal(self) -> bool:
        return self.status in (AssignmentStatus.REJECTED, AssignmentStatus.COMPLETED)

    @property
    def is_active(self) -> bool:
        return not self.is_terminal

    def urgency(self, as_of: datetime) -> UrgencyLevel:
        return classify_urgency(self.assigned_at, as_of)

    def claimed(self, *, agent_id: str, agent_name: str, at: datetime) -> "QuoteAssignment":
        if self.status != AssignmentStatus.ASSIGNED:
            raise AssignmentStateError(f"Cannot claim an assignment in status {self.status.value}")
        return replace(
            self,
            status=AssignmentStatus.CLAIMED,
            claimed_at=at,
            claimed_by_agent_id=agent_id,
            claimed_by_agent_name=agent_name,
        )

    def rejected(
        self,
        *,
        reason: RejectionReason,
        at: datetime,
        note: Optional[str] = None,
    ) -> "QuoteAssignment":
        if self.is_terminal:
            raise AssignmentStateError(f"Cannot reject an assignment in status {self.status.value}")
        return replace(
            self,
            status=AssignmentStatus.REJECTED,
            rejection_reason=RejectionReason(reason),
            rejection_note=note or None,
            rejected_at=at,
        )

    def completed(self, *, at: datetime) -> "QuoteAssignment":
        """
        Mark the assignment completed.

        Completing an assignment that was never claimed claims it at the
        same instant so the claimed_at invariant holds.
        """

        if self.is_terminal:
            raise AssignmentStateError(f"Cannot complete an assignment in status {self.status.value}")
        return replace(
            self,
            status=AssignmentStatus.COMPLETED,
            claimed_at=self.claimed_at or at,
            completed_at=at,
        )

    def with_note(self, note: AgentNote) -> "QuoteAssignment":
        return replace(self, agent_notes=self.agent_notes + (note,))


__all__ = [
    "AgentNote",
    "AssignmentHistoryEntry",
    "AssignmentStateError",
    "AssignmentStatus",
    "HistoryAction",
    "QuoteAssignment",
    "RejectionReason",
    "UrgencyLevel",
    "classify_urgency",
]
