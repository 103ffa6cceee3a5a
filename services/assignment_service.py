"""
Assignment / pool operations.

Handles:
- Batch assignment of quotes to an agent (sequential, per-quote outcomes)
- Claim, reject and complete on a quote's assignment
- Additive agent notes
- Pool listing ordered by urgency, and CSV export

Re-assignment policy for assign_many:
- no assignment, or a terminal one (REJECTED/COMPLETED): new assignment
- active assignment to the same agent: left unchanged, no history added
- ASSIGNED to a different agent: replaced (reassignment)
- CLAIMED by anyone: refused with INVALID_TRANSITION

Claims are atomic: the write is conditional on the version read while the
assignment was still ASSIGNED, so of two concurrent claimers exactly one
succeeds and the other gets CONFLICT.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, List, Optional, Tuple
from uuid import uuid4

from domain.assignment import (
    AgentNote,
    AssignmentHistoryEntry,
    AssignmentStatus,
    HistoryAction,
    QuoteAssignment,
    RejectionReason,
)
from domain.audit import AuditAction
from domain.quote import Quote, QuoteStatus
from domain.time import utc_now
from repositories.audit_log_repository import AuditLogRepository
from repositories.quote_repository import QuoteRepository
from services.csv_export_service import export_pool_csv
from services.quote_service_base import Clock, QuoteServiceBase
from services.results import BatchAssignmentResult, ErrorKind, OperationResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AssignmentTemplate:
    """Who a batch of quotes is assigned to, and by whom."""

    assigned_to_agent_id: str
    assigned_to_agent_name: str
    assigned_by_agent_id: str
    assigned_by_agent_name: str


def _pool_sort_key(quote: Quote, as_of: datetime) -> Tuple[int, datetime]:
    assignment = quote.assignment
    assert assignment is not None
    # Most urgent first, then longest waiting.
    return (-assignment.urgency(as_of).rank, assignment.assigned_at)


class AssignmentService(QuoteServiceBase):
    def __init__(
        self,
        quotes: QuoteRepository,
        audit: AuditLogRepository,
        clock: Clock = utc_now,
    ):
        super().__init__(quotes, audit, clock)

    def _history(self, action: HistoryAction, agent_id: str, agent_name: str, details: str) -> AssignmentHistoryEntry:
        return AssignmentHistoryEntry(
            id=str(uuid4()),
            timestamp=self._now(),
            action=action,
            performed_by=agent_id,
            performed_by_name=agent_name,
            details=details,
        )

    def _change_assignment(
        self,
        quote_id: str,
        change: Callable[[Quote, QuoteAssignment], Tuple[QuoteAssignment, AssignmentHistoryEntry]],
        audit_action: AuditAction,
        audit_details: Callable[[Quote], str],
        actor: str,
        guard: Optional[Callable[[Quote], Optional[OperationResult]]] = None,
    ) -> OperationResult:
        """Load, change the existing assignment, conditionally save, audit."""

        current = self._load(quote_id)
        if isinstance(current, OperationResult):
            return current
        if current.assignment is None:
            return OperationResult.fail(
                ErrorKind.INVALID_TRANSITION,
                f"Quote {quote_id} has no assignment",
                quote=current,
            )
        if guard is not None:
            refused = guard(current)
            if refused is not None:
                return refused

        try:
            assignment, entry = change(current, current.assignment)
            updated = replace(current, assignment=assignment).with_history(entry)
        except ValueError as e:
            return OperationResult.fail(ErrorKind.INVALID_TRANSITION, str(e), quote=current)

        saved = self._save(updated, current.version, original=current)
        if isinstance(saved, OperationResult):
            return saved

        warnings = self._audit_many(saved.id, actor, [(audit_action, audit_details(saved))])
        logger.info(
            "Assignment updated",
            extra={"quote_id": saved.id, "action": audit_action.value, "actor": actor},
        )
        return OperationResult.ok(saved, audit_details(saved), warnings)

    # ------------------------------------------------------------------
    # Assignment
    # ------------------------------------------------------------------

    def assign_one(self, quote_id: str, template: AssignmentTemplate) -> Tuple[str, OperationResult]:
        """
        Assign a single quote.

        Returns:
            ("assigned" | "unchanged" | "failed", OperationResult)
        """

        current = self._load(quote_id)
        if isinstance(current, OperationResult):
            return "failed", current

        existing = current.assignment
        details = f"Assigned to {template.assigned_to_agent_name}"
        if existing is not None and existing.is_active:
            if existing.assigned_to_agent_id == template.assigned_to_agent_id:
                return "unchanged", OperationResult.ok(current, "Already assigned to this agent")
            if existing.status == AssignmentStatus.CLAIMED:
                return "failed", OperationResult.fail(
                    ErrorKind.INVALID_TRANSITION,
                    f"Quote {quote_id} is claimed by {existing.claimed_by_agent_name or existing.assigned_to_agent_name}",
                    quote=current,
                )
            details = f"Reassigned from {existing.assigned_to_agent_name} to {template.assigned_to_agent_name}"

        assignment = QuoteAssignment(
            id=str(uuid4()),
            quote_id=current.id,
            assigned_to_agent_id=template.assigned_to_agent_id,
            assigned_to_agent_name=template.assigned_to_agent_name,
            assigned_by_agent_id=template.assigned_by_agent_id,
            assigned_by_agent_name=template.assigned_by_agent_name,
            assigned_at=self._now(),
        )
        updated = replace(current, assignment=assignment).with_history(
            self._history(HistoryAction.ASSIGNED, template.assigned_by_agent_id, template.assigned_by_agent_name, details)
        )

        saved = self._save(updated, current.version, original=current)
        if isinstance(saved, OperationResult):
            return "failed", saved

        warnings = self._audit_many(
            saved.id,
            template.assigned_by_agent_name,
            [(AuditAction.QUOTE_ASSIGNED, f"Quote assigned to {template.assigned_to_agent_name}")],
        )
        return "assigned", OperationResult.ok(saved, details, warnings)

    def assign_many(self, quote_ids: List[str], template: AssignmentTemplate) -> BatchAssignmentResult:
        """
        Assign each quote to the template's agent, one at a time.

        Not atomic across the batch: quotes processed before a failure stay
        assigned. The result reports every quote's outcome.
        """

        result = BatchAssignmentResult()
        for quote_id in quote_ids:
            outcome, op = self.assign_one(quote_id, template)
            if outcome == "assigned":
                result.assigned.append(quote_id)
                result.warnings.extend(f"{quote_id}: {w}" for w in op.warnings)
            elif outcome == "unchanged":
                result.unchanged.append(quote_id)
            else:
                assert op.error is not None
                result.failures[quote_id] = op.error
                result.messages[quote_id] = op.message

        logger.info(
            "Batch assignment finished",
            extra={
                "agent_id": template.assigned_to_agent_id,
                "assigned": len(result.assigned),
                "unchanged": len(result.unchanged),
                "failed": len(result.failures),
            },
        )
        return result

    # ------------------------------------------------------------------
    # Agent actions
    # ------------------------------------------------------------------

    def claim(self, quote_id: str, agent_id: str, agent_name: str) -> OperationResult:
        """Claim an ASSIGNED quote. Any agent may claim; the claimer is recorded."""

        def change(quote: Quote, assignment: QuoteAssignment) -> Tuple[QuoteAssignment, AssignmentHistoryEntry]:
            claimed = assignment.claimed(agent_id=agent_id, agent_name=agent_name, at=self._now())
            return claimed, self._history(HistoryAction.CLAIMED, agent_id, agent_name, "Quote claimed by agent")

        return self._change_assignment(
            quote_id,
            change,
            AuditAction.QUOTE_CLAIMED,
            lambda quote: f"Quote claimed by {agent_name}",
            agent_name,
        )

    def claim_next(self, agent_id: str, agent_name: str) -> OperationResult:
        """Claim the agent's longest-waiting ASSIGNED quote."""

        pending = [
            q
            for q in self.list_pool(agent_id)
            if q.assignment is not None and q.assignment.status == AssignmentStatus.ASSIGNED
        ]
        if not pending:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "No pending quotes to claim")
        oldest = min(pending, key=lambda q: q.assignment.assigned_at)  # type: ignore[union-attr]
        return self.claim(oldest.id, agent_id, agent_name)

    def reject(
        self,
        quote_id: str,
        agent_id: str,
        agent_name: str,
        reason: RejectionReason,
        note: Optional[str] = None,
    ) -> OperationResult:
        try:
            reason = RejectionReason(reason)
        except ValueError:
            return OperationResult.fail(ErrorKind.VALIDATION, f"Unknown rejection reason: {reason}")

        details = f"Quote rejected: {reason.value}" + (f" - {note}" if note else "")

        def change(quote: Quote, assignment: QuoteAssignment) -> Tuple[QuoteAssignment, AssignmentHistoryEntry]:
            rejected = assignment.rejected(reason=reason, at=self._now(), note=note)
            return rejected, self._history(HistoryAction.REJECTED, agent_id, agent_name, details)

        return self._change_assignment(
            quote_id,
            change,
            AuditAction.QUOTE_REJECTED,
            lambda quote: f"Quote rejected: {reason.value}",
            agent_name,
        )

    def mark_completed(self, quote_id: str, agent_id: str, agent_name: str) -> OperationResult:
        """Complete the assignment. Only allowed once the policy is ISSUED; otherwise nothing changes."""

        def guard(quote: Quote) -> Optional[OperationResult]:
            if quote.status != QuoteStatus.ISSUED:
                return OperationResult.fail(
                    ErrorKind.INVALID_TRANSITION,
                    f"Quote {quote.id} cannot be completed before the policy is issued (status {quote.status.value})",
                    quote=quote,
                )
            return None

        def change(quote: Quote, assignment: QuoteAssignment) -> Tuple[QuoteAssignment, AssignmentHistoryEntry]:
            completed = assignment.completed(at=self._now())
            return completed, self._history(
                HistoryAction.COMPLETED, agent_id, agent_name, "Quote marked as completed - policy issued"
            )

        return self._change_assignment(
            quote_id,
            change,
            AuditAction.QUOTE_COMPLETED,
            lambda quote: "Quote marked as completed",
            agent_name,
            guard,
        )

    def add_note(
        self,
        quote_id: str,
        text: str,
        author_id: str,
        author_name: str,
        reminder_date: Optional[datetime] = None,
    ) -> OperationResult:
        """Append a note to the quote's assignment. Notes are never edited or removed."""

        if not text or not text.strip():
            return OperationResult.fail(ErrorKind.VALIDATION, "Note text must not be empty")

        current = self._load(quote_id)
        if isinstance(current, OperationResult):
            return current
        if current.assignment is None:
            return OperationResult.fail(ErrorKind.INVALID_TRANSITION, f"Quote {quote_id} has no assignment", quote=current)

        note = AgentNote(
            id=str(uuid4()),
            note_text=text.strip(),
            created_at=self._now(),
            created_by=author_id,
            created_by_name=author_name,
            is_reminder=reminder_date is not None,
            reminder_date=reminder_date,
        )
        updated = replace(current, assignment=current.assignment.with_note(note))

        saved = self._save(updated, current.version, original=current)
        if isinstance(saved, OperationResult):
            return saved

        kind = "Reminder" if note.is_reminder else "Note"
        warnings = self._audit_many(saved.id, author_name, [(AuditAction.NOTE_ADDED, f"{kind} added")])
        return OperationResult.ok(saved, f"{kind} added", warnings)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_pool(self, agent_id: Optional[str] = None, include_closed: bool = False) -> List[Quote]:
        """
        Assigned quotes, most urgent first, then longest waiting.

        Args:
            agent_id: Only quotes assigned to this agent
            include_closed: Include REJECTED and COMPLETED assignments
        """

        now = self._now()
        quotes = [
            q
            for q in self._quotes.list_all()
            if q.assignment is not None
            and (agent_id is None or q.assignment.assigned_to_agent_id == agent_id)
            and (include_closed or q.assignment.is_active)
        ]
        return sorted(quotes, key=lambda q: _pool_sort_key(q, now))

    def list_unassigned(self) -> List[Quote]:
        """Quotes available for distribution: no assignment, or a terminal one. Newest first."""

        return [q for q in self._quotes.list_all() if q.assignment is None or q.assignment.is_terminal]

    def export_pool(self, agent_id: Optional[str] = None) -> str:
        return export_pool_csv(self.list_pool(agent_id, include_closed=True), self._now(), agent_id)


__all__ = ["AssignmentService", "AssignmentTemplate"]
