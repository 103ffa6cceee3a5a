"""
Quote lifecycle operations.

Handles:
- Creating and updating draft quotes
- The editing save path, including the approval invalidation rule
- Installment exception requests and credit-control decisions
- Sending payment links and recording customer portal events
- WhatsApp reminders for abandoned drafts (after 3, 7 and 14 days)

Status only changes through domain.lifecycle.apply_event. Every write is a
conditional save on the version that was read; a lost race is reported as
ErrorKind.CONFLICT and not retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from domain.assignment import AssignmentHistoryEntry, HistoryAction, QuoteAssignment
from domain.audit import CREDIT_CONTROL_ACTOR, SYSTEM_ACTOR, AuditAction, AuditLogEntry
from domain.lifecycle import (
    CUSTOMER_EVENTS,
    InvalidTransitionError,
    QuoteEvent,
    apply_event,
    changed_pricing_inputs,
    requires_approval_reset,
)
from domain.notification import NotificationType
from domain.plan import InsurancePlan
from domain.quote import PaymentMethod, Quote, QuoteStatus, generate_quote_reference
from domain.time import utc_now
from repositories.audit_log_repository import AuditLogRepository
from repositories.errors import StoreUnavailableError
from repositories.quote_repository import QuoteRepository
from services.notification_service import NotificationInbox, WhatsAppClient
from services.quote_service_base import Clock, QuoteServiceBase
from services.results import ErrorKind, OperationResult

logger = logging.getLogger(__name__)

# Days after creation at which the 1st, 2nd and 3rd draft reminders go out.
DRAFT_REMINDER_DAYS: Tuple[int, ...] = (3, 7, 14)


def draft_reminder_due(quote: Quote, now: datetime) -> bool:
    """True if a DRAFT quote is due its next reminder at `now`."""

    if quote.status != QuoteStatus.DRAFT:
        return False
    if quote.reminder_count >= len(DRAFT_REMINDER_DAYS):
        return False
    days_since_creation = (now - quote.created_at) // timedelta(days=1)
    return days_since_creation >= DRAFT_REMINDER_DAYS[quote.reminder_count]


def _draft_reminder_message(quote: Quote) -> str:
    return (
        f"Hi {quote.customer.full_name}, you have an incomplete insurance draft "
        f"({quote.display_reference}). Please complete it at your earliest convenience."
    )


def _payment_link_message(quote: Quote) -> str:
    plan = " ".join(part for part in (quote.provider, quote.plan_name) if part) or "insurance"
    return (
        f"Hello {quote.customer.first_name}, your {plan} quote {quote.display_reference} "
        f"for your {quote.vehicle.description} is ready. "
        f"Complete your purchase here: https://portal.example/pay/{quote.id}"
    )


def _without_notes(assignment: Optional[QuoteAssignment]) -> Optional[QuoteAssignment]:
    return replace(assignment, agent_notes=()) if assignment is not None else None


def _notes_appended(current: Quote, edited: Quote) -> bool:
    """Existing notes are kept unchanged and in order; new ones may follow."""

    before = current.assignment.agent_notes if current.assignment else ()
    after = edited.assignment.agent_notes if edited.assignment else ()
    return after[: len(before)] == before


def _only_notes_changed(current: Quote, edited: Quote) -> bool:
    """True if `edited` differs from `current` in assignment notes at most."""

    a = replace(current, assignment=_without_notes(current.assignment), version=0)
    b = replace(edited, assignment=_without_notes(edited.assignment), version=0)
    return a == b


def _diff_entries(old: Quote, new: Quote) -> List[Tuple[AuditAction, str]]:
    entries: List[Tuple[AuditAction, str]] = []
    if old.vehicle != new.vehicle:
        entries.append(
            (
                AuditAction.VEHICLE_UPDATE,
                f"Vehicle updated: {old.vehicle.description} {old.vehicle.value} -> "
                f"{new.vehicle.description} {new.vehicle.value}",
            )
        )
    if old.selected_plan_id != new.selected_plan_id:
        entries.append(
            (
                AuditAction.PLAN_CHANGE,
                f"Plan changed from {old.selected_plan_id or 'none'} to {new.selected_plan_id or 'none'}",
            )
        )
    return entries


def _with_plan(quote: Quote, plan: Optional[InsurancePlan]) -> Quote:
    if plan is None:
        return quote
    return replace(quote, selected_plan_id=plan.id, provider=plan.provider, plan_name=plan.name)


@dataclass(frozen=True, slots=True)
class DraftReminderSummary:
    checked: int
    sent: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)


class QuoteLifecycleService(QuoteServiceBase):
    def __init__(
        self,
        quotes: QuoteRepository,
        audit: AuditLogRepository,
        inbox: NotificationInbox,
        whatsapp: WhatsAppClient,
        clock: Clock = utc_now,
    ):
        super().__init__(quotes, audit, clock)
        self._inbox = inbox
        self._whatsapp = whatsapp

    # ------------------------------------------------------------------
    # Drafts and edits
    # ------------------------------------------------------------------

    def save_draft(self, quote: Quote, actor: str) -> OperationResult:
        """
        Create a new DRAFT quote, or update it if the id already exists.

        Args:
            quote: Quote to store (status must be DRAFT for a new quote)
            actor: Display name recorded in the audit log

        Returns:
            OperationResult with the stored quote
        """

        try:
            existing = self._quotes.get_fresh(quote.id)
        except StoreUnavailableError as e:
            return OperationResult.fail(ErrorKind.STORAGE_UNAVAILABLE, f"Could not load quote {quote.id}: {e}")
        if existing is not None:
            return self.update_quote(quote, actor)

        if quote.status != QuoteStatus.DRAFT:
            return OperationResult.fail(ErrorKind.VALIDATION, "New quotes must start in DRAFT")
        if quote.quote_reference is None:
            quote = replace(quote, quote_reference=generate_quote_reference(quote.created_at.year))

        saved = self._save(quote, None)
        if isinstance(saved, OperationResult):
            return saved

        warnings = self._audit_many(
            saved.id,
            actor,
            [(AuditAction.QUOTE_CREATED, f"Draft {saved.display_reference} created from {saved.source.value}")],
        )
        return OperationResult.ok(saved, "Draft saved", warnings)

    def update_quote(self, quote: Quote, actor: str) -> OperationResult:
        """
        Persist field changes on an existing quote.

        The caller's quote.version is the version it read; a concurrent change
        since then yields CONFLICT. Status cannot be set here, and the
        approval invalidation rule applies the same as on the editing path.
        """

        return self._save_changes(quote, actor, None, record_edit=False)

    def edit_quote(self, edited: Quote, actor: str, actor_id: Optional[str] = None) -> OperationResult:
        """
        The editing save path.

        - ISSUED quotes only accept new assignment notes.
        - Editing pricing inputs while an approval is pending, granted or
          rejected sends the quote back to DRAFT and invalidates the approval.
        - Records EDIT_SAVE, and an EDITED history entry on assigned quotes.
        """

        return self._save_changes(edited, actor, actor_id, record_edit=True)

    def _save_changes(
        self,
        edited: Quote,
        actor: str,
        actor_id: Optional[str],
        *,
        record_edit: bool,
    ) -> OperationResult:
        current = self._load(edited.id)
        if isinstance(current, OperationResult):
            return current

        # Field guards compare against `current`, so a stale copy must be rejected first.
        if edited.version != current.version:
            logger.info(
                "Quote edit based on a stale version",
                extra={"quote_id": current.id, "edited_version": edited.version, "version": current.version},
            )
            return OperationResult.fail(
                ErrorKind.CONFLICT,
                f"Quote {current.id} changed since it was loaded (version {edited.version}, now {current.version})",
                quote=current,
            )

        if current.status == QuoteStatus.ISSUED and not _only_notes_changed(current, edited):
            return OperationResult.fail(
                ErrorKind.VALIDATION,
                "Issued quotes are read-only except for notes",
                quote=current,
            )
        if edited.status != current.status:
            return OperationResult.fail(
                ErrorKind.INVALID_TRANSITION,
                "Status changes must go through a lifecycle operation",
                quote=current,
            )
        if edited.source != current.source:
            return OperationResult.fail(ErrorKind.VALIDATION, "Quote source cannot be changed", quote=current)
        if _without_notes(edited.assignment) != _without_notes(current.assignment) or not _notes_appended(
            current, edited
        ):
            return OperationResult.fail(
                ErrorKind.VALIDATION,
                "Assignments change through pool operations; notes can only be added",
                quote=current,
            )

        now = self._now()
        audit_entries = _diff_entries(current, edited)
        # History is append-only and owned by the service.
        updated = replace(edited, assignment_history=current.assignment_history)

        if requires_approval_reset(current, updated):
            changed = ", ".join(changed_pricing_inputs(current, updated))
            updated = apply_event(updated, QuoteEvent.INVALIDATE_APPROVAL, now)
            audit_entries.append((AuditAction.APPROVAL_RESET, f"Approval reset: pricing inputs changed ({changed})"))
            audit_entries.append(
                (AuditAction.STATUS_CHANGE, f"Status changed from {current.status.value} to {updated.status.value}")
            )

        if record_edit:
            if updated.assignment is not None and updated.assignment.is_active:
                updated = updated.with_history(
                    AssignmentHistoryEntry(
                        id=str(uuid4()),
                        timestamp=now,
                        action=HistoryAction.EDITED,
                        performed_by=actor_id or actor,
                        performed_by_name=actor,
                        details="Quote details edited",
                    )
                )
            audit_entries.append((AuditAction.EDIT_SAVE, "Quote edited and saved"))

        saved = self._save(updated, edited.version, original=current)
        if isinstance(saved, OperationResult):
            return saved

        warnings = self._audit_many(saved.id, actor, audit_entries)
        return OperationResult.ok(saved, "Quote saved" if record_edit else "Quote updated", warnings)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(
        self,
        quote_id: str,
        event: QuoteEvent,
        actor: str,
        audit_entry: Tuple[AuditAction, str],
        prepare: Optional[Callable[[Quote], Quote]] = None,
    ) -> OperationResult:
        """Load, apply one event (plus optional field changes), save, audit."""

        current = self._load(quote_id)
        if isinstance(current, OperationResult):
            return current

        base = prepare(current) if prepare is not None else current
        try:
            updated = apply_event(base, event, self._now())
        except InvalidTransitionError as e:
            return OperationResult.fail(ErrorKind.INVALID_TRANSITION, str(e), quote=current)

        saved = self._save(updated, current.version, original=current)
        if isinstance(saved, OperationResult):
            return saved

        warnings = self._audit_many(
            saved.id,
            actor,
            [
                audit_entry,
                (AuditAction.STATUS_CHANGE, f"Status changed from {current.status.value} to {saved.status.value}"),
            ],
        )
        logger.info(
            "Quote transitioned",
            extra={"quote_id": saved.id, "event": event.value, "status": saved.status.value, "actor": actor},
        )
        return OperationResult.ok(saved, f"{event.value} applied", warnings)

    def request_exception(self, quote_id: str, plan: Optional[InsurancePlan], actor: str) -> OperationResult:
        """Ask credit control to allow installments for a plan the customer is not eligible for."""

        def prepare(quote: Quote) -> Quote:
            return replace(_with_plan(quote, plan), payment_method=PaymentMethod.INSTALLMENT)

        details = "Installment exception requested"
        if plan is not None:
            details += f" for {plan.provider} {plan.name}"
        return self._transition(
            quote_id,
            QuoteEvent.REQUEST_EXCEPTION,
            actor,
            (AuditAction.EXCEPTION_REQUEST, details),
            prepare,
        )

    def process_approval(self, quote_id: str, approved: bool, actor: str = CREDIT_CONTROL_ACTOR) -> OperationResult:
        """Record the credit-control decision and notify the quote's agent."""

        if approved:
            event, action, verb = QuoteEvent.GRANT_APPROVAL, AuditAction.APPROVAL_GRANTED, "approved"
        else:
            event, action, verb = QuoteEvent.REJECT_APPROVAL, AuditAction.APPROVAL_REJECTED, "rejected"

        result = self._transition(quote_id, event, actor, (action, f"Installment exception {verb} by {actor}"))
        if not result.success or result.quote is None:
            return result

        quote = result.quote
        warnings = list(result.warnings)
        try:
            self._inbox.push(
                NotificationType.APPROVAL_UPDATE,
                f"Exception {verb}",
                f"Credit control {verb} the installment exception for {quote.display_reference}",
                quote_id=quote.id,
                recipient_id=quote.agent_id,
            )
        except StoreUnavailableError as e:
            logger.error("Approval notification lost", extra={"quote_id": quote.id, "error": str(e)})
            warnings.append(f"Approval notification was not recorded: {e}")
        return replace(result, warnings=warnings)

    def send_link(
        self,
        quote_id: str,
        plan: Optional[InsurancePlan],
        actor: str,
        payment_pending: bool = True,
    ) -> OperationResult:
        """
        Send the customer a payment link for the selected plan.

        payment_pending=True moves the quote straight to PAYMENT_PENDING,
        otherwise to LINK_SENT. A failed WhatsApp send is reported as a warning.
        """

        event = QuoteEvent.SEND_PAYMENT_LINK if payment_pending else QuoteEvent.SEND_LINK

        current = self._load(quote_id)
        if isinstance(current, OperationResult):
            return current
        if plan is None and current.selected_plan_id is None:
            return OperationResult.fail(ErrorKind.VALIDATION, "Select a plan before sending a link", quote=current)

        details = f"Payment link sent for {plan.provider} {plan.name}" if plan else "Payment link sent"
        result = self._transition(
            quote_id,
            event,
            actor,
            (AuditAction.LINK_SENT, details),
            lambda quote: _with_plan(quote, plan),
        )
        if not result.success or result.quote is None:
            return result

        quote = result.quote
        phone = quote.contact_number_for_link or quote.customer.mobile
        response = self._whatsapp.send_message(phone, _payment_link_message(quote))
        if response.success:
            return result
        logger.error("Payment link delivery failed", extra={"quote_id": quote.id, "error": response.error})
        return replace(result, warnings=list(result.warnings) + [f"Payment link was not delivered: {response.error}"])

    def record_customer_event(self, quote_id: str, event: QuoteEvent) -> OperationResult:
        """Apply a customer-portal event (link clicked, docs uploaded, payment, issuance)."""

        event = QuoteEvent(event)
        if event not in CUSTOMER_EVENTS:
            return OperationResult.fail(ErrorKind.VALIDATION, f"{event.value} is not a customer event")
        return self._transition(
            quote_id,
            event,
            "Customer",
            (AuditAction.CUSTOMER_EVENT, f"Customer event {event.value}"),
        )

    # ------------------------------------------------------------------
    # Draft reminders
    # ------------------------------------------------------------------

    def send_draft_reminder(self, quote_id: str) -> OperationResult:
        current = self._load(quote_id)
        if isinstance(current, OperationResult):
            return current
        if current.status != QuoteStatus.DRAFT:
            return OperationResult.fail(
                ErrorKind.INVALID_TRANSITION,
                f"Reminders are only sent for drafts (status {current.status.value})",
                quote=current,
            )

        response = self._whatsapp.send_message(current.customer.mobile, _draft_reminder_message(current))
        if not response.success:
            return OperationResult.fail(
                ErrorKind.DELIVERY_FAILED,
                f"Reminder not delivered: {response.error}",
                quote=current,
            )

        now = self._now()
        updated = replace(current, last_reminder_sent=now, reminder_count=current.reminder_count + 1)
        saved = self._save(updated, current.version, original=current)
        if isinstance(saved, OperationResult):
            return saved

        warnings = self._audit_many(
            saved.id,
            saved.agent_name or SYSTEM_ACTOR,
            [(AuditAction.REMINDER_SENT, f"WhatsApp reminder sent to {current.customer.mobile}")],
        )
        return OperationResult.ok(saved, "Reminder sent", warnings)

    def schedule_draft_reminders(self, now: Optional[datetime] = None) -> DraftReminderSummary:
        """Send every reminder that is due. Intended for a periodic job."""

        now = now or self._now()
        quotes = self._quotes.list_all()
        due = [q for q in quotes if draft_reminder_due(q, now)]

        sent: List[str] = []
        errors: Dict[str, str] = {}
        for quote in due:
            result = self.send_draft_reminder(quote.id)
            if result.success:
                sent.append(quote.id)
            else:
                errors[quote.id] = result.message
        logger.info("Draft reminder run finished", extra={"checked": len(quotes), "sent": len(sent)})
        return DraftReminderSummary(checked=len(quotes), sent=sent, errors=errors)

    def get_audit_trail(self, quote_id: str) -> List[AuditLogEntry]:
        """Audit entries for a quote, newest first. Raises StoreUnavailableError."""

        return self._audit_log.read_for_quote(quote_id)


__all__ = [
    "DRAFT_REMINDER_DAYS",
    "DraftReminderSummary",
    "QuoteLifecycleService",
    "draft_reminder_due",
]
