"""
Renewal scanner and scheduler.

Handles:
- Automated WhatsApp renewal reminders at 30 and 15 days before expiry
- Handing expired, unactioned policies to the agent pool as EXPIRING quotes
- Dashboard metrics and manual reminders

Idempotency lives on the policy record: a reminder type is sent only if it
is not already in `reminders_sent`, and the pool hand-off happens only while
`assigned_to_pool` is false. The pool quote id is derived from the policy
id, so a rerun after a partial failure does not create a second quote.
There is no scheduler checkpoint; a restarted scheduler simply rescans.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import uuid4

from domain.audit import SYSTEM_ACTOR, AuditAction
from domain.lifecycle import InvalidTransitionError, QuoteEvent, apply_event
from domain.quote import (
    Customer,
    CustomerType,
    InsuranceType,
    LeadDisposition,
    Quote,
    QuoteSource,
    QuoteStatus,
    RiskFactors,
    generate_quote_reference,
)
from domain.renewal import (
    RenewalPolicy,
    RenewalStatus,
    ReminderRecord,
    ReminderType,
    days_until_expiry,
    determine_status,
    due_reminder,
    is_due_for_pool,
)
from domain.time import utc_now
from repositories.audit_log_repository import AuditLogRepository
from repositories.errors import ConcurrencyConflictError, StoreUnavailableError
from repositories.quote_repository import QuoteRepository
from repositories.renewal_repository import RenewalRepository
from services.notification_service import WhatsAppClient, format_phone_number
from services.quote_service_base import Clock

logger = logging.getLogger(__name__)

METRICS_WINDOW_DAYS = 90

ALL_REMINDERS_SENT = "All renewal reminders already sent"


@dataclass(frozen=True, slots=True)
class RenewalRunSummary:
    processed: int = 0
    reminders_sent: int = 0
    assigned_to_pool: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class RenewalMetrics:
    total_expiring: int
    expiring_30_days: int
    expiring_15_days: int
    expiring_7_days: int
    reminders_sent_today: int
    reminders_scheduled: int
    auto_assigned_to_pool: int
    renewal_rate: float
    total_value: Decimal


@dataclass(frozen=True, slots=True)
class ExpiringPolicy:
    policy: RenewalPolicy
    days_until_expiry: int
    status: RenewalStatus


@dataclass(frozen=True, slots=True)
class ReminderResult:
    success: bool
    policy: Optional[RenewalPolicy] = None
    reminder: Optional[ReminderRecord] = None
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


def renewal_message(policy: RenewalPolicy, days_remaining: int) -> str:
    first_name = policy.customer_name.split(" ")[0]
    expiry = policy.expiry_date.strftime("%d/%m/%Y")
    return (
        "*Policy Renewal Reminder*\n\n"
        f"Hello {first_name}!\n\n"
        f"Your insurance policy for *{policy.vehicle.make} {policy.vehicle.model}* will expire in "
        f"*{days_remaining} days* on {expiry}.\n\n"
        "Don't let your coverage lapse! Reply to this message or call us at 17111111 to renew your policy today."
    )


def pool_quote_id(policy: RenewalPolicy) -> str:
    return f"RENEWAL-{policy.id}"


class RenewalScanner:
    def __init__(
        self,
        renewals: RenewalRepository,
        quotes: QuoteRepository,
        audit: AuditLogRepository,
        whatsapp: WhatsAppClient,
        clock: Clock = utc_now,
    ):
        self._renewals = renewals
        self._quotes = quotes
        self._audit = audit
        self._whatsapp = whatsapp
        self._clock = clock

    # ------------------------------------------------------------------
    # Automated run
    # ------------------------------------------------------------------

    def run(self, now: Optional[datetime] = None) -> RenewalRunSummary:
        """
        Scan every tracked policy once.

        Per-policy failures are collected in `errors` and do not stop the run.
        """

        now = now or self._clock()
        try:
            policies = self._renewals.list_all()
        except StoreUnavailableError as e:
            logger.error("Renewal scan aborted: policy store unavailable", extra={"error": str(e)})
            return RenewalRunSummary(errors=[f"Could not load policies: {e}"])

        processed = reminders_sent = assigned = 0
        errors: List[str] = []
        for policy in policies:
            processed += 1
            days = days_until_expiry(policy.expiry_date, now)
            try:
                if is_due_for_pool(policy, days):
                    policy = self._assign_to_pool(policy, now, errors)
                    assigned += 1
                else:
                    reminder_type = due_reminder(policy, days)
                    if reminder_type is not None:
                        result = self._send_reminder(policy, reminder_type, days, now)
                        if result.success and result.policy is not None:
                            policy = result.policy
                            reminders_sent += 1
                            errors.extend(f"{policy.id}: {w}" for w in result.warnings)
                        else:
                            errors.append(f"{policy.id}: {result.error}")

                status = determine_status(policy, days)
                if status != policy.status:
                    policy = self._renewals.save(replace(policy, status=status))
            except (StoreUnavailableError, ConcurrencyConflictError) as e:
                logger.error("Renewal processing failed", extra={"policy_id": policy.id, "error": str(e)})
                errors.append(f"{policy.id}: {e}")

        logger.info(
            "Renewal scan finished",
            extra={
                "processed": processed,
                "reminders_sent": reminders_sent,
                "assigned_to_pool": assigned,
                "errors": len(errors),
            },
        )
        return RenewalRunSummary(
            processed=processed,
            reminders_sent=reminders_sent,
            assigned_to_pool=assigned,
            errors=errors,
        )

    def _send_reminder(
        self,
        policy: RenewalPolicy,
        reminder_type: ReminderType,
        days: int,
        now: datetime,
    ) -> ReminderResult:
        message = renewal_message(policy, days)
        response = self._whatsapp.send_message(policy.customer_phone, message)
        if not response.success:
            logger.error(
                "Renewal reminder not delivered",
                extra={"policy_id": policy.id, "reminder_type": reminder_type.value, "error": response.error},
            )
            return ReminderResult(success=False, policy=policy, error=response.error or "delivery failed")

        record = ReminderRecord(
            id=str(uuid4()),
            policy_id=policy.id,
            type=reminder_type,
            sent_at=now,
            phone_number=format_phone_number(policy.customer_phone),
            status="SENT",
            message_id=response.message_id,
        )
        updated = self._renewals.save(policy.with_reminder(record))
        warnings: List[str] = []
        try:
            self._renewals.log_reminder(record, message)
        except StoreUnavailableError as e:
            logger.error("Reminder log entry lost", extra={"policy_id": policy.id, "error": str(e)})
            warnings.append(f"Reminder log entry was not recorded: {e}")
        logger.info(
            "Renewal reminder sent",
            extra={"policy_id": policy.id, "reminder_type": reminder_type.value},
        )
        return ReminderResult(success=True, policy=updated, reminder=record, warnings=warnings)

    def _assign_to_pool(self, policy: RenewalPolicy, now: datetime, errors: List[str]) -> RenewalPolicy:
        """Create the unassigned EXPIRING renewal quote and mark the policy pooled."""

        renewal_quote = Quote(
            id=pool_quote_id(policy),
            quote_reference=generate_quote_reference(now.year, prefix="Q-REN"),
            customer=Customer(
                cpr=policy.customer_cpr,
                full_name=policy.customer_name,
                mobile=policy.customer_phone,
                email=policy.customer_email or "",
                type=CustomerType.EXISTING,
            ),
            vehicle=policy.vehicle,
            insurance_type=InsuranceType.MOTOR,
            risk_factors=RiskFactors(),
            start_date=now.date().isoformat(),
            status=QuoteStatus.EXPIRING,
            lead_disposition=LeadDisposition.NEW,
            created_at=now,
            source=QuoteSource.AGENT_PORTAL,
            provider=policy.provider,
            plan_name=policy.plan_name,
        )
        try:
            self._quotes.save(renewal_quote, None)
            self._audit_quietly(
                errors,
                renewal_quote.id,
                AuditAction.QUOTE_CREATED,
                f"Renewal quote created for expired policy {policy.policy_number}",
            )
        except ConcurrencyConflictError:
            logger.info("Renewal quote already exists", extra={"policy_id": policy.id})

        self._mark_original_expiring(policy, now, errors)

        pooled = replace(
            policy,
            assigned_to_pool=True,
            assigned_to_pool_at=now,
            pool_quote_id=renewal_quote.id,
            status=RenewalStatus.ASSIGNED_TO_POOL,
        )
        logger.info("Expired policy assigned to pool", extra={"policy_id": policy.id, "quote_id": renewal_quote.id})
        return self._renewals.save(pooled)

    def _mark_original_expiring(self, policy: RenewalPolicy, now: datetime, errors: List[str]) -> None:
        original = self._quotes.get_fresh(policy.quote_id)
        if original is None or original.status != QuoteStatus.ISSUED:
            return
        try:
            expiring = apply_event(original, QuoteEvent.MARK_EXPIRING, now)
        except InvalidTransitionError as e:
            errors.append(f"{policy.id}: {e}")
            return
        expiring = replace(expiring, lead_disposition=LeadDisposition.NEW)
        self._quotes.save(expiring, original.version)
        self._audit_quietly(
            errors,
            original.id,
            AuditAction.STATUS_CHANGE,
            f"Status changed from {original.status.value} to {expiring.status.value}",
        )

    def _audit_quietly(self, errors: List[str], quote_id: str, action: AuditAction, details: str) -> None:
        try:
            self._audit.append(quote_id, action, details, SYSTEM_ACTOR, at=self._clock())
        except StoreUnavailableError as e:
            logger.error("Audit entry lost", extra={"quote_id": quote_id, "action": action.value, "error": str(e)})
            errors.append(f"{quote_id}: audit entry {action.value} not recorded: {e}")

    # ------------------------------------------------------------------
    # Dashboard and manual actions
    # ------------------------------------------------------------------

    def list_expiring(self, days_ahead: int = METRICS_WINDOW_DAYS, now: Optional[datetime] = None) -> List[ExpiringPolicy]:
        """Policies expiring within `days_ahead` days (not yet expired), soonest first."""

        now = now or self._clock()
        expiring: List[ExpiringPolicy] = []
        for policy in self._renewals.list_all():
            days = days_until_expiry(policy.expiry_date, now)
            if 0 < days <= days_ahead:
                expiring.append(ExpiringPolicy(policy, days, determine_status(policy, days)))
        return sorted(expiring, key=lambda e: e.days_until_expiry)

    def get_metrics(self, now: Optional[datetime] = None) -> RenewalMetrics:
        now = now or self._clock()
        policies = self._renewals.list_all()
        tracked = []
        for policy in policies:
            days = days_until_expiry(policy.expiry_date, now)
            if days <= METRICS_WINDOW_DAYS:
                tracked.append((policy, days, determine_status(policy, days)))

        upcoming = [(p, d, s) for p, d, s in tracked if d > 0]
        renewed = sum(1 for _, _, s in tracked if s == RenewalStatus.RENEWED)
        return RenewalMetrics(
            total_expiring=len(upcoming),
            expiring_30_days=sum(1 for _, d, _ in upcoming if d <= 30),
            expiring_15_days=sum(1 for _, d, _ in upcoming if d <= 15),
            expiring_7_days=sum(1 for _, d, _ in upcoming if d <= 7),
            reminders_sent_today=sum(
                1 for p, _, _ in tracked if any(r.sent_at.date() == now.date() for r in p.reminders_sent)
            ),
            reminders_scheduled=sum(1 for _, d, s in upcoming if s == RenewalStatus.PENDING and d <= 30),
            auto_assigned_to_pool=sum(1 for p, _, _ in tracked if p.assigned_to_pool),
            renewal_rate=round(renewed / len(tracked) * 100, 1) if tracked else 0.0,
            total_value=sum((p.premium for p, _, _ in upcoming), Decimal("0")),
        )

    def send_manual_reminder(self, policy_id: str, now: Optional[datetime] = None) -> ReminderResult:
        """
        Send the next reminder for a policy right away.

        Sends the 30-day reminder if none was sent yet, otherwise the 15-day
        one. Fails once both have gone out.
        """

        now = now or self._clock()
        policy = self._renewals.get_by_id(policy_id)
        if policy is None:
            return ReminderResult(success=False, error=f"Policy {policy_id} not found")

        if not policy.has_reminder(ReminderType.THIRTY_DAYS):
            reminder_type = ReminderType.THIRTY_DAYS
        elif not policy.has_reminder(ReminderType.FIFTEEN_DAYS):
            reminder_type = ReminderType.FIFTEEN_DAYS
        else:
            return ReminderResult(success=False, policy=policy, error=ALL_REMINDERS_SENT)

        days = max(days_until_expiry(policy.expiry_date, now), 0)
        result = self._send_reminder(policy, reminder_type, days, now)
        if result.success and result.policy is not None:
            status = determine_status(result.policy, days)
            if status != result.policy.status:
                result = replace(result, policy=self._renewals.save(replace(result.policy, status=status)))
        return result


class RenewalScheduler:
    """
    Runs the scanner once on start, then every `interval_minutes`.

    Runs happen on a background daemon thread; `stop()` waits for an
    in-flight run to finish.
    """

    def __init__(self, scanner: RenewalScanner, interval_minutes: int = 60):
        if interval_minutes <= 0:
            raise ValueError("interval_minutes must be positive")
        self._scanner = scanner
        self._interval_seconds = interval_minutes * 60
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._run_lock = threading.Lock()
        self.last_summary: Optional[RenewalRunSummary] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_now(self) -> RenewalRunSummary:
        with self._run_lock:
            logger.info("Renewal scheduler run starting")
            summary = self._scanner.run()
            self.last_summary = summary
            for error in summary.errors:
                logger.error("Renewal scheduler error", extra={"detail": error})
            return summary

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_now()
            except Exception:
                # Keep the timer alive; the next tick rescans from policy state.
                logger.exception("Renewal scheduler run failed")
            if self._stop.wait(self._interval_seconds):
                break

    def start(self) -> None:
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="renewal-scheduler", daemon=True)
        self._thread.start()
        logger.info("Renewal scheduler started", extra={"interval_seconds": self._interval_seconds})

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Renewal scheduler stopped")


__all__ = [
    "ALL_REMINDERS_SENT",
    "ExpiringPolicy",
    "METRICS_WINDOW_DAYS",
    "ReminderResult",
    "RenewalMetrics",
    "RenewalRunSummary",
    "RenewalScanner",
    "RenewalScheduler",
    "pool_quote_id",
    "renewal_message",
]
