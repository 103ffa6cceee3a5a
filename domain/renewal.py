"""
Domain: Policy renewals.

Contract excerpts implemented here:
- A policy receives at most one 30-day and at most one 15-day reminder.
- A policy is handed to the agent pool at most once, when it reaches its
  expiry date without a renewal decision.
- Days until expiry are rounded up: a policy expiring in 29.2 days is
  30 days out.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from .quote import LeadDisposition, Vehicle
from .time import require_utc_timestamp


class RenewalStatus(str, Enum):
    PENDING = "PENDING"
    REMINDER_30_SENT = "REMINDER_30_SENT"
    REMINDER_15_SENT = "REMINDER_15_SENT"
    EXPIRED_UNACTIONED = "EXPIRED_UNACTIONED"
    ASSIGNED_TO_POOL = "ASSIGNED_TO_POOL"
    RENEWED = "RENEWED"
    CUSTOMER_DECLINED = "CUSTOMER_DECLINED"


class ReminderType(str, Enum):
    THIRTY_DAYS = "30_DAYS"
    FIFTEEN_DAYS = "15_DAYS"


THIRTY_DAY_WINDOW = 30
FIFTEEN_DAY_WINDOW = 15


@dataclass(frozen=True, slots=True)
class ReminderRecord:
    id: str
    policy_id: str
    type: ReminderType
    sent_at: datetime
    phone_number: str
    status: str  # SENT, DELIVERED, READ, FAILED
    message_id: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("sent_at", self.sent_at)


@dataclass(frozen=True, slots=True)
class RenewalPolicy:
    """
    An issued policy tracked for renewal.

    reminders_sent is append-only; assigned_to_pool flips once and stays set.
    """

    id: str
    quote_id: str
    policy_number: str
    customer_name: str
    customer_phone: str
    customer_cpr: str
    vehicle: Vehicle
    provider: str
    plan_name: str
    premium: Decimal
    expiry_date: datetime
    issue_date: datetime
    status: RenewalStatus = RenewalStatus.PENDING
    customer_email: Optional[str] = None
    reminders_sent: Tuple[ReminderRecord, ...] = ()
    assigned_to_pool: bool = False
    assigned_to_pool_at: Optional[datetime] = None
    pool_quote_id: Optional[str] = None
    renewal_disposition: Optional[LeadDisposition] = None
    last_contact_date: Optional[datetime] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("expiry_date", self.expiry_date)
        require_utc_timestamp("issue_date", self.issue_date)
        if self.assigned_to_pool != (self.assigned_to_pool_at is not None):
            raise ValueError("assigned_to_pool_at is set iff assigned_to_pool")

    def has_reminder(self, reminder_type: ReminderType) -> bool:
        return any(record.type == reminder_type for record in self.reminders_sent)

    def with_reminder(self, record: ReminderRecord) -> "RenewalPolicy":
        return replace(
            self,
            reminders_sent=self.reminders_sent + (record,),
            last_contact_date=record.sent_at,
        )


def days_until_expiry(expiry_date: datetime, now: datetime) -> int:
    """Whole days until expiry, rounded up. Zero or negative once expired."""

    require_utc_timestamp("expiry_date", expiry_date)
    require_utc_timestamp("now", now)
    return math.ceil((expiry_date - now) / timedelta(days=1))


def determine_status(policy: RenewalPolicy, days: int) -> RenewalStatus:
    if policy.renewal_disposition == LeadDisposition.SUCCESSFUL:
        return RenewalStatus.RENEWED
    if policy.renewal_disposition in (LeadDisposition.DECLINED, LeadDisposition.NOT_INTERESTED):
        return RenewalStatus.CUSTOMER_DECLINED
    if days <= 0:
        return RenewalStatus.ASSIGNED_TO_POOL if policy.assigned_to_pool else RenewalStatus.EXPIRED_UNACTIONED
    if policy.has_reminder(ReminderType.FIFTEEN_DAYS):
        return RenewalStatus.REMINDER_15_SENT
    if policy.has_reminder(ReminderType.THIRTY_DAYS):
        return RenewalStatus.REMINDER_30_SENT
    return RenewalStatus.PENDING


def due_reminder(policy: RenewalPolicy, days: int) -> Optional[ReminderType]:
    """
    The reminder the policy is due for at `days` out, if any.

    30-day reminder once while 15 < days <= 30; 15-day reminder once while
    0 < days <= 15.
    """

    if policy.renewal_disposition is not None:
        return None
    if FIFTEEN_DAY_WINDOW < days <= THIRTY_DAY_WINDOW and not policy.has_reminder(ReminderType.THIRTY_DAYS):
        return ReminderType.THIRTY_DAYS
    if 0 < days <= FIFTEEN_DAY_WINDOW and not policy.has_reminder(ReminderType.FIFTEEN_DAYS):
        return ReminderType.FIFTEEN_DAYS
    return None


def is_due_for_pool(policy: RenewalPolicy, days: int) -> bool:
    return days <= 0 and not policy.assigned_to_pool and policy.renewal_disposition is None


__all__ = [
    "FIFTEEN_DAY_WINDOW",
    "RenewalPolicy",
    "RenewalStatus",
    "ReminderRecord",
    "ReminderType",
    "THIRTY_DAY_WINDOW",
    "days_until_expiry",
    "determine_status",
    "due_reminder",
    "is_due_for_pool",
]
