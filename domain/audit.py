"""
Domain: Audit log entries.

Audit entries are append-only facts about a quote. They are written after
the primary change commits and are never updated or deleted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .time import require_utc_timestamp


class AuditAction(str, Enum):
    QUOTE_CREATED = "QUOTE_CREATED"
    STATUS_CHANGE = "STATUS_CHANGE"
    VEHICLE_UPDATE = "VEHICLE_UPDATE"
    PLAN_CHANGE = "PLAN_CHANGE"
    APPROVAL_RESET = "APPROVAL_RESET"
    EDIT_SAVE = "EDIT_SAVE"
    EXCEPTION_REQUEST = "EXCEPTION_REQUEST"
    APPROVAL_GRANTED = "APPROVAL_GRANTED"
    APPROVAL_REJECTED = "APPROVAL_REJECTED"
    LINK_SENT = "LINK_SENT"
    QUOTE_ASSIGNED = "QUOTE_ASSIGNED"
    QUOTE_CLAIMED = "QUOTE_CLAIMED"
    QUOTE_REJECTED = "QUOTE_REJECTED"
    QUOTE_COMPLETED = "QUOTE_COMPLETED"
    NOTE_ADDED = "NOTE_ADDED"
    REMINDER_SENT = "REMINDER_SENT"
    CUSTOMER_EVENT = "CUSTOMER_EVENT"


# Actor recorded for credit-control decisions.
CREDIT_CONTROL_ACTOR = "Credit Control"
SYSTEM_ACTOR = "System"


@dataclass(frozen=True, slots=True)
class AuditLogEntry:
    id: str
    quote_id: str
    timestamp: datetime
    user: str
    action: AuditAction
    details: str

    def __post_init__(self) -> None:
        require_utc_timestamp("timestamp", self.timestamp)
        if not self.quote_id:
            raise ValueError("quote_id must not be empty")


__all__ = ["AuditAction", "AuditLogEntry", "CREDIT_CONTROL_ACTOR", "SYSTEM_ACTOR"]
