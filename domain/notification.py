"""
Domain: In-app notification records.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from .time import require_utc_timestamp


class NotificationType(str, Enum):
    APPROVAL_UPDATE = "APPROVAL_UPDATE"
    REMINDER = "REMINDER"
    ASSIGNMENT = "ASSIGNMENT"
    SYSTEM = "SYSTEM"


@dataclass(frozen=True, slots=True)
class Notification:
    id: str
    type: NotificationType
    title: str
    message: str
    created_at: datetime
    quote_id: Optional[str] = None
    recipient_id: Optional[str] = None
    read: bool = False

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)


__all__ = ["Notification", "NotificationType"]
