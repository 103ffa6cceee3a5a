"""
Domain: Staff referral discount codes.

Each staff member receives a yearly allocation of one-time-use codes:
one 15% code, three 10% codes and three 5% codes. A code may be redeemed
exactly once.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Tuple

from .time import require_utc_timestamp


class DiscountCodeType(str, Enum):
    FIFTEEN_PERCENT = "15_PERCENT"
    TEN_PERCENT = "10_PERCENT"
    FIVE_PERCENT = "5_PERCENT"

    @property
    def percent(self) -> int:
        return {"15_PERCENT": 15, "10_PERCENT": 10, "5_PERCENT": 5}[self.value]


# Codes issued per staff member per year.
YEARLY_ALLOCATION: Dict[DiscountCodeType, int] = {
    DiscountCodeType.FIFTEEN_PERCENT: 1,
    DiscountCodeType.TEN_PERCENT: 3,
    DiscountCodeType.FIVE_PERCENT: 3,
}


@dataclass(frozen=True, slots=True)
class DiscountCode:
    id: str
    code: str
    staff_id: str
    staff_name: str
    type: DiscountCodeType
    year: int
    is_used: bool = False
    used_at: Optional[datetime] = None
    used_by: Optional[str] = None
    used_by_contact: Optional[str] = None
    quote_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.used_at is not None:
            require_utc_timestamp("used_at", self.used_at)
        if self.is_used != (self.used_at is not None):
            raise ValueError("used_at is set iff the code is used")

    @property
    def percent(self) -> int:
        return self.type.percent

    def redeem(self, *, customer_name: str, customer_contact: str, quote_id: str, at: datetime) -> "DiscountCode":
        """Return the used copy of this code. Raises ValueError if already used."""

        if self.is_used:
            raise ValueError(f"Discount code {self.code} has already been used")
        return replace(
            self,
            is_used=True,
            used_at=at,
            used_by=customer_name,
            used_by_contact=customer_contact,
            quote_id=quote_id,
        )


@dataclass(frozen=True, slots=True)
class StaffCodeAllocation:
    staff_id: str
    staff_name: str
    year: int
    codes: Tuple[DiscountCode, ...]
    department: Optional[str] = None

    @property
    def total_used(self) -> int:
        return sum(1 for code in self.codes if code.is_used)

    @property
    def total_remaining(self) -> int:
        return len(self.codes) - self.total_used

    def find(self, code: str) -> Optional[DiscountCode]:
        wanted = code.strip().upper()
        return next((c for c in self.codes if c.code == wanted), None)

    def with_code(self, updated: DiscountCode) -> "StaffCodeAllocation":
        return replace(
            self,
            codes=tuple(updated if c.id == updated.id else c for c in self.codes),
        )


__all__ = ["DiscountCode", "DiscountCodeType", "StaffCodeAllocation", "YEARLY_ALLOCATION"]
