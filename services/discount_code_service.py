"""
Discount code validation and redemption over staff allocations.

Allocations are held in process; codes are looked up case-insensitively.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from domain.discount_code import DiscountCode, StaffCodeAllocation
from domain.time import utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CodeValidation:
    is_valid: bool
    discount_percent: int = 0
    staff_name: Optional[str] = None
    error: Optional[str] = None


class DiscountCodeService:
    def __init__(self, allocations: Iterable[StaffCodeAllocation] = ()):
        self._allocations: Dict[str, StaffCodeAllocation] = {a.staff_id: a for a in allocations}
        self._lock = threading.Lock()

    def allocations(self) -> List[StaffCodeAllocation]:
        with self._lock:
            return list(self._allocations.values())

    def _find(self, code: str) -> Optional[Tuple[StaffCodeAllocation, DiscountCode]]:
        for allocation in self._allocations.values():
            found = allocation.find(code)
            if found is not None:
                return allocation, found
        return None

    def validate(self, code: str) -> CodeValidation:
        with self._lock:
            match = self._find(code or "")
        if match is None:
            return CodeValidation(is_valid=False, error="Invalid discount code")
        _, found = match
        if found.is_used:
            return CodeValidation(is_valid=False, error="This code has already been used")
        return CodeValidation(is_valid=True, discount_percent=found.percent, staff_name=found.staff_name)

    def mark_used(
        self,
        code: str,
        customer_name: str,
        customer_contact: str,
        quote_id: str,
        at: Optional[datetime] = None,
    ) -> DiscountCode:
        """
        Redeem a code for a quote.

        Raises:
            KeyError: unknown code
            ValueError: code already used
        """

        with self._lock:
            match = self._find(code or "")
            if match is None:
                raise KeyError(f"Unknown discount code: {code}")
            allocation, found = match
            used = found.redeem(
                customer_name=customer_name,
                customer_contact=customer_contact,
                quote_id=quote_id,
                at=at or utc_now(),
            )
            self._allocations[allocation.staff_id] = allocation.with_code(used)

        logger.info(
            "Discount code redeemed",
            extra={"code": used.code, "staff_id": used.staff_id, "quote_id": quote_id},
        )
        return used


__all__ = ["CodeValidation", "DiscountCodeService"]
