"""
Demo records for running without a hosted store.

Seeds the sample portal drafts, a spread of renewal policies around `now`,
and the staff discount code allocations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import NAMESPACE_URL, uuid5

from domain.discount_code import DiscountCode, DiscountCodeType, StaffCodeAllocation, YEARLY_ALLOCATION
from domain.quote import (
    Customer,
    CustomerType,
    InsuranceType,
    LeadDisposition,
    Quote,
    QuoteSource,
    QuoteStatus,
    RiskFactors,
    Vehicle,
)
from domain.renewal import RenewalPolicy
from domain.time import utc_now
from repositories.errors import ConcurrencyConflictError
from repositories.quote_repository import QuoteRepository
from repositories.renewal_repository import RenewalRepository

logger = logging.getLogger(__name__)

_CODE_PREFIX = {
    DiscountCodeType.FIFTEEN_PERCENT: "ZA15",
    DiscountCodeType.TEN_PERCENT: "ZA10",
    DiscountCodeType.FIVE_PERCENT: "ZA05",
}

# (id, name, department)
DEMO_STAFF: List[Tuple[str, str, str]] = [
    ("staff-1", "Ahmed Al-Salem", "Sales"),
    ("staff-2", "Fatima Ali", "Sales"),
    ("staff-3", "Sarah Johnson", "Sales"),
    ("staff-4", "Mohamed Hassan", "Customer Service"),
    ("staff-5", "Layla Ahmed", "Sales"),
    ("staff-6", "Ali Abdullah", "Sales"),
    ("staff-7", "Maryam Khalid", "Customer Service"),
    ("staff-8", "Khalid Saleh", "Sales"),
    ("staff-9", "Noura Ahmad", "Sales"),
    ("staff-10", "Hassan Ibrahim", "Technical Support"),
]


def _utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def demo_quotes() -> List[Quote]:
    return [
        Quote(
            id="customer-portal-1",
            quote_reference="Q-2026-CP001",
            customer=Customer(
                cpr="920101789",
                full_name="Khalid Al-Mansoori",
                mobile="97335551234",
                email="khalid.m@email.com",
                type=CustomerType.NEW,
                is_eligible_for_installments=True,
                credit_score=720,
                active_lines=("97335551234",),
            ),
            vehicle=Vehicle(
                plate_number="445566",
                chassis_number="CP12345ABCD",
                make="Nissan",
                model="Patrol",
                year="2024",
                value=Decimal("25000"),
            ),
            insurance_type=InsuranceType.MOTOR,
            risk_factors=RiskFactors(),
            start_date="2026-02-01",
            status=QuoteStatus.DRAFT,
            created_at=_utc(2026, 1, 2, 10, 30),
            source=QuoteSource.CUSTOMER_PORTAL,
            reminder_count=1,
            last_reminder_sent=_utc(2026, 1, 3, 14),
        ),
        Quote(
            id="customer-portal-2",
            quote_reference="Q-2026-CP002",
            customer=Customer(
                cpr="880515456",
                full_name="Aisha Al-Khalifa",
                mobile="97339887766",
                email="aisha.k@email.com",
                type=CustomerType.EXISTING,
                is_eligible_for_installments=True,
                credit_score=810,
                active_lines=("97339887766",),
            ),
            vehicle=Vehicle(
                plate_number="123789",
                chassis_number="CP67890EFGH",
                make="BMW",
                model="X5",
                year="2023",
                value=Decimal("32000"),
            ),
            insurance_type=InsuranceType.MOTOR,
            risk_factors=RiskFactors(),
            start_date="2026-01-20",
            status=QuoteStatus.DRAFT,
            created_at=_utc(2026, 1, 1, 8, 15),
            source=QuoteSource.CUSTOMER_PORTAL,
            reminder_count=2,
            last_reminder_sent=_utc(2026, 1, 4, 9, 30),
        ),
        Quote(
            id="agent-portal-1",
            quote_reference="Q-2026-AP001",
            customer=Customer(
                cpr="950707321",
                full_name="Omar Abdullah",
                mobile="97337778899",
                email="omar.a@email.com",
                type=CustomerType.NEW,
                credit_score=680,
            ),
            vehicle=Vehicle(
                plate_number="998877",
                chassis_number="AP11223IJKL",
                make="Toyota",
                model="Corolla",
                year="2022",
                value=Decimal("9500"),
            ),
            insurance_type=InsuranceType.MOTOR,
            risk_factors=RiskFactors(),
            start_date="2026-01-15",
            status=QuoteStatus.DRAFT,
            created_at=_utc(2026, 1, 3, 11),
            source=QuoteSource.AGENT_PORTAL,
            agent_id="2",
            agent_name="Ahmed Al-Salem",
        ),
    ]


def demo_renewal_policies(now: Optional[datetime] = None) -> List[RenewalPolicy]:
    """Policies at 45, 25, 10 days before expiry, one just expired, and one renewed."""

    now = now or utc_now()
    # (suffix, name, phone, make, model, days to expiry, premium, disposition)
    rows = [
        ("001", "Yousif Al-Haddad", "33112233", "Toyota", "Land Cruiser", 45, "540", None),
        ("002", "Mariam Al-Sayed", "33224455", "Honda", "Civic", 25, "180", None),
        ("003", "Hamad Al-Zayani", "36667788", "Lexus", "LX 600", 10, "1260", None),
        ("004", "Fatema Janahi", "39990011", "Kia", "Sportage", -2, "240", None),
        ("005", "Ebrahim Fakhro", "35554433", "Nissan", "Altima", 20, "210", LeadDisposition.SUCCESSFUL),
    ]
    policies = []
    for suffix, name, phone, make, model, days, premium, disposition in rows:
        expiry = now + timedelta(days=days)
        policies.append(
            RenewalPolicy(
                id=f"policy-{suffix}",
                quote_id=f"issued-{suffix}",
                policy_number=f"POL-{now.year - 1}-{suffix}",
                customer_name=name,
                customer_phone=phone,
                customer_cpr=f"8{suffix}01234",
                vehicle=Vehicle(
                    plate_number=f"5{suffix}",
                    chassis_number=f"REN{suffix}CHASSIS",
                    make=make,
                    model=model,
                    year=str(now.year - 3),
                    value=Decimal(premium) * 30,
                ),
                provider="GIG",
                plan_name="Comprehensive",
                premium=Decimal(premium),
                expiry_date=expiry,
                issue_date=expiry - timedelta(days=365),
                renewal_disposition=disposition,
            )
        )
    return policies


def _code(staff_id: str, staff_name: str, code_type: DiscountCodeType, index: int, year: int) -> DiscountCode:
    code = f"{_CODE_PREFIX[code_type]}{staff_name[:2].upper()}{index}{str(year)[-2:]}"
    return DiscountCode(
        id=str(uuid5(NAMESPACE_URL, f"discount:{code}")),
        code=code,
        staff_id=staff_id,
        staff_name=staff_name,
        type=code_type,
        year=year,
    )


def demo_code_allocations(year: int) -> List[StaffCodeAllocation]:
    allocations = []
    for staff_id, staff_name, department in DEMO_STAFF:
        codes = [
            _code(staff_id, staff_name, code_type, index, year)
            for code_type, count in YEARLY_ALLOCATION.items()
            for index in range(1, count + 1)
        ]
        allocations.append(
            StaffCodeAllocation(
                staff_id=staff_id,
                staff_name=staff_name,
                year=year,
                codes=tuple(codes),
                department=department,
            )
        )
    return allocations


@dataclass(frozen=True, slots=True)
class SeedSummary:
    quotes_created: int
    quotes_skipped: int
    policies_saved: int


def seed_demo_data(
    quotes: QuoteRepository,
    renewals: RenewalRepository,
    now: Optional[datetime] = None,
) -> SeedSummary:
    """Insert demo quotes (skipping existing ids) and upsert demo policies."""

    created = skipped = 0
    for quote in demo_quotes():
        try:
            quotes.save(quote, None)
            created += 1
        except ConcurrencyConflictError:
            skipped += 1

    policies = demo_renewal_policies(now)
    for policy in policies:
        renewals.save(policy)

    logger.info(
        "Demo data seeded",
        extra={"quotes_created": created, "quotes_skipped": skipped, "policies_saved": len(policies)},
    )
    return SeedSummary(quotes_created=created, quotes_skipped=skipped, policies_saved=len(policies))


__all__ = [
    "DEMO_STAFF",
    "SeedSummary",
    "demo_code_allocations",
    "demo_quotes",
    "demo_renewal_policies",
    "seed_demo_data",
]
