"""
Domain: Quote entity.

A Quote is a single insurance request moving through the lifecycle state
machine (see domain/lifecycle.py).

Contract excerpts implemented here:
- id is the primary key; quote_reference is cosmetic and not unique.
- source records provenance and is never changed after creation.
- created_at is UTC and drives sort order everywhere.
- assignment holds at most one active assignment; assignment_history is
  append-only.
- version is the optimistic-concurrency token maintained by the repository.

Status is never assigned directly outside domain/lifecycle.py.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from .assignment import AssignmentHistoryEntry, AssignmentStatus, QuoteAssignment
from .time import require_utc_timestamp


class QuoteStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVAL_GRANTED = "APPROVAL_GRANTED"
    APPROVAL_REJECTED = "APPROVAL_REJECTED"
    LINK_SENT = "LINK_SENT"
    LINK_CLICKED = "LINK_CLICKED"
    DOCS_UPLOADED = "DOCS_UPLOADED"
    PAYMENT_PENDING = "PAYMENT_PENDING"
    ISSUED = "ISSUED"
    EXPIRING = "EXPIRING"


class QuoteSource(str, Enum):
    AGENT_PORTAL = "AGENT_PORTAL"
    CUSTOMER_PORTAL = "CUSTOMER_PORTAL"


class InsuranceType(str, Enum):
    MOTOR = "MOTOR"
    TRAVEL = "TRAVEL"
    HEALTH = "HEALTH"
    LIFE = "LIFE"
    CYBER = "CYBER"
    HOME = "HOME"
    PERSONAL_ACCIDENT = "PERSONAL_ACCIDENT"


class CustomerType(str, Enum):
    NEW = "NEW"
    EXISTING = "EXISTING"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    INSTALLMENT = "INSTALLMENT"


class LeadDisposition(str, Enum):
    NEW = "NEW"
    CLAIMED = "CLAIMED"
    NO_ANSWER = "NO_ANSWER"
    WHATSAPP_CONTACTED = "WHATSAPP_CONTACTED"
    ALREADY_INSURED = "ALREADY_INSURED"
    DROPPED_CALL = "DROPPED_CALL"
    NOT_INTERESTED = "NOT_INTERESTED"
    DECLINED = "DECLINED"
    OFFER_REJECTED = "OFFER_REJECTED"
    THINKING = "THINKING"
    BETTER_OFFER = "BETTER_OFFER"
    AWAITING_DECISION = "AWAITING_DECISION"
    CALL_BACK_LATER = "CALL_BACK_LATER"
    PROCESSING = "PROCESSING"
    SUCCESSFUL = "SUCCESSFUL"


class TravelType(str, Enum):
    INDIVIDUAL = "INDIVIDUAL"
    FAMILY = "FAMILY"


class TravelDestination(str, Enum):
    WORLDWIDE = "WORLDWIDE"
    WORLDWIDE_EXCL_US_CA = "WORLDWIDE_EXCL_US_CA"
    SCHENGEN = "SCHENGEN"


class ApprovalValidity(str, Enum):
    """
    Whether a credit-control decision still applies to the quote.

    NONE: no decision is in force (never requested, or rejected).
    VALID: an approval was granted for the current pricing inputs.
    INVALIDATED: an approval existed but pricing inputs changed afterwards.
    """

    NONE = "NONE"
    VALID = "VALID"
    INVALIDATED = "INVALIDATED"


@dataclass(frozen=True, slots=True)
class Customer:
    cpr: str
    full_name: str
    mobile: str
    email: str
    type: CustomerType
    is_eligible_for_service: bool = True
    is_eligible_for_installments: bool = False
    credit_score: int = 0
    active_lines: Tuple[str, ...] = ()
    id: Optional[str] = None
    address: Optional[str] = None
    subscription_plan: Optional[str] = None  # POST or PRE
    registration_month: Optional[int] = None

    @property
    def first_name(self) -> str:
        return self.full_name.split(" ")[0] if self.full_name else ""


@dataclass(frozen=True, slots=True)
class Vehicle:
    plate_number: str
    chassis_number: str
    make: str
    model: str
    year: str
    value: Decimal
    body_type: Optional[str] = None
    engine_size: Optional[str] = None
    is_brand_new: Optional[bool] = None
    has_existing_insurance: Optional[bool] = None
    existing_policy_expiry: Optional[str] = None
    policy_end_date: Optional[str] = None

    @property
    def description(self) -> str:
        return f"{self.make} {self.model} ({self.year})"


@dataclass(frozen=True, slots=True)
class TravelCriteria:
    type: TravelType
    destination: TravelDestination
    departure_date: str
    return_date: str
    adults_count: int = 1
    children_count: int = 0
    individual_dob: Optional[str] = None


@dataclass(frozen=True, slots=True)
class RiskFactors:
    age_under_24: bool = False
    license_under_1_year: bool = False

    @property
    def has_any(self) -> bool:
        return self.age_under_24 or self.license_under_1_year


@dataclass(frozen=True, slots=True)
class Quote:
    """
    Insurance quote record.

    Immutability:
    - Frozen; every change produces a new instance via `dataclasses.replace`
      (directly for payload fields, through lifecycle events for status).
    """

    id: str
    customer: Customer
    vehicle: Vehicle
    insurance_type: InsuranceType
    risk_factors: RiskFactors
    start_date: str
    status: QuoteStatus
    created_at: datetime
    source: QuoteSource

    quote_reference: Optional[str] = None
    travel_criteria: Optional[TravelCriteria] = None
    selected_plan_id: Optional[str] = None
    provider: Optional[str] = None
    plan_name: Optional[str] = None
    lead_disposition: Optional[LeadDisposition] = None
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None
    contact_number_for_link: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None

    # Credit control
    approval_handled_at: Optional[datetime] = None
    approval_validity: ApprovalValidity = ApprovalValidity.NONE

    # Discount code
    discount_code: Optional[str] = None
    discount_percent: Optional[int] = None

    # Draft reminders
    last_reminder_sent: Optional[datetime] = None
    reminder_count: int = 0

    # Assignment tracking
    assignment: Optional[QuoteAssignment] = None
    assignment_history: Tuple[AssignmentHistoryEntry, ...] = ()

    version: int = 0

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        if self.approval_handled_at is not None:
            require_utc_timestamp("approval_handled_at", self.approval_handled_at)
        if self.last_reminder_sent is not None:
            require_utc_timestamp("last_reminder_sent", self.last_reminder_sent)
        if self.reminder_count < 0:
            raise ValueError("reminder_count must be >= 0")
        if self.assignment is not None and self.assignment.quote_id != self.id:
            raise ValueError("assignment.quote_id must match quote id")
        if self.assignment is not None and self.assignment.status == AssignmentStatus.COMPLETED:
            if self.status not in (QuoteStatus.ISSUED, QuoteStatus.EXPIRING):
                raise ValueError("COMPLETED assignment requires an issued quote")

    @property
    def display_reference(self) -> str:
        return self.quote_reference or self.id[:8]

    @property
    def is_issued(self) -> bool:
        return self.status == QuoteStatus.ISSUED

    def with_history(self, entry: AssignmentHistoryEntry) -> "Quote":
        return replace(self, assignment_history=self.assignment_history + (entry,))


def generate_quote_reference(year: int, rng: Optional[random.Random] = None, prefix: str = "Q") -> str:
    """Readable reference like Q-2026-0042. Not guaranteed unique."""

    rng = rng or random.Random()
    return f"{prefix}-{year}-{rng.randrange(10000):04d}"


__all__ = [
    "ApprovalValidity",
    "Customer",
    "CustomerType",
    "InsuranceType",
    "LeadDisposition",
    "PaymentMethod",
    "Quote",
    "QuoteSource",
    "QuoteStatus",
    "RiskFactors",
    "TravelCriteria",
    "TravelDestination",
    "TravelType",
    "Vehicle",
    "generate_quote_reference",
]
