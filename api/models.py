"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
Response models are built from domain objects with `from_domain`.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from domain.assignment import AgentNote, AssignmentHistoryEntry, QuoteAssignment, RejectionReason
from domain.audit import AuditLogEntry
from domain.lifecycle import QuoteEvent
from domain.notification import Notification
from domain.plan import InsurancePlan
from domain.quote import (
    Customer,
    CustomerType,
    InsuranceType,
    Quote,
    QuoteSource,
    RiskFactors,
    Vehicle,
)
from domain.renewal import RenewalPolicy


# ============================================================================
# Quote payload models
# ============================================================================

class CustomerModel(BaseModel):
    """Customer details on a quote."""
    cpr: str
    full_name: str
    mobile: str
    email: str = ""
    type: CustomerType = CustomerType.NEW
    is_eligible_for_service: bool = True
    is_eligible_for_installments: bool = False
    credit_score: int = 0
    active_lines: List[str] = Field(default_factory=list)
    address: Optional[str] = None

    def to_domain(self) -> Customer:
        return Customer(
            cpr=self.cpr,
            full_name=self.full_name,
            mobile=self.mobile,
            email=self.email,
            type=self.type,
            is_eligible_for_service=self.is_eligible_for_service,
            is_eligible_for_installments=self.is_eligible_for_installments,
            credit_score=self.credit_score,
            active_lines=tuple(self.active_lines),
            address=self.address,
        )

    @classmethod
    def from_domain(cls, customer: Customer) -> "CustomerModel":
        return cls(
            cpr=customer.cpr,
            full_name=customer.full_name,
            mobile=customer.mobile,
            email=customer.email,
            type=customer.type,
            is_eligible_for_service=customer.is_eligible_for_service,
            is_eligible_for_installments=customer.is_eligible_for_installments,
            credit_score=customer.credit_score,
            active_lines=list(customer.active_lines),
            address=customer.address,
        )


class VehicleModel(BaseModel):
    """Insured vehicle."""
    plate_number: str
    chassis_number: str
    make: str
    model: str
    year: str
    value: Decimal = Field(..., ge=0)
    policy_end_date: Optional[str] = None

    def to_domain(self) -> Vehicle:
        return Vehicle(
            plate_number=self.plate_number,
            chassis_number=self.chassis_number,
            make=self.make,
            model=self.model,
            year=self.year,
            value=self.value,
            policy_end_date=self.policy_end_date,
        )

    @classmethod
    def from_domain(cls, vehicle: Vehicle) -> "VehicleModel":
        return cls(
            plate_number=vehicle.plate_number,
            chassis_number=vehicle.chassis_number,
            make=vehicle.make,
            model=vehicle.model,
            year=vehicle.year,
            value=vehicle.value,
            policy_end_date=vehicle.policy_end_date,
        )


class RiskFactorsModel(BaseModel):
    age_under_24: bool = False
    license_under_1_year: bool = False


class AgentNoteModel(BaseModel):
    id: str
    note_text: str
    created_at: datetime
    created_by: str
    created_by_name: str
    is_reminder: bool
    reminder_date: Optional[datetime] = None

    @classmethod
    def from_domain(cls, note: AgentNote) -> "AgentNoteModel":
        return cls(
            id=note.id,
            note_text=note.note_text,
            created_at=note.created_at,
            created_by=note.created_by,
            created_by_name=note.created_by_name,
            is_reminder=note.is_reminder,
            reminder_date=note.reminder_date,
        )


class AssignmentModel(BaseModel):
    """Current pool assignment of a quote."""
    id: str
    assigned_to_agent_id: str
    assigned_to_agent_name: str
    assigned_by_agent_id: str
    assigned_by_agent_name: str
    assigned_at: datetime
    status: str
    claimed_at: Optional[datetime] = None
    claimed_by_agent_name: Optional[str] = None
    rejection_reason: Optional[str] = None
    rejection_note: Optional[str] = None
    completed_at: Optional[datetime] = None
    agent_notes: List[AgentNoteModel] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, assignment: QuoteAssignment) -> "AssignmentModel":
        return cls(
            id=assignment.id,
            assigned_to_agent_id=assignment.assigned_to_agent_id,
            assigned_to_agent_name=assignment.assigned_to_agent_name,
            assigned_by_agent_id=assignment.assigned_by_agent_id,
            assigned_by_agent_name=assignment.assigned_by_agent_name,
            assigned_at=assignment.assigned_at,
            status=assignment.status.value,
            claimed_at=assignment.claimed_at,
            claimed_by_agent_name=assignment.claimed_by_agent_name,
            rejection_reason=assignment.rejection_reason.value if assignment.rejection_reason else None,
            rejection_note=assignment.rejection_note,
            completed_at=assignment.completed_at,
            agent_notes=[AgentNoteModel.from_domain(n) for n in assignment.agent_notes],
        )


class HistoryEntryModel(BaseModel):
    id: str
    timestamp: datetime
    action: str
    performed_by: str
    performed_by_name: str
    details: str

    @classmethod
    def from_domain(cls, entry: AssignmentHistoryEntry) -> "HistoryEntryModel":
        return cls(
            id=entry.id,
            timestamp=entry.timestamp,
            action=entry.action.value,
            performed_by=entry.performed_by,
            performed_by_name=entry.performed_by_name,
            details=entry.details,
        )


class QuoteResponse(BaseModel):
    """Quote as returned by the API."""
    id: str
    quote_reference: Optional[str] = None
    status: str
    source: str
    insurance_type: str
    customer: CustomerModel
    vehicle: VehicleModel
    risk_factors: RiskFactorsModel
    start_date: str
    created_at: datetime
    selected_plan_id: Optional[str] = None
    provider: Optional[str] = None
    plan_name: Optional[str] = None
    payment_method: Optional[str] = None
    lead_disposition: Optional[str] = None
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None
    contact_number_for_link: Optional[str] = None
    approval_handled_at: Optional[datetime] = None
    approval_validity: str
    discount_code: Optional[str] = None
    discount_percent: Optional[int] = None
    reminder_count: int = 0
    last_reminder_sent: Optional[datetime] = None
    assignment: Optional[AssignmentModel] = None
    assignment_history: List[HistoryEntryModel] = Field(default_factory=list)
    version: int

    class Config:
        json_schema_extra = {
            "example": {
                "id": "customer-portal-1",
                "quote_reference": "Q-2026-CP001",
                "status": "DRAFT",
                "source": "CUSTOMER_PORTAL",
                "insurance_type": "MOTOR",
                "approval_validity": "NONE",
                "version": 1,
            }
        }

    @classmethod
    def from_domain(cls, quote: Quote) -> "QuoteResponse":
        return cls(
            id=quote.id,
            quote_reference=quote.quote_reference,
            status=quote.status.value,
            source=quote.source.value,
            insurance_type=quote.insurance_type.value,
            customer=CustomerModel.from_domain(quote.customer),
            vehicle=VehicleModel.from_domain(quote.vehicle),
            risk_factors=RiskFactorsModel(
                age_under_24=quote.risk_factors.age_under_24,
                license_under_1_year=quote.risk_factors.license_under_1_year,
            ),
            start_date=quote.start_date,
            created_at=quote.created_at,
            selected_plan_id=quote.selected_plan_id,
            provider=quote.provider,
            plan_name=quote.plan_name,
            payment_method=quote.payment_method.value if quote.payment_method else None,
            lead_disposition=quote.lead_disposition.value if quote.lead_disposition else None,
            agent_id=quote.agent_id,
            agent_name=quote.agent_name,
            contact_number_for_link=quote.contact_number_for_link,
            approval_handled_at=quote.approval_handled_at,
            approval_validity=quote.approval_validity.value,
            discount_code=quote.discount_code,
            discount_percent=quote.discount_percent,
            reminder_count=quote.reminder_count,
            last_reminder_sent=quote.last_reminder_sent,
            assignment=AssignmentModel.from_domain(quote.assignment) if quote.assignment else None,
            assignment_history=[HistoryEntryModel.from_domain(e) for e in quote.assignment_history],
            version=quote.version,
        )


# ============================================================================
# Quote requests
# ============================================================================

class QuoteCreateRequest(BaseModel):
    """Request to save a new draft quote."""
    customer: CustomerModel
    vehicle: VehicleModel
    insurance_type: InsuranceType = InsuranceType.MOTOR
    risk_factors: RiskFactorsModel = Field(default_factory=RiskFactorsModel)
    start_date: str
    source: QuoteSource = QuoteSource.AGENT_PORTAL
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None
    contact_number_for_link: Optional[str] = None
    actor: str = Field(..., min_length=1, description="Display name recorded in the audit log")

    class Config:
        json_schema_extra = {
            "example": {
                "customer": {
                    "cpr": "950707321",
                    "full_name": "Omar Abdullah",
                    "mobile": "97337778899",
                    "email": "omar.a@email.com",
                    "type": "NEW",
                },
                "vehicle": {
                    "plate_number": "998877",
                    "chassis_number": "AP11223IJKL",
                    "make": "Toyota",
                    "model": "Corolla",
                    "year": "2022",
                    "value": "9500",
                },
                "start_date": "2026-01-15",
                "agent_id": "2",
                "agent_name": "Ahmed Al-Salem",
                "actor": "Ahmed Al-Salem",
            }
        }


class QuoteEditRequest(BaseModel):
    """Edited quote fields. `version` is the version the editor loaded."""
    version: int = Field(..., ge=1)
    customer: CustomerModel
    vehicle: VehicleModel
    risk_factors: RiskFactorsModel
    start_date: str
    contact_number_for_link: Optional[str] = None
    actor: str = Field(..., min_length=1)
    actor_id: Optional[str] = None


class PlanSelectionRequest(BaseModel):
    """Plan chosen from the generated plan list."""
    plan_id: Optional[str] = None
    actor: str = Field(..., min_length=1)


class SendLinkRequest(PlanSelectionRequest):
    payment_pending: bool = True


class ApprovalDecisionRequest(BaseModel):
    approved: bool
    actor: Optional[str] = None


class CustomerEventRequest(BaseModel):
    event: QuoteEvent


class PlanResponse(BaseModel):
    id: str
    provider: str
    name: str
    coverage: str
    base_premium: Decimal
    features: List[str]
    excess: Optional[Decimal] = None

    @classmethod
    def from_domain(cls, plan: InsurancePlan) -> "PlanResponse":
        return cls(
            id=plan.id,
            provider=plan.provider,
            name=plan.name,
            coverage=plan.coverage,
            base_premium=plan.base_premium,
            features=list(plan.features),
            excess=plan.excess,
        )


class OperationResponse(BaseModel):
    """Outcome of a workflow operation that succeeded."""
    success: bool
    message: str
    warnings: List[str] = Field(default_factory=list)
    quote: Optional[QuoteResponse] = None


class AuditEntryResponse(BaseModel):
    id: str
    quote_id: str
    timestamp: datetime
    user: str
    action: str
    details: str

    @classmethod
    def from_domain(cls, entry: AuditLogEntry) -> "AuditEntryResponse":
        return cls(
            id=entry.id,
            quote_id=entry.quote_id,
            timestamp=entry.timestamp,
            user=entry.user,
            action=entry.action.value,
            details=entry.details,
        )


class DraftReminderRunResponse(BaseModel):
    checked: int
    sent: List[str]
    errors: Dict[str, str]


# ============================================================================
# Assignment Models
# ============================================================================

class AssignRequest(BaseModel):
    """Request to assign quotes to an agent."""
    quote_ids: List[str] = Field(..., min_length=1)
    assigned_to_agent_id: str
    assigned_to_agent_name: str
    assigned_by_agent_id: str
    assigned_by_agent_name: str

    class Config:
        json_schema_extra = {
            "example": {
                "quote_ids": ["customer-portal-1", "customer-portal-2"],
                "assigned_to_agent_id": "2",
                "assigned_to_agent_name": "Ahmed Al-Salem",
                "assigned_by_agent_id": "3",
                "assigned_by_agent_name": "Sarah Johnson",
            }
        }


class BatchAssignmentResponse(BaseModel):
    success: bool
    assigned: List[str]
    unchanged: List[str]
    failures: Dict[str, str]
    messages: Dict[str, str]
    warnings: List[str]


class AgentActionRequest(BaseModel):
    agent_id: str
    agent_name: str


class RejectRequest(AgentActionRequest):
    reason: RejectionReason
    note: Optional[str] = None


class NoteRequest(BaseModel):
    text: str = Field(..., min_length=1)
    author_id: str
    author_name: str
    reminder_date: Optional[datetime] = None


# ============================================================================
# Renewal Models
# ============================================================================

class RenewalPolicyResponse(BaseModel):
    id: str
    quote_id: str
    policy_number: str
    customer_name: str
    customer_phone: str
    vehicle: str
    provider: str
    plan_name: str
    premium: Decimal
    expiry_date: datetime
    status: str
    reminders_sent: List[str]
    assigned_to_pool: bool
    pool_quote_id: Optional[str] = None

    @classmethod
    def from_domain(cls, policy: RenewalPolicy) -> "RenewalPolicyResponse":
        return cls(
            id=policy.id,
            quote_id=policy.quote_id,
            policy_number=policy.policy_number,
            customer_name=policy.customer_name,
            customer_phone=policy.customer_phone,
            vehicle=f"{policy.vehicle.make} {policy.vehicle.model} ({policy.vehicle.year})",
            provider=policy.provider,
            plan_name=policy.plan_name,
            premium=policy.premium,
            expiry_date=policy.expiry_date,
            status=policy.status.value,
            reminders_sent=[r.type.value for r in policy.reminders_sent],
            assigned_to_pool=policy.assigned_to_pool,
            pool_quote_id=policy.pool_quote_id,
        )


class ExpiringPolicyResponse(BaseModel):
    policy: RenewalPolicyResponse
    days_until_expiry: int
    status: str


class RenewalMetricsResponse(BaseModel):
    total_expiring: int
    expiring_30_days: int
    expiring_15_days: int
    expiring_7_days: int
    reminders_sent_today: int
    reminders_scheduled: int
    auto_assigned_to_pool: int
    renewal_rate: float
    total_value: Decimal


class RenewalRunResponse(BaseModel):
    processed: int
    reminders_sent: int
    assigned_to_pool: int
    errors: List[str]


class ReminderResponse(BaseModel):
    success: bool
    reminder_type: Optional[str] = None
    message_id: Optional[str] = None
    policy: Optional[RenewalPolicyResponse] = None


# ============================================================================
# Auth, Notification and Discount Models
# ============================================================================

class LoginRequest(BaseModel):
    username: str
    password: str


class UserResponse(BaseModel):
    id: str
    username: str
    name: str
    roles: List[str]


class LoginResponse(BaseModel):
    user: UserResponse
    active_role: Optional[str]
    message: str


class NotificationResponse(BaseModel):
    id: str
    type: str
    title: str
    message: str
    created_at: datetime
    quote_id: Optional[str] = None
    read: bool

    @classmethod
    def from_domain(cls, notification: Notification) -> "NotificationResponse":
        return cls(
            id=notification.id,
            type=notification.type.value,
            title=notification.title,
            message=notification.message,
            created_at=notification.created_at,
            quote_id=notification.quote_id,
            read=notification.read,
        )


class DiscountValidationResponse(BaseModel):
    is_valid: bool
    discount_percent: int = 0
    staff_name: Optional[str] = None
    error: Optional[str] = None


class DiscountRedeemRequest(BaseModel):
    code: str = Field(..., min_length=1)
    customer_name: str
    customer_contact: str
    quote_id: str


class DiscountCodeResponse(BaseModel):
    code: str
    staff_name: str
    percent: int
    is_used: bool
    used_at: Optional[datetime] = None
    used_by: Optional[str] = None
    quote_id: Optional[str] = None


class StaffAllocationResponse(BaseModel):
    staff_id: str
    staff_name: str
    department: Optional[str] = None
    year: int
    total_used: int
    total_remaining: int
    codes: List[DiscountCodeResponse]
