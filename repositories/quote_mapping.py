"""
Row mapping for quotes and their embedded value objects.

Payloads are produced by `sanitize_for_store` from the domain dataclasses,
so keys are the dataclass field names. These helpers rebuild the domain
objects from hydrated payloads.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping, Optional

from domain.assignment import (
    AgentNote,
    AssignmentHistoryEntry,
    AssignmentStatus,
    HistoryAction,
    QuoteAssignment,
    RejectionReason,
)
from domain.quote import (
    ApprovalValidity,
    Customer,
    CustomerType,
    InsuranceType,
    LeadDisposition,
    PaymentMethod,
    Quote,
    QuoteSource,
    QuoteStatus,
    RiskFactors,
    TravelCriteria,
    TravelDestination,
    TravelType,
    Vehicle,
)
from domain.time import parse_optional_utc, parse_utc_datetime


def _opt_enum(enum_cls: Any, value: Any) -> Any:
    return enum_cls(value) if value not in (None, "") else None


def customer_from_payload(data: Mapping[str, Any]) -> Customer:
    return Customer(
        cpr=str(data["cpr"]),
        full_name=str(data["full_name"]),
        mobile=str(data.get("mobile") or ""),
        email=str(data.get("email") or ""),
        type=CustomerType(data.get("type") or CustomerType.NEW.value),
        is_eligible_for_service=bool(data.get("is_eligible_for_service", True)),
        is_eligible_for_installments=bool(data.get("is_eligible_for_installments", False)),
        credit_score=int(data.get("credit_score") or 0),
        active_lines=tuple(data.get("active_lines") or ()),
        id=data.get("id"),
        address=data.get("address"),
        subscription_plan=data.get("subscription_plan"),
        registration_month=data.get("registration_month"),
    )


def vehicle_from_payload(data: Mapping[str, Any]) -> Vehicle:
    return Vehicle(
        plate_number=str(data.get("plate_number") or ""),
        chassis_number=str(data.get("chassis_number") or ""),
        make=str(data["make"]),
        model=str(data["model"]),
        year=str(data.get("year") or ""),
        value=Decimal(str(data.get("value") or "0")),
        body_type=data.get("body_type"),
        engine_size=data.get("engine_size"),
        is_brand_new=data.get("is_brand_new"),
        has_existing_insurance=data.get("has_existing_insurance"),
        existing_policy_expiry=data.get("existing_policy_expiry"),
        policy_end_date=data.get("policy_end_date"),
    )


def travel_from_payload(data: Optional[Mapping[str, Any]]) -> Optional[TravelCriteria]:
    if not data:
        return None
    return TravelCriteria(
        type=TravelType(data["type"]),
        destination=TravelDestination(data["destination"]),
        departure_date=str(data["departure_date"]),
        return_date=str(data["return_date"]),
        adults_count=int(data.get("adults_count") or 1),
        children_count=int(data.get("children_count") or 0),
        individual_dob=data.get("individual_dob"),
    )


def _note_from_payload(data: Mapping[str, Any]) -> AgentNote:
    return AgentNote(
        id=str(data["id"]),
        note_text=str(data["note_text"]),
        created_at=parse_utc_datetime(data["created_at"]),
        created_by=str(data["created_by"]),
        created_by_name=str(data["created_by_name"]),
        is_reminder=bool(data.get("is_reminder", False)),
        reminder_date=parse_optional_utc(data.get("reminder_date")),
    )


def history_from_payload(data: Mapping[str, Any]) -> AssignmentHistoryEntry:
    return AssignmentHistoryEntry(
        id=str(data["id"]),
        timestamp=parse_utc_datetime(data["timestamp"]),
        action=HistoryAction(data["action"]),
        performed_by=str(data["performed_by"]),
        performed_by_name=str(data["performed_by_name"]),
        details=str(data.get("details") or ""),
    )


def assignment_from_payload(data: Optional[Mapping[str, Any]]) -> Optional[QuoteAssignment]:
    if not data:
        return None
    return QuoteAssignment(
        id=str(data["id"]),
        quote_id=str(data["quote_id"]),
        assigned_to_agent_id=str(data["assigned_to_agent_id"]),
        assigned_to_agent_name=str(data["assigned_to_agent_name"]),
        assigned_by_agent_id=str(data["assigned_by_agent_id"]),
        assigned_by_agent_name=str(data["assigned_by_agent_name"]),
        assigned_at=parse_utc_datetime(data["assigned_at"]),
        status=AssignmentStatus(data.get("status") or AssignmentStatus.ASSIGNED.value),
        claimed_at=parse_optional_utc(data.get("claimed_at")),
        claimed_by_agent_id=data.get("claimed_by_agent_id"),
        claimed_by_agent_name=data.get("claimed_by_agent_name"),
        rejection_reason=_opt_enum(RejectionReason, data.get("rejection_reason")),
        rejection_note=data.get("rejection_note"),
        rejected_at=parse_optional_utc(data.get("rejected_at")),
        completed_at=parse_optional_utc(data.get("completed_at")),
        agent_notes=tuple(_note_from_payload(n) for n in data.get("agent_notes") or ()),
        last_contacted_at=parse_optional_utc(data.get("last_contacted_at")),
    )


def quote_from_payload(data: Mapping[str, Any], *, version: int = 0) -> Quote:
    """Rebuild a Quote from a hydrated payload. `version` comes from the row."""

    risk = data.get("risk_factors") or {}
    return Quote(
        id=str(data["id"]),
        customer=customer_from_payload(data["customer"]),
        vehicle=vehicle_from_payload(data["vehicle"]),
        insurance_type=InsuranceType(data.get("insurance_type") or InsuranceType.MOTOR.value),
        risk_factors=RiskFactors(
            age_under_24=bool(risk.get("age_under_24", False)),
            license_under_1_year=bool(risk.get("license_under_1_year", False)),
        ),
        start_date=str(data.get("start_date") or ""),
        status=QuoteStatus(data["status"]),
        created_at=parse_utc_datetime(data["created_at"]),
        source=QuoteSource(data.get("source") or QuoteSource.AGENT_PORTAL.value),
        quote_reference=data.get("quote_reference"),
        travel_criteria=travel_from_payload(data.get("travel_criteria")),
        selected_plan_id=data.get("selected_plan_id"),
        provider=data.get("provider"),
        plan_name=data.get("plan_name"),
        lead_disposition=_opt_enum(LeadDisposition, data.get("lead_disposition")),
        agent_id=data.get("agent_id"),
        agent_name=data.get("agent_name"),
        contact_number_for_link=data.get("contact_number_for_link"),
        payment_method=_opt_enum(PaymentMethod, data.get("payment_method")),
        approval_handled_at=parse_optional_utc(data.get("approval_handled_at")),
        approval_validity=ApprovalValidity(data.get("approval_validity") or ApprovalValidity.NONE.value),
        discount_code=data.get("discount_code"),
        discount_percent=data.get("discount_percent"),
        last_reminder_sent=parse_optional_utc(data.get("last_reminder_sent")),
        reminder_count=int(data.get("reminder_count") or 0),
        assignment=assignment_from_payload(data.get("assignment")),
        assignment_history=tuple(history_from_payload(h) for h in data.get("assignment_history") or ()),
        version=version,
    )


__all__ = [
    "assignment_from_payload",
    "customer_from_payload",
    "history_from_payload",
    "quote_from_payload",
    "travel_from_payload",
    "vehicle_from_payload",
]
