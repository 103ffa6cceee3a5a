"""
Quotes API Endpoints.

Endpoints for drafting and editing quotes, sending payment links, customer
portal events, draft reminders and the audit trail.
"""

from dataclasses import replace
from typing import List, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import ServiceContainer, get_container
from api.errors import raise_for_result, store_unavailable
from api.models import (
    AuditEntryResponse,
    CustomerEventRequest,
    DraftReminderRunResponse,
    OperationResponse,
    PlanResponse,
    QuoteCreateRequest,
    QuoteEditRequest,
    QuoteResponse,
    SendLinkRequest,
)
from domain.plan import InsurancePlan, find_plan, generate_plans
from domain.quote import Quote, QuoteStatus, RiskFactors
from domain.time import utc_now
from repositories.errors import StoreUnavailableError
from services.results import OperationResult

router = APIRouter()


def operation_response(result: OperationResult) -> OperationResponse:
    raise_for_result(result)
    return OperationResponse(
        success=result.success,
        message=result.message,
        warnings=result.warnings,
        quote=QuoteResponse.from_domain(result.quote) if result.quote else None,
    )


def load_quote(container: ServiceContainer, quote_id: str) -> Quote:
    try:
        quote = container.quotes.get_by_id(quote_id)
    except StoreUnavailableError as e:
        raise store_unavailable(e)
    if quote is None:
        raise HTTPException(status_code=404, detail=f"Quote not found: {quote_id}")
    return quote


def resolve_plan(quote: Quote, plan_id: Optional[str]) -> Optional[InsurancePlan]:
    """Look up a plan id in the quote's generated plan list. None means keep the stored selection."""

    if plan_id is None:
        return None
    plan = find_plan(generate_plans(quote.vehicle.value, quote.risk_factors, quote.insurance_type), plan_id)
    if plan is None:
        raise HTTPException(status_code=422, detail=f"Unknown plan for this quote: {plan_id}")
    return plan


@router.get(
    "/quotes",
    response_model=List[QuoteResponse],
    summary="List Quotes",
    description="All quotes, newest first. Served from cache when the store is unreachable."
)
def list_quotes(status: Optional[QuoteStatus] = None, container: ServiceContainer = Depends(get_container)):
    quotes = container.quotes.list_all()
    if status is not None:
        quotes = [q for q in quotes if q.status == status]
    return [QuoteResponse.from_domain(q) for q in quotes]


@router.get("/quotes/{quote_id}", response_model=QuoteResponse, summary="Get Quote")
def get_quote(quote_id: str, container: ServiceContainer = Depends(get_container)):
    return QuoteResponse.from_domain(load_quote(container, quote_id))


@router.post(
    "/quotes",
    response_model=OperationResponse,
    status_code=201,
    summary="Save Draft Quote",
    description="Create a new DRAFT quote. A quote reference is generated."
)
def create_quote(request: QuoteCreateRequest, container: ServiceContainer = Depends(get_container)):
    """
    Save a new draft.

    **Example request:** see the schema example. The response carries the
    stored quote including its `version`, which later edits must send back.
    """
    quote = Quote(
        id=str(uuid4()),
        customer=request.customer.to_domain(),
        vehicle=request.vehicle.to_domain(),
        insurance_type=request.insurance_type,
        risk_factors=RiskFactors(
            age_under_24=request.risk_factors.age_under_24,
            license_under_1_year=request.risk_factors.license_under_1_year,
        ),
        start_date=request.start_date,
        status=QuoteStatus.DRAFT,
        created_at=utc_now(),
        source=request.source,
        agent_id=request.agent_id,
        agent_name=request.agent_name,
        contact_number_for_link=request.contact_number_for_link,
    )
    return operation_response(container.lifecycle.save_draft(quote, request.actor))


@router.put(
    "/quotes/{quote_id}",
    response_model=OperationResponse,
    summary="Edit Quote",
    description="Save edited quote fields. Changing pricing inputs resets any pending or decided approval."
)
def edit_quote(quote_id: str, request: QuoteEditRequest, container: ServiceContainer = Depends(get_container)):
    """
    Save an edit.

    **Concurrency:** `version` must be the version the editor loaded.
    A concurrent change since then returns 409.
    """
    current = load_quote(container, quote_id)
    edited = replace(
        current,
        customer=request.customer.to_domain(),
        vehicle=request.vehicle.to_domain(),
        risk_factors=RiskFactors(
            age_under_24=request.risk_factors.age_under_24,
            license_under_1_year=request.risk_factors.license_under_1_year,
        ),
        start_date=request.start_date,
        contact_number_for_link=request.contact_number_for_link,
        version=request.version,
    )
    return operation_response(container.lifecycle.edit_quote(edited, request.actor, request.actor_id))


@router.get("/quotes/{quote_id}/plans", response_model=List[PlanResponse], summary="Available Plans")
def list_plans(quote_id: str, container: ServiceContainer = Depends(get_container)):
    quote = load_quote(container, quote_id)
    plans = generate_plans(quote.vehicle.value, quote.risk_factors, quote.insurance_type)
    return [PlanResponse.from_domain(p) for p in plans]


@router.post(
    "/quotes/{quote_id}/send-link",
    response_model=OperationResponse,
    summary="Send Payment Link",
    description="Send the customer a WhatsApp payment link. A failed delivery is returned as a warning."
)
def send_link(quote_id: str, request: SendLinkRequest, container: ServiceContainer = Depends(get_container)):
    plan = resolve_plan(load_quote(container, quote_id), request.plan_id)
    return operation_response(
        container.lifecycle.send_link(quote_id, plan, request.actor, payment_pending=request.payment_pending)
    )


@router.post(
    "/quotes/{quote_id}/customer-events",
    response_model=OperationResponse,
    summary="Record Customer Event",
    description="Link clicked, documents uploaded, payment started or policy issued."
)
def record_customer_event(
    quote_id: str,
    request: CustomerEventRequest,
    container: ServiceContainer = Depends(get_container),
):
    return operation_response(container.lifecycle.record_customer_event(quote_id, request.event))


@router.post("/quotes/{quote_id}/reminders", response_model=OperationResponse, summary="Send Draft Reminder")
def send_draft_reminder(quote_id: str, container: ServiceContainer = Depends(get_container)):
    return operation_response(container.lifecycle.send_draft_reminder(quote_id))


@router.post(
    "/reminders/drafts/run",
    response_model=DraftReminderRunResponse,
    summary="Run Draft Reminders",
    description="Send every draft reminder that is due (3, 7 and 14 days after creation)."
)
def run_draft_reminders(container: ServiceContainer = Depends(get_container)):
    try:
        summary = container.lifecycle.schedule_draft_reminders()
    except StoreUnavailableError as e:
        raise store_unavailable(e)
    return DraftReminderRunResponse(checked=summary.checked, sent=summary.sent, errors=summary.errors)


@router.get("/quotes/{quote_id}/audit", response_model=List[AuditEntryResponse], summary="Audit Trail")
def get_audit_trail(quote_id: str, container: ServiceContainer = Depends(get_container)):
    try:
        entries = container.lifecycle.get_audit_trail(quote_id)
    except StoreUnavailableError as e:
        raise store_unavailable(e)
    return [AuditEntryResponse.from_domain(e) for e in entries]
