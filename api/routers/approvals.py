"""
Approvals API Endpoints.

Installment exception requests and credit-control decisions, plus the
in-app notifications those decisions produce.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import ServiceContainer, get_container
from api.errors import store_unavailable
from api.models import (
    ApprovalDecisionRequest,
    NotificationResponse,
    OperationResponse,
    PlanSelectionRequest,
    QuoteResponse,
)
from api.routers.quotes import load_quote, operation_response, resolve_plan
from domain.audit import CREDIT_CONTROL_ACTOR
from domain.quote import QuoteStatus
from repositories.errors import StoreUnavailableError

router = APIRouter()


@router.post(
    "/quotes/{quote_id}/exception",
    response_model=OperationResponse,
    summary="Request Installment Exception",
    description="Send a DRAFT quote to credit control for an installment exception."
)
def request_exception(
    quote_id: str,
    request: PlanSelectionRequest,
    container: ServiceContainer = Depends(get_container),
):
    plan = resolve_plan(load_quote(container, quote_id), request.plan_id)
    return operation_response(container.lifecycle.request_exception(quote_id, plan, request.actor))


@router.get("/approvals/pending", response_model=List[QuoteResponse], summary="Pending Approvals")
def list_pending_approvals(container: ServiceContainer = Depends(get_container)):
    pending = [q for q in container.quotes.list_all() if q.status == QuoteStatus.PENDING_APPROVAL]
    return [QuoteResponse.from_domain(q) for q in pending]


@router.post(
    "/approvals/{quote_id}/decision",
    response_model=OperationResponse,
    summary="Decide Exception",
    description="Grant or reject a pending installment exception. The quote's agent is notified."
)
def decide_exception(
    quote_id: str,
    request: ApprovalDecisionRequest,
    container: ServiceContainer = Depends(get_container),
):
    actor = request.actor or CREDIT_CONTROL_ACTOR
    return operation_response(container.lifecycle.process_approval(quote_id, request.approved, actor))


@router.get("/notifications", response_model=List[NotificationResponse], summary="Recent Notifications")
def list_notifications(
    recipient_id: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    container: ServiceContainer = Depends(get_container),
):
    try:
        notifications = container.inbox.list_recent(limit=limit, recipient_id=recipient_id)
    except StoreUnavailableError as e:
        raise store_unavailable(e)
    return [NotificationResponse.from_domain(n) for n in notifications]


@router.post("/notifications/{notification_id}/read", summary="Mark Notification Read")
def mark_notification_read(notification_id: str, container: ServiceContainer = Depends(get_container)):
    try:
        found = container.inbox.mark_read(notification_id)
    except StoreUnavailableError as e:
        raise store_unavailable(e)
    if not found:
        raise HTTPException(status_code=404, detail=f"Notification not found: {notification_id}")
    return {"id": notification_id, "read": True}
