"""
Renewals API Endpoints.

Expiring policy dashboard, metrics, manual reminders and an on-demand
scanner run.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import ServiceContainer, get_container
from api.errors import store_unavailable
from api.models import (
    ExpiringPolicyResponse,
    ReminderResponse,
    RenewalMetricsResponse,
    RenewalPolicyResponse,
    RenewalRunResponse,
)
from repositories.errors import StoreUnavailableError
from services.renewal_service import ALL_REMINDERS_SENT

router = APIRouter()


@router.get(
    "/renewals/expiring",
    response_model=List[ExpiringPolicyResponse],
    summary="Expiring Policies",
    description="Policies expiring within `days_ahead` days, soonest first."
)
def list_expiring(
    days_ahead: int = Query(90, ge=1, le=365),
    container: ServiceContainer = Depends(get_container),
):
    try:
        expiring = container.renewal_scanner.list_expiring(days_ahead)
    except StoreUnavailableError as e:
        raise store_unavailable(e)
    return [
        ExpiringPolicyResponse(
            policy=RenewalPolicyResponse.from_domain(e.policy),
            days_until_expiry=e.days_until_expiry,
            status=e.status.value,
        )
        for e in expiring
    ]


@router.get("/renewals/metrics", response_model=RenewalMetricsResponse, summary="Renewal Metrics")
def get_metrics(container: ServiceContainer = Depends(get_container)):
    try:
        metrics = container.renewal_scanner.get_metrics()
    except StoreUnavailableError as e:
        raise store_unavailable(e)
    return RenewalMetricsResponse(
        total_expiring=metrics.total_expiring,
        expiring_30_days=metrics.expiring_30_days,
        expiring_15_days=metrics.expiring_15_days,
        expiring_7_days=metrics.expiring_7_days,
        reminders_sent_today=metrics.reminders_sent_today,
        reminders_scheduled=metrics.reminders_scheduled,
        auto_assigned_to_pool=metrics.auto_assigned_to_pool,
        renewal_rate=metrics.renewal_rate,
        total_value=metrics.total_value,
    )


@router.post(
    "/renewals/{policy_id}/reminders",
    response_model=ReminderResponse,
    summary="Send Renewal Reminder",
    description="Send the next unsent renewal reminder (30-day, then 15-day) right away."
)
def send_manual_reminder(policy_id: str, container: ServiceContainer = Depends(get_container)):
    try:
        result = container.renewal_scanner.send_manual_reminder(policy_id)
    except StoreUnavailableError as e:
        raise store_unavailable(e)

    if not result.success:
        if result.policy is None:
            raise HTTPException(status_code=404, detail=result.error)
        status_code = 409 if result.error == ALL_REMINDERS_SENT else 502
        raise HTTPException(status_code=status_code, detail=result.error)

    return ReminderResponse(
        success=True,
        reminder_type=result.reminder.type.value if result.reminder else None,
        message_id=result.reminder.message_id if result.reminder else None,
        policy=RenewalPolicyResponse.from_domain(result.policy) if result.policy else None,
    )


@router.post(
    "/renewals/run",
    response_model=RenewalRunResponse,
    summary="Run Renewal Scan",
    description="Run the renewal scanner once: due reminders and pool hand-off for expired policies."
)
def run_scan(container: ServiceContainer = Depends(get_container)):
    summary = container.renewal_scanner.run()
    return RenewalRunResponse(
        processed=summary.processed,
        reminders_sent=summary.reminders_sent,
        assigned_to_pool=summary.assigned_to_pool,
        errors=summary.errors,
    )
