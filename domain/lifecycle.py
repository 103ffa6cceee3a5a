"""
Domain: Quote lifecycle state machine.

Contract excerpts implemented here:
- Every status change is an event applied through `apply_event`; the
  transition table below is the only definition of which changes are legal.
  Undefined (status, event) pairs raise InvalidTransitionError.
- Approval decisions set approval_handled_at. Invalidation clears it and
  marks approval_validity INVALIDATED.
- A prior approval no longer applies once any pricing input changes:
  vehicle value, make, model, risk_factors.age_under_24,
  risk_factors.license_under_1_year.

Pure functions only: no I/O. All timestamps must be passed explicitly.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Mapping, Tuple

from .quote import ApprovalValidity, Quote, QuoteStatus
from .time import require_utc_timestamp


class QuoteEvent(str, Enum):
    REQUEST_EXCEPTION = "REQUEST_EXCEPTION"
    GRANT_APPROVAL = "GRANT_APPROVAL"
    REJECT_APPROVAL = "REJECT_APPROVAL"
    SEND_LINK = "SEND_LINK"
    SEND_PAYMENT_LINK = "SEND_PAYMENT_LINK"
    LINK_CLICKED = "LINK_CLICKED"
    DOCS_UPLOADED = "DOCS_UPLOADED"
    PAYMENT_STARTED = "PAYMENT_STARTED"
    POLICY_ISSUED = "POLICY_ISSUED"
    INVALIDATE_APPROVAL = "INVALIDATE_APPROVAL"
    MARK_EXPIRING = "MARK_EXPIRING"


# Events driven by the customer portal rather than an agent action.
CUSTOMER_EVENTS: FrozenSet[QuoteEvent] = frozenset(
    {
        QuoteEvent.LINK_CLICKED,
        QuoteEvent.DOCS_UPLOADED,
        QuoteEvent.PAYMENT_STARTED,
        QuoteEvent.POLICY_ISSUED,
    }
)

APPROVAL_STATES: FrozenSet[QuoteStatus] = frozenset(
    {
        QuoteStatus.PENDING_APPROVAL,
        QuoteStatus.APPROVAL_GRANTED,
        QuoteStatus.APPROVAL_REJECTED,
    }
)

_S = QuoteStatus
_E = QuoteEvent

TRANSITIONS: Mapping[Tuple[QuoteStatus, QuoteEvent], QuoteStatus] = {
    (_S.DRAFT, _E.REQUEST_EXCEPTION): _S.PENDING_APPROVAL,
    (_S.PENDING_APPROVAL, _E.GRANT_APPROVAL): _S.APPROVAL_GRANTED,
    (_S.PENDING_APPROVAL, _E.REJECT_APPROVAL): _S.APPROVAL_REJECTED,
    (_S.DRAFT, _E.SEND_LINK): _S.LINK_SENT,
    (_S.APPROVAL_GRANTED, _E.SEND_LINK): _S.LINK_SENT,
    (_S.DRAFT, _E.SEND_PAYMENT_LINK): _S.PAYMENT_PENDING,
    (_S.APPROVAL_GRANTED, _E.SEND_PAYMENT_LINK): _S.PAYMENT_PENDING,
    (_S.LINK_SENT, _E.LINK_CLICKED): _S.LINK_CLICKED,
    (_S.LINK_CLICKED, _E.DOCS_UPLOADED): _S.DOCS_UPLOADED,
    (_S.DOCS_UPLOADED, _E.PAYMENT_STARTED): _S.PAYMENT_PENDING,
    (_S.PAYMENT_PENDING, _E.POLICY_ISSUED): _S.ISSUED,
    (_S.PENDING_APPROVAL, _E.INVALIDATE_APPROVAL): _S.DRAFT,
    (_S.APPROVAL_GRANTED, _E.INVALIDATE_APPROVAL): _S.DRAFT,
    (_S.APPROVAL_REJECTED, _E.INVALIDATE_APPROVAL): _S.DRAFT,
    (_S.ISSUED, _E.MARK_EXPIRING): _S.EXPIRING,
}


class InvalidTransitionError(ValueError):
    """Raised when an event is not defined for the quote's current status."""

    def __init__(self, status: QuoteStatus, event: QuoteEvent):
        self.status = status
        self.event = event
        super().__init__(f"Event {event.value} is not allowed from status {status.value}")


def next_status(status: QuoteStatus, event: QuoteEvent) -> QuoteStatus:
    try:
        return TRANSITIONS[(status, event)]
    except KeyError:
        raise InvalidTransitionError(status, event) from None


def allowed_events(status: QuoteStatus) -> Tuple[QuoteEvent, ...]:
    return tuple(event for (source, event) in TRANSITIONS if source == status)


def apply_event(quote: Quote, event: QuoteEvent, at: datetime) -> Quote:
    """
    Apply a lifecycle event and return the resulting quote.

    Raises InvalidTransitionError for pairs missing from TRANSITIONS. The
    input quote is never modified.
    """

    require_utc_timestamp("at", at)
    event = QuoteEvent(event)
    target = next_status(quote.status, event)

    if event == QuoteEvent.GRANT_APPROVAL:
        return replace(
            quote,
            status=target,
            approval_handled_at=at,
            approval_validity=ApprovalValidity.VALID,
        )
    if event == QuoteEvent.REJECT_APPROVAL:
        return replace(
            quote,
            status=target,
            approval_handled_at=at,
            approval_validity=ApprovalValidity.NONE,
        )
    if event == QuoteEvent.INVALIDATE_APPROVAL:
        return replace(
            quote,
            status=target,
            approval_handled_at=None,
            approval_validity=ApprovalValidity.INVALIDATED,
        )
    return replace(quote, status=target)


def pricing_inputs(quote: Quote) -> Dict[str, object]:
    return {
        "vehicle.value": quote.vehicle.value,
        "vehicle.make": quote.vehicle.make,
        "vehicle.model": quote.vehicle.model,
        "risk_factors.age_under_24": quote.risk_factors.age_under_24,
        "risk_factors.license_under_1_year": quote.risk_factors.license_under_1_year,
    }


def changed_pricing_inputs(old: Quote, new: Quote) -> Tuple[str, ...]:
    before = pricing_inputs(old)
    after = pricing_inputs(new)
    return tuple(name for name in before if before[name] != after[name])


def requires_approval_reset(old: Quote, new: Quote) -> bool:
    """True when `new` edits pricing inputs of a quote whose approval state is in play."""

    return old.status in APPROVAL_STATES and bool(changed_pricing_inputs(old, new))


__all__ = [
    "APPROVAL_STATES",
    "CUSTOMER_EVENTS",
    "InvalidTransitionError",
    "QuoteEvent",
    "TRANSITIONS",
    "allowed_events",
    "apply_event",
    "changed_pricing_inputs",
    "next_status",
    "pricing_inputs",
    "requires_approval_reset",
]
