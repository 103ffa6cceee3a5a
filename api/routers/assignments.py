"""
Assignments API Endpoints.

Pool distribution by supervisors and the agent actions on assigned quotes:
claim, reject, complete, notes, and the agent's CSV export.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response

from api.dependencies import ServiceContainer, get_container
from api.models import (
    AgentActionRequest,
    AssignRequest,
    BatchAssignmentResponse,
    NoteRequest,
    OperationResponse,
    QuoteResponse,
    RejectRequest,
)
from api.routers.quotes import operation_response
from services.assignment_service import AssignmentTemplate
from services.csv_export_service import SecurityError

router = APIRouter()


@router.post(
    "/assignments",
    response_model=BatchAssignmentResponse,
    summary="Assign Quotes",
    description="Assign quotes to an agent. Each quote is processed on its own; the response lists every outcome."
)
def assign_quotes(request: AssignRequest, container: ServiceContainer = Depends(get_container)):
    """
    Batch-assign quotes.

    **Re-assignment rules:**
    - Unassigned, rejected or completed quotes get a new assignment
    - Quotes already actively assigned to the same agent are left unchanged
    - Quotes ASSIGNED to another agent are reassigned
    - CLAIMED quotes are refused
    """
    template = AssignmentTemplate(
        assigned_to_agent_id=request.assigned_to_agent_id,
        assigned_to_agent_name=request.assigned_to_agent_name,
        assigned_by_agent_id=request.assigned_by_agent_id,
        assigned_by_agent_name=request.assigned_by_agent_name,
    )
    result = container.assignments.assign_many(request.quote_ids, template)
    return BatchAssignmentResponse(
        success=result.success,
        assigned=result.assigned,
        unchanged=result.unchanged,
        failures={quote_id: kind.value for quote_id, kind in result.failures.items()},
        messages=result.messages,
        warnings=result.warnings,
    )


@router.get("/pool", response_model=List[QuoteResponse], summary="Agent Pool")
def list_pool(
    agent_id: Optional[str] = None,
    include_closed: bool = False,
    container: ServiceContainer = Depends(get_container),
):
    """Assigned quotes, most urgent first, then longest waiting."""
    quotes = container.assignments.list_pool(agent_id, include_closed=include_closed)
    return [QuoteResponse.from_domain(q) for q in quotes]


@router.get("/pool/unassigned", response_model=List[QuoteResponse], summary="Unassigned Quotes")
def list_unassigned(container: ServiceContainer = Depends(get_container)):
    return [QuoteResponse.from_domain(q) for q in container.assignments.list_unassigned()]


@router.post("/pool/{quote_id}/claim", response_model=OperationResponse, summary="Claim Quote")
def claim_quote(quote_id: str, request: AgentActionRequest, container: ServiceContainer = Depends(get_container)):
    """Claim an ASSIGNED quote. If two agents race, one gets 409."""
    return operation_response(container.assignments.claim(quote_id, request.agent_id, request.agent_name))


@router.post("/pool/claim-next", response_model=OperationResponse, summary="Claim Next Quote")
def claim_next(request: AgentActionRequest, container: ServiceContainer = Depends(get_container)):
    return operation_response(container.assignments.claim_next(request.agent_id, request.agent_name))


@router.post("/pool/{quote_id}/reject", response_model=OperationResponse, summary="Reject Quote")
def reject_quote(quote_id: str, request: RejectRequest, container: ServiceContainer = Depends(get_container)):
    return operation_response(
        container.assignments.reject(quote_id, request.agent_id, request.agent_name, request.reason, request.note)
    )


@router.post("/pool/{quote_id}/complete", response_model=OperationResponse, summary="Complete Quote")
def complete_quote(quote_id: str, request: AgentActionRequest, container: ServiceContainer = Depends(get_container)):
    """Complete the assignment. Returns 409 until the policy is issued."""
    return operation_response(
        container.assignments.mark_completed(quote_id, request.agent_id, request.agent_name)
    )


@router.post("/pool/{quote_id}/notes", response_model=OperationResponse, summary="Add Note")
def add_note(quote_id: str, request: NoteRequest, container: ServiceContainer = Depends(get_container)):
    return operation_response(
        container.assignments.add_note(
            quote_id,
            request.text,
            request.author_id,
            request.author_name,
            request.reminder_date,
        )
    )


@router.get(
    "/pool/export",
    summary="Export Pool CSV",
    response_class=Response
)
def export_pool(agent_id: Optional[str] = None, container: ServiceContainer = Depends(get_container)):
    """
    Download the pool as CSV.

    **Security:**
    - With `agent_id`, only that agent's quotes are exported
    - CSV injection prevention (dangerous leading characters stripped)
    """
    try:
        csv_content = container.assignments.export_pool(agent_id)
    except SecurityError as e:
        raise HTTPException(status_code=403, detail=f"Not authorized to export these quotes: {str(e)}")

    filename = f"pool_{agent_id}.csv" if agent_id else "pool.csv"
    return Response(
        content=csv_content,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )
