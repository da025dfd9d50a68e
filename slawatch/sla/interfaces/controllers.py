"""
SLA Controllers (API Routes)
=============================

FastAPI routes for SLA status endpoints.

Controllers are thin - they delegate to application services. Ticket
creation and editing belong to the host ticketing application, which
calls the recalculate endpoint after a create or a priority/category edit.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from slawatch.config import settings
from slawatch.core import ResourceNotFoundException
from slawatch.infrastructure.database import get_session
from slawatch.sla.application import (
    SLAService,
    ITicketStore, IPolicyTable,
    TicketSLAResponse, ImminentTicketsResponse, ComplianceResponse
)
from slawatch.sla.infrastructure import SQLAlchemyTicketStore, SQLAlchemyPolicyTable

from slawatch.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA Monitoring"])


# ========== Example payloads for Swagger ==========

TICKET_SLA_RESPONSE_EXAMPLE = {
    "ticket_id": 42,
    "title": "VPN gateway down in Frankfurt",
    "priority": "critical",
    "category": "incident",
    "status": "in_progress",
    "assignee": "Ada Lovelace",
    "created_at": "2024-01-15T10:00:00Z",
    "sla_target_date": "2024-01-15T14:00:00Z",
    "state": "imminent",
    "is_sla_breach": False,
    "is_imminent": True,
    "remaining_minutes": 20,
    "countdown": "20m left",
    "evaluated_at": "2024-01-15T13:40:00Z"
}

COMPLIANCE_RESPONSE_EXAMPLE = {
    "total_tickets": 120,
    "tracked_tickets": 100,
    "breached_tickets": 7,
    "compliance_percentage": 93.0
}


# ========== Dependencies ==========

async def get_ticket_store(
    session: AsyncSession = Depends(get_session)
) -> ITicketStore:
    """Get ticket store bound to the request session."""
    return SQLAlchemyTicketStore(session)


async def get_policy_table(
    request: Request,
    session: AsyncSession = Depends(get_session)
) -> IPolicyTable:
    """
    Get the policy table.

    The file-backed table is loaded once at startup and kept on app state;
    otherwise policies are read from the database.
    """
    policy_table = getattr(request.app.state, "policy_table", None)
    if policy_table is not None:
        return policy_table
    return SQLAlchemyPolicyTable(session)


async def get_sla_service(
    ticket_store: ITicketStore = Depends(get_ticket_store),
    policy_table: IPolicyTable = Depends(get_policy_table)
) -> SLAService:
    """Get SLA service instance."""
    return SLAService(
        ticket_store,
        policy_table,
        buffer_fraction=settings.sla_imminent_buffer_fraction
    )


# ========== Route Handlers ==========

@router.get(
    "/tickets/{ticket_id}",
    response_model=TicketSLAResponse,
    summary="Get ticket SLA status",
    description="""
    Get the current SLA view of a single ticket.

    The state is derived on read from the stored target and the clock:
    `on_track`, `imminent` (at most 10% of the window left by default) or
    `breached`. Tickets with no matching policy have no target and are
    always `on_track`.
    """,
    responses={
        200: {
            "description": "Ticket SLA information",
            "content": {"application/json": {"example": TICKET_SLA_RESPONSE_EXAMPLE}}
        },
        404: {"description": "Ticket not found"}
    }
)
async def get_ticket_sla(
    ticket_id: int,
    sla_service: SLAService = Depends(get_sla_service)
):
    snapshot = await sla_service.get_snapshot(ticket_id)
    if snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Ticket {ticket_id} not found"
        )
    return TicketSLAResponse.from_snapshot(snapshot)


@router.post(
    "/tickets/{ticket_id}/recalculate",
    response_model=TicketSLAResponse,
    summary="Recalculate ticket SLA target",
    description="""
    Recompute and persist the SLA target of a ticket.

    Call after a ticket is created and whenever its priority or category
    changes. The target is always measured from the ticket's creation time;
    with no active policy the target is cleared.
    """,
    responses={404: {"description": "Ticket not found"}}
)
async def recalculate_ticket_sla(
    ticket_id: int,
    sla_service: SLAService = Depends(get_sla_service)
):
    try:
        snapshot = await sla_service.recalculate(ticket_id)
    except ResourceNotFoundException:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Ticket {ticket_id} not found"
        )

    logger.info(
        "SLA target recalculated",
        extra={
            "ticket_id": ticket_id,
            "sla_target_date": snapshot.ticket.sla_target_date.isoformat()
            if snapshot.ticket.sla_target_date else None,
            "state": snapshot.state,
        }
    )
    return TicketSLAResponse.from_snapshot(snapshot)


@router.get(
    "/imminent",
    response_model=ImminentTicketsResponse,
    summary="List tickets close to breaching",
    description="Open tickets currently inside the imminent-breach window."
)
async def list_imminent_tickets(
    sla_service: SLAService = Depends(get_sla_service)
):
    snapshots = await sla_service.list_imminent()
    return ImminentTicketsResponse(
        tickets=[TicketSLAResponse.from_snapshot(s) for s in snapshots],
        total_count=len(snapshots)
    )


@router.get(
    "/compliance",
    response_model=ComplianceResponse,
    summary="Get SLA compliance",
    description="""
    Percentage of SLA-tracked tickets that were not breached and are either
    unresolved or were resolved on or before their target. Returns 0 when
    no ticket is tracked.
    """,
    responses={
        200: {"content": {"application/json": {"example": COMPLIANCE_RESPONSE_EXAMPLE}}}
    }
)
async def get_compliance(
    sla_service: SLAService = Depends(get_sla_service)
):
    return ComplianceResponse(**await sla_service.compliance())


# Export router
sla_router = router
