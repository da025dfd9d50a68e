"""
SLA Application DTOs
=====================

Data Transfer Objects for the SLA API layer.

These Pydantic models handle serialization for API responses. Following
YAGNI - only what's needed.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


# ========== Type Aliases for Literals ==========
PriorityStr = Literal["low", "medium", "high", "critical", "emergency"]
CategoryStr = Literal["incident", "access", "new_resource", "change", "alert"]
TicketStatusStr = Literal["new", "triaged", "assigned", "in_progress", "resolved", "closed"]
BreachStateStr = Literal["on_track", "imminent", "breached"]


class TicketSLAResponse(BaseModel):
    """SLA view of a single ticket."""
    ticket_id: int = Field(..., description="Ticket ID")
    title: str
    priority: PriorityStr
    category: CategoryStr
    status: TicketStatusStr
    assignee: str = Field(..., description="Assignee name or 'Unassigned'")
    created_at: datetime
    sla_target_date: Optional[datetime] = Field(None, description="Resolution deadline (None when untracked)")
    state: BreachStateStr = Field(..., description="Current SLA state")
    is_sla_breach: bool
    is_imminent: bool
    remaining_minutes: Optional[int] = Field(None, description="Minutes to target, negative when overdue")
    countdown: Optional[str] = Field(None, description="e.g. '1h 5m left'")
    evaluated_at: datetime

    @classmethod
    def from_snapshot(cls, snapshot) -> "TicketSLAResponse":
        return cls(**snapshot.to_dict())


class ImminentTicketsResponse(BaseModel):
    """Open tickets inside the imminent-breach window."""
    tickets: List[TicketSLAResponse] = Field(default_factory=list)
    total_count: int


class ComplianceResponse(BaseModel):
    """SLA compliance across all tickets with a target."""
    total_tickets: int
    tracked_tickets: int
    breached_tickets: int
    compliance_percentage: float = Field(..., description="Percentage of tracked tickets within SLA")


class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str
    checks: dict = Field(default_factory=dict)
