"""
SLA Domain Entities
====================

Pure Python domain entities for SLA tracking.

These entities carry the subset of ticket and policy data the SLA engine
needs. They are free of infrastructure concerns; the ticket store maps its
rows onto them.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from slawatch.config import (
    Priority, Category, TicketStatus, BreachState, CLOSED_STATUSES
)


@dataclass
class Assignee:
    """User a ticket is assigned to."""
    id: int
    first_name: str
    last_name: str

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class SlaPolicy:
    """
    Resolution/response targets for one (priority, category) pair.

    Read-only from the engine's perspective; administrators manage
    policies through the ticketing application.
    """
    priority: Priority
    category: Category
    response_time_minutes: int
    resolution_time_minutes: int
    is_active: bool = True
    id: Optional[int] = None


@dataclass
class Ticket:
    """
    Ticket entity as seen by the SLA engine.

    The ticket store owns the record. The engine only computes and writes
    back ``sla_target_date`` and ``is_sla_breach``.
    """

    id: int
    title: str
    priority: Priority
    category: Category
    status: TicketStatus
    created_at: datetime

    updated_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    # SLA tracking
    sla_target_date: Optional[datetime] = None
    is_sla_breach: bool = False

    assigned_to: Optional[Assignee] = None

    @property
    def is_open(self) -> bool:
        """Resolved and closed tickets are permanently exempt from SLA tracking."""
        return self.status not in CLOSED_STATUSES

    @property
    def has_target(self) -> bool:
        return self.sla_target_date is not None

    @property
    def assignee_name(self) -> str:
        if self.assigned_to is None or not self.assigned_to.display_name:
            return "Unassigned"
        return self.assigned_to.display_name


@dataclass
class SLASnapshot:
    """
    Point-in-time SLA view of a ticket.

    Derived on demand and never stored.
    """
    ticket: Ticket
    state: BreachState
    evaluated_at: datetime
    remaining_minutes: Optional[int] = None

    @property
    def is_sla_breach(self) -> bool:
        return self.state == BreachState.BREACHED

    @property
    def is_imminent(self) -> bool:
        return self.state == BreachState.IMMINENT

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses and logs."""
        from slawatch.sla.domain.value_objects import SLACalculator

        target = self.ticket.sla_target_date
        return {
            "ticket_id": self.ticket.id,
            "title": self.ticket.title,
            "priority": self.ticket.priority,
            "category": self.ticket.category,
            "status": self.ticket.status,
            "assignee": self.ticket.assignee_name,
            "created_at": self.ticket.created_at.isoformat(),
            "sla_target_date": target.isoformat() if target else None,
            "state": self.state,
            "is_sla_breach": self.is_sla_breach,
            "is_imminent": self.is_imminent,
            "remaining_minutes": self.remaining_minutes,
            "countdown": SLACalculator.format_countdown(self.remaining_minutes),
            "evaluated_at": self.evaluated_at.isoformat(),
        }
