"""Shared fixtures and in-memory fakes for the SLA engine tests."""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

import pytest

from slawatch.config import Priority, Category, TicketStatus
from slawatch.core import ResourceNotFoundException
from slawatch.sla.application import ITicketStore, INotifier
from slawatch.sla.domain import Assignee, MonitorConfig, PolicyTableConfig, Ticket
from slawatch.sla.infrastructure import StaticPolicyTable


T0 = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


class FixedClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float) -> None:
        self.now = self.now + timedelta(minutes=minutes)


class InMemoryTicketStore(ITicketStore):
    """Dict-backed ticket store that can be told to fail on given tickets."""

    def __init__(self, tickets: Optional[List[Ticket]] = None):
        self.tickets: Dict[int, Ticket] = {t.id: t for t in tickets or []}
        self.saved: List[int] = []
        self.fail_on: Dict[int, Exception] = {}
        self.deleted: Set[int] = set()
        self.commits = 0

    async def list_open_tickets(self) -> List[Ticket]:
        return [t for t in self.tickets.values() if t.is_open]

    async def list_tickets(self) -> List[Ticket]:
        return list(self.tickets.values())

    async def get_ticket(self, ticket_id: int) -> Optional[Ticket]:
        return self.tickets.get(ticket_id)

    async def save_ticket(self, ticket: Ticket) -> None:
        if ticket.id in self.fail_on:
            raise self.fail_on[ticket.id]
        if ticket.id in self.deleted:
            raise ResourceNotFoundException("Ticket", ticket.id)
        self.saved.append(ticket.id)

    async def commit(self) -> None:
        self.commits += 1


class RecordingNotifier(INotifier):
    """Notifier that records every batch it is handed."""

    def __init__(self, delivered: bool = True, error: Optional[Exception] = None):
        self.delivered = delivered
        self.error = error
        self.calls: List[tuple] = []

    async def notify(self, tickets, imminent: bool = True) -> bool:
        tickets = list(tickets)
        self.calls.append(([t.id for t in tickets], imminent))
        if self.error is not None:
            raise self.error
        return self.delivered


def make_ticket(
    ticket_id: int = 1,
    priority: str = Priority.CRITICAL,
    category: str = Category.INCIDENT,
    status: str = TicketStatus.IN_PROGRESS,
    created_at: datetime = T0,
    sla_target_date: Optional[datetime] = None,
    is_sla_breach: bool = False,
    resolved_at: Optional[datetime] = None,
    assigned_to: Optional[Assignee] = None,
    title: Optional[str] = None,
) -> Ticket:
    """Create a ticket with sensible defaults."""
    return Ticket(
        id=ticket_id,
        title=title or f"Ticket {ticket_id}",
        priority=priority,
        category=category,
        status=status,
        created_at=created_at,
        resolved_at=resolved_at,
        sla_target_date=sla_target_date,
        is_sla_breach=is_sla_breach,
        assigned_to=assigned_to,
    )


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def policy_table():
    """The default policy table (critical/incident resolves in 240 minutes)."""
    return StaticPolicyTable(PolicyTableConfig().to_policies())


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def monitor_config():
    return MonitorConfig(
        check_interval_minutes=15,
        recovery_interval_minutes=5,
        imminent_buffer_fraction=0.1,
        webhook_url="https://hooks.example.com/sla",
    )
