"""
SLA Application Services
=========================

Application services orchestrate the SLA domain logic and coordinate the
ticket store, the policy table and the notifier.

Following SOLID principles:
- Single Responsibility: deadline calculation and the monitor pass are separate services
- Dependency Inversion: depend on abstractions (store/table/notifier), not concrete implementations
"""

import logging
from abc import ABC, abstractmethod
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncContextManager, Callable, Dict, Iterable, List, Optional

from slawatch.config import BreachState, BREACH_SEVERITY
from slawatch.core import ResourceNotFoundException
from slawatch.shared.infrastructure.logging import get_logger
from slawatch.sla.domain import (
    Ticket, SlaPolicy, SLASnapshot,
    SLACalculator, MonitorConfig, DEFAULT_BUFFER_FRACTION
)

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ========== Interfaces (Dependency Inversion) ==========

class ITicketStore(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def list_open_tickets(self) -> List[Ticket]:
        """All tickets whose status is neither resolved nor closed."""

    @abstractmethod
    async def list_tickets(self) -> List[Ticket]:
        """All tickets, open or not."""

    @abstractmethod
    async def get_ticket(self, ticket_id: int) -> Optional[Ticket]:
        """Get ticket by id."""

    @abstractmethod
    async def save_ticket(self, ticket: Ticket) -> None:
        """
        Persist the ticket's SLA fields.

        Raises:
            ResourceNotFoundException: the ticket was deleted meanwhile
        """

    def savepoint(self) -> AsyncContextManager:
        """Scope for one ticket's writes; a failure rolls back only that scope."""
        return nullcontext()

    async def commit(self) -> None:
        """Make the writes so far durable."""


class IPolicyTable(ABC):
    """Interface for SLA policy lookup."""

    @abstractmethod
    async def find_active_policy(self, priority: str, category: str) -> Optional[SlaPolicy]:
        """First active policy for the key in natural store order, or None."""


class INotifier(ABC):
    """Interface for outbound SLA notifications."""

    @abstractmethod
    async def notify(self, tickets: List[Ticket], imminent: bool = True) -> bool:
        """Send one batched message. Returns True when delivered."""


# ========== Application Services ==========

class SLAService:
    """
    Deadline calculation and SLA read models.

    Depends only on ticket/policy data and an injected clock.
    """

    def __init__(
        self,
        ticket_store: ITicketStore,
        policy_table: IPolicyTable,
        buffer_fraction: float = DEFAULT_BUFFER_FRACTION,
        clock: Optional[Clock] = None
    ):
        self._ticket_store = ticket_store
        self._policy_table = policy_table
        self._buffer_fraction = buffer_fraction
        self._clock = clock or utc_now

    async def compute_target(
        self,
        ticket: Ticket,
        now: Optional[datetime] = None
    ) -> Optional[datetime]:
        """
        Calculate and persist the ticket's SLA target date.

        Must run when a ticket is created and whenever its priority or
        category changes. The target is always measured from the ticket's
        creation time. A resolved or closed ticket keeps the breach flag it
        was closed with. Nothing is written when neither field changed.

        Returns:
            The target, or None when no active policy covers the ticket
        """
        now = now or self._clock()
        before = (ticket.sla_target_date, ticket.is_sla_breach)
        policy = await self._policy_table.find_active_policy(ticket.priority, ticket.category)

        if policy is None:
            logger.info(
                "No active SLA policy, ticket is not SLA tracked",
                extra={
                    "ticket_id": ticket.id,
                    "priority": ticket.priority,
                    "category": ticket.category,
                }
            )
            ticket.sla_target_date = None
            if ticket.is_open:
                ticket.is_sla_breach = False
        else:
            ticket.sla_target_date = SLACalculator.calculate_deadline(
                ticket.created_at, policy.resolution_time_minutes
            )
            if ticket.is_open:
                self.refresh_breach_flag(ticket, now)
            logger.debug(
                "Calculated SLA target date",
                extra={
                    "ticket_id": ticket.id,
                    "sla_target_date": ticket.sla_target_date.isoformat(),
                }
            )

        if (ticket.sla_target_date, ticket.is_sla_breach) != before:
            await self._ticket_store.save_ticket(ticket)
        return ticket.sla_target_date

    def refresh_breach_flag(self, ticket: Ticket, now: datetime) -> BreachState:
        """Re-derive ``is_sla_breach`` from the target and the clock."""
        state = SLACalculator.classify_ticket(ticket, now, self._buffer_fraction)
        was_breached = ticket.is_sla_breach
        ticket.is_sla_breach = state == BreachState.BREACHED

        if ticket.is_sla_breach and not was_breached:
            logger.warning(
                "SLA breach detected",
                extra={
                    "ticket_id": ticket.id,
                    "sla_target_date": ticket.sla_target_date.isoformat(),
                    "evaluated_at": now.isoformat(),
                }
            )
        return state

    async def recalculate(self, ticket_id: int) -> SLASnapshot:
        """
        Recompute the target for a stored ticket.

        Raises:
            ResourceNotFoundException: unknown ticket
        """
        ticket = await self._ticket_store.get_ticket(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)

        now = self._clock()
        await self.compute_target(ticket, now)
        return self.snapshot(ticket, now)

    def snapshot(self, ticket: Ticket, now: Optional[datetime] = None) -> SLASnapshot:
        """Derive the current SLA view of a ticket without persisting anything."""
        now = now or self._clock()
        if ticket.is_open:
            state = SLACalculator.classify_ticket(ticket, now, self._buffer_fraction)
        else:
            # Closed tickets keep whatever breach flag they were closed with
            state = BreachState.BREACHED if ticket.is_sla_breach else BreachState.ON_TRACK

        return SLASnapshot(
            ticket=ticket,
            state=state,
            evaluated_at=now,
            remaining_minutes=SLACalculator.remaining_minutes(ticket.sla_target_date, now),
        )

    async def get_snapshot(self, ticket_id: int) -> Optional[SLASnapshot]:
        ticket = await self._ticket_store.get_ticket(ticket_id)
        if ticket is None:
            return None
        return self.snapshot(ticket)

    async def list_imminent(self) -> List[SLASnapshot]:
        """Snapshots of open tickets currently in the imminent-breach window."""
        now = self._clock()
        tickets = await self._ticket_store.list_open_tickets()
        snapshots = [self.snapshot(ticket, now) for ticket in tickets]
        return [s for s in snapshots if s.is_imminent]

    async def compliance(self) -> dict:
        tickets = await self._ticket_store.list_tickets()
        tracked = [t for t in tickets if t.sla_target_date is not None]
        return {
            "total_tickets": len(tickets),
            "tracked_tickets": len(tracked),
            "breached_tickets": len([t for t in tracked if t.is_sla_breach]),
            "compliance_percentage": SLACalculator.calculate_compliance(tracked),
        }


class NotificationLedger:
    """
    Remembers the highest severity each ticket has been notified at.

    Only consulted when notification de-duplication is enabled. Kept in
    memory for the lifetime of the monitor.
    """

    def __init__(self):
        self._notified: Dict[int, str] = {}

    def __len__(self) -> int:
        return len(self._notified)

    def __contains__(self, ticket_id: int) -> bool:
        return ticket_id in self._notified

    def pending(self, tickets: Iterable[Ticket], state: BreachState) -> List[Ticket]:
        """Tickets not yet notified at ``state`` or a more severe one."""
        severity = BREACH_SEVERITY[state]
        return [
            t for t in tickets
            if BREACH_SEVERITY.get(self._notified.get(t.id), -1) < severity
        ]

    def record(self, tickets: Iterable[Ticket], state: BreachState) -> None:
        for ticket in tickets:
            self._notified[ticket.id] = state

    def retain(self, ticket_ids: Iterable[int]) -> None:
        """Forget every ticket not in ``ticket_ids``, so a relapse notifies again."""
        keep = set(ticket_ids)
        for ticket_id in list(self._notified):
            if ticket_id not in keep:
                del self._notified[ticket_id]


@dataclass
class EvaluationSummary:
    """Outcome of a single monitor pass."""
    evaluated_at: datetime
    open_tickets: int = 0
    evaluated: int = 0
    backfilled: int = 0
    on_track: int = 0
    imminent_ids: List[int] = field(default_factory=list)
    breached_ids: List[int] = field(default_factory=list)
    newly_breached_ids: List[int] = field(default_factory=list)
    failed_ids: List[int] = field(default_factory=list)
    notifications_sent: int = 0
    interrupted: bool = False

    def to_dict(self) -> dict:
        return {
            "evaluated_at": self.evaluated_at.isoformat(),
            "open_tickets": self.open_tickets,
            "evaluated": self.evaluated,
            "backfilled": self.backfilled,
            "on_track": self.on_track,
            "imminent": len(self.imminent_ids),
            "breached": len(self.breached_ids),
            "newly_breached": len(self.newly_breached_ids),
            "failed": len(self.failed_ids),
            "notifications_sent": self.notifications_sent,
            "interrupted": self.interrupted,
        }


class SLAEvaluationService:
    """
    Runs one scanning pass of the breach monitor.

    1. Fetches all open tickets
    2. Backfills missing targets
    3. Classifies every ticket against one captured "now"
    4. Persists changed breach flags, each ticket inside its own savepoint
    5. Commits, then notifies about imminent (and optionally newly breached) tickets

    A failure on one ticket is logged and skipped; it never aborts the pass.
    """

    def __init__(
        self,
        ticket_store: ITicketStore,
        policy_table: IPolicyTable,
        notifier: INotifier,
        config: MonitorConfig,
        ledger: Optional[NotificationLedger] = None,
        clock: Optional[Clock] = None,
        pass_logger: Optional[logging.Logger] = None
    ):
        self._ticket_store = ticket_store
        self._notifier = notifier
        self._config = config
        self._ledger = ledger if ledger is not None else NotificationLedger()
        self._clock = clock or utc_now
        self._logger = pass_logger or logger
        self._sla_service = SLAService(
            ticket_store,
            policy_table,
            buffer_fraction=config.imminent_buffer_fraction,
            clock=self._clock
        )

    async def evaluate_open_tickets(
        self,
        should_continue: Optional[Callable[[], bool]] = None
    ) -> EvaluationSummary:
        """
        Evaluate every open ticket once.

        Args:
            should_continue: Checked before each ticket; returning False
                ends the pass early (cooperative cancellation)

        Returns:
            EvaluationSummary for the pass
        """
        now = self._clock()
        summary = EvaluationSummary(evaluated_at=now)

        tickets = await self._ticket_store.list_open_tickets()
        summary.open_tickets = len(tickets)

        imminent: List[Ticket] = []
        newly_breached: List[Ticket] = []

        for ticket in tickets:
            if should_continue is not None and not should_continue():
                self._logger.info(
                    "Stop requested, ending SLA pass early",
                    extra={"remaining_tickets": summary.open_tickets - summary.evaluated - len(summary.failed_ids)}
                )
                summary.interrupted = True
                break

            if not ticket.is_open:
                continue

            try:
                async with self._ticket_store.savepoint():
                    state, flipped = await self._evaluate_ticket(ticket, now, summary)
            except ResourceNotFoundException:
                self._logger.info(
                    "Ticket no longer exists, skipping",
                    extra={"ticket_id": ticket.id}
                )
                summary.failed_ids.append(ticket.id)
                continue
            except Exception as e:
                self._logger.error(
                    f"Failed to evaluate SLA for ticket {ticket.id}: {e}",
                    extra={"ticket_id": ticket.id, "error_type": type(e).__name__},
                    exc_info=True
                )
                summary.failed_ids.append(ticket.id)
                continue

            summary.evaluated += 1
            if state == BreachState.IMMINENT:
                imminent.append(ticket)
                summary.imminent_ids.append(ticket.id)
            elif state == BreachState.BREACHED:
                summary.breached_ids.append(ticket.id)
                if flipped:
                    newly_breached.append(ticket)
                    summary.newly_breached_ids.append(ticket.id)
            else:
                summary.on_track += 1

        # Flags are durable before any webhook call
        await self._ticket_store.commit()

        if self._config.dedupe_notifications and not summary.interrupted:
            self._ledger.retain(
                summary.imminent_ids + summary.breached_ids + summary.failed_ids
            )

        await self._dispatch(imminent, BreachState.IMMINENT, summary)
        if self._config.notify_breached:
            await self._dispatch(newly_breached, BreachState.BREACHED, summary)

        return summary

    async def _evaluate_ticket(
        self,
        ticket: Ticket,
        now: datetime,
        summary: EvaluationSummary
    ) -> tuple[str, bool]:
        """Returns the ticket's state and whether it breached during this pass."""
        was_breached = ticket.is_sla_breach

        if not ticket.has_target:
            await self._sla_service.compute_target(ticket, now)
            if ticket.has_target:
                summary.backfilled += 1

        state = SLACalculator.classify_ticket(ticket, now, self._config.imminent_buffer_fraction)
        is_breach = state == BreachState.BREACHED
        if ticket.is_sla_breach != is_breach:
            self._sla_service.refresh_breach_flag(ticket, now)
            await self._ticket_store.save_ticket(ticket)

        return state, is_breach and not was_breached

    async def _dispatch(
        self,
        tickets: List[Ticket],
        state: BreachState,
        summary: EvaluationSummary
    ) -> None:
        if not tickets:
            return

        if self._config.dedupe_notifications:
            tickets = self._ledger.pending(tickets, state)
            if not tickets:
                self._logger.debug("All at-risk tickets already notified", extra={"state": state})
                return

        self._logger.info(
            f"Found {len(tickets)} tickets to notify",
            extra={"state": state, "ticket_ids": [t.id for t in tickets]}
        )

        try:
            delivered = await self._notifier.notify(tickets, imminent=state == BreachState.IMMINENT)
        except Exception as e:
            self._logger.error(
                f"Notification dispatch failed: {e}",
                extra={"state": state, "error_type": type(e).__name__},
                exc_info=True
            )
            return

        if delivered:
            summary.notifications_sent += 1
            if self._config.dedupe_notifications:
                self._ledger.record(tickets, state)
