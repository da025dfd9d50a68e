"""
SLA Services
============

Wiring for the background monitor pass.

The evaluator binds the per-pass database session to the stores and runs
one SLAEvaluationService pass with a correlation-id logger, so each pass
reads and writes inside its own session scope. The store commits the pass
before notifications go out.
"""

from typing import Callable, Optional
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from slawatch.shared.infrastructure.logging import get_context_logger, log_latency
from slawatch.sla.application import (
    SLAEvaluationService, EvaluationSummary, NotificationLedger,
    INotifier, IPolicyTable
)
from slawatch.sla.application.services import Clock
from slawatch.sla.domain import MonitorConfig
from slawatch.sla.infrastructure.repositories import (
    SQLAlchemyTicketStore, SQLAlchemyPolicyTable
)


class SLAEvaluator:
    """
    Runs a monitor pass against a database session.

    Holds what outlives a single pass (notifier, config, ledger, policy
    source) and builds the session-bound stores for each pass.
    """

    def __init__(
        self,
        notifier: INotifier,
        config: MonitorConfig,
        policy_table: Optional[IPolicyTable] = None,
        ledger: Optional[NotificationLedger] = None,
        clock: Optional[Clock] = None
    ):
        self._notifier = notifier
        self._config = config
        # None means "read policies from the same session as the tickets"
        self._policy_table = policy_table
        self._ledger = ledger if ledger is not None else NotificationLedger()
        self._clock = clock

    @property
    def ledger(self) -> NotificationLedger:
        return self._ledger

    async def evaluate(
        self,
        session: AsyncSession,
        should_continue: Optional[Callable[[], bool]] = None
    ) -> EvaluationSummary:
        """
        Evaluate all open tickets and send notifications.

        Args:
            session: Database session for this pass
            should_continue: Cooperative stop check, see SLAEvaluationService

        Returns:
            Summary of the pass
        """
        pass_logger = get_context_logger(__name__, correlation_id=str(uuid4()))
        policy_table = self._policy_table or SQLAlchemyPolicyTable(session)

        service = SLAEvaluationService(
            ticket_store=SQLAlchemyTicketStore(session),
            policy_table=policy_table,
            notifier=self._notifier,
            config=self._config,
            ledger=self._ledger,
            clock=self._clock,
            pass_logger=pass_logger
        )

        with log_latency(pass_logger, "sla_pass"):
            summary = await service.evaluate_open_tickets(should_continue=should_continue)

        pass_logger.info("SLA pass summary", extra=summary.to_dict())
        return summary
