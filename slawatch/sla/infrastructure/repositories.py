"""
SLA Infrastructure Repositories
=================================

Concrete implementations of the ticket store and policy table interfaces.

This layer contains the data access logic - how tickets and policies are
read from the database (or a policy file) and how SLA fields are written
back.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from slawatch.config import CLOSED_STATUSES
from slawatch.core import ResourceNotFoundException
from slawatch.shared.infrastructure.logging import get_logger
from slawatch.sla.application import ITicketStore, IPolicyTable
from slawatch.sla.domain import Assignee, SlaPolicy, Ticket
from slawatch.sla.infrastructure.models import TicketModel, SlaPolicyModel

logger = get_logger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Some drivers hand back naive datetimes; stored values are always UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _pick_first(policies: List[SlaPolicy], priority: str, category: str) -> Optional[SlaPolicy]:
    if not policies:
        return None
    if len(policies) > 1:
        logger.warning(
            "Multiple active SLA policies for one key, using the first",
            extra={
                "priority": priority,
                "category": category,
                "policy_ids": [p.id for p in policies],
            }
        )
    return policies[0]


class SQLAlchemyTicketStore(ITicketStore):
    """
    SQLAlchemy implementation of the ticket store.

    Reads tickets with their assignee and writes back only the SLA columns,
    so concurrent edits of other fields are never overwritten.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_domain(model: TicketModel) -> Ticket:
        assignee = None
        if model.assigned_to is not None:
            assignee = Assignee(
                id=model.assigned_to.id,
                first_name=model.assigned_to.first_name,
                last_name=model.assigned_to.last_name
            )

        return Ticket(
            id=model.id,
            title=model.title,
            priority=model.priority,
            category=model.category,
            status=model.status,
            created_at=_as_utc(model.created_at),
            updated_at=_as_utc(model.updated_at),
            resolved_at=_as_utc(model.resolved_at),
            sla_target_date=_as_utc(model.sla_target_date),
            is_sla_breach=model.is_sla_breach,
            assigned_to=assignee
        )

    def _base_query(self):
        return select(TicketModel).options(selectinload(TicketModel.assigned_to))

    async def list_open_tickets(self) -> List[Ticket]:
        stmt = (
            self._base_query()
            .where(TicketModel.status.not_in(CLOSED_STATUSES))
            .order_by(TicketModel.id)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    async def list_tickets(self) -> List[Ticket]:
        result = await self._session.execute(self._base_query().order_by(TicketModel.id))
        return [self._to_domain(model) for model in result.scalars().all()]

    async def get_ticket(self, ticket_id: int) -> Optional[Ticket]:
        stmt = self._base_query().where(TicketModel.id == ticket_id)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def save_ticket(self, ticket: Ticket) -> None:
        stmt = (
            update(TicketModel)
            .where(TicketModel.id == ticket.id)
            .values(
                sla_target_date=ticket.sla_target_date,
                is_sla_breach=ticket.is_sla_breach
            )
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            # Deleted by another writer since it was read
            raise ResourceNotFoundException("Ticket", ticket.id)

    def savepoint(self):
        # SAVEPOINT keeps the outer transaction usable after a failed UPDATE
        return self._session.begin_nested()

    async def commit(self) -> None:
        await self._session.commit()


class SQLAlchemyPolicyTable(IPolicyTable):
    """Policy lookup over the 'sla_configurations' table, ordered by id."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def find_active_policy(self, priority: str, category: str) -> Optional[SlaPolicy]:
        stmt = (
            select(SlaPolicyModel)
            .where(
                SlaPolicyModel.priority == priority,
                SlaPolicyModel.category == category,
                SlaPolicyModel.is_active.is_(True)
            )
            .order_by(SlaPolicyModel.id)
        )
        result = await self._session.execute(stmt)
        policies = [
            SlaPolicy(
                id=model.id,
                priority=model.priority,
                category=model.category,
                response_time_minutes=model.response_time_minutes,
                resolution_time_minutes=model.resolution_time_minutes,
                is_active=model.is_active
            )
            for model in result.scalars().all()
        ]
        return _pick_first(policies, priority, category)


class StaticPolicyTable(IPolicyTable):
    """In-memory policy table; lookup order is list order."""

    def __init__(self, policies: Iterable[SlaPolicy]):
        self._policies = list(policies)

    @property
    def policies(self) -> List[SlaPolicy]:
        return list(self._policies)

    async def find_active_policy(self, priority: str, category: str) -> Optional[SlaPolicy]:
        matches = [
            p for p in self._policies
            if p.is_active and p.priority == priority and p.category == category
        ]
        return _pick_first(matches, priority, category)


async def seed_policies(session: AsyncSession, policies: Iterable[SlaPolicy]) -> int:
    """
    Insert the given policies when the policy table is empty.

    Returns:
        Number of policies inserted
    """
    existing = await session.scalar(select(func.count()).select_from(SlaPolicyModel))
    if existing:
        return 0

    inserted = 0
    for policy in policies:
        session.add(SlaPolicyModel(
            priority=policy.priority,
            category=policy.category,
            response_time_minutes=policy.response_time_minutes,
            resolution_time_minutes=policy.resolution_time_minutes,
            is_active=policy.is_active
        ))
        inserted += 1

    await session.flush()
    logger.info("Seeded SLA policy table", extra={"policies": inserted})
    return inserted
