"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for SLA monitoring:
- Models: SQLAlchemy ORM models
- Repositories: Ticket store and policy tables
- External: External service integrations (webhook, policy file watcher, APScheduler monitor)
"""

from slawatch.sla.infrastructure.models import TicketModel, UserModel, SlaPolicyModel
from slawatch.sla.infrastructure.repositories import (
    SQLAlchemyTicketStore,
    SQLAlchemyPolicyTable,
    StaticPolicyTable,
    seed_policies
)
from slawatch.sla.infrastructure.external import (
    PolicyFileManager,
    WebhookNotifier,
    SLAMonitor,
    MonitorState
)

__all__ = [
    "TicketModel",
    "UserModel",
    "SlaPolicyModel",
    "SQLAlchemyTicketStore",
    "SQLAlchemyPolicyTable",
    "StaticPolicyTable",
    "seed_policies",
    "PolicyFileManager",
    "WebhookNotifier",
    "SLAMonitor",
    "MonitorState",
]
