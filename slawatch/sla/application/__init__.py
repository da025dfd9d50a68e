"""
SLA Application Layer
======================

Application layer for SLA tracking.

Contains:
- Services: deadline calculation and the monitor pass
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and store/notifier interfaces,
but not on concrete infrastructure implementations.
"""

from slawatch.sla.application.dto import (
    TicketSLAResponse,
    ImminentTicketsResponse,
    ComplianceResponse,
    HealthResponse,
)
from slawatch.sla.application.services import (
    SLAService,
    SLAEvaluationService,
    EvaluationSummary,
    NotificationLedger,
    ITicketStore,
    IPolicyTable,
    INotifier,
    utc_now,
)

__all__ = [
    # DTOs
    "TicketSLAResponse",
    "ImminentTicketsResponse",
    "ComplianceResponse",
    "HealthResponse",
    # Services
    "SLAService",
    "SLAEvaluationService",
    "EvaluationSummary",
    "NotificationLedger",
    "utc_now",
    # Interfaces
    "ITicketStore",
    "IPolicyTable",
    "INotifier",
]
