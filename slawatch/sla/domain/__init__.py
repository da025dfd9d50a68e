"""
SLA Domain Layer
================

Domain layer for SLA tracking.

Contains:
- Entities: Ticket, Assignee, SlaPolicy, SLASnapshot
- Value Objects: MonitorConfig, PolicyTableConfig
- Domain Services: SLACalculator (deadline, classifier, compliance)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from slawatch.sla.domain.entities import Assignee, SlaPolicy, Ticket, SLASnapshot
from slawatch.sla.domain.value_objects import (
    SLACalculator,
    MonitorConfig,
    PolicyEntryConfig,
    PolicyTableConfig,
    DEFAULT_POLICIES,
    DEFAULT_BUFFER_FRACTION,
)

__all__ = [
    # Entities
    "Assignee",
    "SlaPolicy",
    "Ticket",
    "SLASnapshot",
    # Value Objects & Services
    "SLACalculator",
    "MonitorConfig",
    "PolicyEntryConfig",
    "PolicyTableConfig",
    "DEFAULT_POLICIES",
    "DEFAULT_BUFFER_FRACTION",
]
