"""
SLA Value Objects
==================

Pure SLA calculations and the immutable configuration objects the engine
is built from.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from slawatch.config import (
    BreachState, Priority, Category,
    VALID_PRIORITIES, VALID_CATEGORIES
)
from slawatch.shared.infrastructure.logging import get_logger
from slawatch.sla.domain.entities import SlaPolicy, Ticket

logger = get_logger(__name__)

DEFAULT_BUFFER_FRACTION = 0.1


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless utility class: every deadline and breach-state rule lives
    here so the service layer, the monitor and the API agree.
    """

    @staticmethod
    def calculate_deadline(created_at: datetime, resolution_minutes: int) -> datetime:
        """
        Calculate the resolution deadline for a ticket.

        Always measured from the ticket's creation time, never from the
        time of the (re)calculation.
        """
        return created_at + timedelta(minutes=resolution_minutes)

    @staticmethod
    def classify(
        created_at: datetime,
        target: Optional[datetime],
        now: datetime,
        buffer_fraction: float = DEFAULT_BUFFER_FRACTION,
    ) -> BreachState:
        """
        Classify a ticket's SLA state.

        Args:
            created_at: When the ticket was created
            target: Resolution deadline, or None when no policy applies
            now: Evaluation time
            buffer_fraction: Share of the SLA window treated as imminent

        Returns:
            BreachState: on_track, imminent or breached
        """
        if target is None:
            return BreachState.ON_TRACK

        total_window = target - created_at
        if total_window <= timedelta(0):
            logger.warning(
                "Non-positive SLA window, treating ticket as untracked",
                extra={
                    "created_at": created_at.isoformat(),
                    "sla_target_date": target.isoformat(),
                },
            )
            return BreachState.ON_TRACK

        remaining = target - now
        if remaining <= timedelta(0):
            return BreachState.BREACHED

        # Inclusive: remaining == buffer is already imminent
        if remaining <= total_window * buffer_fraction:
            return BreachState.IMMINENT

        return BreachState.ON_TRACK

    @staticmethod
    def classify_ticket(
        ticket: Ticket,
        now: datetime,
        buffer_fraction: float = DEFAULT_BUFFER_FRACTION,
    ) -> BreachState:
        return SLACalculator.classify(
            ticket.created_at, ticket.sla_target_date, now, buffer_fraction
        )

    @staticmethod
    def remaining_minutes(target: Optional[datetime], now: datetime) -> Optional[int]:
        """Whole minutes until the deadline, negative once overdue."""
        if target is None:
            return None
        return int((target - now).total_seconds() / 60)

    @staticmethod
    def format_countdown(remaining_minutes: Optional[int]) -> Optional[str]:
        """
        Human readable countdown, e.g. ``"45m left"`` or ``"2h 5m overdue"``.
        """
        if remaining_minutes is None:
            return None

        suffix = "overdue" if remaining_minutes < 0 else "left"
        minutes = abs(remaining_minutes)
        if minutes < 60:
            return f"{minutes}m {suffix}"

        hours, mins = divmod(minutes, 60)
        if mins:
            return f"{hours}h {mins}m {suffix}"
        return f"{hours}h {suffix}"

    @staticmethod
    def calculate_compliance(tickets: Iterable[Ticket]) -> float:
        """
        Percentage of SLA-tracked tickets that met (or are still within) target.

        A ticket complies when it is not flagged as breached and was either
        not resolved yet or resolved on or before its target.
        """
        tracked = [t for t in tickets if t.sla_target_date is not None]
        if not tracked:
            return 0.0

        compliant = [
            t for t in tracked
            if not t.is_sla_breach
            and (t.resolved_at is None or t.resolved_at <= t.sla_target_date)
        ]
        return len(compliant) / len(tracked) * 100


class MonitorConfig(BaseModel):
    """
    Explicit configuration for the breach monitor.

    Built once by the host (usually from Settings) and handed to the
    monitor and its services, which never read global settings.
    """
    model_config = ConfigDict(frozen=True)

    check_interval_minutes: float = Field(default=15, gt=0)
    recovery_interval_minutes: float = Field(default=5, gt=0)
    imminent_buffer_fraction: float = Field(default=DEFAULT_BUFFER_FRACTION, ge=0.0, lt=1.0)
    webhook_url: Optional[str] = Field(default=None)
    notify_breached: bool = Field(default=False)
    dedupe_notifications: bool = Field(default=False)
    shutdown_grace_seconds: float = Field(default=5.0, ge=0)

    @classmethod
    def from_settings(cls, settings) -> "MonitorConfig":
        return cls(
            check_interval_minutes=settings.sla_check_interval_minutes,
            recovery_interval_minutes=settings.sla_recovery_interval_minutes,
            imminent_buffer_fraction=settings.sla_imminent_buffer_fraction,
            webhook_url=settings.notification_webhook_url,
            notify_breached=settings.sla_notify_breached,
            dedupe_notifications=settings.sla_dedupe_notifications,
        )

    @property
    def check_interval_seconds(self) -> float:
        return self.check_interval_minutes * 60

    @property
    def recovery_interval_seconds(self) -> float:
        return self.recovery_interval_minutes * 60


class PolicyEntryConfig(BaseModel):
    """One policy row in the YAML policy file."""
    priority: str
    category: str
    response_time_minutes: int = Field(gt=0)
    resolution_time_minutes: int = Field(gt=0)
    active: bool = True

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in VALID_PRIORITIES:
            raise ValueError(f"priority must be one of {VALID_PRIORITIES}")
        return v

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in VALID_CATEGORIES:
            raise ValueError(f"category must be one of {VALID_CATEGORIES}")
        return v

    def to_policy(self) -> SlaPolicy:
        return SlaPolicy(
            priority=self.priority,
            category=self.category,
            response_time_minutes=self.response_time_minutes,
            resolution_time_minutes=self.resolution_time_minutes,
            is_active=self.active,
        )


def _default_policy_entries() -> List[PolicyEntryConfig]:
    return [PolicyEntryConfig(**entry) for entry in DEFAULT_POLICIES]


class PolicyTableConfig(BaseModel):
    """
    SLA policy table loaded from YAML.

    Policies keep file order, which is the tie-break order if the file
    lists more than one active policy for the same key.
    """
    policies: List[PolicyEntryConfig] = Field(
        default_factory=_default_policy_entries,
        description="Policies in lookup order"
    )

    def to_policies(self) -> List[SlaPolicy]:
        return [
            replace(entry.to_policy(), id=index)
            for index, entry in enumerate(self.policies, start=1)
        ]


# Default policy table shipped with the workflow system
DEFAULT_POLICIES = [
    {"priority": Priority.CRITICAL, "category": Category.INCIDENT, "response_time_minutes": 15, "resolution_time_minutes": 240},
    {"priority": Priority.HIGH, "category": Category.INCIDENT, "response_time_minutes": 30, "resolution_time_minutes": 480},
    {"priority": Priority.MEDIUM, "category": Category.INCIDENT, "response_time_minutes": 60, "resolution_time_minutes": 1440},
    {"priority": Priority.LOW, "category": Category.INCIDENT, "response_time_minutes": 120, "resolution_time_minutes": 2880},
    {"priority": Priority.CRITICAL, "category": Category.ALERT, "response_time_minutes": 10, "resolution_time_minutes": 120},
    {"priority": Priority.HIGH, "category": Category.ALERT, "response_time_minutes": 15, "resolution_time_minutes": 240},
    {"priority": Priority.MEDIUM, "category": Category.ACCESS, "response_time_minutes": 240, "resolution_time_minutes": 1440},
    {"priority": Priority.MEDIUM, "category": Category.NEW_RESOURCE, "response_time_minutes": 480, "resolution_time_minutes": 2880},
]
