"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="slawatch", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/workflow",
        description="Ticket store connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Policy Table ==========
    sla_policy_source: str = Field(
        default="database",
        description="Where SLA policies are read from: 'database' or 'file'"
    )
    sla_policy_path: Path = Field(
        default=Path("sla_policies.yaml"),
        description="Path to SLA policy YAML file (file source, and database seed)"
    )

    # ========== SLA Monitor ==========
    sla_monitor_enabled: bool = Field(
        default=True,
        description="Run the background breach monitor"
    )
    sla_check_interval_minutes: float = Field(
        default=15,
        description="Minutes between monitor passes",
        gt=0
    )
    sla_recovery_interval_minutes: float = Field(
        default=5,
        description="Minutes to wait after a failed monitor pass",
        gt=0
    )
    sla_imminent_buffer_fraction: float = Field(
        default=0.10,
        description="Fraction of the SLA window treated as imminent breach",
        ge=0.0,
        lt=1.0
    )
    sla_notify_breached: bool = Field(
        default=False,
        description="Also send an alert batch for tickets that breached during a pass"
    )
    sla_dedupe_notifications: bool = Field(
        default=False,
        description="Only notify a ticket once per severity level"
    )

    # ========== Notification Webhook ==========
    notification_webhook_url: Optional[str] = Field(
        default=None,
        description="Incoming webhook URL for SLA notifications (unset disables)"
    )
    notification_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for webhook calls",
        ge=0.1,
        le=60
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("sla_policy_source")
    @classmethod
    def validate_policy_source(cls, v: str) -> str:
        """Ensure policy source is supported."""
        allowed = {"database", "file"}
        if v not in allowed:
            raise ValueError(f"sla_policy_source must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class Priority(str):
    """Ticket priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
    EMERGENCY = "emergency"


class Category(str):
    """Ticket categories."""
    INCIDENT = "incident"
    ACCESS = "access"
    NEW_RESOURCE = "new_resource"
    CHANGE = "change"
    ALERT = "alert"


class TicketStatus(str):
    """Ticket lifecycle statuses."""
    NEW = "new"
    TRIAGED = "triaged"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class BreachState(str):
    """SLA breach states (computed per evaluation, never stored)."""
    ON_TRACK = "on_track"
    IMMINENT = "imminent"
    BREACHED = "breached"


# ========== Lists for validation ==========

VALID_PRIORITIES = [
    Priority.LOW, Priority.MEDIUM, Priority.HIGH,
    Priority.CRITICAL, Priority.EMERGENCY
]
VALID_CATEGORIES = [
    Category.INCIDENT, Category.ACCESS, Category.NEW_RESOURCE,
    Category.CHANGE, Category.ALERT
]
CLOSED_STATUSES = [TicketStatus.RESOLVED, TicketStatus.CLOSED]

# Severity order used when comparing breach states
BREACH_SEVERITY = {
    BreachState.ON_TRACK: 0,
    BreachState.IMMINENT: 1,
    BreachState.BREACHED: 2,
}
