"""
SLA Watch - Main Application
=============================

SLA tracking and breach notification engine for a support ticketing tool.

Modules:
- SLA: deadline calculation, breach classification, background monitor,
  webhook notifications and a read-mostly status API

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, policy file, webhook, APScheduler monitor
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

# Configuration and Core
from slawatch.config import settings
from slawatch.core import (
    ApplicationException, ConfigurationException, ResourceNotFoundException
)

# Infrastructure
from slawatch.infrastructure.database import (
    init_database, close_database, create_tables, get_session_context
)

# SLA Module
from slawatch.sla.domain import MonitorConfig, PolicyTableConfig
from slawatch.sla.application import HealthResponse
from slawatch.sla.infrastructure import (
    PolicyFileManager, WebhookNotifier, SLAMonitor, seed_policies
)
from slawatch.sla.services import SLAEvaluator
from slawatch.sla.interfaces import sla_router

# Logging
from slawatch.shared.infrastructure.logging import setup_logging, get_logger

logger = get_logger(__name__)


def _load_policy_manager() -> PolicyFileManager:
    """Load the YAML policy table (defaults when the file is absent)."""
    manager = PolicyFileManager()
    manager.load(settings.sla_policy_path)
    return manager


async def _seed_policy_table() -> None:
    """Fill an empty policy table from the YAML file or the built-in defaults."""
    if settings.sla_policy_path.exists():
        policies = _load_policy_manager().policies
    else:
        policies = PolicyTableConfig().to_policies()

    async with get_session_context() as session:
        await seed_policies(session, policies)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database (tables created in development)
    3. Load or seed the SLA policy table
    4. Start the breach monitor

    SHUTDOWN:
    1. Stop the breach monitor
    2. Stop the policy file watcher
    3. Close the webhook client
    4. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting SLA Watch", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()

    # Development only; production schemas are owned by the ticketing app
    database_ready = True
    if settings.environment == "development":
        logger.info("Creating database tables")
        try:
            await create_tables()
        except Exception as e:
            database_ready = False
            logger.warning(f"Database not available - running in degraded mode: {e}")

    # Policy source
    policy_manager = None
    if settings.sla_policy_source == "file":
        logger.info("Loading SLA policies from file", extra={"path": str(settings.sla_policy_path)})
        policy_manager = _load_policy_manager()
        policy_manager.start_watching()
    elif database_ready:
        try:
            await _seed_policy_table()
        except ConfigurationException:
            raise
        except Exception as e:
            logger.warning(f"Could not seed SLA policy table: {e}")
    app.state.policy_table = policy_manager

    # Notifications and monitor
    monitor_config = MonitorConfig.from_settings(settings)
    notifier = WebhookNotifier(
        webhook_url=monitor_config.webhook_url,
        timeout_seconds=settings.notification_timeout_seconds,
        buffer_fraction=monitor_config.imminent_buffer_fraction
    )
    if not notifier.is_configured:
        logger.info("Notification webhook not configured - SLA notifications disabled")

    evaluator = SLAEvaluator(notifier, monitor_config, policy_table=policy_manager)
    monitor = None

    async def sla_evaluation_job():
        """One background SLA pass in its own session scope."""
        async with get_session_context() as session:
            return await evaluator.evaluate(
                session,
                should_continue=lambda: not monitor.stop_requested
            )

    if settings.sla_monitor_enabled:
        monitor = SLAMonitor(sla_evaluation_job, monitor_config)
        await monitor.start()
    else:
        logger.info("SLA monitor disabled")
    app.state.sla_monitor = monitor

    logger.info("SLA Watch started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down SLA Watch")

    if monitor:
        await monitor.stop()

    if policy_manager:
        policy_manager.stop_watching()

    await notifier.close()

    await close_database()

    logger.info("SLA Watch shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="SLA Watch API",
    description="""
    ## SLA tracking and breach notifications for support tickets

    ### Endpoints
    - `GET /sla/tickets/{id}` - Current SLA state of a ticket
    - `POST /sla/tickets/{id}/recalculate` - Recompute a ticket's SLA target
    - `GET /sla/imminent` - Open tickets close to breaching
    - `GET /sla/compliance` - SLA compliance percentage

    ### Background monitor
    Every 15 minutes (configurable) all open tickets are re-evaluated.
    Tickets with at most 10% of their SLA window left are posted to the
    configured incoming webhook as one Adaptive Card.
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)


# === Exception Handlers ===

@app.exception_handler(ApplicationException)
async def application_exception_handler(request: Request, exc: ApplicationException):
    status_code = 404 if isinstance(exc, ResourceNotFoundException) else 500
    logger.error(
        f"Request failed: {exc.message}",
        extra={"path": request.url.path, "error_type": type(exc).__name__}
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "message": exc.message, "details": exc.details}
    )


# === Include Module Routers ===
app.include_router(sla_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"], response_model=HealthResponse, responses={
    200: {
        "description": "Service is healthy",
        "content": {
            "application/json": {
                "example": {
                    "status": "healthy",
                    "version": "1.0.0",
                    "environment": "development",
                    "checks": {
                        "policy_source": "database",
                        "sla_monitor": "sleeping",
                        "monitor_passes": {"completed": 4, "failed": 0},
                        "notifications": "configured"
                    }
                }
            }
        }
    }
})
async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Reports the policy source, the monitor state and whether webhook
    notifications are configured.
    """
    monitor = getattr(request.app.state, "sla_monitor", None)
    checks = {
        "policy_source": settings.sla_policy_source,
        "sla_monitor": monitor.state if monitor else "disabled",
        "notifications": "configured" if settings.notification_webhook_url else "not_configured"
    }
    if monitor:
        checks["monitor_passes"] = {
            "completed": monitor.passes_completed,
            "failed": monitor.passes_failed
        }

    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
        checks=checks
    )


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": "SLA Watch",
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "sla": {
                "prefix": "/sla",
                "endpoints": [
                    "GET /sla/tickets/{id} - Get ticket SLA status",
                    "POST /sla/tickets/{id}/recalculate - Recalculate SLA target",
                    "GET /sla/imminent - List tickets close to breaching",
                    "GET /sla/compliance - Get SLA compliance"
                ]
            }
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "slawatch.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
