"""
SLA External Service Integrations
==================================

External services for SLA monitoring:
- YAML policy file with watchdog hot reload
- Incoming-webhook notifications (Adaptive Card payload)
- APScheduler for the background breach monitor
"""

import asyncio
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import yaml
import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler

from slawatch.core import ConfigurationException, NotificationException
from slawatch.shared.infrastructure.logging import get_logger
from slawatch.sla.application import INotifier, IPolicyTable
from slawatch.sla.domain import (
    MonitorConfig, PolicyTableConfig, SlaPolicy, Ticket, DEFAULT_BUFFER_FRACTION
)
from slawatch.sla.infrastructure.repositories import StaticPolicyTable

logger = get_logger(__name__)


class PolicyFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA policy file changes."""

    def __init__(self, manager: "PolicyFileManager", policy_path: Path):
        self.manager = manager
        self.policy_path = policy_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.policy_path.resolve():
            logger.info(f"Policy file changed: {event.src_path}")
            self.manager.reload()

    on_created = on_modified


class PolicyFileManager(IPolicyTable):
    """
    Thread-safe SLA policy table backed by a YAML file, with hot reload.

    Uses watchdog to monitor the file and swap in the new table without
    restarting the service. A reload that fails keeps the previous table.
    """

    def __init__(self):
        self._table: Optional[StaticPolicyTable] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> List[SlaPolicy]:
        """
        Initial policy load.

        Raises:
            ConfigurationException: the file exists but is not a valid policy table
        """
        self._path = Path(path)
        table = StaticPolicyTable(self._load_from_file(self._path).to_policies())
        with self._lock:
            self._table = table
        return table.policies

    @staticmethod
    def _load_from_file(path: Path) -> PolicyTableConfig:
        if not path.exists():
            logger.warning(f"SLA policy file not found: {path}, using default policies")
            return PolicyTableConfig()

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            return PolicyTableConfig(**data)
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigurationException(
                f"Invalid SLA policy file {path}: {e}",
                {"path": str(path)}
            ) from e

    def reload(self) -> bool:
        """Reload policies from file; returns False (and keeps the old table) on error."""
        if self._path is None:
            return False

        try:
            table = StaticPolicyTable(self._load_from_file(self._path).to_policies())
        except ConfigurationException as e:
            logger.error(f"Failed to reload SLA policies: {e}")
            return False

        with self._lock:
            self._table = table
        logger.info("SLA policies reloaded", extra={"policies": len(table.policies)})
        return True

    def start_watching(self) -> None:
        """
        Start watching the policy file's directory for changes.

        Falls back to a static table where file watching is unavailable
        (e.g. some container filesystems).
        """
        if self._path is None:
            raise RuntimeError("Policies not loaded. Call load() first.")

        if not self._path.parent.exists():
            logger.info(f"Policy directory doesn't exist, skipping file watch: {self._path.parent}")
            return

        try:
            self._observer = Observer()
            self._observer.schedule(
                PolicyFileHandler(self, self._path),
                str(self._path.parent),
                recursive=False
            )
            self._observer.start()
            logger.info(f"Started watching policy file: {self._path}")
        except OSError as e:
            logger.warning(f"File watching not available, using static policies: {e}")
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def policies(self) -> List[SlaPolicy]:
        return self._current().policies

    def _current(self) -> StaticPolicyTable:
        with self._lock:
            table = self._table
        if table is None:
            raise RuntimeError("SLA policies not loaded")
        return table

    async def find_active_policy(self, priority: str, category: str) -> Optional[SlaPolicy]:
        return await self._current().find_active_policy(priority, category)


class WebhookNotifier(INotifier):
    """
    Sends batched SLA notifications to an incoming webhook.

    Delivery is best-effort: one POST per batch, no retry. Failures are
    logged and reported through the return value, never raised.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        timeout_seconds: float = 10.0,
        buffer_fraction: float = DEFAULT_BUFFER_FRACTION,
        client: Optional[httpx.AsyncClient] = None
    ):
        self._webhook_url = webhook_url
        self._timeout_seconds = timeout_seconds
        self._buffer_fraction = buffer_fraction
        self._http_client = client
        self._owns_client = client is None

    @property
    def is_configured(self) -> bool:
        return bool(self._webhook_url)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout_seconds)
        return self._http_client

    @staticmethod
    def _ticket_fact(ticket: Ticket) -> Dict[str, str]:
        if ticket.sla_target_date is not None:
            target = ticket.sla_target_date.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M")
            target_text = f"{target} UTC"
        else:
            target_text = "Not set"

        return {
            "name": f"Ticket #{ticket.id}",
            "value": (
                f"**{ticket.title}**\n"
                f"Priority: {ticket.priority}\n"
                f"Category: {ticket.category}\n"
                f"Assigned to: {ticket.assignee_name}\n"
                f"SLA Target: {target_text}"
            )
        }

    def build_message(self, tickets: List[Ticket], imminent: bool) -> Dict[str, Any]:
        """Build the Adaptive Card message for a batch of tickets."""
        if imminent:
            title = "⚠️ SLA Breach Warning"
            description = (
                "The following tickets are approaching their SLA deadline "
                f"(≤ {self._buffer_fraction * 100:g}% time remaining):"
            )
        else:
            title = "🚨 SLA Breach Alert"
            description = "The following tickets have breached their SLA deadline:"

        return {
            "type": "message",
            "attachments": [
                {
                    "contentType": "application/vnd.microsoft.card.adaptive",
                    "content": {
                        "type": "AdaptiveCard",
                        "body": [
                            {
                                "type": "TextBlock",
                                "size": "Medium",
                                "weight": "Bolder",
                                "text": title
                            },
                            {
                                "type": "TextBlock",
                                "text": description,
                                "wrap": True
                            },
                            {
                                "type": "FactSet",
                                "facts": [self._ticket_fact(t) for t in tickets]
                            }
                        ],
                        "$schema": "http://adaptivecards.io/schemas/adaptive-card.json",
                        "version": "1.3"
                    }
                }
            ]
        }

    async def _post(self, message: Dict[str, Any]) -> httpx.Response:
        """
        POST one message to the webhook.

        Raises:
            NotificationException: transport failure or non-2xx response
        """
        try:
            client = await self._get_client()
            response = await client.post(self._webhook_url, json=message)
        except httpx.HTTPError as e:
            raise NotificationException(
                str(e) or type(e).__name__,
                {"error_type": type(e).__name__}
            ) from e

        if not response.is_success:
            raise NotificationException(
                f"webhook returned {response.status_code}",
                {"status_code": response.status_code, "response": response.text[:500]}
            )
        return response

    async def notify(self, tickets: Iterable[Ticket], imminent: bool = True) -> bool:
        """
        Send one notification for a batch of tickets.

        Returns:
            True if the webhook accepted the message, False otherwise
        """
        tickets = list(tickets)
        if not tickets:
            return False

        if not self._webhook_url:
            logger.warning(
                "Notification webhook URL not configured, skipping notification",
                extra={"ticket_count": len(tickets)}
            )
            return False

        message = self.build_message(tickets, imminent)
        ticket_ids = [t.id for t in tickets]

        try:
            await self._post(message)
        except NotificationException as e:
            logger.error(
                f"SLA notification failed: {e.message}",
                extra={**e.details, "ticket_ids": ticket_ids}
            )
            return False

        logger.info(
            f"Sent SLA notification for {len(tickets)} tickets",
            extra={"ticket_ids": ticket_ids, "imminent": imminent}
        )
        return True

    async def notify_one(self, ticket: Ticket, imminent: bool = True) -> bool:
        return await self.notify([ticket], imminent=imminent)

    async def close(self) -> None:
        """Close the HTTP client if this notifier created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None


class MonitorState:
    """Breach monitor states."""
    SCANNING = "scanning"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


class SLAMonitor:
    """
    Wrapper for APScheduler driving background SLA evaluation.

    The first pass runs as soon as the scheduler starts, then every
    ``check_interval_minutes``. A failed pass is logged and the job is
    rescheduled on the shorter recovery interval until a pass succeeds
    again; the monitor only ends when stopped.
    """

    JOB_ID = "sla_evaluation"

    def __init__(
        self,
        job_func: Callable[[], Awaitable[Any]],
        config: MonitorConfig
    ):
        self._job_func = job_func
        self._config = config
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._current: Optional[asyncio.Task] = None
        self._stop_requested = False
        self._state = MonitorState.STOPPED
        self._interval_minutes = config.check_interval_minutes

        self.passes_completed = 0
        self.passes_failed = 0
        self.last_result: Any = None

    @property
    def state(self) -> str:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    @property
    def interval_minutes(self) -> float:
        """Interval the job is currently scheduled on."""
        return self._interval_minutes

    async def start(self) -> None:
        """Start the scheduler; the first pass runs immediately."""
        if self.is_running:
            logger.warning("SLA monitor already running")
            return

        self._stop_requested = False
        self._interval_minutes = self._config.check_interval_minutes
        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)

        self._scheduler.add_job(
            self._run_pass,
            "interval",
            minutes=self._interval_minutes,
            id=self.JOB_ID,
            name="SLA Evaluation Job",
            next_run_time=datetime.now(timezone.utc),
            misfire_grace_time=60,
            coalesce=True,
            max_instances=1,
            replace_existing=True
        )

        self._scheduler.start()
        self._state = MonitorState.SCANNING

        logger.info(
            "SLA monitor started",
            extra={
                "check_interval_minutes": self._config.check_interval_minutes,
                "recovery_interval_minutes": self._config.recovery_interval_minutes,
            }
        )

    async def _run_pass(self) -> None:
        """Scheduled job: one pass, then pick the interval until the next one."""
        if self._stop_requested:
            return

        self._state = MonitorState.SCANNING
        # The executor's task for this run; stop() waits on or cancels it
        self._current = asyncio.current_task()
        try:
            self.last_result = await self._job_func()
        except asyncio.CancelledError:
            logger.warning("SLA pass cancelled")
            return
        except Exception as e:
            self.passes_failed += 1
            logger.error(
                f"Error occurred while monitoring SLA breaches: {e}",
                extra={"recovery_interval_minutes": self._config.recovery_interval_minutes},
                exc_info=True
            )
            self._reschedule(self._config.recovery_interval_minutes)
        else:
            self.passes_completed += 1
            self._reschedule(self._config.check_interval_minutes)
        finally:
            self._current = None
            if not self._stop_requested:
                self._state = MonitorState.SLEEPING

    def _reschedule(self, minutes: float) -> None:
        if self._stop_requested or self._scheduler is None or minutes == self._interval_minutes:
            return

        self._scheduler.reschedule_job(self.JOB_ID, trigger="interval", minutes=minutes)
        self._interval_minutes = minutes
        logger.info("SLA monitor rescheduled", extra={"interval_minutes": minutes})

    async def stop(self) -> None:
        """
        Stop the scheduler gracefully.

        Waits up to the configured grace period for an in-flight pass,
        then cancels it.
        """
        self._stop_requested = True
        if self._scheduler is None:
            return

        if self._scheduler.running:
            self._scheduler.pause()

        current = self._current
        if current is not None and not current.done():
            done, _ = await asyncio.wait({current}, timeout=self._config.shutdown_grace_seconds)
            if not done:
                logger.warning("SLA pass did not finish within grace period, cancelling")
                current.cancel()
                await asyncio.wait({current})

        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        self._state = MonitorState.STOPPED

        logger.info(
            "SLA monitor stopped",
            extra={
                "passes_completed": self.passes_completed,
                "passes_failed": self.passes_failed,
            }
        )
