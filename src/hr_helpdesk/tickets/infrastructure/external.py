"""
Ticket External Service Integrations
====================================

External services around the ticket engine:
- YAML SLA config with watchdog hot-reload
- Audit event sinks (structured log, webhook with circuit breaker)
- APScheduler for the periodic escalation sweep
"""

import asyncio
import threading
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional

import httpx
import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from hr_helpdesk.core import ConfigurationException
from hr_helpdesk.shared.infrastructure.logging import get_logger
from hr_helpdesk.tickets.application.services import (
    AuditEvent,
    IAuditPublisher,
    ISLAConfigProvider,
)
from hr_helpdesk.tickets.domain import SLAConfig

logger = get_logger(__name__)


# ========== SLA configuration ==========

class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA config file changes."""

    def __init__(self, config_manager: "SLAConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info("SLA config file changed", extra={"path": event.src_path})
            self.config_manager.reload()


class SLAConfigManager(ISLAConfigProvider):
    """
    Thread-safe SLA configuration holder with hot-reload support.

    The YAML file may override ``priority_matrix`` and ``category_overrides``;
    anything it leaves out keeps the built-in defaults. A broken file on
    reload keeps the previous configuration.
    """

    def __init__(self, config: Optional[SLAConfig] = None):
        self._config: SLAConfig = config or SLAConfig()
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> SLAConfig:
        """Initial configuration load; a malformed file is fatal."""
        self._path = Path(path)
        config = self._load_from_file(self._path)
        with self._lock:
            self._config = config
        return config

    def _load_from_file(self, path: Path) -> SLAConfig:
        if not path.exists():
            logger.warning("SLA config file not found, using defaults", extra={"path": str(path)})
            return SLAConfig()

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            return SLAConfig(**data)
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigurationException(
                f"Invalid SLA configuration in {path}", {"error": str(e)}
            ) from e

    def reload(self) -> bool:
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except ConfigurationException as e:
            logger.error("Failed to reload SLA config", extra={"error": e.details.get("error")})
            return False

        with self._lock:
            self._config = new_config
        logger.info("SLA configuration reloaded")
        return True

    def start_watching(self) -> None:
        """
        Start watching the configuration file for changes.

        Skipped when the file doesn't exist or the platform can't watch it.
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info("SLA config file absent, not watching", extra={"path": str(self._path)})
            return

        try:
            self._observer = Observer()
            self._observer.schedule(
                ConfigFileHandler(self, self._path),
                str(self._path.parent),
                recursive=False
            )
            self._observer.start()
            logger.info("Watching SLA config file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static config", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    def get_config(self) -> SLAConfig:
        with self._lock:
            return self._config


# ========== Audit sinks ==========

class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> str:
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            if self._clock() - self._opened_at >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        if self._failure_count >= self.failure_threshold or self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            self._opened_at = self._clock()
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class LoggingAuditPublisher(IAuditPublisher):
    """Writes each event as one structured log line."""

    async def publish(self, event: AuditEvent) -> None:
        logger.info(
            "Ticket event",
            extra={
                "event_type": event.event_type,
                "ticket_id": event.ticket_id,
                "ticket_number": event.ticket_number,
                "actor_id": event.actor_id,
                "event_data": event.data,
            }
        )


class WebhookAuditPublisher(IAuditPublisher):
    """
    POSTs events to a webhook with retry and a circuit breaker.

    Delivery is best-effort: after the retries are spent the event is logged
    and dropped.
    """

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 5.0,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self._url = url
        self._timeout = timeout_seconds
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._circuit_breaker = circuit_breaker or CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def publish(self, event: AuditEvent) -> None:
        await self.send(event)

    async def send(self, event: AuditEvent) -> bool:
        """
        Deliver one event.

        Returns:
            True if the webhook accepted it, False otherwise
        """
        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, dropping audit event",
                extra={"ticket_id": event.ticket_id, "event_type": event.event_type}
            )
            return False

        payload = event.to_dict()
        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._url, json=payload)
                if response.is_success:
                    self._circuit_breaker.record_success()
                    return True
                logger.warning(
                    "Audit webhook returned error status",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )
            except httpx.HTTPError as e:
                logger.error(
                    "Audit webhook call failed",
                    extra={"error": str(e), "attempt": attempt + 1, "ticket_id": event.ticket_id}
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._retry_base_delay * 2 ** attempt)

        self._circuit_breaker.record_failure()
        return False

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


# ========== Scheduler ==========

class EscalationScheduler:
    """
    Wrapper for APScheduler running the escalation sweep.

    Manages the lifecycle of the scheduler and its single job.
    """

    def __init__(self, interval_seconds: int = 300):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[object]]) -> None:
        if self._running:
            logger.warning("Escalation scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="escalation_sweep",
            name="Escalation Sweep Job",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info("Escalation scheduler started", extra={"interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("Escalation scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running


def build_audit_publisher(
    webhook_url: Optional[str],
    timeout_seconds: float = 5.0
) -> IAuditPublisher:
    """Webhook sink when a URL is configured, structured log otherwise."""
    if webhook_url:
        return WebhookAuditPublisher(webhook_url, timeout_seconds=timeout_seconds)
    return LoggingAuditPublisher()
