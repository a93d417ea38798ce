"""
HR Helpdesk - Main Application
==============================

Ticket routing, SLA, escalation and resolution engine for an HR portal.

Modules:
- Tickets: routing, SLA deadlines, escalation chain, resolution lifecycle

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, value objects and the state machine
- Infrastructure: Database, config watcher, audit sinks, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hr_helpdesk.config import settings
from hr_helpdesk.core import ApplicationException
from hr_helpdesk.infrastructure.database import close_database, create_tables, init_database
from hr_helpdesk.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from hr_helpdesk.shared.infrastructure.logging import get_logger, setup_logging
from hr_helpdesk.tickets.application import AuditDispatcher
from hr_helpdesk.tickets.infrastructure import (
    EscalationScheduler,
    SLAConfigManager,
    WebhookAuditPublisher,
    build_audit_publisher,
)
from hr_helpdesk.tickets.interfaces import tickets_router
from hr_helpdesk.tickets.services import EscalationSweeper

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load SLA configuration and watch it
    4. Build the audit sink and its background dispatcher
    5. Start the escalation sweep scheduler

    SHUTDOWN: reverse order, letting in-flight audit deliveries finish.
    """
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting HR Helpdesk", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    init_database()
    try:
        await create_tables()
    except Exception as e:
        logger.warning("Database not available, running in degraded mode", extra={"error": str(e)})

    sla_config_manager = SLAConfigManager()
    sla_config_manager.load(settings.sla_config_path)
    sla_config_manager.start_watching()

    audit_publisher = build_audit_publisher(
        settings.audit_webhook_url, settings.audit_timeout_seconds
    )
    audit_dispatcher = AuditDispatcher(audit_publisher)

    scheduler = None
    if settings.escalation_sweep_interval > 0:
        sweeper = EscalationSweeper(audit_dispatcher)

        async def escalation_sweep_job():
            try:
                await sweeper.run()
            except Exception:
                logger.exception("Escalation sweep crashed")

        scheduler = EscalationScheduler(interval_seconds=settings.escalation_sweep_interval)
        await scheduler.start(escalation_sweep_job)

    app.state.settings = settings
    app.state.sla_config_manager = sla_config_manager
    app.state.audit_dispatcher = audit_dispatcher
    app.state.escalation_scheduler = scheduler

    logger.info("HR Helpdesk started")

    yield

    logger.info("Shutting down HR Helpdesk")
    if scheduler:
        await scheduler.stop()
    sla_config_manager.stop_watching()
    await audit_dispatcher.drain(timeout=settings.audit_timeout_seconds)
    if isinstance(audit_publisher, WebhookAuditPublisher):
        await audit_publisher.close()
    await close_database()
    logger.info("HR Helpdesk shutdown complete")


app = FastAPI(
    title="HR Helpdesk API",
    description="""
    ## HR Helpdesk Ticket Engine

    Employees raise HR tickets; the engine routes them to the right HR tier,
    tracks response and resolution SLAs, escalates breaches up the chain
    (HR Executive -> HR Manager -> HR BP -> Vice President) and runs the
    resolve / confirm / reopen negotiation.

    The acting user is passed in the `X-User-ID` header.

    Rejected transitions return HTTP 409 with a stable `code`, e.g.
    `reopen_window_expired`, `reopen_limit_exceeded`, `permanently_closed`.
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIDMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

app.include_router(tickets_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for load balancers and orchestrators."""
    scheduler = getattr(app.state, "escalation_scheduler", None)
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": {
            "sla_config": "loaded" if getattr(app.state, "sla_config_manager", None) else "default",
            "escalation_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
        }
    }


@app.get("/", tags=["Root"])
async def root():
    return {
        "service": "HR Helpdesk",
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "hr_helpdesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower()
    )
