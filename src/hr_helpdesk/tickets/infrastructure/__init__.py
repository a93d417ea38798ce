"""
Tickets Infrastructure Layer
============================

Infrastructure implementations for the ticket engine:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer and user directory
- External: SLA config watcher, audit sinks, sweep scheduler
"""

from hr_helpdesk.tickets.infrastructure.models import TicketModel, UserModel
from hr_helpdesk.tickets.infrastructure.repositories import (
    SQLAlchemyTicketRepository,
    SQLAlchemyUserDirectory,
)
from hr_helpdesk.tickets.infrastructure.external import (
    CircuitBreaker,
    CircuitState,
    EscalationScheduler,
    LoggingAuditPublisher,
    SLAConfigManager,
    WebhookAuditPublisher,
    build_audit_publisher,
)

__all__ = [
    "TicketModel",
    "UserModel",
    "SQLAlchemyTicketRepository",
    "SQLAlchemyUserDirectory",
    "CircuitBreaker",
    "CircuitState",
    "EscalationScheduler",
    "LoggingAuditPublisher",
    "SLAConfigManager",
    "WebhookAuditPublisher",
    "build_audit_publisher",
]
