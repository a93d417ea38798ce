"""
Tickets Application Layer
=========================

Application layer for the HR ticket lifecycle.

Contains:
- Services: Orchestrate business logic and coordinate with repositories
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from hr_helpdesk.tickets.application.dto import (
    AssignRequest,
    EligiblePersonnelResponse,
    EscalateRequest,
    FeedbackRequest,
    Pagination,
    PersonnelEntry,
    ReopenRequest,
    ResolveRequest,
    StatusUpdateRequest,
    SweepResult,
    TicketCreateRequest,
    TicketDetailsUpdateRequest,
    TicketListQuery,
    TicketListResponse,
    TicketResponse,
    TicketStatsResponse,
)
from hr_helpdesk.tickets.application.services import (
    AuditDispatcher,
    AuditEvent,
    EscalationService,
    IAuditPublisher,
    ISLAConfigProvider,
    ITicketRepository,
    IUserDirectory,
    TicketFilter,
    TicketNumberGenerator,
    TicketService,
)

__all__ = [
    # DTOs
    "AssignRequest",
    "EligiblePersonnelResponse",
    "EscalateRequest",
    "FeedbackRequest",
    "Pagination",
    "PersonnelEntry",
    "ReopenRequest",
    "ResolveRequest",
    "StatusUpdateRequest",
    "SweepResult",
    "TicketCreateRequest",
    "TicketDetailsUpdateRequest",
    "TicketListQuery",
    "TicketListResponse",
    "TicketResponse",
    "TicketStatsResponse",
    # Services
    "EscalationService",
    "TicketNumberGenerator",
    "TicketService",
    # Interfaces and query objects
    "AuditDispatcher",
    "AuditEvent",
    "IAuditPublisher",
    "ISLAConfigProvider",
    "ITicketRepository",
    "IUserDirectory",
    "TicketFilter",
]
