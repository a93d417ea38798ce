"""
Ticket Controllers (API Routes)
===============================

FastAPI routes for the HR ticket lifecycle.

Controllers are thin - they resolve the acting user and delegate to
application services. Domain errors are mapped to HTTP responses by the
application-wide exception handler.
"""

import math
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from hr_helpdesk.config import (
    Priority,
    TicketCategory,
    TicketStatus,
    UNRESTRICTED_ROLES,
    settings,
)
from hr_helpdesk.core import NotAuthorizedException
from hr_helpdesk.infrastructure.database import get_session
from hr_helpdesk.shared.infrastructure.logging import get_logger
from hr_helpdesk.tickets.application import (
    AssignRequest,
    AuditDispatcher,
    EligiblePersonnelResponse,
    EscalateRequest,
    EscalationService,
    FeedbackRequest,
    ISLAConfigProvider,
    ITicketRepository,
    IUserDirectory,
    Pagination,
    ReopenRequest,
    ResolveRequest,
    StatusUpdateRequest,
    SweepResult,
    TicketCreateRequest,
    TicketDetailsUpdateRequest,
    TicketListQuery,
    TicketListResponse,
    TicketResponse,
    TicketService,
    TicketStatsResponse,
)
from hr_helpdesk.tickets.application.services import Clock, utcnow
from hr_helpdesk.tickets.domain import DirectoryUser, ResolutionStateMachine
from hr_helpdesk.tickets.infrastructure import (
    LoggingAuditPublisher,
    SLAConfigManager,
    SQLAlchemyTicketRepository,
    SQLAlchemyUserDirectory,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/tickets", tags=["Tickets"])

_default_config_provider = SLAConfigManager()
_default_audit_dispatcher = AuditDispatcher(LoggingAuditPublisher())


# ========== Dependencies ==========

async def get_ticket_repository(
    session: AsyncSession = Depends(get_session)
) -> ITicketRepository:
    return SQLAlchemyTicketRepository(session)


async def get_user_directory(
    session: AsyncSession = Depends(get_session)
) -> IUserDirectory:
    return SQLAlchemyUserDirectory(session)


def get_config_provider(request: Request) -> ISLAConfigProvider:
    """The app's hot-reloaded config, or built-in defaults before startup."""
    return getattr(request.app.state, "sla_config_manager", None) or _default_config_provider


def get_audit_dispatcher(request: Request) -> AuditDispatcher:
    return getattr(request.app.state, "audit_dispatcher", None) or _default_audit_dispatcher


def get_clock() -> Clock:
    return utcnow


def get_state_machine() -> ResolutionStateMachine:
    return ResolutionStateMachine(
        reopen_window=timedelta(hours=settings.reopen_window_hours),
        default_max_reopen=settings.default_max_reopen,
    )


async def get_escalation_service(
    ticket_repo: ITicketRepository = Depends(get_ticket_repository),
    directory: IUserDirectory = Depends(get_user_directory),
    audit_dispatcher: AuditDispatcher = Depends(get_audit_dispatcher),
    clock: Clock = Depends(get_clock)
) -> EscalationService:
    return EscalationService(ticket_repo, directory, audit_dispatcher, clock)


async def get_ticket_service(
    ticket_repo: ITicketRepository = Depends(get_ticket_repository),
    directory: IUserDirectory = Depends(get_user_directory),
    config_provider: ISLAConfigProvider = Depends(get_config_provider),
    audit_dispatcher: AuditDispatcher = Depends(get_audit_dispatcher),
    clock: Clock = Depends(get_clock),
    state_machine: ResolutionStateMachine = Depends(get_state_machine),
    escalation_service: EscalationService = Depends(get_escalation_service)
) -> TicketService:
    return TicketService(
        ticket_repo,
        directory,
        config_provider,
        audit_dispatcher,
        clock=clock,
        state_machine=state_machine,
        escalation_service=escalation_service,
    )


async def get_current_user(
    x_user_id: str = Header(..., alias="X-User-ID", description="Authenticated user id"),
    directory: IUserDirectory = Depends(get_user_directory)
) -> DirectoryUser:
    """
    Resolve the acting user.

    Authentication happens upstream; this only looks the id up in the
    directory and refuses unknown or deactivated accounts.
    """
    user = await directory.get(x_user_id)
    if user is None or not user.is_active:
        raise NotAuthorizedException("Unknown or inactive user", {"user_id": x_user_id})
    return user


# ========== Route Handlers ==========

@router.post(
    "",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="File a ticket",
)
async def create_ticket(
    request: TicketCreateRequest,
    user: DirectoryUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
) -> TicketResponse:
    """
    Create a ticket, compute its SLA deadlines and route it to the least
    loaded eligible HR agent (or to ``assigned_to`` when given).
    """
    ticket = await service.create_ticket(user, request)
    return service.to_response(ticket, user)


@router.get("", response_model=TicketListResponse, summary="List visible tickets")
async def list_tickets(
    status_filter: Optional[TicketStatus] = Query(None, alias="status"),
    category: Optional[TicketCategory] = Query(None),
    priority: Optional[Priority] = Query(None),
    assigned_to: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    user: DirectoryUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
) -> TicketListResponse:
    query = TicketListQuery(
        status=status_filter,
        category=category,
        priority=priority,
        assigned_to=assigned_to,
        search=search,
        page=page,
        limit=limit,
        sort_order=sort_order,
    )
    tickets, total = await service.list_tickets(user, query)
    return TicketListResponse(
        tickets=[service.to_response(t, user) for t in tickets],
        pagination=Pagination(
            current=page,
            pages=math.ceil(total / limit),
            total=total,
            limit=limit,
        ),
    )


@router.get("/stats", response_model=TicketStatsResponse, summary="Ticket statistics")
async def get_ticket_stats(
    user: DirectoryUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
) -> TicketStatsResponse:
    return await service.get_ticket_stats(user)


@router.get(
    "/hr-personnel",
    response_model=EligiblePersonnelResponse,
    summary="HR agents available for manual assignment",
)
async def list_hr_personnel(
    user: DirectoryUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
) -> EligiblePersonnelResponse:
    return await service.list_eligible_personnel()


@router.get(
    "/hr-personnel/{category}",
    response_model=EligiblePersonnelResponse,
    summary="HR agents eligible for a category",
)
async def list_hr_personnel_for_category(
    category: str,
    user: DirectoryUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
) -> EligiblePersonnelResponse:
    return await service.list_eligible_personnel(category)


@router.post(
    "/escalations/sweep",
    response_model=SweepResult,
    summary="Run the SLA escalation sweep now",
)
async def run_escalation_sweep(
    user: DirectoryUser = Depends(get_current_user),
    service: EscalationService = Depends(get_escalation_service)
) -> SweepResult:
    if user.role not in UNRESTRICTED_ROLES:
        raise NotAuthorizedException(
            "Only administrators can trigger the escalation sweep",
            {"actor_id": user.id}
        )
    return await service.sweep_escalations()


@router.get("/{ticket_id}", response_model=TicketResponse, summary="Get a ticket")
async def get_ticket(
    ticket_id: str,
    user: DirectoryUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
) -> TicketResponse:
    return service.to_response(await service.get_ticket(ticket_id, user), user)


@router.patch("/{ticket_id}", response_model=TicketResponse, summary="Reclassify a ticket")
async def update_ticket_details(
    ticket_id: str,
    request: TicketDetailsUpdateRequest,
    user: DirectoryUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
) -> TicketResponse:
    return service.to_response(await service.update_details(ticket_id, user, request), user)


@router.patch("/{ticket_id}/status", response_model=TicketResponse, summary="Change ticket status")
async def update_ticket_status(
    ticket_id: str,
    request: StatusUpdateRequest,
    user: DirectoryUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
) -> TicketResponse:
    ticket = await service.update_status(ticket_id, request.status, user, request.reason)
    return service.to_response(ticket, user)


@router.patch("/{ticket_id}/assign", response_model=TicketResponse, summary="Assign to an HR agent")
async def assign_ticket(
    ticket_id: str,
    request: AssignRequest,
    user: DirectoryUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
) -> TicketResponse:
    ticket = await service.assign(ticket_id, request.assigned_to, user, request.reason)
    return service.to_response(ticket, user)


@router.patch("/{ticket_id}/escalate", response_model=TicketResponse, summary="Escalate one tier")
async def escalate_ticket(
    ticket_id: str,
    request: Optional[EscalateRequest] = None,
    user: DirectoryUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
) -> TicketResponse:
    request = request or EscalateRequest()
    return service.to_response(await service.escalate(ticket_id, user, request.reason), user)


@router.patch("/{ticket_id}/resolve", response_model=TicketResponse, summary="Resolve (HR)")
async def resolve_ticket(
    ticket_id: str,
    request: Optional[ResolveRequest] = None,
    user: DirectoryUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
) -> TicketResponse:
    request = request or ResolveRequest()
    ticket = await service.resolve(ticket_id, user, request.resolution_comment)
    return service.to_response(ticket, user)


@router.patch("/{ticket_id}/confirm", response_model=TicketResponse, summary="Confirm resolution (creator)")
async def confirm_ticket(
    ticket_id: str,
    user: DirectoryUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
) -> TicketResponse:
    return service.to_response(await service.confirm(ticket_id, user), user)


@router.patch("/{ticket_id}/reopen", response_model=TicketResponse, summary="Reopen (creator)")
async def reopen_ticket(
    ticket_id: str,
    request: Optional[ReopenRequest] = None,
    user: DirectoryUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
) -> TicketResponse:
    request = request or ReopenRequest()
    return service.to_response(await service.reopen(ticket_id, user, request.reason), user)


@router.post("/{ticket_id}/responses", response_model=TicketResponse, summary="Record an HR response")
async def record_response(
    ticket_id: str,
    user: DirectoryUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
) -> TicketResponse:
    return service.to_response(await service.record_response(ticket_id, user), user)


@router.post("/{ticket_id}/feedback", response_model=TicketResponse, summary="Rate the resolution")
async def submit_feedback(
    ticket_id: str,
    request: FeedbackRequest,
    user: DirectoryUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
) -> TicketResponse:
    ticket = await service.submit_feedback(ticket_id, user, request.rating, request.comment)
    return service.to_response(ticket, user)


tickets_router = router
