"""
Ticket Application Services
===========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: TicketService drives the lifecycle, EscalationService
  moves tickets up the role chain
- Dependency Inversion: Depend on abstractions (repositories, directory,
  publishers), not concrete implementations
"""

import asyncio
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple
from uuid import uuid4

from hr_helpdesk.config import (
    LINE_MANAGER_ROLES,
    Priority,
    Role,
    SLAType,
    SWEEP_EXCLUDED_STATUSES,
    TicketCategory,
    TicketStatus,
    UNRESTRICTED_ROLES,
    WORKING_HR_ROLES,
)
from hr_helpdesk.core import (
    ApplicationException,
    DuplicateTicketNumberException,
    NoEscalationTargetException,
    NotAuthorizedException,
    RepositoryException,
    ResourceNotFoundException,
    StateException,
    ValidationException,
)
from hr_helpdesk.shared.infrastructure.logging import get_logger
from hr_helpdesk.tickets.application.dto import (
    EligiblePersonnelResponse,
    PersonnelEntry,
    SweepResult,
    TicketCreateRequest,
    TicketDetailsUpdateRequest,
    TicketListQuery,
    TicketResponse,
    TicketStatsResponse,
)
from hr_helpdesk.tickets.domain import (
    AccessFilter,
    DirectoryUser,
    EscalationRecord,
    Feedback,
    HRScope,
    ResolutionStateMachine,
    RoutingInfo,
    SLABreach,
    SLACalculator,
    SLAConfig,
    Ticket,
    eligible_roles,
    is_confidential_category,
    next_role,
    select_earliest,
    select_least_loaded,
)

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ========== Query / Event objects ==========

@dataclass
class TicketFilter:
    """
    Storage-level filter.

    Listings carry the caller's read scope here too, either ``created_by_in``
    or ``hr_scope``, so storage can count and page the visible set.
    """
    status: Optional[TicketStatus] = None
    category: Optional[TicketCategory] = None
    priority: Optional[Priority] = None
    assigned_to: Optional[str] = None
    search: Optional[str] = None
    created_by_in: Optional[List[str]] = None
    hr_scope: Optional[HRScope] = None
    newest_first: bool = True


@dataclass
class AuditEvent:
    """Something happened to a ticket."""
    event_type: str
    ticket_id: str
    ticket_number: str
    actor_id: Optional[str]
    occurred_at: datetime
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "event_type": self.event_type,
            "ticket_id": self.ticket_id,
            "ticket_number": self.ticket_number,
            "actor_id": self.actor_id,
            "occurred_at": self.occurred_at.isoformat(),
            "data": self.data,
        }


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by internal ID."""

    @abstractmethod
    async def create(self, ticket: Ticket) -> Ticket:
        """Persist a new ticket."""

    @abstractmethod
    async def update(self, ticket: Ticket) -> Ticket:
        """
        Write back a ticket read earlier.

        Raises ConcurrentModificationException when the stored version no
        longer matches ``ticket.version``; bumps the version on success.
        """

    @abstractmethod
    async def list(
        self,
        filters: TicketFilter,
        offset: int = 0,
        limit: Optional[int] = None
    ) -> List[Ticket]:
        """List tickets matching the storage-level filter, one page at a time."""

    @abstractmethod
    async def count(self, filters: TicketFilter) -> int:
        """Number of tickets matching the storage-level filter."""

    @abstractmethod
    async def commit(self) -> None:
        """Make the writes so far durable."""

    @abstractmethod
    async def rollback(self) -> None:
        """Discard uncommitted writes."""

    @abstractmethod
    async def list_for_sweep(self) -> List[Ticket]:
        """Tickets whose status is not Resolved or Closed."""

    @abstractmethod
    async def count_open_by_assignee(self, assignee_ids: Sequence[str]) -> Dict[str, int]:
        """Open/InProgress/Pending counts per assignee."""

    @abstractmethod
    async def max_ticket_number_with_prefix(self, prefix: str) -> Optional[str]:
        """Highest ticket number starting with ``prefix``."""


class IUserDirectory(ABC):
    """Interface for the (read-only) user directory."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[DirectoryUser]:
        """Get a user by ID."""

    @abstractmethod
    async def get_many(self, user_ids: Iterable[str]) -> Dict[str, DirectoryUser]:
        """Get several users keyed by ID; unknown IDs are omitted."""

    @abstractmethod
    async def list_active_by_roles(self, roles: Sequence[Role]) -> List[DirectoryUser]:
        """Active users holding any of ``roles``."""

    @abstractmethod
    async def list_direct_reports(self, manager_id: str) -> List[str]:
        """IDs of users whose reporting manager is ``manager_id``."""


class ISLAConfigProvider(ABC):
    """Interface for SLA configuration access."""

    @abstractmethod
    def get_config(self) -> SLAConfig:
        """Get current SLA configuration."""


class IAuditPublisher(ABC):
    """Interface for ticket audit event delivery."""

    @abstractmethod
    async def publish(self, event: AuditEvent) -> None:
        """Deliver an event. Implementations may raise; callers log and continue."""


class AuditDispatcher:
    """
    Delivers audit events in the background.

    A slow or failing sink never holds up the lifecycle call that raised the
    event. In-flight deliveries are kept referenced until they finish, and
    ``drain`` waits for them on shutdown.
    """

    def __init__(self, publisher: IAuditPublisher):
        self._publisher = publisher
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def dispatch(self, event: AuditEvent) -> None:
        task = asyncio.create_task(self._deliver(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, event: AuditEvent) -> None:
        try:
            await self._publisher.publish(event)
        except Exception as e:
            logger.warning(
                "Audit event delivery failed",
                extra={"event_type": event.event_type, "ticket_id": event.ticket_id, "error": str(e)}
            )

    async def drain(self, timeout: Optional[float] = None) -> int:
        """
        Wait for in-flight deliveries.

        Returns:
            Number still undelivered when ``timeout`` ran out
        """
        if not self._pending:
            return 0
        _, still_pending = await asyncio.wait(set(self._pending), timeout=timeout)
        if still_pending:
            logger.warning("Audit deliveries still in flight", extra={"count": len(still_pending)})
        return len(still_pending)


# ========== Ticket numbers ==========

class TicketNumberGenerator:
    """
    TKT + YYYYMMDD + 4-digit daily sequence.

    The sequence continues from the highest number already issued for the
    day. If the lookup fails the number falls back to TKT + epoch millis.
    """

    PREFIX = "TKT"

    def __init__(self, ticket_repository: ITicketRepository):
        self._ticket_repo = ticket_repository

    def prefix_for(self, when: datetime) -> str:
        return f"{self.PREFIX}{when.astimezone(timezone.utc):%Y%m%d}"

    async def next_number(self, when: datetime) -> str:
        prefix = self.prefix_for(when)
        try:
            last = await self._ticket_repo.max_ticket_number_with_prefix(prefix)
        except RepositoryException as e:
            fallback = f"{self.PREFIX}{int(when.timestamp() * 1000)}"
            logger.warning(
                "Ticket number lookup failed, using fallback",
                extra={"prefix": prefix, "fallback": fallback, "error": str(e)}
            )
            return fallback

        sequence = 1
        if last:
            suffix = last[len(prefix):]
            if suffix.isdigit():
                sequence = int(suffix) + 1
        return f"{prefix}{sequence:04d}"


# ========== Shared helpers ==========

class _TicketServiceBase:
    """
    Loading, saving and event publishing shared by the services.

    Each lifecycle write commits on its own; audit events go out only after
    the commit.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        user_directory: IUserDirectory,
        audit_dispatcher: AuditDispatcher,
        clock: Optional[Clock] = None
    ):
        self._ticket_repo = ticket_repository
        self._directory = user_directory
        self._audit = audit_dispatcher
        self._clock = clock or utcnow

    async def _load(self, ticket_id: str) -> Ticket:
        ticket = await self._ticket_repo.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return ticket

    async def _save(self, ticket: Ticket) -> Ticket:
        saved = await self._ticket_repo.update(ticket)
        await self._ticket_repo.commit()
        return saved

    def _publish(
        self,
        event_type: str,
        ticket: Ticket,
        actor_id: Optional[str],
        **data: Any
    ) -> None:
        self._audit.dispatch(AuditEvent(
            event_type=event_type,
            ticket_id=ticket.id,
            ticket_number=ticket.ticket_number,
            actor_id=actor_id,
            occurred_at=self._clock(),
            data=data,
        ))

    async def _can_view(self, ticket: Ticket, actor: DirectoryUser) -> bool:
        """Apply AccessFilter, fetching only the directory records it needs."""
        wanted = set()
        if ticket.is_manually_assigned and ticket.assigned_to:
            wanted.add(ticket.assigned_to)
        if actor.role in LINE_MANAGER_ROLES:
            wanted.add(ticket.created_by)
        users = await self._directory.get_many(wanted) if wanted else {}

        return AccessFilter.can_view(
            ticket,
            actor,
            creator=users.get(ticket.created_by),
            assignee=users.get(ticket.assigned_to) if ticket.assigned_to else None,
        )


# ========== Escalation ==========

class EscalationService(_TicketServiceBase):
    """
    Moves tickets one tier up the escalation chain.

    Used directly for explicit escalation and by the periodic sweep for SLA
    breaches.
    """

    def needs_escalation(self, ticket: Ticket, now: Optional[datetime] = None) -> Optional[SLABreach]:
        """
        The breach the sweep should act on, if any.

        Each breach type auto-escalates a ticket once; a response breach that
        was already escalated still lets a later resolution breach through.
        """
        if ticket.status in SWEEP_EXCLUDED_STATUSES:
            return None
        breaches = SLACalculator.detect_breaches(
            ticket.sla,
            now or self._clock(),
            first_response_at=ticket.first_response_at,
            resolved_at=ticket.resolved_at,
        )
        for breach in breaches:
            if not ticket.has_auto_escalation_for(breach.sla_type):
                return breach
        return None

    async def escalate_ticket(
        self,
        ticket: Ticket,
        reason: str,
        actor: Optional[DirectoryUser] = None,
        sla_type: Optional[SLAType] = None
    ) -> Ticket:
        """
        Reassign to the earliest-created active holder of the next role.

        Args:
            ticket: Ticket to escalate, as read from the repository
            reason: Recorded in the escalation history
            actor: Acting user; None for automatic escalation
            sla_type: Breach that triggered an automatic escalation

        Raises:
            StateException: Ticket is Resolved or Closed
            NoEscalationTargetException: No assignee, top of chain, or nobody
                active holds the next role
        """
        if ticket.status in SWEEP_EXCLUDED_STATUSES:
            raise StateException(ticket.id, f"Cannot escalate a {ticket.status.value} ticket")
        if not ticket.assigned_to:
            raise NoEscalationTargetException(ticket.id, "no current assignee")

        current = await self._directory.get(ticket.assigned_to)
        if current is None:
            raise NoEscalationTargetException(ticket.id, "current assignee not found in directory")

        target_role = next_role(current.role)
        if target_role is None:
            raise NoEscalationTargetException(
                ticket.id, f"{current.role.value} is the top of the escalation chain"
            )

        target = select_earliest(await self._directory.list_active_by_roles([target_role]))
        if target is None:
            raise NoEscalationTargetException(
                ticket.id, f"no active user holds the {target_role.value} role"
            )

        now = self._clock()
        record = EscalationRecord(
            from_role=current.role,
            to_role=target_role,
            reason=reason,
            is_auto_escalation=actor is None,
            escalated_at=now,
            escalated_by=actor.id if actor else None,
            sla_type=sla_type,
        )
        ticket.escalate_to(target.id, record)
        saved = await self._save(ticket)

        logger.info(
            "Ticket escalated",
            extra={
                "ticket_id": saved.id,
                "ticket_number": saved.ticket_number,
                "from_role": current.role.value,
                "to_role": target_role.value,
                "assigned_to": target.id,
                "escalation_level": saved.escalation_level,
                "is_auto_escalation": record.is_auto_escalation,
            }
        )
        self._publish(
            "ticket_escalated", saved, record.escalated_by, **record.to_dict()
        )
        return saved

    async def escalate(
        self,
        ticket_id: str,
        actor: DirectoryUser,
        reason: Optional[str] = None
    ) -> Ticket:
        """Explicit escalation by HR or the ticket creator."""
        ticket = await self._load(ticket_id)
        if not AccessFilter.can_update(ticket, actor):
            raise NotAuthorizedException(
                "Only HR personnel or the ticket creator can escalate",
                {"ticket_id": ticket_id, "actor_id": actor.id}
            )
        return await self.escalate_ticket(
            ticket,
            reason=(reason or "").strip() or f"Manual escalation by {actor.name}",
            actor=actor,
        )

    async def sweep_escalations(self) -> SweepResult:
        """
        Auto-escalate every breached ticket once per breach type.

        Every escalation commits on its own. A failure on one ticket rolls
        back just that ticket's write, is logged and counted, and the sweep
        carries on.
        """
        result = SweepResult()
        tickets = await self._ticket_repo.list_for_sweep()
        now = self._clock()

        for ticket in tickets:
            result.examined += 1
            breach = self.needs_escalation(ticket, now)
            if breach is None:
                continue

            try:
                await self.escalate_ticket(
                    ticket, reason=breach.describe(), sla_type=breach.sla_type
                )
                result.escalated += 1
            except NoEscalationTargetException as e:
                result.skipped += 1
                logger.warning(
                    "Breached ticket has no escalation target",
                    extra={"ticket_id": ticket.id, "reason": e.reason}
                )
            except ApplicationException as e:
                await self._ticket_repo.rollback()
                result.failed += 1
                result.errors.append(f"{ticket.ticket_number}: {e.message}")
                logger.error(
                    "Escalation failed",
                    extra={"ticket_id": ticket.id, "code": e.code, "error": e.message}
                )
            except Exception as e:
                await self._ticket_repo.rollback()
                result.failed += 1
                result.errors.append(f"{ticket.ticket_number}: {e}")
                logger.exception("Unexpected escalation failure", extra={"ticket_id": ticket.id})

        logger.info("Escalation sweep finished", extra=result.model_dump(exclude={"errors"}))
        return result


# ========== Ticket lifecycle ==========

class TicketService(_TicketServiceBase):
    """
    Creation, routing, reads and the resolution lifecycle.

    Every mutating operation reads the ticket, applies domain rules and
    writes it back under the repository's version check.
    """

    # Attempts at inserting a new ticket before a number clash is reported
    NUMBER_ATTEMPTS = 3

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        user_directory: IUserDirectory,
        config_provider: ISLAConfigProvider,
        audit_dispatcher: AuditDispatcher,
        clock: Optional[Clock] = None,
        state_machine: Optional[ResolutionStateMachine] = None,
        escalation_service: Optional[EscalationService] = None
    ):
        super().__init__(ticket_repository, user_directory, audit_dispatcher, clock)
        self._config_provider = config_provider
        self._state_machine = state_machine or ResolutionStateMachine()
        self._numbers = TicketNumberGenerator(ticket_repository)
        self._escalation = escalation_service or EscalationService(
            ticket_repository, user_directory, audit_dispatcher, self._clock
        )

    def to_response(self, ticket: Ticket, actor: DirectoryUser) -> TicketResponse:
        """API view, with the confirm and reopen options open to ``actor`` right now."""
        is_creator = ticket.created_by == actor.id
        return TicketResponse.from_domain(
            ticket,
            can_confirm=is_creator and self._state_machine.can_confirm(ticket),
            can_reopen=is_creator and self._state_machine.can_reopen(ticket, self._clock()),
        )

    # ---- creation ----

    async def create_ticket(self, actor: DirectoryUser, request: TicketCreateRequest) -> Ticket:
        """
        File a ticket: number it, compute SLA deadlines and route it.

        An explicit ``assigned_to`` must name an HR user and bypasses
        auto-assignment.
        """
        now = self._clock()
        manual_assignee = None
        if request.assigned_to:
            manual_assignee = await self._directory.get(request.assigned_to)
            if manual_assignee is None or not manual_assignee.is_active:
                raise ValidationException(
                    "Selected HR personnel not found",
                    {"assigned_to": request.assigned_to}
                )
            if not manual_assignee.is_hr:
                raise ValidationException(
                    "Tickets can only be assigned to HR personnel",
                    {"assigned_to": request.assigned_to, "role": manual_assignee.role.value}
                )

        ticket = Ticket(
            id=str(uuid4()),
            ticket_number=await self._numbers.next_number(now),
            created_by=actor.id,
            created_at=now,
            updated_at=now,
            category=request.category,
            subcategory=request.subcategory,
            subject=request.subject,
            description=request.description,
            priority=request.priority,
            tags=list(request.tags),
            sla=SLACalculator.calculate_terms(
                now, request.priority, request.category, self._config_provider.get_config()
            ),
            is_confidential=is_confidential_category(request.category),
        )
        ticket.resolution_status.max_reopen_allowed = self._state_machine.default_max_reopen

        if manual_assignee is not None:
            ticket.assigned_to = manual_assignee.id
            ticket.is_manually_assigned = True
            ticket.routing = RoutingInfo(
                auto_assigned=False,
                assignment_reason="Manually selected by ticket creator",
                routed_at=now,
            )
        else:
            await self._auto_assign(ticket, now)

        saved = await self._insert(ticket, now)
        logger.info(
            "Ticket created",
            extra={
                "ticket_id": saved.id,
                "ticket_number": saved.ticket_number,
                "category": saved.category.value,
                "priority": saved.priority.value,
                "assigned_to": saved.assigned_to,
                "is_manually_assigned": saved.is_manually_assigned,
            }
        )
        self._publish(
            "ticket_created", saved, actor.id,
            category=saved.category.value,
            priority=saved.priority.value,
            assigned_to=saved.assigned_to,
        )
        return saved

    async def _insert(self, ticket: Ticket, now: datetime) -> Ticket:
        """Store a new ticket, renumbering it when a concurrent create took its number."""
        attempt = 1
        while True:
            try:
                saved = await self._ticket_repo.create(ticket)
                await self._ticket_repo.commit()
                return saved
            except DuplicateTicketNumberException:
                await self._ticket_repo.rollback()
                if attempt >= self.NUMBER_ATTEMPTS:
                    raise
            taken = ticket.ticket_number
            ticket.ticket_number = await self._numbers.next_number(now)
            logger.warning(
                "Ticket number already taken, renumbering",
                extra={"taken": taken, "ticket_number": ticket.ticket_number, "attempt": attempt}
            )
            attempt += 1

    async def _auto_assign(self, ticket: Ticket, now: datetime) -> None:
        roles = eligible_roles(ticket.category)
        candidates = await self._directory.list_active_by_roles(roles)
        workloads = await self._ticket_repo.count_open_by_assignee([c.id for c in candidates])
        chosen = select_least_loaded(candidates, workloads)
        if chosen is None:
            logger.warning(
                "No eligible HR personnel, ticket left unassigned",
                extra={"category": ticket.category.value, "roles": [r.value for r in roles]}
            )
            return

        ticket.assigned_to = chosen.id
        ticket.is_manually_assigned = False
        ticket.routing = RoutingInfo(
            auto_assigned=True,
            assignment_reason=(
                f"Auto-assigned to {chosen.role.value} with "
                f"{workloads.get(chosen.id, 0)} open tickets"
            ),
            routed_at=now,
        )

    # ---- reads ----

    async def get_ticket(self, ticket_id: str, actor: DirectoryUser) -> Ticket:
        ticket = await self._load(ticket_id)
        if not await self._can_view(ticket, actor):
            raise NotAuthorizedException(
                "Not authorized to view this ticket",
                {"ticket_id": ticket_id, "actor_id": actor.id}
            )
        return ticket

    async def _scoped(self, actor: DirectoryUser, filters: TicketFilter) -> TicketFilter:
        """Narrow ``filters`` to the tickets ``actor`` may read."""
        if actor.role in UNRESTRICTED_ROLES:
            return filters
        if actor.is_hr:
            filters.hr_scope = AccessFilter.hr_scope(actor)
            return filters
        # Non-HR users only ever see their own tickets or their reports'
        scope = [actor.id]
        if actor.role in LINE_MANAGER_ROLES:
            scope.extend(await self._directory.list_direct_reports(actor.id))
        filters.created_by_in = scope
        return filters

    async def list_tickets(
        self,
        actor: DirectoryUser,
        query: Optional[TicketListQuery] = None
    ) -> Tuple[List[Ticket], int]:
        """
        Tickets the actor may see, one page at a time.

        Returns:
            (page of tickets, total visible count)
        """
        query = query or TicketListQuery()
        filters = await self._scoped(actor, TicketFilter(
            status=query.status,
            category=query.category,
            priority=query.priority,
            assigned_to=query.assigned_to,
            search=query.search.strip() if query.search else None,
            newest_first=query.sort_order == "desc",
        ))
        total = await self._ticket_repo.count(filters)
        page = await self._ticket_repo.list(
            filters, offset=(query.page - 1) * query.limit, limit=query.limit
        )
        return page, total

    async def get_ticket_stats(self, actor: DirectoryUser) -> TicketStatsResponse:
        visible = await self._ticket_repo.list(await self._scoped(actor, TicketFilter()))

        response_times = [t.response_time_hours for t in visible if t.response_time_hours is not None]
        resolution_times = [t.resolution_time_hours for t in visible if t.resolution_time_hours is not None]

        def _avg(values: List[float]) -> Optional[float]:
            return round(sum(values) / len(values), 2) if values else None

        return TicketStatsResponse(
            total=len(visible),
            by_status=dict(Counter(t.status.value for t in visible)),
            by_category=dict(Counter(t.category.value for t in visible)),
            by_priority=dict(Counter(t.priority.value for t in visible)),
            avg_response_hours=_avg(response_times),
            avg_resolution_hours=_avg(resolution_times),
        )

    async def list_eligible_personnel(
        self,
        category: Optional[str] = None
    ) -> EligiblePersonnelResponse:
        """Active HR agents who could take a ticket, least busy first."""
        if category:
            try:
                roles = list(eligible_roles(TicketCategory(category)))
            except ValueError:
                raise ValidationException("Invalid category", {"category": category})
        else:
            roles = list(WORKING_HR_ROLES)

        agents = await self._directory.list_active_by_roles(roles)
        workloads = await self._ticket_repo.count_open_by_assignee([a.id for a in agents])
        entries = sorted(
            (
                PersonnelEntry(
                    id=a.id,
                    name=a.name,
                    email=a.email,
                    role=a.role,
                    workload=workloads.get(a.id, 0),
                )
                for a in agents
            ),
            key=lambda e: (e.workload, e.name)
        )
        return EligiblePersonnelResponse(
            category=category or "",
            eligible_roles=roles,
            hr_personnel=entries,
        )

    # ---- HR actions ----

    def _require_hr(self, actor: DirectoryUser, action: str, ticket_id: str) -> None:
        if not actor.is_hr:
            raise NotAuthorizedException(
                f"Only HR personnel can {action}",
                {"ticket_id": ticket_id, "actor_id": actor.id}
            )

    async def _require_view(self, ticket: Ticket, actor: DirectoryUser) -> None:
        if not await self._can_view(ticket, actor):
            raise NotAuthorizedException(
                "Not authorized to act on this ticket",
                {"ticket_id": ticket.id, "actor_id": actor.id}
            )

    async def update_status(
        self,
        ticket_id: str,
        new_status: TicketStatus,
        actor: DirectoryUser,
        reason: Optional[str] = None
    ) -> Ticket:
        """
        HR status change.

        Resolved and Escalated route through their dedicated transitions;
        Closed is HR's permanent closure; Reopened is creator-only.
        """
        ticket = await self._load(ticket_id)
        self._require_hr(actor, "update ticket status", ticket_id)
        await self._require_view(ticket, actor)

        if new_status == TicketStatus.RESOLVED:
            return await self._apply_resolve(ticket, actor, reason)
        if new_status == TicketStatus.ESCALATED:
            self._state_machine.require_not_permanently_closed(ticket)
            return await self._escalation.escalate_ticket(
                ticket,
                reason=(reason or "").strip() or f"Manual escalation by {actor.name}",
                actor=actor,
            )
        if new_status == TicketStatus.REOPENED:
            raise ValidationException(
                "Only the ticket creator can reopen a ticket",
                {"ticket_id": ticket_id, "status": new_status.value}
            )

        previous = ticket.status
        now = self._clock()
        if new_status == TicketStatus.CLOSED:
            self._state_machine.close_permanently(ticket, actor, now)
        else:
            self._state_machine.set_status(ticket, actor, new_status, now)

        saved = await self._save(ticket)
        logger.info(
            "Ticket status updated",
            extra={
                "ticket_id": saved.id,
                "from_status": previous.value,
                "to_status": saved.status.value,
                "actor_id": actor.id,
            }
        )
        self._publish(
            "ticket_status_changed", saved, actor.id,
            from_status=previous.value, to_status=saved.status.value, reason=reason,
        )
        return saved

    async def update_details(
        self,
        ticket_id: str,
        actor: DirectoryUser,
        request: TicketDetailsUpdateRequest
    ) -> Ticket:
        """HR reclassification; SLA deadlines follow priority and category."""
        ticket = await self._load(ticket_id)
        self._require_hr(actor, "update ticket details", ticket_id)
        await self._require_view(ticket, actor)
        self._state_machine.require_not_permanently_closed(ticket)

        reclassified = False
        if request.priority is not None and request.priority != ticket.priority:
            ticket.priority = request.priority
            reclassified = True
        if request.category is not None and request.category != ticket.category:
            ticket.category = request.category
            reclassified = True
            if is_confidential_category(request.category):
                ticket.is_confidential = True
        if request.subcategory is not None:
            ticket.subcategory = request.subcategory
        if request.tags is not None:
            ticket.tags = list(request.tags)

        if reclassified:
            ticket.apply_sla(SLACalculator.calculate_terms(
                ticket.created_at, ticket.priority, ticket.category,
                self._config_provider.get_config()
            ))
        ticket.touch(self._clock())

        saved = await self._save(ticket)
        self._publish(
            "ticket_updated", saved, actor.id,
            priority=saved.priority.value, category=saved.category.value,
        )
        return saved

    async def assign(
        self,
        ticket_id: str,
        agent_id: str,
        actor: DirectoryUser,
        reason: Optional[str] = None
    ) -> Ticket:
        """Manual (re)assignment by HR to another HR user."""
        ticket = await self._load(ticket_id)
        self._require_hr(actor, "assign tickets", ticket_id)
        self._state_machine.require_not_permanently_closed(ticket)

        agent = await self._directory.get(agent_id)
        if agent is None:
            raise ResourceNotFoundException("User", agent_id)
        if not agent.is_hr or not agent.is_active:
            raise ValidationException(
                "Tickets can only be assigned to active HR personnel",
                {"assigned_to": agent_id, "role": agent.role.value}
            )

        now = self._clock()
        previous = ticket.assigned_to
        ticket.assigned_to = agent.id
        ticket.is_manually_assigned = True
        ticket.routing = RoutingInfo(
            auto_assigned=False,
            assignment_reason=(reason or "").strip() or f"Assigned by {actor.name}",
            routed_at=now,
        )
        ticket.touch(now)

        saved = await self._save(ticket)
        logger.info(
            "Ticket assigned",
            extra={"ticket_id": saved.id, "from": previous, "to": agent.id, "actor_id": actor.id}
        )
        self._publish(
            "ticket_assigned", saved, actor.id, previous_assignee=previous, assigned_to=agent.id
        )
        return saved

    async def escalate(
        self,
        ticket_id: str,
        actor: DirectoryUser,
        reason: Optional[str] = None
    ) -> Ticket:
        return await self._escalation.escalate(ticket_id, actor, reason)

    async def record_response(self, ticket_id: str, actor: DirectoryUser) -> Ticket:
        """An HR reply was posted; stops the response clock the first time."""
        ticket = await self._load(ticket_id)
        self._require_hr(actor, "respond to tickets", ticket_id)
        await self._require_view(ticket, actor)

        ticket.mark_first_response(self._clock())
        saved = await self._save(ticket)
        self._publish(
            "ticket_responded", saved, actor.id,
            first_response_at=saved.first_response_at.isoformat(),
        )
        return saved

    async def resolve(
        self,
        ticket_id: str,
        actor: DirectoryUser,
        resolution_comment: Optional[str] = None
    ) -> Ticket:
        ticket = await self._load(ticket_id)
        self._require_hr(actor, "resolve tickets", ticket_id)
        await self._require_view(ticket, actor)
        return await self._apply_resolve(ticket, actor, resolution_comment)

    async def _apply_resolve(
        self,
        ticket: Ticket,
        actor: DirectoryUser,
        comment: Optional[str]
    ) -> Ticket:
        self._state_machine.resolve(ticket, actor, self._clock(), comment)
        saved = await self._save(ticket)
        logger.info(
            "Ticket resolved",
            extra={
                "ticket_id": saved.id,
                "resolved_by": actor.id,
                "reopen_deadline": saved.resolution_status.reopen_deadline.isoformat(),
            }
        )
        self._publish(
            "ticket_resolved", saved, actor.id,
            reopen_deadline=saved.resolution_status.reopen_deadline.isoformat(),
        )
        return saved

    # ---- creator actions ----

    async def confirm(self, ticket_id: str, actor: DirectoryUser) -> Ticket:
        ticket = await self._load(ticket_id)
        self._state_machine.confirm(ticket, actor, self._clock())
        saved = await self._save(ticket)
        logger.info("Resolution confirmed", extra={"ticket_id": saved.id, "actor_id": actor.id})
        self._publish("ticket_confirmed", saved, actor.id)
        return saved

    async def reopen(
        self,
        ticket_id: str,
        actor: DirectoryUser,
        reason: Optional[str] = None
    ) -> Ticket:
        ticket = await self._load(ticket_id)
        self._state_machine.reopen(ticket, actor, self._clock())
        saved = await self._save(ticket)
        rs = saved.resolution_status
        logger.info(
            "Ticket reopened",
            extra={
                "ticket_id": saved.id,
                "reopen_count": rs.reopen_count,
                "max_reopen_allowed": rs.max_reopen_allowed,
            }
        )
        self._publish(
            "ticket_reopened", saved, actor.id,
            reopen_count=rs.reopen_count, reason=reason,
        )
        return saved

    async def submit_feedback(
        self,
        ticket_id: str,
        actor: DirectoryUser,
        rating: int,
        comment: Optional[str] = None
    ) -> Ticket:
        ticket = await self._load(ticket_id)
        if ticket.created_by != actor.id:
            raise NotAuthorizedException(
                "Only the ticket creator can submit feedback",
                {"ticket_id": ticket_id, "actor_id": actor.id}
            )
        if ticket.status not in (TicketStatus.RESOLVED, TicketStatus.CLOSED):
            raise StateException(
                ticket_id, "Feedback can only be submitted for resolved or closed tickets"
            )
        try:
            feedback = Feedback(rating=rating, submitted_at=self._clock(), comment=(comment or "").strip())
        except ValueError as e:
            raise ValidationException(str(e), {"rating": rating})

        ticket.feedback = feedback
        ticket.touch(feedback.submitted_at)
        saved = await self._save(ticket)
        self._publish("ticket_feedback_submitted", saved, actor.id, rating=rating)
        return saved

