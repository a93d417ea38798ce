import copy
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Set

import pytest
import pytest_asyncio

from hr_helpdesk.config import Priority, Role, SWEEP_EXCLUDED_STATUSES, TicketCategory, WORKLOAD_STATUSES
from hr_helpdesk.core import (
    ConcurrentModificationException,
    DuplicateTicketNumberException,
    RepositoryException,
)
from hr_helpdesk.tickets.application import (
    AuditDispatcher,
    AuditEvent,
    EscalationService,
    IAuditPublisher,
    ISLAConfigProvider,
    ITicketRepository,
    IUserDirectory,
    TicketCreateRequest,
    TicketFilter,
    TicketService,
)
from hr_helpdesk.tickets.domain import DirectoryUser, HRScope, ResolutionStateMachine, SLAConfig, Ticket

BASE_TIME = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FixedClock:
    """Steerable clock handed to the services."""

    def __init__(self, now: datetime = BASE_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class InMemoryTicketRepository(ITicketRepository):
    """
    Dict-backed store that copies on the way in and out, like a database.

    Writes apply at once but are remembered until ``commit``; ``rollback``
    puts the remembered tickets back.
    """

    def __init__(self, directory: Optional["InMemoryUserDirectory"] = None):
        self.tickets: Dict[str, Ticket] = {}
        self.directory = directory
        self.fail_number_lookup = False
        self.fail_updates_for: Set[str] = set()
        self.fail_commits = False
        # Creates that lose their number to a rival inserted just before them
        self.rival_creates = 0
        self.commits = 0
        self._undo: Dict[str, Optional[Ticket]] = {}

    @property
    def uncommitted(self) -> Set[str]:
        return set(self._undo)

    def _remember(self, ticket_id: str) -> None:
        if ticket_id not in self._undo:
            stored = self.tickets.get(ticket_id)
            self._undo[ticket_id] = copy.deepcopy(stored) if stored else None

    async def commit(self) -> None:
        if self.fail_commits:
            raise RepositoryException("Simulated commit failure")
        self._undo.clear()
        self.commits += 1

    async def rollback(self) -> None:
        for ticket_id, before in self._undo.items():
            if before is None:
                self.tickets.pop(ticket_id, None)
            else:
                self.tickets[ticket_id] = before
        self._undo.clear()

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        stored = self.tickets.get(ticket_id)
        return copy.deepcopy(stored) if stored else None

    async def create(self, ticket: Ticket) -> Ticket:
        if self.rival_creates:
            self.rival_creates -= 1
            rival = copy.deepcopy(ticket)
            rival.id = f"rival-{ticket.ticket_number}"
            self.tickets[rival.id] = rival
        if any(t.ticket_number == ticket.ticket_number for t in self.tickets.values()):
            raise DuplicateTicketNumberException(ticket.ticket_number)
        self._remember(ticket.id)
        ticket.version = 1
        self.tickets[ticket.id] = copy.deepcopy(ticket)
        return ticket

    async def update(self, ticket: Ticket) -> Ticket:
        if ticket.id in self.fail_updates_for:
            raise RepositoryException("Simulated write failure", {"ticket_id": ticket.id})
        stored = self.tickets.get(ticket.id)
        if stored is None or stored.version != ticket.version:
            raise ConcurrentModificationException(ticket.id)
        self._remember(ticket.id)
        ticket.version += 1
        self.tickets[ticket.id] = copy.deepcopy(ticket)
        return ticket

    def _in_hr_scope(self, t: Ticket, scope: HRScope) -> bool:
        if scope.user_id in (t.created_by, t.assigned_to):
            return True
        if t.is_confidential and not scope.include_confidential:
            return False
        if t.is_manually_assigned:
            assignee = self.directory.users.get(t.assigned_to) if self.directory else None
            return assignee is not None and assignee.role in scope.outranked_roles
        return t.category in scope.categories

    def _matching(self, filters: TicketFilter) -> List[Ticket]:
        result = []
        for t in self.tickets.values():
            if filters.status is not None and t.status != filters.status:
                continue
            if filters.category is not None and t.category != filters.category:
                continue
            if filters.priority is not None and t.priority != filters.priority:
                continue
            if filters.assigned_to and t.assigned_to != filters.assigned_to:
                continue
            if filters.created_by_in is not None and t.created_by not in filters.created_by_in:
                continue
            if filters.hr_scope is not None and not self._in_hr_scope(t, filters.hr_scope):
                continue
            if filters.search:
                needle = filters.search.lower()
                haystack = f"{t.ticket_number} {t.subject} {t.description}".lower()
                if needle not in haystack:
                    continue
            result.append(t)
        return result

    async def list(
        self,
        filters: TicketFilter,
        offset: int = 0,
        limit: Optional[int] = None
    ) -> List[Ticket]:
        result = sorted(
            self._matching(filters),
            key=lambda t: (t.created_at, t.ticket_number),
            reverse=filters.newest_first,
        )
        end = None if limit is None else offset + limit
        return [copy.deepcopy(t) for t in result[offset:end]]

    async def count(self, filters: TicketFilter) -> int:
        return len(self._matching(filters))

    async def list_for_sweep(self) -> List[Ticket]:
        return sorted(
            (copy.deepcopy(t) for t in self.tickets.values() if t.status not in SWEEP_EXCLUDED_STATUSES),
            key=lambda t: t.created_at,
        )

    async def count_open_by_assignee(self, assignee_ids: Sequence[str]) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for t in self.tickets.values():
            if t.assigned_to in assignee_ids and t.status in WORKLOAD_STATUSES:
                counts[t.assigned_to] = counts.get(t.assigned_to, 0) + 1
        return counts

    async def max_ticket_number_with_prefix(self, prefix: str) -> Optional[str]:
        if self.fail_number_lookup:
            raise RepositoryException("Ticket store unavailable")
        numbers = [t.ticket_number for t in self.tickets.values() if t.ticket_number.startswith(prefix)]
        return max(numbers, key=lambda n: (len(n), n)) if numbers else None


class InMemoryUserDirectory(IUserDirectory):

    def __init__(self, users: Iterable[DirectoryUser] = ()):
        self.users: Dict[str, DirectoryUser] = {u.id: u for u in users}

    def add(self, user: DirectoryUser) -> DirectoryUser:
        self.users[user.id] = user
        return user

    async def get(self, user_id: str) -> Optional[DirectoryUser]:
        return self.users.get(user_id)

    async def get_many(self, user_ids: Iterable[str]) -> Dict[str, DirectoryUser]:
        return {uid: self.users[uid] for uid in user_ids if uid in self.users}

    async def list_active_by_roles(self, roles: Sequence[Role]) -> List[DirectoryUser]:
        return sorted(
            (u for u in self.users.values() if u.role in roles and u.is_active),
            key=lambda u: (u.created_at, u.id),
        )

    async def list_direct_reports(self, manager_id: str) -> List[str]:
        return [u.id for u in self.users.values() if u.reporting_manager_id == manager_id]


class RecordingAuditPublisher(IAuditPublisher):

    def __init__(self):
        self.events: List[AuditEvent] = []
        self.fail = False

    async def publish(self, event: AuditEvent) -> None:
        if self.fail:
            raise RuntimeError("audit sink down")
        self.events.append(event)

    def types(self) -> List[str]:
        return [e.event_type for e in self.events]


class StaticConfigProvider(ISLAConfigProvider):

    def __init__(self, config: Optional[SLAConfig] = None):
        self.config = config or SLAConfig()

    def get_config(self) -> SLAConfig:
        return self.config


def make_user(
    user_id: str,
    role: Role,
    days_old: int = 100,
    is_active: bool = True,
    reporting_manager_id: Optional[str] = None
) -> DirectoryUser:
    return DirectoryUser(
        id=user_id,
        name=user_id.replace("-", " ").title(),
        email=f"{user_id}@example.com",
        role=role,
        is_active=is_active,
        created_at=BASE_TIME - timedelta(days=days_old),
        reporting_manager_id=reporting_manager_id,
    )


def ticket_request(
    category: TicketCategory = TicketCategory.LEAVE_ISSUE,
    priority: Priority = Priority.MEDIUM,
    **kwargs
) -> TicketCreateRequest:
    return TicketCreateRequest(
        category=category,
        priority=priority,
        subject=kwargs.pop("subject", "Leave balance looks wrong"),
        description=kwargs.pop("description", "My casual leave balance dropped by two days."),
        **kwargs,
    )


# ========== Fixtures ==========

@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def users() -> Dict[str, DirectoryUser]:
    """A small org: one VP, two of each working HR tier, line staff."""
    org = [
        make_user("admin", Role.ADMIN, days_old=900),
        make_user("vp", Role.VICE_PRESIDENT, days_old=800),
        make_user("bp-old", Role.HR_BP, days_old=700),
        make_user("bp-new", Role.HR_BP, days_old=50),
        make_user("mgr-old", Role.HR_MANAGER, days_old=600),
        make_user("mgr-new", Role.HR_MANAGER, days_old=40),
        make_user("exec-old", Role.HR_EXECUTIVE, days_old=500),
        make_user("exec-new", Role.HR_EXECUTIVE, days_old=30),
        make_user("lead", Role.TEAM_LEADER, days_old=400),
        make_user("emp", Role.EMPLOYEE, days_old=300, reporting_manager_id="lead"),
        make_user("emp-other", Role.EMPLOYEE, days_old=200),
    ]
    return {u.id: u for u in org}


@pytest.fixture
def directory(users) -> InMemoryUserDirectory:
    return InMemoryUserDirectory(users.values())


@pytest.fixture
def repo(directory) -> InMemoryTicketRepository:
    return InMemoryTicketRepository(directory)


@pytest.fixture
def audit() -> RecordingAuditPublisher:
    return RecordingAuditPublisher()


@pytest_asyncio.fixture
async def dispatcher(audit):
    """Background delivery into ``audit``; await ``drain()`` before reading events."""
    dispatcher = AuditDispatcher(audit)
    yield dispatcher
    await dispatcher.drain()


@pytest.fixture
def config_provider() -> StaticConfigProvider:
    return StaticConfigProvider()


@pytest.fixture
def escalation_service(repo, directory, dispatcher, clock) -> EscalationService:
    return EscalationService(repo, directory, dispatcher, clock)


@pytest.fixture
def service(repo, directory, config_provider, dispatcher, clock, escalation_service) -> TicketService:
    return TicketService(
        repo,
        directory,
        config_provider,
        dispatcher,
        clock=clock,
        state_machine=ResolutionStateMachine(),
        escalation_service=escalation_service,
    )


@pytest_asyncio.fixture
async def leave_ticket(service, users) -> Ticket:
    """Leave Issue ticket raised by ``emp``; routes to an HR Executive."""
    return await service.create_ticket(users["emp"], ticket_request())


@pytest_asyncio.fixture
async def resolved_ticket(service, users, leave_ticket, clock) -> Ticket:
    clock.advance(hours=2)
    return await service.resolve(leave_ticket.id, users[leave_ticket.assigned_to], "Balance corrected")
