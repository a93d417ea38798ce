"""
Ticket Infrastructure Repositories
==================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database, and how ORM rows map back to domain objects.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hr_helpdesk.config import (
    Priority,
    Role,
    SLAType,
    SWEEP_EXCLUDED_STATUSES,
    TicketCategory,
    TicketStatus,
    WORKLOAD_STATUSES,
)
from hr_helpdesk.core import (
    ConcurrentModificationException,
    DuplicateTicketNumberException,
    RepositoryException,
)
from hr_helpdesk.shared.infrastructure.logging import get_logger
from hr_helpdesk.tickets.application.services import (
    ITicketRepository,
    IUserDirectory,
    TicketFilter,
)
from hr_helpdesk.tickets.domain import (
    DirectoryUser,
    EscalationRecord,
    Feedback,
    HRScope,
    ResolutionStatus,
    RoutingInfo,
    SLATerms,
    Ticket,
)
from hr_helpdesk.tickets.infrastructure.models import TicketModel, UserModel

logger = get_logger(__name__)


# ========== Mapping helpers ==========

def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _dump_dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _load_dt(value: Optional[str]) -> Optional[datetime]:
    return _aware(datetime.fromisoformat(value)) if value else None


def _dump_resolution(rs: ResolutionStatus) -> Dict[str, Any]:
    return {
        "resolved_by_hr": rs.resolved_by_hr,
        "resolved_at": _dump_dt(rs.resolved_at),
        "resolved_by": rs.resolved_by,
        "resolution_comment": rs.resolution_comment,
        "employee_confirmed": rs.employee_confirmed,
        "employee_confirmed_at": _dump_dt(rs.employee_confirmed_at),
        "reopen_count": rs.reopen_count,
        "max_reopen_allowed": rs.max_reopen_allowed,
        "reopen_deadline": _dump_dt(rs.reopen_deadline),
        "last_reopened_at": _dump_dt(rs.last_reopened_at),
        "permanently_closed_by_hr": rs.permanently_closed_by_hr,
        "permanently_closed_at": _dump_dt(rs.permanently_closed_at),
        "permanently_closed_by": rs.permanently_closed_by,
    }


def _load_resolution(data: Optional[dict]) -> ResolutionStatus:
    data = data or {}
    return ResolutionStatus(
        resolved_by_hr=data.get("resolved_by_hr", False),
        resolved_at=_load_dt(data.get("resolved_at")),
        resolved_by=data.get("resolved_by"),
        resolution_comment=data.get("resolution_comment", ""),
        employee_confirmed=data.get("employee_confirmed", False),
        employee_confirmed_at=_load_dt(data.get("employee_confirmed_at")),
        reopen_count=data.get("reopen_count", 0),
        max_reopen_allowed=data.get("max_reopen_allowed", 3),
        reopen_deadline=_load_dt(data.get("reopen_deadline")),
        last_reopened_at=_load_dt(data.get("last_reopened_at")),
        permanently_closed_by_hr=data.get("permanently_closed_by_hr", False),
        permanently_closed_at=_load_dt(data.get("permanently_closed_at")),
        permanently_closed_by=data.get("permanently_closed_by"),
    )


def _load_escalation(entry: dict) -> EscalationRecord:
    return EscalationRecord(
        from_role=Role(entry["from_role"]) if entry.get("from_role") else None,
        to_role=Role(entry["to_role"]),
        reason=entry.get("reason", ""),
        is_auto_escalation=entry.get("is_auto_escalation", False),
        escalated_at=_load_dt(entry["escalated_at"]),
        escalated_by=entry.get("escalated_by"),
        sla_type=SLAType(entry["sla_type"]) if entry.get("sla_type") else None,
    )


def _columns(ticket: Ticket) -> Dict[str, Any]:
    """Domain ticket -> column values (everything except id and version)."""
    return {
        "ticket_number": ticket.ticket_number,
        "created_by": ticket.created_by,
        "category": ticket.category.value,
        "subcategory": ticket.subcategory,
        "subject": ticket.subject,
        "description": ticket.description,
        "priority": ticket.priority.value,
        "tags": list(ticket.tags),
        "assigned_to": ticket.assigned_to,
        "is_manually_assigned": ticket.is_manually_assigned,
        "routing": {
            "auto_assigned": ticket.routing.auto_assigned,
            "assignment_reason": ticket.routing.assignment_reason,
            "routed_at": _dump_dt(ticket.routing.routed_at),
        } if ticket.routing else None,
        "status": ticket.status.value,
        "escalation_level": ticket.escalation_level,
        "escalation_history": [entry.to_dict() for entry in ticket.escalation_history],
        "resolution_status": _dump_resolution(ticket.resolution_status),
        "is_confidential": ticket.is_confidential,
        "feedback": {
            "rating": ticket.feedback.rating,
            "comment": ticket.feedback.comment,
            "submitted_at": _dump_dt(ticket.feedback.submitted_at),
        } if ticket.feedback else None,
        "sla_response_hours": ticket.sla.response_hours,
        "sla_resolution_hours": ticket.sla.resolution_hours,
        "response_deadline": ticket.sla.response_deadline,
        "resolution_deadline": ticket.sla.resolution_deadline,
        "first_response_at": ticket.first_response_at,
        "last_response_at": ticket.last_response_at,
        "resolved_at": ticket.resolved_at,
        "closed_at": ticket.closed_at,
        "created_at": ticket.created_at,
        "updated_at": ticket.updated_at,
    }


def ticket_from_model(model: TicketModel) -> Ticket:
    routing = model.routing
    feedback = model.feedback
    return Ticket(
        id=model.id,
        ticket_number=model.ticket_number,
        created_by=model.created_by,
        created_at=_aware(model.created_at),
        updated_at=_aware(model.updated_at),
        category=TicketCategory(model.category),
        subcategory=model.subcategory,
        subject=model.subject,
        description=model.description,
        priority=Priority(model.priority),
        tags=list(model.tags or []),
        sla=SLATerms(
            response_hours=model.sla_response_hours,
            resolution_hours=model.sla_resolution_hours,
            response_deadline=_aware(model.response_deadline),
            resolution_deadline=_aware(model.resolution_deadline),
        ),
        assigned_to=model.assigned_to,
        is_manually_assigned=model.is_manually_assigned,
        routing=RoutingInfo(
            auto_assigned=routing["auto_assigned"],
            assignment_reason=routing["assignment_reason"],
            routed_at=_load_dt(routing["routed_at"]),
        ) if routing else None,
        status=TicketStatus(model.status),
        escalation_level=model.escalation_level,
        escalation_history=[_load_escalation(e) for e in (model.escalation_history or [])],
        first_response_at=_aware(model.first_response_at),
        last_response_at=_aware(model.last_response_at),
        resolved_at=_aware(model.resolved_at),
        closed_at=_aware(model.closed_at),
        resolution_status=_load_resolution(model.resolution_status),
        is_confidential=model.is_confidential,
        feedback=Feedback(
            rating=feedback["rating"],
            comment=feedback.get("comment", ""),
            submitted_at=_load_dt(feedback["submitted_at"]),
        ) if feedback else None,
        version=model.version,
    )


def user_from_model(model: UserModel) -> DirectoryUser:
    return DirectoryUser(
        id=model.id,
        name=model.name,
        email=model.email,
        role=Role(model.role),
        is_active=model.is_active,
        created_at=_aware(model.created_at),
        reporting_manager_id=model.reporting_manager_id,
    )


# ========== Query helpers ==========

def _hr_scope_clause(scope: HRScope):
    """SQL form of the HR branch of AccessFilter.can_view."""
    lower_tier_users = select(UserModel.id).where(
        UserModel.role.in_([r.value for r in scope.outranked_roles])
    )
    tier_visible = or_(
        and_(
            TicketModel.is_manually_assigned.is_(False),
            TicketModel.category.in_([c.value for c in scope.categories]),
        ),
        and_(
            TicketModel.is_manually_assigned.is_(True),
            TicketModel.assigned_to.in_(lower_tier_users),
        ),
    )
    if not scope.include_confidential:
        tier_visible = and_(TicketModel.is_confidential.is_(False), tier_visible)
    return or_(
        TicketModel.created_by == scope.user_id,
        TicketModel.assigned_to == scope.user_id,
        tier_visible,
    )


def _conditions(filters: TicketFilter) -> list:
    conditions = []
    if filters.status is not None:
        conditions.append(TicketModel.status == filters.status.value)
    if filters.category is not None:
        conditions.append(TicketModel.category == filters.category.value)
    if filters.priority is not None:
        conditions.append(TicketModel.priority == filters.priority.value)
    if filters.assigned_to:
        conditions.append(TicketModel.assigned_to == filters.assigned_to)
    if filters.created_by_in is not None:
        conditions.append(TicketModel.created_by.in_(filters.created_by_in))
    if filters.hr_scope is not None:
        conditions.append(_hr_scope_clause(filters.hr_scope))
    if filters.search:
        pattern = f"%{filters.search}%"
        conditions.append(or_(
            TicketModel.ticket_number.ilike(pattern),
            TicketModel.subject.ilike(pattern),
            TicketModel.description.ilike(pattern),
        ))
    return conditions


# ========== Repositories ==========

class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Writes are conditional on the version read earlier, so two concurrent
    lifecycle operations on one ticket cannot both succeed.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _execute(self, stmt):
        try:
            return await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException("Ticket store query failed", {"error": str(e)}) from e

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        stmt = (
            select(TicketModel)
            .where(TicketModel.id == ticket_id)
            .execution_options(populate_existing=True)
        )
        result = await self._execute(stmt)
        model = result.scalar_one_or_none()
        return ticket_from_model(model) if model else None

    async def create(self, ticket: Ticket) -> Ticket:
        model = TicketModel(id=ticket.id, version=1, **_columns(ticket))
        self._session.add(model)
        try:
            await self._session.flush()
        except IntegrityError as e:
            if "ticket_number" in str(e.orig):
                raise DuplicateTicketNumberException(ticket.ticket_number) from e
            raise RepositoryException(
                f"Ticket {ticket.ticket_number} could not be stored",
                {"ticket_number": ticket.ticket_number, "error": str(e.orig)}
            ) from e
        ticket.version = 1
        return ticket

    async def update(self, ticket: Ticket) -> Ticket:
        stmt = (
            update(TicketModel)
            .where(TicketModel.id == ticket.id, TicketModel.version == ticket.version)
            .values(version=ticket.version + 1, **_columns(ticket))
            .execution_options(synchronize_session=False)
        )
        result = await self._execute(stmt)
        if result.rowcount != 1:
            logger.warning(
                "Stale ticket write rejected",
                extra={"ticket_id": ticket.id, "version": ticket.version}
            )
            raise ConcurrentModificationException(ticket.id)
        ticket.version += 1
        return ticket

    async def list(
        self,
        filters: TicketFilter,
        offset: int = 0,
        limit: Optional[int] = None
    ) -> List[Ticket]:
        stmt = select(TicketModel).execution_options(populate_existing=True)

        conditions = _conditions(filters)
        if conditions:
            stmt = stmt.where(*conditions)

        order = TicketModel.created_at.desc() if filters.newest_first else TicketModel.created_at.asc()
        stmt = stmt.order_by(order, TicketModel.ticket_number)
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self._execute(stmt)
        return [ticket_from_model(m) for m in result.scalars().all()]

    async def count(self, filters: TicketFilter) -> int:
        stmt = select(func.count()).select_from(TicketModel)
        conditions = _conditions(filters)
        if conditions:
            stmt = stmt.where(*conditions)
        result = await self._execute(stmt)
        return result.scalar_one()

    async def commit(self) -> None:
        try:
            await self._session.commit()
        except SQLAlchemyError as e:
            raise RepositoryException("Ticket store commit failed", {"error": str(e)}) from e

    async def rollback(self) -> None:
        await self._session.rollback()

    async def list_for_sweep(self) -> List[Ticket]:
        stmt = (
            select(TicketModel)
            .where(TicketModel.status.not_in([s.value for s in SWEEP_EXCLUDED_STATUSES]))
            .order_by(TicketModel.created_at)
            .execution_options(populate_existing=True)
        )
        result = await self._execute(stmt)
        return [ticket_from_model(m) for m in result.scalars().all()]

    async def count_open_by_assignee(self, assignee_ids: Sequence[str]) -> Dict[str, int]:
        if not assignee_ids:
            return {}
        stmt = (
            select(TicketModel.assigned_to, func.count(TicketModel.id))
            .where(
                TicketModel.assigned_to.in_(list(assignee_ids)),
                TicketModel.status.in_([s.value for s in WORKLOAD_STATUSES]),
            )
            .group_by(TicketModel.assigned_to)
        )
        result = await self._execute(stmt)
        return {assignee: count for assignee, count in result.all()}

    async def max_ticket_number_with_prefix(self, prefix: str) -> Optional[str]:
        stmt = (
            select(TicketModel.ticket_number)
            .where(TicketModel.ticket_number.like(f"{prefix}%"))
            .order_by(func.length(TicketModel.ticket_number).desc(), TicketModel.ticket_number.desc())
            .limit(1)
        )
        result = await self._execute(stmt)
        return result.scalar_one_or_none()


class SQLAlchemyUserDirectory(IUserDirectory):
    """Reads the users table as the ticket engine's user directory."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, user_id: str) -> Optional[DirectoryUser]:
        model = await self._session.get(UserModel, user_id)
        return user_from_model(model) if model else None

    async def get_many(self, user_ids: Iterable[str]) -> Dict[str, DirectoryUser]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        result = await self._session.execute(select(UserModel).where(UserModel.id.in_(ids)))
        return {m.id: user_from_model(m) for m in result.scalars().all()}

    async def list_active_by_roles(self, roles: Sequence[Role]) -> List[DirectoryUser]:
        stmt = (
            select(UserModel)
            .where(
                UserModel.role.in_([r.value for r in roles]),
                UserModel.is_active.is_(True),
            )
            .order_by(UserModel.created_at, UserModel.id)
        )
        result = await self._session.execute(stmt)
        return [user_from_model(m) for m in result.scalars().all()]

    async def list_direct_reports(self, manager_id: str) -> List[str]:
        stmt = select(UserModel.id).where(UserModel.reporting_manager_id == manager_id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def add(self, user: DirectoryUser) -> DirectoryUser:
        """Register a user; used by seeding scripts and tests."""
        self._session.add(UserModel(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role.value,
            is_active=user.is_active,
            reporting_manager_id=user.reporting_manager_id,
            created_at=user.created_at,
        ))
        await self._session.flush()
        return user
