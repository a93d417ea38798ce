"""
Ticket Application DTOs
=======================

Data Transfer Objects for the tickets API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from hr_helpdesk.config import Priority, Role, TicketCategory, TicketStatus
from hr_helpdesk.tickets.domain import Ticket


# ========== Request DTOs ==========

class TicketCreateRequest(BaseModel):
    """Request model for filing a ticket."""
    category: TicketCategory = Field(..., description="Ticket category")
    subject: str = Field(..., min_length=1, max_length=200, description="Ticket subject")
    description: str = Field(..., min_length=1, max_length=2000, description="Problem description")
    priority: Priority = Field(default=Priority.MEDIUM, description="Ticket priority")
    subcategory: Optional[str] = Field(None, max_length=200)
    tags: List[str] = Field(default_factory=list)
    assigned_to: Optional[str] = Field(
        None,
        description="HR agent chosen by the creator; skips auto-assignment"
    )

    @field_validator("subject", "description")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class TicketDetailsUpdateRequest(BaseModel):
    """HR reclassification of an existing ticket."""
    priority: Optional[Priority] = None
    category: Optional[TicketCategory] = None
    subcategory: Optional[str] = Field(None, max_length=200)
    tags: Optional[List[str]] = None


class StatusUpdateRequest(BaseModel):
    status: TicketStatus
    reason: Optional[str] = Field(None, max_length=1000)


class AssignRequest(BaseModel):
    assigned_to: str = Field(..., min_length=1)
    reason: Optional[str] = Field(None, max_length=1000)


class EscalateRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class ResolveRequest(BaseModel):
    resolution_comment: Optional[str] = Field(None, max_length=2000)


class ReopenRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class FeedbackRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=1000)


class TicketListQuery(BaseModel):
    """Query parameters for listing tickets."""
    status: Optional[TicketStatus] = None
    category: Optional[TicketCategory] = None
    priority: Optional[Priority] = None
    assigned_to: Optional[str] = None
    search: Optional[str] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    sort_order: Literal["asc", "desc"] = "desc"


# ========== Response DTOs ==========

class SLAResponse(BaseModel):
    response_hours: int
    resolution_hours: int
    response_deadline: datetime
    resolution_deadline: datetime


class EscalationEntryResponse(BaseModel):
    from_role: Optional[Role]
    to_role: Role
    escalated_by: Optional[str]
    escalated_at: datetime
    reason: str
    is_auto_escalation: bool
    sla_type: Optional[str] = None


class ResolutionStatusResponse(BaseModel):
    phase: str
    resolved_by_hr: bool
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolution_comment: str = ""
    employee_confirmed: bool
    employee_confirmed_at: Optional[datetime] = None
    reopen_count: int
    max_reopen_allowed: int
    reopen_deadline: Optional[datetime] = None
    last_reopened_at: Optional[datetime] = None
    permanently_closed_by_hr: bool
    permanently_closed_at: Optional[datetime] = None
    permanently_closed_by: Optional[str] = None
    can_confirm: bool = False
    can_reopen: bool = False


class FeedbackResponse(BaseModel):
    rating: int
    comment: str = ""
    submitted_at: datetime


class TicketResponse(BaseModel):
    """Full ticket view."""
    id: str
    ticket_number: str
    category: TicketCategory
    subcategory: Optional[str] = None
    subject: str
    description: str
    priority: Priority
    tags: List[str] = Field(default_factory=list)
    status: TicketStatus
    created_by: str
    assigned_to: Optional[str] = None
    is_manually_assigned: bool
    is_confidential: bool
    escalation_level: int
    escalation_history: List[EscalationEntryResponse] = Field(default_factory=list)
    sla: SLAResponse
    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    resolution_status: ResolutionStatusResponse
    feedback: Optional[FeedbackResponse] = None
    created_at: datetime
    updated_at: datetime
    version: int

    @classmethod
    def from_domain(
        cls,
        ticket: Ticket,
        can_confirm: bool = False,
        can_reopen: bool = False
    ) -> "TicketResponse":
        """
        Build the API view of a ticket.

        ``can_confirm`` and ``can_reopen`` are time and actor dependent, so
        the service works them out and passes them in.
        """
        rs = ticket.resolution_status
        return cls(
            id=ticket.id,
            ticket_number=ticket.ticket_number,
            category=ticket.category,
            subcategory=ticket.subcategory,
            subject=ticket.subject,
            description=ticket.description,
            priority=ticket.priority,
            tags=list(ticket.tags),
            status=ticket.status,
            created_by=ticket.created_by,
            assigned_to=ticket.assigned_to,
            is_manually_assigned=ticket.is_manually_assigned,
            is_confidential=ticket.is_confidential,
            escalation_level=ticket.escalation_level,
            escalation_history=[
                EscalationEntryResponse(
                    from_role=entry.from_role,
                    to_role=entry.to_role,
                    escalated_by=entry.escalated_by,
                    escalated_at=entry.escalated_at,
                    reason=entry.reason,
                    is_auto_escalation=entry.is_auto_escalation,
                    sla_type=entry.sla_type.value if entry.sla_type else None,
                )
                for entry in ticket.escalation_history
            ],
            sla=SLAResponse(
                response_hours=ticket.sla.response_hours,
                resolution_hours=ticket.sla.resolution_hours,
                response_deadline=ticket.sla.response_deadline,
                resolution_deadline=ticket.sla.resolution_deadline,
            ),
            first_response_at=ticket.first_response_at,
            resolved_at=ticket.resolved_at,
            closed_at=ticket.closed_at,
            resolution_status=ResolutionStatusResponse(
                phase=ticket.resolution_phase.value,
                resolved_by_hr=rs.resolved_by_hr,
                resolved_at=rs.resolved_at,
                resolved_by=rs.resolved_by,
                resolution_comment=rs.resolution_comment,
                employee_confirmed=rs.employee_confirmed,
                employee_confirmed_at=rs.employee_confirmed_at,
                reopen_count=rs.reopen_count,
                max_reopen_allowed=rs.max_reopen_allowed,
                reopen_deadline=rs.reopen_deadline,
                last_reopened_at=rs.last_reopened_at,
                permanently_closed_by_hr=rs.permanently_closed_by_hr,
                permanently_closed_at=rs.permanently_closed_at,
                permanently_closed_by=rs.permanently_closed_by,
                can_confirm=can_confirm,
                can_reopen=can_reopen,
            ),
            feedback=FeedbackResponse(
                rating=ticket.feedback.rating,
                comment=ticket.feedback.comment,
                submitted_at=ticket.feedback.submitted_at,
            ) if ticket.feedback else None,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
            version=ticket.version,
        )


class Pagination(BaseModel):
    current: int
    pages: int
    total: int
    limit: int


class TicketListResponse(BaseModel):
    tickets: List[TicketResponse]
    pagination: Pagination


class TicketStatsResponse(BaseModel):
    """Counts over the tickets the caller can see."""
    total: int
    by_status: Dict[str, int]
    by_category: Dict[str, int]
    by_priority: Dict[str, int]
    avg_response_hours: Optional[float] = None
    avg_resolution_hours: Optional[float] = None


class PersonnelEntry(BaseModel):
    id: str
    name: str
    email: str
    role: Role
    workload: int


class EligiblePersonnelResponse(BaseModel):
    category: str
    eligible_roles: List[Role]
    hr_personnel: List[PersonnelEntry]


class SweepResult(BaseModel):
    """Outcome of one escalation sweep."""
    examined: int = 0
    escalated: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)
