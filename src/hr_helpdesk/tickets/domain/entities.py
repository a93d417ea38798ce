"""
Ticket Domain Entities
======================

Pure Python domain entities for the HR ticket lifecycle.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from hr_helpdesk.config import (
    HR_ROLES, Priority, Role, SLAType, TicketCategory, TicketStatus
)
from hr_helpdesk.tickets.domain.value_objects import SLATerms


@dataclass
class DirectoryUser:
    """
    A user as seen through the user directory.

    Read-only to the ticket engine: role, active flag, account age and the
    reporting line are all the routing and access rules need.
    """
    id: str
    name: str
    email: str
    role: Role
    is_active: bool
    created_at: datetime
    reporting_manager_id: Optional[str] = None

    @property
    def is_hr(self) -> bool:
        return self.role in HR_ROLES


@dataclass
class EscalationRecord:
    """One step up the role chain. Entries are only ever appended."""
    from_role: Optional[Role]
    to_role: Role
    reason: str
    is_auto_escalation: bool
    escalated_at: datetime
    escalated_by: Optional[str] = None
    sla_type: Optional[SLAType] = None

    def to_dict(self) -> dict:
        return {
            "from_role": self.from_role.value if self.from_role else None,
            "to_role": self.to_role.value,
            "escalated_by": self.escalated_by,
            "reason": self.reason,
            "is_auto_escalation": self.is_auto_escalation,
            "escalated_at": self.escalated_at.isoformat(),
            "sla_type": self.sla_type.value if self.sla_type else None,
        }


@dataclass
class RoutingInfo:
    """How the current assignee was chosen."""
    auto_assigned: bool
    assignment_reason: str
    routed_at: datetime


@dataclass
class Feedback:
    """Creator's rating of the handling of a resolved ticket."""
    rating: int
    submitted_at: datetime
    comment: str = ""

    def __post_init__(self):
        if not 1 <= self.rating <= 5:
            raise ValueError("Rating must be between 1 and 5")


@dataclass
class ResolutionStatus:
    """
    Resolve/confirm/reopen negotiation sub-state.

    Owned by a single Ticket and mutated only by ResolutionStateMachine.
    """
    resolved_by_hr: bool = False
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolution_comment: str = ""
    employee_confirmed: bool = False
    employee_confirmed_at: Optional[datetime] = None
    reopen_count: int = 0
    max_reopen_allowed: int = 3
    reopen_deadline: Optional[datetime] = None
    last_reopened_at: Optional[datetime] = None
    permanently_closed_by_hr: bool = False
    permanently_closed_at: Optional[datetime] = None
    permanently_closed_by: Optional[str] = None


class ResolutionPhase(str, Enum):
    """Where a ticket stands in the resolution negotiation, derived on read."""
    AWAITING_HR = "awaiting_hr"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED_CLOSED = "confirmed_closed"
    PERMANENTLY_CLOSED = "permanently_closed"
    REOPENED = "reopened"


@dataclass
class Ticket:
    """
    Ticket entity representing an employee-raised HR support request.

    Contains only domain logic, no infrastructure.
    """

    # Identity
    id: str
    ticket_number: str
    created_by: str
    created_at: datetime
    updated_at: datetime

    # Content
    category: TicketCategory
    subject: str
    description: str
    priority: Priority
    sla: SLATerms
    subcategory: Optional[str] = None
    tags: List[str] = field(default_factory=list)

    # Parties
    assigned_to: Optional[str] = None
    is_manually_assigned: bool = False
    routing: Optional[RoutingInfo] = None

    # Lifecycle
    status: TicketStatus = TicketStatus.OPEN
    escalation_level: int = 0
    escalation_history: List[EscalationRecord] = field(default_factory=list)
    first_response_at: Optional[datetime] = None
    last_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    resolution_status: ResolutionStatus = field(default_factory=ResolutionStatus)

    is_confidential: bool = False
    feedback: Optional[Feedback] = None

    # Optimistic lock counter, bumped by the repository on every write
    version: int = 0

    @property
    def is_permanently_closed(self) -> bool:
        return self.resolution_status.permanently_closed_by_hr

    @property
    def resolution_phase(self) -> ResolutionPhase:
        rs = self.resolution_status
        if rs.permanently_closed_by_hr:
            return ResolutionPhase.PERMANENTLY_CLOSED
        if self.status == TicketStatus.REOPENED:
            return ResolutionPhase.REOPENED
        if rs.resolved_by_hr and rs.employee_confirmed and self.status == TicketStatus.CLOSED:
            return ResolutionPhase.CONFIRMED_CLOSED
        if rs.resolved_by_hr and self.status == TicketStatus.RESOLVED:
            return ResolutionPhase.AWAITING_CONFIRMATION
        return ResolutionPhase.AWAITING_HR

    @property
    def response_time_hours(self) -> Optional[float]:
        if self.first_response_at is None:
            return None
        return (self.first_response_at - self.created_at).total_seconds() / 3600

    @property
    def resolution_time_hours(self) -> Optional[float]:
        if self.resolved_at is None:
            return None
        return (self.resolved_at - self.created_at).total_seconds() / 3600

    def touch(self, timestamp: datetime) -> None:
        self.updated_at = timestamp

    def mark_first_response(self, timestamp: datetime) -> None:
        """Record an HR response; only the first one stops the response clock."""
        if self.first_response_at is None:
            self.first_response_at = timestamp
        self.last_response_at = timestamp
        self.touch(timestamp)

    def apply_sla(self, sla: SLATerms) -> None:
        self.sla = sla

    def has_auto_escalation_for(self, sla_type: SLAType) -> bool:
        return any(
            entry.is_auto_escalation and entry.sla_type == sla_type
            for entry in self.escalation_history
        )

    def escalate_to(self, assignee_id: str, record: EscalationRecord) -> None:
        """Hand the ticket to the next tier and append the audit entry."""
        self.assigned_to = assignee_id
        self.status = TicketStatus.ESCALATED
        self.escalation_level += 1
        self.escalation_history.append(record)
        self.touch(record.escalated_at)
