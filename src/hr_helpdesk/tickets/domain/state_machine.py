"""
Resolution State Machine
========================

Every change to a ticket's status and resolution sub-state goes through this
module. Guards raise typed StateException subclasses; nothing here touches
storage.

    Open/InProgress/Pending/Escalated/Reopened --resolve--> Resolved
    Resolved --confirm--> Closed (confirmed)
    Resolved/Closed --reopen--> Reopened        (bounded count, 72h window)
    any --HR close--> Closed (permanent, terminal)
"""

from datetime import datetime, timedelta
from typing import Optional

from hr_helpdesk.config import TicketStatus
from hr_helpdesk.core import (
    NotAuthorizedException,
    PermanentlyClosedException,
    ReopenLimitExceededException,
    ReopenWindowExpiredException,
    ResolutionRequiredException,
    StateException,
    ValidationException,
)
from hr_helpdesk.tickets.domain.entities import DirectoryUser, Ticket

# Statuses HR may set directly; the rest have dedicated transitions
PLAIN_STATUSES = (TicketStatus.OPEN, TicketStatus.IN_PROGRESS, TicketStatus.PENDING)


class ResolutionStateMachine:
    """Applies resolution lifecycle transitions to a Ticket in place."""

    def __init__(
        self,
        reopen_window: timedelta = timedelta(hours=72),
        default_max_reopen: int = 3
    ):
        self.reopen_window = reopen_window
        self.default_max_reopen = default_max_reopen

    # ========== Guards ==========

    @staticmethod
    def _require_hr(ticket: Ticket, actor: DirectoryUser, action: str) -> None:
        if not actor.is_hr:
            raise NotAuthorizedException(
                f"Only HR personnel can {action} tickets",
                {"ticket_id": ticket.id, "actor_id": actor.id}
            )

    @staticmethod
    def _require_creator(ticket: Ticket, actor: DirectoryUser, action: str) -> None:
        if ticket.created_by != actor.id:
            raise NotAuthorizedException(
                f"Only the ticket creator can {action} the ticket",
                {"ticket_id": ticket.id, "actor_id": actor.id}
            )

    @staticmethod
    def require_not_permanently_closed(ticket: Ticket) -> None:
        if ticket.is_permanently_closed:
            raise PermanentlyClosedException(ticket.id)

    # ========== Predicates ==========

    def can_confirm(self, ticket: Ticket) -> bool:
        rs = ticket.resolution_status
        return (
            rs.resolved_by_hr
            and not rs.employee_confirmed
            and not rs.permanently_closed_by_hr
            and ticket.status == TicketStatus.RESOLVED
        )

    def can_reopen(self, ticket: Ticket, now: datetime) -> bool:
        rs = ticket.resolution_status
        if rs.permanently_closed_by_hr or not rs.resolved_by_hr:
            return False
        return (
            ticket.status in (TicketStatus.RESOLVED, TicketStatus.CLOSED)
            and rs.reopen_count < rs.max_reopen_allowed
            and rs.reopen_deadline is not None
            and now <= rs.reopen_deadline
        )

    # ========== Transitions ==========

    def resolve(
        self,
        ticket: Ticket,
        actor: DirectoryUser,
        now: datetime,
        comment: Optional[str] = None
    ) -> None:
        """HR marks the ticket resolved and opens the reopen window."""
        self._require_hr(ticket, actor, "resolve")
        self.require_not_permanently_closed(ticket)
        if ticket.status in (TicketStatus.RESOLVED, TicketStatus.CLOSED):
            raise StateException(ticket.id, f"Ticket is already {ticket.status.value}")

        rs = ticket.resolution_status
        ticket.status = TicketStatus.RESOLVED
        ticket.resolved_at = now
        if ticket.first_response_at is None:
            ticket.first_response_at = now

        rs.resolved_by_hr = True
        rs.resolved_at = now
        rs.resolved_by = actor.id
        rs.resolution_comment = (comment or "").strip()
        rs.employee_confirmed = False
        rs.employee_confirmed_at = None
        rs.reopen_deadline = now + self.reopen_window
        # Ratchet: restored on every resolution, never lowered
        rs.max_reopen_allowed = max(rs.max_reopen_allowed, self.default_max_reopen)

        ticket.touch(now)

    def confirm(self, ticket: Ticket, actor: DirectoryUser, now: datetime) -> None:
        """Creator accepts the resolution; the ticket closes (softly)."""
        self._require_creator(ticket, actor, "confirm")
        self.require_not_permanently_closed(ticket)

        rs = ticket.resolution_status
        if not rs.resolved_by_hr:
            raise ResolutionRequiredException(ticket.id)
        if rs.employee_confirmed or ticket.status != TicketStatus.RESOLVED:
            raise StateException(
                ticket.id,
                "Resolution already confirmed" if rs.employee_confirmed
                else f"Ticket is {ticket.status.value}, not awaiting confirmation"
            )

        rs.employee_confirmed = True
        rs.employee_confirmed_at = now
        ticket.status = TicketStatus.CLOSED
        ticket.closed_at = now
        ticket.touch(now)

    def reopen(self, ticket: Ticket, actor: DirectoryUser, now: datetime) -> None:
        """Creator rejects the resolution within the window and allowance."""
        self._require_creator(ticket, actor, "reopen")
        self.require_not_permanently_closed(ticket)

        rs = ticket.resolution_status
        if not rs.resolved_by_hr:
            raise ResolutionRequiredException(ticket.id)
        if ticket.status not in (TicketStatus.RESOLVED, TicketStatus.CLOSED):
            raise StateException(
                ticket.id, f"Ticket is {ticket.status.value}, only resolved tickets can be reopened"
            )
        if rs.reopen_count >= rs.max_reopen_allowed:
            raise ReopenLimitExceededException(ticket.id, rs.reopen_count, rs.max_reopen_allowed)
        if rs.reopen_deadline is None or now > rs.reopen_deadline:
            raise ReopenWindowExpiredException(ticket.id, rs.reopen_deadline)

        ticket.status = TicketStatus.REOPENED
        rs.reopen_count += 1
        rs.last_reopened_at = now
        rs.employee_confirmed = False
        rs.employee_confirmed_at = None
        ticket.closed_at = None
        ticket.touch(now)

    def close_permanently(self, ticket: Ticket, actor: DirectoryUser, now: datetime) -> None:
        """HR hard close. Irreversible: no reopen will ever succeed afterwards."""
        self._require_hr(ticket, actor, "close")
        self.require_not_permanently_closed(ticket)

        rs = ticket.resolution_status
        ticket.status = TicketStatus.CLOSED
        ticket.closed_at = now
        rs.permanently_closed_by_hr = True
        rs.permanently_closed_at = now
        rs.permanently_closed_by = actor.id
        ticket.touch(now)

    def set_status(
        self,
        ticket: Ticket,
        actor: DirectoryUser,
        new_status: TicketStatus,
        now: datetime
    ) -> None:
        """HR moves the ticket between the working statuses."""
        self._require_hr(ticket, actor, "update the status of")
        self.require_not_permanently_closed(ticket)
        if new_status not in PLAIN_STATUSES:
            raise ValidationException(
                f"Status '{new_status.value}' cannot be set directly",
                {"ticket_id": ticket.id, "status": new_status.value}
            )

        if new_status == TicketStatus.IN_PROGRESS and ticket.first_response_at is None:
            ticket.first_response_at = now
        ticket.status = new_status
        ticket.touch(now)
