"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries. Every class carries a stable
``code`` so API clients can tell rejected transitions apart.
"""

from typing import Optional, Any


class ApplicationException(Exception):
    """Base exception for all application errors."""

    code = "application_error"

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""

    code = "domain_error"


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""

    code = "repository_error"


class ConcurrentModificationException(RepositoryException):
    """Raised when a ticket was changed by someone else since it was read."""

    code = "concurrent_modification"

    def __init__(self, ticket_id: str, details: Optional[dict] = None):
        self.ticket_id = ticket_id
        super().__init__(
            f"Ticket {ticket_id} was modified concurrently, reload and retry",
            details or {"ticket_id": ticket_id}
        )


class DuplicateTicketNumberException(RepositoryException):
    """Raised when another ticket already holds the generated number."""

    code = "duplicate_ticket_number"

    def __init__(self, ticket_number: str, details: Optional[dict] = None):
        self.ticket_number = ticket_number
        super().__init__(
            f"Ticket number {ticket_number} is already taken",
            details or {"ticket_number": ticket_number}
        )


class ValidationException(ApplicationException):
    """Exception for validation errors."""

    code = "validation_error"


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    code = "not_found"

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class NotAuthorizedException(ApplicationException):
    """Exception when the acting user lacks the role or ownership required."""

    code = "not_authorized"


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""

    code = "configuration_error"


# ========== Ticket state errors ==========

class StateException(DomainException):
    """A ticket transition guard failed."""

    code = "invalid_transition"

    def __init__(
        self,
        ticket_id: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.ticket_id = ticket_id
        super().__init__(message, details or {"ticket_id": ticket_id})


class ResolutionRequiredException(StateException):
    """Confirm or reopen attempted before HR resolved the ticket."""

    code = "resolution_required"

    def __init__(self, ticket_id: str):
        super().__init__(ticket_id, "Ticket has not been resolved by HR yet")


class PermanentlyClosedException(StateException):
    """Reopen (or any change) attempted after HR's permanent closure."""

    code = "permanently_closed"

    def __init__(self, ticket_id: str):
        super().__init__(ticket_id, "HR has permanently closed this ticket")


class ReopenLimitExceededException(StateException):
    """The creator has used every reopen the ticket allows."""

    code = "reopen_limit_exceeded"

    def __init__(self, ticket_id: str, reopen_count: int, max_reopen_allowed: int):
        self.reopen_count = reopen_count
        self.max_reopen_allowed = max_reopen_allowed
        super().__init__(
            ticket_id,
            "Maximum reopen limit reached",
            {
                "ticket_id": ticket_id,
                "reopen_count": reopen_count,
                "max_reopen_allowed": max_reopen_allowed
            }
        )


class ReopenWindowExpiredException(StateException):
    """The reopen deadline set at resolution time has passed."""

    code = "reopen_window_expired"

    def __init__(self, ticket_id: str, reopen_deadline: Any):
        self.reopen_deadline = reopen_deadline
        super().__init__(
            ticket_id,
            "Reopen deadline has passed",
            {"ticket_id": ticket_id, "reopen_deadline": str(reopen_deadline)}
        )


class NoEscalationTargetException(DomainException):
    """Escalation has nowhere to go: top of the chain or nobody holds the next role."""

    code = "no_escalation_target"

    def __init__(
        self,
        ticket_id: str,
        reason: str,
        details: Optional[dict] = None
    ):
        self.ticket_id = ticket_id
        self.reason = reason
        super().__init__(
            f"Cannot escalate ticket {ticket_id}: {reason}",
            details or {"ticket_id": ticket_id, "reason": reason}
        )
