"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from hr_helpdesk.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ConcurrentModificationException,
    DuplicateTicketNumberException,
    ValidationException,
    ResourceNotFoundException,
    NotAuthorizedException,
    ConfigurationException,
    StateException,
    ResolutionRequiredException,
    PermanentlyClosedException,
    ReopenLimitExceededException,
    ReopenWindowExpiredException,
    NoEscalationTargetException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ConcurrentModificationException",
    "DuplicateTicketNumberException",
    "ValidationException",
    "ResourceNotFoundException",
    "NotAuthorizedException",
    "ConfigurationException",
    "StateException",
    "ResolutionRequiredException",
    "PermanentlyClosedException",
    "ReopenLimitExceededException",
    "ReopenWindowExpiredException",
    "NoEscalationTargetException",
]
