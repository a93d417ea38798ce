"""
Tickets Domain Layer
====================

Domain layer for the HR ticket lifecycle.

Contains:
- Entities: Ticket, DirectoryUser and the resolution sub-state
- Value Objects: SLAConfig, SLATerms, SLABreach, the escalation chain
- Domain Services: SLACalculator, ResolutionStateMachine, AccessFilter,
  routing and assignment selection

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from hr_helpdesk.tickets.domain.entities import (
    DirectoryUser,
    EscalationRecord,
    Feedback,
    ResolutionPhase,
    ResolutionStatus,
    RoutingInfo,
    Ticket,
)
from hr_helpdesk.tickets.domain.value_objects import (
    ESCALATION_CHAIN,
    SLABreach,
    SLACalculator,
    SLAConfig,
    SLATarget,
    SLATerms,
    next_role,
    outranks,
)
from hr_helpdesk.tickets.domain.routing import (
    categories_for_role,
    eligible_roles,
    is_confidential_category,
)
from hr_helpdesk.tickets.domain.assignment import select_earliest, select_least_loaded
from hr_helpdesk.tickets.domain.access import AccessFilter, HRScope
from hr_helpdesk.tickets.domain.state_machine import ResolutionStateMachine

__all__ = [
    # Entities
    "DirectoryUser",
    "EscalationRecord",
    "Feedback",
    "ResolutionPhase",
    "ResolutionStatus",
    "RoutingInfo",
    "Ticket",
    # Value Objects
    "ESCALATION_CHAIN",
    "SLABreach",
    "SLACalculator",
    "SLAConfig",
    "SLATarget",
    "SLATerms",
    "next_role",
    "outranks",
    # Domain Services
    "categories_for_role",
    "eligible_roles",
    "is_confidential_category",
    "select_earliest",
    "select_least_loaded",
    "AccessFilter",
    "HRScope",
    "ResolutionStateMachine",
]
