"""
Access Filter
=============

Role/category/confidentiality predicate deciding who may read or act on a
ticket. Pure: callers pass in the directory records it needs.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from hr_helpdesk.config import (
    HR_ROLES, LINE_MANAGER_ROLES, Role, TicketCategory, UNRESTRICTED_ROLES
)
from hr_helpdesk.tickets.domain.entities import DirectoryUser, Ticket
from hr_helpdesk.tickets.domain.routing import categories_for_role, eligible_roles
from hr_helpdesk.tickets.domain.value_objects import ROLE_TIERS, outranks


@dataclass
class HRScope:
    """
    The HR branch of AccessFilter.can_view as plain column predicates.

    A ticket matches when the user created it or holds it, or when it is
    visible to the tier: not confidential (unless allowed) and either
    auto-routed in one of ``categories`` or manually assigned to a user
    holding one of ``outranked_roles``.
    """
    user_id: str
    categories: List[TicketCategory] = field(default_factory=list)
    include_confidential: bool = True
    outranked_roles: List[Role] = field(default_factory=list)


class AccessFilter:
    """
    Read and update access rules.

    Read access, in order:
    1. creator and current assignee
    2. Vice President / Admin
    3. HR tiers routed the ticket's category; HR Executive never sees
       confidential tickets; manually assigned tickets are hidden from
       same-tier holders and shown only to tiers above the assignee
    4. line managers, for tickets raised by their direct reports
    """

    @staticmethod
    def can_view(
        ticket: Ticket,
        user: DirectoryUser,
        creator: Optional[DirectoryUser] = None,
        assignee: Optional[DirectoryUser] = None
    ) -> bool:
        if ticket.created_by == user.id:
            return True
        if ticket.assigned_to is not None and ticket.assigned_to == user.id:
            return True
        if user.role in UNRESTRICTED_ROLES:
            return True

        if user.role in HR_ROLES:
            if ticket.is_confidential and user.role == Role.HR_EXECUTIVE:
                return False
            if ticket.is_manually_assigned:
                return assignee is not None and outranks(user.role, assignee.role)
            return user.role in eligible_roles(ticket.category)

        if user.role in LINE_MANAGER_ROLES:
            return creator is not None and creator.reporting_manager_id == user.id

        return False

    @staticmethod
    def can_update(ticket: Ticket, user: DirectoryUser) -> bool:
        """HR roles and the creator may change status or escalate."""
        return user.is_hr or ticket.created_by == user.id

    @staticmethod
    def outranked_roles(user: DirectoryUser) -> List[Role]:
        """Roles whose manually assigned tickets ``user`` may read."""
        return [role for role in ROLE_TIERS if outranks(user.role, role)]

    @staticmethod
    def hr_scope(user: DirectoryUser) -> HRScope:
        """Listing scope for an HR tier below VP."""
        return HRScope(
            user_id=user.id,
            categories=categories_for_role(user.role),
            include_confidential=user.role != Role.HR_EXECUTIVE,
            outranked_roles=AccessFilter.outranked_roles(user),
        )
