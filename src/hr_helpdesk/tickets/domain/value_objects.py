"""
Ticket Value Objects
====================

Immutable value objects for the tickets domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator

from hr_helpdesk.config import (
    Priority, Role, SLAType, TicketCategory, VALID_PRIORITIES
)


# ========== SLA ==========

class SLATarget(BaseModel):
    """Response/resolution allowance in hours."""
    response: int = Field(gt=0, description="Hours until first response is due")
    resolution: int = Field(gt=0, description="Hours until resolution is due")


DEFAULT_PRIORITY_MATRIX: Dict[str, Dict[str, int]] = {
    Priority.CRITICAL.value: {"response": 1, "resolution": 4},
    Priority.HIGH.value: {"response": 4, "resolution": 24},
    Priority.MEDIUM.value: {"response": 8, "resolution": 48},
    Priority.LOW.value: {"response": 24, "resolution": 72},
}

DEFAULT_CATEGORY_OVERRIDES: Dict[str, Dict[str, int]] = {
    TicketCategory.HARASSMENT_GRIEVANCE.value: {"response": 1, "resolution": 24},
    TicketCategory.HRMS_LOGIN_ISSUE.value: {"response": 2, "resolution": 8},
    TicketCategory.SYSTEM_BUG_APP_CRASH.value: {"response": 2, "resolution": 12},
    TicketCategory.PAYROLL_SALARY_ISSUE.value: {"response": 4, "resolution": 24},
}


class SLAConfig(BaseModel):
    """
    SLA Configuration, optionally loaded from YAML.

    Effective SLA = category override if one exists, else the priority default.

    This is a value object - immutable and defined by its attributes.
    """
    priority_matrix: Dict[str, SLATarget] = Field(
        default_factory=lambda: {
            k: SLATarget(**v) for k, v in DEFAULT_PRIORITY_MATRIX.items()
        },
        description="SLA hours by priority"
    )
    category_overrides: Dict[str, SLATarget] = Field(
        default_factory=lambda: {
            k: SLATarget(**v) for k, v in DEFAULT_CATEGORY_OVERRIDES.items()
        },
        description="SLA hours forced by category, regardless of priority"
    )

    @field_validator("priority_matrix")
    @classmethod
    def validate_priority_matrix(cls, v: Dict[str, SLATarget]) -> Dict[str, SLATarget]:
        """Fill in any priority the YAML file leaves out."""
        for priority in VALID_PRIORITIES:
            if priority not in v:
                v[priority] = SLATarget(**DEFAULT_PRIORITY_MATRIX[priority])
        return v

    def get_target(
        self,
        priority: Union[Priority, str],
        category: Union[TicketCategory, str]
    ) -> SLATarget:
        category_key = category.value if isinstance(category, TicketCategory) else category
        priority_key = priority.value if isinstance(priority, Priority) else priority

        override = self.category_overrides.get(category_key)
        if override is not None:
            return override
        return self.priority_matrix.get(
            priority_key, self.priority_matrix[Priority.MEDIUM.value]
        )


@dataclass(frozen=True)
class SLATerms:
    """Hours and absolute deadlines attached to a ticket."""
    response_hours: int
    resolution_hours: int
    response_deadline: datetime
    resolution_deadline: datetime

    def deadline_for(self, sla_type: SLAType) -> datetime:
        if sla_type == SLAType.RESPONSE:
            return self.response_deadline
        return self.resolution_deadline


@dataclass(frozen=True)
class SLABreach:
    """Which deadline was missed, used for the escalation audit reason."""
    sla_type: SLAType
    deadline: datetime

    def describe(self) -> str:
        return (
            f"Automatic escalation due to {self.sla_type.value} SLA breach. "
            f"Deadline was {self.deadline.isoformat()}"
        )


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless utility class - all SLA calculation logic in one place.
    """

    @staticmethod
    def calculate_terms(
        created_at: datetime,
        priority: Union[Priority, str],
        category: Union[TicketCategory, str],
        config: Optional[SLAConfig] = None
    ) -> SLATerms:
        """
        Derive response and resolution deadlines for a ticket.

        Example:
            Priority "Critical", category "Leave Issue" -> 1h / 4h
            Category "Harassment / Grievance" -> 1h / 24h for any priority
        """
        target = (config or SLAConfig()).get_target(priority, category)
        return SLATerms(
            response_hours=target.response,
            resolution_hours=target.resolution,
            response_deadline=created_at + timedelta(hours=target.response),
            resolution_deadline=created_at + timedelta(hours=target.resolution),
        )

    @staticmethod
    def detect_breaches(
        sla: SLATerms,
        current_time: datetime,
        first_response_at: Optional[datetime] = None,
        resolved_at: Optional[datetime] = None
    ) -> List[SLABreach]:
        """
        All missed deadlines, response before resolution.

        A deadline only counts once it is strictly in the past.
        """
        breaches = []
        if first_response_at is None and current_time > sla.response_deadline:
            breaches.append(SLABreach(SLAType.RESPONSE, sla.response_deadline))
        if resolved_at is None and current_time > sla.resolution_deadline:
            breaches.append(SLABreach(SLAType.RESOLUTION, sla.resolution_deadline))
        return breaches

    @staticmethod
    def detect_breach(
        sla: SLATerms,
        current_time: datetime,
        first_response_at: Optional[datetime] = None,
        resolved_at: Optional[datetime] = None
    ) -> Optional[SLABreach]:
        """The first missed deadline, if any."""
        breaches = SLACalculator.detect_breaches(sla, current_time, first_response_at, resolved_at)
        return breaches[0] if breaches else None


# ========== Role hierarchy ==========

ESCALATION_CHAIN: Tuple[Role, ...] = (
    Role.HR_EXECUTIVE,
    Role.HR_MANAGER,
    Role.HR_BP,
    Role.VICE_PRESIDENT,
)

# Higher number means more authority
ROLE_TIERS: Dict[Role, int] = {
    Role.EMPLOYEE: 0,
    Role.TEAM_LEADER: 1,
    Role.TEAM_MANAGER: 2,
    Role.HR_EXECUTIVE: 3,
    Role.HR_MANAGER: 4,
    Role.HR_BP: 5,
    Role.VICE_PRESIDENT: 6,
    Role.ADMIN: 7,
}


def next_role(current: Optional[Role]) -> Optional[Role]:
    """Successor of ``current`` on the escalation chain, None at the top or off-chain."""
    if current not in ESCALATION_CHAIN:
        return None
    index = ESCALATION_CHAIN.index(current)
    if index + 1 >= len(ESCALATION_CHAIN):
        return None
    return ESCALATION_CHAIN[index + 1]


def outranks(role: Role, other: Role) -> bool:
    return ROLE_TIERS.get(role, 0) > ROLE_TIERS.get(other, 0)
