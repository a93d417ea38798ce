"""
Routing Table
=============

Static category -> eligible HR role lookup. Pure functions, no I/O.
"""

from typing import Dict, List, Tuple, Union

from hr_helpdesk.config import Role, TicketCategory

C = TicketCategory

ROUTING_TABLE: Dict[TicketCategory, Tuple[Role, ...]] = {
    C.LEAVE_ISSUE: (Role.HR_EXECUTIVE,),
    C.ATTENDANCE_ISSUE: (Role.HR_EXECUTIVE,),
    C.REGULARIZATION_PROBLEM: (Role.HR_EXECUTIVE,),
    C.HOLIDAY_CALENDAR_QUERY: (Role.HR_EXECUTIVE,),
    C.WFH_REMOTE_WORK: (Role.HR_EXECUTIVE,),
    C.LEAVE_POLICY_CLARIFICATION: (Role.HR_EXECUTIVE, Role.HR_MANAGER),
    C.PAYROLL_SALARY_ISSUE: (Role.HR_MANAGER,),
    C.PAYSLIP_NOT_AVAILABLE: (Role.HR_MANAGER,),
    C.REIMBURSEMENT_ISSUE: (Role.HR_MANAGER,),
    C.TAX_TDS_FORM16: (Role.HR_MANAGER,),
    C.PERFORMANCE_REVIEW_CONCERN: (Role.HR_BP,),
    C.KPI_GOALS_SETUP: (Role.HR_MANAGER,),
    C.PROBATION_CONFIRMATION: (Role.HR_EXECUTIVE,),
    C.TRAINING_LMS_ACCESS: (Role.HR_EXECUTIVE,),
    C.CERTIFICATION_ISSUE: (Role.HR_MANAGER,),
    C.OFFER_LETTER_JOINING: (Role.HR_BP,),
    C.REFERRAL_INTERVIEW_FEEDBACK: (Role.HR_EXECUTIVE,),
    C.RESIGNATION_PROCESS_QUERY: (Role.HR_MANAGER,),
    C.FINAL_SETTLEMENT_DELAY: (Role.HR_BP,),
    C.EXPERIENCE_LETTER_REQUEST: (Role.HR_EXECUTIVE,),
    C.HRMS_LOGIN_ISSUE: (Role.HR_EXECUTIVE,),
    C.SYSTEM_BUG_APP_CRASH: (Role.HR_EXECUTIVE,),
    C.DOCUMENT_UPLOAD_FAILED: (Role.HR_EXECUTIVE,),
    C.OFFICE_ACCESS_ID_CARD: (Role.HR_EXECUTIVE,),
    C.GENERAL_HR_QUERY: (Role.HR_EXECUTIVE,),
    C.HARASSMENT_GRIEVANCE: (Role.HR_BP,),
    C.ASSET_REQUEST_LAPTOP: (Role.HR_EXECUTIVE,),
    C.FEEDBACK_SUGGESTION: (Role.HR_MANAGER, Role.HR_BP),
    C.OTHERS: (Role.HR_EXECUTIVE,),
}

DEFAULT_ROLES: Tuple[Role, ...] = (Role.HR_EXECUTIVE,)

CONFIDENTIAL_CATEGORIES = frozenset({C.HARASSMENT_GRIEVANCE})


def _coerce(category: Union[TicketCategory, str, None]):
    if isinstance(category, TicketCategory):
        return category
    try:
        return TicketCategory(category)
    except ValueError:
        return None


def eligible_roles(category: Union[TicketCategory, str, None]) -> Tuple[Role, ...]:
    """Roles that may handle ``category``; unmapped input falls back to HR Executive."""
    return ROUTING_TABLE.get(_coerce(category), DEFAULT_ROLES)


def categories_for_role(role: Role) -> List[TicketCategory]:
    """Reverse lookup: every category routed to ``role``."""
    return [category for category, roles in ROUTING_TABLE.items() if role in roles]


def is_confidential_category(category: Union[TicketCategory, str, None]) -> bool:
    return _coerce(category) in CONFIDENTIAL_CATEGORIES
