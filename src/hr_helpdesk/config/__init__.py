"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="hr-helpdesk", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/hr_helpdesk",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA / Escalation ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to SLA configuration YAML file"
    )
    escalation_sweep_interval: int = Field(
        default=300,
        description="Seconds between escalation sweeps (0 disables the in-process job)",
        ge=0
    )

    # ========== Resolution workflow ==========
    reopen_window_hours: int = Field(
        default=72,
        description="Hours after an HR resolution during which the creator may reopen",
        ge=1
    )
    default_max_reopen: int = Field(
        default=3,
        description="Reopen allowance restored on every HR resolution",
        ge=0
    )

    # ========== Audit sink ==========
    audit_webhook_url: Optional[str] = Field(
        default=None,
        description="Webhook receiving ticket audit events (logged only when unset)"
    )
    audit_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for audit webhook calls",
        ge=0.1,
        le=30
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class TicketCategory(str, Enum):
    """Fixed set of HR ticket categories."""
    LEAVE_ISSUE = "Leave Issue"
    ATTENDANCE_ISSUE = "Attendance Issue"
    REGULARIZATION_PROBLEM = "Regularization Problem"
    HOLIDAY_CALENDAR_QUERY = "Holiday Calendar Query"
    WFH_REMOTE_WORK = "WFH / Remote Work Requests"
    PAYROLL_SALARY_ISSUE = "Payroll / Salary Issue"
    PAYSLIP_NOT_AVAILABLE = "Payslip Not Available"
    REIMBURSEMENT_ISSUE = "Reimbursement Issue"
    TAX_TDS_FORM16 = "Tax / TDS / Form-16"
    LEAVE_POLICY_CLARIFICATION = "Leave Policy Clarification"
    PERFORMANCE_REVIEW_CONCERN = "Performance Review Concern"
    KPI_GOALS_SETUP = "KPI / Goals Setup Issue"
    PROBATION_CONFIRMATION = "Probation / Confirmation"
    TRAINING_LMS_ACCESS = "Training / LMS Access Issue"
    CERTIFICATION_ISSUE = "Certification Issue"
    OFFER_LETTER_JOINING = "Offer Letter / Joining Issue"
    REFERRAL_INTERVIEW_FEEDBACK = "Referral / Interview Feedback"
    RESIGNATION_PROCESS_QUERY = "Resignation Process Query"
    FINAL_SETTLEMENT_DELAY = "Final Settlement Delay"
    EXPERIENCE_LETTER_REQUEST = "Experience Letter Request"
    HRMS_LOGIN_ISSUE = "HRMS Login Issue"
    SYSTEM_BUG_APP_CRASH = "System Bug / App Crash"
    DOCUMENT_UPLOAD_FAILED = "Document Upload Failed"
    OFFICE_ACCESS_ID_CARD = "Office Access / ID Card Lost"
    GENERAL_HR_QUERY = "General HR Query"
    HARASSMENT_GRIEVANCE = "Harassment / Grievance"
    ASSET_REQUEST_LAPTOP = "Asset Request / Laptop"
    FEEDBACK_SUGGESTION = "Feedback / Suggestion to HR"
    OTHERS = "Others"


class Priority(str, Enum):
    """Ticket priority levels."""
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    PENDING = "Pending"
    RESOLVED = "Resolved"
    CLOSED = "Closed"
    ESCALATED = "Escalated"
    REOPENED = "Reopened"


class Role(str, Enum):
    """Directory roles, highest authority first."""
    ADMIN = "Admin"
    VICE_PRESIDENT = "Vice President"
    HR_BP = "HR BP"
    HR_MANAGER = "HR Manager"
    HR_EXECUTIVE = "HR Executive"
    TEAM_MANAGER = "Team Manager"
    TEAM_LEADER = "Team Leader"
    EMPLOYEE = "Employee"


class SLAType(str, Enum):
    """Types of SLA clocks."""
    RESPONSE = "response"
    RESOLUTION = "resolution"


# ========== Lists for validation ==========

VALID_PRIORITIES = [p.value for p in Priority]

HR_ROLES = (
    Role.HR_EXECUTIVE, Role.HR_MANAGER, Role.HR_BP,
    Role.VICE_PRESIDENT, Role.ADMIN
)
WORKING_HR_ROLES = (Role.HR_EXECUTIVE, Role.HR_MANAGER, Role.HR_BP)
UNRESTRICTED_ROLES = (Role.VICE_PRESIDENT, Role.ADMIN)
LINE_MANAGER_ROLES = (Role.TEAM_LEADER, Role.TEAM_MANAGER)

# Statuses counted as an agent's open workload
WORKLOAD_STATUSES = (TicketStatus.OPEN, TicketStatus.IN_PROGRESS, TicketStatus.PENDING)

# Statuses the escalation sweep never looks at
SWEEP_EXCLUDED_STATUSES = (TicketStatus.RESOLVED, TicketStatus.CLOSED)
