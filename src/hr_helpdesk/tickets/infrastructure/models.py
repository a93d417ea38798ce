"""
Ticket Infrastructure Models
============================

SQLAlchemy ORM models for the tickets module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hr_helpdesk.config import Priority, TicketStatus
from hr_helpdesk.infrastructure.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserModel(Base):
    """
    Directory user.

    Maps to the 'users' table. Owned by the identity system; the ticket
    engine only reads it.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    reporting_manager_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class TicketModel(Base):
    """
    Database model for Ticket entity.

    Maps to the 'tickets' table. Nested value objects (routing, escalation
    history, resolution sub-state, feedback) are JSON columns.
    """
    __tablename__ = "tickets"

    # Identity
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    ticket_number: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Content
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    subcategory: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    subject: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default=Priority.MEDIUM.value)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # Routing
    assigned_to: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    is_manually_assigned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    routing: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Lifecycle
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=TicketStatus.OPEN.value, index=True)
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    escalation_history: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    resolution_status: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    is_confidential: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    feedback: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # SLA
    sla_response_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    sla_resolution_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    response_deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    resolution_deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    first_response_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_response_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    # Optimistic lock
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
