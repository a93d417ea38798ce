"""
Escalation Sweep Runner
=======================

Wires the escalation service to a database session for background use:
the in-process APScheduler job and the standalone sweep script both go
through EscalationSweeper.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from hr_helpdesk.infrastructure.database import get_session_context
from hr_helpdesk.shared.infrastructure.logging import get_logger, log_latency
from hr_helpdesk.tickets.application import AuditDispatcher, EscalationService, SweepResult
from hr_helpdesk.tickets.application.services import Clock
from hr_helpdesk.tickets.infrastructure import SQLAlchemyTicketRepository, SQLAlchemyUserDirectory

logger = get_logger(__name__)


class EscalationSweeper:
    """
    Runs one escalation sweep per call.

    Each escalation is written under its own version check and committed on
    its own. A ticket changed by a user mid-sweep, or one whose write fails
    in the database, is rolled back and counted; the others stay committed.
    """

    def __init__(self, audit_dispatcher: AuditDispatcher, clock: Optional[Clock] = None):
        self._audit_dispatcher = audit_dispatcher
        self._clock = clock

    def service_for(self, session: AsyncSession) -> EscalationService:
        return EscalationService(
            SQLAlchemyTicketRepository(session),
            SQLAlchemyUserDirectory(session),
            self._audit_dispatcher,
            self._clock,
        )

    async def evaluate(self, session: AsyncSession) -> SweepResult:
        with log_latency(logger, "escalation_sweep"):
            return await self.service_for(session).sweep_escalations()

    async def run(self) -> SweepResult:
        """Sweep inside a fresh session."""
        async with get_session_context() as session:
            return await self.evaluate(session)
