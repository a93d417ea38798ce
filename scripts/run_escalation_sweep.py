#!/usr/bin/env python3
"""
Run Escalation Sweep
====================

Runs one SLA escalation sweep against the configured database and exits.
Intended for cron or a platform scheduler when the API process runs with
ESCALATION_SWEEP_INTERVAL=0.

Exit status is 1 if any ticket failed to escalate.
"""

import asyncio
import sys

from hr_helpdesk.config import settings
from hr_helpdesk.infrastructure.database import close_database, init_database
from hr_helpdesk.shared.infrastructure.logging import get_logger, setup_logging
from hr_helpdesk.tickets.application import AuditDispatcher
from hr_helpdesk.tickets.infrastructure import WebhookAuditPublisher, build_audit_publisher
from hr_helpdesk.tickets.services import EscalationSweeper

logger = get_logger("run_escalation_sweep")


async def main() -> int:
    setup_logging(settings.log_level, settings.environment)
    init_database()
    audit_publisher = build_audit_publisher(
        settings.audit_webhook_url, settings.audit_timeout_seconds
    )
    audit_dispatcher = AuditDispatcher(audit_publisher)

    try:
        result = await EscalationSweeper(audit_dispatcher).run()
    finally:
        await audit_dispatcher.drain()
        if isinstance(audit_publisher, WebhookAuditPublisher):
            await audit_publisher.close()
        await close_database()

    logger.info("Sweep summary", extra=result.model_dump(exclude={"errors"}))
    for error in result.errors:
        logger.error("Sweep error", extra={"error": error})
    return 1 if result.failed else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
