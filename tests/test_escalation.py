import pytest

from hr_helpdesk.config import Role, SLAType, TicketCategory, TicketStatus
from hr_helpdesk.core import NoEscalationTargetException, NotAuthorizedException, StateException
from hr_helpdesk.tickets.domain import next_role

from conftest import ticket_request


def test_escalation_chain():
    assert next_role(Role.HR_EXECUTIVE) == Role.HR_MANAGER
    assert next_role(Role.HR_MANAGER) == Role.HR_BP
    assert next_role(Role.HR_BP) == Role.VICE_PRESIDENT
    assert next_role(Role.VICE_PRESIDENT) is None
    assert next_role(Role.EMPLOYEE) is None
    assert next_role(None) is None


# ========== Explicit escalation ==========

@pytest.mark.asyncio
async def test_creator_escalates_to_earliest_manager(service, users, leave_ticket, audit, dispatcher):
    ticket = await service.escalate(leave_ticket.id, users["emp"], "No reply for a day")

    assert ticket.assigned_to == "mgr-old"
    assert ticket.status == TicketStatus.ESCALATED
    assert ticket.escalation_level == 1
    entry = ticket.escalation_history[0]
    assert (entry.from_role, entry.to_role) == (Role.HR_EXECUTIVE, Role.HR_MANAGER)
    assert entry.escalated_by == "emp"
    assert entry.reason == "No reply for a day"
    assert not entry.is_auto_escalation
    assert entry.sla_type is None
    await dispatcher.drain()
    assert audit.types()[-1] == "ticket_escalated"


@pytest.mark.asyncio
async def test_chain_ends_at_vice_president(service, users, leave_ticket):
    assignees = []
    for _ in range(3):
        ticket = await service.escalate(leave_ticket.id, users["emp"])
        assignees.append(ticket.assigned_to)

    assert assignees == ["mgr-old", "bp-old", "vp"]
    assert ticket.escalation_level == 3
    assert ticket.escalation_history[-1].reason == "Manual escalation by Emp"

    with pytest.raises(NoEscalationTargetException):
        await service.escalate(leave_ticket.id, users["emp"])


@pytest.mark.asyncio
async def test_unassigned_ticket_cannot_be_escalated(service, users, directory):
    for user_id in ("bp-old", "bp-new"):
        directory.users[user_id].is_active = False
    ticket = await service.create_ticket(
        users["emp"], ticket_request(category=TicketCategory.HARASSMENT_GRIEVANCE)
    )

    with pytest.raises(NoEscalationTargetException) as exc_info:
        await service.escalate(ticket.id, users["emp"])

    assert exc_info.value.reason == "no current assignee"


@pytest.mark.asyncio
async def test_inactive_next_tier_is_skipped_over(service, users, directory, leave_ticket):
    directory.users["mgr-old"].is_active = False

    ticket = await service.escalate(leave_ticket.id, users["exec-old"])

    assert ticket.assigned_to == "mgr-new"


@pytest.mark.asyncio
async def test_unrelated_employee_cannot_escalate(service, users, leave_ticket):
    with pytest.raises(NotAuthorizedException):
        await service.escalate(leave_ticket.id, users["emp-other"])


@pytest.mark.asyncio
async def test_resolved_ticket_cannot_be_escalated(service, users, resolved_ticket):
    with pytest.raises(StateException):
        await service.escalate(resolved_ticket.id, users["emp"])


@pytest.mark.asyncio
async def test_audit_outage_does_not_block_escalation(service, users, leave_ticket, audit, dispatcher, repo):
    audit.fail = True

    ticket = await service.escalate(leave_ticket.id, users["emp"])

    assert ticket.assigned_to == "mgr-old"
    assert repo.tickets[leave_ticket.id].assigned_to == "mgr-old"
    assert await dispatcher.drain() == 0
    assert audit.events == []


# ========== Sweep ==========

@pytest.mark.asyncio
async def test_sweep_leaves_tickets_within_deadline_alone(escalation_service, leave_ticket, clock):
    clock.advance(hours=8)

    result = await escalation_service.sweep_escalations()

    assert (result.examined, result.escalated, result.skipped, result.failed) == (1, 0, 0, 0)


@pytest.mark.asyncio
async def test_sweep_escalates_response_breach_once(escalation_service, repo, leave_ticket, clock):
    clock.advance(hours=8, seconds=1)

    result = await escalation_service.sweep_escalations()

    assert result.escalated == 1
    stored = repo.tickets[leave_ticket.id]
    assert stored.assigned_to == "mgr-old"
    entry = stored.escalation_history[0]
    assert entry.is_auto_escalation
    assert entry.escalated_by is None
    assert entry.sla_type == SLAType.RESPONSE
    assert "response SLA breach" in entry.reason

    clock.advance(hours=1)
    again = await escalation_service.sweep_escalations()

    assert (again.examined, again.escalated, again.skipped) == (1, 0, 0)
    assert len(repo.tickets[leave_ticket.id].escalation_history) == 1


@pytest.mark.asyncio
async def test_sweep_escalates_again_on_resolution_breach(escalation_service, repo, leave_ticket, clock):
    clock.advance(hours=9)
    await escalation_service.sweep_escalations()

    clock.advance(hours=40)
    result = await escalation_service.sweep_escalations()

    assert result.escalated == 1
    stored = repo.tickets[leave_ticket.id]
    assert stored.assigned_to == "bp-old"
    assert stored.escalation_level == 2
    assert [e.sla_type for e in stored.escalation_history] == [SLAType.RESPONSE, SLAType.RESOLUTION]


@pytest.mark.asyncio
async def test_sweep_carries_on_after_a_failing_ticket(escalation_service, service, users, repo, clock):
    first = await service.create_ticket(users["emp"], ticket_request())
    second = await service.create_ticket(users["emp-other"], ticket_request())
    repo.fail_updates_for = {first.id}
    clock.advance(hours=9)

    result = await escalation_service.sweep_escalations()

    assert (result.examined, result.escalated, result.failed) == (2, 1, 1)
    assert result.errors[0].startswith(first.ticket_number)
    assert repo.tickets[first.id].escalation_level == 0
    assert repo.tickets[second.id].escalation_level == 1


@pytest.mark.asyncio
async def test_sweep_skips_top_of_chain(escalation_service, service, users, repo, clock):
    ticket = await service.create_ticket(users["emp"], ticket_request(assigned_to="vp"))
    clock.advance(hours=9)

    result = await escalation_service.sweep_escalations()

    assert (result.escalated, result.skipped, result.failed) == (0, 1, 0)
    assert repo.tickets[ticket.id].assigned_to == "vp"


@pytest.mark.asyncio
async def test_sweep_ignores_resolved_tickets(escalation_service, resolved_ticket, clock):
    clock.advance(days=10)

    result = await escalation_service.sweep_escalations()

    assert result.examined == 0


@pytest.mark.asyncio
async def test_needs_escalation_reports_each_breach_type_once(escalation_service, repo, leave_ticket, clock):
    assert escalation_service.needs_escalation(leave_ticket, clock.now) is None

    clock.advance(hours=9)
    breach = escalation_service.needs_escalation(leave_ticket, clock.now)
    assert breach.sla_type == SLAType.RESPONSE

    await escalation_service.sweep_escalations()
    escalated = repo.tickets[leave_ticket.id]
    assert escalation_service.needs_escalation(escalated, clock.now) is None

    clock.advance(hours=40)
    breach = escalation_service.needs_escalation(escalated, clock.now)
    assert breach.sla_type == SLAType.RESOLUTION


@pytest.mark.asyncio
async def test_needs_escalation_ignores_resolved_tickets(escalation_service, resolved_ticket, clock):
    clock.advance(days=10)

    assert escalation_service.needs_escalation(resolved_ticket, clock.now) is None


@pytest.mark.asyncio
async def test_sweep_rolls_back_a_failed_write(escalation_service, service, users, repo, clock):
    ticket = await service.create_ticket(users["emp"], ticket_request())
    repo.fail_commits = True
    clock.advance(hours=9)

    result = await escalation_service.sweep_escalations()

    assert (result.escalated, result.failed) == (0, 1)
    assert repo.uncommitted == set()
    assert repo.tickets[ticket.id].escalation_level == 0
