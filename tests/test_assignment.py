import pytest

from hr_helpdesk.config import Role, TicketCategory, TicketStatus
from hr_helpdesk.core import ValidationException
from hr_helpdesk.tickets.domain import select_earliest, select_least_loaded

from conftest import make_user, ticket_request


def test_least_loaded_wins():
    a = make_user("a", Role.HR_EXECUTIVE, days_old=10)
    b = make_user("b", Role.HR_EXECUTIVE, days_old=5)

    assert select_least_loaded([a, b], {"a": 2, "b": 0}) is b


def test_tie_goes_to_oldest_account():
    a = make_user("a", Role.HR_EXECUTIVE, days_old=10)
    b = make_user("b", Role.HR_EXECUTIVE, days_old=50)

    assert select_least_loaded([a, b], {}) is b


def test_inactive_agents_are_never_picked():
    a = make_user("a", Role.HR_EXECUTIVE, is_active=False)

    assert select_least_loaded([a], {}) is None
    assert select_earliest([a]) is None


def test_escalation_pick_ignores_workload():
    a = make_user("a", Role.HR_MANAGER, days_old=90)
    b = make_user("b", Role.HR_MANAGER, days_old=10)

    assert select_earliest([b, a]) is a


@pytest.mark.asyncio
async def test_new_ticket_goes_to_agent_with_fewer_open_tickets(service, users, repo):
    # exec-old (the older account) already holds two open tickets
    for _ in range(2):
        await service.create_ticket(users["emp-other"], ticket_request())
        latest = max(repo.tickets.values(), key=lambda t: t.ticket_number)
        latest.assigned_to = "exec-old"

    ticket = await service.create_ticket(users["emp"], ticket_request())

    assert ticket.assigned_to == "exec-new"
    assert ticket.routing.auto_assigned
    assert not ticket.is_manually_assigned


@pytest.mark.asyncio
async def test_resolved_tickets_do_not_count_as_workload(service, users, repo):
    earlier = await service.create_ticket(users["emp-other"], ticket_request())
    assert earlier.assigned_to == "exec-old"
    repo.tickets[earlier.id].status = TicketStatus.RESOLVED

    ticket = await service.create_ticket(users["emp"], ticket_request())

    assert ticket.assigned_to == "exec-old"


@pytest.mark.asyncio
async def test_category_routes_to_its_tier(service, users):
    ticket = await service.create_ticket(
        users["emp"], ticket_request(category=TicketCategory.PAYROLL_SALARY_ISSUE)
    )

    assert ticket.assigned_to == "mgr-old"


@pytest.mark.asyncio
async def test_no_eligible_agent_leaves_ticket_unassigned(service, users, directory):
    for user_id in ("bp-old", "bp-new"):
        directory.users[user_id].is_active = False

    ticket = await service.create_ticket(
        users["emp"], ticket_request(category=TicketCategory.HARASSMENT_GRIEVANCE)
    )

    assert ticket.assigned_to is None
    assert ticket.routing is None
    assert ticket.status == TicketStatus.OPEN
    assert ticket.is_confidential


@pytest.mark.asyncio
async def test_manual_override_is_honoured(service, users):
    ticket = await service.create_ticket(users["emp"], ticket_request(assigned_to="mgr-new"))

    assert ticket.assigned_to == "mgr-new"
    assert ticket.is_manually_assigned
    assert not ticket.routing.auto_assigned


@pytest.mark.asyncio
async def test_manual_override_must_be_hr(service, users):
    with pytest.raises(ValidationException):
        await service.create_ticket(users["emp"], ticket_request(assigned_to="lead"))
    with pytest.raises(ValidationException):
        await service.create_ticket(users["emp"], ticket_request(assigned_to="nobody"))


@pytest.mark.asyncio
async def test_hr_reassignment_sets_manual_flag(service, users, leave_ticket, audit, dispatcher):
    ticket = await service.assign(leave_ticket.id, "exec-new", users["mgr-old"], "Covering leave")

    assert ticket.assigned_to == "exec-new"
    assert ticket.is_manually_assigned
    assert ticket.routing.assignment_reason == "Covering leave"
    await dispatcher.drain()
    assert audit.types()[-1] == "ticket_assigned"


@pytest.mark.asyncio
async def test_eligible_personnel_sorted_by_workload_then_name(service, users, repo):
    ticket = await service.create_ticket(users["emp"], ticket_request())
    assert ticket.assigned_to == "exec-old"

    result = await service.list_eligible_personnel(TicketCategory.LEAVE_ISSUE.value)

    assert result.eligible_roles == [Role.HR_EXECUTIVE]
    assert [(p.id, p.workload) for p in result.hr_personnel] == [("exec-new", 0), ("exec-old", 1)]


@pytest.mark.asyncio
async def test_eligible_personnel_without_category_lists_all_working_tiers(service):
    result = await service.list_eligible_personnel()

    assert {p.role for p in result.hr_personnel} == {Role.HR_EXECUTIVE, Role.HR_MANAGER, Role.HR_BP}


@pytest.mark.asyncio
async def test_eligible_personnel_rejects_unknown_category(service):
    with pytest.raises(ValidationException):
        await service.list_eligible_personnel("Pet Insurance")
