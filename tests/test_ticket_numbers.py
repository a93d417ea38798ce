from datetime import datetime, timedelta, timezone

import pytest

from hr_helpdesk.core import DuplicateTicketNumberException
from hr_helpdesk.tickets.application import TicketNumberGenerator, TicketService

from conftest import BASE_TIME, ticket_request


@pytest.mark.asyncio
async def test_first_ticket_of_the_day(service, users):
    ticket = await service.create_ticket(users["emp"], ticket_request())

    assert ticket.ticket_number == "TKT202603020001"


@pytest.mark.asyncio
async def test_sequence_continues_within_the_day_and_resets_next_day(service, users, clock):
    await service.create_ticket(users["emp"], ticket_request())
    second = await service.create_ticket(users["emp"], ticket_request())
    assert second.ticket_number == "TKT202603020002"

    clock.advance(days=1)
    next_day = await service.create_ticket(users["emp"], ticket_request())
    assert next_day.ticket_number == "TKT202603030001"


@pytest.mark.asyncio
async def test_sequence_past_four_digits_keeps_counting(repo):
    generator = TicketNumberGenerator(repo)
    repo.max_ticket_number_with_prefix = _returns("TKT202603029999")

    assert await generator.next_number(BASE_TIME) == "TKT2026030210000"


@pytest.mark.asyncio
async def test_lookup_failure_falls_back_to_epoch_millis(service, users, repo):
    repo.fail_number_lookup = True

    ticket = await service.create_ticket(users["emp"], ticket_request())

    assert ticket.ticket_number == f"TKT{int(BASE_TIME.timestamp() * 1000)}"


def test_prefix_uses_the_utc_date(repo):
    generator = TicketNumberGenerator(repo)
    ist = timezone(timedelta(hours=5, minutes=30))

    # 01:00 IST on 3 March is still 2 March in UTC
    assert generator.prefix_for(datetime(2026, 3, 3, 1, 0, tzinfo=ist)) == "TKT20260302"
    assert generator.prefix_for(BASE_TIME) == "TKT20260302"


def _returns(value):
    async def lookup(prefix):
        return value
    return lookup


@pytest.mark.asyncio
async def test_number_taken_by_a_concurrent_create_is_reissued(service, users, repo):
    repo.rival_creates = 1

    ticket = await service.create_ticket(users["emp"], ticket_request())

    assert ticket.ticket_number == "TKT202603020002"
    assert repo.tickets[ticket.id].ticket_number == "TKT202603020002"
    assert repo.tickets["rival-TKT202603020001"].ticket_number == "TKT202603020001"


@pytest.mark.asyncio
async def test_number_clash_gives_up_after_bounded_attempts(service, users, repo, audit, dispatcher):
    repo.rival_creates = TicketService.NUMBER_ATTEMPTS

    with pytest.raises(DuplicateTicketNumberException):
        await service.create_ticket(users["emp"], ticket_request())

    assert sorted(repo.tickets) == [
        "rival-TKT202603020001", "rival-TKT202603020002", "rival-TKT202603020003",
    ]
    await dispatcher.drain()
    assert audit.events == []
