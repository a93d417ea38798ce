import asyncio

import httpx
import pytest

from hr_helpdesk.tickets.application import AuditDispatcher, AuditEvent, TicketService
from hr_helpdesk.tickets.infrastructure import (
    CircuitBreaker,
    CircuitState,
    LoggingAuditPublisher,
    WebhookAuditPublisher,
    build_audit_publisher,
)

from conftest import BASE_TIME, ticket_request


class Ticker:

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def make_event():
    return AuditEvent(
        event_type="ticket_created",
        ticket_id="t-1",
        ticket_number="TKT202603020001",
        actor_id="emp",
        occurred_at=BASE_TIME,
        data={"priority": "Medium"},
    )


def test_circuit_opens_after_threshold_and_half_opens_later():
    ticker = Ticker()
    breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=30, clock=ticker)

    breaker.record_failure()
    assert breaker.allow_request()
    breaker.record_failure()
    assert breaker.state == CircuitState.OPEN
    assert not breaker.allow_request()

    ticker.now = 30
    assert breaker.state == CircuitState.HALF_OPEN
    breaker.record_failure()
    assert breaker.state == CircuitState.OPEN

    ticker.now = 60
    breaker.record_success()
    assert breaker.state == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_webhook_delivers_event_payload():
    received = []

    def handler(request):
        received.append(request)
        return httpx.Response(202)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    publisher = WebhookAuditPublisher("http://audit.test/events", http_client=client)

    assert await publisher.send(make_event()) is True
    assert len(received) == 1
    assert b'"ticket_number":"TKT202603020001"' in received[0].content.replace(b" ", b"")
    await publisher.close()


@pytest.mark.asyncio
async def test_webhook_retries_then_gives_up():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503)

    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
    publisher = WebhookAuditPublisher(
        "http://audit.test/events",
        max_retries=3,
        retry_base_delay=0,
        circuit_breaker=breaker,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )

    assert await publisher.send(make_event()) is False
    assert len(calls) == 3

    # circuit now open: nothing goes out
    assert await publisher.send(make_event()) is False
    assert len(calls) == 3
    await publisher.close()


@pytest.mark.asyncio
async def test_webhook_survives_transport_errors():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    publisher = WebhookAuditPublisher(
        "http://audit.test/events",
        max_retries=2,
        retry_base_delay=0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )

    assert await publisher.send(make_event()) is False
    await publisher.close()


def test_publisher_choice_follows_configuration():
    assert isinstance(build_audit_publisher(None, 5.0), LoggingAuditPublisher)
    assert isinstance(build_audit_publisher("http://audit.test/events", 5.0), WebhookAuditPublisher)


# ========== Background delivery ==========

@pytest.mark.asyncio
async def test_ticket_is_filed_while_the_webhook_is_stalled(repo, directory, config_provider, clock, users):
    release = asyncio.Event()
    calls = []

    async def handler(request):
        calls.append(request)
        await release.wait()
        return httpx.Response(503)

    publisher = WebhookAuditPublisher(
        "http://audit.test/events",
        max_retries=1,
        retry_base_delay=0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    dispatcher = AuditDispatcher(publisher)
    service = TicketService(repo, directory, config_provider, dispatcher, clock=clock)

    ticket = await asyncio.wait_for(service.create_ticket(users["emp"], ticket_request()), timeout=0.5)

    assert ticket.id in repo.tickets
    assert repo.uncommitted == set()
    assert dispatcher.pending == 1

    release.set()
    assert await dispatcher.drain(timeout=1) == 0
    assert len(calls) == 1
    await publisher.close()


@pytest.mark.asyncio
async def test_drain_reports_deliveries_that_outlive_the_timeout():
    release = asyncio.Event()

    class StalledPublisher(LoggingAuditPublisher):
        async def publish(self, event):
            await release.wait()

    dispatcher = AuditDispatcher(StalledPublisher())
    dispatcher.dispatch(make_event())

    assert await dispatcher.drain(timeout=0.01) == 1

    release.set()
    assert await dispatcher.drain(timeout=1) == 0
    assert dispatcher.pending == 0
