import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from hr_helpdesk.main import app
from hr_helpdesk.tickets.interfaces.controllers import (
    get_audit_dispatcher,
    get_clock,
    get_ticket_repository,
    get_user_directory,
)

NEW_TICKET = {
    "category": "Leave Issue",
    "subject": "Leave balance looks wrong",
    "description": "My casual leave balance dropped by two days.",
}


@pytest_asyncio.fixture
async def client(repo, directory, dispatcher, clock):
    app.dependency_overrides[get_ticket_repository] = lambda: repo
    app.dependency_overrides[get_user_directory] = lambda: directory
    app.dependency_overrides[get_audit_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_clock] = lambda: clock

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http

    app.dependency_overrides.clear()


def as_user(user_id):
    return {"X-User-ID": user_id}


@pytest.mark.asyncio
async def test_file_a_ticket(client):
    response = await client.post("/tickets", json=NEW_TICKET, headers=as_user("emp"))

    assert response.status_code == 201
    body = response.json()
    assert body["ticket_number"] == "TKT202603020001"
    assert body["assigned_to"] == "exec-old"
    assert body["status"] == "Open"
    assert body["sla"]["response_hours"] == 8
    assert body["resolution_status"]["phase"] == "awaiting_hr"
    assert "X-Correlation-ID" in response.headers


@pytest.mark.asyncio
async def test_blank_subject_is_rejected(client):
    response = await client.post(
        "/tickets", json={**NEW_TICKET, "subject": "   "}, headers=as_user("emp")
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_or_inactive_user_is_refused(client, directory):
    unknown = await client.post("/tickets", json=NEW_TICKET, headers=as_user("ghost"))
    assert unknown.status_code == 403
    assert unknown.json()["code"] == "not_authorized"

    directory.users["emp"].is_active = False
    inactive = await client.get("/tickets", headers=as_user("emp"))
    assert inactive.status_code == 403


@pytest.mark.asyncio
async def test_missing_user_header(client):
    response = await client.get("/tickets")

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_lifecycle_over_http(client, clock):
    created = (await client.post("/tickets", json=NEW_TICKET, headers=as_user("emp"))).json()
    ticket_url = f"/tickets/{created['id']}"

    early = await client.patch(f"{ticket_url}/confirm", headers=as_user("emp"))
    assert early.status_code == 409
    assert early.json()["code"] == "resolution_required"

    resolved = await client.patch(
        f"{ticket_url}/resolve",
        json={"resolution_comment": "Balance corrected"},
        headers=as_user("exec-old"),
    )
    assert resolved.status_code == 200
    assert resolved.json()["resolution_status"]["phase"] == "awaiting_confirmation"
    assert not resolved.json()["resolution_status"]["can_confirm"]

    as_creator = (await client.get(ticket_url, headers=as_user("emp"))).json()["resolution_status"]
    assert (as_creator["can_confirm"], as_creator["can_reopen"]) == (True, True)

    clock.advance(hours=73)
    expired = (await client.get(ticket_url, headers=as_user("emp"))).json()["resolution_status"]
    assert (expired["can_confirm"], expired["can_reopen"]) == (True, False)
    late = await client.patch(f"{ticket_url}/reopen", headers=as_user("emp"))
    assert late.status_code == 409
    assert late.json()["code"] == "reopen_window_expired"

    confirmed = await client.patch(f"{ticket_url}/confirm", headers=as_user("emp"))
    assert confirmed.json()["status"] == "Closed"

    feedback = await client.post(
        f"{ticket_url}/feedback", json={"rating": 5}, headers=as_user("emp")
    )
    assert feedback.json()["feedback"]["rating"] == 5


@pytest.mark.asyncio
async def test_hidden_ticket_is_forbidden(client):
    created = (await client.post("/tickets", json=NEW_TICKET, headers=as_user("emp"))).json()

    response = await client.get(f"/tickets/{created['id']}", headers=as_user("emp-other"))

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_missing_ticket_is_404(client):
    response = await client.get("/tickets/does-not-exist", headers=as_user("admin"))

    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


@pytest.mark.asyncio
async def test_list_pagination(client):
    for _ in range(3):
        await client.post("/tickets", json=NEW_TICKET, headers=as_user("emp"))

    response = await client.get("/tickets?page=2&limit=2", headers=as_user("emp"))

    body = response.json()
    assert body["pagination"] == {"current": 2, "pages": 2, "total": 3, "limit": 2}
    assert len(body["tickets"]) == 1


@pytest.mark.asyncio
async def test_sweep_endpoint_is_admin_only(client, clock):
    await client.post("/tickets", json=NEW_TICKET, headers=as_user("emp"))
    clock.advance(hours=9)

    denied = await client.post("/tickets/escalations/sweep", headers=as_user("mgr-old"))
    assert denied.status_code == 403

    response = await client.post("/tickets/escalations/sweep", headers=as_user("admin"))
    assert response.status_code == 200
    assert response.json()["escalated"] == 1


@pytest.mark.asyncio
async def test_eligible_personnel_endpoint(client):
    response = await client.get(
        "/tickets/hr-personnel/Payslip%20Not%20Available", headers=as_user("emp")
    )

    assert response.status_code == 200
    body = response.json()
    assert body["eligible_roles"] == ["HR Manager"]
    assert [p["id"] for p in body["hr_personnel"]] == ["mgr-new", "mgr-old"]


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_ticket_number_clash_is_a_conflict(client, repo):
    repo.rival_creates = 3

    response = await client.post("/tickets", json=NEW_TICKET, headers=as_user("emp"))

    assert response.status_code == 409
    assert response.json()["code"] == "duplicate_ticket_number"
