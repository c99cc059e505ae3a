from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from tests.factories import T0, at, make_ticket
from timekeeper.dependencies import tickets as ticket_deps
from timekeeper.main import create_app
from timekeeper.tickets.clock import ManualClock
from timekeeper.tickets.errors import TicketNotFoundError, TicketPersistenceError
from timekeeper.tickets.models import Checklist
from timekeeper.tickets.service import Applied, Rejected
from timekeeper.tickets.state import RejectionCode, TicketStatus


@pytest.fixture
def ticket_client():
    app = create_app()
    service = AsyncMock()
    clock = ManualClock(at(60))

    async def override_service():
        return service

    app.dependency_overrides[ticket_deps.get_ticket_service] = override_service
    app.dependency_overrides[ticket_deps.get_clock] = lambda: clock

    client = TestClient(app)
    try:
        yield client, service
    finally:
        app.dependency_overrides.clear()


def test_create_ticket_endpoint_returns_created(ticket_client):
    client, service = ticket_client
    service.create_ticket = AsyncMock(return_value=make_ticket("t-1", subject="Subject"))

    response = client.post("/tickets", json={"subject": "Subject", "client_name": "ACME"})

    assert response.status_code == 201
    assert response.json()["id"] == "t-1"
    assert response.json()["status"] == "pending"
    service.create_ticket.assert_awaited_with(
        subject="Subject", reference=None, client_name="ACME", priority=None, difficulty=None
    )


def test_list_tickets_reports_running_elapsed(ticket_client):
    client, service = ticket_client
    running = make_ticket("t-1", status=TicketStatus.IN_PROGRESS, elapsed_time=10, current_timer_start_time=T0)
    service.list_tickets = AsyncMock(return_value=[running])

    response = client.get("/tickets", params={"status": "in_progress"})

    assert response.status_code == 200
    body = response.json()
    assert body[0]["elapsed_time"] == 10
    assert body[0]["running_elapsed"] == 70
    service.list_tickets.assert_awaited_with(status=TicketStatus.IN_PROGRESS)


def test_get_missing_ticket_returns_404(ticket_client):
    client, service = ticket_client
    service.get_ticket = AsyncMock(side_effect=TicketNotFoundError("Ticket x not found"))

    assert client.get("/tickets/x").status_code == 404


def test_start_returns_all_updated_tickets(ticket_client):
    client, service = ticket_client
    paused = make_ticket("a", status=TicketStatus.ON_HOLD, elapsed_time=30)
    started = make_ticket("b", status=TicketStatus.IN_PROGRESS, current_timer_start_time=at(30))
    service.on_start_requested = AsyncMock(return_value=Applied([paused, started]))

    response = client.post("/tickets/b/start")

    assert response.status_code == 200
    assert [ticket["id"] for ticket in response.json()["tickets"]] == ["a", "b"]
    service.on_start_requested.assert_awaited_with("b")


def test_stop_rejection_returns_code(ticket_client):
    client, service = ticket_client
    service.on_stop_requested = AsyncMock(
        return_value=Rejected(RejectionCode.PAUSE_REASON_REQUIRED, "A reason is required to pause a ticket")
    )

    response = client.post("/tickets/a/stop", json={"destination": "on_hold", "reason": ""})

    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "pause_reason_required"


def test_stop_passes_checklist_to_service(ticket_client):
    client, service = ticket_client
    service.on_stop_requested = AsyncMock(return_value=Applied([]))

    response = client.post(
        "/tickets/a/stop",
        json={"destination": "completed", "checklist": {"ticket_answered": True, "sheet_updated": True}},
    )

    assert response.status_code == 200
    service.on_stop_requested.assert_awaited_with(
        "a",
        TicketStatus.COMPLETED,
        reason=None,
        checklist=Checklist(ticket_answered=True, sheet_updated=True),
    )


def test_move_completed_ticket_returns_conflict(ticket_client):
    client, service = ticket_client
    service.on_drag_dropped = AsyncMock(
        return_value=Rejected(RejectionCode.INVALID_TRANSITION, "A completed ticket can only be moved back to pending")
    )

    response = client.post("/tickets/t3/move", json={"destination": "on_hold"})

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "invalid_transition"


def test_persistence_failure_is_distinct_from_rejection(ticket_client):
    client, service = ticket_client
    service.on_start_requested = AsyncMock(side_effect=TicketPersistenceError("db down"))

    response = client.post("/tickets/b/start")

    assert response.status_code == 503


def test_patch_requires_fields(ticket_client):
    client, _ = ticket_client

    assert client.patch("/tickets/a", json={}).status_code == 400


def test_delete_ticket(ticket_client):
    client, service = ticket_client
    service.delete_ticket = AsyncMock(return_value=None)

    assert client.delete("/tickets/a").status_code == 204
    service.delete_ticket.assert_awaited_with("a")


def test_ping():
    client = TestClient(create_app())

    assert client.get("/ping").json() == {"status": "ok"}


def test_patch_passes_explicit_null_to_clear_field(ticket_client):
    client, service = ticket_client
    service.update_details = AsyncMock(return_value=make_ticket("a"))

    response = client.patch("/tickets/a", json={"client_name": None})

    assert response.status_code == 200
    service.update_details.assert_awaited_with("a", client_name=None)


def test_patch_refused_field_value_returns_422(ticket_client):
    client, service = ticket_client
    service.update_details = AsyncMock(side_effect=ValueError("A ticket subject cannot be empty"))

    response = client.patch("/tickets/a", json={"subject": None})

    assert response.status_code == 422
    assert response.json()["detail"] == "A ticket subject cannot be empty"
