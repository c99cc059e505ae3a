import logging

import pytest

from tests.factories import T0, TickingClock, at, make_ticket
from timekeeper.tickets.coordinator import ActiveTicketCoordinator, find_active_tickets
from timekeeper.tickets.errors import TicketNotFoundError, TicketValidationError
from timekeeper.tickets.machine import TicketStateMachine
from timekeeper.tickets.models import Checklist
from timekeeper.tickets.state import RejectionCode, TicketStatus


@pytest.fixture
def coordinator(clock):
    return ActiveTicketCoordinator(TicketStateMachine(clock))


def test_find_active_tickets_is_derived_from_status():
    tickets = [
        make_ticket("a", status=TicketStatus.IN_PROGRESS),
        make_ticket("b"),
        make_ticket("c", status=TicketStatus.IN_PROGRESS),
    ]

    assert [ticket.id for ticket in find_active_tickets(tickets)] == ["a", "c"]
    assert [ticket.id for ticket in find_active_tickets(tickets, exclude="a")] == ["c"]


def test_start_ticket_auto_pauses_running_ticket(clock, coordinator):
    running = make_ticket("a", subject="Printer", status=TicketStatus.IN_PROGRESS, current_timer_start_time=T0)
    target = make_ticket("b", subject="Router")

    clock.set(at(30))
    plan = coordinator.start_ticket("b", [running, target])

    assert [update.ticket_id for update in plan.updates] == ["a", "b"]
    paused = plan.updates[0].ticket
    assert paused.status is TicketStatus.ON_HOLD
    assert paused.elapsed_time == 30
    assert paused.current_timer_start_time is None
    assert paused.log[-1].action == "Paused"
    assert paused.log[-1].reason == "auto-paused to start 'Router'"

    started = plan.started.ticket
    assert started.status is TicketStatus.IN_PROGRESS
    assert started.current_timer_start_time == at(30)


def test_start_ticket_without_running_ticket_only_starts_target(coordinator):
    plan = coordinator.start_ticket("b", [make_ticket("a"), make_ticket("b")])

    assert plan.auto_paused == []
    assert [update.ticket_id for update in plan.updates] == ["b"]


def test_start_ticket_pauses_every_running_ticket_on_anomaly(clock, coordinator, caplog):
    tickets = [
        make_ticket("a", status=TicketStatus.IN_PROGRESS),
        make_ticket("b", status=TicketStatus.IN_PROGRESS),
        make_ticket("c", status=TicketStatus.ON_HOLD),
    ]

    with caplog.at_level(logging.WARNING, logger="timekeeper.tickets.coordinator"):
        plan = coordinator.start_ticket("c", tickets)

    assert [update.ticket_id for update in plan.auto_paused] == ["a", "b"]
    assert all(update.ticket.status is TicketStatus.ON_HOLD for update in plan.auto_paused)
    assert "2 tickets in progress" in caplog.text


def test_start_rejected_target_plans_nothing(coordinator):
    tickets = [make_ticket("a", status=TicketStatus.IN_PROGRESS), make_ticket("b", status=TicketStatus.COMPLETED)]

    with pytest.raises(TicketValidationError) as excinfo:
        coordinator.start_ticket("b", tickets)

    assert excinfo.value.code is RejectionCode.INVALID_TRANSITION
    assert tickets[0].status is TicketStatus.IN_PROGRESS


def test_start_unknown_ticket_raises_not_found(coordinator):
    with pytest.raises(TicketNotFoundError):
        coordinator.start_ticket("missing", [make_ticket("a")])


def test_custom_auto_pause_reason(clock):
    coordinator = ActiveTicketCoordinator(TicketStateMachine(clock), auto_pause_reason="switched to {subject}")
    tickets = [make_ticket("a", status=TicketStatus.IN_PROGRESS), make_ticket("b", subject="VPN")]

    plan = coordinator.start_ticket("b", tickets)

    assert plan.auto_paused[0].ticket.log[-1].reason == "switched to VPN"


def test_stop_ticket_routes_to_matching_event(clock, coordinator):
    ticket = make_ticket("a", status=TicketStatus.IN_PROGRESS)
    clock.set(at(5))

    update = coordinator.stop_ticket(
        ticket, TicketStatus.COMPLETED, checklist=Checklist(ticket_answered=True, sheet_updated=True)
    )

    assert update.ticket_id == "a"
    assert update.changes()["status"] is TicketStatus.COMPLETED
    assert update.changes()["elapsed_time"] == 5
    assert update.changes()["current_timer_start_time"] is None

    with pytest.raises(TicketValidationError) as excinfo:
        coordinator.stop_ticket(ticket, TicketStatus.PENDING)
    assert excinfo.value.code is RejectionCode.INVALID_TRANSITION


def test_auto_pause_and_start_share_one_instant():
    coordinator = ActiveTicketCoordinator(TicketStateMachine(TickingClock()))
    tickets = [make_ticket("a", status=TicketStatus.IN_PROGRESS), make_ticket("b")]

    plan = coordinator.start_ticket("b", tickets)

    paused_at = plan.auto_paused[0].ticket.log[-1].timestamp
    started = plan.started.ticket
    assert started.current_timer_start_time == paused_at
    assert started.log[-1].timestamp == paused_at
    assert plan.auto_paused[0].ticket.elapsed_time == int((paused_at - T0).total_seconds())


def test_start_on_running_ticket_pauses_the_other_running_ones(coordinator, caplog):
    tickets = [
        make_ticket("a", status=TicketStatus.IN_PROGRESS),
        make_ticket("b", subject="Router", status=TicketStatus.IN_PROGRESS),
    ]

    with caplog.at_level(logging.WARNING, logger="timekeeper.tickets.coordinator"):
        plan = coordinator.start_ticket("b", tickets)

    assert "2 tickets in progress" in caplog.text
    assert plan.started is None
    assert [update.ticket_id for update in plan.updates] == ["a"]
    assert plan.auto_paused[0].ticket.status is TicketStatus.ON_HOLD
    assert plan.auto_paused[0].ticket.log[-1].reason == "auto-paused to start 'Router'"


def test_start_on_only_running_ticket_is_rejected(coordinator):
    tickets = [make_ticket("a", status=TicketStatus.IN_PROGRESS), make_ticket("b")]

    with pytest.raises(TicketValidationError) as excinfo:
        coordinator.start_ticket("a", tickets)

    assert excinfo.value.code is RejectionCode.INVALID_TRANSITION
