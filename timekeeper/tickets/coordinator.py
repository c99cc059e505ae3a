"""Single-active-ticket enforcement.

Only one ticket may be timed at a time. Starting a ticket therefore plans an
automatic pause for whichever ticket is currently running, followed by the
start itself. The coordinator never touches the store: it returns the planned
updates in the order they have to be persisted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from .errors import TicketNotFoundError, TicketValidationError
from .machine import TicketStateMachine
from .models import Checklist, Ticket
from .state import RejectionCode, TicketEvent, TicketStatus

logger = logging.getLogger(__name__)

DEFAULT_AUTO_PAUSE_REASON = "auto-paused to start '{subject}'"


@dataclass(slots=True)
class TicketUpdate:
    """Proposed new state of a ticket, to be written through the store."""

    ticket_id: str
    ticket: Ticket

    def changes(self) -> dict[str, Any]:
        """Fields owned by the state machine, ready for a partial update."""

        return {
            "status": self.ticket.status,
            "is_active": self.ticket.is_active,
            "elapsed_time": self.ticket.elapsed_time,
            "current_timer_start_time": self.ticket.current_timer_start_time,
            "checklist": self.ticket.checklist,
            "log": self.ticket.log,
        }


@dataclass(slots=True)
class StartPlan:
    """Ordered updates produced by :meth:`ActiveTicketCoordinator.start_ticket`.

    ``started`` is ``None`` when the target was already running and the plan
    only pauses the other tickets found in progress alongside it.
    """

    started: TicketUpdate | None
    auto_paused: list[TicketUpdate] = field(default_factory=list)

    @property
    def updates(self) -> list[TicketUpdate]:
        if self.started is None:
            return list(self.auto_paused)
        return [*self.auto_paused, self.started]


def find_active_tickets(tickets: Iterable[Ticket], *, exclude: str | None = None) -> list[Ticket]:
    """Return every in-progress ticket, optionally ignoring ``exclude``."""

    return [ticket for ticket in tickets if ticket.status is TicketStatus.IN_PROGRESS and ticket.id != exclude]


class ActiveTicketCoordinator:
    """Plan start/stop requests while keeping at most one ticket in progress."""

    def __init__(
        self,
        state_machine: TicketStateMachine | None = None,
        *,
        auto_pause_reason: str = DEFAULT_AUTO_PAUSE_REASON,
    ) -> None:
        self._state_machine = state_machine or TicketStateMachine()
        self._auto_pause_reason = auto_pause_reason

    def start_ticket(self, target_id: str, tickets: Sequence[Ticket]) -> StartPlan:
        target = _find(target_id, tickets)

        running = find_active_tickets(tickets)
        if len(running) > 1:
            logger.warning(
                "Found %d tickets in progress at once (%s); keeping only %s running",
                len(running),
                ", ".join(ticket.id for ticket in running),
                target_id,
            )
        others = [ticket for ticket in running if ticket.id != target_id]

        already_running = target.status is TicketStatus.IN_PROGRESS
        if not (already_running and others):
            # Refused starts plan nothing.
            TicketStateMachine.assert_transition(target.status, TicketEvent.START)

        now = self._state_machine.clock.now()
        reason = self._auto_pause_reason.format(subject=target.subject)
        auto_paused = [
            TicketUpdate(ticket.id, self._state_machine.transition(ticket, TicketEvent.PAUSE, reason=reason, now=now))
            for ticket in others
        ]
        for update in auto_paused:
            logger.info("Auto-pausing ticket %s to start %s", update.ticket_id, target_id)

        if already_running:
            return StartPlan(started=None, auto_paused=auto_paused)
        started = self._state_machine.transition(target, TicketEvent.START, now=now)
        return StartPlan(started=TicketUpdate(target_id, started), auto_paused=auto_paused)

    def stop_ticket(
        self,
        ticket: Ticket,
        destination: TicketStatus,
        *,
        reason: str | None = None,
        checklist: Checklist | None = None,
    ) -> TicketUpdate:
        if destination is TicketStatus.ON_HOLD:
            event = TicketEvent.PAUSE
        elif destination is TicketStatus.COMPLETED:
            event = TicketEvent.COMPLETE
        else:
            raise TicketValidationError(
                RejectionCode.INVALID_TRANSITION,
                f"A running ticket can only be stopped to on_hold or completed, not {destination.value}",
            )
        updated = self._state_machine.transition(ticket, event, reason=reason, checklist=checklist)
        return TicketUpdate(ticket.id, updated)


def _find(ticket_id: str, tickets: Iterable[Ticket]) -> Ticket:
    for ticket in tickets:
        if ticket.id == ticket_id:
            return ticket
    raise TicketNotFoundError(f"Ticket {ticket_id} not found")
