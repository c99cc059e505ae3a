"""Ticket lifecycle transitions and timer bookkeeping."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Mapping

from . import audit
from .audit import AuditLogBuilder
from .clock import Clock, SystemClock
from .errors import TicketValidationError
from .models import Checklist, Ticket
from .state import RejectionCode, TicketEvent, TicketStatus
from .timer import commit_session

logger = logging.getLogger(__name__)


class TicketStateMachine:
    """Validate and apply ticket lifecycle transitions.

    Tickets are treated as values: a successful transition returns a new
    :class:`Ticket` and a refused one raises :class:`TicketValidationError`
    leaving the input untouched. Each transition happens at a single instant,
    shared by the timer fields and the log entry it appends.
    """

    _TRANSITIONS: Mapping[tuple[TicketStatus, TicketEvent], TicketStatus] = {
        (TicketStatus.PENDING, TicketEvent.START): TicketStatus.IN_PROGRESS,
        (TicketStatus.ON_HOLD, TicketEvent.START): TicketStatus.IN_PROGRESS,
        (TicketStatus.IN_PROGRESS, TicketEvent.PAUSE): TicketStatus.ON_HOLD,
        (TicketStatus.IN_PROGRESS, TicketEvent.COMPLETE): TicketStatus.COMPLETED,
        (TicketStatus.COMPLETED, TicketEvent.REOPEN): TicketStatus.PENDING,
    }

    def __init__(self, clock: Clock | None = None, audit_log: AuditLogBuilder | None = None) -> None:
        self._clock = clock or SystemClock()
        self._audit = audit_log or AuditLogBuilder(self._clock)

    @property
    def clock(self) -> Clock:
        return self._clock

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.PENDING

    @classmethod
    def can_transition(cls, current: TicketStatus, event: TicketEvent) -> bool:
        return (current, event) in cls._TRANSITIONS

    @classmethod
    def assert_transition(cls, current: TicketStatus, event: TicketEvent) -> TicketStatus:
        target = cls._TRANSITIONS.get((current, event))
        if target is None:
            raise TicketValidationError(
                RejectionCode.INVALID_TRANSITION,
                f"Cannot {event.value} a ticket that is {current.value}",
            )
        return target

    def transition(
        self,
        ticket: Ticket,
        event: TicketEvent,
        *,
        reason: str | None = None,
        checklist: Checklist | None = None,
        now: datetime | None = None,
    ) -> Ticket:
        target = self.assert_transition(ticket.status, event)
        if now is None:
            now = self._clock.now()

        if event is TicketEvent.START:
            updated = self._start(ticket, now)
        elif event is TicketEvent.PAUSE:
            updated = self._pause(ticket, reason, checklist, now)
        elif event is TicketEvent.COMPLETE:
            updated = self._complete(ticket, reason, checklist, now)
        else:
            updated = replace(ticket, status=target, log=self._audit.append(ticket.log, audit.REOPENED, timestamp=now))

        logger.debug("Ticket %s: %s -> %s via %s", ticket.id, ticket.status.value, updated.status.value, event.value)
        return updated

    def _start(self, ticket: Ticket, now: datetime) -> Ticket:
        action = audit.RESUMED if ticket.status is TicketStatus.ON_HOLD else audit.STARTED
        return replace(
            ticket,
            status=TicketStatus.IN_PROGRESS,
            is_active=True,
            current_timer_start_time=now,
            log=self._audit.append(ticket.log, action, timestamp=now),
        )

    def _pause(self, ticket: Ticket, reason: str | None, checklist: Checklist | None, now: datetime) -> Ticket:
        cleaned = (reason or "").strip()
        if not cleaned:
            raise TicketValidationError(RejectionCode.PAUSE_REASON_REQUIRED, "A reason is required to pause a ticket")
        return replace(
            self._close_session(ticket, TicketStatus.ON_HOLD, now),
            checklist=checklist if checklist is not None else ticket.checklist,
            log=self._audit.append(ticket.log, audit.PAUSED, reason=cleaned, timestamp=now),
        )

    def _complete(self, ticket: Ticket, reason: str | None, checklist: Checklist | None, now: datetime) -> Ticket:
        effective = checklist if checklist is not None else ticket.checklist
        if not effective.is_complete:
            raise TicketValidationError(
                RejectionCode.CHECKLIST_INCOMPLETE,
                "The ticket must be answered and the sheet updated before completing",
            )
        cleaned = (reason or "").strip() or None
        return replace(
            self._close_session(ticket, TicketStatus.COMPLETED, now),
            checklist=effective,
            log=self._audit.append(ticket.log, audit.COMPLETED, reason=cleaned, checklist=effective, timestamp=now),
        )

    @staticmethod
    def _close_session(ticket: Ticket, status: TicketStatus, now: datetime) -> Ticket:
        return replace(
            ticket,
            status=status,
            is_active=False,
            elapsed_time=commit_session(ticket.elapsed_time, ticket.current_timer_start_time, now),
            current_timer_start_time=None,
        )
