from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence

from opentelemetry import trace

from .clock import Clock, SystemClock
from .coordinator import DEFAULT_AUTO_PAUSE_REASON, ActiveTicketCoordinator, TicketUpdate
from .errors import TicketNotFoundError, TicketPersistenceError, TicketValidationError
from .machine import TicketStateMachine
from .models import Checklist, Ticket
from .state import RejectionCode, TicketStatus, event_for

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DETAIL_FIELDS = frozenset({"reference", "subject", "client_name", "priority", "difficulty"})


class TicketStore(Protocol):
    async def create_ticket(self, ticket: Ticket) -> Ticket:
        ...

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        ...

    async def list_tickets(self, *, status: TicketStatus | None = None) -> list[Ticket]:
        ...

    async def update_ticket(self, ticket_id: str, changes: Mapping[str, Any]) -> Ticket | None:
        ...

    async def delete_ticket(self, ticket_id: str) -> bool:
        ...


@dataclass(slots=True)
class Applied:
    """Transition went through; ``tickets`` are the stored results in write order."""

    tickets: list[Ticket] = field(default_factory=list)


@dataclass(slots=True)
class Rejected:
    """Transition was refused before anything was written."""

    code: RejectionCode
    message: str


TransitionResult = Applied | Rejected


class TicketService:
    """Entry point for UI actions that start, stop or move tickets."""

    def __init__(
        self,
        repository: TicketStore,
        *,
        clock: Clock | None = None,
        auto_pause_reason: str = DEFAULT_AUTO_PAUSE_REASON,
    ) -> None:
        self._repository = repository
        self._clock = clock or SystemClock()
        self._state_machine = TicketStateMachine(self._clock)
        self._coordinator = ActiveTicketCoordinator(self._state_machine, auto_pause_reason=auto_pause_reason)
        self._transition_lock = asyncio.Lock()

    async def create_ticket(
        self,
        *,
        subject: str,
        reference: str | None = None,
        client_name: str | None = None,
        priority: str | None = None,
        difficulty: str | None = None,
    ) -> Ticket:
        now = self._clock.now()
        ticket = Ticket(
            id=str(uuid.uuid4()),
            subject=subject,
            reference=reference or f"T-{int(now.timestamp()) % 1_000_000:06d}",
            client_name=client_name,
            priority=priority,
            difficulty=difficulty,
            status=TicketStateMachine.initial_state(),
            created_at=now,
            updated_at=now,
        )
        created = await self._repository.create_ticket(ticket)
        logger.info("Created ticket %s (%s)", created.id, created.reference)
        return created

    async def get_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self._repository.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    async def list_tickets(self, *, status: TicketStatus | None = None) -> list[Ticket]:
        return await self._repository.list_tickets(status=status)

    async def update_details(self, ticket_id: str, **fields: Any) -> Ticket:
        """Edit descriptive fields; status and timer fields only move via transitions.

        A field passed as ``None`` is cleared. ``subject`` cannot be cleared.
        """

        unknown = set(fields) - DETAIL_FIELDS
        if unknown:
            raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")
        if "subject" in fields and not (fields["subject"] or "").strip():
            raise ValueError("A ticket subject cannot be empty")
        if not fields:
            return await self.get_ticket(ticket_id)
        updated = await self._repository.update_ticket(ticket_id, fields)
        if updated is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return updated

    async def delete_ticket(self, ticket_id: str) -> None:
        deleted = await self._repository.delete_ticket(ticket_id)
        if not deleted:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        logger.info("Deleted ticket %s", ticket_id)

    async def on_start_requested(self, ticket_id: str) -> TransitionResult:
        with tracer.start_as_current_span("ticket.start") as span:
            span.set_attribute("ticket.id", ticket_id)
            async with self._transition_lock:
                return await self._start(ticket_id)

    async def on_stop_requested(
        self,
        ticket_id: str,
        destination: TicketStatus,
        reason: str | None = None,
        checklist: Checklist | None = None,
    ) -> TransitionResult:
        with tracer.start_as_current_span("ticket.stop") as span:
            span.set_attribute("ticket.id", ticket_id)
            span.set_attribute("ticket.destination", destination.value)
            async with self._transition_lock:
                return await self._stop(ticket_id, destination, reason, checklist)

    async def on_drag_dropped(
        self,
        ticket_id: str,
        destination: TicketStatus,
        reason: str | None = None,
        checklist: Checklist | None = None,
    ) -> TransitionResult:
        """Handle a Kanban card dropped onto the ``destination`` column.

        ``reason`` and ``checklist`` are whatever the blocking prompt collected
        when a running card leaves the in-progress column.
        """

        with tracer.start_as_current_span("ticket.drag") as span:
            span.set_attribute("ticket.id", ticket_id)
            span.set_attribute("ticket.destination", destination.value)
            async with self._transition_lock:
                ticket = await self.get_ticket(ticket_id)
                source = ticket.status
                if source is destination:
                    return Applied([])
                if source is TicketStatus.COMPLETED and destination is not TicketStatus.PENDING:
                    return self._reject(
                        ticket_id,
                        TicketValidationError(
                            RejectionCode.INVALID_TRANSITION,
                            "A completed ticket can only be moved back to pending",
                        ),
                    )
                if destination is TicketStatus.IN_PROGRESS:
                    return await self._start(ticket_id)
                if source is TicketStatus.IN_PROGRESS:
                    return await self._stop(ticket_id, destination, reason, checklist)
                try:
                    updated = self._state_machine.transition(
                        ticket, event_for(destination), reason=reason, checklist=checklist
                    )
                except TicketValidationError as exc:
                    return self._reject(ticket_id, exc)
                return await self._persist([TicketUpdate(ticket_id, updated)])

    async def _start(self, ticket_id: str) -> TransitionResult:
        # Decide against a fresh snapshot of every ticket.
        tickets = await self._repository.list_tickets()
        try:
            plan = self._coordinator.start_ticket(ticket_id, tickets)
        except TicketValidationError as exc:
            return self._reject(ticket_id, exc)
        return await self._persist(plan.updates)

    async def _stop(
        self,
        ticket_id: str,
        destination: TicketStatus,
        reason: str | None,
        checklist: Checklist | None,
    ) -> TransitionResult:
        ticket = await self.get_ticket(ticket_id)
        try:
            update = self._coordinator.stop_ticket(ticket, destination, reason=reason, checklist=checklist)
        except TicketValidationError as exc:
            return self._reject(ticket_id, exc)
        return await self._persist([update])

    async def _persist(self, updates: Sequence[TicketUpdate]) -> Applied:
        """Write updates one by one, stopping at the first failure.

        An auto-pause that was not stored must never be followed by the start
        it made room for, or two tickets would end up running.
        """

        stored: list[Ticket] = []
        for index, update in enumerate(updates):
            try:
                result = await self._repository.update_ticket(update.ticket_id, update.changes())
            except TicketPersistenceError:
                logger.error(
                    "Persisting ticket %s failed; skipped %d remaining update(s)",
                    update.ticket_id,
                    len(updates) - index - 1,
                )
                raise
            if result is None:
                raise TicketNotFoundError(f"Ticket {update.ticket_id} not found")
            stored.append(result)
            logger.info("Ticket %s is now %s", result.id, result.status.value)
        return Applied(stored)

    @staticmethod
    def _reject(ticket_id: str, exc: TicketValidationError) -> Rejected:
        logger.info("Rejected transition for ticket %s: %s", ticket_id, exc.code.value)
        return Rejected(code=exc.code, message=str(exc))
