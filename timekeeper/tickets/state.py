from __future__ import annotations

from enum import Enum
from typing import Mapping


class TicketStatus(str, Enum):
    """Supported states for a ticket's lifecycle."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"


class TicketEvent(str, Enum):
    """Actions that move a ticket between statuses."""

    START = "start"
    PAUSE = "pause"
    COMPLETE = "complete"
    REOPEN = "reopen"


class RejectionCode(str, Enum):
    """Reasons a requested transition was refused."""

    INVALID_TRANSITION = "invalid_transition"
    PAUSE_REASON_REQUIRED = "pause_reason_required"
    CHECKLIST_INCOMPLETE = "checklist_incomplete"


# Statuses written by older releases, rewritten once at startup by the repository.
LEGACY_STATUS_NAMES: Mapping[str, TicketStatus] = {
    "Pendente": TicketStatus.PENDING,
    "Em Progresso": TicketStatus.IN_PROGRESS,
    "Em Espera": TicketStatus.ON_HOLD,
    "Pausado": TicketStatus.ON_HOLD,
    "Concluído": TicketStatus.COMPLETED,
}

_EVENT_FOR_DESTINATION: Mapping[TicketStatus, TicketEvent] = {
    TicketStatus.IN_PROGRESS: TicketEvent.START,
    TicketStatus.ON_HOLD: TicketEvent.PAUSE,
    TicketStatus.COMPLETED: TicketEvent.COMPLETE,
    TicketStatus.PENDING: TicketEvent.REOPEN,
}


def event_for(destination: TicketStatus) -> TicketEvent:
    """Return the event whose target status is ``destination``."""

    return _EVENT_FOR_DESTINATION[destination]
