"""Ticket lifecycle, timer accounting and single-active-ticket coordination."""

from .audit import AuditLogBuilder
from .clock import Clock, ManualClock, SystemClock
from .coordinator import ActiveTicketCoordinator, StartPlan, TicketUpdate, find_active_tickets
from .errors import TicketNotFoundError, TicketPersistenceError, TicketServiceError, TicketValidationError
from .machine import TicketStateMachine
from .models import Checklist, LogEntry, Ticket
from .service import Applied, Rejected, TicketService, TransitionResult
from .state import RejectionCode, TicketEvent, TicketStatus
from .timer import commit_session, running_elapsed

__all__ = [
    "ActiveTicketCoordinator",
    "Applied",
    "AuditLogBuilder",
    "Checklist",
    "Clock",
    "LogEntry",
    "ManualClock",
    "Rejected",
    "RejectionCode",
    "StartPlan",
    "SystemClock",
    "Ticket",
    "TicketEvent",
    "TicketNotFoundError",
    "TicketPersistenceError",
    "TicketService",
    "TicketServiceError",
    "TicketStateMachine",
    "TicketStatus",
    "TicketUpdate",
    "TicketValidationError",
    "TransitionResult",
    "commit_session",
    "find_active_tickets",
    "running_elapsed",
]
