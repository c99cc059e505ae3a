from __future__ import annotations

from .state import RejectionCode


class TicketServiceError(RuntimeError):
    """Base error for ticket service issues."""


class TicketNotFoundError(TicketServiceError):
    """Raised when a ticket could not be located."""


class TicketValidationError(TicketServiceError):
    """Raised when a transition is refused; nothing has been changed."""

    def __init__(self, code: RejectionCode, message: str) -> None:
        super().__init__(message)
        self.code = code


class TicketPersistenceError(TicketServiceError):
    """Raised when the ticket store fails to read or write."""
