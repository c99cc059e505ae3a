from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from .state import TicketStatus


@dataclass(frozen=True, slots=True)
class Checklist:
    """Completion checklist shown in the stop dialog."""

    ticket_answered: bool = False
    sheet_updated: bool = False

    @property
    def is_complete(self) -> bool:
        return self.ticket_answered and self.sheet_updated

    def to_dict(self) -> dict[str, bool]:
        return {"ticket_answered": self.ticket_answered, "sheet_updated": self.sheet_updated}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "Checklist":
        if not data:
            return cls()
        return cls(
            ticket_answered=bool(data.get("ticket_answered", False)),
            sheet_updated=bool(data.get("sheet_updated", False)),
        )


@dataclass(frozen=True, slots=True)
class LogEntry:
    """Single immutable activity entry of a ticket's log."""

    timestamp: datetime
    action: str
    reason: str | None = None
    checklist: Checklist | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"timestamp": self.timestamp.isoformat(), "action": self.action}
        if self.reason is not None:
            payload["reason"] = self.reason
        if self.checklist is not None:
            payload["checklist"] = self.checklist.to_dict()
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LogEntry":
        timestamp = data["timestamp"]
        if not isinstance(timestamp, datetime):
            timestamp = datetime.fromisoformat(str(timestamp))
        checklist = data.get("checklist")
        return cls(
            timestamp=timestamp,
            action=str(data["action"]),
            reason=data.get("reason"),
            checklist=Checklist.from_dict(checklist) if checklist is not None else None,
        )


@dataclass(slots=True)
class Ticket:
    """Aggregate representing a timed work ticket."""

    id: str
    subject: str
    created_at: datetime
    updated_at: datetime
    status: TicketStatus = TicketStatus.PENDING
    is_active: bool = False
    elapsed_time: int = 0
    current_timer_start_time: datetime | None = None
    checklist: Checklist = field(default_factory=Checklist)
    log: tuple[LogEntry, ...] = ()
    reference: str | None = None
    client_name: str | None = None
    priority: str | None = None
    difficulty: str | None = None
