"""Daily and weekly time reports.

Time is attributed to a window from the sessions recorded in each ticket's
log, so a ticket worked on across several days only counts the part of each
session that falls inside the window.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable

from . import audit
from .models import LogEntry, Ticket
from .state import TicketStatus
from .timer import running_elapsed

_OPENS_SESSION = frozenset({audit.STARTED, audit.RESUMED})
_CLOSES_SESSION = frozenset({audit.PAUSED, audit.COMPLETED})


@dataclass(slots=True)
class ReportEntry:
    ticket_id: str
    subject: str
    status: TicketStatus
    seconds_in_window: int
    total_elapsed: int
    actions: list[LogEntry] = field(default_factory=list)


@dataclass(slots=True)
class Report:
    start: datetime
    end: datetime
    entries: list[ReportEntry] = field(default_factory=list)

    @property
    def total_seconds(self) -> int:
        return sum(entry.seconds_in_window for entry in self.entries)


def sessions(ticket: Ticket, now: datetime) -> list[tuple[datetime, datetime]]:
    """Rebuild the ticket's timer sessions from its log."""

    spans: list[tuple[datetime, datetime]] = []
    opened: datetime | None = None
    for entry in ticket.log:
        if entry.action in _OPENS_SESSION and opened is None:
            opened = entry.timestamp
        elif entry.action in _CLOSES_SESSION and opened is not None:
            spans.append((opened, entry.timestamp))
            opened = None
    if ticket.status is TicketStatus.IN_PROGRESS:
        started = ticket.current_timer_start_time or opened
        if started is not None:
            spans.append((started, max(started, now)))
    return spans


def seconds_within(spans: Iterable[tuple[datetime, datetime]], start: datetime, end: datetime) -> int:
    total = 0
    for span_start, span_end in spans:
        overlap = (min(span_end, end) - max(span_start, start)).total_seconds()
        if overlap > 0:
            total += math.floor(overlap)
    return total


def build_report(tickets: Iterable[Ticket], start: datetime, end: datetime, now: datetime) -> Report:
    entries: list[ReportEntry] = []
    for ticket in tickets:
        seconds = seconds_within(sessions(ticket, now), start, end)
        actions = [entry for entry in ticket.log if start <= entry.timestamp < end]
        if not seconds and not actions:
            continue
        entries.append(
            ReportEntry(
                ticket_id=ticket.id,
                subject=ticket.subject,
                status=ticket.status,
                seconds_in_window=seconds,
                total_elapsed=running_elapsed(ticket, now),
                actions=actions,
            )
        )
    entries.sort(key=lambda entry: (-entry.seconds_in_window, entry.subject))
    return Report(start=start, end=end, entries=entries)


def daily_report(tickets: Iterable[Ticket], day: date, now: datetime) -> Report:
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return build_report(tickets, start, start + timedelta(days=1), now)


def weekly_report(tickets: Iterable[Ticket], week_start: date, now: datetime) -> Report:
    start = datetime.combine(week_start, time.min, tzinfo=timezone.utc)
    return build_report(tickets, start, start + timedelta(days=7), now)
