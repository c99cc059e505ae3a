from __future__ import annotations

from datetime import datetime
from typing import Sequence

from .clock import Clock, SystemClock
from .models import Checklist, LogEntry

STARTED = "Started"
RESUMED = "Resumed"
PAUSED = "Paused"
COMPLETED = "Completed"
REOPENED = "Reopened"


class AuditLogBuilder:
    """Produce new activity logs with one more entry stamped by the clock."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()

    def append(
        self,
        log: Sequence[LogEntry],
        action: str,
        reason: str | None = None,
        checklist: Checklist | None = None,
        *,
        timestamp: datetime | None = None,
    ) -> tuple[LogEntry, ...]:
        """Return ``log`` plus one entry; ``timestamp`` defaults to the clock's now."""

        entry = LogEntry(
            timestamp=timestamp if timestamp is not None else self._clock.now(),
            action=action,
            reason=reason,
            checklist=checklist,
        )
        return (*log, entry)
