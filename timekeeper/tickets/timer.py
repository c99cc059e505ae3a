from __future__ import annotations

import math
from datetime import datetime

from .models import Ticket


def commit_session(elapsed_time: int, start_time: datetime | None, now: datetime) -> int:
    """Fold an open session into the cumulative elapsed seconds.

    Returns ``elapsed_time`` unchanged when no session is open. The session
    delta is floored to whole seconds and never negative, so a start time in
    the future (clock skew, DST) commits nothing instead of eating time.
    """

    if start_time is None:
        return elapsed_time
    delta = math.floor((now - start_time).total_seconds())
    return elapsed_time + max(0, delta)


def running_elapsed(ticket: Ticket, now: datetime) -> int:
    """Committed time plus whatever the open session has accrued so far."""

    return commit_session(ticket.elapsed_time, ticket.current_timer_start_time, now)
