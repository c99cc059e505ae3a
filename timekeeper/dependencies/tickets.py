from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from timekeeper.tickets.clock import Clock, SystemClock
from timekeeper.tickets.service import TicketService


async def get_ticket_service(request: Request) -> TicketService:
    service = getattr(request.app.state, "ticket_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Ticket service is not configured")
    return service


def get_clock(request: Request) -> Clock:
    return getattr(request.app.state, "clock", None) or SystemClock()


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]
ClockDep = Annotated[Clock, Depends(get_clock)]
