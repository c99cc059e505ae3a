from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from timekeeper.api.routes.tickets import LogEntryModel
from timekeeper.dependencies.tickets import ClockDep, TicketServiceDep
from timekeeper.tickets.errors import TicketPersistenceError
from timekeeper.tickets.reports import Report, daily_report, weekly_report
from timekeeper.tickets.state import TicketStatus

router = APIRouter(prefix="/reports", tags=["reports"])


class ReportEntryModel(BaseModel):
    ticket_id: str
    subject: str
    status: TicketStatus
    seconds_in_window: int
    total_elapsed: int
    actions: list[LogEntryModel]


class ReportModel(BaseModel):
    start: datetime
    end: datetime
    total_seconds: int
    entries: list[ReportEntryModel]

    @classmethod
    def from_report(cls, report: Report) -> "ReportModel":
        return cls(
            start=report.start,
            end=report.end,
            total_seconds=report.total_seconds,
            entries=[
                ReportEntryModel(
                    ticket_id=entry.ticket_id,
                    subject=entry.subject,
                    status=entry.status,
                    seconds_in_window=entry.seconds_in_window,
                    total_elapsed=entry.total_elapsed,
                    actions=[LogEntryModel.from_entity(action) for action in entry.actions],
                )
                for entry in report.entries
            ],
        )


@router.get("/daily", response_model=ReportModel, summary="Time spent per ticket on one day")
async def get_daily_report(service: TicketServiceDep, clock: ClockDep, day: date = Query(...)) -> ReportModel:
    try:
        tickets = await service.list_tickets()
    except TicketPersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return ReportModel.from_report(daily_report(tickets, day, clock.now()))


@router.get("/weekly", response_model=ReportModel, summary="Time spent per ticket over seven days")
async def get_weekly_report(service: TicketServiceDep, clock: ClockDep, start: date = Query(...)) -> ReportModel:
    try:
        tickets = await service.list_tickets()
    except TicketPersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return ReportModel.from_report(weekly_report(tickets, start, clock.now()))
