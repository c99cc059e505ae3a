from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from timekeeper.dependencies.tickets import ClockDep, TicketServiceDep
from timekeeper.tickets.errors import TicketNotFoundError, TicketPersistenceError
from timekeeper.tickets.models import Checklist, LogEntry, Ticket
from timekeeper.tickets.service import Rejected, TransitionResult
from timekeeper.tickets.state import RejectionCode, TicketStatus
from timekeeper.tickets.timer import running_elapsed

router = APIRouter(prefix="/tickets", tags=["tickets"])


class ChecklistModel(BaseModel):
    ticket_answered: bool = False
    sheet_updated: bool = False

    def to_domain(self) -> Checklist:
        return Checklist(ticket_answered=self.ticket_answered, sheet_updated=self.sheet_updated)


class LogEntryModel(BaseModel):
    timestamp: datetime
    action: str
    reason: str | None = None
    checklist: ChecklistModel | None = None

    @classmethod
    def from_entity(cls, entry: LogEntry) -> "LogEntryModel":
        checklist = entry.checklist
        return cls(
            timestamp=entry.timestamp,
            action=entry.action,
            reason=entry.reason,
            checklist=ChecklistModel(**checklist.to_dict()) if checklist is not None else None,
        )


class TicketModel(BaseModel):
    id: str
    reference: str | None
    subject: str
    client_name: str | None
    priority: str | None
    difficulty: str | None
    status: TicketStatus
    is_active: bool
    elapsed_time: int
    running_elapsed: int
    current_timer_start_time: datetime | None
    checklist: ChecklistModel
    log: list[LogEntryModel]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, ticket: Ticket, now: datetime) -> "TicketModel":
        return cls(
            id=ticket.id,
            reference=ticket.reference,
            subject=ticket.subject,
            client_name=ticket.client_name,
            priority=ticket.priority,
            difficulty=ticket.difficulty,
            status=ticket.status,
            is_active=ticket.is_active,
            elapsed_time=ticket.elapsed_time,
            running_elapsed=running_elapsed(ticket, now),
            current_timer_start_time=ticket.current_timer_start_time,
            checklist=ChecklistModel(**ticket.checklist.to_dict()),
            log=[LogEntryModel.from_entity(entry) for entry in ticket.log],
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
        )


class TicketCreateRequest(BaseModel):
    subject: str = Field(..., min_length=1, max_length=255)
    reference: str | None = Field(default=None, max_length=64)
    client_name: str | None = Field(default=None, max_length=255)
    priority: str | None = Field(default=None, max_length=50)
    difficulty: str | None = Field(default=None, max_length=50)


class TicketUpdateRequest(BaseModel):
    subject: str | None = Field(default=None, min_length=1, max_length=255)
    reference: str | None = Field(default=None, max_length=64)
    client_name: str | None = Field(default=None, max_length=255)
    priority: str | None = Field(default=None, max_length=50)
    difficulty: str | None = Field(default=None, max_length=50)

    def changes(self) -> dict[str, str | None]:
        """Fields present in the request body; an explicit ``null`` clears the field."""

        changes = self.model_dump(exclude_unset=True)
        if not changes:
            raise HTTPException(status_code=400, detail="No fields provided for update")
        return changes


class TicketStopRequest(BaseModel):
    destination: TicketStatus
    reason: str | None = Field(default=None, max_length=500)
    checklist: ChecklistModel | None = None


class TicketMoveRequest(TicketStopRequest):
    """Kanban drop; ``reason``/``checklist`` come from the blocking prompt."""


class TransitionResponse(BaseModel):
    tickets: list[TicketModel]


def _transition_response(result: TransitionResult, now: datetime) -> TransitionResponse:
    if isinstance(result, Rejected):
        status_code = 409 if result.code is RejectionCode.INVALID_TRANSITION else 422
        raise HTTPException(status_code=status_code, detail={"code": result.code.value, "message": result.message})
    return TransitionResponse(tickets=[TicketModel.from_entity(ticket, now) for ticket in result.tickets])


def _checklist(payload: TicketStopRequest) -> Checklist | None:
    return payload.checklist.to_domain() if payload.checklist is not None else None


@router.post("", response_model=TicketModel, status_code=status.HTTP_201_CREATED)
async def create_ticket(payload: TicketCreateRequest, service: TicketServiceDep, clock: ClockDep) -> TicketModel:
    try:
        ticket = await service.create_ticket(**payload.model_dump())
    except TicketPersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return TicketModel.from_entity(ticket, clock.now())


@router.get("", response_model=list[TicketModel])
async def list_tickets(
    service: TicketServiceDep,
    clock: ClockDep,
    status_filter: TicketStatus | None = Query(default=None, alias="status"),
) -> list[TicketModel]:
    try:
        tickets = await service.list_tickets(status=status_filter)
    except TicketPersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    now = clock.now()
    return [TicketModel.from_entity(ticket, now) for ticket in tickets]


@router.get("/{ticket_id}", response_model=TicketModel)
async def get_ticket(ticket_id: str, service: TicketServiceDep, clock: ClockDep) -> TicketModel:
    try:
        ticket = await service.get_ticket(ticket_id)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TicketPersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return TicketModel.from_entity(ticket, clock.now())


@router.patch("/{ticket_id}", response_model=TicketModel)
async def update_ticket(
    ticket_id: str,
    payload: TicketUpdateRequest,
    service: TicketServiceDep,
    clock: ClockDep,
) -> TicketModel:
    changes = payload.changes()
    try:
        ticket = await service.update_details(ticket_id, **changes)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TicketPersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return TicketModel.from_entity(ticket, clock.now())


@router.delete("/{ticket_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ticket(ticket_id: str, service: TicketServiceDep) -> None:
    try:
        await service.delete_ticket(ticket_id)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TicketPersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@router.post("/{ticket_id}/start", response_model=TransitionResponse)
async def start_ticket(ticket_id: str, service: TicketServiceDep, clock: ClockDep) -> TransitionResponse:
    try:
        result = await service.on_start_requested(ticket_id)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TicketPersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return _transition_response(result, clock.now())


@router.post("/{ticket_id}/stop", response_model=TransitionResponse)
async def stop_ticket(
    ticket_id: str,
    payload: TicketStopRequest,
    service: TicketServiceDep,
    clock: ClockDep,
) -> TransitionResponse:
    try:
        result = await service.on_stop_requested(
            ticket_id,
            payload.destination,
            reason=payload.reason,
            checklist=_checklist(payload),
        )
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TicketPersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return _transition_response(result, clock.now())


@router.post("/{ticket_id}/move", response_model=TransitionResponse)
async def move_ticket(
    ticket_id: str,
    payload: TicketMoveRequest,
    service: TicketServiceDep,
    clock: ClockDep,
) -> TransitionResponse:
    try:
        result = await service.on_drag_dropped(
            ticket_id,
            payload.destination,
            reason=payload.reason,
            checklist=_checklist(payload),
        )
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TicketPersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return _transition_response(result, clock.now())
