from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Mapping, Sequence

import asyncpg

from .errors import TicketPersistenceError
from .models import Checklist, LogEntry, Ticket
from .state import LEGACY_STATUS_NAMES, TicketStatus

logger = logging.getLogger(__name__)

_TICKET_COLUMNS = (
    "id, reference, subject, client_name, priority, difficulty, status, is_active, elapsed_time, "
    "current_timer_start_time, checklist, log, created_at, updated_at"
)

# Columns a partial update may touch; the value says whether it is stored as JSONB.
_UPDATABLE_COLUMNS: Mapping[str, bool] = {
    "reference": False,
    "subject": False,
    "client_name": False,
    "priority": False,
    "difficulty": False,
    "status": False,
    "is_active": False,
    "elapsed_time": False,
    "current_timer_start_time": False,
    "checklist": True,
    "log": True,
}


class TicketRepository:
    """Data access layer for ticket records."""

    _CREATE_TICKETS_SQL = """
    CREATE TABLE IF NOT EXISTS tickets (
        id TEXT PRIMARY KEY,
        reference TEXT NULL,
        subject TEXT NOT NULL,
        client_name TEXT NULL,
        priority TEXT NULL,
        difficulty TEXT NULL,
        status TEXT NOT NULL,
        is_active BOOLEAN NOT NULL DEFAULT FALSE,
        elapsed_time INTEGER NOT NULL DEFAULT 0 CHECK (elapsed_time >= 0),
        current_timer_start_time TIMESTAMPTZ NULL,
        checklist JSONB NOT NULL DEFAULT '{}'::jsonb,
        log JSONB NOT NULL DEFAULT '[]'::jsonb,
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL
    )
    """

    _INSERT_TICKET_SQL = f"""
    INSERT INTO tickets ({_TICKET_COLUMNS})
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11::jsonb, $12::jsonb, $13, $14)
    RETURNING {_TICKET_COLUMNS}
    """

    _SELECT_TICKET_SQL = f"""
    SELECT {_TICKET_COLUMNS}
    FROM tickets
    WHERE id = $1
    """

    _LIST_TICKETS_SQL = f"""
    SELECT {_TICKET_COLUMNS}
    FROM tickets
    ORDER BY created_at DESC
    """

    _LIST_TICKETS_BY_STATUS_SQL = f"""
    SELECT {_TICKET_COLUMNS}
    FROM tickets
    WHERE status = $1
    ORDER BY created_at DESC
    """

    _DELETE_TICKET_SQL = """
    DELETE FROM tickets WHERE id = $1 RETURNING id
    """

    _RENAME_STATUS_SQL = """
    UPDATE tickets SET status = $2 WHERE status = $1
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[Any]:
        try:
            async with self._pool.acquire() as connection:
                yield connection
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
            logger.exception("Ticket store operation failed")
            raise TicketPersistenceError(f"Ticket store unavailable: {exc}") from exc

    async def ensure_schema(self) -> None:
        async with self._connection() as connection:
            await connection.execute(self._CREATE_TICKETS_SQL)

    async def migrate_legacy_statuses(self) -> int:
        """Rewrite status strings from older releases to the current values."""

        migrated = 0
        async with self._connection() as connection:
            for legacy, status in LEGACY_STATUS_NAMES.items():
                result = await connection.execute(self._RENAME_STATUS_SQL, legacy, status.value)
                migrated += _affected_rows(result)
        if migrated:
            logger.info("Migrated %d tickets from legacy status names", migrated)
        return migrated

    async def create_ticket(self, ticket: Ticket) -> Ticket:
        async with self._connection() as connection:
            row = await connection.fetchrow(
                self._INSERT_TICKET_SQL,
                ticket.id,
                ticket.reference,
                ticket.subject,
                ticket.client_name,
                ticket.priority,
                ticket.difficulty,
                ticket.status.value,
                ticket.is_active,
                ticket.elapsed_time,
                ticket.current_timer_start_time,
                _encode_checklist(ticket.checklist),
                _encode_log(ticket.log),
                ticket.created_at,
                ticket.updated_at,
            )
        if row is None:
            raise TicketPersistenceError("Failed to insert ticket")
        return self._row_to_ticket(row)

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        async with self._connection() as connection:
            row = await connection.fetchrow(self._SELECT_TICKET_SQL, ticket_id)
        if row is None:
            return None
        return self._row_to_ticket(row)

    async def list_tickets(self, *, status: TicketStatus | None = None) -> list[Ticket]:
        async with self._connection() as connection:
            if status is None:
                rows = await connection.fetch(self._LIST_TICKETS_SQL)
            else:
                rows = await connection.fetch(self._LIST_TICKETS_BY_STATUS_SQL, status.value)
        return [self._row_to_ticket(row) for row in rows]

    async def update_ticket(self, ticket_id: str, changes: Mapping[str, Any]) -> Ticket | None:
        """Write ``changes`` and return the stored ticket, or ``None`` if it is gone."""

        unknown = set(changes) - set(_UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Cannot update ticket fields: {', '.join(sorted(unknown))}")

        assignments: list[str] = []
        params: list[Any] = [ticket_id]
        for column, value in changes.items():
            params.append(_encode_value(column, value))
            cast = "::jsonb" if _UPDATABLE_COLUMNS[column] else ""
            assignments.append(f"{column} = ${len(params)}{cast}")
        params.append(datetime.now(timezone.utc))
        assignments.append(f"updated_at = ${len(params)}")

        sql = f"UPDATE tickets SET {', '.join(assignments)} WHERE id = $1 RETURNING {_TICKET_COLUMNS}"
        async with self._connection() as connection:
            row = await connection.fetchrow(sql, *params)
        if row is None:
            return None
        return self._row_to_ticket(row)

    async def delete_ticket(self, ticket_id: str) -> bool:
        async with self._connection() as connection:
            row = await connection.fetchrow(self._DELETE_TICKET_SQL, ticket_id)
        return row is not None

    @staticmethod
    def _row_to_ticket(row: Mapping[str, Any]) -> Ticket:
        log = _decode_json(row["log"]) or []
        return Ticket(
            id=str(row["id"]),
            reference=row["reference"],
            subject=str(row["subject"]),
            client_name=row["client_name"],
            priority=row["priority"],
            difficulty=row["difficulty"],
            status=TicketStatus(str(row["status"])),
            is_active=bool(row["is_active"]),
            elapsed_time=int(row["elapsed_time"] or 0),
            current_timer_start_time=_ensure_optional_datetime(row["current_timer_start_time"]),
            checklist=Checklist.from_dict(_decode_json(row["checklist"])),
            log=tuple(LogEntry.from_dict(entry) for entry in log),
            created_at=_ensure_datetime(row["created_at"]),
            updated_at=_ensure_datetime(row["updated_at"]),
        )


def _encode_checklist(checklist: Checklist) -> str:
    return json.dumps(checklist.to_dict())


def _encode_log(log: Sequence[LogEntry]) -> str:
    return json.dumps([entry.to_dict() for entry in log])


def _encode_value(column: str, value: Any) -> Any:
    if column == "status":
        return TicketStatus(value).value
    if column == "checklist":
        return _encode_checklist(value if isinstance(value, Checklist) else Checklist.from_dict(value))
    if column == "log":
        return _encode_log([entry if isinstance(entry, LogEntry) else LogEntry.from_dict(entry) for entry in value])
    return value


def _decode_json(value: Any) -> Any:
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value


def _affected_rows(result: Any) -> int:
    # asyncpg returns the command tag, e.g. "UPDATE 3".
    if isinstance(result, str):
        tail = result.strip().rsplit(" ", 1)[-1]
        return int(tail) if tail.isdigit() else 0
    return int(result or 0)


def _ensure_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    return datetime.fromisoformat(str(value))


def _ensure_optional_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    return _ensure_datetime(value)
