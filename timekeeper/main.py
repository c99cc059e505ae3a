from contextlib import asynccontextmanager

import asyncpg
from fastapi import FastAPI

from timekeeper.api.routes import ping, reports, tickets
from timekeeper.core.config import get_settings
from timekeeper.core.logging import configure_logging, init_tracer, shutdown_tracer
from timekeeper.tickets.clock import SystemClock
from timekeeper.tickets.repository import TicketRepository
from timekeeper.tickets.service import TicketService


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = logger
    app.state.tracer_provider = tracer_provider
    app.state.clock = SystemClock()
    app.state.ticket_service = None

    pool = await asyncpg.create_pool(
        dsn=settings.postgres_dsn,
        min_size=settings.postgres_min_pool_size,
        max_size=settings.postgres_max_pool_size,
    )
    try:
        repository = TicketRepository(pool)
        await repository.ensure_schema()
        await repository.migrate_legacy_statuses()
        app.state.ticket_service = TicketService(
            repository,
            clock=app.state.clock,
            auto_pause_reason=settings.auto_pause_reason_template,
        )
        logger.info("Ticket service ready (%s)", settings.environment)
        yield
    finally:
        await pool.close()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.include_router(ping.router)
    app.include_router(tickets.router)
    app.include_router(reports.router)
    return app


app = create_app()
