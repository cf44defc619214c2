from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from avatar_welcome.config import settings
from avatar_welcome.db.base import init_db
from avatar_welcome.errors import AppError
from avatar_welcome.routers import access, admin, customer, files, webhooks
from avatar_welcome.services.reconciliation import ReconciliationPoller

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    init_db()
    poller: ReconciliationPoller | None = None
    if settings.POLLER_ENABLED:
        poller = ReconciliationPoller(interval_seconds=settings.POLL_INTERVAL_SECONDS)
        poller.start()
    else:
        logger.info("Reconciliation poller disabled")
    app.state.poller = poller
    try:
        yield
    finally:
        if poller is not None:
            await poller.stop()


async def handle_app_error(request: Request, exc: AppError) -> ORJSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed", extra={"path": request.url.path, "error": str(exc)})
    return ORJSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Avatar Welcome API", default_response_class=ORJSONResponse, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(AppError, handle_app_error)

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    app.include_router(access.router)
    app.include_router(admin.router)
    app.include_router(customer.router)
    app.include_router(webhooks.router)
    app.include_router(files.router)

    return app


app = create_app()
