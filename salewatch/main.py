from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI

from salewatch import __version__
from salewatch.core.config import Settings, get_settings
from salewatch.core.logging import configure_logging, request_id_middleware
from salewatch.db import base
from salewatch.db.init import create_tables, sanitize_db_url
from salewatch.notify import build_notifier
from salewatch.query.router import router as query_router
from salewatch.query.service import QueryService
from salewatch.scheduler.router import router as scheduler_router
from salewatch.scheduler.service import build_scheduler

logger = structlog.get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the HTTP app; the lifespan wires storage, notifier and timers."""
    settings = settings or get_settings()
    configure_logging(settings.ENV, settings.DEBUG)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Missing required configuration is fatal
        settings.ensure_required()

        logger.info(
            "app.starting",
            env=settings.ENV,
            database=sanitize_db_url(settings.database_url),
            group_ids=settings.group_ids,
            notifier=settings.NOTIFIER,
        )
        await create_tables()

        notifier = build_notifier(settings)
        scheduler = build_scheduler(
            settings, notifier, session_factory=base.AsyncSessionLocal
        )
        app.state.scheduler = scheduler
        app.state.query_service = QueryService(session_factory=base.AsyncSessionLocal)

        if settings.SCHEDULER_AUTOSTART:
            await scheduler.start()
        else:
            logger.info("app.scheduler_not_started")

        logger.info("app.started")
        yield

        logger.info("app.stopping")
        await scheduler.aclose()
        await notifier.aclose()
        await base.engine.dispose()
        logger.info("app.stopped")

    app = FastAPI(title="Sales Alert Bot", version=__version__, lifespan=lifespan)
    app.middleware("http")(request_id_middleware)
    app.include_router(query_router)
    app.include_router(scheduler_router)

    @app.get("/healthz")
    def healthz():
        return {"status": "healthy", "env": settings.ENV}

    return app
