from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from starlette.concurrency import run_in_threadpool

from app.api import router
from logging_config import configure_logging
from services.exporter import build_default_exporter, build_exporter
from settings import Settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Optional[Settings] = app.state.settings
    exporter = build_exporter(settings) if settings is not None else build_default_exporter()
    app.state.exporter = exporter
    logger.info("Monitoring locations: %s", ", ".join(exporter.coordinator.names))
    # Initial pass surfaces unresolvable names and bad User-Agents at startup.
    await run_in_threadpool(exporter.scheduler.refresh_all)
    exporter.scheduler.start()
    try:
        yield
    finally:
        exporter.shutdown()
        build_default_exporter.cache_clear()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    configure_logging(settings.log_level if settings is not None else None)
    app = FastAPI(
        title="Weather Exporter",
        description="Exports forecast data for configured locations as Prometheus gauges.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.include_router(router)
    return app
