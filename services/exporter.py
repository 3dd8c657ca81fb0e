"""Wiring of the exporter components."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

import httpx

from app.metrics import ExporterMetrics
from services.coordinator import RefreshCoordinator
from services.fetcher import ConditionalFetcher
from services.locations import LocationStore
from services.projector import MetricsProjector
from services.scheduler import RefreshScheduler
from settings import Settings, get_settings


class ExporterService:
    """Holds the HTTP client, metrics and refresh machinery for one process."""

    def __init__(
        self,
        coordinator: RefreshCoordinator,
        scheduler: RefreshScheduler,
        metrics: ExporterMetrics,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.coordinator = coordinator
        self.scheduler = scheduler
        self.metrics = metrics
        self._client = client

    def shutdown(self) -> None:
        self.scheduler.shutdown()
        if self._client is not None:
            self._client.close()


def build_exporter(
    settings: Settings,
    transport: Optional[httpx.BaseTransport] = None,
) -> ExporterService:
    client = httpx.Client(
        headers={"User-Agent": settings.user_agent},
        timeout=settings.request_timeout_seconds,
        transport=transport,
    )
    metrics = ExporterMetrics()
    coordinator = RefreshCoordinator(
        names=settings.locations,
        locations=LocationStore(client, settings.search_url),
        fetcher=ConditionalFetcher(client, settings.forecast_url),
        projector=MetricsProjector(metrics),
        metrics=metrics,
    )
    scheduler = RefreshScheduler(
        coordinator,
        interval=settings.refresh_interval_seconds,
        pacing_delay=settings.pacing_delay_seconds,
    )
    return ExporterService(coordinator=coordinator, scheduler=scheduler, metrics=metrics, client=client)


@lru_cache
def build_default_exporter() -> ExporterService:
    """Factory that wires the exporter from environment settings."""
    return build_exporter(get_settings())
