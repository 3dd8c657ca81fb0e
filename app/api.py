"""HTTP route definitions for the service."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, Response, status

from app.schemas import LastRefresh, LocationPhase, LocationStatus, LocationStatusList
from services.coordinator import LocationSnapshot
from services.exporter import ExporterService

router = APIRouter()


def get_exporter(request: Request) -> ExporterService:
    return request.app.state.exporter


def _to_status(snapshot: LocationSnapshot, now: datetime) -> LocationStatus:
    location = snapshot.location
    if location is not None:
        phase = LocationPhase.ready
    elif snapshot.refreshing:
        phase = LocationPhase.resolving
    else:
        phase = LocationPhase.uninitialized

    latitude = longitude = None
    if location is not None:
        latitude, longitude = location.rounded

    last = snapshot.last_result
    return LocationStatus(
        name=snapshot.name,
        phase=phase,
        resolved_name=location.name if location is not None else None,
        latitude=latitude,
        longitude=longitude,
        sample_count=len(snapshot.cache.samples),
        valid_until=snapshot.cache.valid_until,
        expired=snapshot.cache.is_expired(now),
        has_revalidation_token=snapshot.cache.revalidation_token is not None,
        last_refresh=LastRefresh(
            success=last.success,
            cache_hit=last.cache_hit,
            upstream_called=last.upstream_called,
            failure=last.failure,
            detail=last.detail,
        )
        if last is not None
        else None,
    )


# Plain ``def``: refreshing blocks on upstream I/O, so it runs in the threadpool.
@router.get(
    "/metrics",
    summary="Refresh every location and render metrics in the text exposition format.",
    response_class=Response,
)
def metrics(exporter: ExporterService = Depends(get_exporter)) -> Response:
    exporter.scheduler.refresh_all()
    body, content_type = exporter.metrics.render()
    return Response(content=body, media_type=content_type)


@router.get(
    "/locations",
    response_model=LocationStatusList,
    summary="Inspect cache state of every monitored location without refreshing.",
)
def list_locations(exporter: ExporterService = Depends(get_exporter)) -> LocationStatusList:
    coordinator = exporter.coordinator
    now = datetime.now(timezone.utc)
    return LocationStatusList(
        locations=[_to_status(coordinator.snapshot(name), now) for name in coordinator.names]
    )


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /metrics for weather gauges and /health for service status."}
