"""Per-location cache-and-refresh coordination."""

from __future__ import annotations

import dataclasses
import logging
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Dict, Iterable, Optional, Tuple

from app.metrics import ExporterMetrics
from models.forecast import ForecastCache, Location, LocationState
from services.errors import FailureKind, ResolutionError
from services.fetcher import (
    ConditionalFetcher,
    FetchOutcome,
    Forbidden,
    Fresh,
    NotModified,
    RateLimited,
    UpstreamError,
)
from services.locations import LocationStore
from services.projector import MetricsProjector

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RefreshResult:
    """Outcome of one ``refresh`` call.

    ``no_usable_data`` is reported alongside ``success=True``: the upstream
    answered correctly but there was nothing to project.
    """

    name: str
    success: bool
    cache_hit: bool = False
    upstream_called: bool = False
    failure: Optional[FailureKind] = None
    detail: str = ""


@dataclass(frozen=True)
class LocationSnapshot:
    name: str
    location: Optional[Location]
    cache: ForecastCache
    last_result: Optional[RefreshResult]
    refreshing: bool


class _LocationSlot:
    def __init__(self, name: str) -> None:
        self.state = LocationState(name=name)
        self.lock = Lock()
        self.in_flight: Optional[Future[RefreshResult]] = None
        self.last_result: Optional[RefreshResult] = None


class RefreshCoordinator:
    """Decides per location whether to reuse the cache or go upstream.

    Each location has its own lock, held only while reading or replacing its
    state and never during network calls. At most one caller per location
    talks to the upstream at a time; concurrent callers wait for that refresh
    and share its result.
    """

    def __init__(
        self,
        names: Iterable[str],
        locations: LocationStore,
        fetcher: ConditionalFetcher,
        projector: MetricsProjector,
        metrics: ExporterMetrics,
        clock: Clock = utc_now,
    ) -> None:
        self._slots: Dict[str, _LocationSlot] = {}
        for raw in names:
            name = raw.strip()
            if not name:
                raise ValueError("Location names must be non-empty.")
            self._slots.setdefault(name, _LocationSlot(name))
        self._locations = locations
        self._fetcher = fetcher
        self._projector = projector
        self._metrics = metrics
        self._clock = clock

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._slots)

    def is_expired(self, name: str) -> bool:
        slot = self._slots[name]
        with slot.lock:
            return slot.state.cache.is_expired(self._clock())

    def snapshot(self, name: str) -> LocationSnapshot:
        slot = self._slots[name]
        with slot.lock:
            return LocationSnapshot(
                name=name,
                location=slot.state.location,
                cache=slot.state.cache,
                last_result=slot.last_result,
                refreshing=slot.in_flight is not None,
            )

    def refresh(self, name: str) -> RefreshResult:
        slot = self._slots[name]
        leader = False
        with slot.lock:
            location = slot.state.location
            cache = slot.state.cache
            now = self._clock()
            if location is not None and not cache.is_expired(now):
                pending = None
            elif slot.in_flight is not None:
                pending = slot.in_flight
            else:
                pending = Future()
                slot.in_flight = pending
                leader = True

        if pending is None:
            return self._serve_cached(slot, location, cache, now)

        if not leader:
            logger.debug("Waiting for in-flight refresh", extra={"location": name})
            shared = pending.result()
            return dataclasses.replace(shared, upstream_called=False)

        try:
            result = self._refresh_upstream(slot, location, cache)
        except Exception as exc:
            logger.exception("Unexpected error while refreshing forecast", extra={"location": name})
            result = self._fail(name, FailureKind.upstream_error, f"unexpected error: {exc}")
        except BaseException as exc:
            with slot.lock:
                slot.in_flight = None
            pending.set_exception(exc)
            raise

        with slot.lock:
            slot.in_flight = None
            slot.last_result = result
        pending.set_result(result)
        return result

    def _serve_cached(
        self, slot: _LocationSlot, location: Location, cache: ForecastCache, now: datetime
    ) -> RefreshResult:
        name = slot.state.name
        logger.info(
            "Using cached forecast",
            extra={"location": name, "valid_until": cache.valid_until.isoformat() if cache.valid_until else None},
        )
        self._metrics.record_cache_hit(name)
        self._metrics.record_success(name, True)
        projected = self._projector.project(name, location, cache, now)
        result = RefreshResult(
            name=name,
            success=True,
            cache_hit=True,
            failure=None if projected else FailureKind.no_usable_data,
        )
        with slot.lock:
            slot.last_result = result
        return result

    def _refresh_upstream(
        self, slot: _LocationSlot, location: Optional[Location], cache: ForecastCache
    ) -> RefreshResult:
        name = slot.state.name
        if location is None:
            try:
                location = self._locations.resolve(name)
            except ResolutionError as exc:
                logger.error(
                    "Failed to search for location: %s",
                    exc,
                    extra={"location": name, "outcome": FailureKind.resolution_failure.value},
                )
                return self._fail(name, FailureKind.resolution_failure, str(exc), upstream_called=False)
            with slot.lock:
                slot.state.location = location
                cache = slot.state.cache

        outcome = self._fetcher.fetch(location, cache.revalidation_token)
        if outcome.status is not None:
            self._metrics.record_api_call(name)
        return self._apply(slot, location, outcome)

    def _apply(self, slot: _LocationSlot, location: Location, outcome: FetchOutcome) -> RefreshResult:
        name = slot.state.name

        if isinstance(outcome, Fresh):
            updated = ForecastCache(
                samples=outcome.samples,
                valid_until=outcome.valid_until,
                revalidation_token=outcome.revalidation_token,
            )
            with slot.lock:
                slot.state.cache = updated
            logger.info(
                "Received new forecast data",
                extra={
                    "location": name,
                    "status": outcome.status,
                    "valid_until": updated.valid_until.isoformat() if updated.valid_until else None,
                },
            )
            return self._succeed(name, location, updated, cache_hit=False)

        if isinstance(outcome, NotModified):
            with slot.lock:
                current = slot.state.cache
                # Without a new Expires the old, already passed, expiry is kept.
                updated = ForecastCache(
                    samples=current.samples,
                    valid_until=outcome.valid_until or current.valid_until,
                    revalidation_token=outcome.revalidation_token or current.revalidation_token,
                )
                slot.state.cache = updated
            logger.info(
                "Forecast not modified, using cached version",
                extra={"location": name, "status": outcome.status},
            )
            self._metrics.record_cache_hit(name)
            return self._succeed(name, location, updated, cache_hit=True)

        if isinstance(outcome, RateLimited):
            logger.error(
                "Rate limited by API - too many requests",
                extra={"location": name, "status": outcome.status, "reason": "transient"},
            )
            return self._fail(name, FailureKind.rate_limited, "rate limited by upstream")

        if isinstance(outcome, Forbidden):
            logger.error(
                "Forbidden by API - check User-Agent configuration",
                extra={"location": name, "status": outcome.status, "reason": "configuration"},
            )
            return self._fail(name, FailureKind.forbidden, "upstream returned 403 Forbidden")

        assert isinstance(outcome, UpstreamError)
        logger.error(
            "Unexpected forecast response: %s",
            outcome.reason or "no response",
            extra={"location": name, "status": outcome.status, "reason": "transient"},
        )
        detail = f"status {outcome.status}" if outcome.status is not None else outcome.reason
        return self._fail(name, FailureKind.upstream_error, detail)

    def _succeed(self, name: str, location: Location, cache: ForecastCache, cache_hit: bool) -> RefreshResult:
        self._metrics.record_success(name, True)
        projected = self._projector.project(name, location, cache, self._clock())
        return RefreshResult(
            name=name,
            success=True,
            cache_hit=cache_hit,
            upstream_called=True,
            failure=None if projected else FailureKind.no_usable_data,
        )

    def _fail(self, name: str, kind: FailureKind, detail: str, upstream_called: bool = True) -> RefreshResult:
        self._metrics.record_success(name, False)
        return RefreshResult(
            name=name,
            success=False,
            upstream_called=upstream_called,
            failure=kind,
            detail=detail,
        )
