from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from typing import Callable, Dict, List, Optional

import httpx
import pytest

from app.metrics import ExporterMetrics
from services.coordinator import RefreshCoordinator
from services.fetcher import ConditionalFetcher
from services.locations import LocationStore
from services.projector import MetricsProjector

SEARCH_URL = "https://search.test/api/v0/locations/search"
FORECAST_URL = "https://forecast.test/weatherapi/locationforecast/2.0/compact"
NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

OSLO_SEARCH = {
    "_embedded": {
        "location": [
            {"name": "Oslo", "position": {"lat": 59.91333, "lon": 10.739}},
            {"name": "Oslo (Minnesota)", "position": {"lat": 48.1933, "lon": -97.1306}},
        ]
    }
}


def http_date(value: datetime) -> str:
    return format_datetime(value, usegmt=True)


def timeseries_entry(time: datetime, temperature: Optional[float] = None, **details: float) -> dict:
    instant = dict(details)
    precipitation = instant.pop("precipitation_amount", None)
    if temperature is not None:
        instant["air_temperature"] = temperature
    data: dict = {"instant": {"details": instant}}
    if precipitation is not None:
        data["next_1_hours"] = {"details": {"precipitation_amount": precipitation}}
    return {"time": time.isoformat().replace("+00:00", "Z"), "data": data}


def forecast_body(*entries: dict) -> dict:
    return {"type": "Feature", "properties": {"timeseries": list(entries)}}


class FakeUpstream:
    """Scripted stand-in for the search and forecast endpoints."""

    def __init__(self) -> None:
        self.search_payloads: Dict[str, dict] = {"Oslo": OSLO_SEARCH}
        self.forecast_responses: List[Callable[[httpx.Request], httpx.Response]] = []
        self.default_forecast: Callable[[httpx.Request], httpx.Response] = self._default_forecast
        self.search_requests: List[httpx.Request] = []
        self.forecast_requests: List[httpx.Request] = []
        self.forecast_started = threading.Event()
        self.release_forecast: Optional[threading.Event] = None
        self._lock = threading.Lock()

    def queue_forecast(self, status_code: int = 200, body: Optional[dict] = None, headers: Optional[dict] = None) -> None:
        def respond(_request: httpx.Request) -> httpx.Response:
            if body is None:
                return httpx.Response(status_code, headers=headers or {})
            return httpx.Response(status_code, json=body, headers=headers or {})

        self.forecast_responses.append(respond)

    def _default_forecast(self, _request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json=forecast_body(timeseries_entry(NOW, temperature=14.2)),
            headers={
                "Expires": http_date(NOW + timedelta(minutes=30)),
                "Last-Modified": http_date(NOW - timedelta(minutes=5)),
            },
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "search.test":
            with self._lock:
                self.search_requests.append(request)
            query = request.url.params.get("q", "")
            payload = self.search_payloads.get(query, {"_embedded": {"location": []}})
            return httpx.Response(200, json=payload)

        with self._lock:
            self.forecast_requests.append(request)
            respond = self.forecast_responses.pop(0) if self.forecast_responses else self.default_forecast
        self.forecast_started.set()
        if self.release_forecast is not None:
            self.release_forecast.wait(timeout=5)
        return respond(request)

    def client(self) -> httpx.Client:
        return httpx.Client(
            transport=httpx.MockTransport(self.handler),
            headers={"User-Agent": "weather-exporter-tests/1.0 ops@weather.invalid"},
        )


class Clock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def metrics() -> ExporterMetrics:
    return ExporterMetrics()


@pytest.fixture
def make_coordinator(upstream: FakeUpstream, clock: Clock, metrics: ExporterMetrics):
    clients: List[httpx.Client] = []

    def build(*names: str) -> RefreshCoordinator:
        client = upstream.client()
        clients.append(client)
        return RefreshCoordinator(
            names=names or ("Oslo",),
            locations=LocationStore(client, SEARCH_URL),
            fetcher=ConditionalFetcher(client, FORECAST_URL),
            projector=MetricsProjector(metrics),
            metrics=metrics,
            clock=clock,
        )

    yield build

    for client in clients:
        client.close()
