from datetime import datetime, timedelta, timezone
from typing import Iterator

import httpx
import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from conftest import FORECAST_URL, SEARCH_URL, FakeUpstream, forecast_body, http_date, timeseries_entry
from services.exporter import build_exporter
from settings import Settings


def _settings(*locations: str) -> Settings:
    return Settings(
        user_agent="weather-exporter-tests/1.0 ops@weather.invalid",
        locations=locations or ("Oslo",),
        port=9090,
        host="127.0.0.1",
        log_level="INFO",
        refresh_interval_seconds=3600.0,
        pacing_delay_seconds=0.0,
        request_timeout_seconds=5.0,
        search_url=SEARCH_URL,
        forecast_url=FORECAST_URL,
    )


def _live_forecast(_request: httpx.Request) -> httpx.Response:
    now = datetime.now(timezone.utc)
    return httpx.Response(
        200,
        json=forecast_body(timeseries_entry(now, temperature=14.2, relative_humidity=71.0)),
        headers={"Expires": http_date(now + timedelta(minutes=30)), "Last-Modified": http_date(now)},
    )


@pytest.fixture
def live_upstream() -> FakeUpstream:
    upstream = FakeUpstream()
    upstream.default_forecast = _live_forecast
    return upstream


@pytest.fixture
def api_client(live_upstream: FakeUpstream, monkeypatch) -> Iterator[TestClient]:
    def build_test_exporter(settings: Settings):
        return build_exporter(settings, transport=httpx.MockTransport(live_upstream.handler))

    monkeypatch.setattr("app.main.build_exporter", build_test_exporter)

    app = create_app(_settings("Oslo", "Atlantis"))
    with TestClient(app) as client:
        yield client


def test_startup_performs_initial_refresh(api_client: TestClient, live_upstream: FakeUpstream) -> None:
    assert len(live_upstream.forecast_requests) == 1
    assert {request.url.params["q"] for request in live_upstream.search_requests} == {"Oslo", "Atlantis"}
    assert live_upstream.forecast_requests[0].headers["User-Agent"].startswith("weather-exporter-tests/1.0")


def test_health_has_no_side_effects(api_client: TestClient, live_upstream: FakeUpstream) -> None:
    calls_before = len(live_upstream.forecast_requests) + len(live_upstream.search_requests)

    response = api_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert len(live_upstream.forecast_requests) + len(live_upstream.search_requests) == calls_before


def test_metrics_renders_gauges_after_refresh(api_client: TestClient, live_upstream: FakeUpstream) -> None:
    response = api_client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    body = response.text
    assert 'weather_temperature_celsius{latitude="59.9133",location="Oslo",longitude="10.7390"} 14.2' in body
    assert 'weather_fetch_success{location="Oslo"} 1.0' in body
    assert 'weather_fetch_success{location="Atlantis"} 0.0' in body
    assert 'weather_cache_hits_total{location="Oslo"} 1.0' in body
    assert "# TYPE weather_cache_hits_total counter" in body
    assert "# TYPE weather_api_calls_total counter" in body
    # Oslo was served from cache; Atlantis was searched again.
    assert len(live_upstream.forecast_requests) == 1
    assert len(live_upstream.search_requests) == 3


def test_metrics_keeps_serving_when_upstream_fails(api_client: TestClient, live_upstream: FakeUpstream) -> None:
    def failing(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    live_upstream.default_forecast = failing
    live_upstream.search_payloads = {}

    response = api_client.get("/metrics")

    assert response.status_code == 200
    assert 'location="Oslo"' in response.text


def test_locations_reports_cache_state(api_client: TestClient) -> None:
    response = api_client.get("/locations")

    assert response.status_code == 200
    locations = {entry["name"]: entry for entry in response.json()["locations"]}
    oslo = locations["Oslo"]
    assert oslo["phase"] == "ready"
    assert oslo["latitude"] == 59.9133
    assert oslo["longitude"] == 10.739
    assert oslo["sample_count"] == 1
    assert oslo["expired"] is False
    assert oslo["has_revalidation_token"] is True
    assert oslo["last_refresh"]["success"] is True

    atlantis = locations["Atlantis"]
    assert atlantis["phase"] == "uninitialized"
    assert atlantis["latitude"] is None
    assert atlantis["last_refresh"]["failure"] == "resolution_failure"


def test_lifespan_stops_scheduler_on_shutdown(live_upstream: FakeUpstream, monkeypatch) -> None:
    built = []

    def build_test_exporter(settings: Settings):
        exporter = build_exporter(settings, transport=httpx.MockTransport(live_upstream.handler))
        built.append(exporter)
        return exporter

    monkeypatch.setattr("app.main.build_exporter", build_test_exporter)

    with TestClient(create_app(_settings())):
        assert built[0].scheduler.running is True

    assert built[0].scheduler.executor._shutdown is True
