"""Prometheus metrics exposed by the exporter."""

from __future__ import annotations

from typing import Dict, Optional, Tuple

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, generate_latest

FORECAST_LABELS = ("location", "latitude", "longitude")
LOCATION_LABELS = ("location",)

# sample field -> (metric name, help text)
FORECAST_GAUGES: Dict[str, Tuple[str, str]] = {
    "temperature": ("weather_temperature_celsius", "Temperature in Celsius"),
    "humidity": ("weather_humidity_percent", "Relative humidity percentage"),
    "wind_speed": ("weather_wind_speed_mps", "Wind speed in meters per second"),
    "wind_direction": ("weather_wind_direction_degrees", "Wind direction in degrees"),
    "pressure": ("weather_pressure_hpa", "Air pressure in hectopascals"),
    "precipitation": ("weather_precipitation_mm", "Precipitation in millimeters"),
    "cloud_cover": ("weather_cloud_coverage_percent", "Cloud coverage percentage"),
    "uv_index": ("weather_uv_index", "UV index"),
}


class ExporterMetrics:
    """Owns a registry and every metric the exporter writes.

    One instance is created at startup and handed to the components that
    write to it, so tests can build isolated registries.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        self.forecast: Dict[str, Gauge] = {
            field: Gauge(name, help_text, FORECAST_LABELS, registry=self.registry)
            for field, (name, help_text) in FORECAST_GAUGES.items()
        }
        self.fetch_success = Gauge(
            "weather_fetch_success",
            "Whether the last weather fetch was successful",
            LOCATION_LABELS,
            registry=self.registry,
        )
        # Counter appends the _total suffix on exposition.
        self.cache_hits = Counter(
            "weather_cache_hits",
            "Number of times cached data was used",
            LOCATION_LABELS,
            registry=self.registry,
        )
        self.api_calls = Counter(
            "weather_api_calls",
            "Total number of API calls made",
            LOCATION_LABELS,
            registry=self.registry,
        )

    def record_success(self, location: str, success: bool) -> None:
        self.fetch_success.labels(location=location).set(1 if success else 0)

    def record_cache_hit(self, location: str) -> None:
        self.cache_hits.labels(location=location).inc()

    def record_api_call(self, location: str) -> None:
        self.api_calls.labels(location=location).inc()

    def set_forecast_value(self, field: str, labels: Tuple[str, str, str], value: float) -> None:
        location, latitude, longitude = labels
        self.forecast[field].labels(location=location, latitude=latitude, longitude=longitude).set(value)

    def sample_value(self, name: str, labels: Dict[str, str]) -> Optional[float]:
        return self.registry.get_sample_value(name, labels)

    def render(self) -> Tuple[bytes, str]:
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
