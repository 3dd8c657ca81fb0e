"""Error taxonomy for the exporter."""

from __future__ import annotations

from enum import Enum


class WeatherExporterError(Exception):
    """Base class for exporter errors."""


class ConfigurationError(WeatherExporterError, ValueError):
    """Settings that cannot be used to talk to the upstream service."""


class ResolutionError(WeatherExporterError):
    """A location name could not be turned into coordinates."""

    def __init__(self, name: str, message: str) -> None:
        super().__init__(message)
        self.name = name


class LocationNotFoundError(ResolutionError):
    def __init__(self, name: str) -> None:
        super().__init__(name, f"Location not found: {name}")


class LocationTransportError(ResolutionError):
    def __init__(self, name: str, reason: str) -> None:
        super().__init__(name, f"Location search for {name!r} failed: {reason}")
        self.reason = reason


class FailureKind(str, Enum):
    """Why a refresh cycle for one location did not succeed."""

    resolution_failure = "resolution_failure"
    rate_limited = "rate_limited"
    forbidden = "forbidden"
    upstream_error = "upstream_error"
    no_usable_data = "no_usable_data"
