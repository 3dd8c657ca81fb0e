"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Tuple

_COORDINATE_QUANTUM = Decimal("0.0001")

FORECAST_FIELDS = (
    "temperature",
    "humidity",
    "wind_speed",
    "wind_direction",
    "pressure",
    "cloud_cover",
    "uv_index",
    "precipitation",
)


def round_coordinate(value: float) -> float:
    """Round to the four decimals the forecast API accepts, halves away from zero."""
    return float(Decimal(str(value)).quantize(_COORDINATE_QUANTUM, rounding=ROUND_HALF_UP))


@dataclass(frozen=True, slots=True)
class Location:
    """Coordinates resolved for a configured location name."""

    name: str
    latitude: float
    longitude: float

    @property
    def rounded(self) -> Tuple[float, float]:
        return round_coordinate(self.latitude), round_coordinate(self.longitude)

    @property
    def label_coordinates(self) -> Tuple[str, str]:
        lat, lon = self.rounded
        return f"{lat:.4f}", f"{lon:.4f}"


@dataclass(frozen=True, slots=True)
class ForecastSample:
    """One entry of the upstream forecast timeseries."""

    timestamp: datetime
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    wind_speed: Optional[float] = None
    wind_direction: Optional[float] = None
    pressure: Optional[float] = None
    cloud_cover: Optional[float] = None
    uv_index: Optional[float] = None
    precipitation: Optional[float] = None


@dataclass(frozen=True)
class ForecastCache:
    """Last forecast payload for a location with its validity window.

    Instances are replaced as a whole, never mutated, so a reader always sees
    a consistent combination of samples, expiry and revalidation token.
    """

    samples: Tuple[ForecastSample, ...] = ()
    valid_until: Optional[datetime] = None
    revalidation_token: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        if self.valid_until is None:
            return True
        return now > self.valid_until


@dataclass
class LocationState:
    """Mutable per-location record; only touched under that location's lock."""

    name: str
    location: Optional[Location] = None
    cache: ForecastCache = field(default_factory=ForecastCache)
