"""Conditional forecast requests and response classification."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Iterable, Optional, Tuple, Union

import httpx

from models.forecast import ForecastSample, Location

logger = logging.getLogger(__name__)

EXPIRES_HEADER = "Expires"
LAST_MODIFIED_HEADER = "Last-Modified"
IF_MODIFIED_SINCE_HEADER = "If-Modified-Since"

_FRESH_STATUSES = {httpx.codes.OK, httpx.codes.NON_AUTHORITATIVE_INFORMATION}

_INSTANT_FIELDS = {
    "air_temperature": "temperature",
    "relative_humidity": "humidity",
    "wind_speed": "wind_speed",
    "wind_from_direction": "wind_direction",
    "air_pressure_at_sea_level": "pressure",
    "cloud_area_fraction": "cloud_cover",
    "ultraviolet_index_clear_sky": "uv_index",
}


@dataclass(frozen=True)
class Fresh:
    samples: Tuple[ForecastSample, ...]
    valid_until: Optional[datetime]
    revalidation_token: Optional[str]
    status: int = httpx.codes.OK


@dataclass(frozen=True)
class NotModified:
    valid_until: Optional[datetime] = None
    revalidation_token: Optional[str] = None
    status: int = httpx.codes.NOT_MODIFIED


@dataclass(frozen=True)
class RateLimited:
    status: int = httpx.codes.TOO_MANY_REQUESTS


@dataclass(frozen=True)
class Forbidden:
    status: int = httpx.codes.FORBIDDEN


@dataclass(frozen=True)
class UpstreamError:
    """Any other failure. ``status`` is None when no response was received."""

    status: Optional[int] = None
    reason: str = ""


FetchOutcome = Union[Fresh, NotModified, RateLimited, Forbidden, UpstreamError]


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an HTTP date header into an aware UTC datetime, or None."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError("Invalid timestamp format") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc)


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _section(container: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = container.get(key)
    return value if isinstance(value, dict) else {}


def parse_timeseries(payload: Any) -> Tuple[ForecastSample, ...]:
    """Convert a locationforecast body into samples, skipping unusable entries."""
    if not isinstance(payload, dict):
        raise ValueError("Forecast payload is not an object.")
    properties = payload.get("properties")
    if not isinstance(properties, dict):
        raise ValueError("Forecast payload is missing properties.")
    entries: Iterable[Any] = properties.get("timeseries") or []
    if not isinstance(entries, list):
        raise ValueError("Forecast timeseries is not a list.")

    samples: list[ForecastSample] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        try:
            timestamp = parse_timestamp(str(entry.get("time") or ""))
        except ValueError:
            logger.debug("Skipping timeseries entry with invalid time", extra={"reason": entry.get("time")})
            continue

        data = _section(entry, "data")
        details = _section(_section(data, "instant"), "details")
        values = {
            target: _optional_float(details.get(source))
            for source, target in _INSTANT_FIELDS.items()
        }
        next_hour = _section(_section(data, "next_1_hours"), "details")
        values["precipitation"] = _optional_float(next_hour.get("precipitation_amount"))
        samples.append(ForecastSample(timestamp=timestamp, **values))

    return tuple(samples)


class ConditionalFetcher:
    """Performs forecast requests, revalidating with ``If-Modified-Since``."""

    def __init__(self, client: httpx.Client, forecast_url: str) -> None:
        self._client = client
        self._forecast_url = forecast_url

    def fetch(self, location: Location, revalidation_token: Optional[str] = None) -> FetchOutcome:
        lat, lon = location.rounded
        params = {"lat": f"{lat:.4f}", "lon": f"{lon:.4f}"}
        headers = {}
        if revalidation_token:
            headers[IF_MODIFIED_SINCE_HEADER] = revalidation_token

        logger.info(
            "Fetching forecast",
            extra={"location": location.name, "latitude": params["lat"], "longitude": params["lon"]},
        )
        try:
            response = self._client.get(self._forecast_url, params=params, headers=headers)
        except httpx.HTTPError as exc:
            return UpstreamError(status=None, reason=str(exc) or exc.__class__.__name__)

        return self._classify(response)

    def _classify(self, response: httpx.Response) -> FetchOutcome:
        status = response.status_code
        valid_until = parse_http_date(response.headers.get(EXPIRES_HEADER))
        token = response.headers.get(LAST_MODIFIED_HEADER) or None

        if status in _FRESH_STATUSES:
            if status == httpx.codes.NON_AUTHORITATIVE_INFORMATION:
                logger.warning("API endpoint is deprecated, please check for updates", extra={"status": status})
            try:
                samples = parse_timeseries(response.json())
            except ValueError as exc:
                return UpstreamError(status=status, reason=f"unparseable forecast body: {exc}")
            return Fresh(samples=samples, valid_until=valid_until, revalidation_token=token, status=status)
        if status == httpx.codes.NOT_MODIFIED:
            return NotModified(valid_until=valid_until, revalidation_token=token)
        if status == httpx.codes.TOO_MANY_REQUESTS:
            return RateLimited()
        if status == httpx.codes.FORBIDDEN:
            return Forbidden()
        return UpstreamError(status=status, reason=response.reason_phrase)
