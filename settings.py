from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Optional, Tuple

from services.errors import ConfigurationError

logger = logging.getLogger(__name__)

_USER_AGENT_ENV = "WEATHER_USER_AGENT"
_LOCATIONS_ENV = "WEATHER_LOCATIONS"
_PORT_ENV = "PORT"
_HOST_ENV = "WEATHER_HOST"
_LOG_LEVEL_ENV = "LOG_LEVEL"
_REFRESH_INTERVAL_ENV = "WEATHER_REFRESH_INTERVAL_SECONDS"
_PACING_DELAY_ENV = "WEATHER_PACING_DELAY_SECONDS"
_REQUEST_TIMEOUT_ENV = "WEATHER_REQUEST_TIMEOUT_SECONDS"
_SEARCH_URL_ENV = "WEATHER_SEARCH_URL"
_FORECAST_URL_ENV = "WEATHER_FORECAST_URL"

DEFAULT_SEARCH_URL = "https://www.yr.no/api/v0/locations/search"
DEFAULT_FORECAST_URL = "https://api.met.no/weatherapi/locationforecast/2.0/compact"

_PLACEHOLDER_MARKERS = ("test", "example", "change-me")


@dataclass(frozen=True)
class Settings:
    user_agent: str
    locations: Tuple[str, ...]
    port: int
    host: str
    log_level: str
    refresh_interval_seconds: float
    pacing_delay_seconds: float
    request_timeout_seconds: float
    search_url: str
    forecast_url: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_float_env(name: str, default: float, allow_zero: bool = False) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    if parsed > 0 or (allow_zero and parsed == 0):
        return parsed
    return default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


def clean_locations(raw: str | Iterable[str]) -> list[str]:
    """Split, trim and de-duplicate configured location names.

    Accepts either a comma separated string or an iterable of entries that may
    themselves contain commas. Empty entries are dropped and the first
    occurrence of a name wins.
    """
    entries = [raw] if isinstance(raw, str) else list(raw)
    cleaned: list[str] = []
    for entry in entries:
        for part in entry.split(","):
            name = part.strip()
            if name and name not in cleaned:
                cleaned.append(name)
    return cleaned


def validate_user_agent(user_agent: str) -> None:
    ua = user_agent.strip()

    if not ua:
        raise ConfigurationError(
            "User-Agent cannot be empty. Example: 'my-app/1.0 github.com/user/repo'"
        )

    if len(ua) < 10:
        raise ConfigurationError(
            "User-Agent too short. Please provide a descriptive identifier. "
            "Example: 'my-app/1.0 github.com/username/repo'"
        )

    if "/" not in ua and "@" not in ua and "." not in ua:
        raise ConfigurationError(
            "User-Agent should include version and/or contact information, "
            "e.g. 'my-app/1.0 github.com/user/repo' or 'weather-monitor/2.0 contact@example.com'"
        )

    lowered = ua.lower()
    if any(marker in lowered for marker in _PLACEHOLDER_MARKERS):
        logger.warning(
            "User-Agent appears to be a placeholder. Please use a unique identifier for production."
        )


def validate_settings(settings: Settings) -> None:
    """Reject settings that cannot be served; the upstream requires a real User-Agent."""
    validate_user_agent(settings.user_agent)
    if not settings.locations:
        raise ConfigurationError("At least one location must be specified.")


def build_settings(
    user_agent: Optional[str] = None,
    locations: Optional[Iterable[str]] = None,
    port: Optional[int] = None,
    host: Optional[str] = None,
    log_level: Optional[str] = None,
) -> Settings:
    """Read settings from the environment, letting explicit arguments win."""
    raw_locations = locations if locations is not None else _read_str_env(_LOCATIONS_ENV, "Oslo")
    return Settings(
        user_agent=(user_agent if user_agent is not None else _read_str_env(_USER_AGENT_ENV, "")).strip(),
        locations=tuple(clean_locations(raw_locations)),
        port=port if port is not None else _read_int_env(_PORT_ENV, 9090),
        host=host or _read_str_env(_HOST_ENV, "0.0.0.0"),
        log_level=log_level.upper() if log_level else _read_log_level("INFO"),
        refresh_interval_seconds=_read_float_env(_REFRESH_INTERVAL_ENV, 60.0),
        pacing_delay_seconds=_read_float_env(_PACING_DELAY_ENV, 0.1, allow_zero=True),
        request_timeout_seconds=_read_float_env(_REQUEST_TIMEOUT_ENV, 30.0),
        search_url=_read_str_env(_SEARCH_URL_ENV, DEFAULT_SEARCH_URL),
        forecast_url=_read_str_env(_FORECAST_URL_ENV, DEFAULT_FORECAST_URL),
    )


@lru_cache
def get_settings() -> Settings:
    return build_settings()
