from __future__ import annotations

import logging

import pytest

from services.errors import ConfigurationError
from settings import (
    DEFAULT_FORECAST_URL,
    build_settings,
    clean_locations,
    get_settings,
    validate_settings,
    validate_user_agent,
)


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_environment_overrides_apply(monkeypatch) -> None:
    monkeypatch.setenv("WEATHER_USER_AGENT", "  my-app/1.0 github.com/user/repo ")
    monkeypatch.setenv("WEATHER_LOCATIONS", "Oslo, Stockholm,,Copenhagen ")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("WEATHER_REFRESH_INTERVAL_SECONDS", "120")
    monkeypatch.setenv("WEATHER_PACING_DELAY_SECONDS", "0")

    settings = get_settings()

    assert settings.user_agent == "my-app/1.0 github.com/user/repo"
    assert settings.locations == ("Oslo", "Stockholm", "Copenhagen")
    assert settings.port == 8080
    assert settings.log_level == "DEBUG"
    assert settings.refresh_interval_seconds == 120.0
    assert settings.pacing_delay_seconds == 0.0
    assert settings.forecast_url == DEFAULT_FORECAST_URL


def test_defaults_and_malformed_values(monkeypatch) -> None:
    for name in ("WEATHER_USER_AGENT", "WEATHER_LOCATIONS", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PORT", "not-a-port")
    monkeypatch.setenv("WEATHER_REQUEST_TIMEOUT_SECONDS", "-3")

    settings = get_settings()

    assert settings.user_agent == ""
    assert settings.locations == ("Oslo",)
    assert settings.port == 9090
    assert settings.log_level == "INFO"
    assert settings.request_timeout_seconds == 30.0
    assert settings.pacing_delay_seconds == 0.1


def test_explicit_arguments_win_over_environment(monkeypatch) -> None:
    monkeypatch.setenv("WEATHER_LOCATIONS", "Oslo")
    monkeypatch.setenv("PORT", "8080")

    settings = build_settings(user_agent="cli-app/2.0 ops@example.org", locations=["Bergen,Tromsø"], port=9191)

    assert settings.locations == ("Bergen", "Tromsø")
    assert settings.port == 9191
    assert settings.user_agent == "cli-app/2.0 ops@example.org"


def test_clean_locations_trims_and_deduplicates() -> None:
    assert clean_locations(" Oslo ,Bergen,, Oslo,") == ["Oslo", "Bergen"]
    assert clean_locations(["Oslo", " ", "New York, London"]) == ["Oslo", "New York", "London"]


@pytest.mark.parametrize(
    "user_agent",
    ["", "   ", "short/1", "noversionorcontactinfo"],
)
def test_invalid_user_agents_are_rejected(user_agent: str) -> None:
    with pytest.raises(ConfigurationError):
        validate_user_agent(user_agent)


def test_placeholder_user_agent_only_warns(caplog) -> None:
    with caplog.at_level(logging.WARNING):
        validate_user_agent("example-app/1.0 someone@example.com")

    assert "placeholder" in caplog.text


def test_validate_settings_requires_locations() -> None:
    settings = build_settings(user_agent="weather-app/1.0 github.com/user/repo", locations=[" , "])

    with pytest.raises(ConfigurationError, match="At least one location"):
        validate_settings(settings)
