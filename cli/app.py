from __future__ import annotations

from typing import Optional

import typer
import uvicorn

from app.main import create_app
from cli.client import ApiClient
from cli.config import load_config
from cli.render import render_locations, render_settings
from services.errors import ConfigurationError
from settings import Settings, build_settings, validate_settings

app = typer.Typer(
    help="Export weather forecasts from yr.no / api.met.no as Prometheus metrics.",
    context_settings={"help_option_names": ["-h", "--help"]},
    no_args_is_help=True,
)

_USER_AGENT_HELP = (
    "Unique identifier for your application, e.g. 'my-app/1.0 github.com/user/repo' "
    "(defaults to WEATHER_USER_AGENT)."
)
_LOCATIONS_HELP = "Comma-separated locations to monitor, e.g. 'Oslo,Stockholm' (defaults to WEATHER_LOCATIONS or Oslo)."


def _load_valid_settings(
    user_agent: Optional[str],
    locations: Optional[str],
    port: Optional[int],
    host: Optional[str] = None,
    log_level: Optional[str] = None,
) -> Settings:
    settings = build_settings(
        user_agent=user_agent,
        locations=[locations] if locations is not None else None,
        port=port,
        host=host,
        log_level=log_level,
    )
    try:
        validate_settings(settings)
    except ConfigurationError as exc:
        typer.secho(f"Invalid configuration: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    return settings


@app.command("serve")
def serve_command(
    user_agent: Optional[str] = typer.Option(None, "--user-agent", "-u", help=_USER_AGENT_HELP),
    locations: Optional[str] = typer.Option(None, "--locations", "-l", help=_LOCATIONS_HELP),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to listen on (defaults to PORT or 9090)."),
    host: Optional[str] = typer.Option(None, "--host", help="Interface to bind (defaults to WEATHER_HOST or 0.0.0.0)."),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Log level: debug, info, warning, error (defaults to LOG_LEVEL)."
    ),
) -> None:
    """Start the metrics endpoint and the background refresher."""
    settings = _load_valid_settings(user_agent, locations, port, host, log_level)
    exporter_app = create_app(settings)
    typer.echo(f"Metrics endpoint: http://{settings.host}:{settings.port}/metrics")
    uvicorn.run(exporter_app, host=settings.host, port=settings.port, log_config=None)


@app.command("check")
def check_command(
    user_agent: Optional[str] = typer.Option(None, "--user-agent", "-u", help=_USER_AGENT_HELP),
    locations: Optional[str] = typer.Option(None, "--locations", "-l", help=_LOCATIONS_HELP),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to listen on."),
) -> None:
    """Validate configuration without starting the server."""
    settings = _load_valid_settings(user_agent, locations, port)
    render_settings(settings)


@app.command("status")
def status_command(
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Exporter base URL (defaults to WEATHER_EXPORTER_URL env or http://localhost:9090).",
    ),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Request timeout in seconds."),
) -> None:
    """Show the cache state of a running exporter."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    try:
        locations = client.get_locations()
    finally:
        client.close()
    render_locations(locations)
