from __future__ import annotations

from typing import Any, Dict, Iterable

import typer

from settings import Settings


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_settings(settings: Settings) -> None:
    typer.secho("Configuration is valid", fg=typer.colors.GREEN)
    echo_key_values(
        [
            ("User-Agent", settings.user_agent),
            ("Locations", ", ".join(settings.locations)),
            ("Port", settings.port),
            ("Log level", settings.log_level),
            ("Refresh interval", f"{settings.refresh_interval_seconds}s"),
        ]
    )


def render_locations(locations: Iterable[Dict[str, Any]]) -> None:
    echo_heading("Locations")
    rendered = False
    for entry in locations:
        rendered = True
        typer.echo()
        typer.secho(f"{entry.get('name')} [{entry.get('phase')}]", bold=True)
        if entry.get("latitude") is not None:
            typer.echo(f"  coordinates: {entry.get('latitude')}, {entry.get('longitude')}")
        typer.echo(f"  samples: {entry.get('sample_count')}")
        typer.echo(f"  valid_until: {entry.get('valid_until') or '-'}")
        typer.echo(f"  expired: {entry.get('expired')}")

        last = entry.get("last_refresh") or {}
        if last:
            outcome = "ok" if last.get("success") else f"failed ({last.get('failure')})"
            typer.echo(f"  last refresh: {outcome}")
            if last.get("detail"):
                typer.echo(f"  detail: {last.get('detail')}")
        else:
            typer.echo("  last refresh: never")
    if not rendered:
        typer.echo("No locations configured.")
