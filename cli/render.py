from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_readings(sensor_id: str, readings: List[Dict[str, Any]]) -> None:
    echo_heading(f"Readings for {sensor_id}")
    if not readings:
        typer.echo("No readings recorded.")
        return

    for reading in readings:
        typer.echo(f"{reading.get('timestamp')}")
        data = reading.get("data") or {}
        echo_key_values(("  " + metric, value) for metric, value in sorted(data.items()))
