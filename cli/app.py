from __future__ import annotations

import math
import random
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_readings


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for sensor devices talking to a SensorHub service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


def _credentials(config: CLIConfig) -> Tuple[str, str]:
    if not config.api_key:
        raise typer.BadParameter("An API key is required (--api-key or SENSORHUB_API_KEY).")
    if not config.password:
        raise typer.BadParameter("A password is required (--password or SENSORHUB_PASSWORD).")
    return config.api_key, config.password


def parse_metric(raw: str) -> Tuple[str, float]:
    name, separator, value = raw.partition("=")
    name = name.strip()
    if not separator or not name:
        raise typer.BadParameter(f"Expected METRIC=VALUE, got {raw!r}.")
    try:
        number = float(value)
    except ValueError as exc:
        raise typer.BadParameter(f"Value for {name!r} is not a number: {value!r}.") from exc
    if not math.isfinite(number):
        raise typer.BadParameter(f"Value for {name!r} must be finite: {value!r}.")
    return name, number


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="SensorHub base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    api_key: Optional[str] = typer.Option(
        None,
        "--api-key",
        help="Sensor API key (defaults to SENSORHUB_API_KEY env).",
    ),
    password: Optional[str] = typer.Option(
        None,
        "--password",
        help="Sensor password (defaults to SENSORHUB_PASSWORD env).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each HTTP request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(
        base_url=base_url,
        api_key=api_key,
        password=password,
        timeout=timeout,
    )
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("push")
def push_command(
    ctx: typer.Context,
    metrics: List[str] = typer.Argument(..., help="One or more METRIC=VALUE pairs."),
) -> None:
    """Submit a single reading."""
    state = _get_state(ctx)
    api_key, password = _credentials(state.config)
    data = dict(parse_metric(raw) for raw in metrics)
    message = state.client.submit_reading(api_key, password, data)
    typer.secho(message, fg=typer.colors.GREEN)


@app.command("simulate")
def simulate_command(
    ctx: typer.Context,
    metric: List[str] = typer.Option(
        ["temperature"],
        "--metric",
        "-m",
        help="Metric name to simulate; repeat for several metrics.",
    ),
    count: int = typer.Option(10, "--count", "-n", min=1, help="Number of readings to send."),
    interval: float = typer.Option(
        5.0, "--interval", min=0.0, help="Seconds between submissions."
    ),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for reproducible values."),
) -> None:
    """Send a series of slowly drifting readings, like a real device would."""
    state = _get_state(ctx)
    api_key, password = _credentials(state.config)
    rng = random.Random(seed)
    values: Dict[str, float] = {name: rng.uniform(15.0, 30.0) for name in metric}

    typer.echo(f"Sending {count} readings to {state.config.base_url} ...")
    for index in range(count):
        for name in values:
            values[name] += rng.uniform(-0.5, 0.5)
        payload = {name: round(value, 2) for name, value in values.items()}
        state.client.submit_reading(api_key, password, payload)
        typer.echo(f"[{index + 1}/{count}] sent {payload}")
        if index + 1 < count and interval > 0:
            time.sleep(interval)
    typer.secho("Simulation finished.", fg=typer.colors.GREEN)


@app.command("readings")
def readings_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Identifier of a public sensor."),
    limit: Optional[int] = typer.Option(None, "--limit", min=1, help="Maximum readings to show."),
) -> None:
    """Show the most recent readings of a public sensor."""
    state = _get_state(ctx)
    readings = state.client.public_readings(sensor_id, limit=limit)
    render_readings(sensor_id, readings)
