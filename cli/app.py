from __future__ import annotations

import json
import random
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.generator import generate_readings
from cli.render import render_batch, render_result, render_sensor


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the telemetry ingestion service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


def _load_event(source: str) -> Dict[str, Any]:
    if source == "-":
        raw = sys.stdin.read()
    else:
        path = Path(source)
        if not path.is_file():
            raise typer.BadParameter(f"File {path} does not exist.")
        raw = path.read_text(encoding="utf-8")
    try:
        event = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"Event is not valid JSON: {exc}") from exc
    if not isinstance(event, dict):
        raise typer.BadParameter("Event must be a JSON object.")
    return event


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Ingestion API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each HTTP request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, request_timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("send")
def send_command(
    ctx: typer.Context,
    source: str = typer.Argument(..., help="Path to a JSON event file, or '-' for stdin."),
) -> None:
    """Send a single reading and show the ingestion result."""
    state = _get_state(ctx)
    event = _load_event(source)
    payload = state.client.send_event(event)
    render_result(payload)


@app.command("generate")
def generate_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor to generate readings for."),
    count: int = typer.Option(10, "--count", "-n", min=1, help="Number of readings."),
    interval: int = typer.Option(1, "--interval", min=1, help="Seconds between readings."),
    start: Optional[int] = typer.Option(
        None, "--start", help="Epoch seconds of the first reading (defaults to now)."
    ),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for reproducible values."),
) -> None:
    """Generate synthetic readings and ingest them as one batch."""
    state = _get_state(ctx)
    first = start if start is not None else int(time.time())
    readings: List[Dict[str, Any]] = generate_readings(
        sensor_id,
        count=count,
        start=first,
        interval=interval,
        rng=random.Random(seed),
    )
    typer.echo(f"Sending {len(readings)} readings for sensor {sensor_id} to {state.config.base_url} ...")
    outcomes = state.client.send_batch(readings)
    render_batch(outcomes)


@app.command("register-sensor")
def register_sensor_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor identifier."),
    patient_id: str = typer.Argument(..., help="Patient the sensor is attached to."),
) -> None:
    """Map a sensor to a patient in the directory."""
    state = _get_state(ctx)
    payload = state.client.register_sensor(sensor_id, patient_id)
    typer.secho(f"Registered sensor {sensor_id}.", fg=typer.colors.GREEN)
    render_sensor(payload)


@app.command("lookup")
def lookup_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor identifier."),
) -> None:
    """Show the patient a sensor is mapped to."""
    state = _get_state(ctx)
    render_sensor(state.client.get_sensor(sensor_id))
