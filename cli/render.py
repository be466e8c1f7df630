from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer

_STATUS_COLORS = {
    "completed": typer.colors.GREEN,
    "partial": typer.colors.YELLOW,
    "rejected": typer.colors.RED,
}


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_result(payload: Dict[str, Any]) -> None:
    echo_heading("Ingestion Result")
    status = payload.get("status")
    typer.secho(f"status: {status}", fg=_STATUS_COLORS.get(str(status)))
    echo_key_values(
        [
            ("sensor_id", payload.get("sensor_id")),
            ("patient_id", payload.get("patient_id")),
            ("records_written", payload.get("records_written")),
            ("record_id", payload.get("record_id")),
            ("processing_ms", payload.get("processing_ms")),
        ]
    )

    failed = payload.get("failed_records") or []
    if failed:
        typer.echo()
        echo_heading("Failed Records")
        for record in failed:
            typer.echo(
                f"  - {record.get('measure_type')} @ {record.get('timestamp')}: {record.get('reason')}"
            )


def render_batch(outcomes: List[Dict[str, Any]]) -> None:
    echo_heading("Batch Outcomes")
    for outcome in outcomes:
        result = outcome.get("result")
        if result:
            typer.echo(
                f"  [{outcome.get('index')}] {result.get('status')} "
                f"records={result.get('records_written')}"
            )
        else:
            typer.secho(
                f"  [{outcome.get('index')}] error at {outcome.get('step')}: {outcome.get('error')}",
                fg=typer.colors.RED,
            )


def render_sensor(payload: Dict[str, Any]) -> None:
    echo_heading("Sensor Mapping")
    echo_key_values(
        [
            ("sensor_id", payload.get("sensor_id")),
            ("patient_id", payload.get("patient_id")),
        ]
    )
