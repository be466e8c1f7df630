"""Splitting of one multi-modality reading into per-modality metric records."""

from __future__ import annotations

import math
import numbers
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Mapping, Optional

from app.schemas import MetricRecord
from exceptions import MalformedInputError
from models.records import SensorReading
from settings import DEFAULT_MODALITIES


def to_instant(epoch_seconds: int) -> datetime:
    try:
        return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise MalformedInputError(
            f"timestamp {epoch_seconds!r} is out of range", field="timestamp"
        ) from exc


def format_timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def compute_expiry(moment: datetime) -> int:
    """Same wall-clock time on the next UTC calendar day, as epoch seconds.

    The date field is advanced, not a fixed duration added. Records therefore
    all expire on the following calendar day whatever their time of day.
    """
    moment = moment.astimezone(timezone.utc)
    expires_at = datetime.combine(moment.date() + timedelta(days=1), moment.timetz())
    return int(expires_at.timestamp())


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _contains_non_finite(value: Any) -> bool:
    if isinstance(value, float):
        return not math.isfinite(value)
    if isinstance(value, Mapping):
        return any(_contains_non_finite(item) for item in value.values())
    if isinstance(value, (list, tuple)):
        return any(_contains_non_finite(item) for item in value)
    return False


def parse_reading(
    event: Any,
    modalities: Optional[Iterable[str]] = None,
) -> SensorReading:
    """Validate an inbound event and pull out its recognized modality values."""
    if not isinstance(event, Mapping):
        raise MalformedInputError("event must be a JSON object")

    sensor_id = event.get("sensorId")
    if not isinstance(sensor_id, str) or not sensor_id.strip():
        raise MalformedInputError("missing sensorId", field="sensorId")

    timestamp = event.get("timestamp")
    if not _is_number(timestamp):
        raise MalformedInputError("missing or non-numeric timestamp", field="timestamp")
    if isinstance(timestamp, float):
        if not timestamp.is_integer():
            raise MalformedInputError("timestamp must be whole epoch seconds", field="timestamp")
        timestamp = int(timestamp)
    try:
        compute_expiry(to_instant(timestamp))
    except (OverflowError, ValueError) as exc:
        raise MalformedInputError(
            f"timestamp {timestamp!r} has no representable expiry", field="timestamp"
        ) from exc

    values = {}
    for name in modalities if modalities is not None else DEFAULT_MODALITIES:
        if name not in event:
            continue
        value = event[name]
        if not _is_number(value):
            raise MalformedInputError(f"{name} must be numeric", field=name)
        try:
            number = float(value)
        except OverflowError as exc:
            raise MalformedInputError(f"{name} is out of range", field=name) from exc
        if not math.isfinite(number):
            raise MalformedInputError(f"{name} must be a finite number", field=name)
        values[name] = number

    for key, value in event.items():
        if _contains_non_finite(value):
            raise MalformedInputError(f"{key} contains a non-finite number", field=key)

    return SensorReading(
        sensor_id=sensor_id,
        timestamp=int(timestamp),
        values=values,
        payload=dict(event),
    )


def decompose(
    reading: SensorReading,
    owner_id: str,
    modalities: Optional[Iterable[str]] = None,
) -> List[MetricRecord]:
    """One ``MetricRecord`` per modality value carried by ``reading``.

    ``modalities`` narrows the allow-list applied when the reading was parsed.
    """
    allowed = None if modalities is None else set(modalities)
    moment = to_instant(reading.timestamp)
    timestamp = format_timestamp(moment)
    ttl = compute_expiry(moment)
    return [
        MetricRecord(
            patient_id=owner_id,
            sensor_id=reading.sensor_id,
            timestamp=timestamp,
            ttl=ttl,
            measure_type=modality,
            measure_value=value,
        )
        for modality, value in reading.values.items()
        if allowed is None or modality in allowed
    ]
