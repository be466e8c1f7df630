"""Synthetic readings for exercising a running service."""

from __future__ import annotations

import random
from typing import Any, Dict, List, Optional, Sequence

# Plausible resting ranges per modality.
_RANGES = {
    "ecg": (10.0, 40.0),
    "heartrate": (55.0, 100.0),
    "temp": (36.1, 37.8),
}


def generate_readings(
    sensor_id: str,
    count: int,
    start: int,
    interval: int = 1,
    modalities: Sequence[str] = ("ecg", "heartrate", "temp"),
    rng: Optional[random.Random] = None,
) -> List[Dict[str, Any]]:
    if count < 0:
        raise ValueError("count must not be negative.")
    if interval <= 0:
        raise ValueError("interval must be positive.")
    unknown = sorted(set(modalities) - _RANGES.keys())
    if unknown:
        raise ValueError(f"No value range for modalities: {', '.join(unknown)}")

    rng = rng or random.Random()
    readings: List[Dict[str, Any]] = []
    for offset in range(count):
        reading: Dict[str, Any] = {"sensorId": sensor_id, "timestamp": start + offset * interval}
        for name in modalities:
            low, high = _RANGES[name]
            value = rng.uniform(low, high)
            reading[name] = round(value, 1) if name == "temp" else int(value)
        readings.append(reading)
    return readings
