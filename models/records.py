"""Domain models shared across services."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass(slots=True)
class SensorReading:
    """A single inbound reading after validation."""

    sensor_id: str
    timestamp: int
    values: Dict[str, float] = field(default_factory=dict)
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class RawEventEnvelope:
    """The original event with the resolved patient id injected."""

    payload: Dict[str, Any]
    patient_id: str

    @classmethod
    def from_reading(cls, reading: SensorReading, patient_id: str) -> "RawEventEnvelope":
        return cls(payload=dict(reading.payload), patient_id=patient_id)

    def to_dict(self) -> Dict[str, Any]:
        return {**self.payload, "patientId": self.patient_id}

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), separators=(",", ":"), allow_nan=False).encode("utf-8")


@dataclass(frozen=True, slots=True)
class AppendAck:
    """Acknowledgement returned by the delivery stream."""

    record_id: str
    stream_name: str
