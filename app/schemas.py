"""Pydantic schemas shared by the HTTP layer and the table doubles."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class IngestionStatus(str, Enum):
    """Terminal outcomes of a single ingestion."""

    completed = "completed"
    partial = "partial"
    rejected = "rejected"


class SensorRecord(BaseModel):
    """Directory entry mapping a sensor to the patient wearing it."""

    sensor_id: str = Field(..., min_length=1)
    patient_id: str = Field(..., min_length=1)


class MetricRecord(BaseModel):
    """One modality of one reading, as persisted in the metrics table."""

    patient_id: str
    sensor_id: str
    timestamp: str = Field(..., description="ISO-8601 UTC instant of the reading.")
    ttl: int = Field(..., description="Expiry as integer epoch seconds.")
    measure_type: str
    measure_value: float

    @property
    def natural_key(self) -> tuple[str, str, str, str]:
        return (self.patient_id, self.sensor_id, self.timestamp, self.measure_type)


class FailedRecord(BaseModel):
    """A metric record the store did not accept."""

    measure_type: str
    timestamp: str
    reason: str


class IngestionResult(BaseModel):
    """Outcome of ingesting a single reading."""

    status: IngestionStatus
    sensor_id: str
    patient_id: Optional[str] = None
    records_written: int = Field(default=0, ge=0)
    failed_records: List[FailedRecord] = Field(default_factory=list)
    record_id: Optional[str] = Field(
        default=None, description="Identifier returned by the delivery stream."
    )
    processing_ms: Optional[int] = None


class SensorRegistration(BaseModel):
    """Request body for registering a sensor mapping."""

    patient_id: str = Field(..., min_length=1)


class BatchItemOutcome(BaseModel):
    """Per-event entry of a batch ingestion response."""

    index: int = Field(..., ge=0)
    result: Optional[IngestionResult] = None
    error: Optional[str] = None
    step: Optional[str] = None
