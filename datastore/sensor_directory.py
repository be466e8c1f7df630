"""Sensor-to-patient directory lookups."""

from __future__ import annotations

import logging
from typing import Optional

from app.schemas import SensorRecord
from datastore.mock_dynamodb import MockDynamoDBTable
from exceptions import MalformedInputError, TableUnavailableError, TransientStoreError

logger = logging.getLogger(__name__)


class SensorDirectory:
    """Read access to the sensor mapping table.

    A missing mapping is an expected outcome and yields ``None``; only
    backend failures raise.
    """

    def __init__(self, table: MockDynamoDBTable[SensorRecord]) -> None:
        self.table = table

    def resolve_owner(self, sensor_id: str) -> Optional[str]:
        if not sensor_id or not sensor_id.strip():
            raise MalformedInputError("sensor id is required", field="sensorId")
        try:
            record = self.table.get_item(sensor_id)
        except (TableUnavailableError, OSError) as exc:
            raise TransientStoreError(
                "lookup", str(exc), context={"sensor_id": sensor_id}
            ) from exc
        if record is None:
            return None
        return record.patient_id

    def get_sensor(self, sensor_id: str) -> Optional[SensorRecord]:
        patient_id = self.resolve_owner(sensor_id)
        if patient_id is None:
            return None
        return SensorRecord(sensor_id=sensor_id, patient_id=patient_id)

    def register(self, sensor_id: str, patient_id: str) -> SensorRecord:
        record = SensorRecord(sensor_id=sensor_id, patient_id=patient_id)
        try:
            self.table.put_item(record)
        except (TableUnavailableError, OSError) as exc:
            raise TransientStoreError(
                "register", str(exc), context={"sensor_id": sensor_id}
            ) from exc
        logger.info(
            "Registered sensor mapping",
            extra={"sensor_id": sensor_id, "patient_id": patient_id},
        )
        return record
