"""Batch persistence of per-modality metric records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from app.schemas import FailedRecord, MetricRecord
from datastore.mock_dynamodb import MAX_BATCH_SIZE, MockDynamoDBTable
from exceptions import TableUnavailableError, TransientStoreError

logger = logging.getLogger(__name__)

_UNPROCESSED_REASON = "unprocessed by table (throttled)"


@dataclass
class PersistOutcome:
    """What happened to one ``save_metrics`` submission."""

    written: int = 0
    failed: List[FailedRecord] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class MetricsStore:
    """Writes metric records keyed by (patient, sensor, timestamp, modality)."""

    def __init__(self, table: MockDynamoDBTable[MetricRecord]) -> None:
        self.table = table

    def save_metrics(self, records: Sequence[MetricRecord]) -> PersistOutcome:
        outcome = PersistOutcome()
        if not records:
            return outcome

        for start in range(0, len(records), MAX_BATCH_SIZE):
            chunk = list(records[start : start + MAX_BATCH_SIZE])
            try:
                unprocessed = self.table.batch_write(chunk)
            except (TableUnavailableError, OSError) as exc:
                raise TransientStoreError(
                    "persist",
                    str(exc),
                    context={
                        "sensor_id": chunk[0].sensor_id,
                        "written": outcome.written,
                        "pending": len(records) - start,
                    },
                ) from exc

            outcome.written += len(chunk) - len(unprocessed)
            for record in unprocessed:
                outcome.failed.append(
                    FailedRecord(
                        measure_type=record.measure_type,
                        timestamp=record.timestamp,
                        reason=_UNPROCESSED_REASON,
                    )
                )
                logger.warning(
                    "Metric record was not persisted",
                    extra={
                        "sensor_id": record.sensor_id,
                        "patient_id": record.patient_id,
                        "measure_type": record.measure_type,
                        "reason": _UNPROCESSED_REASON,
                    },
                )
        return outcome

    def query_metrics(
        self,
        patient_id: str,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> List[MetricRecord]:
        """Records for ``patient_id`` with ``start <= timestamp <= end``, oldest first."""

        try:
            items = self.table.query(patient_id)
        except (TableUnavailableError, OSError) as exc:
            raise TransientStoreError(
                "query", str(exc), context={"patient_id": patient_id}
            ) from exc
        # Timestamps share one fixed-width ISO format, so string order is time order.
        selected = [
            item
            for item in items
            if (start is None or item.timestamp >= start)
            and (end is None or item.timestamp <= end)
        ]
        return sorted(selected, key=lambda item: (item.timestamp, item.sensor_id, item.measure_type))
