"""Per-reading ingestion: directory lookup, metric fan-out, raw event forwarding."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from functools import lru_cache
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, TypeVar

from app.schemas import BatchItemOutcome, IngestionResult, IngestionStatus
from datastore.metrics_store import MetricsStore, PersistOutcome
from datastore.mock_dynamodb import build_default_directory_table, build_default_metrics_table
from datastore.sensor_directory import SensorDirectory
from exceptions import MalformedInputError, TransientStoreError
from models.records import RawEventEnvelope
from services.decomposition import decompose, parse_reading
from services.forwarder import EventForwarder
from settings import DEFAULT_MODALITIES, get_settings
from storage.mock_firehose import build_default_stream

logger = logging.getLogger(__name__)

T = TypeVar("T")


class IngestionService:
    """Runs one reading through lookup, decomposition, persistence and forwarding.

    Steps run strictly in that order. A sensor without a directory entry ends
    the invocation as ``rejected`` before anything is written. Persisting and
    forwarding are independent writes: a partial persist failure still
    forwards the raw event and is reported as ``partial``.
    """

    def __init__(
        self,
        directory: SensorDirectory,
        store: MetricsStore,
        forwarder: EventForwarder,
        modalities: Sequence[str] = DEFAULT_MODALITIES,
        workers: int = 4,
        call_timeout: Optional[float] = None,
    ) -> None:
        self.directory = directory
        self.store = store
        self.forwarder = forwarder
        self.modalities = tuple(modalities)
        self.call_timeout = call_timeout
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ingest")
        self._call_executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ingest-call")

    def ingest(self, event: Mapping[str, Any], timeout: Optional[float] = None) -> IngestionResult:
        start_time = time.perf_counter()
        reading = parse_reading(event, self.modalities)
        budget = timeout if timeout is not None else self.call_timeout
        deadline = time.monotonic() + budget if budget is not None else None

        patient_id = self._call("lookup", deadline, self.directory.resolve_owner, reading.sensor_id)
        if patient_id is None:
            logger.warning(
                "Sensor not found, dropping reading",
                extra={"sensor_id": reading.sensor_id, "status": IngestionStatus.rejected.value},
            )
            return IngestionResult(
                status=IngestionStatus.rejected,
                sensor_id=reading.sensor_id,
                processing_ms=_elapsed_ms(start_time),
            )

        records = decompose(reading, patient_id)
        outcome: PersistOutcome = self._call("persist", deadline, self.store.save_metrics, records)

        envelope = RawEventEnvelope.from_reading(reading, patient_id)
        try:
            ack = self._call("forward", deadline, self.forwarder.append, envelope)
        except TransientStoreError as exc:
            exc.context.update(
                sensor_id=reading.sensor_id,
                records_written=outcome.written,
                failed_records=[failed.measure_type for failed in outcome.failed],
            )
            raise

        status = IngestionStatus.completed if outcome.ok else IngestionStatus.partial
        processing_ms = _elapsed_ms(start_time)
        logger.info(
            "Ingested reading",
            extra={
                "sensor_id": reading.sensor_id,
                "patient_id": patient_id,
                "status": status.value,
                "record_count": outcome.written,
                "failed_count": len(outcome.failed) or None,
                "record_id": ack.record_id,
                "processing_ms": processing_ms,
            },
        )
        return IngestionResult(
            status=status,
            sensor_id=reading.sensor_id,
            patient_id=patient_id,
            records_written=outcome.written,
            failed_records=outcome.failed,
            record_id=ack.record_id,
            processing_ms=processing_ms,
        )

    def submit(
        self, event: Mapping[str, Any], timeout: Optional[float] = None
    ) -> Future[IngestionResult]:
        """Run ``ingest`` on the worker pool."""
        return self.executor.submit(self.ingest, event, timeout)

    def ingest_many(
        self, events: Iterable[Mapping[str, Any]], timeout: Optional[float] = None
    ) -> list[BatchItemOutcome]:
        """Ingest independent readings concurrently; outcomes keep input order."""
        futures = [self.submit(event, timeout) for event in events]
        outcomes: list[BatchItemOutcome] = []
        for index, future in enumerate(futures):
            try:
                outcomes.append(BatchItemOutcome(index=index, result=future.result()))
            except MalformedInputError as exc:
                outcomes.append(BatchItemOutcome(index=index, error=exc.reason, step="validate"))
            except TransientStoreError as exc:
                logger.error(
                    "Ingestion failed",
                    extra={"step": exc.step, "reason": exc.reason},
                )
                outcomes.append(BatchItemOutcome(index=index, error=exc.reason, step=exc.step))
            except Exception as exc:
                logger.exception("Unexpected ingestion failure", extra={"reason": str(exc)})
                outcomes.append(BatchItemOutcome(index=index, error=str(exc), step="unexpected"))
        return outcomes

    def shutdown(self) -> None:
        """Release worker threads during application shutdown."""
        self.executor.shutdown(wait=False, cancel_futures=True)
        self._call_executor.shutdown(wait=False, cancel_futures=True)

    def _call(
        self, step: str, deadline: Optional[float], func: Callable[..., T], *args: Any
    ) -> T:
        if deadline is None:
            return func(*args)
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise TransientStoreError(step, "deadline exceeded")
        future = self._call_executor.submit(func, *args)
        try:
            return future.result(timeout=remaining)
        except FutureTimeoutError as exc:
            raise TransientStoreError(step, "deadline exceeded") from exc


def _elapsed_ms(start_time: float) -> int:
    return int((time.perf_counter() - start_time) * 1000)


@lru_cache
def build_default_ingestion(workers: Optional[int] = None) -> IngestionService:
    """Factory that wires the ingestion service with the default doubles."""
    settings = get_settings().validate()
    return IngestionService(
        directory=SensorDirectory(build_default_directory_table()),
        store=MetricsStore(build_default_metrics_table()),
        forwarder=EventForwarder(build_default_stream()),
        modalities=settings.recognized_modalities,
        workers=workers or settings.ingestion_workers,
        call_timeout=settings.call_timeout_seconds,
    )
