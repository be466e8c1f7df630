"""HTTP route definitions for the service."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException, status

from app.schemas import BatchItemOutcome, IngestionResult, SensorRecord, SensorRegistration
from exceptions import MalformedInputError, TransientStoreError
from services.ingestion import IngestionService, build_default_ingestion

logger = logging.getLogger(__name__)

router = APIRouter()


def get_ingestion() -> IngestionService:
    return build_default_ingestion()


def _unavailable(exc: TransientStoreError) -> HTTPException:
    logger.error(
        "Ingestion failed",
        extra={"step": exc.step, "reason": exc.reason, "sensor_id": exc.context.get("sensor_id")},
    )
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={"reason": exc.reason, "step": exc.step},
    )


@router.post(
    "/events",
    response_model=IngestionResult,
    summary="Ingest a single sensor reading.",
)
def ingest_event(
    event: Dict[str, Any] = Body(..., description="Raw sensor reading."),
    ingestion: IngestionService = Depends(get_ingestion),
) -> IngestionResult:
    try:
        return ingestion.ingest(event)
    except MalformedInputError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.reason,
        ) from exc
    except TransientStoreError as exc:
        raise _unavailable(exc) from exc


@router.post(
    "/events/batch",
    response_model=List[BatchItemOutcome],
    summary="Ingest several independent readings concurrently.",
)
def ingest_batch(
    events: List[Dict[str, Any]] = Body(..., description="Raw sensor readings."),
    ingestion: IngestionService = Depends(get_ingestion),
) -> List[BatchItemOutcome]:
    return ingestion.ingest_many(events)


@router.put(
    "/sensors/{sensor_id}",
    response_model=SensorRecord,
    summary="Map a sensor to the patient wearing it.",
)
def register_sensor(
    sensor_id: str,
    registration: SensorRegistration,
    ingestion: IngestionService = Depends(get_ingestion),
) -> SensorRecord:
    try:
        return ingestion.directory.register(sensor_id, registration.patient_id)
    except TransientStoreError as exc:
        raise _unavailable(exc) from exc


@router.get(
    "/sensors/{sensor_id}",
    response_model=SensorRecord,
    summary="Look up the patient a sensor is mapped to.",
)
def get_sensor(
    sensor_id: str,
    ingestion: IngestionService = Depends(get_ingestion),
) -> SensorRecord:
    try:
        record = ingestion.directory.get_sensor(sensor_id)
    except TransientStoreError as exc:
        raise _unavailable(exc) from exc
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Sensor {sensor_id!r} is not mapped to a patient.",
        )
    return record


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
