from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

from exceptions import ConfigurationError


_STREAM_NAME_ENV = "DELIVERY_STREAM_NAME"
_SENSOR_TABLE_ENV = "SENSOR_MAPPING_TABLE_NAME"
_METRICS_TABLE_ENV = "METRICS_TABLE_NAME"
_TABLE_DIR_ENV = "MOCK_DYNAMODB_PERSISTENCE_DIR"
_STREAM_ROOT_ENV = "MOCK_FIREHOSE_ROOT_PATH"
_BUFFER_RECORDS_ENV = "FIREHOSE_BUFFER_RECORDS"
_MODALITIES_ENV = "RECOGNIZED_MODALITIES"
_WORKER_COUNT_ENV = "INGESTION_WORKER_COUNT"
_CALL_TIMEOUT_ENV = "INGESTION_CALL_TIMEOUT_SECONDS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

DEFAULT_MODALITIES: Tuple[str, ...] = ("ecg", "heartrate", "temp")


@dataclass(frozen=True)
class Settings:
    delivery_stream_name: str
    sensor_table_name: str
    metrics_table_name: str
    table_persistence_dir: Optional[str]
    stream_root_path: Optional[str]
    stream_buffer_records: int
    recognized_modalities: Tuple[str, ...]
    ingestion_workers: int
    call_timeout_seconds: Optional[float]
    log_level: str

    def validate(self) -> "Settings":
        missing = [
            env
            for env, value in (
                (_STREAM_NAME_ENV, self.delivery_stream_name),
                (_SENSOR_TABLE_ENV, self.sensor_table_name),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Required settings are blank: {', '.join(missing)}"
            )
        if not self.recognized_modalities:
            raise ConfigurationError(f"{_MODALITIES_ENV} must name at least one modality.")
        return self


def _read_required_env(name: str, default: str) -> str:
    # An explicitly blank value is kept so that validate() can reject it.
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip()


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_timeout(default: Optional[float]) -> Optional[float]:
    value = os.getenv(_CALL_TIMEOUT_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_modalities(default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = os.getenv(_MODALITIES_ENV)
    if value is None:
        return default
    names = [part.strip() for part in value.split(",")]
    return tuple(dict.fromkeys(name for name in names if name))


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        delivery_stream_name=_read_required_env(_STREAM_NAME_ENV, "HealthPlatformDeliveryStream"),
        sensor_table_name=_read_required_env(_SENSOR_TABLE_ENV, "SensorTable"),
        metrics_table_name=_read_str_env(_METRICS_TABLE_ENV, "MetricsDataTable"),
        table_persistence_dir=_read_optional_env(_TABLE_DIR_ENV, "./tmp/mock_dynamodb"),
        stream_root_path=_read_optional_env(_STREAM_ROOT_ENV, "./tmp/mock_firehose"),
        stream_buffer_records=_read_positive_int(_BUFFER_RECORDS_ENV, 1),
        recognized_modalities=_read_modalities(DEFAULT_MODALITIES),
        ingestion_workers=_read_positive_int(_WORKER_COUNT_ENV, 4),
        call_timeout_seconds=_read_timeout(None),
        log_level=_read_log_level("INFO"),
    )
