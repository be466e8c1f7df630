from __future__ import annotations

from typing import Iterable

import pytest

from datastore.mock_dynamodb import build_default_directory_table, build_default_metrics_table
from exceptions import ConfigurationError
from services.ingestion import build_default_ingestion
from settings import get_settings
from storage.mock_firehose import build_default_stream

CACHES = (
    get_settings,
    build_default_directory_table,
    build_default_metrics_table,
    build_default_stream,
    build_default_ingestion,
)


def _clear_caches(caches: Iterable) -> None:
    for cache in caches:
        cache.cache_clear()


@pytest.fixture(autouse=True)
def _isolated_caches():
    _clear_caches(CACHES)
    yield
    _clear_caches(CACHES)


def test_environment_overrides_apply(monkeypatch, tmp_path) -> None:
    table_dir = tmp_path / "tables"
    stream_root = tmp_path / "firehose"

    monkeypatch.setenv("DELIVERY_STREAM_NAME", "custom-stream")
    monkeypatch.setenv("SENSOR_MAPPING_TABLE_NAME", "custom-sensors")
    monkeypatch.setenv("METRICS_TABLE_NAME", "custom-metrics")
    monkeypatch.setenv("MOCK_DYNAMODB_PERSISTENCE_DIR", str(table_dir))
    monkeypatch.setenv("MOCK_FIREHOSE_ROOT_PATH", str(stream_root))
    monkeypatch.setenv("FIREHOSE_BUFFER_RECORDS", "5")
    monkeypatch.setenv("RECOGNIZED_MODALITIES", "temp, spo2,temp")
    monkeypatch.setenv("INGESTION_WORKER_COUNT", "2")
    monkeypatch.setenv("INGESTION_CALL_TIMEOUT_SECONDS", "1.5")

    ingestion = build_default_ingestion()

    try:
        assert ingestion.directory.table.name == "custom-sensors"
        assert ingestion.directory.table.persistence_path == table_dir / "custom-sensors.json"
        assert ingestion.store.table.name == "custom-metrics"
        assert ingestion.forwarder.stream.name == "custom-stream"
        assert ingestion.forwarder.stream.root_path == stream_root
        assert ingestion.forwarder.stream.buffer_records == 5
        assert ingestion.modalities == ("temp", "spo2")
        assert ingestion.executor._max_workers == 2
        assert ingestion.call_timeout == 1.5
    finally:
        ingestion.shutdown()


def test_invalid_numbers_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("INGESTION_WORKER_COUNT", "zero")
    monkeypatch.setenv("FIREHOSE_BUFFER_RECORDS", "-3")
    monkeypatch.setenv("INGESTION_CALL_TIMEOUT_SECONDS", "soon")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = get_settings()

    assert settings.ingestion_workers == 4
    assert settings.stream_buffer_records == 1
    assert settings.call_timeout_seconds is None
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("env", ["DELIVERY_STREAM_NAME", "SENSOR_MAPPING_TABLE_NAME"])
def test_blank_required_names_fail_validation(monkeypatch, env: str) -> None:
    monkeypatch.setenv(env, "   ")

    with pytest.raises(ConfigurationError) as excinfo:
        get_settings().validate()

    assert env in str(excinfo.value)


def test_empty_modality_list_fails_validation(monkeypatch) -> None:
    monkeypatch.setenv("RECOGNIZED_MODALITIES", " , ")

    with pytest.raises(ConfigurationError):
        get_settings().validate()


def test_blank_persistence_paths_disable_disk(monkeypatch) -> None:
    monkeypatch.setenv("MOCK_DYNAMODB_PERSISTENCE_DIR", "")
    monkeypatch.setenv("MOCK_FIREHOSE_ROOT_PATH", "")

    assert build_default_metrics_table().persistence_path is None
    assert build_default_stream().root_path is None
