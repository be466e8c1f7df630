from datetime import datetime, timezone
from pathlib import Path

import pytest

from app.schemas import MetricRecord, SensorRecord
from datastore.metrics_store import MetricsStore
from datastore.mock_dynamodb import MAX_BATCH_SIZE, MockDynamoDBTable
from datastore.sensor_directory import SensorDirectory
from exceptions import MalformedInputError, StreamUnavailableError, TransientStoreError
from models.records import RawEventEnvelope, SensorReading
from services.forwarder import EventForwarder
from storage.mock_firehose import MockDeliveryStream


def _fixed_clock() -> datetime:
    return datetime(2022, 1, 24, 7, 22, 56, tzinfo=timezone.utc)


def _metrics_store() -> MetricsStore:
    table = MockDynamoDBTable(
        name="metrics",
        model=MetricRecord,
        key_fields=("patient_id", "sensor_id", "timestamp", "measure_type"),
        ttl_field="ttl",
    )
    return MetricsStore(table)


def _metric(measure_type: str, timestamp: str = "2022-01-24T07:22:56.000Z") -> MetricRecord:
    return MetricRecord(
        patient_id="patientX",
        sensor_id="777",
        timestamp=timestamp,
        ttl=1643095376,
        measure_type=measure_type,
        measure_value=1.0,
    )


def test_directory_resolves_owner_and_reports_absence() -> None:
    directory = SensorDirectory(
        MockDynamoDBTable(name="sensors", model=SensorRecord, key_fields=("sensor_id",))
    )
    directory.register("777", "patientX")

    assert directory.resolve_owner("777") == "patientX"
    assert directory.resolve_owner("888") is None
    assert directory.get_sensor("888") is None


def test_directory_outage_is_transient_not_absence() -> None:
    table = MockDynamoDBTable(name="sensors", model=SensorRecord, key_fields=("sensor_id",))
    table.available = False
    directory = SensorDirectory(table)

    with pytest.raises(TransientStoreError) as excinfo:
        directory.resolve_owner("777")

    assert excinfo.value.step == "lookup"
    assert excinfo.value.context["sensor_id"] == "777"


def test_directory_rejects_blank_sensor_id() -> None:
    directory = SensorDirectory(
        MockDynamoDBTable(name="sensors", model=SensorRecord, key_fields=("sensor_id",))
    )

    with pytest.raises(MalformedInputError):
        directory.resolve_owner("")


def test_save_metrics_empty_is_noop_success() -> None:
    store = _metrics_store()

    outcome = store.save_metrics([])

    assert outcome.ok
    assert outcome.written == 0
    assert store.table.scan() == []


def test_save_metrics_reports_each_unprocessed_record() -> None:
    store = _metrics_store()
    store.table.throttle = lambda item: item.measure_type == "ecg"

    outcome = store.save_metrics([_metric("ecg"), _metric("heartrate"), _metric("temp")])

    assert not outcome.ok
    assert outcome.written == 2
    assert [failed.measure_type for failed in outcome.failed] == ["ecg"]


def test_save_metrics_chunks_large_submissions() -> None:
    store = _metrics_store()
    records = [
        _metric("ecg", timestamp=f"2022-01-24T07:{i // 60:02d}:{i % 60:02d}.000Z")
        for i in range(MAX_BATCH_SIZE * 2 + 3)
    ]

    outcome = store.save_metrics(records)

    assert outcome.written == len(records)
    assert len(store.table.scan()) == len(records)


def test_save_metrics_outage_raises_transient() -> None:
    store = _metrics_store()
    store.table.available = False

    with pytest.raises(TransientStoreError) as excinfo:
        store.save_metrics([_metric("ecg")])

    assert excinfo.value.step == "persist"


def test_query_metrics_filters_window() -> None:
    store = _metrics_store()
    store.save_metrics(
        [
            _metric("ecg", timestamp="2022-01-24T07:00:00.000Z"),
            _metric("ecg", timestamp="2022-01-24T08:00:00.000Z"),
            _metric("ecg", timestamp="2022-01-24T09:00:00.000Z"),
        ]
    )

    results = store.query_metrics(
        "patientX", start="2022-01-24T07:30:00.000Z", end="2022-01-24T09:00:00.000Z"
    )

    assert [item.timestamp for item in results] == [
        "2022-01-24T08:00:00.000Z",
        "2022-01-24T09:00:00.000Z",
    ]


def test_stream_writes_partitioned_objects(tmp_path: Path) -> None:
    stream = MockDeliveryStream(name="deliveries", root_path=tmp_path, clock=_fixed_clock)

    stream.put_record(b'{"sensorId":"777"}')

    (key,) = stream.list_objects()
    assert key.startswith("data/year=2022/month=01/day=24/hour=07/deliveries-")
    assert (tmp_path / key).read_bytes() == b'{"sensorId":"777"}\n'
    assert stream.delivered_records() == [{"sensorId": "777"}]


def test_stream_buffers_until_threshold() -> None:
    stream = MockDeliveryStream(name="deliveries", buffer_records=3, clock=_fixed_clock)

    stream.put_record(b'{"n":1}')
    stream.put_record(b'{"n":2}')
    assert stream.pending == 2
    assert list(stream.list_objects()) == []

    stream.put_record(b'{"n":3}')
    assert stream.pending == 0
    assert [record["n"] for record in stream.delivered_records()] == [1, 2, 3]


def test_stream_flush_delivers_partial_buffer() -> None:
    stream = MockDeliveryStream(name="deliveries", buffer_records=10, clock=_fixed_clock)
    stream.put_record(b'{"n":1}')

    key = stream.flush()

    assert key is not None
    assert stream.get_object(key) == b'{"n":1}\n'
    assert stream.flush() is None


def test_stream_missing_object() -> None:
    stream = MockDeliveryStream(name="deliveries")

    with pytest.raises(KeyError):
        stream.get_object("missing")


def test_stream_outage_raises() -> None:
    stream = MockDeliveryStream(name="deliveries")
    stream.available = False

    with pytest.raises(StreamUnavailableError):
        stream.put_record(b"{}")


def test_forwarder_appends_envelope_with_patient_id() -> None:
    stream = MockDeliveryStream(name="deliveries", clock=_fixed_clock)
    forwarder = EventForwarder(stream)
    reading = SensorReading(
        sensor_id="777",
        timestamp=1643008976,
        values={"ecg": 24.0},
        payload={"sensorId": "777", "timestamp": 1643008976, "ecg": 24, "battery": 81},
    )

    ack = forwarder.append(RawEventEnvelope.from_reading(reading, "patientX"))

    assert ack.stream_name == "deliveries"
    assert ack.record_id
    assert stream.delivered_records() == [
        {"sensorId": "777", "timestamp": 1643008976, "ecg": 24, "battery": 81, "patientId": "patientX"}
    ]


def test_forwarder_reports_stream_failure() -> None:
    stream = MockDeliveryStream(name="deliveries")
    stream.available = False
    envelope = RawEventEnvelope(payload={"sensorId": "777"}, patient_id="patientX")

    with pytest.raises(TransientStoreError) as excinfo:
        EventForwarder(stream).append(envelope)

    assert excinfo.value.step == "forward"
    assert excinfo.value.context["stream_name"] == "deliveries"


def test_failed_disk_write_keeps_records_buffered(tmp_path: Path, monkeypatch) -> None:
    stream = MockDeliveryStream(
        name="deliveries", root_path=tmp_path, buffer_records=10, clock=_fixed_clock
    )
    stream.put_record(b'{"n":1}')

    def failing_write(self, data):
        raise OSError("disk full")

    with monkeypatch.context() as patched:
        patched.setattr(Path, "write_bytes", failing_write)
        with pytest.raises(OSError):
            stream.flush()

    assert stream.pending == 1
    assert list(stream.list_objects()) == []

    stream.flush()

    assert stream.delivered_records() == [{"n": 1}]


def test_envelope_refuses_non_finite_numbers() -> None:
    envelope = RawEventEnvelope(payload={"sensorId": "777", "temp": float("nan")}, patient_id="p")

    with pytest.raises(ValueError):
        envelope.to_bytes()
