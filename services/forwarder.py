"""Forwarding of enriched raw events to the delivery stream."""

from __future__ import annotations

import logging

from exceptions import StreamUnavailableError, TransientStoreError
from models.records import AppendAck, RawEventEnvelope
from storage.mock_firehose import MockDeliveryStream

logger = logging.getLogger(__name__)


class EventForwarder:
    """Single-record append; failures are reported, never retried here."""

    def __init__(self, stream: MockDeliveryStream) -> None:
        self.stream = stream

    def append(self, envelope: RawEventEnvelope) -> AppendAck:
        try:
            record_id = self.stream.put_record(envelope.to_bytes())
        except (StreamUnavailableError, OSError) as exc:
            raise TransientStoreError(
                "forward",
                str(exc),
                context={"patient_id": envelope.patient_id, "stream_name": self.stream.name},
            ) from exc
        logger.debug(
            "Forwarded raw event",
            extra={"record_id": record_id, "stream_name": self.stream.name},
        )
        return AppendAck(record_id=record_id, stream_name=self.stream.name)
