"""Function-style entry point, invoked once per inbound reading.

Example event::

    {
        "sensorId": "777",
        "ecg": 24,
        "heartrate": 68,
        "temp": 36.7,
        "timestamp": 1643008976
    }
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from exceptions import MalformedInputError
from logging_config import configure_logging
from services.ingestion import build_default_ingestion

logger = logging.getLogger(__name__)


def handler(event: Dict[str, Any], context: Optional[Any] = None) -> Dict[str, Any]:
    """Ingest one reading with the process-wide default service.

    ``MalformedInputError`` and ``TransientStoreError`` propagate so the
    invoking scheduler can decide whether to retry.
    """
    configure_logging()
    if not isinstance(event, Mapping):
        raise MalformedInputError("event must be a JSON object")
    logger.debug("Received event", extra={"sensor_id": event.get("sensorId")})
    result = build_default_ingestion().ingest(event)
    return result.model_dump(mode="json")
