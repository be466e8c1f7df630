"""Exception hierarchy for the telemetry ingestion service."""

from __future__ import annotations

from typing import Any, Dict, Optional


class IngestionError(Exception):
    """Base exception for all ingestion errors."""


class ConfigurationError(IngestionError):
    """Required configuration is missing or blank."""


class MalformedInputError(IngestionError):
    """The inbound event cannot be ingested as-is."""

    def __init__(self, reason: str, *, field: Optional[str] = None) -> None:
        self.reason = reason
        self.field = field
        super().__init__(reason)


class TransientStoreError(IngestionError):
    """A backing service was unavailable; the caller may retry the invocation."""

    def __init__(
        self,
        step: str,
        reason: str,
        *,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.step = step
        self.reason = reason
        self.context: Dict[str, Any] = dict(context or {})
        super().__init__(f"{step} failed: {reason}")


class TableUnavailableError(IngestionError):
    """Raised by the table double to simulate an outage or throttling."""


class StreamUnavailableError(IngestionError):
    """Raised by the delivery stream double to simulate an outage."""
