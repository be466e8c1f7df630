from __future__ import annotations
import json
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from exceptions import StreamUnavailableError
from settings import get_settings

_PREFIX_FORMAT = "data/year=%Y/month=%m/day=%d/hour=%H/"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MockDeliveryStream:
    """Append-only delivery stream that lands batches as objects in a bucket.

    Records are buffered until ``buffer_records`` have arrived, then written as
    one newline-delimited object under an hourly partition prefix taken from
    the arrival time of the first buffered record.
    """

    def __init__(
        self,
        name: str,
        root_path: Optional[Path] = None,
        buffer_records: int = 1,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if buffer_records < 1:
            raise ValueError("buffer_records must be positive.")
        self.name = name
        self.root_path = root_path
        self.buffer_records = buffer_records
        self.available = True
        self._clock = clock
        self._buffer: List[Tuple[datetime, bytes]] = []
        self._objects: Dict[str, bytes] = {}
        self._lock = Lock()
        if root_path:
            root_path.mkdir(parents=True, exist_ok=True)

    def put_record(self, data: bytes) -> str:
        if not data:
            raise ValueError("Record data must not be empty.")
        with self._lock:
            if not self.available:
                raise StreamUnavailableError(f"Delivery stream {self.name!r} is unavailable.")
            record_id = uuid4().hex
            self._buffer.append((self._clock(), bytes(data)))
            if len(self._buffer) >= self.buffer_records:
                self._flush_locked()
            return record_id

    def flush(self) -> Optional[str]:
        """Deliver whatever is buffered; returns the object key, if any."""
        with self._lock:
            return self._flush_locked()

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._buffer)

    def list_objects(self) -> Iterable[str]:
        with self._lock:
            keys = set(self._objects)

        if self.root_path:
            for path in self.root_path.rglob("*"):
                if path.is_file():
                    keys.add(path.relative_to(self.root_path).as_posix())

        return sorted(keys)

    def get_object(self, key: str) -> bytes:
        with self._lock:
            data = self._objects.get(key)
            if data is not None:
                return data

        if self.root_path:
            path = self.root_path / key
            if path.exists():
                return path.read_bytes()

        raise KeyError(f"Object with key {key!r} not found for stream {self.name!r}.")

    def delivered_records(self) -> list[Dict[str, Any]]:
        """Decode every delivered record, in delivery order per object."""
        records: list[Dict[str, Any]] = []
        for key in self.list_objects():
            for line in self.get_object(key).decode("utf-8").splitlines():
                if line:
                    records.append(json.loads(line))
        return records

    def _flush_locked(self) -> Optional[str]:
        if not self._buffer:
            return None
        arrived_at = self._buffer[0][0].astimezone(timezone.utc)
        key = (
            arrived_at.strftime(_PREFIX_FORMAT)
            + f"{self.name}-{arrived_at:%Y-%m-%d-%H-%M-%S}-{uuid4().hex[:8]}"
        )
        body = b"".join(data.rstrip(b"\n") + b"\n" for _, data in self._buffer)
        if self.root_path:
            path = self.root_path / key
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(body)
        self._objects[key] = body
        self._buffer.clear()
        return key


@lru_cache
def build_default_stream(
    name: Optional[str] = None,
    root_path: Optional[str] = None,
) -> MockDeliveryStream:
    settings = get_settings()
    stream_name = settings.delivery_stream_name if name is None else name
    stream_root = settings.stream_root_path if root_path is None else root_path
    path = Path(stream_root) if stream_root else None
    return MockDeliveryStream(
        name=stream_name,
        root_path=path,
        buffer_records=settings.stream_buffer_records,
    )
