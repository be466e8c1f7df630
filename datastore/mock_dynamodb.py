from __future__ import annotations
import json
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, Generic, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel

from app.schemas import MetricRecord, SensorRecord
from exceptions import TableUnavailableError
from settings import get_settings

ModelT = TypeVar("ModelT", bound=BaseModel)
Key = Tuple[str, ...]

MAX_BATCH_SIZE = 25


class MockDynamoDBTable(Generic[ModelT]):
    """In-memory table keyed by a composite of model fields.

    The first key field acts as the partition key; ``query`` matches any
    leading subset of the key fields, which is how range retrieval works for
    a partition/sort key pair. ``throttle`` marks items that ``batch_write``
    reports back as unprocessed, and ``available = False`` makes every call
    raise ``TableUnavailableError``.
    """

    def __init__(
        self,
        name: str,
        model: Type[ModelT],
        key_fields: Sequence[str],
        persistence_path: Optional[Path] = None,
        ttl_field: Optional[str] = None,
    ) -> None:
        if not key_fields:
            raise ValueError("A table needs at least one key field.")
        self.name = name
        self.model = model
        self.key_fields = tuple(key_fields)
        self.ttl_field = ttl_field
        self.persistence_path = persistence_path
        self.available = True
        self.throttle: Optional[Callable[[ModelT], bool]] = None
        self._items: Dict[Key, ModelT] = {}
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def key_of(self, item: ModelT) -> Key:
        return tuple(str(getattr(item, field)) for field in self.key_fields)

    def put_item(self, item: ModelT) -> None:
        with self._lock:
            self._ensure_available()
            self._items[self.key_of(item)] = item.model_copy(deep=True)
            self._persist()

    def get_item(self, *key: str) -> Optional[ModelT]:
        if len(key) != len(self.key_fields):
            raise ValueError(
                f"Table {self.name!r} expects {len(self.key_fields)} key parts, got {len(key)}."
            )
        with self._lock:
            self._ensure_available()
            item = self._items.get(tuple(key))
            if item is None:
                return None
            return item.model_copy(deep=True)

    def delete_item(self, *key: str) -> bool:
        with self._lock:
            self._ensure_available()
            removed = self._items.pop(tuple(key), None) is not None
            if removed:
                self._persist()
            return removed

    def batch_write(self, items: Sequence[ModelT]) -> list[ModelT]:
        """Upsert up to ``MAX_BATCH_SIZE`` items, returning the unprocessed ones."""

        if len(items) > MAX_BATCH_SIZE:
            raise ValueError(
                f"Batch of {len(items)} items exceeds the limit of {MAX_BATCH_SIZE}."
            )
        unprocessed: list[ModelT] = []
        with self._lock:
            self._ensure_available()
            for item in items:
                if self.throttle is not None and self.throttle(item):
                    unprocessed.append(item)
                    continue
                self._items[self.key_of(item)] = item.model_copy(deep=True)
            if len(unprocessed) < len(items):
                self._persist()
        return unprocessed

    def query(self, *key_prefix: str) -> list[ModelT]:
        """Return deep copies of items whose key starts with ``key_prefix``, in key order."""

        if not key_prefix or len(key_prefix) > len(self.key_fields):
            raise ValueError("Query needs between one and all key parts.")
        size = len(key_prefix)
        with self._lock:
            self._ensure_available()
            matches = [
                (key, item)
                for key, item in self._items.items()
                if key[:size] == tuple(key_prefix)
            ]
        return [item.model_copy(deep=True) for _, item in sorted(matches, key=lambda pair: pair[0])]

    def scan(self) -> list[ModelT]:
        """Return deep copies of all stored items."""

        with self._lock:
            self._ensure_available()
            return [item.model_copy(deep=True) for item in self._items.values()]

    def purge_expired(self, now: int) -> int:
        """Drop items whose TTL attribute is at or before ``now``."""

        if self.ttl_field is None:
            return 0
        with self._lock:
            expired = [
                key
                for key, item in self._items.items()
                if getattr(item, self.ttl_field) <= now
            ]
            for key in expired:
                del self._items[key]
            if expired:
                self._persist()
        return len(expired)

    def _ensure_available(self) -> None:
        if not self.available:
            raise TableUnavailableError(f"Table {self.name!r} is unavailable.")

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = [item.model_dump(mode="json") for item in self._items.values()]
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "[]"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = []

        for payload in data:
            item = self.model.model_validate(payload)
            self._items[self.key_of(item)] = item


def _table_path(directory: Optional[str], name: str) -> Optional[Path]:
    if not directory:
        return None
    return Path(directory) / f"{name}.json"


@lru_cache
def build_default_metrics_table(
    name: Optional[str] = None,
    directory: Optional[str] = None,
) -> MockDynamoDBTable[MetricRecord]:
    settings = get_settings()
    table_name = settings.metrics_table_name if name is None else name
    table_dir = settings.table_persistence_dir if directory is None else directory
    return MockDynamoDBTable(
        name=table_name,
        model=MetricRecord,
        key_fields=("patient_id", "sensor_id", "timestamp", "measure_type"),
        persistence_path=_table_path(table_dir, table_name),
        ttl_field="ttl",
    )


@lru_cache
def build_default_directory_table(
    name: Optional[str] = None,
    directory: Optional[str] = None,
) -> MockDynamoDBTable[SensorRecord]:
    settings = get_settings()
    table_name = settings.sensor_table_name if name is None else name
    table_dir = settings.table_persistence_dir if directory is None else directory
    return MockDynamoDBTable(
        name=table_name,
        model=SensorRecord,
        key_fields=("sensor_id",),
        persistence_path=_table_path(table_dir, table_name),
    )
