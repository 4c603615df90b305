"""Health data source interface, fault taxonomy and local sources."""

import asyncio
import json
from collections.abc import Mapping, Sequence
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import structlog

from .models import RawRecord
from .registry import DEFAULT_REGISTRY, RecordTypeRegistry

logger = structlog.get_logger(__name__)


class HealthSourceError(Exception):
    """Base class for faults raised by a health data source."""


class PermissionDeniedError(HealthSourceError, PermissionError):
    """The application is not authorized to read a record type."""


class InvalidArgumentError(HealthSourceError, ValueError):
    """The source rejected the request arguments (type or time range)."""


class InvalidStateError(HealthSourceError, RuntimeError):
    """The source is not in a state where it can serve reads."""


class UnsupportedOperationError(HealthSourceError, NotImplementedError):
    """The source does not support reading a record type."""


@runtime_checkable
class HealthDataSource(Protocol):
    """Local store of health records, read one type at a time."""

    async def read_records(
        self, type_id: str, start: datetime, end: datetime
    ) -> Sequence[RawRecord]:
        """Read every record of ``type_id`` placed within ``[start, end)``."""
        ...


def _in_window(record: RawRecord, start: datetime, end: datetime) -> bool:
    instant = record.instant
    if instant is None:
        return False
    return start <= instant < end


class InMemoryHealthDataSource:
    """Serves records held in memory, with optional per-type faults.

    Args:
        records: Records keyed by type id.
        failures: Exceptions to raise when a given type id is read.
    """

    def __init__(
        self,
        records: Mapping[str, Sequence[RawRecord]] | None = None,
        failures: Mapping[str, BaseException] | None = None,
    ) -> None:
        self._records = {type_id: list(items) for type_id, items in (records or {}).items()}
        self._failures = dict(failures or {})
        self.read_count = 0

    def add(self, record: RawRecord) -> None:
        self._records.setdefault(record.type_id, []).append(record)

    def fail(self, type_id: str, error: BaseException) -> None:
        self._failures[type_id] = error

    async def read_records(
        self, type_id: str, start: datetime, end: datetime
    ) -> list[RawRecord]:
        self.read_count += 1
        if start > end:
            raise InvalidArgumentError(f"start {start.isoformat()} is after end {end.isoformat()}")
        error = self._failures.get(type_id)
        if error is not None:
            raise error
        return [r for r in self._records.get(type_id, []) if _in_window(r, start, end)]


class JsonDumpHealthDataSource:
    """Serves records loaded from a JSON dump file.

    Accepted layouts::

        {"records": [{"recordType": "Steps", "count": 120, ...}, ...]}
        [{"recordType": "Steps", ...}, ...]
        {"Steps": [{"count": 120, ...}], "Heart Rate": [...]}

    Record types may be given by type id or display name. The file is
    read once, on first access, in a worker thread.
    """

    def __init__(
        self,
        path: Path | str,
        registry: RecordTypeRegistry = DEFAULT_REGISTRY,
    ) -> None:
        self._path = Path(path)
        self._registry = registry
        self._source: InMemoryHealthDataSource | None = None
        self._load_error: InvalidStateError | None = None
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _resolve_type_id(self, name: str) -> str:
        if self._registry.get(name) is not None:
            return name
        config = self._registry.find(name)
        return config.type_id if config is not None else name

    def _normalize_payload(self, data: Any) -> list[RawRecord]:
        """Flatten any accepted layout into raw records."""
        records: list[RawRecord] = []

        if isinstance(data, dict) and "records" in data:
            data = data["records"]

        if isinstance(data, list):
            for item in data:
                if not isinstance(item, dict):
                    continue
                attributes = dict(item)
                type_name = attributes.pop("recordType", None) or attributes.pop("type", None)
                if not type_name:
                    logger.warning("dump_record_without_type", keys=list(item.keys()))
                    continue
                records.append(
                    RawRecord(type_id=self._resolve_type_id(str(type_name)), attributes=attributes)
                )
            return records

        if isinstance(data, dict):
            for type_name, items in data.items():
                if not isinstance(items, list):
                    continue
                type_id = self._resolve_type_id(str(type_name))
                records.extend(
                    RawRecord(type_id=type_id, attributes=dict(item))
                    for item in items
                    if isinstance(item, dict)
                )
            return records

        raise ValueError(f"Unsupported dump layout: {type(data).__name__}")

    def _load_sync(self) -> InMemoryHealthDataSource:
        with open(self._path, encoding="utf-8") as f:
            data = json.load(f)
        source = InMemoryHealthDataSource()
        for record in self._normalize_payload(data):
            source.add(record)
        return source

    async def _ensure_loaded(self) -> InMemoryHealthDataSource:
        async with self._lock:
            if self._source is not None:
                return self._source
            if self._load_error is not None:
                raise self._load_error

            loop = asyncio.get_running_loop()
            try:
                self._source = await loop.run_in_executor(None, self._load_sync)
            except (OSError, ValueError) as e:
                logger.error("dump_load_failed", path=str(self._path), error=str(e))
                self._load_error = InvalidStateError(f"Cannot load dump {self._path}: {e}")
                raise self._load_error from e

            logger.info("dump_loaded", path=str(self._path))
            return self._source

    async def read_records(
        self, type_id: str, start: datetime, end: datetime
    ) -> list[RawRecord]:
        source = await self._ensure_loaded()
        return await source.read_records(type_id, start, end)
