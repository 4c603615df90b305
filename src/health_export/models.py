"""Data models for fetched records and derived health summaries."""

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, tzinfo
from typing import Any, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .registry import RecordTypeConfig


# "2022-06-12 23:59:00 +0400" -> "2022-06-12T23:59:00+04:00"
_DATE_SPACE_TZ_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})\s(\d{2}:\d{2}:\d{2})\s([+-])(\d{2})(\d{2})$")


def _normalize_date(value: Any) -> Any:
    """Normalize date strings to ISO 8601 accepted by datetime parsing."""
    if not isinstance(value, str):
        return value
    m = _DATE_SPACE_TZ_RE.match(value)
    if m:
        return f"{m[1]}T{m[2]}{m[3]}{m[4]}:{m[5]}"
    if value.endswith("Z"):
        return value[:-1] + "+00:00"
    return value


def _ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC instants."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def parse_instant(value: Any) -> datetime | None:
    """Best-effort conversion of a raw attribute into an aware datetime."""
    if isinstance(value, datetime):
        return _ensure_aware(value)
    if isinstance(value, str):
        try:
            return _ensure_aware(datetime.fromisoformat(_normalize_date(value)))
        except ValueError:
            return None
    if isinstance(value, int | float) and not isinstance(value, bool):
        # Epoch milliseconds
        try:
            return datetime.fromtimestamp(value / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    return None


class RawRecord(BaseModel):
    """A record as returned by the health data source.

    Records are kept in a generic shape: the source type id plus an
    ordered mapping of attribute names to values.
    """

    model_config = ConfigDict(frozen=True)

    type_id: str = Field(description="Record type id this record was read as")
    attributes: dict[str, Any] = Field(default_factory=dict)

    def list_attributes(self) -> list[tuple[str, Any]]:
        """Readable attributes as (name, value) pairs, in source order."""
        return list(self.attributes.items())

    @property
    def start_time(self) -> datetime | None:
        return parse_instant(self.attributes.get("startTime"))

    @property
    def end_time(self) -> datetime | None:
        return parse_instant(self.attributes.get("endTime"))

    @property
    def time(self) -> datetime | None:
        return parse_instant(self.attributes.get("time"))

    @property
    def instant(self) -> datetime | None:
        """The timestamp that places this record in a fetch window."""
        return self.start_time or self.time


class StepsRecord(BaseModel):
    """Typed view of a raw steps record."""

    model_config = ConfigDict(populate_by_name=True)

    count: int = Field(ge=0, description="Steps counted in the interval")
    start_time: datetime = Field(alias="startTime")
    end_time: datetime = Field(alias="endTime")

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def normalize_date(cls, v: Any) -> Any:
        return _normalize_date(v)

    @field_validator("start_time", "end_time")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        return _ensure_aware(v)

    @model_validator(mode="after")
    def check_interval(self) -> "StepsRecord":
        if self.end_time < self.start_time:
            raise ValueError("endTime must not be before startTime")
        return self


class HeartRateRecordSample(BaseModel):
    """One beats-per-minute reading embedded in a heart rate record."""

    model_config = ConfigDict(populate_by_name=True)

    time: datetime
    beats_per_minute: float = Field(gt=0, alias="beatsPerMinute")

    @field_validator("time", mode="before")
    @classmethod
    def normalize_date(cls, v: Any) -> Any:
        return _normalize_date(v)

    @field_validator("time")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        return _ensure_aware(v)


class HeartRateRecord(BaseModel):
    """Typed view of a raw heart rate record."""

    samples: list[HeartRateRecordSample] = Field(default_factory=list)
    # Carried onto samples only when it is a mapping
    metadata: Any = None


@dataclass(frozen=True)
class FetchedRecords:
    """Result of fetching one record type over a time window."""

    config: RecordTypeConfig
    records: tuple[RawRecord, ...] = ()
    count: int = 0
    permission_denied: bool = False

    def __post_init__(self) -> None:
        if self.permission_denied and (self.records or self.count):
            raise ValueError("Permission-denied results must be empty")
        if self.count != len(self.records):
            raise ValueError(
                f"count ({self.count}) does not match records ({len(self.records)})"
            )

    @classmethod
    def of(cls, config: RecordTypeConfig, records: Iterable[RawRecord]) -> "FetchedRecords":
        items = tuple(records)
        return cls(config=config, records=items, count=len(items))

    @classmethod
    def empty(
        cls, config: RecordTypeConfig, permission_denied: bool = False
    ) -> "FetchedRecords":
        return cls(config=config, permission_denied=permission_denied)

    @property
    def has_data(self) -> bool:
        return self.count > 0


# Display name -> fetched records, one entry per configured type
CategoryResult: TypeAlias = dict[str, FetchedRecords]
# Category name -> category result, one entry per category
GlobalResult: TypeAlias = dict[str, CategoryResult]


@dataclass(frozen=True)
class CategorySummary:
    """Record counts for one category of a fetch run."""

    category: str
    total_types: int
    total_records: int
    types_with_data: int
    types_without_data: int
    types_permission_denied: int

    @classmethod
    def from_result(cls, category: str, result: CategoryResult) -> "CategorySummary":
        with_data = sum(1 for fetched in result.values() if fetched.has_data)
        return cls(
            category=category,
            total_types=len(result),
            total_records=sum(fetched.count for fetched in result.values()),
            types_with_data=with_data,
            types_without_data=len(result) - with_data,
            types_permission_denied=sum(
                1 for fetched in result.values() if fetched.permission_denied
            ),
        )


@dataclass(frozen=True)
class FetchRunStats:
    """Counters observed for one global fetch run."""

    total_categories: int
    total_types: int
    total_records: int
    duration_seconds: float


@dataclass(frozen=True)
class DailySteps:
    """Total steps for one local calendar date."""

    date: date
    total_steps: int
    window_start: datetime
    window_end: datetime

    def __post_init__(self) -> None:
        if self.total_steps < 0:
            raise ValueError(f"total_steps must be non-negative, got {self.total_steps}")
        if self.window_start > self.window_end:
            raise ValueError("window_start must not be after window_end")

    def date_string(self) -> str:
        return self.date.isoformat()


@dataclass(frozen=True)
class HeartRateSample:
    """A single heart rate reading."""

    time: datetime
    beats_per_minute: float
    metadata: dict[str, str] | None = None

    def __post_init__(self) -> None:
        if self.beats_per_minute <= 0:
            raise ValueError(
                f"beats_per_minute must be positive, got {self.beats_per_minute}"
            )

    def local_date(self, tz: tzinfo | None = None) -> date:
        """Calendar date of the reading in ``tz`` (system local zone if None)."""
        return self.time.astimezone(tz).date()

    def time_string(self, tz: tzinfo | None = None) -> str:
        return self.time.astimezone(tz).replace(tzinfo=None).isoformat()


@dataclass(frozen=True)
class HistoricalHealthData:
    """Steps, heart rate and every other record type from one fetch run."""

    daily_steps: tuple[DailySteps, ...] = ()
    heart_rate_samples: tuple[HeartRateSample, ...] = ()
    total_steps: int = 0
    total_heart_rate_samples: int = 0
    earliest_date: date | None = None
    latest_date: date | None = None
    other_records: dict[str, tuple[RawRecord, ...]] = field(default_factory=dict)

    @property
    def days_with_steps(self) -> int:
        return len(self.daily_steps)

    def days_with_heart_rate(self, tz: tzinfo | None = None) -> int:
        return len({sample.local_date(tz) for sample in self.heart_rate_samples})

    def date_range_string(self) -> str:
        if self.earliest_date is not None and self.latest_date is not None:
            return f"{self.earliest_date.isoformat()} to {self.latest_date.isoformat()}"
        return "No data"

    @property
    def is_empty(self) -> bool:
        return (
            not self.daily_steps
            and not self.heart_rate_samples
            and not any(self.other_records.values())
        )
