"""Day-bucketed steps, flattened heart rate and the historical aggregate."""

from collections import defaultdict
from collections.abc import Iterable, Mapping
from datetime import date, datetime, tzinfo
from statistics import fmean

import structlog
from pydantic import ValidationError

from .aggregator import HealthAggregator
from .fetcher import RecordFetcher
from .models import (
    DailySteps,
    GlobalResult,
    HeartRateRecord,
    HeartRateSample,
    HistoricalHealthData,
    RawRecord,
    StepsRecord,
)
from .registry import (
    DEFAULT_REGISTRY,
    HEART_RATE_TYPE_ID,
    STEPS_TYPE_ID,
    RecordTypeRegistry,
)

logger = structlog.get_logger(__name__)


def _log_invalid_record(error: Exception, record: RawRecord, context: str) -> None:
    logger.warning(
        "record_skipped",
        type_id=record.type_id,
        error=str(error),
        error_type=type(error).__name__,
        context=context,
    )


def summarize_daily_steps(
    records: Iterable[RawRecord], tz: tzinfo | None = None
) -> list[DailySteps]:
    """Group step records into per-day totals.

    Each record is attributed to the calendar date of its own start time
    in ``tz`` (the system local zone when None). Days without records are
    absent from the result.

    Returns:
        Daily totals sorted by date, oldest first.
    """
    by_day: dict[date, list[StepsRecord]] = defaultdict(list)

    for record in records:
        try:
            steps = StepsRecord.model_validate(record.attributes)
        except ValidationError as e:
            _log_invalid_record(e, record, "steps")
            continue
        by_day[steps.start_time.astimezone(tz).date()].append(steps)

    daily = [
        DailySteps(
            date=day,
            total_steps=sum(item.count for item in items),
            window_start=min(item.start_time for item in items),
            window_end=max(item.end_time for item in items),
        )
        for day, items in by_day.items()
    ]
    daily.sort(key=lambda d: d.date)
    return daily


def flatten_heart_rate(records: Iterable[RawRecord]) -> list[HeartRateSample]:
    """Flatten heart rate records into individual samples sorted by time."""
    samples: list[HeartRateSample] = []

    for record in records:
        try:
            heart_rate = HeartRateRecord.model_validate(record.attributes)
        except ValidationError as e:
            _log_invalid_record(e, record, "heart_rate")
            continue

        metadata = (
            {str(k): str(v) for k, v in heart_rate.metadata.items()}
            if isinstance(heart_rate.metadata, Mapping) and heart_rate.metadata
            else None
        )
        samples.extend(
            HeartRateSample(
                time=sample.time,
                beats_per_minute=sample.beats_per_minute,
                metadata=metadata,
            )
            for sample in heart_rate.samples
        )

    samples.sort(key=lambda s: s.time)
    return samples


def _records_for_type(
    results: GlobalResult, registry: RecordTypeRegistry, type_id: str
) -> tuple[RawRecord, ...]:
    config = registry.get(type_id)
    if config is None:
        return ()
    fetched = results.get(config.category.value, {}).get(config.display_name)
    return fetched.records if fetched is not None else ()


def build_historical_data(
    results: GlobalResult,
    tz: tzinfo | None = None,
    registry: RecordTypeRegistry = DEFAULT_REGISTRY,
) -> HistoricalHealthData:
    """Combine a global fetch result into the historical aggregate.

    The date range covers step dates and heart rate sample dates only;
    other record types do not widen it.
    """
    daily_steps = summarize_daily_steps(_records_for_type(results, registry, STEPS_TYPE_ID), tz)
    samples = flatten_heart_rate(_records_for_type(results, registry, HEART_RATE_TYPE_ID))

    other_records: dict[str, tuple[RawRecord, ...]] = {}
    for config in registry.all_records:
        if config.type_id in (STEPS_TYPE_ID, HEART_RATE_TYPE_ID):
            continue
        fetched = results.get(config.category.value, {}).get(config.display_name)
        other_records[config.display_name] = fetched.records if fetched is not None else ()

    dates = {day.date for day in daily_steps}
    dates.update(sample.local_date(tz) for sample in samples)

    return HistoricalHealthData(
        daily_steps=tuple(daily_steps),
        heart_rate_samples=tuple(samples),
        total_steps=sum(day.total_steps for day in daily_steps),
        total_heart_rate_samples=len(samples),
        earliest_date=min(dates) if dates else None,
        latest_date=max(dates) if dates else None,
        other_records=other_records,
    )


async def fetch_historical_data(
    aggregator: HealthAggregator,
    start: datetime | None = None,
    end: datetime | None = None,
    tz: tzinfo | None = None,
) -> HistoricalHealthData:
    """Fetch every category and build the historical aggregate."""
    results = await aggregator.fetch_all(start, end)
    data = build_historical_data(results, tz, aggregator.registry)

    logger.info(
        "historical_data_summary",
        days_with_steps=data.days_with_steps,
        total_steps=data.total_steps,
        heart_rate_samples=data.total_heart_rate_samples,
        days_with_heart_rate=data.days_with_heart_rate(tz),
        date_range=data.date_range_string(),
        average_bpm=(
            round(fmean(s.beats_per_minute for s in data.heart_rate_samples), 1)
            if data.heart_rate_samples
            else None
        ),
    )
    return data


async def fetch_daily_steps(
    fetcher: RecordFetcher,
    start: datetime,
    end: datetime,
    tz: tzinfo | None = None,
    registry: RecordTypeRegistry = DEFAULT_REGISTRY,
) -> list[DailySteps]:
    """Fetch step records directly and bucket them by day."""
    config = registry.get(STEPS_TYPE_ID)
    if config is None:
        return []
    fetched = await fetcher.fetch(config, start, end)
    return summarize_daily_steps(fetched.records, tz)


async def fetch_heart_rate_samples(
    fetcher: RecordFetcher,
    start: datetime,
    end: datetime,
    registry: RecordTypeRegistry = DEFAULT_REGISTRY,
) -> list[HeartRateSample]:
    """Fetch heart rate records directly and flatten their samples."""
    config = registry.get(HEART_RATE_TYPE_ID)
    if config is None:
        return []
    fetched = await fetcher.fetch(config, start, end)
    return flatten_heart_rate(fetched.records)
