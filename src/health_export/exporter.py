"""JSON document export for fetched records and historical summaries."""

import asyncio
import json
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo
from decimal import Decimal
from enum import Enum
from pathlib import Path
from statistics import fmean
from typing import Any

import structlog
from pydantic import BaseModel

from .config import ExportSettings
from .metrics import EXPORT_WRITES
from .models import (
    CategoryResult,
    DailySteps,
    FetchedRecords,
    GlobalResult,
    HeartRateSample,
    HistoricalHealthData,
    RawRecord,
)
from .types import ExportJob, JSONObject, JSONValue, WriteResults

logger = structlog.get_logger(__name__)


def to_json_value(value: Any) -> JSONValue:
    """Convert an attribute value into a JSON value.

    Raises:
        TypeError: If the value has no JSON representation.
        ValueError: If the value is a non-finite float.
    """
    if value is None or isinstance(value, bool | int | str):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"Non-finite float: {value}")
        return value
    if isinstance(value, Enum):
        return to_json_value(value.value)
    if isinstance(value, datetime | date | time):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, Decimal):
        return to_json_value(float(value))
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, Mapping):
        return {str(k): to_json_value(v) for k, v in value.items()}
    if isinstance(value, Sequence | set | frozenset) and not isinstance(value, bytes | bytearray):
        return [to_json_value(v) for v in value]
    raise TypeError(f"Unsupported attribute type: {type(value).__name__}")


def record_to_dict(record: RawRecord) -> JSONObject:
    """Serialize one record.

    Temporal fields come first (``startTime``/``endTime``, or ``time``),
    followed by every other readable attribute. Attributes that cannot be
    converted are left out.
    """
    doc: JSONObject = {"recordType": record.type_id}

    start, end = record.start_time, record.end_time
    if start is not None:
        doc["startTime"] = start.isoformat()
    if end is not None:
        doc["endTime"] = end.isoformat()
    if start is None and end is None and record.time is not None:
        doc["time"] = record.time.isoformat()

    for name, value in record.list_attributes():
        if name in doc:
            continue
        try:
            doc[name] = to_json_value(value)
        except (TypeError, ValueError) as e:
            logger.debug(
                "attribute_skipped",
                type_id=record.type_id,
                attribute=name,
                error=str(e),
            )

    return doc


def record_type_document(fetched: FetchedRecords) -> JSONObject:
    """Document for one record type, with records only when it has data."""
    records: list[JSONValue] = []
    if fetched.count > 0:
        for record in fetched.records:
            try:
                records.append(record_to_dict(record))
            except Exception as e:
                logger.warning(
                    "record_export_failed",
                    record_type=fetched.config.display_name,
                    error=str(e),
                    error_type=type(e).__name__,
                )

    return {
        "displayName": fetched.config.display_name,
        "category": fetched.config.category.value,
        "totalRecords": fetched.count,
        "hasData": fetched.count > 0,
        "isPermissionDenied": fetched.permission_denied,
        "records": records,
    }


def category_document(category: str, result: CategoryResult) -> JSONObject:
    """Document holding every record type of a category."""
    return {
        "category": category,
        "totalRecordTypes": len(result),
        "totalRecords": sum(fetched.count for fetched in result.values()),
        "recordTypes": {
            display_name: record_type_document(fetched)
            for display_name, fetched in result.items()
        },
    }


def summary_document(results: GlobalResult, exported_at: datetime | None = None) -> JSONObject:
    """Counts per category across a whole fetch run."""
    exported_at = exported_at or datetime.now().astimezone()
    categories: JSONObject = {}
    for category, result in results.items():
        categories[category] = {
            "category": category,
            "recordTypes": len(result),
            "totalRecords": sum(fetched.count for fetched in result.values()),
            "typesWithData": sum(1 for fetched in result.values() if fetched.has_data),
            "typesWithPermissionDenied": sum(
                1 for fetched in result.values() if fetched.permission_denied
            ),
        }

    return {
        "totalCategories": len(results),
        "totalRecordTypes": sum(len(result) for result in results.values()),
        "totalRecords": sum(
            fetched.count for result in results.values() for fetched in result.values()
        ),
        "exportDate": exported_at.isoformat(),
        "categories": categories,
    }


def _daily_steps_entry(day: DailySteps) -> JSONObject:
    return {
        "date": day.date.isoformat(),
        "steps": day.total_steps,
        "startTime": day.window_start.isoformat(),
        "endTime": day.window_end.isoformat(),
        "dateString": day.date_string(),
    }


def _sample_entry(sample: HeartRateSample, tz: tzinfo | None) -> JSONObject:
    entry: JSONObject = {
        "time": sample.time.isoformat(),
        "beatsPerMinute": sample.beats_per_minute,
        "date": sample.local_date(tz).isoformat(),
        "timeString": sample.time_string(tz),
    }
    if sample.metadata:
        entry["metadata"] = dict(sample.metadata)
    return entry


def _bpm_statistics(samples: Sequence[HeartRateSample]) -> JSONObject:
    if not samples:
        return {}
    values = [sample.beats_per_minute for sample in samples]
    return {
        "averageBpm": fmean(values),
        "minBpm": min(values),
        "maxBpm": max(values),
    }


def daily_steps_document(daily_steps: Sequence[DailySteps]) -> JSONObject:
    return {
        "totalDays": len(daily_steps),
        "totalSteps": sum(day.total_steps for day in daily_steps),
        "earliestDate": daily_steps[0].date.isoformat() if daily_steps else None,
        "latestDate": daily_steps[-1].date.isoformat() if daily_steps else None,
        "dailySteps": [_daily_steps_entry(day) for day in daily_steps],
    }


def heart_rate_document(
    samples: Sequence[HeartRateSample], tz: tzinfo | None = None
) -> JSONObject:
    """Heart rate samples with average, min and max bpm when non-empty."""
    doc: JSONObject = {
        "totalSamples": len(samples),
        "earliestTime": samples[0].time.isoformat() if samples else None,
        "latestTime": samples[-1].time.isoformat() if samples else None,
    }
    doc.update(_bpm_statistics(samples))
    doc["samples"] = [_sample_entry(sample, tz) for sample in samples]
    return doc


def historical_document(data: HistoricalHealthData, tz: tzinfo | None = None) -> JSONObject:
    """Combined steps and heart rate document with aggregate statistics."""
    doc: JSONObject = {
        "dateRange": data.date_range_string(),
        "earliestDate": data.earliest_date.isoformat() if data.earliest_date else None,
        "latestDate": data.latest_date.isoformat() if data.latest_date else None,
        "totalSteps": data.total_steps,
        "totalDays": data.days_with_steps,
        "daysWithHeartRate": data.days_with_heart_rate(tz),
        "totalSamples": data.total_heart_rate_samples,
    }
    doc.update(_bpm_statistics(data.heart_rate_samples))
    doc["otherRecordCounts"] = {
        display_name: len(records) for display_name, records in data.other_records.items()
    }
    doc["dailySteps"] = [_daily_steps_entry(day) for day in data.daily_steps]
    doc["heartRateSamples"] = [_sample_entry(sample, tz) for sample in data.heart_rate_samples]
    return doc


def to_document(document: JSONObject, indent: int | None = 2) -> str:
    """Render a document as JSON text."""
    return json.dumps(document, indent=indent or None, ensure_ascii=False)


def write_document(text: str, path: Path | str) -> bool:
    """Write document text to a file.

    Returns:
        True if written, False on any I/O, access or encoding failure.
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    except (OSError, UnicodeError) as e:
        logger.error(
            "document_write_failed",
            path=str(path),
            error=str(e),
            error_type=type(e).__name__,
        )
        EXPORT_WRITES.labels(status="failed").inc()
        return False

    logger.info("document_written", path=str(path), size=len(text))
    EXPORT_WRITES.labels(status="ok").inc()
    return True


def _slug(name: str) -> str:
    return name.lower().replace(" ", "_")


@dataclass
class ExportReport:
    """Per-destination outcome of an export run, keyed by file name."""

    base_dir: Path
    results: WriteResults = field(default_factory=dict)

    @property
    def succeeded(self) -> list[str]:
        return [name for name, ok in self.results.items() if ok]

    @property
    def failed(self) -> list[str]:
        return [name for name, ok in self.results.items() if not ok]

    @property
    def all_succeeded(self) -> bool:
        return all(self.results.values())


class HealthDataExporter:
    """Writes export documents under a base directory.

    Each file is written independently; a failed file is reported as
    False and never stops the remaining writes.
    """

    def __init__(
        self,
        base_dir: Path | str | None = None,
        settings: ExportSettings | None = None,
    ) -> None:
        self._settings = settings or ExportSettings()
        self._base_dir = Path(base_dir or self._settings.output_dir).resolve()
        if self._base_dir.exists() and not self._base_dir.is_dir():
            raise ValueError(f"base_dir is not a directory: {self._base_dir}")
        self._tz = self._settings.tzinfo()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def category_file_name(self, category: str) -> str:
        return f"{_slug(category)}{self._settings.category_file_suffix}"

    def category_file(self, category: str) -> Path:
        return self._base_dir / self.category_file_name(category)

    def record_type_file_name(self, display_name: str) -> str:
        return f"{_slug(display_name)}_records.json"

    def _render(self, document: JSONObject) -> str:
        return to_document(document, self._settings.indent)

    def _category_jobs(self, results: GlobalResult) -> list[ExportJob]:
        jobs = []
        for category, result in results.items():
            if not result:
                logger.info("exporting_empty_category", category=category)
            path = self.category_file(category)
            jobs.append((category, path, self._render(category_document(category, result))))
        return jobs

    def _historical_jobs(
        self,
        data: HistoricalHealthData,
        daily_steps_file_name: str | None = None,
        heart_rate_file_name: str | None = None,
        combined_file_name: str | None = None,
    ) -> list[ExportJob]:
        names = (
            daily_steps_file_name or self._settings.daily_steps_file_name,
            heart_rate_file_name or self._settings.heart_rate_file_name,
            combined_file_name or self._settings.combined_file_name,
        )
        documents = (
            daily_steps_document(data.daily_steps),
            heart_rate_document(data.heart_rate_samples, self._tz),
            historical_document(data, self._tz),
        )
        return [
            (name, self._base_dir / name, self._render(document))
            for name, document in zip(names, documents, strict=True)
        ]

    def export_categories(self, results: GlobalResult) -> WriteResults:
        """Write one document per category.

        Returns:
            Category name to write success.
        """
        return {
            category: write_document(text, path)
            for category, path, text in self._category_jobs(results)
        }

    def export_summary(self, results: GlobalResult, file_name: str | None = None) -> bool:
        path = self._base_dir / (file_name or self._settings.summary_file_name)
        return write_document(self._render(summary_document(results)), path)

    def export_record_type(self, fetched: FetchedRecords, file_name: str | None = None) -> bool:
        """Write a standalone document for one record type."""
        path = self._base_dir / (
            file_name or self.record_type_file_name(fetched.config.display_name)
        )
        return write_document(self._render(record_type_document(fetched)), path)

    def export_historical(
        self,
        data: HistoricalHealthData,
        daily_steps_file_name: str | None = None,
        heart_rate_file_name: str | None = None,
        combined_file_name: str | None = None,
    ) -> WriteResults:
        """Write the daily steps, heart rate and combined documents.

        Returns:
            File name to write success.
        """
        jobs = self._historical_jobs(
            data, daily_steps_file_name, heart_rate_file_name, combined_file_name
        )
        results = {name: write_document(text, path) for name, path, text in jobs}
        logger.info("historical_export_complete", results=results)
        return results

    async def export_all(
        self,
        results: GlobalResult,
        historical: HistoricalHealthData | None = None,
    ) -> ExportReport:
        """Write category, summary and optional historical documents.

        Files are written concurrently in worker threads.
        """
        jobs = [(path.name, path, text) for _, path, text in self._category_jobs(results)]
        summary_path = self._base_dir / self._settings.summary_file_name
        jobs.append((summary_path.name, summary_path, self._render(summary_document(results))))
        if historical is not None:
            jobs.extend(self._historical_jobs(historical))

        loop = asyncio.get_running_loop()
        outcomes = await asyncio.gather(
            *(loop.run_in_executor(None, write_document, text, path) for _, path, text in jobs)
        )

        report = ExportReport(
            base_dir=self._base_dir,
            results={name: ok for (name, _, _), ok in zip(jobs, outcomes, strict=True)},
        )
        logger.info(
            "export_complete",
            base_dir=str(self._base_dir),
            succeeded=len(report.succeeded),
            failed=len(report.failed),
        )
        return report
