"""Prometheus metrics definitions for fetch and export runs."""

from pathlib import Path

from prometheus_client import REGISTRY, Counter, Gauge, Histogram, write_to_textfile

# -- Fetching --
RECORD_FETCHES = Counter(
    "health_export_record_fetches_total",
    "Total per-type record fetches",
    ["category", "status"],
)
RECORDS_FETCHED = Counter(
    "health_export_records_fetched_total",
    "Total records fetched",
    ["category"],
)
FETCH_RUN_DURATION = Histogram(
    "health_export_fetch_run_duration_seconds",
    "Wall-clock duration of a full fetch across all categories",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)
FETCH_RUN_RECORDS = Gauge(
    "health_export_fetch_run_records",
    "Records fetched by the most recent full fetch",
)
CATEGORY_FAILURES = Counter(
    "health_export_category_failures_total",
    "Categories replaced by an empty result after an unexpected error",
    ["category"],
)

# -- Export --
EXPORT_WRITES = Counter(
    "health_export_document_writes_total",
    "Total document write attempts",
    ["status"],
)


def write_textfile(path: Path | str) -> None:
    """Write the default registry in text exposition format."""
    write_to_textfile(str(path), REGISTRY)
