"""Health record aggregation and JSON export.

Reads every supported record type from a local health data source,
aggregates the results per category, derives daily steps and heart rate
samples, and writes the results as JSON documents for inspection.

Modules:
    registry: Catalogue of record types grouped by category
    sources: Health data source interface, faults and local sources
    fetcher: Per-type fetches with failure isolation
    aggregator: Category and global aggregation
    summarizer: Daily steps, heart rate samples and the historical aggregate
    exporter: JSON documents and file writes
    config: Configuration management using pydantic-settings

Example:
    Export everything in a dump file::

        $ uv run health-export --source dump.json --output-dir ./export
"""

__version__ = "0.1.0"

from .aggregator import HealthAggregator, resolve_window, summarize
from .config import Settings, get_settings
from .exporter import ExportReport, HealthDataExporter
from .fetcher import RecordFetcher
from .models import FetchedRecords, HistoricalHealthData, RawRecord
from .registry import DEFAULT_REGISTRY, RecordCategory, RecordTypeConfig, RecordTypeRegistry
from .summarizer import build_historical_data, fetch_historical_data

__all__ = [
    "DEFAULT_REGISTRY",
    "ExportReport",
    "FetchedRecords",
    "HealthAggregator",
    "HealthDataExporter",
    "HistoricalHealthData",
    "RawRecord",
    "RecordCategory",
    "RecordFetcher",
    "RecordTypeConfig",
    "RecordTypeRegistry",
    "Settings",
    "__version__",
    "build_historical_data",
    "fetch_historical_data",
    "get_settings",
    "resolve_window",
    "summarize",
]
