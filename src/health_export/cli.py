"""CLI tools for exporting and inspecting health records from a dump file."""

import argparse
import asyncio
import json
import sys
from datetime import date, datetime
from pathlib import Path

from .aggregator import HealthAggregator, resolve_window, summarize
from .config import Settings, get_settings
from .exporter import ExportReport, HealthDataExporter
from .fetcher import RecordFetcher
from .logging import setup_logging
from .metrics import write_textfile
from .sources import JsonDumpHealthDataSource
from .summarizer import build_historical_data
from .tracing import setup_tracing, shutdown_tracing


def parse_date(date_str: str) -> date:
    """Parse date string in YYYY-MM-DD format."""
    try:
        return datetime.strptime(date_str, "%Y-%m-%d").date()
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"Invalid date '{date_str}', expected YYYY-MM-DD"
        ) from None


def _add_window_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--source",
        type=Path,
        required=True,
        help="JSON dump of health records",
    )
    parser.add_argument(
        "--start",
        type=parse_date,
        default=None,
        help="Start date (YYYY-MM-DD, default: configured historical start)",
    )
    parser.add_argument(
        "--end",
        type=parse_date,
        default=None,
        help="End date (YYYY-MM-DD, default: now)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="format_json",
        help="Output as JSON",
    )


def _build_aggregator(settings: Settings, source_path: Path) -> HealthAggregator:
    source = JsonDumpHealthDataSource(source_path)
    return HealthAggregator(RecordFetcher(source), settings=settings.export)


def _window(settings: Settings, start: date | None, end: date | None) -> tuple[datetime, datetime]:
    return resolve_window(
        start,
        end,
        settings.export.tzinfo(),
        settings.export.historical_start_instant(),
    )


def _finish_run(settings: Settings) -> None:
    if settings.metrics.enabled and settings.metrics.textfile:
        write_textfile(settings.metrics.textfile)
    shutdown_tracing()


async def _export(
    source_path: Path,
    output_dir: Path | None,
    start_date: date | None,
    end_date: date | None,
    include_historical: bool,
) -> ExportReport:
    """Fetch every category and write all export documents."""
    settings = get_settings()
    start, end = _window(settings, start_date, end_date)

    aggregator = _build_aggregator(settings, source_path)
    results = await aggregator.fetch_all(start, end)

    historical = None
    if include_historical:
        historical = build_historical_data(
            results, settings.export.tzinfo(), aggregator.registry
        )

    exporter = HealthDataExporter(output_dir, settings=settings.export)
    return await exporter.export_all(results, historical)


def export_all() -> None:
    """CLI entry point for a full fetch and export.

    Usage:
        health-export --source dump.json [--start 2024-01-01] [--end 2024-01-31]
    """
    parser = argparse.ArgumentParser(
        description="Fetch every health record type and export JSON documents"
    )
    _add_window_arguments(parser)
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Output directory (default: EXPORT_OUTPUT_DIR or ./health_export_data)",
    )
    parser.add_argument(
        "--skip-historical",
        action="store_true",
        help="Do not write daily steps and heart rate documents",
    )

    args = parser.parse_args()

    if args.start and args.end and args.start > args.end:
        print("Error: start date must be before or equal to end date", file=sys.stderr)
        sys.exit(1)

    settings = get_settings()
    setup_logging(settings.app)
    setup_tracing(settings.tracing)

    try:
        report = asyncio.run(
            _export(
                args.source,
                args.output_dir,
                args.start,
                args.end,
                include_historical=not args.skip_historical,
            )
        )
    finally:
        _finish_run(settings)

    if args.format_json:
        print(
            json.dumps(
                {"baseDir": str(report.base_dir), "results": report.results},
                indent=2,
            )
        )
    else:
        print(f"Files saved to: {report.base_dir}")
        for name, ok in report.results.items():
            print(f"  {'OK    ' if ok else 'FAILED'} {name}")
        print(f"\n{len(report.succeeded)}/{len(report.results)} documents written")

    if not report.all_succeeded:
        sys.exit(1)


async def _inspect(
    source_path: Path,
    start_date: date | None,
    end_date: date | None,
    format_json: bool,
) -> None:
    """Fetch every category and print per-category counts."""
    settings = get_settings()
    start, end = _window(settings, start_date, end_date)

    aggregator = _build_aggregator(settings, source_path)
    results = await aggregator.fetch_all(start, end)
    summaries = summarize(results)

    if format_json:
        output = {
            category: {
                "totalTypes": summary.total_types,
                "totalRecords": summary.total_records,
                "typesWithData": summary.types_with_data,
                "typesWithoutData": summary.types_without_data,
                "typesWithPermissionDenied": summary.types_permission_denied,
            }
            for category, summary in summaries.items()
        }
        print(json.dumps(output, indent=2))
        return

    print(f"Window: {start.isoformat()} to {end.isoformat()}\n")
    for category, summary in summaries.items():
        print(f"{category}:")
        print(f"  Types:       {summary.total_types}")
        print(f"  Records:     {summary.total_records}")
        print(f"  With data:   {summary.types_with_data}")
        print(f"  No data:     {summary.types_without_data}")
        if summary.types_permission_denied:
            print(f"  Denied:      {summary.types_permission_denied}")
        for display_name, fetched in results[category].items():
            if fetched.has_data:
                print(f"    - {display_name}: {fetched.count}")

    if aggregator.last_run is not None:
        print(
            f"\n{aggregator.last_run.total_records} records across "
            f"{aggregator.last_run.total_types} types "
            f"in {aggregator.last_run.duration_seconds:.2f}s"
        )


def inspect_source() -> None:
    """CLI entry point for printing per-category counts without exporting.

    Usage:
        health-export-inspect --source dump.json [--json]
    """
    parser = argparse.ArgumentParser(description="Summarize health records in a dump")
    _add_window_arguments(parser)

    args = parser.parse_args()

    if args.start and args.end and args.start > args.end:
        print("Error: start date must be before or equal to end date", file=sys.stderr)
        sys.exit(1)

    settings = get_settings()
    setup_logging(settings.app)
    setup_tracing(settings.tracing)

    try:
        asyncio.run(_inspect(args.source, args.start, args.end, args.format_json))
    finally:
        _finish_run(settings)


if __name__ == "__main__":
    export_all()
