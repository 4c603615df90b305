"""Category and global aggregation of per-type fetches."""

import asyncio
import time as time_module
from datetime import date, datetime, time, tzinfo

import structlog
from opentelemetry import trace

from .config import ExportSettings
from .fetcher import RecordFetcher
from .metrics import CATEGORY_FAILURES, FETCH_RUN_DURATION, FETCH_RUN_RECORDS
from .models import CategoryResult, CategorySummary, FetchedRecords, FetchRunStats, GlobalResult
from .permissions import PermissionAuthority, read_permission
from .registry import DEFAULT_REGISTRY, RecordCategory, RecordTypeConfig, RecordTypeRegistry

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

_END_OF_DAY = time(23, 59, 59)


def resolve_window(
    start_date: date | None,
    end_date: date | None,
    tz: tzinfo | None,
    historical_start: datetime,
    now: datetime | None = None,
) -> tuple[datetime, datetime]:
    """Turn optional calendar bounds into a fetch window.

    The start date maps to local midnight and the end date to 23:59:59
    local time. Missing bounds fall back to ``historical_start`` and to now.

    Raises:
        ValueError: If the resolved start is after the resolved end.
    """
    if start_date is not None:
        start = _local_instant(datetime.combine(start_date, time.min), tz)
    else:
        start = historical_start

    if end_date is not None:
        end = _local_instant(datetime.combine(end_date, _END_OF_DAY), tz)
    else:
        end = now or datetime.now().astimezone()

    if start > end:
        raise ValueError(f"Start {start.isoformat()} is after end {end.isoformat()}")
    return start, end


def _local_instant(naive: datetime, tz: tzinfo | None) -> datetime:
    if tz is None:
        return naive.astimezone()
    return naive.replace(tzinfo=tz)


class HealthAggregator:
    """Fetches every record type of every category.

    Args:
        fetcher: Per-type fetcher.
        registry: Record types to fetch.
        settings: Window defaults and concurrency bound.
        permissions: When set, types whose read permission is not granted
            are recorded as permission denied without reading the source.
    """

    def __init__(
        self,
        fetcher: RecordFetcher,
        registry: RecordTypeRegistry = DEFAULT_REGISTRY,
        settings: ExportSettings | None = None,
        permissions: PermissionAuthority | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._registry = registry
        self._settings = settings or ExportSettings()
        self._permissions = permissions
        self.last_run: FetchRunStats | None = None

    @property
    def registry(self) -> RecordTypeRegistry:
        return self._registry

    @property
    def fetcher(self) -> RecordFetcher:
        return self._fetcher

    def _localize_window(self, start: datetime, end: datetime) -> tuple[datetime, datetime]:
        return self._settings.localize(start), self._settings.localize(end)

    async def _granted(self) -> set[str] | None:
        """Read the granted set once per run; None disables gating."""
        if self._permissions is None:
            return None
        try:
            return set(await self._permissions.granted_permissions())
        except Exception as e:
            logger.warning(
                "permission_check_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    async def _fetch_one(
        self,
        config: RecordTypeConfig,
        start: datetime,
        end: datetime,
        semaphore: asyncio.Semaphore,
        granted: set[str] | None,
    ) -> FetchedRecords:
        if granted is not None and read_permission(config) not in granted:
            logger.info("fetch_skipped_not_granted", record_type=config.display_name)
            return FetchedRecords.empty(config, permission_denied=True)
        async with semaphore:
            return await self._fetcher.fetch(config, start, end)

    async def fetch_category(
        self,
        category: RecordCategory | str,
        start: datetime,
        end: datetime,
    ) -> CategoryResult:
        """Fetch every configured type of one category.

        The result holds exactly one entry per configured type, keyed by
        display name in registry order, whatever happened to each fetch.
        Naive bounds are read in the configured zone.
        """
        start, end = self._localize_window(start, end)
        return await self._fetch_category(category, start, end, await self._granted())

    async def _fetch_category(
        self,
        category: RecordCategory | str,
        start: datetime,
        end: datetime,
        granted: set[str] | None,
    ) -> CategoryResult:
        name = category.value if isinstance(category, RecordCategory) else category
        configs = self._registry.records_for_category(category)

        logger.debug("category_fetch_started", category=name, types=len(configs))

        semaphore = asyncio.Semaphore(self._settings.max_concurrent_fetches)
        fetched = await asyncio.gather(
            *(self._fetch_one(config, start, end, semaphore, granted) for config in configs)
        )
        result: CategoryResult = {
            config.display_name: item for config, item in zip(configs, fetched, strict=True)
        }

        logger.info(
            "category_fetch_complete",
            category=name,
            total_records=sum(item.count for item in result.values()),
            types_with_data=sum(1 for item in result.values() if item.has_data),
            types_permission_denied=sum(1 for item in result.values() if item.permission_denied),
        )
        return result

    async def fetch_all(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> GlobalResult:
        """Fetch every category over ``[start, end)``.

        Args:
            start: Window start; defaults to the configured historical start.
                A naive value is read in the configured zone.
            end: Window end; defaults to now. Naive values are localized too.

        Returns:
            Category name to category result, one entry per category.
        """
        if start is None:
            start = self._settings.historical_start_instant()
        if end is None:
            end = datetime.now().astimezone()
        start, end = self._localize_window(start, end)

        logger.info("fetch_all_started", start=start.isoformat(), end=end.isoformat())
        started = time_module.monotonic()

        with tracer.start_as_current_span("fetch_all") as span:
            span.set_attribute("fetch.start", start.isoformat())
            span.set_attribute("fetch.end", end.isoformat())

            granted = await self._granted()
            results: GlobalResult = {}
            for category in self._registry.categories:
                try:
                    results[category.value] = await self._fetch_category(
                        category, start, end, granted
                    )
                except Exception as e:
                    logger.error(
                        "category_fetch_failed",
                        category=category.value,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    CATEGORY_FAILURES.labels(category=category.value).inc()
                    results[category.value] = {}

            stats = FetchRunStats(
                total_categories=len(results),
                total_types=sum(len(result) for result in results.values()),
                total_records=sum(
                    item.count for result in results.values() for item in result.values()
                ),
                duration_seconds=time_module.monotonic() - started,
            )
            span.set_attribute("fetch.categories", stats.total_categories)
            span.set_attribute("fetch.types", stats.total_types)
            span.set_attribute("fetch.records", stats.total_records)

        self.last_run = stats
        FETCH_RUN_DURATION.observe(stats.duration_seconds)
        FETCH_RUN_RECORDS.set(stats.total_records)
        logger.info(
            "fetch_all_complete",
            total_categories=stats.total_categories,
            total_types=stats.total_types,
            total_records=stats.total_records,
            duration_seconds=round(stats.duration_seconds, 3),
        )
        return results


def summarize(results: GlobalResult) -> dict[str, CategorySummary]:
    """Per-category record counts for a global result."""
    return {
        category: CategorySummary.from_result(category, result)
        for category, result in results.items()
    }
