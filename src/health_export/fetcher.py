"""Per-type record fetcher with failure isolation."""

from datetime import datetime

import structlog

from .metrics import RECORD_FETCHES, RECORDS_FETCHED
from .models import FetchedRecords
from .registry import RecordTypeConfig
from .sources import HealthDataSource

logger = structlog.get_logger(__name__)


class RecordFetcher:
    """Reads one record type at a time from a health data source.

    A fetch never raises: every fault from the source is logged and
    converted into an empty result so that sibling types keep going.
    """

    def __init__(self, source: HealthDataSource) -> None:
        self._source = source

    @property
    def source(self) -> HealthDataSource:
        return self._source

    async def fetch(
        self,
        config: RecordTypeConfig,
        start: datetime,
        end: datetime,
    ) -> FetchedRecords:
        """Fetch every record of one type within ``[start, end)``.

        Args:
            config: Record type to read.
            start: Window start (inclusive).
            end: Window end (exclusive).

        Returns:
            The fetched records; empty with ``permission_denied`` set when the
            source refused authorization, empty otherwise on any other fault.
        """
        category = config.category.value
        try:
            records = await self._source.read_records(config.type_id, start, end)
            fetched = FetchedRecords.of(config, records or ())
        except PermissionError as e:
            logger.warning(
                "fetch_permission_denied",
                record_type=config.display_name,
                type_id=config.type_id,
                error=str(e),
            )
            RECORD_FETCHES.labels(category=category, status="permission_denied").inc()
            return FetchedRecords.empty(config, permission_denied=True)
        except Exception as e:
            logger.warning(
                "fetch_failed",
                record_type=config.display_name,
                type_id=config.type_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            RECORD_FETCHES.labels(category=category, status="error").inc()
            return FetchedRecords.empty(config)

        if fetched.has_data:
            logger.debug("fetch_complete", record_type=config.display_name, count=fetched.count)
        else:
            logger.debug("fetch_empty", record_type=config.display_name)

        RECORD_FETCHES.labels(category=category, status="ok").inc()
        RECORDS_FETCHED.labels(category=category).inc(fetched.count)
        return fetched
