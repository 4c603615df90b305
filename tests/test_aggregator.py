"""Tests for category and global aggregation."""

from datetime import UTC, date, datetime, timedelta, timezone

import pytest

from health_export.aggregator import HealthAggregator, resolve_window, summarize
from health_export.config import ExportSettings
from health_export.fetcher import RecordFetcher
from health_export.permissions import StaticPermissionAuthority, basic_permissions
from health_export.registry import (
    ALL_RECORDS_BY_CATEGORY,
    DEFAULT_REGISTRY,
    RecordCategory,
)
from health_export.sources import InMemoryHealthDataSource, InvalidStateError

from conftest import WINDOW_END, WINDOW_START, weight_record


class ExplodingAuthority:
    def __init__(self):
        self.calls = 0

    async def granted_permissions(self):
        self.calls += 1
        raise RuntimeError("authority offline")

    def request_permissions(self, permissions):
        pass


class FaultyRegistry:
    """Registry whose Vitals lookup fails outright."""

    def __init__(self, registry):
        self._registry = registry
        self.categories = registry.categories
        self.all_records = registry.all_records

    def records_for_category(self, category):
        if category == RecordCategory.VITALS:
            raise LookupError("vitals unavailable")
        return self._registry.records_for_category(category)

    def get(self, type_id):
        return self._registry.get(type_id)


def _aggregator(source, export_settings, **kwargs):
    return HealthAggregator(RecordFetcher(source), settings=export_settings, **kwargs)


class TestFetchCategory:
    @pytest.mark.asyncio
    async def test_one_entry_per_configured_type(self, sample_source, export_settings):
        aggregator = _aggregator(sample_source, export_settings)

        result = await aggregator.fetch_category(RecordCategory.ACTIVITY, WINDOW_START, WINDOW_END)

        expected = [config.display_name for config in ALL_RECORDS_BY_CATEGORY["Activity"]]
        assert list(result) == expected
        assert result["Steps"].count == 3
        assert all(result[name].count == 0 for name in expected if name != "Steps")

    @pytest.mark.asyncio
    async def test_category_by_name(self, sample_source, export_settings):
        aggregator = _aggregator(sample_source, export_settings)

        result = await aggregator.fetch_category("Vitals", WINDOW_START, WINDOW_END)

        assert result["Heart Rate"].count == 2

    @pytest.mark.asyncio
    async def test_unknown_category_is_empty(self, sample_source, export_settings):
        aggregator = _aggregator(sample_source, export_settings)

        assert await aggregator.fetch_category("Astrology", WINDOW_START, WINDOW_END) == {}

    @pytest.mark.asyncio
    async def test_failing_type_isolated(self, sample_records, export_settings):
        source = InMemoryHealthDataSource(
            sample_records, failures={"Distance": InvalidStateError("store closed")}
        )
        aggregator = _aggregator(source, export_settings)

        result = await aggregator.fetch_category(RecordCategory.ACTIVITY, WINDOW_START, WINDOW_END)

        assert len(result) == len(ALL_RECORDS_BY_CATEGORY["Activity"])
        assert result["Distance"].count == 0
        assert not result["Distance"].permission_denied
        assert result["Steps"].count == 3

    @pytest.mark.asyncio
    async def test_denied_type_marked(self, sample_records, export_settings):
        source = InMemoryHealthDataSource(
            sample_records, failures={"Steps": PermissionError("nope")}
        )
        aggregator = _aggregator(source, export_settings)

        result = await aggregator.fetch_category(RecordCategory.ACTIVITY, WINDOW_START, WINDOW_END)

        assert result["Steps"].permission_denied
        assert result["Steps"].count == 0


class TestFetchAll:
    @pytest.mark.asyncio
    async def test_every_category_present(self, sample_source, export_settings):
        aggregator = _aggregator(sample_source, export_settings)

        results = await aggregator.fetch_all(WINDOW_START, WINDOW_END)

        assert list(results) == [category.value for category in RecordCategory]
        for name, result in results.items():
            assert len(result) == len(ALL_RECORDS_BY_CATEGORY[name])
        assert results["Body Measurement"]["Weight"].count == 1

    @pytest.mark.asyncio
    async def test_run_stats(self, sample_source, export_settings):
        aggregator = _aggregator(sample_source, export_settings)

        await aggregator.fetch_all(WINDOW_START, WINDOW_END)

        stats = aggregator.last_run
        assert stats is not None
        assert stats.total_categories == 7
        assert stats.total_types == 40
        assert stats.total_records == 6
        assert stats.duration_seconds >= 0

    @pytest.mark.asyncio
    async def test_exactly_one_failing_type(self, sample_records, export_settings):
        clean = await _aggregator(
            InMemoryHealthDataSource(sample_records), export_settings
        ).fetch_all(WINDOW_START, WINDOW_END)
        source = InMemoryHealthDataSource(
            sample_records, failures={"Weight": RuntimeError("corrupt")}
        )

        results = await _aggregator(source, export_settings).fetch_all(WINDOW_START, WINDOW_END)

        changed = [
            name
            for category, result in results.items()
            for name, fetched in result.items()
            if fetched != clean[category][name]
        ]
        assert changed == ["Weight"]
        assert results["Body Measurement"]["Weight"].count == 0
        assert source.read_count == 40

    @pytest.mark.asyncio
    async def test_repeat_runs_match(self, sample_source, export_settings):
        aggregator = _aggregator(sample_source, export_settings)

        first = await aggregator.fetch_all(WINDOW_START, WINDOW_END)
        second = await aggregator.fetch_all(WINDOW_START, WINDOW_END)

        assert summarize(first) == summarize(second)
        assert first == second

    @pytest.mark.asyncio
    async def test_category_fault_becomes_empty(self, sample_source, export_settings):
        aggregator = HealthAggregator(
            RecordFetcher(sample_source),
            registry=FaultyRegistry(DEFAULT_REGISTRY),
            settings=export_settings,
        )

        results = await aggregator.fetch_all(WINDOW_START, WINDOW_END)

        assert results["Vitals"] == {}
        assert results["Activity"]["Steps"].count == 3
        assert len(results) == 7

    @pytest.mark.asyncio
    async def test_default_window(self, export_settings):
        old = datetime(2020, 6, 1, tzinfo=UTC)
        future = datetime.now(UTC) + timedelta(days=30)
        source = InMemoryHealthDataSource(
            {
                "Weight": [
                    weight_record(70.0, old),
                    weight_record(70.0, datetime(2019, 12, 31, tzinfo=UTC)),
                    weight_record(70.0, future),
                ]
            }
        )
        aggregator = _aggregator(source, export_settings)

        results = await aggregator.fetch_all()

        assert results["Body Measurement"]["Weight"].count == 1

    @pytest.mark.asyncio
    async def test_naive_bounds_read_in_configured_zone(self, sample_source, export_settings):
        aggregator = _aggregator(sample_source, export_settings)

        results = await aggregator.fetch_all(datetime(2024, 1, 1), datetime(2024, 2, 1))

        assert results["Activity"]["Steps"].count == 3
        assert results["Vitals"]["Heart Rate"].count == 2
        assert aggregator.last_run.total_records == 6

    @pytest.mark.asyncio
    async def test_naive_bounds_follow_zone_offset(self, sample_source):
        settings = ExportSettings(_env_file=None, timezone="Asia/Tokyo")
        aggregator = _aggregator(sample_source, settings)

        # 2024-01-16 00:00 in Tokyo is 2024-01-15 15:00 UTC
        results = await aggregator.fetch_all(datetime(2024, 1, 1), datetime(2024, 1, 16))

        assert results["Activity"]["Steps"].count == 1


class TestPermissionGating:
    @pytest.mark.asyncio
    async def test_ungranted_types_skipped(self, sample_source, export_settings):
        authority = StaticPermissionAuthority(basic_permissions())
        aggregator = _aggregator(sample_source, export_settings, permissions=authority)

        results = await aggregator.fetch_all(WINDOW_START, WINDOW_END)

        assert results["Activity"]["Steps"].count == 3
        assert results["Vitals"]["Heart Rate"].count == 2
        weight = results["Body Measurement"]["Weight"]
        assert weight.permission_denied
        assert weight.count == 0
        # Only steps and heart rate reach the source
        assert sample_source.read_count == 2

    @pytest.mark.asyncio
    async def test_full_grant_reads_everything(self, sample_source, export_settings):
        aggregator = _aggregator(
            sample_source, export_settings, permissions=StaticPermissionAuthority()
        )

        results = await aggregator.fetch_all(WINDOW_START, WINDOW_END)

        assert sample_source.read_count == 40
        assert not any(
            fetched.permission_denied for result in results.values() for fetched in result.values()
        )

    @pytest.mark.asyncio
    async def test_authority_failure_disables_gating(self, sample_source, export_settings):
        aggregator = _aggregator(sample_source, export_settings, permissions=ExplodingAuthority())

        results = await aggregator.fetch_all(WINDOW_START, WINDOW_END)

        assert sample_source.read_count == 40
        assert results["Body Measurement"]["Weight"].count == 1

    @pytest.mark.asyncio
    async def test_granted_set_read_once_per_run(self, sample_source, export_settings):
        authority = ExplodingAuthority()
        aggregator = _aggregator(sample_source, export_settings, permissions=authority)

        await aggregator.fetch_all(WINDOW_START, WINDOW_END)

        assert authority.calls == 1


def test_summarize_counts():
    from health_export.models import FetchedRecords, RawRecord

    steps = DEFAULT_REGISTRY.get("Steps")
    distance = DEFAULT_REGISTRY.get("Distance")
    results = {
        "Activity": {
            "Steps": FetchedRecords.of(steps, [RawRecord(type_id="Steps")]),
            "Distance": FetchedRecords.empty(distance, permission_denied=True),
        },
        "Sleep": {},
    }

    summaries = summarize(results)

    assert summaries["Activity"].total_records == 1
    assert summaries["Activity"].types_permission_denied == 1
    assert summaries["Sleep"].total_types == 0


class TestResolveWindow:
    HISTORICAL = datetime(2020, 1, 1, tzinfo=UTC)

    def test_dates_map_to_day_bounds(self):
        start, end = resolve_window(date(2024, 1, 1), date(2024, 1, 31), UTC, self.HISTORICAL)

        assert start == datetime(2024, 1, 1, 0, 0, 0, tzinfo=UTC)
        assert end == datetime(2024, 1, 31, 23, 59, 59, tzinfo=UTC)

    def test_zone_applied(self):
        tz = timezone(timedelta(hours=3))
        start, _ = resolve_window(date(2024, 1, 1), date(2024, 1, 1), tz, self.HISTORICAL)

        assert start == datetime(2023, 12, 31, 21, 0, tzinfo=UTC)

    def test_defaults(self):
        now = datetime(2024, 5, 1, 12, tzinfo=UTC)
        start, end = resolve_window(None, None, UTC, self.HISTORICAL, now=now)

        assert start == self.HISTORICAL
        assert end == now

    def test_reversed_rejected(self):
        with pytest.raises(ValueError, match="is after end"):
            resolve_window(date(2024, 2, 1), date(2024, 1, 1), UTC, self.HISTORICAL)

    def test_system_zone_when_unset(self):
        start, end = resolve_window(date(2024, 1, 1), date(2024, 1, 2), None, self.HISTORICAL)

        assert start.tzinfo is not None
        assert end - start == timedelta(days=1, hours=23, minutes=59, seconds=59)
