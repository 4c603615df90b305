"""Pytest configuration and fixtures."""

from datetime import UTC, datetime, timedelta
from pathlib import Path
import sys

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from health_export.config import ExportSettings  # noqa: E402
from health_export.models import RawRecord  # noqa: E402
from health_export.sources import InMemoryHealthDataSource  # noqa: E402

WINDOW_START = datetime(2024, 1, 1, tzinfo=UTC)
WINDOW_END = datetime(2024, 2, 1, tzinfo=UTC)


def steps_record(count: int, start: datetime, minutes: int = 30) -> RawRecord:
    """Build a raw steps record covering ``minutes`` from ``start``."""
    return RawRecord(
        type_id="Steps",
        attributes={
            "count": count,
            "startTime": start.isoformat(),
            "endTime": (start + timedelta(minutes=minutes)).isoformat(),
        },
    )


def heart_rate_record(*samples: tuple[datetime, float], **attributes) -> RawRecord:
    """Build a raw heart rate record with embedded samples."""
    ordered = sorted(samples)
    return RawRecord(
        type_id="HeartRate",
        attributes={
            "startTime": ordered[0][0].isoformat(),
            "endTime": ordered[-1][0].isoformat(),
            "samples": [
                {"time": ts.isoformat(), "beatsPerMinute": bpm} for ts, bpm in samples
            ],
            **attributes,
        },
    )


def weight_record(kg: float, at: datetime) -> RawRecord:
    return RawRecord(
        type_id="Weight",
        attributes={"time": at.isoformat(), "weight": {"kilograms": kg}},
    )


@pytest.fixture
def export_settings():
    """Export settings pinned to UTC with a fixed historical start."""
    return ExportSettings(
        _env_file=None,
        timezone="UTC",
        historical_start=datetime(2020, 1, 1),
        max_concurrent_fetches=3,
    )


@pytest.fixture
def sample_records():
    """Records for a few types across two days in January 2024."""
    return {
        "Steps": [
            steps_record(100, datetime(2024, 1, 15, 8, 0, tzinfo=UTC)),
            steps_record(50, datetime(2024, 1, 15, 18, 0, tzinfo=UTC)),
            steps_record(30, datetime(2024, 1, 16, 9, 0, tzinfo=UTC)),
        ],
        "HeartRate": [
            heart_rate_record(
                (datetime(2024, 1, 15, 10, 0, tzinfo=UTC), 70),
                (datetime(2024, 1, 15, 10, 1, tzinfo=UTC), 72),
                (datetime(2024, 1, 15, 10, 2, tzinfo=UTC), 75),
            ),
            heart_rate_record((datetime(2024, 1, 16, 7, 0, tzinfo=UTC), 60)),
        ],
        "Weight": [weight_record(75.5, datetime(2024, 1, 10, 7, 0, tzinfo=UTC))],
    }


@pytest.fixture
def sample_source(sample_records):
    """In-memory source serving the sample records."""
    return InMemoryHealthDataSource(sample_records)
