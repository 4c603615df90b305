"""Catalogue of supported health record types, grouped by category."""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum


class RecordCategory(str, Enum):
    """Categories of health record types, in export order."""

    ACTIVITY = "Activity"
    BODY_MEASUREMENT = "Body Measurement"
    CYCLE_TRACKING = "Cycle Tracking"
    NUTRITION = "Nutrition"
    SLEEP = "Sleep"
    VITALS = "Vitals"
    WELLNESS = "Wellness"


@dataclass(frozen=True)
class RecordTypeConfig:
    """One supported record type."""

    type_id: str
    category: RecordCategory
    display_name: str


STEPS_TYPE_ID = "Steps"
HEART_RATE_TYPE_ID = "HeartRate"


def _configs(category: RecordCategory, *entries: tuple[str, str]) -> tuple[RecordTypeConfig, ...]:
    return tuple(RecordTypeConfig(type_id, category, name) for type_id, name in entries)


ACTIVITY_RECORDS = _configs(
    RecordCategory.ACTIVITY,
    ("ActiveCaloriesBurned", "Active Calories Burned"),
    ("ActivityIntensity", "Activity Intensity"),
    ("CyclingPedalingCadence", "Cycling Pedaling Cadence"),
    ("Distance", "Distance"),
    ("ElevationGained", "Elevation Gained"),
    ("ExerciseSession", "Exercise"),
    ("FloorsClimbed", "Floors Climbed"),
    ("PlannedExerciseSession", "Planned Exercise"),
    ("Power", "Power"),
    ("SexualActivity", "Sexual Activity"),
    ("Speed", "Speed"),
    (STEPS_TYPE_ID, "Steps"),
    ("TotalCaloriesBurned", "Total Calories Burned"),
    ("Vo2Max", "VO2 Max"),
    ("WheelchairPushes", "Wheelchair Pushes"),
)

BODY_MEASUREMENT_RECORDS = _configs(
    RecordCategory.BODY_MEASUREMENT,
    ("BasalMetabolicRate", "Basal Metabolic Rate"),
    ("BodyFat", "Body Fat"),
    ("BodyWaterMass", "Body Water Mass"),
    ("BoneMass", "Bone Mass"),
    ("Height", "Height"),
    ("Weight", "Weight"),
    ("LeanBodyMass", "Lean Body Mass"),
)

CYCLE_TRACKING_RECORDS = _configs(
    RecordCategory.CYCLE_TRACKING,
    ("BasalBodyTemperature", "Basal Body Temperature"),
    ("CervicalMucus", "Cervical Mucus"),
    ("IntermenstrualBleeding", "Intermenstrual Bleeding"),
    ("MenstruationFlow", "Menstruation"),
    ("OvulationTest", "Ovulation Test"),
)

NUTRITION_RECORDS = _configs(
    RecordCategory.NUTRITION,
    ("Hydration", "Hydration"),
    ("Nutrition", "Nutrition"),
)

SLEEP_RECORDS = _configs(
    RecordCategory.SLEEP,
    ("SleepSession", "Sleep Session"),
)

VITALS_RECORDS = _configs(
    RecordCategory.VITALS,
    ("BloodGlucose", "Blood Glucose"),
    ("BloodPressure", "Blood Pressure"),
    ("BodyTemperature", "Body Temperature"),
    (HEART_RATE_TYPE_ID, "Heart Rate"),
    ("HeartRateVariabilityRmssd", "Heart Rate Variability"),
    ("OxygenSaturation", "Oxygen Saturation"),
    ("RespiratoryRate", "Respiratory Rate"),
    ("RestingHeartRate", "Resting Heart Rate"),
    ("SkinTemperature", "Skin Temperature"),
)

WELLNESS_RECORDS = _configs(
    RecordCategory.WELLNESS,
    ("MindfulnessSession", "Mindfulness"),
)


class RecordTypeRegistry:
    """Immutable lookup over a set of record type configs."""

    def __init__(self, records: Iterable[RecordTypeConfig]) -> None:
        """Index the given configs by category and type id.

        Raises:
            ValueError: If a type id appears twice, or a display name
                appears twice within one category.
        """
        grouped: dict[RecordCategory, list[RecordTypeConfig]] = {
            category: [] for category in RecordCategory
        }
        by_type: dict[str, RecordTypeConfig] = {}

        for config in records:
            if config.type_id in by_type:
                raise ValueError(f"Duplicate record type id: {config.type_id}")
            names = {c.display_name for c in grouped[config.category]}
            if config.display_name in names:
                raise ValueError(
                    f"Duplicate display name '{config.display_name}' "
                    f"in category '{config.category.value}'"
                )
            by_type[config.type_id] = config
            grouped[config.category].append(config)

        self._by_type = by_type
        self._by_category = {
            category.value: tuple(configs) for category, configs in grouped.items()
        }

    @property
    def categories(self) -> tuple[RecordCategory, ...]:
        """Every category, including those with no registered types."""
        return tuple(RecordCategory)

    @property
    def by_category(self) -> dict[str, tuple[RecordTypeConfig, ...]]:
        return dict(self._by_category)

    @property
    def all_records(self) -> tuple[RecordTypeConfig, ...]:
        return tuple(config for configs in self._by_category.values() for config in configs)

    def records_for_category(
        self, category: RecordCategory | str
    ) -> tuple[RecordTypeConfig, ...]:
        """Get the configs registered under a category.

        Unknown categories yield an empty tuple.
        """
        name = category.value if isinstance(category, RecordCategory) else category
        return self._by_category.get(name, ())

    def get(self, type_id: str) -> RecordTypeConfig | None:
        return self._by_type.get(type_id)

    def find(self, display_name: str) -> RecordTypeConfig | None:
        """Look up a config by display name (case-insensitive)."""
        lower = display_name.lower()
        for config in self._by_type.values():
            if config.display_name.lower() == lower:
                return config
        return None

    def __len__(self) -> int:
        return len(self._by_type)


ALL_RECORDS: tuple[RecordTypeConfig, ...] = (
    ACTIVITY_RECORDS
    + BODY_MEASUREMENT_RECORDS
    + CYCLE_TRACKING_RECORDS
    + NUTRITION_RECORDS
    + SLEEP_RECORDS
    + VITALS_RECORDS
    + WELLNESS_RECORDS
)

DEFAULT_REGISTRY = RecordTypeRegistry(ALL_RECORDS)

ALL_RECORDS_BY_CATEGORY = DEFAULT_REGISTRY.by_category


def records_for_category(category: RecordCategory | str) -> tuple[RecordTypeConfig, ...]:
    """Get the default registry's configs for a category."""
    return DEFAULT_REGISTRY.records_for_category(category)
