# backend/aligner_missions/models/enums.py
import enum

from sqlalchemy import Enum as SAEnum


class MissionCategory(str, enum.Enum):
    USAGE = "usage"
    HYGIENE = "hygiene"
    TRACKING = "tracking"
    EDUCATION = "education"
    MILESTONES = "milestones"
    ALIGNER_CHANGE = "aligner_change"
    APPOINTMENTS = "appointments"
    CHALLENGES = "challenges"


class MissionFrequency(str, enum.Enum):
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    PER_ALIGNER = "per_aligner"
    CUSTOM = "custom"


class CompletionCriteria(str, enum.Enum):
    DAYS_STREAK = "days_streak"
    TOTAL_COUNT = "total_count"
    PERCENTAGE = "percentage"
    TIME_BASED = "time_based"
    MANUAL = "manual"


class RepeatSchedule(str, enum.Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class TimeUnit(str, enum.Enum):
    SECONDS = "seconds"
    MINUTES = "minutes"
    HOURS = "hours"


class MissionStatus(str, enum.Enum):
    AVAILABLE = "available"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"


OPEN_STATUSES = (MissionStatus.AVAILABLE, MissionStatus.IN_PROGRESS)


class Trigger(str, enum.Enum):
    IMMEDIATE = "immediate"
    ON_TREATMENT_START = "on_treatment_start"
    ON_ALIGNER_CHANGE = "on_aligner_change"
    ON_ALIGNER_N_START = "on_aligner_N_start"
    DAYS_AFTER_ALIGNER_N = "days_after_aligner_N"
    DAYS_AFTER_TREATMENT_START = "days_after_treatment_start"
    WEEKS_AFTER_TREATMENT_START = "weeks_after_treatment_start"
    MANUAL = "manual"


class EventKind(str, enum.Enum):
    USAGE = "usage"
    HYGIENE = "hygiene"
    PHOTO = "photo"
    CHECK_IN = "check_in"
    ALIGNER_CHANGE = "aligner_change"


def enum_column(enum_cls, length: int = 40) -> SAEnum:
    """Store the enum's *value* in a plain VARCHAR (no native PG enum types)."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=length,
        validate_strings=True,
        values_callable=lambda e: [m.value for m in e],
    )
