# domain.py
from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime


class TrackerError(Exception):
    """Base class for tracker errors."""


class MalformedRecordError(TrackerError, ValueError):
    """A time record that cannot be counted (end far before start, bad break value...)."""


class SourceUnavailableError(TrackerError):
    """The backing store is not configured (tables missing)."""


class ActiveShiftError(TrackerError):
    """Clock-in attempted while a shift is already open."""


class NoActiveShiftError(TrackerError):
    """Clock-out attempted with no open shift."""


@dataclass
class TimeRecord:
    """One shift. `end` is None while the shift is still open."""
    start: datetime
    end: datetime | None = None
    break_minutes: float = 0
    id: int | None = None
    notes: str | None = None

    @property
    def is_open(self) -> bool:
        return self.end is None


@dataclass(frozen=True)
class PeriodBoundary:
    """Zone-local start of today, this week (Sunday) and this month, as UTC instants."""
    start_of_day: datetime
    start_of_week: datetime
    start_of_month: datetime


@dataclass(frozen=True)
class PeriodSummary:
    today_seconds: int = 0
    week_seconds: int = 0
    month_seconds: int = 0
    overtime_seconds: int = 0

    @property
    def today_hours(self) -> float:
        return self.today_seconds / 3600.0

    @property
    def week_hours(self) -> float:
        return self.week_seconds / 3600.0

    @property
    def month_hours(self) -> float:
        return self.month_seconds / 3600.0

    @property
    def overtime_hours(self) -> float:
        return self.overtime_seconds / 3600.0


@dataclass
class MileageEntry:
    trip_date: date
    miles: float
    start_location: str | None = None
    end_location: str | None = None
    purpose: str | None = None
    rate_per_mile: float | None = None
    id: int | None = None


@dataclass(frozen=True)
class MileageTotals:
    miles: float = 0.0
    reimbursement: float = 0.0


@dataclass(frozen=True)
class MileageSummary:
    this_month: MileageTotals = MileageTotals()
    last_month: MileageTotals = MileageTotals()


@dataclass
class UserProfile:
    user_id: str
    first_name: str | None = None
    last_name: str | None = None
    hourly_rate: float | None = None
    timezone: str | None = None

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) or self.user_id


@dataclass(frozen=True)
class TimezoneOption:
    value: str
    label: str
    region: str


# value -> (label, emoji)
DAILY_UPDATE_TYPES: dict[str, tuple[str, str]] = {
    "general": ("General Update", "📝"),
    "meal": ("Meal Time", "🍽️"),
    "nap": ("Nap Time", "😴"),
    "activity": ("Activity", "🎨"),
    "milestone": ("Milestone", "🌟"),
    "concern": ("Concern", "⚠️"),
}


@dataclass
class DailyUpdate:
    """A note for the family about the day. `update_date` is the nanny's local date."""
    message: str
    update_date: date
    update_type: str = "general"
    created_at: datetime | None = None
    id: int | None = None

    @property
    def label(self) -> str:
        label, emoji = DAILY_UPDATE_TYPES.get(self.update_type, DAILY_UPDATE_TYPES["general"])
        return f"{emoji} {label}"
