# timezones.py
"""Time zone handling: zone resolution, period boundaries and display formatting.

Everything here is pure. Functions take the zone explicitly and never raise
for an unknown zone identifier: they fall back to the configured default zone
(``DEFAULT_TIMEZONE``), then to the zone detected on the host, then to UTC.

Stored instants are always UTC. Local wall-clock values are only derived for
classification and display.
"""
from __future__ import annotations

import logging
import os
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from domain import PeriodBoundary, TimezoneOption

_LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "America/New_York")
LOCALTIME_PATH = "/etc/localtime"

TIMEZONE_OPTIONS: list[TimezoneOption] = [
    # US
    TimezoneOption("America/New_York", "Eastern Time (ET)", "US"),
    TimezoneOption("America/Chicago", "Central Time (CT)", "US"),
    TimezoneOption("America/Denver", "Mountain Time (MT)", "US"),
    TimezoneOption("America/Los_Angeles", "Pacific Time (PT)", "US"),
    TimezoneOption("America/Anchorage", "Alaska Time (AKT)", "US"),
    TimezoneOption("Pacific/Honolulu", "Hawaii Time (HST)", "US"),
    # Other common zones
    TimezoneOption("Europe/London", "London (GMT/BST)", "Europe"),
    TimezoneOption("Europe/Paris", "Paris (CET/CEST)", "Europe"),
    TimezoneOption("Europe/Berlin", "Berlin (CET/CEST)", "Europe"),
    TimezoneOption("Asia/Tokyo", "Tokyo (JST)", "Asia"),
    TimezoneOption("Asia/Shanghai", "Shanghai (CST)", "Asia"),
    TimezoneOption("Australia/Sydney", "Sydney (AEST/AEDT)", "Australia"),
    TimezoneOption("America/Toronto", "Toronto (ET)", "Canada"),
    TimezoneOption("America/Vancouver", "Vancouver (PT)", "Canada"),
]

_MONTH_ABBR = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
               "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


# =========================
# Clock
# =========================
def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime | str) -> datetime:
    """Normalise an instant to an aware UTC datetime.

    Accepts aware datetimes in any zone, naive datetimes (taken as UTC, which is
    how SQLite hands them back) and ISO-8601 strings with or without a ``Z``.
    """
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)
    if not isinstance(value, datetime):
        raise TypeError(f"Expected datetime or ISO string, got {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =========================
# Zone resolution
# =========================
def _load_zone(zone_id) -> ZoneInfo | None:
    if not zone_id or not isinstance(zone_id, str):
        return None
    try:
        return ZoneInfo(zone_id.strip())
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return None


def is_valid_timezone(zone_id) -> bool:
    return _load_zone(zone_id) is not None


def detected_timezone() -> str:
    """Best guess at the host's IANA zone name; the default zone if nothing usable is found."""
    env_tz = os.getenv("TZ", "").lstrip(":")
    if _load_zone(env_tz) is not None:
        return env_tz
    localtime = os.path.realpath(LOCALTIME_PATH)
    if "zoneinfo" + os.sep in localtime:
        name = localtime.split("zoneinfo" + os.sep, 1)[1]
        if _load_zone(name) is not None:
            return name
    return DEFAULT_TIMEZONE


def default_zone() -> tzinfo:
    tz = _load_zone(DEFAULT_TIMEZONE)
    if tz is not None:
        return tz
    _LOGGER.warning("DEFAULT_TIMEZONE %r is not a valid zone, using detected zone", DEFAULT_TIMEZONE)
    tz = _load_zone(detected_timezone())
    return tz if tz is not None else timezone.utc


def resolve_zone(zone) -> tzinfo:
    """Return a tzinfo for `zone`, falling back to the default zone. Never raises."""
    if isinstance(zone, tzinfo):
        return zone
    tz = _load_zone(zone)
    if tz is None:
        if zone:
            _LOGGER.debug("Unknown time zone %r, falling back to default", zone)
        return default_zone()
    return tz


# =========================
# Period boundaries
# =========================
def local_date(instant: datetime | str, zone) -> date:
    """Calendar date of `instant` on the wall clock of `zone`."""
    return to_utc(instant).astimezone(resolve_zone(zone)).date()


def local_midnight(day: date, zone) -> datetime:
    """UTC instant of 00:00 local time on `day`.

    The offset is the one in force on `day` itself, so the result stays right
    across DST changes between `day` and now.
    """
    tz = resolve_zone(zone)
    return datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc)


def compute_boundaries(now_utc: datetime | str, zone) -> PeriodBoundary:
    """Start of today, this week (Sunday based) and this month in `zone`, as UTC instants.

    The week start never precedes the month start: summaries are month scoped,
    so a week that began last month is counted from the 1st.
    """
    tz = resolve_zone(zone)
    try:
        return _boundaries(now_utc, tz)
    except OverflowError:
        # Local calendar not representable at the edges of the datetime range
        _LOGGER.debug("Boundaries for %s overflow in %s, using UTC", now_utc, tz)
        return _boundaries(now_utc, timezone.utc)


def _boundaries(now_utc: datetime | str, tz: tzinfo) -> PeriodBoundary:
    today = local_date(now_utc, tz)
    days_since_sunday = (today.weekday() + 1) % 7
    week_day = today - timedelta(days=min(days_since_sunday, today.day - 1))
    return PeriodBoundary(
        start_of_day=local_midnight(today, tz),
        start_of_week=local_midnight(week_day, tz),
        start_of_month=local_midnight(today.replace(day=1), tz),
    )


def month_range(day: date) -> tuple[date, date]:
    """First and last date of the month containing `day`."""
    first = day.replace(day=1)
    if first.month == 12:
        last = date(first.year + 1, 1, 1) - timedelta(days=1)
    else:
        last = date(first.year, first.month + 1, 1) - timedelta(days=1)
    return first, last


def previous_month_range(day: date) -> tuple[date, date]:
    return month_range(day.replace(day=1) - timedelta(days=1))


# =========================
# Formatting
# =========================
def _localize(instant: datetime | str, zone) -> datetime:
    utc = to_utc(instant)
    try:
        return utc.astimezone(resolve_zone(zone))
    except OverflowError:
        # Within a day of datetime.min/max the local wall clock is not representable
        return utc


def _clock(local: datetime, seconds: bool) -> str:
    hour12 = local.hour % 12 or 12
    suffix = "AM" if local.hour < 12 else "PM"
    if seconds:
        return f"{hour12:02d}:{local.minute:02d}:{local.second:02d} {suffix}"
    return f"{hour12:02d}:{local.minute:02d} {suffix}"


def _calendar(local: datetime) -> str:
    return f"{_MONTH_ABBR[local.month - 1]} {local.day}, {local.year}"


def format_clock_time(instant: datetime | str, zone) -> str:
    """e.g. ``08:00:00 AM``"""
    return _clock(_localize(instant, zone), seconds=True)


def format_calendar_date(instant: datetime | str, zone) -> str:
    """e.g. ``Jan 15, 2024``"""
    return _calendar(_localize(instant, zone))


def format_date_time(instant: datetime | str, zone) -> str:
    """e.g. ``Jan 15, 2024, 08:00 AM``"""
    local = _localize(instant, zone)
    return f"{_calendar(local)}, {_clock(local, seconds=False)}"


# =========================
# Zone catalogue
# =========================
def timezone_info(zone_id: str, now_utc: datetime | None = None) -> TimezoneOption:
    for option in TIMEZONE_OPTIONS:
        if option.value == zone_id:
            return option

    tz = _load_zone(zone_id)
    if tz is None:
        return TimezoneOption(zone_id, zone_id, "Other")
    abbrev = to_utc(now_utc or utc_now()).astimezone(tz).tzname() or zone_id
    return TimezoneOption(zone_id, f"{zone_id.replace('_', ' ', 1)} ({abbrev})", "Other")


def options_by_region(show_all: bool = False) -> dict[str, list[TimezoneOption]]:
    """Catalogue grouped by region, in catalogue order. Only US zones unless `show_all`."""
    grouped: dict[str, list[TimezoneOption]] = {}
    for option in TIMEZONE_OPTIONS:
        if not show_all and option.region != "US":
            continue
        grouped.setdefault(option.region, []).append(option)
    return grouped
