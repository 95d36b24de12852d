from datetime import date, datetime, timedelta, timezone

import pytest

from domain import (
    ActiveShiftError,
    DailyUpdate,
    MileageEntry,
    NoActiveShiftError,
    PeriodSummary,
    SourceUnavailableError,
    UserProfile,
)
from repository import DailyUpdateDB, MileageEntryDB, TimeEntryDB, TrackerRepository, UserProfileDB
from timezones import compute_boundaries

UTC = timezone.utc
NY = "America/New_York"
USER = "ana@example.com"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


# ---- shift lifecycle ----------------------------------------------------

def test_clock_in_and_out(repo, clock, calc):
    assert repo.active_entry(USER) is None

    opened = repo.clock_in(USER)
    assert opened.start == utc(2024, 1, 15, 13)
    assert opened.is_open
    assert repo.active_entry(USER).id == opened.id

    clock.advance(hours=8, minutes=30)
    closed = repo.clock_out(USER, break_minutes=30)
    assert closed.id == opened.id
    assert closed.end == utc(2024, 1, 15, 21, 30)
    assert closed.break_minutes == 30
    assert calc.worked_seconds(closed, clock()) == 28800
    assert repo.active_entry(USER) is None


def test_second_clock_in_is_rejected(repo, clock):
    repo.clock_in(USER)
    clock.advance(minutes=5)
    with pytest.raises(ActiveShiftError):
        repo.clock_in(USER)
    assert len(repo.list_entries(USER, utc(2024, 1, 1))) == 1


def test_clock_in_is_per_user(repo):
    repo.clock_in(USER)
    repo.clock_in("other@example.com")
    assert repo.active_entry("other@example.com") is not None


def test_clock_out_without_open_shift(repo):
    with pytest.raises(NoActiveShiftError):
        repo.clock_out(USER)


def test_clock_out_rejects_negative_break(repo):
    repo.clock_in(USER)
    with pytest.raises(ValueError):
        repo.clock_out(USER, break_minutes=-5)


def test_fetch_closed_records_since(repo, clock):
    repo.add_manual_entry(USER, utc(2023, 12, 30, 14), utc(2023, 12, 30, 20))
    repo.add_manual_entry(USER, utc(2024, 1, 10, 14), utc(2024, 1, 10, 20), break_minutes=15, notes="park")
    repo.add_manual_entry("other@example.com", utc(2024, 1, 10, 14), utc(2024, 1, 10, 20))
    repo.clock_in(USER)

    records = repo.fetch_closed_time_records(USER, utc(2024, 1, 1, 5))
    assert len(records) == 1
    assert records[0].start == utc(2024, 1, 10, 14)
    assert records[0].end == utc(2024, 1, 10, 20)
    assert records[0].break_minutes == 15
    assert records[0].notes == "park"


def test_manual_entry_accepts_local_times(repo):
    start = datetime(2024, 1, 10, 8, tzinfo=timezone(timedelta(hours=-5)))
    record = repo.add_manual_entry(USER, start, start + timedelta(hours=4))
    assert record.start == utc(2024, 1, 10, 13)


def test_manual_entry_validation(repo):
    with pytest.raises(ValueError):
        repo.add_manual_entry(USER, utc(2024, 1, 10, 20), utc(2024, 1, 10, 14))
    with pytest.raises(ValueError):
        repo.add_manual_entry(USER, utc(2024, 1, 10, 14), utc(2024, 1, 10, 20), break_minutes=-1)


def test_list_entries_newest_first_including_open(repo):
    repo.add_manual_entry(USER, utc(2024, 1, 10, 14), utc(2024, 1, 10, 20))
    repo.add_manual_entry(USER, utc(2024, 1, 12, 14), utc(2024, 1, 12, 20))
    repo.clock_in(USER)
    entries = repo.list_entries(USER, utc(2024, 1, 1))
    assert [e.start.day for e in entries] == [15, 12, 10]
    assert entries[0].is_open
    assert len(repo.list_entries(USER, utc(2024, 1, 1), until_utc=utc(2024, 1, 11))) == 1


def test_summary_from_repository(repo, clock, calc):
    repo.add_manual_entry(USER, utc(2024, 1, 15, 13), utc(2024, 1, 15, 21, 30), break_minutes=30)
    now = utc(2024, 1, 15, 23)
    boundary = compute_boundaries(now, NY)
    records = repo.fetch_closed_time_records(USER, boundary.start_of_month)
    assert calc.summarize(records, boundary, now, NY) == PeriodSummary(28800, 28800, 28800, 0)



def test_instant_columns_are_timezone_aware():
    for column in (
        TimeEntryDB.__table__.c.clock_in,
        TimeEntryDB.__table__.c.clock_out,
        TimeEntryDB.__table__.c.created_at,
        TimeEntryDB.__table__.c.updated_at,
        MileageEntryDB.__table__.c.created_at,
        UserProfileDB.__table__.c.created_at,
        UserProfileDB.__table__.c.updated_at,
        DailyUpdateDB.__table__.c.created_at,
    ):
        assert column.type.timezone is True, column.name


def test_instants_come_back_as_aware_utc(repo, clock):
    local_start = datetime(2024, 1, 10, 8, tzinfo=timezone(timedelta(hours=-5)))
    repo.add_manual_entry(USER, local_start, local_start + timedelta(hours=6))
    repo.clock_in(USER)
    clock.advance(hours=1)
    repo.clock_out(USER)

    records = sorted(repo.fetch_closed_time_records(USER, utc(2024, 1, 1)), key=lambda r: r.start)
    assert [r.start for r in records] == [utc(2024, 1, 10, 13), utc(2024, 1, 15, 13)]
    assert [r.end for r in records] == [utc(2024, 1, 10, 19), utc(2024, 1, 15, 14)]
    for r in records:
        assert r.start.utcoffset() == timedelta(0)
        assert r.end.utcoffset() == timedelta(0)

# ---- store not provisioned ----------------------------------------------

def test_missing_tables_report_source_unavailable(tmp_path, calc):
    repo = TrackerRepository(f"sqlite:///{(tmp_path / 'empty.db').as_posix()}", create_tables=False)
    with pytest.raises(SourceUnavailableError):
        repo.fetch_closed_time_records(USER, utc(2024, 1, 1))
    with pytest.raises(SourceUnavailableError):
        repo.get_profile(USER)

    now = utc(2024, 1, 15, 23)
    assert calc.summarize([], compute_boundaries(now, NY), now, NY) == PeriodSummary()


# ---- profiles -----------------------------------------------------------

def test_profile_round_trip(repo):
    assert repo.get_profile(USER) is None
    assert repo.fetch_user_zone(USER) is None

    repo.save_profile(UserProfile(user_id=USER, first_name="Ana", hourly_rate=22.5, timezone="America/Chicago"))
    profile = repo.get_profile(USER)
    assert profile.display_name == "Ana"
    assert profile.hourly_rate == 22.5
    assert repo.fetch_user_zone(USER) == "America/Chicago"

    repo.save_profile(UserProfile(user_id=USER, first_name="Ana", last_name="Ruiz", timezone="Europe/Madrid"))
    assert repo.get_profile(USER).display_name == "Ana Ruiz"
    assert repo.fetch_user_zone(USER) == "Europe/Madrid"


def test_profile_rejects_unknown_zone(repo):
    with pytest.raises(ValueError):
        repo.save_profile(UserProfile(user_id=USER, timezone="Mars/Base"))
    with pytest.raises(ValueError):
        repo.save_profile(UserProfile(user_id=USER, hourly_rate=-1))


# ---- mileage ------------------------------------------------------------

def test_mileage(repo):
    repo.add_mileage(USER, MileageEntry(trip_date=date(2024, 2, 28), miles=12.5, purpose="Zoo", rate_per_mile=0.67))
    repo.add_mileage(USER, MileageEntry(trip_date=date(2024, 3, 2), miles=4, start_location="Home", end_location="School"))
    repo.add_mileage("other@example.com", MileageEntry(trip_date=date(2024, 3, 2), miles=40))

    recent = repo.recent_mileage(USER)
    assert [e.trip_date for e in recent] == [date(2024, 3, 2), date(2024, 2, 28)]
    assert recent[0].start_location == "Home"
    assert recent[1].purpose == "Zoo"
    assert len(repo.recent_mileage(USER, limit=1)) == 1

    march = repo.mileage_between(USER, date(2024, 3, 1), date(2024, 3, 31))
    assert [e.miles for e in march] == [4]


def test_mileage_requires_positive_miles(repo):
    with pytest.raises(ValueError):
        repo.add_mileage(USER, MileageEntry(trip_date=date(2024, 3, 2), miles=0))


# ---- daily updates ------------------------------------------------------

def test_daily_update_is_filed_under_local_date(repo, clock):
    clock.now = utc(2024, 1, 16, 3)  # Jan 15, 22:00 EST
    update = repo.add_daily_update(USER, "  Read two books before bed  ", "activity", NY)
    assert update.update_date == date(2024, 1, 15)
    assert update.message == "Read two books before bed"
    assert update.created_at == utc(2024, 1, 16, 3)
    assert update.label == "🎨 Activity"

    assert repo.list_daily_updates(USER, date(2024, 1, 15)) == [update]
    assert repo.list_daily_updates(USER, date(2024, 1, 16)) == []

    tokyo = repo.add_daily_update(USER, "Lunch", "meal", "Asia/Tokyo")
    assert tokyo.update_date == date(2024, 1, 16)


def test_daily_update_unknown_zone_uses_default(repo, clock):
    clock.now = utc(2024, 1, 16, 3)
    assert repo.add_daily_update(USER, "Nap", "nap", "Not/A_Zone").update_date == date(2024, 1, 15)


def test_daily_update_validation(repo):
    with pytest.raises(ValueError):
        repo.add_daily_update(USER, "   ", zone=NY)
    with pytest.raises(ValueError):
        repo.add_daily_update(USER, "Park", "party", NY)
    assert repo.list_daily_updates(USER, date(2024, 1, 15)) == []


def test_daily_updates_newest_first_and_per_user(repo, clock):
    repo.add_daily_update(USER, "Breakfast", "meal", NY)
    clock.advance(hours=2)
    repo.add_daily_update(USER, "First steps!", "milestone", NY)
    repo.add_daily_update("other@example.com", "Playground", "activity", NY)

    updates = repo.list_daily_updates(USER, date(2024, 1, 15))
    assert [u.message for u in updates] == ["First steps!", "Breakfast"]
    assert all(isinstance(u, DailyUpdate) for u in updates)
    assert updates[0].created_at == utc(2024, 1, 15, 15)


def test_daily_updates_grouped_by_local_date(repo, clock):
    repo.add_daily_update(USER, "Monday", zone=NY)
    clock.now = utc(2024, 1, 17, 4)  # Jan 16, 23:00 EST
    repo.add_daily_update(USER, "Tuesday night", "concern", NY)
    clock.now = utc(2024, 1, 17, 14)
    repo.add_daily_update(USER, "Wednesday", zone=NY)

    grouped = repo.daily_updates_by_date(USER, date(2024, 1, 16))
    assert list(grouped) == [date(2024, 1, 17), date(2024, 1, 16)]
    assert [u.message for u in grouped[date(2024, 1, 16)]] == ["Tuesday night"]


def test_delete_daily_update_only_own(repo):
    update = repo.add_daily_update(USER, "Bath time", zone=NY)
    assert repo.delete_daily_update("other@example.com", update.id) is False
    assert repo.delete_daily_update(USER, update.id) is True
    assert repo.delete_daily_update(USER, update.id) is False
    assert repo.list_daily_updates(USER, date(2024, 1, 15)) == []
