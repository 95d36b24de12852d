# repository.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Callable, List

from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.pool import NullPool
from sqlalchemy import DateTime, text
from sqlmodel import SQLModel, Field, Session, col, create_engine, select

from domain import (
    DAILY_UPDATE_TYPES,
    ActiveShiftError,
    DailyUpdate,
    MileageEntry,
    NoActiveShiftError,
    SourceUnavailableError,
    TimeRecord,
    UserProfile,
)
from timezones import is_valid_timezone, local_date, to_utc, utc_now

_LOGGER = logging.getLogger(__name__)

# Driver messages for a table that was never provisioned (SQLite / Postgres 42P01)
_MISSING_TABLE_MARKERS = ("no such table", "does not exist", "undefinedtable")


class TimeEntryDB(SQLModel, table=True):
    __tablename__ = "time_entries"

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    clock_in: datetime = Field(index=True, sa_type=DateTime(timezone=True))
    clock_out: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
    break_duration: int | None = 0
    manual_entry: bool = False
    notes: str | None = None
    created_at: datetime = Field(sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(sa_type=DateTime(timezone=True))


class MileageEntryDB(SQLModel, table=True):
    __tablename__ = "mileage_entries"

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    trip_date: date = Field(index=True)
    miles: float
    start_location: str | None = None
    end_location: str | None = None
    purpose: str | None = None
    rate_per_mile: float | None = None
    created_at: datetime = Field(sa_type=DateTime(timezone=True))


class DailyUpdateDB(SQLModel, table=True):
    __tablename__ = "daily_updates"

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    update_date: date = Field(index=True)
    update_type: str = "general"
    message: str
    created_at: datetime = Field(sa_type=DateTime(timezone=True))


class UserProfileDB(SQLModel, table=True):
    __tablename__ = "user_profiles"

    user_id: str = Field(primary_key=True)
    first_name: str | None = None
    last_name: str | None = None
    hourly_rate: float | None = None
    timezone: str | None = None
    created_at: datetime = Field(sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(sa_type=DateTime(timezone=True))


def build_engine(db_url: str, echo: bool = False):
    is_sqlite = db_url.startswith("sqlite")
    kwargs = {
        "echo": echo,
        "pool_pre_ping": True,
        "connect_args": {},
    }
    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        # Serverless Postgres (Neon/Supabase): no local pool, short connect timeout
        kwargs["poolclass"] = NullPool
        kwargs["connect_args"] = {"connect_timeout": 10}
        if "sslmode=" not in db_url:
            db_url += ("&" if "?" in db_url else "?") + "sslmode=require"
    return create_engine(db_url, **kwargs)


def _db_time(value: datetime | str) -> datetime:
    """Instants go to the database as aware UTC; SQLite hands them back naive, which `to_utc` reads as UTC."""
    return to_utc(value)


def _to_record(row: TimeEntryDB) -> TimeRecord:
    return TimeRecord(
        start=to_utc(row.clock_in),
        end=to_utc(row.clock_out) if row.clock_out is not None else None,
        break_minutes=row.break_duration if row.break_duration is not None else 0,
        id=row.id,
        notes=row.notes,
    )


def _to_update(row: DailyUpdateDB) -> DailyUpdate:
    return DailyUpdate(
        message=row.message,
        update_date=row.update_date,
        update_type=row.update_type,
        created_at=to_utc(row.created_at),
        id=row.id,
    )


def _to_mileage(row: MileageEntryDB) -> MileageEntry:
    return MileageEntry(
        trip_date=row.trip_date,
        miles=row.miles,
        start_location=row.start_location,
        end_location=row.end_location,
        purpose=row.purpose,
        rate_per_mile=row.rate_per_mile,
        id=row.id,
    )


class TrackerRepository:
    """Time entries, mileage and profiles. In production do NOT fall back to SQLite."""
    def __init__(
        self,
        url: str = "sqlite:///nanny_hours.db",
        echo: bool = False,
        create_tables: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.primary_url = url
        self.clock = clock
        self.engine = build_engine(url, echo=echo)

        # Postgres: validate the connection up front (fail fast)
        if not url.startswith("sqlite"):
            try:
                with self.engine.connect() as conn:
                    conn.execute(text("select 1"))
            except Exception as e:
                raise RuntimeError(f"Could not connect to Postgres: {e}") from e

        if create_tables:
            SQLModel.metadata.create_all(self.engine)

    @contextmanager
    def _session(self):
        try:
            with Session(self.engine) as session:
                yield session
        except (OperationalError, ProgrammingError) as e:
            if any(marker in str(e).lower() for marker in _MISSING_TABLE_MARKERS):
                _LOGGER.warning("Database tables not found - please run database setup")
                raise SourceUnavailableError("Database tables are not set up") from e
            raise

    # ---- time entries -------------------------------------------------

    def _open_row(self, session: Session, user_id: str) -> TimeEntryDB | None:
        return session.exec(
            select(TimeEntryDB)
            .where(TimeEntryDB.user_id == user_id, col(TimeEntryDB.clock_out).is_(None))
            .order_by(col(TimeEntryDB.created_at).desc(), col(TimeEntryDB.id).desc())
        ).first()

    def active_entry(self, user_id: str) -> TimeRecord | None:
        with self._session() as session:
            row = self._open_row(session, user_id)
            return _to_record(row) if row else None

    def clock_in(self, user_id: str) -> TimeRecord:
        now = _db_time(self.clock())
        with self._session() as session:
            if self._open_row(session, user_id) is not None:
                raise ActiveShiftError(f"User {user_id} is already clocked in")
            row = TimeEntryDB(user_id=user_id, clock_in=now, created_at=now, updated_at=now)
            session.add(row)
            session.commit()
            session.refresh(row)
            _LOGGER.info("User %s clocked in (entry %s)", user_id, row.id)
            return _to_record(row)

    def clock_out(self, user_id: str, break_minutes: int = 0) -> TimeRecord:
        if break_minutes < 0:
            raise ValueError("break_minutes cannot be negative")
        now = _db_time(self.clock())
        with self._session() as session:
            row = self._open_row(session, user_id)
            if row is None:
                raise NoActiveShiftError(f"User {user_id} has no open shift")
            row.clock_out = now
            row.break_duration = int(break_minutes)
            row.updated_at = now
            session.add(row)
            session.commit()
            session.refresh(row)
            _LOGGER.info("User %s clocked out (entry %s)", user_id, row.id)
            return _to_record(row)

    def add_manual_entry(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        break_minutes: int = 0,
        notes: str | None = None,
    ) -> TimeRecord:
        if to_utc(end) < to_utc(start):
            raise ValueError("end must not be before start")
        if break_minutes < 0:
            raise ValueError("break_minutes cannot be negative")
        now = _db_time(self.clock())
        with self._session() as session:
            row = TimeEntryDB(
                user_id=user_id,
                clock_in=_db_time(start),
                clock_out=_db_time(end),
                break_duration=int(break_minutes),
                manual_entry=True,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_record(row)

    def fetch_closed_time_records(self, user_id: str, since_utc: datetime) -> List[TimeRecord]:
        with self._session() as session:
            rows = session.exec(
                select(TimeEntryDB).where(
                    TimeEntryDB.user_id == user_id,
                    col(TimeEntryDB.clock_out).is_not(None),
                    TimeEntryDB.clock_in >= _db_time(since_utc),
                )
            ).all()
            return [_to_record(r) for r in rows]

    def list_entries(self, user_id: str, since_utc: datetime, until_utc: datetime | None = None) -> List[TimeRecord]:
        """Open and closed entries started in [since, until), newest first."""
        with self._session() as session:
            stmt = select(TimeEntryDB).where(
                TimeEntryDB.user_id == user_id,
                TimeEntryDB.clock_in >= _db_time(since_utc),
            )
            if until_utc is not None:
                stmt = stmt.where(TimeEntryDB.clock_in < _db_time(until_utc))
            rows = session.exec(
                stmt.order_by(col(TimeEntryDB.clock_in).desc(), col(TimeEntryDB.id).desc())
            ).all()
            return [_to_record(r) for r in rows]

    # ---- mileage ------------------------------------------------------

    def add_mileage(self, user_id: str, entry: MileageEntry) -> MileageEntry:
        if entry.miles is None or float(entry.miles) <= 0:
            raise ValueError("miles must be greater than zero")
        with self._session() as session:
            row = MileageEntryDB(
                user_id=user_id,
                trip_date=entry.trip_date,
                miles=float(entry.miles),
                start_location=entry.start_location or None,
                end_location=entry.end_location or None,
                purpose=entry.purpose or None,
                rate_per_mile=entry.rate_per_mile,
                created_at=_db_time(self.clock()),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_mileage(row)

    def recent_mileage(self, user_id: str, limit: int = 10) -> List[MileageEntry]:
        with self._session() as session:
            rows = session.exec(
                select(MileageEntryDB)
                .where(MileageEntryDB.user_id == user_id)
                .order_by(col(MileageEntryDB.trip_date).desc(), col(MileageEntryDB.id).desc())
                .limit(limit)
            ).all()
            return [_to_mileage(r) for r in rows]

    def mileage_between(self, user_id: str, first: date, last: date) -> List[MileageEntry]:
        with self._session() as session:
            rows = session.exec(
                select(MileageEntryDB).where(
                    MileageEntryDB.user_id == user_id,
                    MileageEntryDB.trip_date >= first,
                    MileageEntryDB.trip_date <= last,
                )
            ).all()
            return [_to_mileage(r) for r in rows]

    # ---- daily updates ------------------------------------------------

    def add_daily_update(self, user_id: str, message: str, update_type: str = "general", zone=None) -> DailyUpdate:
        """Stores an update under today's date on the wall clock of `zone`."""
        message = (message or "").strip()
        if not message:
            raise ValueError("Please add a message to share an update.")
        if update_type not in DAILY_UPDATE_TYPES:
            raise ValueError(f"Unknown update type: {update_type}")
        now = _db_time(self.clock())
        with self._session() as session:
            row = DailyUpdateDB(
                user_id=user_id,
                update_date=local_date(now, zone),
                update_type=update_type,
                message=message,
                created_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_update(row)

    def list_daily_updates(self, user_id: str, on_date: date) -> List[DailyUpdate]:
        """Updates of one local date, newest first."""
        with self._session() as session:
            rows = session.exec(
                select(DailyUpdateDB)
                .where(DailyUpdateDB.user_id == user_id, DailyUpdateDB.update_date == on_date)
                .order_by(col(DailyUpdateDB.created_at).desc(), col(DailyUpdateDB.id).desc())
            ).all()
            return [_to_update(r) for r in rows]

    def daily_updates_by_date(self, user_id: str, since: date) -> dict[date, List[DailyUpdate]]:
        """Updates from `since` on, grouped by local date (newest date first)."""
        with self._session() as session:
            rows = session.exec(
                select(DailyUpdateDB)
                .where(DailyUpdateDB.user_id == user_id, DailyUpdateDB.update_date >= since)
                .order_by(
                    col(DailyUpdateDB.update_date).desc(),
                    col(DailyUpdateDB.created_at).desc(),
                    col(DailyUpdateDB.id).desc(),
                )
            ).all()
            grouped: dict[date, List[DailyUpdate]] = {}
            for r in rows:
                grouped.setdefault(r.update_date, []).append(_to_update(r))
            return grouped

    def delete_daily_update(self, user_id: str, update_id: int) -> bool:
        with self._session() as session:
            row = session.get(DailyUpdateDB, update_id)
            if row is None or row.user_id != user_id:
                return False
            session.delete(row)
            session.commit()
            return True

    # ---- profiles -----------------------------------------------------

    def get_profile(self, user_id: str) -> UserProfile | None:
        with self._session() as session:
            row = session.get(UserProfileDB, user_id)
            if row is None:
                return None
            return UserProfile(
                user_id=row.user_id,
                first_name=row.first_name,
                last_name=row.last_name,
                hourly_rate=row.hourly_rate,
                timezone=row.timezone,
            )

    def save_profile(self, profile: UserProfile) -> UserProfile:
        if profile.timezone and not is_valid_timezone(profile.timezone):
            raise ValueError(f"Unknown time zone: {profile.timezone}")
        if profile.hourly_rate is not None and profile.hourly_rate < 0:
            raise ValueError("hourly_rate cannot be negative")
        now = _db_time(self.clock())
        with self._session() as session:
            row = session.get(UserProfileDB, profile.user_id)
            if row is None:
                row = UserProfileDB(user_id=profile.user_id, created_at=now, updated_at=now)
            row.first_name = profile.first_name
            row.last_name = profile.last_name
            row.hourly_rate = profile.hourly_rate
            row.timezone = profile.timezone
            row.updated_at = now
            session.add(row)
            session.commit()
        return profile

    def fetch_user_zone(self, user_id: str) -> str | None:
        profile = self.get_profile(user_id)
        return profile.timezone if profile else None


__all__ = [
    "DailyUpdateDB",
    "MileageEntryDB",
    "TimeEntryDB",
    "TrackerRepository",
    "UserProfileDB",
    "build_engine",
]
