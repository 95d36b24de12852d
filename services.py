# services.py
from __future__ import annotations

import logging
import math
import numbers
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable

from domain import (
    MalformedRecordError,
    MileageEntry,
    MileageSummary,
    MileageTotals,
    PeriodBoundary,
    PeriodSummary,
    TimeRecord,
)
from timezones import local_date, month_range, previous_month_range, to_utc

_LOGGER = logging.getLogger(__name__)

IRS_RATE_PER_MILE = 0.67


class WorkHoursCalculator:
    """Business rules for worked time, period totals and overtime."""
    def __init__(self, weekly_threshold_hours: float = 40.0, skew_tolerance_seconds: int = 60):
        self.weekly_threshold_hours = weekly_threshold_hours
        self.skew_tolerance_seconds = skew_tolerance_seconds

    @staticmethod
    def elapsed_seconds(start: datetime | str, end: datetime | str) -> int:
        """Whole seconds from `start` to `end`, 0 if `end` is before `start`."""
        delta = to_utc(end) - to_utc(start)
        return max(0, delta // timedelta(seconds=1))

    @staticmethod
    def break_seconds(break_minutes) -> int:
        if break_minutes is None:
            return 0
        if isinstance(break_minutes, bool) or not isinstance(break_minutes, (numbers.Real, Decimal)):
            raise MalformedRecordError(f"break_minutes must be a number, got {break_minutes!r}")
        try:
            seconds = float(break_minutes) * 60
        except OverflowError as e:
            raise MalformedRecordError(f"break_minutes out of range: {break_minutes!r}") from e
        if not math.isfinite(seconds):
            raise MalformedRecordError(f"break_minutes is not finite: {break_minutes!r}")
        return int(round(max(0.0, seconds)))

    def worked_seconds(self, record: TimeRecord, now_utc: datetime) -> int:
        """Worked time of one shift. Open shifts run up to `now_utc` and have no break yet."""
        if record.end is None:
            return self.elapsed_seconds(record.start, now_utc)
        worked = self.elapsed_seconds(record.start, record.end) - self.break_seconds(record.break_minutes)
        return max(0, worked)

    def validate(self, record: TimeRecord) -> None:
        if record.start is None:
            raise MalformedRecordError("record has no start")
        if record.end is not None:
            skew = (to_utc(record.start) - to_utc(record.end)).total_seconds()
            if skew > self.skew_tolerance_seconds:
                raise MalformedRecordError(f"record ends {skew:.0f}s before it starts")
        self.break_seconds(record.break_minutes)

    def closed_records(self, records: Iterable[TimeRecord]) -> list[TimeRecord]:
        """Closed records that pass `validate`; the rest are logged and dropped."""
        kept = []
        for record in records:
            if record.end is None:
                continue
            try:
                self.validate(record)
            except (MalformedRecordError, TypeError, ValueError, OverflowError) as e:
                _LOGGER.warning("Skipping time record %s: %s", record.id, e)
                continue
            kept.append(record)
        return kept

    def summarize(
        self,
        records: Iterable[TimeRecord],
        boundary: PeriodBoundary,
        now_utc: datetime,
        zone,
    ) -> PeriodSummary:
        """
        Folds closed records into today / week / month totals.
        Records are classified by the local date of their start in `zone`;
        open shifts are left to the live display.
        """
        today = local_date(boundary.start_of_day, zone)
        week_start = local_date(boundary.start_of_week, zone)

        today_s = week_s = month_s = 0
        for record in self.closed_records(records):
            try:
                worked = self.worked_seconds(record, now_utc)
                started_on = local_date(record.start, zone)
            except (MalformedRecordError, TypeError, ValueError, OverflowError) as e:
                _LOGGER.warning("Skipping time record %s: %s", record.id, e)
                continue

            if started_on == today:
                today_s += worked
            if started_on >= week_start:
                week_s += worked
            month_s += worked

        threshold = int(self.weekly_threshold_hours * 3600)
        return PeriodSummary(
            today_seconds=today_s,
            week_seconds=week_s,
            month_seconds=month_s,
            overtime_seconds=max(0, week_s - threshold),
        )

    @staticmethod
    def estimated_earnings(seconds: int, hourly_rate: float | None) -> float:
        if not hourly_rate:
            return 0.0
        return round(max(0, seconds) / 3600.0 * float(hourly_rate), 2)


class MileageCalculator:
    """Reimbursement for logged trips."""
    def __init__(self, default_rate: float = IRS_RATE_PER_MILE):
        self.default_rate = default_rate

    def reimbursement(self, miles: float, rate: float | None = None) -> float:
        rate = self.default_rate if rate is None else rate
        return round(float(miles) * float(rate), 2)

    def totals(self, entries: Iterable[MileageEntry]) -> MileageTotals:
        miles = 0.0
        money = 0.0
        for e in entries:
            miles += float(e.miles)
            money += self.reimbursement(e.miles, e.rate_per_mile)
        return MileageTotals(miles=round(miles, 2), reimbursement=round(money, 2))

    def summarize(self, entries: Iterable[MileageEntry], today: date) -> MileageSummary:
        """Splits trips into the month of `today` and the month before it."""
        this_first, this_last = month_range(today)
        prev_first, prev_last = previous_month_range(today)
        entries = list(entries)
        return MileageSummary(
            this_month=self.totals(e for e in entries if this_first <= e.trip_date <= this_last),
            last_month=self.totals(e for e in entries if prev_first <= e.trip_date <= prev_last),
        )
