# utils.py
from __future__ import annotations

from datetime import datetime
from typing import Iterable

import pandas as pd

from domain import MileageEntry, TimeRecord
from services import MileageCalculator, WorkHoursCalculator
from timezones import format_calendar_date, format_clock_time


def format_elapsed(seconds: int) -> str:
    """Live tracker display, e.g. 3661 -> ``01:01:01``."""
    seconds = max(0, int(seconds))
    h, rest = divmod(seconds, 3600)
    m, s = divmod(rest, 60)
    return f"{h:02d}:{m:02d}:{s:02d}"


def format_hours(seconds: int) -> str:
    return f"{max(0, seconds) / 3600.0:.1f}h"


def format_shift_length(seconds: int) -> str:
    seconds = max(0, int(seconds))
    h, rest = divmod(seconds, 3600)
    return f"{h}h {rest // 60}m"


def usd(x: float) -> str:
    return f"${x:,.2f}"


def entries_to_dataframe(
    records: Iterable[TimeRecord],
    zone,
    now_utc: datetime,
    calculator: WorkHoursCalculator | None = None,
) -> pd.DataFrame:
    calc = calculator or WorkHoursCalculator()
    rows = []
    for r in records:
        worked = calc.worked_seconds(r, now_utc)
        rows.append({
            "Date": format_calendar_date(r.start, zone),
            "Clock In": format_clock_time(r.start, zone),
            "Clock Out": format_clock_time(r.end, zone) if r.end is not None else "In progress",
            "Break (min)": int(r.break_minutes or 0),
            "Hours": round(worked / 3600.0, 2),
            "Notes": r.notes or "",
            "_start": r.start,
        })
    df = pd.DataFrame(rows)
    if not df.empty:
        df = df.sort_values(["_start"], ascending=False).drop(columns=["_start"]).reset_index(drop=True)
    return df


def mileage_to_dataframe(entries: Iterable[MileageEntry], calculator: MileageCalculator | None = None) -> pd.DataFrame:
    calc = calculator or MileageCalculator()
    rows = []
    for e in entries:
        rows.append({
            "Date": e.trip_date.isoformat(),
            "Miles": round(float(e.miles), 1),
            "Route": " → ".join(p for p in (e.start_location, e.end_location) if p),
            "Purpose": e.purpose or "",
            "Reimbursement": usd(calc.reimbursement(e.miles, e.rate_per_mile)),
        })
    df = pd.DataFrame(rows)
    if not df.empty:
        df = df.sort_values(["Date"], ascending=False).reset_index(drop=True)
    return df
