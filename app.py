# app.py
# -----------------------------------------------
# ⏱️ Nanny hours: time, mileage and pay tracker (Streamlit)
# -----------------------------------------------
# Requires: streamlit, sqlmodel, pandas, reportlab, psycopg2-binary (for Postgres)
# All instants are stored in UTC; "today / this week / this month" follow the user's time zone.

import logging
import os
from pathlib import Path

import streamlit as st

from domain import (
    DAILY_UPDATE_TYPES,
    ActiveShiftError,
    MileageEntry,
    NoActiveShiftError,
    SourceUnavailableError,
    UserProfile,
)
from repository import TrackerRepository
from reports import timesheet_pdf
from services import IRS_RATE_PER_MILE, MileageCalculator, WorkHoursCalculator
import timezones
from timezones import (
    compute_boundaries,
    detected_timezone,
    format_clock_time,
    format_date_time,
    local_date,
    month_range,
    options_by_region,
    previous_month_range,
    timezone_info,
    utc_now,
)
from utils import (
    entries_to_dataframe,
    format_elapsed,
    format_hours,
    format_shift_length,
    mileage_to_dataframe,
    usd,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
_LOGGER = logging.getLogger("app")

# =========================
# Persistence per environment (local SQLite fallback for development only)
# =========================
def _pick_data_dir() -> Path:
    candidates = []
    env = os.getenv("DATA_DIR")
    if env:
        candidates.append(Path(env))
    candidates += [Path("/data"), Path.cwd() / "data"]

    for p in candidates:
        try:
            p.mkdir(parents=True, exist_ok=True)
            t = p / ".rwtest"
            t.write_text("ok")
            t.unlink(missing_ok=True)
            return p
        except OSError:
            _LOGGER.debug("Data dir %s is not writable", p)
    return Path.cwd()

DATA_DIR = _pick_data_dir()
DEFAULT_SQLITE = f"sqlite:///{(DATA_DIR / 'nanny_hours.db').as_posix()}"
DB_URL = os.getenv("DATABASE_URL", DEFAULT_SQLITE)
# Hosted Postgres is provisioned by a setup script; locally the app creates its own tables
CREATE_TABLES = os.getenv("CREATE_TABLES", "1" if DB_URL.startswith("sqlite") else "0") == "1"

# Hosting (Render / HF Spaces / Streamlit Cloud) requires Postgres
if ("RENDER" in os.environ or "SPACE_ID" in os.environ or os.getenv("STREAMLIT_RUNTIME") == "cloud"):
    if DB_URL.startswith("sqlite"):
        st.error("DATABASE_URL (Postgres) is missing. Set the environment variable on your host.")

@st.cache_resource
def get_repo(url: str, create_tables: bool):
    return TrackerRepository(url, echo=False, create_tables=create_tables)

repo = get_repo(DB_URL, CREATE_TABLES)
calc = WorkHoursCalculator()
mileage_calc = MileageCalculator()

APP_TITLE = "Nanny Hours"

# =========================
# Page setup
# =========================
st.set_page_config(page_title=APP_TITLE, page_icon="⏱️", layout="centered")
st.title(f"⏱️ {APP_TITLE}")

def database_setup_notice():
    st.warning(
        "The database tables have not been set up yet. Run the setup script against your "
        "database (or start the app with CREATE_TABLES=1) and reload.",
        icon="🛠️",
    )

def _flash_success_if_any():
    msg = st.session_state.pop("_flash_success", None)
    if msg:
        st.success(msg)

# =========================
# Sign-in
# =========================
user_id = st.sidebar.text_input("Email", key="user_id").strip().lower()
if not user_id:
    st.info("Enter your email in the sidebar to get started.")
    st.stop()

try:
    profile = repo.get_profile(user_id) or UserProfile(user_id=user_id)
except SourceUnavailableError:
    database_setup_notice()
    st.stop()

zone_id = profile.timezone or timezones.DEFAULT_TIMEZONE
now = utc_now()
st.sidebar.caption(f"Signed in as **{profile.display_name}**")
st.sidebar.caption(f"{timezone_info(zone_id, now).label} · {format_date_time(now, zone_id)}")

_flash_success_if_any()

# =========================
# 👤 Profile
# =========================
with st.expander("👤 Profile", expanded=profile.timezone is None):
    first_name = st.text_input("First name", value=profile.first_name or "")
    last_name = st.text_input("Last name", value=profile.last_name or "")
    hourly_rate = st.number_input("Hourly rate ($)", min_value=0.0, step=0.5, value=float(profile.hourly_rate or 0.0))

    show_all = st.checkbox("Show all time zones", value=zone_id not in {o.value for o in options_by_region()})
    values = [o.value for opts in options_by_region(show_all).values() for o in opts]
    if zone_id not in values:
        values.insert(0, zone_id)
    picked = st.selectbox(
        "Time zone",
        options=values,
        index=values.index(zone_id),
        format_func=lambda v: f"{timezone_info(v, now).region} · {timezone_info(v, now).label}",
    )
    st.caption(f"Current time in this zone: **{format_clock_time(now, picked)}**")

    detected = detected_timezone()
    if detected != picked:
        st.caption(f"Detected time zone: {timezone_info(detected, now).label} ({format_clock_time(now, detected)})")

    if st.button("Save profile", use_container_width=True):
        try:
            repo.save_profile(UserProfile(
                user_id=user_id,
                first_name=first_name.strip() or None,
                last_name=last_name.strip() or None,
                hourly_rate=hourly_rate or None,
                timezone=picked,
            ))
        except ValueError as e:
            st.error(str(e))
        else:
            st.session_state["_flash_success"] = "Profile saved."
            st.rerun()

# =========================
# ⏱️ Time tracker
# =========================
st.subheader("⏱️ Time tracker")

@st.fragment(run_every=1)
def live_elapsed(start):
    st.markdown(f"## `{format_elapsed(calc.elapsed_seconds(start, utc_now()))}`")

active = repo.active_entry(user_id)
if active is None:
    st.caption("Ready to start your shift.")
    if st.button("▶️ Clock in", use_container_width=True, type="primary"):
        try:
            repo.clock_in(user_id)
        except ActiveShiftError:
            st.warning("You are already clocked in.")
        else:
            st.session_state["_flash_success"] = "Clocked in. Your shift has started."
            st.rerun()
else:
    live_elapsed(active.start)
    st.caption(f"Started at {format_clock_time(active.start, zone_id)}")
    break_min = st.number_input("Break (min)", min_value=0, step=5, value=0, key="break_minutes")
    if st.button("⏹️ Clock out", use_container_width=True):
        try:
            closed = repo.clock_out(user_id, break_minutes=int(break_min))
        except NoActiveShiftError:
            st.warning("No open shift to close.")
        else:
            worked = calc.worked_seconds(closed, utc_now())
            st.session_state["_flash_success"] = f"Clocked out. Shift completed: {format_shift_length(worked)}"
            st.rerun()

# =========================
# 📈 Time summary
# =========================
st.subheader("📈 Time summary")
boundary = compute_boundaries(now, zone_id)
try:
    records = repo.fetch_closed_time_records(user_id, boundary.start_of_month)
except SourceUnavailableError:
    database_setup_notice()
    records = []
summary = calc.summarize(records, boundary, now, zone_id)

c1, c2, c3, c4 = st.columns(4)
c1.metric("Today", format_hours(summary.today_seconds))
c2.metric("This week", format_hours(summary.week_seconds))
c3.metric("This month", format_hours(summary.month_seconds))
c4.metric("Overtime", format_hours(summary.overtime_seconds))
if profile.hourly_rate:
    st.caption(
        f"Estimated pay this week: {usd(calc.estimated_earnings(summary.week_seconds, profile.hourly_rate))} · "
        f"this month: {usd(calc.estimated_earnings(summary.month_seconds, profile.hourly_rate))}"
    )

# =========================
# 🗓️ This month
# =========================
st.subheader("🗓️ This month")
entries = repo.list_entries(user_id, boundary.start_of_month)
if not entries:
    st.info("No shifts recorded this month.")
else:
    st.dataframe(entries_to_dataframe(entries, zone_id, now, calc), use_container_width=True, hide_index=True)

today_local = local_date(now, zone_id)
month_label = today_local.strftime("%B %Y")
pdf_bytes = timesheet_pdf(entries, zone_id, f"{APP_TITLE} - {profile.display_name} - {month_label}", now, profile.hourly_rate, calc)
st.download_button(
    "Download timesheet (PDF)",
    data=pdf_bytes,
    file_name=f"timesheet_{today_local:%Y-%m}.pdf",
    mime="application/pdf",
    use_container_width=True,
)

# =========================
# 🚗 Mileage
# =========================
st.subheader("🚗 Mileage")
with st.form("mileage_form", clear_on_submit=True):
    trip_date = st.date_input("Date", value=today_local, max_value=today_local)
    miles = st.number_input("Miles", min_value=0.0, step=0.1)
    start_location = st.text_input("From")
    end_location = st.text_input("To")
    purpose = st.text_input("Purpose", placeholder="School pickup, activities...")
    submitted = st.form_submit_button("Log mileage", use_container_width=True)

if submitted:
    try:
        repo.add_mileage(user_id, MileageEntry(
            trip_date=trip_date,
            miles=miles,
            start_location=start_location.strip(),
            end_location=end_location.strip(),
            purpose=purpose.strip(),
            rate_per_mile=IRS_RATE_PER_MILE,
        ))
    except ValueError as e:
        st.warning(str(e))
    else:
        st.toast(f"{miles:.1f} miles added.", icon="✅")

recent = repo.recent_mileage(user_id)
if recent:
    st.dataframe(mileage_to_dataframe(recent, mileage_calc), use_container_width=True, hide_index=True)

prev_first, _ = previous_month_range(today_local)
_, this_last = month_range(today_local)
mileage = mileage_calc.summarize(repo.mileage_between(user_id, prev_first, this_last), today_local)
m1, m2 = st.columns(2)
m1.metric("Miles this month", f"{mileage.this_month.miles:.1f}", help=f"Last month: {mileage.last_month.miles:.1f}")
m2.metric("Reimbursement this month", usd(mileage.this_month.reimbursement), help=f"Last month: {usd(mileage.last_month.reimbursement)}")

# =========================
# 📝 Daily updates
# =========================
st.subheader("📝 Daily updates")
with st.form("daily_update_form", clear_on_submit=True):
    update_type = st.selectbox(
        "Update type",
        options=list(DAILY_UPDATE_TYPES),
        format_func=lambda v: f"{DAILY_UPDATE_TYPES[v][1]} {DAILY_UPDATE_TYPES[v][0]}",
    )
    message = st.text_area("Message", placeholder="Share what happened today...")
    shared = st.form_submit_button("Share update", use_container_width=True)

if shared:
    try:
        repo.add_daily_update(user_id, message, update_type, zone_id)
    except ValueError as e:
        st.warning(str(e))
    else:
        st.toast("Update shared.", icon="✅")

feed_day = st.date_input("Updates for", value=today_local, max_value=today_local, key="feed_day")
updates = repo.list_daily_updates(user_id, feed_day)
if not updates:
    st.caption("No updates for this day yet.")
for u in updates:
    with st.container(border=True):
        head, action = st.columns([5, 1])
        head.markdown(f"**{u.label}** · {format_clock_time(u.created_at, zone_id)}")
        if action.button("Delete", key=f"del_update_{u.id}"):
            repo.delete_daily_update(user_id, u.id)
            st.rerun()
        st.write(u.message)
