"""Monthly attendance aggregation.

Entries are grouped per user and per day, then each user's month is reduced
to a handful of statistics measured against an 8 hour working day.
"""
import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable

from sqlmodel import Session

import harvest
import store
from schemas import (
    DayCell,
    MonthlyStatsResponse,
    MonthSheetResponse,
    TimeEntryWithOvertime,
    UserRowResponse,
    UserSummary,
)
from time_entries_cache import resolve_time_entries

logger = logging.getLogger(__name__)

HOURS_PER_DAY = 8
MAX_BACKGROUND_ALPHA = 0.3
ABSENT_BACKGROUND_ALPHA = 0.15
MIN_YEAR, MAX_YEAR = 2000, 2100

FILTER_COLORS = {
    "holiday": "purple",
    "weekend": "red",
    "worked": "green",
    "absent": "red",
    "overtime": "orange",
}


@dataclass
class DayGroup:
    date: str
    entries: list[TimeEntryWithOvertime] = field(default_factory=list)
    total_hours: float = 0
    total_overtime: float = 0


@dataclass
class UserAttendance:
    user_id: int
    user_name: str
    email: str = ""
    daily_entries: dict[str, DayGroup] = field(default_factory=dict)


@dataclass
class MonthlyStats:
    total_hours: float
    total_overtime: float
    regular_hours: float
    working_days: int
    total_working_hours: float
    worked_days: float
    present_percentage: float


@dataclass
class DayStatus:
    date: str
    holiday: bool
    weekend: bool
    worked: bool
    absent: bool
    overtime: bool
    total_hours: float
    total_overtime: float
    regular_hours: float
    work_intensity: float
    overtime_intensity: float
    background: str
    background_alpha: float


# --- Calendar helpers -------------------------------------------------------


def days_in_month(year: int, month: int) -> list[date]:
    _, last_day = calendar.monthrange(year, month)
    first = date(year, month, 1)
    return [first + timedelta(days=offset) for offset in range(last_day)]


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5  # Saturday = 5, Sunday = 6


def month_range(year: int, month: int) -> tuple[str, str]:
    days = days_in_month(year, month)
    return days[0].isoformat(), days[-1].isoformat()


def resolve_month(month: int | None, year: int | None, today: date | None = None) -> tuple[int, int]:
    """Fall back to today's month/year for anything missing or out of range."""
    today = today or date.today()
    valid_month = month if month is not None and 1 <= month <= 12 else today.month
    valid_year = year if year is not None and MIN_YEAR <= year <= MAX_YEAR else today.year
    return valid_month, valid_year


# --- Grouping and statistics -----------------------------------------------


def group_by_user_and_date(entries: Iterable[TimeEntryWithOvertime]) -> dict[int, UserAttendance]:
    user_map: dict[int, UserAttendance] = {}

    for entry in entries:
        attendance = user_map.get(entry.user.id)
        if attendance is None:
            # Email is filled in later from the Harvest user directory
            attendance = UserAttendance(user_id=entry.user.id, user_name=entry.user.name)
            user_map[entry.user.id] = attendance

        day_group = attendance.daily_entries.get(entry.spent_date)
        if day_group is None:
            day_group = DayGroup(date=entry.spent_date)
            attendance.daily_entries[entry.spent_date] = day_group

        day_group.entries.append(entry)
        day_group.total_hours += entry.hours
        day_group.total_overtime += entry.overtime

    return user_map


def count_working_days(days: Iterable[date], holidays: set[str]) -> int:
    return sum(1 for day in days if not is_weekend(day) and day.isoformat() not in holidays)


def monthly_stats(attendance: UserAttendance, days: list[date], holidays: set[str]) -> MonthlyStats:
    total_hours = sum(group.total_hours for group in attendance.daily_entries.values())
    total_overtime = sum(group.total_overtime for group in attendance.daily_entries.values())
    regular_hours = total_hours - total_overtime

    working_days = count_working_days(days, holidays)
    total_working_hours = working_days * HOURS_PER_DAY

    if total_working_hours == 0:
        present_percentage = 0.0
    else:
        # Overtime does not count towards presence
        present_percentage = (regular_hours / total_working_hours) * 100

    return MonthlyStats(
        total_hours=total_hours,
        total_overtime=total_overtime,
        regular_hours=regular_hours,
        working_days=working_days,
        total_working_hours=total_working_hours,
        worked_days=total_hours / HOURS_PER_DAY,
        present_percentage=present_percentage,
    )


# --- Per-day classification ------------------------------------------------


def classify_day(day: date, day_group: DayGroup | None, holidays: set[str]) -> DayStatus:
    """Classify one user's day.

    The flags are independent; ``background`` picks a single tint with the
    precedence holiday > weekend > overtime > worked > absent.
    """
    day_str = day.isoformat()
    total_hours = day_group.total_hours if day_group else 0
    total_overtime = day_group.total_overtime if day_group else 0

    holiday = day_str in holidays
    weekend = is_weekend(day) and not holiday
    working_day = not holiday and not weekend
    worked = working_day and total_hours > 0
    absent = working_day and total_hours == 0
    overtime = total_overtime > 0

    work_intensity = min(total_hours / HOURS_PER_DAY, 1)
    overtime_intensity = min(total_overtime / HOURS_PER_DAY, 1)

    if holiday:
        background, alpha = "holiday", 0.0
    elif weekend:
        background, alpha = "weekend", 0.0
    elif overtime:
        background, alpha = "overtime", min(overtime_intensity, MAX_BACKGROUND_ALPHA)
    elif worked:
        background, alpha = "worked", min(work_intensity, MAX_BACKGROUND_ALPHA)
    else:
        background, alpha = "absent", ABSENT_BACKGROUND_ALPHA

    return DayStatus(
        date=day_str,
        holiday=holiday,
        weekend=weekend,
        worked=worked,
        absent=absent,
        overtime=overtime,
        total_hours=total_hours,
        total_overtime=total_overtime,
        regular_hours=total_hours - total_overtime if total_hours > 0 else 0,
        work_intensity=work_intensity,
        overtime_intensity=overtime_intensity,
        background=background,
        background_alpha=alpha,
    )


def parse_filters(raw: str | None) -> set[str]:
    if not raw:
        return set()
    filters = {part.strip().lower() for part in raw.split(",") if part.strip()}
    unknown = filters - FILTER_COLORS.keys()
    if unknown:
        raise ValueError(f"Unknown filter(s): {', '.join(sorted(unknown))}")
    return filters


def highlight(status: DayStatus, filters: set[str]) -> str | None:
    """Outline colour for a cell matched by one of the active legend filters."""
    for kind in ("holiday", "weekend", "worked", "absent", "overtime"):
        if kind in filters and getattr(status, kind):
            return FILTER_COLORS[kind]
    return None


# --- Month sheet ------------------------------------------------------------


def build_month_sheet(
    session: Session,
    month: int | None = None,
    year: int | None = None,
    force_refresh: bool = False,
    filters: set[str] | None = None,
    today: date | None = None,
) -> MonthSheetResponse:
    """Assemble everything the attendance table needs for one month."""
    filters = filters or set()
    month, year = resolve_month(month, year, today)
    days = days_in_month(year, month)
    month_start, month_end = days[0].isoformat(), days[-1].isoformat()

    holiday_dates = store.get_holidays_for_range(session, month_start, month_end)
    holidays = set(holiday_dates)

    logger.info(f"Fetching time entries for {calendar.month_name[month]} {year}: {month_start} to {month_end}")
    users = harvest.fetch_users()
    time_entries = resolve_time_entries(session, month_start, month_end, force_refresh)
    logger.info(f"Fetched {len(time_entries)} time entries")

    attendance_map = group_by_user_and_date(time_entries)
    for user in users:
        if user.id in attendance_map:
            attendance_map[user.id].email = user.email

    visibility = store.get_all_user_visibility(session)
    active_users = [user for user in users if user.is_active]

    rows = []
    for user in active_users:
        if not visibility.get(store.normalize_email(user.email), True):
            continue
        attendance = attendance_map.get(user.id) or UserAttendance(
            user_id=user.id, user_name=user.full_name, email=user.email
        )
        rows.append(_user_row(user.id, user.full_name, user.email, attendance, days, holidays, filters))

    return MonthSheetResponse(
        month=month,
        month_name=calendar.month_name[month],
        year=year,
        date_range_start=month_start,
        date_range_end=month_end,
        holidays=holiday_dates,
        cache=store.get_cache_info(session, month_start, month_end),
        users=rows,
        all_users=[
            UserSummary(
                id=user.id,
                name=user.full_name,
                email=user.email,
                is_visible=visibility.get(store.normalize_email(user.email), True),
            )
            for user in active_users
        ],
    )


def _user_row(
    user_id: int,
    name: str,
    email: str,
    attendance: UserAttendance,
    days: list[date],
    holidays: set[str],
    filters: set[str],
) -> UserRowResponse:
    cells = []
    for day in days:
        day_group = attendance.daily_entries.get(day.isoformat())
        status = classify_day(day, day_group, holidays)
        cells.append(
            DayCell(
                date=status.date,
                total_hours=status.total_hours,
                regular_hours=status.regular_hours,
                total_overtime=status.total_overtime,
                entry_count=len(day_group.entries) if day_group else 0,
                holiday=status.holiday,
                weekend=status.weekend,
                worked=status.worked,
                absent=status.absent,
                overtime=status.overtime,
                background=status.background,
                background_alpha=status.background_alpha,
                highlight=highlight(status, filters),
                entries=day_group.entries if day_group else [],
            )
        )

    stats = monthly_stats(attendance, days, holidays)
    return UserRowResponse(
        id=user_id,
        name=name,
        email=email,
        days=cells,
        stats=MonthlyStatsResponse(**vars(stats)),
    )
