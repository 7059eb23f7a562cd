"""Local store operations for cached time entries, holidays and user visibility."""
import logging
from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import delete, func, update
from sqlmodel import Session, select

from models import Holiday, TimeEntryCache, UserVisibility
from schemas import CacheInfo, HarvestTimeEntry

logger = logging.getLogger(__name__)


def _range_filter(date_range_start: str, date_range_end: str):
    return (
        TimeEntryCache.date_range_start == date_range_start,
        TimeEntryCache.date_range_end == date_range_end,
    )


def normalize_email(email: str) -> str:
    return email.strip().lower()


# --- Time entry cache -------------------------------------------------------


def store_time_entries(
    session: Session,
    entries: list[HarvestTimeEntry],
    date_range_start: str,
    date_range_end: str,
) -> int:
    """Replace every cached row for the exact range key with ``entries``.

    The delete and the inserts commit together; on failure the session is
    rolled back and the previous rows stay in place.
    """
    cached_at = datetime.now(UTC)
    rows = [
        TimeEntryCache(
            entry_id=entry.id,
            spent_date=entry.spent_date,
            user_id=entry.user.id,
            user_name=entry.user.name,
            project_id=entry.project.id,
            project_name=entry.project.name,
            client_id=entry.client.id,
            client_name=entry.client.name,
            task_id=entry.task.id,
            task_name=entry.task.name,
            notes=entry.notes,
            hours=entry.hours,
            billable=entry.billable,
            overtime=0,
            date_range_start=date_range_start,
            date_range_end=date_range_end,
            cached_at=cached_at,
        )
        for entry in entries
    ]

    try:
        session.exec(delete(TimeEntryCache).where(*_range_filter(date_range_start, date_range_end)))
        session.add_all(rows)
        session.commit()
    except Exception:
        session.rollback()
        logger.error(f"Failed to cache entries for {date_range_start} to {date_range_end}, rolled back")
        raise

    return len(rows)


def get_cached_time_entries(
    session: Session, date_range_start: str, date_range_end: str
) -> list[TimeEntryCache]:
    """Rows for the exact range key, ordered by spent date then entry id."""
    stmt = (
        select(TimeEntryCache)
        .where(*_range_filter(date_range_start, date_range_end))
        .order_by(TimeEntryCache.spent_date, TimeEntryCache.entry_id)
    )
    return list(session.exec(stmt).all())


def clear_cache_for_date_range(session: Session, date_range_start: str, date_range_end: str) -> int:
    result = session.exec(delete(TimeEntryCache).where(*_range_filter(date_range_start, date_range_end)))
    session.commit()
    return result.rowcount


def get_cache_info(session: Session, date_range_start: str, date_range_end: str) -> CacheInfo:
    stmt = select(func.count(TimeEntryCache.id), func.max(TimeEntryCache.cached_at)).where(
        *_range_filter(date_range_start, date_range_end)
    )
    count, cached_at = session.exec(stmt).one()
    count = count or 0
    return CacheInfo(exists=count > 0, cached_at=cached_at, entry_count=count)


def set_overtime(
    session: Session,
    entry_id: int,
    date_range_start: str,
    date_range_end: str,
    overtime,
) -> int:
    """Flag (or unflag) every hour of one cached entry as overtime.

    Only the row cached under this exact range key changes. Returns the number
    of rows updated, which is 0 when the entry was cached under another range.
    """
    stmt = (
        update(TimeEntryCache)
        .where(TimeEntryCache.entry_id == entry_id, *_range_filter(date_range_start, date_range_end))
        .values(overtime=1 if overtime else 0)
    )
    try:
        result = session.exec(stmt)
        session.commit()
    except Exception:
        session.rollback()
        raise
    return result.rowcount


# --- Holidays ---------------------------------------------------------------


def get_all_holidays(session: Session) -> list[Holiday]:
    return list(session.exec(select(Holiday).order_by(Holiday.date)).all())


def get_holidays_for_range(session: Session, date_range_start: str, date_range_end: str) -> list[str]:
    stmt = (
        select(Holiday.date)
        .where(Holiday.date >= date_range_start, Holiday.date <= date_range_end)
        .order_by(Holiday.date)
    )
    return list(session.exec(stmt).all())


def is_holiday(session: Session, date: str) -> bool:
    return session.exec(select(Holiday).where(Holiday.date == date)).first() is not None


def add_holiday(session: Session, date: str, name: str | None = None) -> Holiday:
    """Insert or update the holiday for ``date``; an existing row keeps its created_at."""
    now = datetime.now(UTC)
    try:
        existing = session.exec(select(Holiday).where(Holiday.date == date)).first()
        if existing:
            existing.name = name or None
            existing.updated_at = now
            holiday = existing
        else:
            holiday = Holiday(date=date, name=name or None, created_at=now, updated_at=now)
        session.add(holiday)
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(holiday)
    return holiday


def remove_holiday(session: Session, date: str) -> int:
    result = session.exec(delete(Holiday).where(Holiday.date == date))
    session.commit()
    return result.rowcount


def toggle_holiday(session: Session, date: str, name: str | None = None) -> bool:
    """Flip the holiday state of ``date`` and return the new state."""
    if is_holiday(session, date):
        remove_holiday(session, date)
        return False
    add_holiday(session, date, name)
    return True


# --- User visibility --------------------------------------------------------


class VisibilityLookup(Enum):
    VISIBLE = "visible"
    HIDDEN = "hidden"
    NOT_FOUND = "not_found"


def lookup_user_visibility(session: Session, email: str) -> VisibilityLookup:
    row = session.exec(
        select(UserVisibility).where(UserVisibility.user_email == normalize_email(email))
    ).first()
    if row is None:
        return VisibilityLookup.NOT_FOUND
    return VisibilityLookup.VISIBLE if row.is_visible else VisibilityLookup.HIDDEN


def is_user_visible(session: Session, email: str) -> bool:
    # Users nobody has hidden yet are shown
    return lookup_user_visibility(session, email) != VisibilityLookup.HIDDEN


def get_all_user_visibility(session: Session) -> dict[str, bool]:
    return {row.user_email: row.is_visible for row in session.exec(select(UserVisibility)).all()}


def _upsert_visibility(session: Session, email: str, is_visible: bool, now: datetime) -> None:
    user_email = normalize_email(email)
    existing = session.exec(select(UserVisibility).where(UserVisibility.user_email == user_email)).first()
    if existing:
        existing.is_visible = is_visible
        existing.updated_at = now
        session.add(existing)
    else:
        session.add(UserVisibility(user_email=user_email, is_visible=is_visible, updated_at=now))
    # Flush so a repeated email within one batch hits the row added above
    session.flush()


def set_user_visibility(session: Session, email: str, is_visible: bool) -> None:
    set_multiple_user_visibility(session, [(email, is_visible)])


def set_multiple_user_visibility(session: Session, visibilities: list[tuple[str, bool]]) -> None:
    """Upsert every (email, is_visible) pair in a single transaction."""
    now = datetime.now(UTC)
    try:
        for email, is_visible in visibilities:
            _upsert_visibility(session, email, is_visible, now)
        session.commit()
    except Exception:
        session.rollback()
        raise


def toggle_user_visibility(session: Session, email: str) -> bool:
    new_visibility = not is_user_visible(session, email)
    set_user_visibility(session, email, new_visibility)
    return new_visibility
