"""Serve time entries from the local cache, falling back to Harvest on a miss."""
import logging

from sqlmodel import Session

import harvest
import store
from models import TimeEntryCache
from schemas import NamedRef, TimeEntryWithOvertime

logger = logging.getLogger(__name__)


def _from_cache_row(row: TimeEntryCache) -> TimeEntryWithOvertime:
    return TimeEntryWithOvertime(
        id=row.entry_id,
        spent_date=row.spent_date,
        user=NamedRef(id=row.user_id, name=row.user_name),
        project=NamedRef(id=row.project_id, name=row.project_name),
        client=NamedRef(id=row.client_id, name=row.client_name),
        task=NamedRef(id=row.task_id, name=row.task_name),
        notes=row.notes or "",
        hours=row.hours,
        billable=bool(row.billable),
        overtime=row.hours if row.overtime else 0,
    )


def resolve_time_entries(
    session: Session,
    date_from: str,
    date_to: str,
    force_refresh: bool = False,
) -> list[TimeEntryWithOvertime]:
    """Return the time entries for the exact range key ``(date_from, date_to)``.

    Cached rows win unless ``force_refresh`` is set, in which case the range is
    dropped first. On a miss the whole range is fetched from Harvest, cached
    with overtime cleared and returned. Harvest errors propagate and leave the
    cache untouched.
    """
    if force_refresh:
        logger.info(f"Force refreshing cache for {date_from} to {date_to}")
        store.clear_cache_for_date_range(session, date_from, date_to)
    else:
        cache_info = store.get_cache_info(session, date_from, date_to)
        if cache_info.exists:
            logger.info(
                f"Using cached data for {date_from} to {date_to} "
                f"({cache_info.entry_count} entries, cached at {cache_info.cached_at})"
            )
            rows = store.get_cached_time_entries(session, date_from, date_to)
            return [_from_cache_row(row) for row in rows]

    logger.info(f"Fetching from Harvest API for {date_from} to {date_to}")
    entries = harvest.fetch_time_entries(date_from, date_to)

    logger.info(f"Caching {len(entries)} entries for {date_from} to {date_to}")
    store.store_time_entries(session, entries, date_from, date_to)

    return [TimeEntryWithOvertime(**entry.model_dump(), overtime=0) for entry in entries]
