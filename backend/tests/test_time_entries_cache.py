"""Tests for the cache-or-fetch decision."""
import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, delete, select

import store
from db import create_db_and_tables, engine
from factories import FakeHarvest, make_entry
from harvest import HarvestAPIError
from models import Holiday, TimeEntryCache, UserVisibility
from time_entries_cache import resolve_time_entries

APRIL = ("2024-04-01", "2024-04-30")
FIRST_HALF = ("2024-04-01", "2024-04-15")


@pytest.fixture(scope="function")
def test_session():
    """Create a test database session."""
    create_db_and_tables()
    with Session(engine) as session:
        yield session
        # Clean up all test data after test
        session.exec(delete(TimeEntryCache))
        session.exec(delete(Holiday))
        session.exec(delete(UserVisibility))
        session.commit()


@pytest.fixture
def fake_harvest(monkeypatch):
    entries = [
        make_entry(102, "2024-04-02", hours=6),
        make_entry(101, "2024-04-01", hours=8),
        make_entry(103, "2024-04-01", hours=2, user_id=2, user_name="Bob Smith"),
    ]
    return FakeHarvest(entries=entries).install(monkeypatch)


def test_cache_miss_fetches_once_and_persists(test_session, fake_harvest):
    """Test that a never-fetched range is fetched and stored with overtime cleared."""
    entries = resolve_time_entries(test_session, *APRIL)

    assert fake_harvest.time_entry_calls == [APRIL]
    assert len(entries) == 3
    assert all(e.overtime == 0 for e in entries)

    rows = test_session.exec(select(TimeEntryCache)).all()
    assert sorted(r.entry_id for r in rows) == [101, 102, 103]
    assert all(r.overtime == 0 for r in rows)
    assert all((r.date_range_start, r.date_range_end) == APRIL for r in rows)
    # Notes are stored as Harvest sent them; the empty-string default applies on cache reads
    assert entries[0].notes is None
    assert all(r.notes is None for r in rows)


def test_cache_hit_makes_no_remote_call(test_session, fake_harvest):
    resolve_time_entries(test_session, *APRIL)
    fake_harvest.entries = []

    entries = resolve_time_entries(test_session, *APRIL)

    assert fake_harvest.time_entry_calls == [APRIL]
    # Cached rows come back ordered by date then entry id
    assert [e.id for e in entries] == [101, 103, 102]
    assert entries[0].user.name == "Alice Johnson"
    assert entries[0].notes == ""


def test_cache_hit_reflects_overtime_toggle(test_session, fake_harvest):
    resolve_time_entries(test_session, *APRIL)

    updated = store.set_overtime(test_session, 102, *APRIL, 1)
    entries = {e.id: e for e in resolve_time_entries(test_session, *APRIL)}

    assert updated == 1
    assert entries[102].overtime == entries[102].hours == 6
    assert entries[101].overtime == 0


def test_force_refresh_wipes_overtime(test_session, fake_harvest):
    resolve_time_entries(test_session, *APRIL)
    store.set_overtime(test_session, 101, *APRIL, True)

    refreshed = resolve_time_entries(test_session, *APRIL, force_refresh=True)
    cached = resolve_time_entries(test_session, *APRIL)

    assert len(fake_harvest.time_entry_calls) == 2
    assert all(e.overtime == 0 for e in refreshed)
    assert all(e.overtime == 0 for e in cached)
    assert len(test_session.exec(select(TimeEntryCache)).all()) == 3


def test_overtime_does_not_cross_range_keys(test_session, fake_harvest):
    """Test that toggling under one range key leaves another range's copy alone."""
    resolve_time_entries(test_session, *APRIL)
    resolve_time_entries(test_session, *FIRST_HALF)

    store.set_overtime(test_session, 101, *APRIL, 1)

    april = {e.id: e for e in resolve_time_entries(test_session, *APRIL)}
    first_half = {e.id: e for e in resolve_time_entries(test_session, *FIRST_HALF)}
    assert april[101].overtime == 8
    assert first_half[101].overtime == 0
    # Overlapping ranges are cached independently
    assert len(test_session.exec(select(TimeEntryCache)).all()) == 6


def test_overtime_for_unknown_range_is_a_silent_noop(test_session, fake_harvest):
    resolve_time_entries(test_session, *APRIL)

    assert store.set_overtime(test_session, 101, "2024-04-01", "2024-04-29", 1) == 0
    assert all(e.overtime == 0 for e in resolve_time_entries(test_session, *APRIL))


def test_remote_error_propagates_without_cache_write(test_session, fake_harvest):
    fake_harvest.error = HarvestAPIError(401, "Unauthorized", "bad token")

    with pytest.raises(HarvestAPIError):
        resolve_time_entries(test_session, *APRIL)

    assert test_session.exec(select(TimeEntryCache)).all() == []
    assert store.get_cache_info(test_session, *APRIL).exists is False


def test_duplicate_entry_in_fetch_leaves_cache_unchanged(test_session, fake_harvest):
    resolve_time_entries(test_session, *FIRST_HALF)
    fake_harvest.entries = [make_entry(300, "2024-04-20"), make_entry(300, "2024-04-21")]

    with pytest.raises(IntegrityError):
        resolve_time_entries(test_session, *APRIL)

    assert store.get_cache_info(test_session, *APRIL).exists is False
    assert store.get_cache_info(test_session, *FIRST_HALF).entry_count == 3

    fake_harvest.entries = [make_entry(300, "2024-04-20")]
    assert [e.id for e in resolve_time_entries(test_session, *APRIL)] == [300]
    assert len(fake_harvest.time_entry_calls) == 3


def test_refetch_replaces_rows_for_range(test_session, fake_harvest):
    resolve_time_entries(test_session, *APRIL)
    fake_harvest.entries = [make_entry(200, "2024-04-03", hours=4)]

    entries = resolve_time_entries(test_session, *APRIL, force_refresh=True)

    assert [e.id for e in entries] == [200]
    rows = test_session.exec(select(TimeEntryCache)).all()
    assert [r.entry_id for r in rows] == [200]


def test_empty_range_is_refetched(test_session, fake_harvest):
    fake_harvest.entries = []

    assert resolve_time_entries(test_session, *APRIL) == []
    assert resolve_time_entries(test_session, *APRIL) == []
    assert len(fake_harvest.time_entry_calls) == 2


def test_cache_info(test_session, fake_harvest):
    assert store.get_cache_info(test_session, *APRIL).entry_count == 0

    resolve_time_entries(test_session, *APRIL)
    info = store.get_cache_info(test_session, *APRIL)

    assert info.exists is True
    assert info.entry_count == 3
    assert info.cached_at is not None
