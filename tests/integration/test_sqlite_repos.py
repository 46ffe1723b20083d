"""
SQLite event store and view counter against a migrated database.
"""

import sqlite3
from datetime import timedelta, timezone

import pytest

from src.adapters.sqlite.migrator import SQLiteMigrator
from src.adapters.sqlite_db import SQLiteEventRepo, SQLiteViewCounter, format_ts
from src.components.analytics import OverviewQueryInput, run_overview
from tests.conftest import NOW, OTHER_TARGET_ID, TARGET_ID, build_event


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "test.db")
    SQLiteMigrator(path, "migrations").run_migrations()
    return path


@pytest.fixture
def repo(db_path):
    return SQLiteEventRepo(db_path)


@pytest.fixture
def counter(db_path):
    return SQLiteViewCounter(db_path)


def test_format_ts_normalises_to_utc():
    plus_two = NOW.astimezone(timezone(timedelta(hours=2)))
    assert format_ts(plus_two) == "2024-06-12T15:30:00.000000+00:00"
    assert format_ts(NOW.replace(tzinfo=None)) == format_ts(NOW)


def test_save_and_find_round_trip(repo):
    event = build_event(
        interaction_type="click",
        link_type="booking",
        link_url="https://book.example/table",
        country="Kenya",
        score=72,
        page_url="https://cafe.example/menu",
    )
    repo.save(event)

    found = repo.find(TARGET_ID, "business")

    assert len(found) == 1
    loaded = found[0]
    assert loaded.id == event.id
    assert loaded.created_at == NOW
    assert loaded.location.country == "Kenya"
    assert loaded.link_data.link_type == "booking"
    assert loaded.metrics.engagement_score == 72
    assert loaded.metadata.page_url == "https://cafe.example/menu"
    assert loaded.timing == event.timing


def test_find_filters_target_and_range(repo):
    inside = build_event(NOW - timedelta(hours=1))
    repo.save(build_event(NOW - timedelta(days=10)))
    repo.save(inside)
    repo.save(build_event(NOW, target_id=OTHER_TARGET_ID))
    repo.save(build_event(NOW, target_type="event"))

    found = repo.find(TARGET_ID, "business", NOW - timedelta(days=1), NOW)

    assert [e.id for e in found] == [inside.id]


def test_find_bounds_are_inclusive(repo):
    repo.save(build_event(NOW))
    assert len(repo.find(TARGET_ID, "business", NOW, NOW)) == 1


def test_find_ordered_by_time(repo):
    later = build_event(NOW)
    earlier = build_event(NOW - timedelta(minutes=5))
    repo.save(later)
    repo.save(earlier)

    assert [e.id for e in repo.find(TARGET_ID, "business")] == [earlier.id, later.id]


def test_count(repo):
    repo.save(build_event())
    repo.save(build_event())
    assert repo.count(TARGET_ID, "business") == 2
    assert repo.count(OTHER_TARGET_ID, "business") == 0


def test_duplicate_id_rejected(repo):
    event = build_event()
    repo.save(event)
    with pytest.raises(sqlite3.IntegrityError):
        repo.save(event)


def test_overview_over_sqlite(repo):
    repo.save(build_event(score=40))
    repo.save(build_event(score=60, interaction_type="share"))

    data = run_overview(OverviewQueryInput(target_id=TARGET_ID), event_store=repo)

    assert data["overview"]["totalViews"] == 2
    assert data["overview"]["avgEngagementScore"] == 50


def test_view_counter_upserts(counter):
    assert counter.get(TARGET_ID) == 0
    counter.increment(TARGET_ID)
    counter.increment(TARGET_ID, 4)
    assert counter.get(TARGET_ID) == 5
    assert counter.get(OTHER_TARGET_ID) == 0


def test_external_connection_left_open(db_path):
    conn = sqlite3.connect(db_path)
    SQLiteViewCounter(db_path, connection=conn).increment(TARGET_ID)
    conn.commit()

    assert SQLiteViewCounter(db_path).get(TARGET_ID) == 1
    conn.close()
