"""
SQLite adapters for the analytics event store and target view counters.

Events are stored one row each: the filter/group columns are broken out
and indexed, the full event is kept as JSON. Timestamps are written as
fixed-width UTC strings so range filters can compare them as text.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import UTC, datetime
from typing import Any

from src.core.entities import ViewEvent

# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def format_ts(dt: datetime) -> str:
    """Fixed-width UTC timestamp, sortable as text."""
    utc = dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt.astimezone(UTC)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


# -----------------------------------------------------------------------------
# Base SQLite Repository
# -----------------------------------------------------------------------------


class SQLiteRepoBase:
    """Base class for SQLite repositories."""

    def __init__(self, db_path: str, connection: sqlite3.Connection | None = None):
        self.db_path = db_path
        self._external_conn = connection

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection (uses external if provided)."""
        if self._external_conn is not None:
            return self._external_conn

        conn = sqlite3.connect(self.db_path)
        conn.row_factory = dict_factory
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def _should_close(self) -> bool:
        """Whether to close connection after use."""
        return self._external_conn is None


# -----------------------------------------------------------------------------
# Event Repository
# -----------------------------------------------------------------------------


class SQLiteEventRepo(SQLiteRepoBase):
    """SQLite implementation of EventStorePort."""

    def save(self, event: ViewEvent) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO view_events (
                    id, target_id, target_type, viewer_id, session_id,
                    interaction_type, created_at,
                    hour, day_of_week, day_of_month, month, year, quarter,
                    country, device_type, referral_source, link_type,
                    engagement_score, event_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.id,
                    event.target_id,
                    event.target_type,
                    event.viewer_id,
                    event.session_id,
                    event.interaction_type,
                    format_ts(event.created_at),
                    event.timing.hour,
                    event.timing.day_of_week,
                    event.timing.day_of_month,
                    event.timing.month,
                    event.timing.year,
                    event.timing.quarter,
                    event.location.country,
                    event.device_info.type,
                    event.referral.source,
                    event.link_data.link_type if event.link_data else None,
                    event.metrics.engagement_score,
                    json.dumps(event.to_dict()),
                ),
            )
            if self._should_close():
                conn.commit()
        finally:
            if self._should_close():
                conn.close()

    def find(
        self,
        target_id: str,
        target_type: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[ViewEvent]:
        conn = self._get_conn()
        try:
            query = "SELECT event_json FROM view_events WHERE target_id = ? AND target_type = ?"
            params: list[Any] = [target_id, target_type]

            if start is not None:
                query += " AND created_at >= ?"
                params.append(format_ts(start))

            if end is not None:
                query += " AND created_at <= ?"
                params.append(format_ts(end))

            query += " ORDER BY created_at ASC, id ASC"

            rows = conn.execute(query, params).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def count(self, target_id: str, target_type: str) -> int:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM view_events WHERE target_id = ? AND target_type = ?",
                (target_id, target_type),
            ).fetchone()
            return int(row["n"]) if row else 0
        finally:
            if self._should_close():
                conn.close()

    def _map_row(self, row: dict[str, Any]) -> ViewEvent:
        return ViewEvent.from_dict(json.loads(row["event_json"]))


# -----------------------------------------------------------------------------
# View Counter
# -----------------------------------------------------------------------------


class SQLiteViewCounter(SQLiteRepoBase):
    """SQLite implementation of ViewCounterPort."""

    def increment(self, target_id: str, amount: int = 1) -> None:
        conn = self._get_conn()
        try:
            # Single statement upsert; no read-modify-write
            conn.execute(
                """
                INSERT INTO target_view_counts (target_id, view_count, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT (target_id) DO UPDATE SET
                    view_count = view_count + excluded.view_count,
                    updated_at = excluded.updated_at
                """,
                (target_id, amount, format_ts(datetime.now(UTC))),
            )
            if self._should_close():
                conn.commit()
        finally:
            if self._should_close():
                conn.close()

    def get(self, target_id: str) -> int:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT view_count FROM target_view_counts WHERE target_id = ?",
                (target_id,),
            ).fetchone()
            return int(row["view_count"]) if row else 0
        finally:
            if self._should_close():
                conn.close()
