"""
Aggregation engine - grouping functions over recorded events.

Every function takes an already-filtered event list (target + date range)
and returns ordered group rows keyed the way the dashboard expects
(``_id`` plus camelCase metric names).

Key behaviors:
- Per-group rates are ``round(part / whole * 100, 2)``; 0 when whole is 0
- Means skip missing values and are 0 for an empty group
- Volume-sorted results break ties by group key ascending, missing keys last
- Chronological results are sorted by their full bucket key
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Hashable, Iterable
from datetime import UTC, datetime
from typing import Any

from src.core.entities import ViewEvent

# --- Helpers ---


def mean(values: Iterable[float | int | None]) -> float:
    """Arithmetic mean ignoring missing values; 0 when nothing is left."""
    present = [v for v in values if v is not None]
    if not present:
        return 0
    return sum(present) / len(present)


def percent(part: float, whole: float, digits: int = 2) -> float:
    """``part / whole`` as a rounded percentage, 0 when whole is 0."""
    if not whole:
        return 0
    return round(part / whole * 100, digits)


def _key_order(key: Any) -> tuple[bool, Any]:
    return (key is None, key if key is not None else 0)


def _sort_by_volume(rows: list[dict[str, Any]], count_field: str) -> list[dict[str, Any]]:
    rows.sort(key=lambda r: _key_order(r["_id"]))
    rows.sort(key=lambda r: r[count_field], reverse=True)
    return rows


def _group(
    events: Iterable[ViewEvent], key: Callable[[ViewEvent], Hashable]
) -> dict[Hashable, list[ViewEvent]]:
    groups: dict[Hashable, list[ViewEvent]] = defaultdict(list)
    for event in events:
        groups[key(event)].append(event)
    return groups


def _unique_viewers(events: list[ViewEvent]) -> int:
    return len({e.viewer_id for e in events if e.viewer_id is not None})


def _interactions(events: list[ViewEvent]) -> int:
    return sum(1 for e in events if e.is_interaction)


def _avg_score(events: list[ViewEvent]) -> float:
    return round(mean(e.metrics.engagement_score for e in events), 2)


def _avg_time_on_page(events: list[ViewEvent]) -> float:
    return round(mean(e.metrics.time_on_page_seconds for e in events), 1)


def _utc(dt: datetime) -> datetime:
    return dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt.astimezone(UTC)


# --- Location ---

_LOCATION_FIELDS: dict[str, Callable[[ViewEvent], str | None]] = {
    "country": lambda e: e.location.country,
    "region": lambda e: e.location.region,
    "city": lambda e: e.location.city,
}


def aggregate_locations(
    events: Iterable[ViewEvent],
    group_by: str = "country",
    limit: int | None = None,
) -> list[dict[str, Any]]:
    """Views, viewers and engagement per country/region/city, busiest first."""
    rows = []
    for key, group in _group(events, _LOCATION_FIELDS[group_by]).items():
        views = len(group)
        interactions = _interactions(group)
        rows.append(
            {
                "_id": key,
                "totalViews": views,
                "uniqueViewers": _unique_viewers(group),
                "totalInteractions": interactions,
                "engagementRate": percent(interactions, views),
                "avgEngagementScore": _avg_score(group),
                "lastActivity": max(e.created_at for e in group),
            }
        )
    rows = _sort_by_volume(rows, "totalViews")
    return rows[:limit] if limit is not None else rows


# --- Links ---

_LINK_FIELDS: dict[str, Callable[[ViewEvent], str | None]] = {
    "linkType": lambda e: e.link_data.link_type if e.link_data else None,
    "platform": lambda e: e.link_data.social_platform if e.link_data else None,
}


def click_events(events: Iterable[ViewEvent], link_type: str | None = None) -> list[ViewEvent]:
    """Click events carrying link data, optionally of one link type."""
    return [
        e
        for e in events
        if e.interaction_type == "click"
        and e.link_data is not None
        and (link_type is None or e.link_data.link_type == link_type)
    ]


def aggregate_links(
    events: Iterable[ViewEvent],
    group_by: str = "linkType",
    link_type: str | None = None,
    limit: int | None = None,
) -> list[dict[str, Any]]:
    """Click counts per link type or social platform, most clicked first."""
    rows = []
    for key, group in _group(click_events(events, link_type), _LINK_FIELDS[group_by]).items():
        clicks = len(group)
        clickers = _unique_viewers(group)
        urls = {e.link_data.link_url for e in group if e.link_data and e.link_data.link_url}
        positions = {
            e.link_data.link_position for e in group if e.link_data and e.link_data.link_position
        }
        rows.append(
            {
                "_id": key,
                "totalClicks": clicks,
                "uniqueClickers": clickers,
                "avgEngagementScore": _avg_score(group),
                "uniqueUrls": len(urls),
                "linkPositions": sorted(positions),
                "clickThroughRate": percent(clickers, clicks),
                "lastClicked": max(e.created_at for e in group),
            }
        )
    rows = _sort_by_volume(rows, "totalClicks")
    return rows[:limit] if limit is not None else rows


# --- Peak Hours ---


def _peak_key(group_by: str) -> Callable[[ViewEvent], Hashable]:
    if group_by == "hour":
        return lambda e: e.timing.hour
    if group_by == "dayOfWeek":
        return lambda e: e.timing.day_of_week
    return lambda e: (e.timing.day_of_week, e.timing.hour)


def aggregate_peak_hours(
    events: Iterable[ViewEvent],
    group_by: str = "hour",
) -> list[dict[str, Any]]:
    """
    Activity per hour of day, day of week, or hour of week.

    Rows are chronological. For ``hourOfWeek`` the key is
    ``{"hour", "dayOfWeek"}`` ordered by day then hour.
    """
    groups = _group(events, _peak_key(group_by))
    rows = []
    for key in sorted(groups):
        group = groups[key]
        views = len(group)
        interactions = _interactions(group)
        if group_by == "hourOfWeek":
            day, hour = key
            group_id: Any = {"hour": hour, "dayOfWeek": day}
        else:
            group_id = key
        rows.append(
            {
                "_id": group_id,
                "totalViews": views,
                "uniqueViewers": _unique_viewers(group),
                "totalInteractions": interactions,
                "engagementRate": percent(interactions, views),
                "avgEngagementScore": _avg_score(group),
                "avgTimeOnPage": _avg_time_on_page(group),
            }
        )
    return rows


# --- Time Series ---


def _bucket_key(group_by: str) -> Callable[[ViewEvent], tuple[int, ...]]:
    if group_by == "hour":
        return lambda e: (e.timing.year, e.timing.month, e.timing.day_of_month, e.timing.hour)
    if group_by == "day":
        return lambda e: (e.timing.year, e.timing.month, e.timing.day_of_month)
    if group_by == "week":
        # Sunday-based week of year, 00-53
        return lambda e: (e.timing.year, int(_utc(e.created_at).strftime("%U")))
    return lambda e: (e.timing.year, e.timing.month)


_BUCKET_FIELDS: dict[str, tuple[str, ...]] = {
    "hour": ("year", "month", "day", "hour"),
    "day": ("year", "month", "day"),
    "week": ("year", "week"),
    "month": ("year", "month"),
}


def aggregate_time_series(
    events: Iterable[ViewEvent],
    group_by: str = "day",
) -> list[dict[str, Any]]:
    """Per calendar bucket metrics in chronological order."""
    groups = _group(events, _bucket_key(group_by))
    fields = _BUCKET_FIELDS[group_by]
    rows = []
    for key in sorted(groups):
        group = groups[key]
        views = len(group)
        bounces = sum(1 for e in group if e.metrics.bounce_rate)
        rows.append(
            {
                "_id": dict(zip(fields, key, strict=True)),
                "totalViews": views,
                "uniqueViewers": _unique_viewers(group),
                "totalInteractions": _interactions(group),
                "avgEngagementScore": _avg_score(group),
                "avgTimeOnPage": _avg_time_on_page(group),
                "bounceRate": percent(bounces, views),
                "totalSessions": len({e.session_id for e in group}),
            }
        )
    return rows


# --- Dimension Breakdowns ---


def aggregate_devices(events: Iterable[ViewEvent]) -> list[dict[str, Any]]:
    """Event and viewer counts per device type."""
    rows = [
        {"_id": key, "count": len(group), "uniqueUsers": _unique_viewers(group)}
        for key, group in _group(events, lambda e: e.device_info.type).items()
    ]
    return _sort_by_volume(rows, "count")


def aggregate_referrals(events: Iterable[ViewEvent]) -> list[dict[str, Any]]:
    """Event and viewer counts plus mean engagement per referral source."""
    rows = [
        {
            "_id": key,
            "count": len(group),
            "uniqueUsers": _unique_viewers(group),
            "avgEngagement": _avg_score(group),
        }
        for key, group in _group(events, lambda e: e.referral.source).items()
    ]
    return _sort_by_volume(rows, "count")


def engagement_summary(events: Iterable[ViewEvent]) -> list[dict[str, Any]]:
    """Single ungrouped engagement row."""
    items = list(events)
    bounces = sum(1 for e in items if e.metrics.bounce_rate)
    return [
        {
            "_id": None,
            "avgEngagementScore": _avg_score(items),
            "avgTimeOnPage": _avg_time_on_page(items),
            "bounceRate": percent(bounces, len(items)),
        }
    ]


def overview(events: Iterable[ViewEvent]) -> dict[str, Any]:
    """Headline numbers for a target over a range."""
    items = list(events)
    views = len(items)
    interactions = _interactions(items)
    bounces = sum(1 for e in items if e.metrics.bounce_rate)
    return {
        "totalViews": views,
        "uniqueViewers": _unique_viewers(items),
        "uniqueSessions": len({e.session_id for e in items}),
        "totalInteractions": interactions,
        "avgEngagementScore": _avg_score(items),
        "avgTimeOnPage": _avg_time_on_page(items),
        "bounceRate": percent(bounces, views),
        "interactionRate": percent(interactions, views),
    }


# --- Real-time ---


def active_users(events: Iterable[ViewEvent]) -> dict[str, int]:
    items = list(events)
    return {
        "activeUsers": _unique_viewers(items),
        "activeSessions": len({e.session_id for e in items}),
    }


def page_view_timeline(events: Iterable[ViewEvent]) -> list[dict[str, Any]]:
    """Event counts per UTC minute, oldest minute first."""
    counts: dict[str, int] = defaultdict(int)
    for e in events:
        counts[_utc(e.created_at).strftime("%Y-%m-%d %H:%M")] += 1
    return [{"_id": minute, "views": counts[minute]} for minute in sorted(counts)]


def interaction_breakdown(events: Iterable[ViewEvent]) -> list[dict[str, Any]]:
    """Counts per interaction type, plain views excluded."""
    rows = [
        {"_id": key, "count": len(group)}
        for key, group in _group(
            (e for e in events if e.is_interaction), lambda e: e.interaction_type
        ).items()
    ]
    return _sort_by_volume(rows, "count")


def top_countries(events: Iterable[ViewEvent], limit: int = 5) -> list[dict[str, Any]]:
    rows = [
        {"_id": key, "count": len(group)}
        for key, group in _group(events, lambda e: e.location.country).items()
    ]
    return _sort_by_volume(rows, "count")[:limit]


def top_pages(events: Iterable[ViewEvent], limit: int = 5) -> list[dict[str, Any]]:
    rows = [
        {"_id": key, "count": len(group)}
        for key, group in _group(
            (e for e in events if e.metadata.page_url), lambda e: e.metadata.page_url
        ).items()
    ]
    return _sort_by_volume(rows, "count")[:limit]


# --- Export Counts ---


def count_by_device(events: Iterable[ViewEvent]) -> list[dict[str, Any]]:
    rows = [
        {"_id": key, "count": len(group)}
        for key, group in _group(events, lambda e: e.device_info.type).items()
    ]
    return _sort_by_volume(rows, "count")


def count_by_referral(events: Iterable[ViewEvent]) -> list[dict[str, Any]]:
    rows = [
        {"_id": key, "count": len(group)}
        for key, group in _group(events, lambda e: e.referral.source).items()
    ]
    return _sort_by_volume(rows, "count")
