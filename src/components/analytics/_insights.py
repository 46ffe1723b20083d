"""
Post-processing over aggregation rows: summaries, insights and trends.

These mirror what the dashboard has always displayed, so the rounding here
is half-up (``2.5 -> 3``) rather than Python's banker's rounding used for
the per-group rows.
"""

from __future__ import annotations

import math
from typing import Any

DAY_LABELS: tuple[str, ...] = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)

TREND_WINDOW = 7
TOP_LINKS = 10


def round_half_up(value: float, digits: int = 0) -> float | int:
    """Round halves away from negative infinity; integer result for 0 digits."""
    factor = 10**digits
    rounded = math.floor(value * factor + 0.5) / factor
    return int(rounded) if digits == 0 else rounded


def _avg(rows: list[dict[str, Any]], field: str) -> float:
    if not rows:
        return 0
    return sum(r[field] or 0 for r in rows) / len(rows)


def _by_views_desc(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    # Stable: equal counts keep their chronological order
    return sorted(rows, key=lambda r: r["totalViews"], reverse=True)


def day_label(day: Any) -> str:
    if isinstance(day, int) and 0 <= day < len(DAY_LABELS):
        return DAY_LABELS[day]
    return f"Day {day}"


# --- Location ---


def location_summary(rows: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "totalViews": sum(r["totalViews"] for r in rows),
        "totalUniqueViewers": sum(r["uniqueViewers"] for r in rows),
        "totalInteractions": sum(r["totalInteractions"] for r in rows),
        "totalLocations": len(rows),
        "avgEngagementRate": round_half_up(_avg(rows, "engagementRate")),
    }


# --- Links ---


def top_links(rows: list[dict[str, Any]], limit: int = TOP_LINKS) -> list[dict[str, Any]]:
    return sorted(rows, key=lambda r: r["totalClicks"], reverse=True)[:limit]


def link_summary(rows: list[dict[str, Any]]) -> dict[str, Any]:
    """Totals across link groups; click-through is unique clickers over clicks."""
    clicks = sum(r["totalClicks"] for r in rows)
    clickers = sum(r["uniqueClickers"] for r in rows)
    return {
        "totalClicks": clicks,
        "totalUniqueClickers": clickers,
        "totalLinkTypes": len(rows),
        "avgEngagementScore": round_half_up(_avg(rows, "avgEngagementScore")),
        "clickThroughRate": round_half_up(clickers / clicks * 100) if clicks else 0,
    }


# --- Peak Hours ---


def _daily_totals(rows: list[dict[str, Any]], group_by: str) -> list[dict[str, Any]]:
    if group_by == "dayOfWeek":
        return list(rows)
    totals: dict[int, dict[str, Any]] = {}
    for row in rows:
        day = row["_id"]["dayOfWeek"]
        entry = totals.setdefault(day, {"_id": day, "totalViews": 0})
        entry["totalViews"] += row["totalViews"]
    return [totals[day] for day in sorted(totals)]


def peak_insights(rows: list[dict[str, Any]], group_by: str) -> dict[str, Any]:
    """
    Busiest and quietest hour/day.

    Hour insights apply to ``hour`` and ``hourOfWeek`` groupings; day
    insights to ``dayOfWeek`` and ``hourOfWeek``, where hours are first
    summed into their day.
    """
    insights: dict[str, Any] = {
        "peakHour": None,
        "peakDay": None,
        "quietestHour": None,
        "quietestDay": None,
        "avgViewsPerHour": 0,
        "avgViewsPerDay": 0,
    }

    if group_by in ("hour", "hourOfWeek") and rows:
        ranked = _by_views_desc(rows)
        insights["peakHour"] = ranked[0]
        insights["quietestHour"] = ranked[-1]
        insights["avgViewsPerHour"] = round_half_up(_avg(rows, "totalViews"))

    if group_by in ("dayOfWeek", "hourOfWeek"):
        daily = _daily_totals(rows, group_by)
        if daily:
            ranked = _by_views_desc(daily)
            insights["peakDay"] = {**ranked[0], "dayLabel": day_label(ranked[0]["_id"])}
            insights["quietestDay"] = {**ranked[-1], "dayLabel": day_label(ranked[-1]["_id"])}
            insights["avgViewsPerDay"] = round_half_up(_avg(daily, "totalViews"))

    return insights


def peak_summary(rows: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "totalPeriods": len(rows),
        "totalViews": sum(r["totalViews"] for r in rows),
        "totalInteractions": sum(r["totalInteractions"] for r in rows),
        "avgEngagementRate": round_half_up(_avg(rows, "engagementRate")),
    }


# --- Time Series ---


def _change(recent: float, previous: float) -> int:
    if previous <= 0:
        return 0
    return int(round_half_up((recent - previous) / previous * 100))


def time_series_trends(rows: list[dict[str, Any]]) -> dict[str, int]:
    """
    Percent change between the last seven buckets and the seven before.

    Windows are taken by position, not calendar alignment. A zero mean in
    the earlier window reports 0.
    """
    trends = {"viewsTrend": 0, "engagementTrend": 0, "bounceRateTrend": 0}
    if len(rows) < 2:
        return trends

    recent = rows[-TREND_WINDOW:]
    previous = rows[-2 * TREND_WINDOW : -TREND_WINDOW]
    if not previous:
        return trends

    trends["viewsTrend"] = _change(_avg(recent, "totalViews"), _avg(previous, "totalViews"))
    trends["engagementTrend"] = _change(
        _avg(recent, "avgEngagementScore"), _avg(previous, "avgEngagementScore")
    )
    trends["bounceRateTrend"] = _change(_avg(recent, "bounceRate"), _avg(previous, "bounceRate"))
    return trends


def time_series_summary(rows: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "totalViews": sum(r["totalViews"] for r in rows),
        "totalUniqueViewers": sum(r["uniqueViewers"] for r in rows),
        "avgEngagementScore": round_half_up(_avg(rows, "avgEngagementScore"), 2),
        "avgTimeOnPage": round_half_up(_avg(rows, "avgTimeOnPage"), 1),
        "avgBounceRate": round_half_up(_avg(rows, "bounceRate")),
        "totalPeriods": len(rows),
    }
