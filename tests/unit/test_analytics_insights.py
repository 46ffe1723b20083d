"""
Tests for summaries, insights and trends computed over aggregation rows.
"""

from __future__ import annotations

from typing import Any

import pytest

from src.components.analytics import _insights as ins


def series_row(views: int, score: float = 0, bounce: float = 0, **extra: Any) -> dict[str, Any]:
    return {
        "totalViews": views,
        "uniqueViewers": extra.get("viewers", 0),
        "avgEngagementScore": score,
        "avgTimeOnPage": extra.get("time", 0),
        "bounceRate": bounce,
    }


class TestRoundHalfUp:
    @pytest.mark.parametrize(
        ("value", "digits", "expected"),
        [(2.5, 0, 3), (3.5, 0, 4), (-2.5, 0, -2), (0.125, 2, 0.13), (12.25, 1, 12.3)],
    )
    def test_rounding(self, value: float, digits: int, expected: float) -> None:
        assert ins.round_half_up(value, digits) == pytest.approx(expected)

    def test_integer_result(self) -> None:
        assert isinstance(ins.round_half_up(2.4), int)


class TestLocationSummary:
    def test_totals(self) -> None:
        rows = [
            {"totalViews": 10, "uniqueViewers": 4, "totalInteractions": 3, "engagementRate": 30},
            {"totalViews": 5, "uniqueViewers": 2, "totalInteractions": 0, "engagementRate": 25},
        ]
        assert ins.location_summary(rows) == {
            "totalViews": 15,
            "totalUniqueViewers": 6,
            "totalInteractions": 3,
            "totalLocations": 2,
            "avgEngagementRate": 28,  # 27.5 rounds up
        }

    def test_empty(self) -> None:
        assert ins.location_summary([])["avgEngagementRate"] == 0


class TestLinkSummary:
    def test_summary(self) -> None:
        rows = [
            {"_id": "website", "totalClicks": 2, "uniqueClickers": 1, "avgEngagementScore": 41},
            {"_id": "phone", "totalClicks": 6, "uniqueClickers": 4, "avgEngagementScore": 50},
        ]
        assert ins.link_summary(rows) == {
            "totalClicks": 8,
            "totalUniqueClickers": 5,
            "totalLinkTypes": 2,
            "avgEngagementScore": 46,  # 45.5 rounds up
            "clickThroughRate": 63,  # 62.5 rounds up
        }
        assert [r["_id"] for r in ins.top_links(rows)] == ["phone", "website"]

    def test_no_clicks(self) -> None:
        summary = ins.link_summary([])
        assert summary["clickThroughRate"] == 0
        assert summary["totalLinkTypes"] == 0


class TestPeakInsights:
    """Busiest/quietest periods."""

    def test_hour(self) -> None:
        rows = [
            {"_id": 8, "totalViews": 3},
            {"_id": 12, "totalViews": 9},
            {"_id": 18, "totalViews": 3},
        ]
        insights = ins.peak_insights(rows, "hour")
        assert insights["peakHour"]["_id"] == 12
        # Ties keep chronological order, so the last of the equals is quietest
        assert insights["quietestHour"]["_id"] == 18
        assert insights["avgViewsPerHour"] == 5
        assert insights["peakDay"] is None

    def test_day_of_week_labels(self) -> None:
        rows = [{"_id": 0, "totalViews": 1}, {"_id": 5, "totalViews": 7}]
        insights = ins.peak_insights(rows, "dayOfWeek")
        assert insights["peakDay"]["dayLabel"] == "Friday"
        assert insights["quietestDay"]["dayLabel"] == "Sunday"
        assert insights["avgViewsPerDay"] == 4
        assert insights["peakHour"] is None

    def test_hour_of_week_sums_days(self) -> None:
        rows = [
            {"_id": {"hour": 9, "dayOfWeek": 1}, "totalViews": 4},
            {"_id": {"hour": 17, "dayOfWeek": 1}, "totalViews": 4},
            {"_id": {"hour": 12, "dayOfWeek": 6}, "totalViews": 6},
        ]
        insights = ins.peak_insights(rows, "hourOfWeek")
        assert insights["peakHour"]["_id"] == {"hour": 12, "dayOfWeek": 6}
        assert insights["peakDay"] == {"_id": 1, "totalViews": 8, "dayLabel": "Monday"}
        assert insights["quietestDay"]["_id"] == 6

    def test_empty(self) -> None:
        insights = ins.peak_insights([], "hourOfWeek")
        assert insights["peakHour"] is None
        assert insights["peakDay"] is None
        assert insights["avgViewsPerDay"] == 0

    def test_summary(self) -> None:
        rows = [
            {"totalViews": 4, "totalInteractions": 1, "engagementRate": 25},
            {"totalViews": 2, "totalInteractions": 1, "engagementRate": 50},
        ]
        assert ins.peak_summary(rows) == {
            "totalPeriods": 2,
            "totalViews": 6,
            "totalInteractions": 2,
            "avgEngagementRate": 38,
        }


class TestTimeSeriesTrends:
    """Last seven buckets against the seven before."""

    def test_needs_a_previous_window(self) -> None:
        rows = [series_row(10) for _ in range(7)]
        assert ins.time_series_trends(rows) == {
            "viewsTrend": 0,
            "engagementTrend": 0,
            "bounceRateTrend": 0,
        }

    def test_percent_change(self) -> None:
        previous = [series_row(10, score=40, bounce=20) for _ in range(7)]
        recent = [series_row(15, score=30, bounce=20) for _ in range(7)]
        trends = ins.time_series_trends(previous + recent)
        assert trends == {"viewsTrend": 50, "engagementTrend": -25, "bounceRateTrend": 0}

    def test_partial_previous_window(self) -> None:
        rows = [series_row(4), series_row(4)] + [series_row(6) for _ in range(7)]
        assert ins.time_series_trends(rows)["viewsTrend"] == 50

    def test_zero_previous_mean(self) -> None:
        rows = [series_row(0)] + [series_row(5) for _ in range(7)]
        assert ins.time_series_trends(rows)["viewsTrend"] == 0

    def test_summary(self) -> None:
        rows = [
            series_row(3, score=10.125, bounce=33.33, viewers=2, time=12.25),
            series_row(1, score=20, bounce=0, viewers=1, time=0),
        ]
        assert ins.time_series_summary(rows) == {
            "totalViews": 4,
            "totalUniqueViewers": 3,
            "avgEngagementScore": pytest.approx(15.06),
            "avgTimeOnPage": pytest.approx(6.1),
            "avgBounceRate": 17,
            "totalPeriods": 2,
        }
