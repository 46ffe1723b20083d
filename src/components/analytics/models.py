"""
Analytics component input/output models.

Event entities live in src.core.entities and are re-exported here so
callers can import everything analytics-related from one place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, get_args

from src.core.entities import (  # noqa: F401
    DEVICE_TYPES,
    INTERACTION_TYPES,
    LINK_TYPES,
    REFERRAL_SOURCES,
    SOCIAL_PLATFORMS,
    TARGET_TYPES,
    CustomDimension,
    DeviceInfo,
    EventMetadata,
    EventMetrics,
    LinkData,
    Location,
    Referral,
    Timing,
    ViewEvent,
)

# --- Validation Error ---


@dataclass(frozen=True)
class AnalyticsValidationError:
    """Analytics validation error."""

    code: str
    message: str
    field_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "field": self.field_name}


class AnalyticsInputError(Exception):
    """Raised when an ingest or query input fails validation.

    Carries every violation found, not just the first.
    """

    def __init__(self, errors: list[AnalyticsValidationError]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(e.message for e in self.errors) or "Validation error")


class AggregationFailedError(Exception):
    """Raised when every branch of a composed query failed."""

    def __init__(self, sections: list[str]) -> None:
        self.sections = list(sections)
        super().__init__(f"All analytics sections failed: {', '.join(self.sections)}")


class IngestRejectedError(Exception):
    """Raised when ingest is refused before validation (rate limit, kill switch)."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(message)


# --- Enums ---


LocationGroupBy = Literal["country", "region", "city"]
LinkGroupBy = Literal["linkType", "platform"]
PeakGroupBy = Literal["hour", "dayOfWeek", "hourOfWeek"]
TimeGroupBy = Literal["hour", "day", "week", "month"]
Timeframe = Literal["week", "month", "year"]
DashboardTimeframe = Literal["today", "week", "month", "quarter", "year", "custom"]
ExportFormat = Literal["json", "csv", "xlsx"]
ExportMetric = Literal[
    "views", "clicks", "engagement", "locations", "devices", "referrals", "peakHours"
]

LOCATION_GROUP_BY: tuple[str, ...] = get_args(LocationGroupBy)
LINK_GROUP_BY: tuple[str, ...] = get_args(LinkGroupBy)
PEAK_GROUP_BY: tuple[str, ...] = get_args(PeakGroupBy)
TIME_GROUP_BY: tuple[str, ...] = get_args(TimeGroupBy)
TIMEFRAMES: tuple[str, ...] = get_args(Timeframe)
DASHBOARD_TIMEFRAMES: tuple[str, ...] = get_args(DashboardTimeframe)
EXPORT_FORMATS: tuple[str, ...] = get_args(ExportFormat)
EXPORT_METRICS: tuple[str, ...] = get_args(ExportMetric)


# --- Ingest Models ---


@dataclass(frozen=True)
class RequestContext:
    """Transport-level facts about the tracking request."""

    ip_address: str | None = None
    user_agent: str | None = None
    referer: str | None = None
    query: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TrackEventInput:
    """Input for recording one event: the raw JSON body plus request context."""

    data: dict[str, Any]
    context: RequestContext = field(default_factory=RequestContext)
    client_key: str | None = None


@dataclass(frozen=True)
class TrackOutput:
    """Result of recording one event."""

    event_id: str | None
    session_id: str | None
    engagement_score: int | None
    errors: list[AnalyticsValidationError] = field(default_factory=list)
    success: bool = True
    rate_limited: bool = False


@dataclass(frozen=True)
class TrackBatchInput:
    """Several tracking payloads sharing one request context."""

    items: list[dict[str, Any]]
    context: RequestContext = field(default_factory=RequestContext)
    client_key: str | None = None


@dataclass(frozen=True)
class TrackBatchOutput:
    """Per-item results, in input order."""

    results: list[TrackOutput]

    @property
    def accepted(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def rejected(self) -> int:
        return len(self.results) - self.accepted


# --- Query Inputs ---


@dataclass(frozen=True)
class LocationQueryInput:
    target_id: str
    target_type: str = "business"
    start_date: datetime | None = None
    end_date: datetime | None = None
    group_by: str = "country"
    limit: int | None = None


@dataclass(frozen=True)
class LinkQueryInput:
    target_id: str
    target_type: str = "business"
    start_date: datetime | None = None
    end_date: datetime | None = None
    link_type: str | None = None
    group_by: str = "linkType"
    limit: int | None = None


@dataclass(frozen=True)
class PeakHourQueryInput:
    target_id: str
    target_type: str = "business"
    start_date: datetime | None = None
    end_date: datetime | None = None
    group_by: str = "hour"
    timezone: str = "UTC"


@dataclass(frozen=True)
class TimeFilteredQueryInput:
    target_id: str
    target_type: str = "business"
    timeframe: str = "month"
    start_date: datetime | None = None
    end_date: datetime | None = None
    group_by: str = "day"


@dataclass(frozen=True)
class OverviewQueryInput:
    target_id: str
    target_type: str = "business"
    start_date: datetime | None = None
    end_date: datetime | None = None


@dataclass(frozen=True)
class DashboardQueryInput:
    target_id: str
    target_type: str = "business"
    timeframe: str = "month"
    start_date: datetime | None = None
    end_date: datetime | None = None
    group_by: str = "day"
    include_location: bool = True
    include_devices: bool = True
    include_referrals: bool = True
    include_peak_hours: bool = True
    include_links: bool = True


@dataclass(frozen=True)
class RealTimeQueryInput:
    target_id: str
    target_type: str = "business"
    minutes: int | None = None
    include_active_users: bool = True
    include_page_views: bool = True
    include_interactions: bool = True
    include_top_pages: bool = False
    include_top_countries: bool = False


@dataclass(frozen=True)
class ExportQueryInput:
    target_id: str
    start_date: datetime | None
    end_date: datetime | None
    target_type: str = "business"
    format: str = "json"
    include_raw_data: bool = False
    group_by: str = "day"
    metrics: tuple[str, ...] = ("views", "clicks", "engagement")


# --- Query Outputs ---


@dataclass(frozen=True)
class BranchResult:
    """Outcome of one fan-out branch: either a value or an error description."""

    section: str
    value: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class CompositeOutput:
    """Merged sections of a dashboard/real-time/export composition."""

    sections: dict[str, Any]
    failures: list[dict[str, str]] = field(default_factory=list)
