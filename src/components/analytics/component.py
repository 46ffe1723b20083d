"""
Analytics component - event ingestion and aggregation.

Records view/interaction events against a target and answers grouped
read queries over them: location, links, peak hours, time series,
overview, and the composed dashboard, real-time and export bundles.

Invariants:
- Queries are validated before the store is touched; all violations are
  reported together
- Empty ranges produce zeroed metrics, never errors
- Composed queries return the sections that succeeded
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from typing import Any
from zoneinfo import available_timezones

from . import _aggregate as agg
from . import _insights as ins
from ._impl import (
    AnalyticsIngestionService,
    DefaultTimePort,
    IngestionConfig,
    create_analytics_ingestion_service,
    validate_choice,
    validate_entity_id,
)
from ._orchestrate import fan_out
from .models import (
    DASHBOARD_TIMEFRAMES,
    EXPORT_FORMATS,
    EXPORT_METRICS,
    LINK_GROUP_BY,
    LINK_TYPES,
    LOCATION_GROUP_BY,
    PEAK_GROUP_BY,
    TARGET_TYPES,
    TIME_GROUP_BY,
    TIMEFRAMES,
    AnalyticsInputError,
    AnalyticsValidationError,
    DashboardQueryInput,
    ExportQueryInput,
    LinkQueryInput,
    LocationQueryInput,
    OverviewQueryInput,
    PeakHourQueryInput,
    RealTimeQueryInput,
    TimeFilteredQueryInput,
    TrackBatchInput,
    TrackBatchOutput,
    TrackEventInput,
    TrackOutput,
    ViewEvent,
)
from .ports import (
    DeviceParserPort,
    EventStorePort,
    GeoLookupPort,
    RateLimiterPort,
    RulesPort,
    TimePort,
    ViewCounterPort,
)

logger = logging.getLogger(__name__)

# --- Configuration ---


@dataclass(frozen=True)
class AnalyticsConfig:
    """Analytics configuration resolved from rules."""

    ingestion: IngestionConfig = field(default_factory=IngestionConfig)

    location_default_limit: int = 50
    location_max_limit: int = 100
    links_default_limit: int = 20
    links_max_limit: int = 50
    dashboard_section_limit: int = 10
    real_time_top_n: int = 5
    export_locations_limit: int = 50

    real_time_min_minutes: int = 5
    real_time_max_minutes: int = 1440
    real_time_default_minutes: int = 30

    batch_max_items: int = 1000
    raw_data_cap: int = 10000
    branch_timeout_seconds: float = 10.0


def _build_config(rules: RulesPort | None) -> AnalyticsConfig:
    """Build analytics config from rules port."""
    if rules is None:
        return AnalyticsConfig()

    rate_limit = rules.get_rate_limit_config()
    limits = rules.get_limits()
    window = rules.get_real_time_window()

    return AnalyticsConfig(
        ingestion=IngestionConfig(
            enabled=rules.is_enabled(),
            rate_limit_window_seconds=rate_limit.get("window_seconds", 60),
            rate_limit_max_requests=rate_limit.get("max_requests", 600),
            app_domain=rules.get_app_domain(),
        ),
        location_default_limit=limits.get("location_default", 50),
        location_max_limit=limits.get("location_max", 100),
        links_default_limit=limits.get("links_default", 20),
        links_max_limit=limits.get("links_max", 50),
        dashboard_section_limit=limits.get("dashboard_section", 10),
        real_time_top_n=limits.get("real_time_top", 5),
        export_locations_limit=limits.get("export_locations", 50),
        batch_max_items=limits.get("batch_max_items", 1000),
        real_time_min_minutes=window.get("min_minutes", 5),
        real_time_max_minutes=window.get("max_minutes", 1440),
        real_time_default_minutes=window.get("default_minutes", 30),
        raw_data_cap=rules.get_raw_data_cap(),
        branch_timeout_seconds=rules.get_branch_timeout_seconds(),
    )


# --- Query Validation ---


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _target_errors(target_id: Any, target_type: Any) -> list[AnalyticsValidationError]:
    errors = validate_entity_id(target_id, "targetId", required=True)
    errors.extend(validate_choice(target_type, TARGET_TYPES, "targetType", required=True))
    return errors


def _range_errors(
    start: datetime | None,
    end: datetime | None,
    required: bool = False,
) -> list[AnalyticsValidationError]:
    errors: list[AnalyticsValidationError] = []
    if required:
        if start is None:
            errors.append(
                AnalyticsValidationError(
                    code="start_date_required",
                    message="'startDate' is required",
                    field_name="startDate",
                )
            )
        if end is None:
            errors.append(
                AnalyticsValidationError(
                    code="end_date_required",
                    message="'endDate' is required",
                    field_name="endDate",
                )
            )
    start, end = _as_utc(start), _as_utc(end)
    if start is not None and end is not None and end < start:
        errors.append(
            AnalyticsValidationError(
                code="invalid_date_range",
                message="'endDate' must not be before 'startDate'",
                field_name="endDate",
            )
        )
    return errors


def _limit_errors(limit: int | None, maximum: int) -> list[AnalyticsValidationError]:
    if limit is None or 1 <= limit <= maximum:
        return []
    return [
        AnalyticsValidationError(
            code="invalid_limit",
            message=f"'limit' must be between 1 and {maximum}",
            field_name="limit",
        )
    ]


def _raise_if(errors: list[AnalyticsValidationError]) -> None:
    if errors:
        raise AnalyticsInputError(errors)


def _loader(
    event_store: EventStorePort,
    target_id: str,
    target_type: str,
    start: datetime | None,
    end: datetime | None,
) -> Callable[[], list[ViewEvent]]:
    def load() -> list[ViewEvent]:
        return event_store.find(target_id, target_type, start, end)

    return load


# --- Date Ranges ---


def timeframe_range(timeframe: str, now: datetime) -> tuple[datetime, datetime]:
    """
    Default (start, end) for a timeframe shorthand, ending now.

    ``week`` is a rolling seven days; the others start at the beginning of
    the current UTC calendar day, month, quarter or year.
    """
    now = _as_utc(now) or now
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if timeframe == "today":
        return midnight, now
    if timeframe == "week":
        return now - timedelta(days=7), now
    if timeframe == "month":
        return midnight.replace(day=1), now
    if timeframe == "quarter":
        first_month = (now.month - 1) // 3 * 3 + 1
        return midnight.replace(month=first_month, day=1), now
    if timeframe == "year":
        return midnight.replace(month=1, day=1), now
    raise ValueError(f"Unknown timeframe: {timeframe}")


def _resolve_range(
    timeframe: str,
    start: datetime | None,
    end: datetime | None,
    time_port: TimePort,
) -> tuple[datetime | None, datetime | None]:
    # Explicit bounds win; the shorthand only fills in when both are absent
    start, end = _as_utc(start), _as_utc(end)
    if start is not None or end is not None or timeframe == "custom":
        return start, end
    return timeframe_range(timeframe, time_port.now_utc())


# --- Ingest Entry Points ---


def _to_output(
    event: ViewEvent | None, errors: list[AnalyticsValidationError]
) -> TrackOutput:
    if event is None:
        return TrackOutput(
            event_id=None,
            session_id=None,
            engagement_score=None,
            errors=errors,
            success=False,
            rate_limited=any(e.code == "rate_limit_exceeded" for e in errors),
        )
    return TrackOutput(
        event_id=event.id,
        session_id=event.session_id,
        engagement_score=event.metrics.engagement_score,
    )


def _ingestion_service(
    event_store: EventStorePort,
    view_counter: ViewCounterPort | None,
    geo: GeoLookupPort | None,
    device_parser: DeviceParserPort | None,
    rate_limiter: RateLimiterPort | None,
    time_port: TimePort | None,
    rules: RulesPort | None,
) -> AnalyticsIngestionService:
    return create_analytics_ingestion_service(
        event_store=event_store,
        view_counter=view_counter,
        geo=geo,
        device_parser=device_parser,
        rate_limiter=rate_limiter,
        time_port=time_port,
        config=_build_config(rules).ingestion,
    )


def run_track(
    inp: TrackEventInput,
    *,
    event_store: EventStorePort,
    view_counter: ViewCounterPort | None = None,
    geo: GeoLookupPort | None = None,
    device_parser: DeviceParserPort | None = None,
    rate_limiter: RateLimiterPort | None = None,
    time_port: TimePort | None = None,
    rules: RulesPort | None = None,
) -> TrackOutput:
    """
    Record one view or interaction event.

    Args:
        inp: Raw payload plus request context.
        event_store: Event store port.
        view_counter: Business view counter; increments are best-effort.
        geo: IP geolocation port.
        device_parser: User-agent parser port.
        rate_limiter: Optional rate limiter port.
        time_port: Optional time port.
        rules: Optional rules port for configuration.

    Returns:
        TrackOutput with the new event id, session id and engagement score,
        or the full list of validation errors.
    """
    service = _ingestion_service(
        event_store, view_counter, geo, device_parser, rate_limiter, time_port, rules
    )
    event, errors = service.record(inp.data, inp.context, inp.client_key)
    return _to_output(event, errors)


def run_track_batch(
    inp: TrackBatchInput,
    *,
    event_store: EventStorePort,
    view_counter: ViewCounterPort | None = None,
    geo: GeoLookupPort | None = None,
    device_parser: DeviceParserPort | None = None,
    rate_limiter: RateLimiterPort | None = None,
    time_port: TimePort | None = None,
    rules: RulesPort | None = None,
) -> TrackBatchOutput:
    """
    Record several events from one request.

    The batch counts as a single request against the client's rate limit.
    Each item succeeds or fails on its own.

    Raises:
        AnalyticsInputError: if the batch is empty or too large.
    """
    config = _build_config(rules)
    if not inp.items or len(inp.items) > config.batch_max_items:
        raise AnalyticsInputError(
            [
                AnalyticsValidationError(
                    code="invalid_batch_size",
                    message=f"Batch must contain between 1 and {config.batch_max_items} events",
                    field_name="events",
                )
            ]
        )

    service = _ingestion_service(
        event_store, view_counter, geo, device_parser, rate_limiter, time_port, rules
    )
    denied = service.admit(inp.client_key)
    if denied:
        return TrackBatchOutput(results=[_to_output(None, denied) for _ in inp.items])

    results = []
    for item in inp.items:
        if not isinstance(item, dict):
            results.append(
                _to_output(
                    None,
                    [
                        AnalyticsValidationError(
                            code="invalid_type",
                            message="Each event must be an object",
                        )
                    ],
                )
            )
            continue
        event, errors = service.record(item, inp.context)
        results.append(_to_output(event, errors))
    return TrackBatchOutput(results=results)


# --- Query Entry Points ---


def run_location(
    inp: LocationQueryInput,
    *,
    event_store: EventStorePort,
    rules: RulesPort | None = None,
) -> dict[str, Any]:
    """Location analytics with totals."""
    config = _build_config(rules)
    errors = _target_errors(inp.target_id, inp.target_type)
    errors.extend(validate_choice(inp.group_by, LOCATION_GROUP_BY, "groupBy"))
    errors.extend(_range_errors(inp.start_date, inp.end_date))
    errors.extend(_limit_errors(inp.limit, config.location_max_limit))
    _raise_if(errors)
    inp = replace(inp, target_id=inp.target_id.lower())

    start, end = _as_utc(inp.start_date), _as_utc(inp.end_date)
    limit = inp.limit or config.location_default_limit
    rows = agg.aggregate_locations(
        event_store.find(inp.target_id, inp.target_type, start, end),
        group_by=inp.group_by,
        limit=limit,
    )
    return {
        "analytics": rows,
        "summary": ins.location_summary(rows),
        "filters": {
            "targetId": inp.target_id,
            "targetType": inp.target_type,
            "groupBy": inp.group_by,
            "startDate": _iso(start),
            "endDate": _iso(end),
        },
    }


def run_links(
    inp: LinkQueryInput,
    *,
    event_store: EventStorePort,
    rules: RulesPort | None = None,
) -> dict[str, Any]:
    """Link click analytics with top links and click-through summary."""
    config = _build_config(rules)
    errors = _target_errors(inp.target_id, inp.target_type)
    errors.extend(validate_choice(inp.group_by, LINK_GROUP_BY, "groupBy"))
    errors.extend(validate_choice(inp.link_type, LINK_TYPES, "linkType"))
    errors.extend(_range_errors(inp.start_date, inp.end_date))
    errors.extend(_limit_errors(inp.limit, config.links_max_limit))
    _raise_if(errors)
    inp = replace(inp, target_id=inp.target_id.lower())

    start, end = _as_utc(inp.start_date), _as_utc(inp.end_date)
    rows = agg.aggregate_links(
        event_store.find(inp.target_id, inp.target_type, start, end),
        group_by=inp.group_by,
        link_type=inp.link_type,
        limit=inp.limit or config.links_default_limit,
    )
    return {
        "analytics": rows,
        "topLinks": ins.top_links(rows),
        "summary": ins.link_summary(rows),
        "filters": {
            "targetId": inp.target_id,
            "targetType": inp.target_type,
            "linkType": inp.link_type,
            "groupBy": inp.group_by,
            "startDate": _iso(start),
            "endDate": _iso(end),
        },
    }


def run_peak_hours(
    inp: PeakHourQueryInput,
    *,
    event_store: EventStorePort,
    rules: RulesPort | None = None,
) -> dict[str, Any]:
    """
    Peak-hour analytics with insights.

    Buckets use the UTC timing stored on each event; ``timezone`` is
    validated and echoed back.
    """
    errors = _target_errors(inp.target_id, inp.target_type)
    errors.extend(validate_choice(inp.group_by, PEAK_GROUP_BY, "groupBy"))
    errors.extend(_range_errors(inp.start_date, inp.end_date))
    if inp.timezone != "UTC" and inp.timezone not in available_timezones():
        errors.append(
            AnalyticsValidationError(
                code="invalid_timezone",
                message=f"Unknown timezone '{inp.timezone}'",
                field_name="timezone",
            )
        )
    _raise_if(errors)
    inp = replace(inp, target_id=inp.target_id.lower())

    start, end = _as_utc(inp.start_date), _as_utc(inp.end_date)
    rows = agg.aggregate_peak_hours(
        event_store.find(inp.target_id, inp.target_type, start, end),
        group_by=inp.group_by,
    )
    return {
        "analytics": rows,
        "insights": ins.peak_insights(rows, inp.group_by),
        "summary": ins.peak_summary(rows),
        "filters": {
            "targetId": inp.target_id,
            "targetType": inp.target_type,
            "groupBy": inp.group_by,
            "timezone": inp.timezone,
            "startDate": _iso(start),
            "endDate": _iso(end),
        },
    }


def run_time_filtered(
    inp: TimeFilteredQueryInput,
    *,
    event_store: EventStorePort,
    time_port: TimePort | None = None,
    rules: RulesPort | None = None,
) -> dict[str, Any]:
    """Time-series analytics with trends and summary."""
    errors = _target_errors(inp.target_id, inp.target_type)
    errors.extend(validate_choice(inp.timeframe, TIMEFRAMES, "timeframe"))
    errors.extend(validate_choice(inp.group_by, TIME_GROUP_BY, "groupBy"))
    errors.extend(_range_errors(inp.start_date, inp.end_date))
    _raise_if(errors)
    inp = replace(inp, target_id=inp.target_id.lower())

    start, end = _resolve_range(
        inp.timeframe, inp.start_date, inp.end_date, time_port or DefaultTimePort()
    )
    rows = agg.aggregate_time_series(
        event_store.find(inp.target_id, inp.target_type, start, end),
        group_by=inp.group_by,
    )
    return {
        "analytics": rows,
        "trends": ins.time_series_trends(rows),
        "summary": ins.time_series_summary(rows),
        "filters": {
            "targetId": inp.target_id,
            "targetType": inp.target_type,
            "timeframe": inp.timeframe,
            "groupBy": inp.group_by,
            "startDate": _iso(start),
            "endDate": _iso(end),
        },
    }


def run_overview(
    inp: OverviewQueryInput,
    *,
    event_store: EventStorePort,
    rules: RulesPort | None = None,
) -> dict[str, Any]:
    """Headline totals for a target."""
    errors = _target_errors(inp.target_id, inp.target_type)
    errors.extend(_range_errors(inp.start_date, inp.end_date))
    _raise_if(errors)
    inp = replace(inp, target_id=inp.target_id.lower())

    start, end = _as_utc(inp.start_date), _as_utc(inp.end_date)
    return {
        "overview": agg.overview(event_store.find(inp.target_id, inp.target_type, start, end)),
        "filters": {
            "targetId": inp.target_id,
            "targetType": inp.target_type,
            "startDate": _iso(start),
            "endDate": _iso(end),
        },
    }


# --- Composed Entry Points ---


async def run_dashboard(
    inp: DashboardQueryInput,
    *,
    event_store: EventStorePort,
    time_port: TimePort | None = None,
    rules: RulesPort | None = None,
) -> dict[str, Any]:
    """
    Dashboard bundle.

    Time analytics always run; location, links, peak hours, devices and
    referrals only when their flag is set. A section whose flag is off is
    absent from the result. All sections share one resolved date range.

    Raises:
        AnalyticsInputError: on invalid input.
        AggregationFailedError: if every section failed.
    """
    config = _build_config(rules)
    errors = _target_errors(inp.target_id, inp.target_type)
    errors.extend(validate_choice(inp.timeframe, DASHBOARD_TIMEFRAMES, "timeframe"))
    errors.extend(validate_choice(inp.group_by, TIME_GROUP_BY, "groupBy"))
    errors.extend(
        _range_errors(inp.start_date, inp.end_date, required=inp.timeframe == "custom")
    )
    _raise_if(errors)
    inp = replace(inp, target_id=inp.target_id.lower())

    start, end = _resolve_range(
        inp.timeframe, inp.start_date, inp.end_date, time_port or DefaultTimePort()
    )
    load = _loader(event_store, inp.target_id, inp.target_type, start, end)
    top = config.dashboard_section_limit

    branches: dict[str, Callable[[], Any]] = {
        "timeAnalytics": lambda: agg.aggregate_time_series(load(), group_by=inp.group_by),
    }
    if inp.include_location:
        branches["locationAnalytics"] = lambda: agg.aggregate_locations(
            load(), group_by="country", limit=top
        )
    if inp.include_links:
        branches["linkAnalytics"] = lambda: agg.aggregate_links(
            load(), group_by="linkType", limit=top
        )
    if inp.include_peak_hours:
        branches["peakHoursAnalytics"] = lambda: agg.aggregate_peak_hours(
            load(), group_by="hour"
        )
    if inp.include_devices:
        branches["deviceAnalytics"] = lambda: agg.aggregate_devices(load())
    if inp.include_referrals:
        branches["referralAnalytics"] = lambda: agg.aggregate_referrals(load())

    result = await fan_out(branches, timeout=config.branch_timeout_seconds)

    data: dict[str, Any] = dict(result.sections)
    if result.failures:
        data["failures"] = result.failures
    data["filters"] = {
        "targetId": inp.target_id,
        "targetType": inp.target_type,
        "timeframe": inp.timeframe,
        "groupBy": inp.group_by,
        "startDate": _iso(start),
        "endDate": _iso(end),
    }
    return data


async def run_real_time(
    inp: RealTimeQueryInput,
    *,
    event_store: EventStorePort,
    time_port: TimePort | None = None,
    rules: RulesPort | None = None,
) -> dict[str, Any]:
    """Activity over the last N minutes."""
    config = _build_config(rules)
    errors = _target_errors(inp.target_id, inp.target_type)
    minutes = inp.minutes if inp.minutes is not None else config.real_time_default_minutes
    if not config.real_time_min_minutes <= minutes <= config.real_time_max_minutes:
        errors.append(
            AnalyticsValidationError(
                code="invalid_minutes",
                message=(
                    f"'minutes' must be between {config.real_time_min_minutes} "
                    f"and {config.real_time_max_minutes}"
                ),
                field_name="minutes",
            )
        )
    _raise_if(errors)
    inp = replace(inp, target_id=inp.target_id.lower())

    now = (time_port or DefaultTimePort()).now_utc()
    load = _loader(
        event_store, inp.target_id, inp.target_type, now - timedelta(minutes=minutes), None
    )
    top = config.real_time_top_n

    branches: dict[str, Callable[[], Any]] = {}
    if inp.include_active_users:
        branches["activeUsers"] = lambda: agg.active_users(load())
    if inp.include_page_views:
        branches["pageViews"] = lambda: agg.page_view_timeline(load())
    if inp.include_interactions:
        branches["interactions"] = lambda: agg.interaction_breakdown(load())
    if inp.include_top_countries:
        branches["topCountries"] = lambda: agg.top_countries(load(), limit=top)
    if inp.include_top_pages:
        branches["topPages"] = lambda: agg.top_pages(load(), limit=top)

    result = await fan_out(branches, timeout=config.branch_timeout_seconds)

    data: dict[str, Any] = dict(result.sections)
    if result.failures:
        data["failures"] = result.failures
    data["timestamp"] = now.isoformat()
    data["filters"] = {
        "targetId": inp.target_id,
        "targetType": inp.target_type,
        "minutes": minutes,
    }
    return data


async def run_export(
    inp: ExportQueryInput,
    *,
    event_store: EventStorePort,
    time_port: TimePort | None = None,
    rules: RulesPort | None = None,
) -> dict[str, Any]:
    """
    Export bundle of the requested metrics over an explicit range.

    Raw rows, when requested, are capped and ``rawDataTruncated`` tells
    whether the cap was hit. Tabular rendering happens at the edge.
    """
    config = _build_config(rules)
    errors = _target_errors(inp.target_id, inp.target_type)
    errors.extend(_range_errors(inp.start_date, inp.end_date, required=True))
    errors.extend(validate_choice(inp.format, EXPORT_FORMATS, "format"))
    errors.extend(validate_choice(inp.group_by, TIME_GROUP_BY, "groupBy"))
    if not inp.metrics:
        errors.append(
            AnalyticsValidationError(
                code="metrics_required",
                message="At least one metric is required",
                field_name="metrics",
            )
        )
    for metric in inp.metrics:
        errors.extend(validate_choice(metric, EXPORT_METRICS, "metrics"))
    _raise_if(errors)
    inp = replace(inp, target_id=inp.target_id.lower())

    start, end = _as_utc(inp.start_date), _as_utc(inp.end_date)
    load = _loader(event_store, inp.target_id, inp.target_type, start, end)

    queries: dict[str, Callable[[], Any]] = {
        "views": lambda: agg.aggregate_time_series(load(), group_by=inp.group_by),
        "clicks": lambda: agg.aggregate_links(
            load(), group_by="linkType", limit=config.links_default_limit
        ),
        "engagement": lambda: agg.engagement_summary(load()),
        "locations": lambda: agg.aggregate_locations(
            load(), group_by="country", limit=config.export_locations_limit
        ),
        "devices": lambda: agg.count_by_device(load()),
        "referrals": lambda: agg.count_by_referral(load()),
        "peakHours": lambda: agg.aggregate_peak_hours(load(), group_by="hour"),
    }
    branches = {metric: queries[metric] for metric in dict.fromkeys(inp.metrics)}
    if inp.include_raw_data:
        branches["rawData"] = lambda: _raw_rows(load(), config.raw_data_cap)

    result = await fan_out(branches, timeout=config.branch_timeout_seconds)

    data: dict[str, Any] = dict(result.sections)
    if "rawData" in data:
        rows, truncated = data["rawData"]
        data["rawData"] = rows
        data["rawDataTruncated"] = truncated
    if result.failures:
        data["failures"] = result.failures
    data["exportInfo"] = {
        "format": inp.format,
        "startDate": _iso(start),
        "endDate": _iso(end),
        "metrics": list(inp.metrics),
        "generatedAt": (time_port or DefaultTimePort()).now_utc().isoformat(),
    }
    return data


def _raw_rows(events: list[ViewEvent], cap: int) -> tuple[list[dict[str, Any]], bool]:
    ordered = sorted(events, key=lambda e: e.created_at)
    truncated = len(ordered) > cap
    if truncated:
        logger.info("Raw export truncated to %d of %d events", cap, len(ordered))
    return [e.to_dict() for e in ordered[:cap]], truncated


# --- Dispatcher ---

QueryInput = (
    LocationQueryInput
    | LinkQueryInput
    | PeakHourQueryInput
    | TimeFilteredQueryInput
    | OverviewQueryInput
)


def run(
    inp: TrackEventInput | QueryInput,
    *,
    event_store: EventStorePort,
    view_counter: ViewCounterPort | None = None,
    geo: GeoLookupPort | None = None,
    device_parser: DeviceParserPort | None = None,
    rate_limiter: RateLimiterPort | None = None,
    time_port: TimePort | None = None,
    rules: RulesPort | None = None,
) -> TrackOutput | dict[str, Any]:
    """
    Main entry point for the synchronous analytics operations.

    Dispatches to the appropriate handler based on input type. The composed
    queries (dashboard, real-time, export) are coroutines and are called
    directly.
    """
    if isinstance(inp, TrackEventInput):
        return run_track(
            inp,
            event_store=event_store,
            view_counter=view_counter,
            geo=geo,
            device_parser=device_parser,
            rate_limiter=rate_limiter,
            time_port=time_port,
            rules=rules,
        )
    elif isinstance(inp, LocationQueryInput):
        return run_location(inp, event_store=event_store, rules=rules)
    elif isinstance(inp, LinkQueryInput):
        return run_links(inp, event_store=event_store, rules=rules)
    elif isinstance(inp, PeakHourQueryInput):
        return run_peak_hours(inp, event_store=event_store, rules=rules)
    elif isinstance(inp, TimeFilteredQueryInput):
        return run_time_filtered(inp, event_store=event_store, time_port=time_port, rules=rules)
    elif isinstance(inp, OverviewQueryInput):
        return run_overview(inp, event_store=event_store, rules=rules)
    else:
        raise ValueError(f"Unknown input type: {type(inp)}")
