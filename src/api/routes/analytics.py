"""
Analytics query API.

Read endpoints over recorded view events: location, links, peak hours,
time series, overview, and the composed dashboard, real-time and export
bundles. Access control belongs to whatever mounts this router.

Every success is wrapped as ``{"success": true, "data": {...}}``; invalid
input surfaces as AnalyticsInputError and is rendered by the app's
exception handler.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import StreamingResponse

from src.adapters.clock import SystemClock
from src.adapters.export.tabular import to_csv, to_xlsx
from src.adapters.sqlite_db import SQLiteEventRepo
from src.api.deps import (
    AnalyticsRulesAdapter,
    get_analytics_rules,
    get_clock,
    get_event_store,
)
from src.components.analytics import (
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
    run_dashboard,
    run_export,
    run_links,
    run_location,
    run_overview,
    run_peak_hours,
    run_real_time,
    run_time_filtered,
)

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# --- Helper Functions ---


def parse_datetime(value: str, field_name: str) -> datetime:
    """Parse an ISO date or datetime; naive values are taken as UTC."""
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(raw)
    except ValueError as e:
        raise AnalyticsInputError(
            [
                AnalyticsValidationError(
                    code="invalid_date",
                    message=f"'{field_name}' must be an ISO 8601 date",
                    field_name=field_name,
                )
            ]
        ) from e
    return dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt


def parse_range(
    start: str | None, end: str | None
) -> tuple[datetime | None, datetime | None]:
    """Parse both bounds, reporting every malformed one together."""
    errors: list[AnalyticsValidationError] = []
    parsed: list[datetime | None] = []
    for value, name in ((start, "startDate"), (end, "endDate")):
        if value is None or value == "":
            parsed.append(None)
            continue
        try:
            parsed.append(parse_datetime(value, name))
        except AnalyticsInputError as e:
            errors.extend(e.errors)
            parsed.append(None)
    if errors:
        raise AnalyticsInputError(errors)
    return parsed[0], parsed[1]


def parse_metrics(metrics: str | None, default: list[str]) -> tuple[str, ...]:
    if metrics is None:
        return tuple(default)
    return tuple(m.strip() for m in metrics.split(",") if m.strip())


def ok(data: dict[str, Any]) -> dict[str, Any]:
    return {"success": True, "data": data}


# --- Routes ---


@router.get("/location")
def get_location_analytics(
    target_id: str = Query(..., alias="targetId"),
    target_type: str = Query("business", alias="targetType"),
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    group_by: str = Query("country", alias="groupBy", description="country, region, city"),
    limit: int | None = Query(None),
    event_store: SQLiteEventRepo = Depends(get_event_store),
    rules: AnalyticsRulesAdapter = Depends(get_analytics_rules),
) -> dict[str, Any]:
    """Views grouped by country, region or city."""
    start, end = parse_range(start_date, end_date)
    data = run_location(
        LocationQueryInput(
            target_id=target_id,
            target_type=target_type,
            start_date=start,
            end_date=end,
            group_by=group_by,
            limit=limit,
        ),
        event_store=event_store,
        rules=rules,
    )
    return ok(data)


@router.get("/links")
def get_link_analytics(
    target_id: str = Query(..., alias="targetId"),
    target_type: str = Query("business", alias="targetType"),
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    link_type: str | None = Query(None, alias="linkType"),
    group_by: str = Query("linkType", alias="groupBy", description="linkType, platform"),
    limit: int | None = Query(None),
    event_store: SQLiteEventRepo = Depends(get_event_store),
    rules: AnalyticsRulesAdapter = Depends(get_analytics_rules),
) -> dict[str, Any]:
    """Link clicks grouped by link type or social platform."""
    start, end = parse_range(start_date, end_date)
    data = run_links(
        LinkQueryInput(
            target_id=target_id,
            target_type=target_type,
            start_date=start,
            end_date=end,
            link_type=link_type,
            group_by=group_by,
            limit=limit,
        ),
        event_store=event_store,
        rules=rules,
    )
    return ok(data)


@router.get("/peak-hours")
def get_peak_hours(
    target_id: str = Query(..., alias="targetId"),
    target_type: str = Query("business", alias="targetType"),
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    group_by: str = Query("hour", alias="groupBy", description="hour, dayOfWeek, hourOfWeek"),
    timezone: str = Query("UTC"),
    event_store: SQLiteEventRepo = Depends(get_event_store),
    rules: AnalyticsRulesAdapter = Depends(get_analytics_rules),
) -> dict[str, Any]:
    """Activity by hour, weekday or hour-of-week, with peak/quiet insights."""
    start, end = parse_range(start_date, end_date)
    data = run_peak_hours(
        PeakHourQueryInput(
            target_id=target_id,
            target_type=target_type,
            start_date=start,
            end_date=end,
            group_by=group_by,
            timezone=timezone,
        ),
        event_store=event_store,
        rules=rules,
    )
    return ok(data)


@router.get("/time-filtered")
def get_time_filtered(
    target_id: str = Query(..., alias="targetId"),
    target_type: str = Query("business", alias="targetType"),
    timeframe: str = Query("month", description="week, month, year"),
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    group_by: str = Query("day", alias="groupBy", description="hour, day, week, month"),
    event_store: SQLiteEventRepo = Depends(get_event_store),
    clock: SystemClock = Depends(get_clock),
    rules: AnalyticsRulesAdapter = Depends(get_analytics_rules),
) -> dict[str, Any]:
    """Time series with period-over-period trends."""
    start, end = parse_range(start_date, end_date)
    data = run_time_filtered(
        TimeFilteredQueryInput(
            target_id=target_id,
            target_type=target_type,
            timeframe=timeframe,
            start_date=start,
            end_date=end,
            group_by=group_by,
        ),
        event_store=event_store,
        time_port=clock,
        rules=rules,
    )
    return ok(data)


@router.get("/overview")
def get_overview(
    target_id: str = Query(..., alias="targetId"),
    target_type: str = Query("business", alias="targetType"),
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    event_store: SQLiteEventRepo = Depends(get_event_store),
    rules: AnalyticsRulesAdapter = Depends(get_analytics_rules),
) -> dict[str, Any]:
    start, end = parse_range(start_date, end_date)
    data = run_overview(
        OverviewQueryInput(
            target_id=target_id,
            target_type=target_type,
            start_date=start,
            end_date=end,
        ),
        event_store=event_store,
        rules=rules,
    )
    return ok(data)


@router.get("/dashboard")
async def get_dashboard(
    target_id: str = Query(..., alias="targetId"),
    target_type: str = Query("business", alias="targetType"),
    timeframe: str = Query("month", description="today, week, month, quarter, year, custom"),
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    group_by: str = Query("day", alias="groupBy"),
    include_location: bool = Query(True, alias="includeLocation"),
    include_devices: bool = Query(True, alias="includeDevices"),
    include_referrals: bool = Query(True, alias="includeReferrals"),
    include_peak_hours: bool = Query(True, alias="includePeakHours"),
    include_links: bool = Query(True, alias="includeLinks"),
    event_store: SQLiteEventRepo = Depends(get_event_store),
    clock: SystemClock = Depends(get_clock),
    rules: AnalyticsRulesAdapter = Depends(get_analytics_rules),
) -> dict[str, Any]:
    """
    Composed dashboard.

    Sections run concurrently; a failed section is listed under
    ``failures`` while the others are still returned.
    """
    start, end = parse_range(start_date, end_date)
    data = await run_dashboard(
        DashboardQueryInput(
            target_id=target_id,
            target_type=target_type,
            timeframe=timeframe,
            start_date=start,
            end_date=end,
            group_by=group_by,
            include_location=include_location,
            include_devices=include_devices,
            include_referrals=include_referrals,
            include_peak_hours=include_peak_hours,
            include_links=include_links,
        ),
        event_store=event_store,
        time_port=clock,
        rules=rules,
    )
    return ok(data)


@router.get("/real-time")
async def get_real_time(
    target_id: str = Query(..., alias="targetId"),
    target_type: str = Query("business", alias="targetType"),
    minutes: int | None = Query(None),
    include_active_users: bool = Query(True, alias="includeActiveUsers"),
    include_page_views: bool = Query(True, alias="includePageViews"),
    include_interactions: bool = Query(True, alias="includeInteractions"),
    include_top_pages: bool = Query(False, alias="includeTopPages"),
    include_top_countries: bool = Query(False, alias="includeTopCountries"),
    event_store: SQLiteEventRepo = Depends(get_event_store),
    clock: SystemClock = Depends(get_clock),
    rules: AnalyticsRulesAdapter = Depends(get_analytics_rules),
) -> dict[str, Any]:
    """Activity in the last ``minutes`` minutes."""
    data = await run_real_time(
        RealTimeQueryInput(
            target_id=target_id,
            target_type=target_type,
            minutes=minutes,
            include_active_users=include_active_users,
            include_page_views=include_page_views,
            include_interactions=include_interactions,
            include_top_pages=include_top_pages,
            include_top_countries=include_top_countries,
        ),
        event_store=event_store,
        time_port=clock,
        rules=rules,
    )
    return ok(data)


@router.get("/export", response_model=None)
async def export_analytics(
    target_id: str = Query(..., alias="targetId"),
    target_type: str = Query("business", alias="targetType"),
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    format: str = Query("json", description="json, csv, xlsx"),
    metrics: str | None = Query(None, description="Comma-separated metric names"),
    include_raw_data: bool = Query(False, alias="includeRawData"),
    group_by: str = Query("day", alias="groupBy"),
    event_store: SQLiteEventRepo = Depends(get_event_store),
    clock: SystemClock = Depends(get_clock),
    rules: AnalyticsRulesAdapter = Depends(get_analytics_rules),
) -> dict[str, Any] | Response:
    """
    Export the requested metrics for an explicit date range.

    ``json`` is returned inline; ``csv`` and ``xlsx`` come back as file
    attachments.
    """
    start, end = parse_range(start_date, end_date)
    data = await run_export(
        ExportQueryInput(
            target_id=target_id,
            target_type=target_type,
            start_date=start,
            end_date=end,
            format=format,
            include_raw_data=include_raw_data,
            group_by=group_by,
            metrics=parse_metrics(metrics, rules.get_default_export_metrics()),
        ),
        event_store=event_store,
        time_port=clock,
        rules=rules,
    )

    if format == "json":
        return ok(data)

    stamp = clock.now_utc().strftime("%Y%m%d")
    filename = f"analytics_{target_id}_{stamp}.{format}"
    headers = {"Content-Disposition": f"attachment; filename={filename}"}

    if format == "csv":
        return StreamingResponse(
            iter([to_csv(data)]),
            media_type="text/csv",
            headers=headers,
        )
    return Response(content=to_xlsx(data), media_type=XLSX_MEDIA_TYPE, headers=headers)
