"""
Analytics ingestion API routes.

Public endpoints that record view/interaction events. The request body is
taken as raw JSON so that unknown and server-derived fields can be
reported back instead of silently dropped.

Rate limited per client (X-Forwarded-For or peer address).
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Request, status
from pydantic import BaseModel, Field

from src.adapters.clock import SystemClock
from src.adapters.sqlite_db import SQLiteEventRepo, SQLiteViewCounter
from src.api.deps import (
    AnalyticsRulesAdapter,
    get_analytics_rules,
    get_clock,
    get_client_key,
    get_device_parser,
    get_event_store,
    get_geo,
    get_rate_limiter,
    get_view_counter,
)
from src.components.analytics import (
    AnalyticsInputError,
    GeoIPResolver,
    InMemoryRateLimiter,
    IngestRejectedError,
    RequestContext,
    TrackBatchInput,
    TrackEventInput,
    TrackOutput,
    UserAgentDeviceParser,
    run_track,
    run_track_batch,
)

router = APIRouter()


# --- Response Models ---


class TrackData(BaseModel):
    logId: str
    sessionId: str
    engagementScore: int


class TrackResponse(BaseModel):
    """Success response for a single tracked event."""

    success: bool = True
    message: str = "View tracked successfully"
    data: TrackData


class ErrorItem(BaseModel):
    code: str
    message: str
    field: str | None = None


class ErrorResponse(BaseModel):
    """Validation error response."""

    success: bool = False
    message: str = "Validation error"
    errors: list[ErrorItem]


class BatchItemResult(BaseModel):
    index: int
    success: bool
    logId: str | None = None
    sessionId: str | None = None
    engagementScore: int | None = None
    errors: list[ErrorItem] = Field(default_factory=list)


class BatchResponse(BaseModel):
    success: bool
    accepted: int
    rejected: int
    results: list[BatchItemResult]


# --- Helpers ---


def _request_context(request: Request) -> RequestContext:
    return RequestContext(
        ip_address=get_client_key(request),
        user_agent=request.headers.get("user-agent"),
        referer=request.headers.get("referer"),
        query=dict(request.query_params),
    )


def _raise_for_gate(output: TrackOutput) -> None:
    if output.rate_limited:
        raise IngestRejectedError(status.HTTP_429_TOO_MANY_REQUESTS, "Rate limit exceeded")
    if any(e.code == "analytics_disabled" for e in output.errors):
        raise IngestRejectedError(
            status.HTTP_503_SERVICE_UNAVAILABLE, "Analytics ingestion is disabled"
        )


# --- Routes ---


@router.post(
    "/track",
    status_code=status.HTTP_201_CREATED,
    response_model=TrackResponse,
    responses={
        400: {"model": ErrorResponse},
        429: {"description": "Rate limit exceeded"},
    },
)
def track_view(
    request: Request,
    body: dict[str, Any] = Body(...),
    event_store: SQLiteEventRepo = Depends(get_event_store),
    view_counter: SQLiteViewCounter = Depends(get_view_counter),
    geo: GeoIPResolver = Depends(get_geo),
    device_parser: UserAgentDeviceParser = Depends(get_device_parser),
    rate_limiter: InMemoryRateLimiter = Depends(get_rate_limiter),
    clock: SystemClock = Depends(get_clock),
    rules: AnalyticsRulesAdapter = Depends(get_analytics_rules),
) -> TrackResponse:
    """
    Record one view or interaction.

    Location, device, referral, timing and engagement score are derived
    here; sending any of them is a validation error.
    """
    output = run_track(
        TrackEventInput(
            data=body,
            context=_request_context(request),
            client_key=get_client_key(request),
        ),
        event_store=event_store,
        view_counter=view_counter,
        geo=geo,
        device_parser=device_parser,
        rate_limiter=rate_limiter,
        time_port=clock,
        rules=rules,
    )

    if not output.success:
        _raise_for_gate(output)
        raise AnalyticsInputError(output.errors)

    return TrackResponse(
        data=TrackData(
            logId=output.event_id or "",
            sessionId=output.session_id or "",
            engagementScore=output.engagement_score or 0,
        )
    )


@router.post(
    "/track/batch",
    response_model=BatchResponse,
    responses={
        400: {"model": ErrorResponse},
        429: {"description": "Rate limit exceeded"},
    },
)
def track_batch(
    request: Request,
    events: list[Any] = Body(...),
    event_store: SQLiteEventRepo = Depends(get_event_store),
    view_counter: SQLiteViewCounter = Depends(get_view_counter),
    geo: GeoIPResolver = Depends(get_geo),
    device_parser: UserAgentDeviceParser = Depends(get_device_parser),
    rate_limiter: InMemoryRateLimiter = Depends(get_rate_limiter),
    clock: SystemClock = Depends(get_clock),
    rules: AnalyticsRulesAdapter = Depends(get_analytics_rules),
) -> BatchResponse:
    """
    Record several events in one request.

    Returns a result for each event, in order.
    """
    output = run_track_batch(
        TrackBatchInput(
            items=events,
            context=_request_context(request),
            client_key=get_client_key(request),
        ),
        event_store=event_store,
        view_counter=view_counter,
        geo=geo,
        device_parser=device_parser,
        rate_limiter=rate_limiter,
        time_port=clock,
        rules=rules,
    )

    if output.results and not output.results[0].success:
        _raise_for_gate(output.results[0])

    results = [
        BatchItemResult(
            index=i,
            success=r.success,
            logId=r.event_id,
            sessionId=r.session_id,
            engagementScore=r.engagement_score,
            errors=[ErrorItem(**e.to_dict()) for e in r.errors],
        )
        for i, r in enumerate(output.results)
    ]
    return BatchResponse(
        success=output.rejected == 0,
        accepted=output.accepted,
        rejected=output.rejected,
        results=results,
    )
