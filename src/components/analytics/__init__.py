"""
Analytics component - event ingestion and aggregation.
"""

from src.core.services.analytics_attrib import (
    AttributionConfig,
    ReferrerInfo,
    TrafficSource,
    UTMParams,
    classify_traffic_source,
    parse_referral,
    parse_referrer,
    parse_utm_params,
)
from src.core.services.analytics_device import UserAgentDeviceParser, parse_device_info
from src.core.services.analytics_engagement import (
    calculate_engagement_score,
    generate_session_id,
)
from src.core.services.analytics_geo import GeoIPResolver
from src.core.services.analytics_links import (
    classify_link,
    normalize_social_url,
    parse_link_data,
)

from ._impl import (
    AnalyticsIngestionService,
    DefaultTimePort,
    IngestionConfig,
    InMemoryEventStore,
    InMemoryRateLimiter,
    InMemoryViewCounter,
    create_analytics_ingestion_service,
    derive_timing,
    validate_track_payload,
)
from ._orchestrate import fan_out
from .component import (
    AnalyticsConfig,
    run,
    run_dashboard,
    run_export,
    run_links,
    run_location,
    run_overview,
    run_peak_hours,
    run_real_time,
    run_time_filtered,
    run_track,
    run_track_batch,
    timeframe_range,
)
from .models import (
    AggregationFailedError,
    AnalyticsInputError,
    AnalyticsValidationError,
    BranchResult,
    CompositeOutput,
    DashboardQueryInput,
    ExportQueryInput,
    IngestRejectedError,
    LinkQueryInput,
    LocationQueryInput,
    OverviewQueryInput,
    PeakHourQueryInput,
    RealTimeQueryInput,
    RequestContext,
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

__all__ = [
    # Component entry points
    "run",
    "run_track",
    "run_track_batch",
    "run_location",
    "run_links",
    "run_peak_hours",
    "run_time_filtered",
    "run_overview",
    "run_dashboard",
    "run_real_time",
    "run_export",
    "timeframe_range",
    "fan_out",
    # Models
    "AggregationFailedError",
    "AnalyticsConfig",
    "AnalyticsInputError",
    "AnalyticsValidationError",
    "BranchResult",
    "CompositeOutput",
    "DashboardQueryInput",
    "ExportQueryInput",
    "IngestRejectedError",
    "LinkQueryInput",
    "LocationQueryInput",
    "OverviewQueryInput",
    "PeakHourQueryInput",
    "RealTimeQueryInput",
    "RequestContext",
    "TimeFilteredQueryInput",
    "TrackBatchInput",
    "TrackBatchOutput",
    "TrackEventInput",
    "TrackOutput",
    "ViewEvent",
    # Ports
    "DeviceParserPort",
    "EventStorePort",
    "GeoLookupPort",
    "RateLimiterPort",
    "RulesPort",
    "TimePort",
    "ViewCounterPort",
    # Ingestion
    "AnalyticsIngestionService",
    "DefaultTimePort",
    "IngestionConfig",
    "InMemoryEventStore",
    "InMemoryRateLimiter",
    "InMemoryViewCounter",
    "create_analytics_ingestion_service",
    "derive_timing",
    "validate_track_payload",
    # Enrichment
    "AttributionConfig",
    "GeoIPResolver",
    "ReferrerInfo",
    "TrafficSource",
    "UTMParams",
    "UserAgentDeviceParser",
    "calculate_engagement_score",
    "classify_link",
    "classify_traffic_source",
    "generate_session_id",
    "normalize_social_url",
    "parse_device_info",
    "parse_link_data",
    "parse_referral",
    "parse_referrer",
    "parse_utm_params",
]
