"""
AnalyticsIngestionService - view/interaction event ingestion.

Validates a tracking payload, enriches it from the request context and
persists one immutable event.

Key behaviors:
- Every violated field is reported; validation never stops at the first
- Derived blocks (location, device, referral, timing, score) are rejected
  if the client sends them
- Enrichment failures degrade to null fields, never to an error
- Business views bump the business view counter, best-effort
- timing.* is derived once from created_at in UTC
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import urlparse
from uuid import UUID, uuid4

from src.core.entities import (
    INTERACTION_TYPES,
    LINK_TYPES,
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
from src.core.services.analytics_attrib import parse_referral
from src.core.services.analytics_device import UserAgentDeviceParser
from src.core.services.analytics_engagement import (
    calculate_engagement_score,
    generate_session_id,
)
from src.core.services.analytics_geo import GeoIPResolver
from src.core.services.analytics_links import LinkConfig, parse_link_data

from .models import AnalyticsValidationError, RequestContext
from .ports import (
    DeviceParserPort,
    EventStorePort,
    GeoLookupPort,
    RateLimiterPort,
    TimePort,
    ViewCounterPort,
)

logger = logging.getLogger(__name__)

# --- Configuration ---


@dataclass(frozen=True)
class IngestionConfig:
    """Analytics ingestion configuration."""

    enabled: bool = True

    # Rate limiting
    rate_limit_window_seconds: int = 60
    rate_limit_max_requests: int = 600

    allowed_fields: frozenset[str] = field(
        default_factory=lambda: frozenset(
            {
                "targetId",
                "targetType",
                "viewerId",
                "sessionId",
                "interactionType",
                "linkData",
                "metrics",
                "metadata",
            }
        ),
    )
    # Derived at ingest; never accepted from the client
    derived_fields: frozenset[str] = field(
        default_factory=lambda: frozenset(
            {
                "id",
                "viewerType",
                "location",
                "deviceInfo",
                "referral",
                "timing",
                "createdAt",
            }
        ),
    )

    # Field limits
    max_session_id_length: int = 128
    max_load_time_ms: int = 60000
    max_time_on_page_seconds: float = 7200
    max_link_text_length: int = 200
    max_link_position_length: int = 50
    max_page_title_length: int = 200
    max_ab_test_variant_length: int = 50
    max_custom_dimensions: int = 10
    max_dimension_key_length: int = 50
    max_dimension_value_length: int = 200
    max_tags: int = 20
    max_tag_length: int = 50
    max_extra_metadata_fields: int = 20

    # Host fragment that marks a clicked link as internal
    app_domain: str = "localhost"


DEFAULT_CONFIG = IngestionConfig()

_OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")

_LINK_FIELDS = frozenset(
    {"linkType", "linkUrl", "linkText", "linkPosition", "socialPlatform", "wasExternal"}
)
_METRIC_FIELDS = frozenset({"loadTime", "bounceRate", "timeOnPage", "scrollDepth"})
_METADATA_FIELDS = frozenset(
    {"pageTitle", "pageUrl", "previousPage", "abTestVariant", "customDimensions", "tags"}
)


# --- Default Implementations ---


class InMemoryRateLimiter:
    """
    In-memory sliding-window rate limiter for testing/dev.

    Clients whose last request has left the window are evicted every
    ``sweep_every`` recorded requests.
    """

    def __init__(
        self,
        sweep_every: int = 1000,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._requests: dict[str, list[datetime]] = {}
        self._sweep_every = sweep_every
        self._since_sweep = 0
        self._now = clock or (lambda: datetime.now(UTC))

    def check_rate_limit(self, key: str, max_requests: int, window_seconds: int) -> bool:
        """Check if rate limit allows request."""
        cutoff = self._now() - timedelta(seconds=window_seconds)
        recent = [t for t in self._requests.get(key, []) if t > cutoff]
        if recent:
            self._requests[key] = recent
        else:
            self._requests.pop(key, None)
        return len(recent) < max_requests

    def record_request(self, key: str, window_seconds: int) -> None:
        """Record a request."""
        now = self._now()
        self._requests.setdefault(key, []).append(now)
        self._since_sweep += 1
        if self._since_sweep >= self._sweep_every:
            self._since_sweep = 0
            self._evict_idle(now - timedelta(seconds=window_seconds))

    def _evict_idle(self, cutoff: datetime) -> None:
        idle = [key for key, times in self._requests.items() if times[-1] <= cutoff]
        for key in idle:
            del self._requests[key]
        if idle:
            logger.debug("Evicted %d idle rate-limit keys", len(idle))

    def tracked_keys(self) -> int:
        return len(self._requests)


class InMemoryEventStore:
    """In-memory event store for testing/dev."""

    def __init__(self) -> None:
        self._events: list[ViewEvent] = []

    def save(self, event: ViewEvent) -> None:
        self._events.append(event)

    def find(
        self,
        target_id: str,
        target_type: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[ViewEvent]:
        return [
            e
            for e in self._events
            if e.target_id == target_id
            and e.target_type == target_type
            and (start is None or e.created_at >= start)
            and (end is None or e.created_at <= end)
        ]

    def get_all(self) -> list[ViewEvent]:
        """Get all stored events (for testing)."""
        return list(self._events)


class InMemoryViewCounter:
    """In-memory view counter for testing/dev."""

    def __init__(self) -> None:
        self.counts: dict[str, int] = {}

    def increment(self, target_id: str, amount: int = 1) -> None:
        self.counts[target_id] = self.counts.get(target_id, 0) + amount


class DefaultTimePort:
    """Default time provider."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        return datetime.now(UTC)


# --- Timing ---


def derive_timing(created_at: datetime) -> Timing:
    """
    Break a creation timestamp into calendar fields, in UTC.

    Naive datetimes are taken to already be UTC.
    """
    if created_at.tzinfo is None:
        utc = created_at.replace(tzinfo=UTC)
    else:
        utc = created_at.astimezone(UTC)

    return Timing(
        hour=utc.hour,
        day_of_week=utc.isoweekday() % 7,
        day_of_month=utc.day,
        month=utc.month,
        year=utc.year,
        quarter=(utc.month - 1) // 3 + 1,
        timezone_name="UTC",
        timezone_offset_minutes=0,
    )


# --- Validation Functions ---


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_uri(value: Any) -> bool:
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    if not parsed.scheme:
        return False
    if parsed.scheme in ("http", "https"):
        return bool(parsed.netloc)
    return bool(parsed.path or parsed.netloc)


def is_valid_entity_id(value: Any) -> bool:
    """Entity ids are 24-hex object ids or UUIDs, in either case."""
    if not isinstance(value, str):
        return False
    if _OBJECT_ID_RE.match(value):
        return True
    try:
        return str(UUID(value)) == value.lower()
    except ValueError:
        return False


def validate_entity_id(
    value: Any,
    field_name: str,
    required: bool = False,
) -> list[AnalyticsValidationError]:
    """Validate a target/viewer id."""
    if value is None or value == "":
        if required:
            return [
                AnalyticsValidationError(
                    code=f"{_snake(field_name)}_required",
                    message=f"'{field_name}' is required",
                    field_name=field_name,
                )
            ]
        return []

    if not is_valid_entity_id(value):
        return [
            AnalyticsValidationError(
                code=f"invalid_{_snake(field_name)}",
                message=f"'{field_name}' must be a 24-character hex id or a UUID",
                field_name=field_name,
            )
        ]
    return []


def validate_choice(
    value: Any,
    allowed: tuple[str, ...],
    field_name: str,
    required: bool = False,
) -> list[AnalyticsValidationError]:
    """Validate an enum-valued field."""
    if value is None:
        if required:
            return [
                AnalyticsValidationError(
                    code=f"{_snake(field_name)}_required",
                    message=f"'{field_name}' is required",
                    field_name=field_name,
                )
            ]
        return []

    if value not in allowed:
        return [
            AnalyticsValidationError(
                code=f"invalid_{_snake(field_name)}",
                message=f"'{field_name}' must be one of: {', '.join(allowed)}",
                field_name=field_name,
            )
        ]
    return []


def _snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name.split(".")[-1]).lower()


def _max_length(
    value: Any, limit: int, field_name: str
) -> list[AnalyticsValidationError]:
    if value is None:
        return []
    if not isinstance(value, str):
        return [
            AnalyticsValidationError(
                code="invalid_type",
                message=f"'{field_name}' must be a string",
                field_name=field_name,
            )
        ]
    if len(value) > limit:
        return [
            AnalyticsValidationError(
                code="too_long",
                message=f"'{field_name}' must be at most {limit} characters",
                field_name=field_name,
            )
        ]
    return []


def _uri(value: Any, field_name: str) -> list[AnalyticsValidationError]:
    if value is None or _is_uri(value):
        return []
    return [
        AnalyticsValidationError(
            code="invalid_uri",
            message=f"'{field_name}' must be a valid URI",
            field_name=field_name,
        )
    ]


def _range(
    value: Any,
    low: float,
    high: float,
    field_name: str,
    integer: bool = False,
) -> list[AnalyticsValidationError]:
    if value is None:
        return []
    if (
        not _is_number(value)
        or (isinstance(value, float) and not math.isfinite(value))
        or (integer and isinstance(value, float) and not value.is_integer())
    ):
        kind = "an integer" if integer else "a number"
        return [
            AnalyticsValidationError(
                code="invalid_type",
                message=f"'{field_name}' must be {kind}",
                field_name=field_name,
            )
        ]
    if value < low or value > high:
        return [
            AnalyticsValidationError(
                code="out_of_range",
                message=f"'{field_name}' must be between {low:g} and {high:g}",
                field_name=field_name,
            )
        ]
    return []


def _unknown_keys(
    block: dict[str, Any], allowed: frozenset[str], prefix: str
) -> list[AnalyticsValidationError]:
    return [
        AnalyticsValidationError(
            code="unknown_field",
            message=f"Field '{prefix}.{key}' is not recognized",
            field_name=f"{prefix}.{key}",
        )
        for key in block
        if key not in allowed
    ]


def _object(value: Any, field_name: str) -> list[AnalyticsValidationError]:
    if value is None or isinstance(value, dict):
        return []
    return [
        AnalyticsValidationError(
            code="invalid_type",
            message=f"'{field_name}' must be an object",
            field_name=field_name,
        )
    ]


def validate_allowed_fields(
    data: dict[str, Any],
    config: IngestionConfig = DEFAULT_CONFIG,
) -> list[AnalyticsValidationError]:
    """Validate only recognized top-level fields are present."""
    return [
        AnalyticsValidationError(
            code="unknown_field",
            message=f"Field '{name}' is not recognized",
            field_name=name,
        )
        for name in data
        if name not in config.allowed_fields and name not in config.derived_fields
    ]


def validate_derived_fields(
    data: dict[str, Any],
    config: IngestionConfig = DEFAULT_CONFIG,
) -> list[AnalyticsValidationError]:
    """Reject fields the server derives itself."""
    return [
        AnalyticsValidationError(
            code="derived_field",
            message=f"Field '{name}' is derived by the server and cannot be supplied",
            field_name=name,
        )
        for name in sorted(config.derived_fields)
        if name in data
    ]


def validate_link_data(
    value: Any,
    config: IngestionConfig = DEFAULT_CONFIG,
) -> list[AnalyticsValidationError]:
    """Validate the linkData block."""
    errors = _object(value, "linkData")
    if errors or value is None:
        return errors

    errors.extend(_unknown_keys(value, _LINK_FIELDS, "linkData"))
    errors.extend(validate_choice(value.get("linkType"), LINK_TYPES, "linkData.linkType"))
    errors.extend(_uri(value.get("linkUrl"), "linkData.linkUrl"))
    errors.extend(
        _max_length(value.get("linkText"), config.max_link_text_length, "linkData.linkText")
    )
    errors.extend(
        _max_length(
            value.get("linkPosition"), config.max_link_position_length, "linkData.linkPosition"
        )
    )
    errors.extend(
        validate_choice(value.get("socialPlatform"), SOCIAL_PLATFORMS, "linkData.socialPlatform")
    )
    was_external = value.get("wasExternal")
    if was_external is not None and not isinstance(was_external, bool):
        errors.append(
            AnalyticsValidationError(
                code="invalid_type",
                message="'linkData.wasExternal' must be a boolean",
                field_name="linkData.wasExternal",
            )
        )
    return errors


def validate_metrics(
    value: Any,
    config: IngestionConfig = DEFAULT_CONFIG,
) -> list[AnalyticsValidationError]:
    """Validate the metrics block."""
    errors = _object(value, "metrics")
    if errors or value is None:
        return errors

    if "engagementScore" in value:
        errors.append(
            AnalyticsValidationError(
                code="derived_field",
                message="Field 'metrics.engagementScore' is derived by the server",
                field_name="metrics.engagementScore",
            )
        )
    errors.extend(
        _unknown_keys(
            {k: v for k, v in value.items() if k != "engagementScore"},
            _METRIC_FIELDS,
            "metrics",
        )
    )
    errors.extend(
        _range(value.get("loadTime"), 0, config.max_load_time_ms, "metrics.loadTime", integer=True)
    )
    errors.extend(
        _range(value.get("timeOnPage"), 0, config.max_time_on_page_seconds, "metrics.timeOnPage")
    )
    errors.extend(_range(value.get("scrollDepth"), 0, 100, "metrics.scrollDepth"))
    bounce = value.get("bounceRate")
    if bounce is not None and not isinstance(bounce, bool):
        errors.append(
            AnalyticsValidationError(
                code="invalid_type",
                message="'metrics.bounceRate' must be a boolean",
                field_name="metrics.bounceRate",
            )
        )
    return errors


def validate_metadata(
    value: Any,
    config: IngestionConfig = DEFAULT_CONFIG,
) -> list[AnalyticsValidationError]:
    """
    Validate the metadata block.

    Unrecognized keys are kept in the extension map but must carry short
    string values.
    """
    errors = _object(value, "metadata")
    if errors or value is None:
        return errors

    errors.extend(
        _max_length(value.get("pageTitle"), config.max_page_title_length, "metadata.pageTitle")
    )
    errors.extend(_uri(value.get("pageUrl"), "metadata.pageUrl"))
    errors.extend(_uri(value.get("previousPage"), "metadata.previousPage"))
    errors.extend(
        _max_length(
            value.get("abTestVariant"),
            config.max_ab_test_variant_length,
            "metadata.abTestVariant",
        )
    )

    dimensions = value.get("customDimensions")
    if dimensions is not None:
        if not isinstance(dimensions, list):
            errors.append(
                AnalyticsValidationError(
                    code="invalid_type",
                    message="'metadata.customDimensions' must be a list",
                    field_name="metadata.customDimensions",
                )
            )
        else:
            if len(dimensions) > config.max_custom_dimensions:
                errors.append(
                    AnalyticsValidationError(
                        code="too_many_items",
                        message=(
                            "'metadata.customDimensions' allows at most "
                            f"{config.max_custom_dimensions} items"
                        ),
                        field_name="metadata.customDimensions",
                    )
                )
            for i, item in enumerate(dimensions):
                name = f"metadata.customDimensions[{i}]"
                if not isinstance(item, dict):
                    errors.append(
                        AnalyticsValidationError(
                            code="invalid_type",
                            message=f"'{name}' must be an object with key and value",
                            field_name=name,
                        )
                    )
                    continue
                errors.extend(_unknown_keys(item, frozenset({"key", "value"}), name))
                errors.extend(
                    _max_length(item.get("key"), config.max_dimension_key_length, f"{name}.key")
                )
                errors.extend(
                    _max_length(
                        item.get("value"), config.max_dimension_value_length, f"{name}.value"
                    )
                )

    tags = value.get("tags")
    if tags is not None:
        if not isinstance(tags, list):
            errors.append(
                AnalyticsValidationError(
                    code="invalid_type",
                    message="'metadata.tags' must be a list",
                    field_name="metadata.tags",
                )
            )
        else:
            if len(tags) > config.max_tags:
                errors.append(
                    AnalyticsValidationError(
                        code="too_many_items",
                        message=f"'metadata.tags' allows at most {config.max_tags} items",
                        field_name="metadata.tags",
                    )
                )
            for i, tag in enumerate(tags):
                errors.extend(_max_length(tag, config.max_tag_length, f"metadata.tags[{i}]"))

    extra = {k: v for k, v in value.items() if k not in _METADATA_FIELDS}
    if len(extra) > config.max_extra_metadata_fields:
        errors.append(
            AnalyticsValidationError(
                code="too_many_items",
                message=(
                    f"'metadata' allows at most {config.max_extra_metadata_fields} custom fields"
                ),
                field_name="metadata",
            )
        )
    for key, item in extra.items():
        errors.extend(
            _max_length(item, config.max_dimension_value_length, f"metadata.{key}")
        )

    return errors


def validate_track_payload(
    data: dict[str, Any],
    config: IngestionConfig = DEFAULT_CONFIG,
) -> list[AnalyticsValidationError]:
    """Validate a whole tracking payload, collecting every violation."""
    errors: list[AnalyticsValidationError] = []

    errors.extend(validate_derived_fields(data, config))
    errors.extend(validate_allowed_fields(data, config))
    errors.extend(validate_entity_id(data.get("targetId"), "targetId", required=True))
    errors.extend(validate_choice(data.get("targetType"), TARGET_TYPES, "targetType", required=True))
    errors.extend(
        validate_choice(
            data.get("interactionType"), INTERACTION_TYPES, "interactionType", required=True
        )
    )
    errors.extend(validate_entity_id(data.get("viewerId"), "viewerId"))

    session_id = data.get("sessionId")
    if session_id is not None:
        if not isinstance(session_id, str) or not session_id.strip():
            errors.append(
                AnalyticsValidationError(
                    code="invalid_session_id",
                    message="'sessionId' must be a non-empty string",
                    field_name="sessionId",
                )
            )
        else:
            errors.extend(_max_length(session_id, config.max_session_id_length, "sessionId"))

    errors.extend(validate_link_data(data.get("linkData"), config))
    errors.extend(validate_metrics(data.get("metrics"), config))
    errors.extend(validate_metadata(data.get("metadata"), config))

    return errors


# --- Block Builders ---


def build_metadata(value: dict[str, Any] | None) -> EventMetadata:
    """Build the metadata block from a validated payload section."""
    if not value:
        return EventMetadata()
    return EventMetadata(
        page_title=value.get("pageTitle"),
        page_url=value.get("pageUrl"),
        previous_page=value.get("previousPage"),
        ab_test_variant=value.get("abTestVariant"),
        custom_dimensions=tuple(
            CustomDimension(key=d.get("key", ""), value=d.get("value", ""))
            for d in value.get("customDimensions") or []
        ),
        tags=tuple(value.get("tags") or []),
        extra={k: v for k, v in value.items() if k not in _METADATA_FIELDS},
    )


# --- Analytics Ingestion Service ---


class AnalyticsIngestionService:
    """
    Analytics ingestion service.

    Handles validation, enrichment and persistence of tracked events.
    """

    def __init__(
        self,
        event_store: EventStorePort,
        view_counter: ViewCounterPort | None = None,
        geo: GeoLookupPort | None = None,
        device_parser: DeviceParserPort | None = None,
        rate_limiter: RateLimiterPort | None = None,
        time_port: TimePort | None = None,
        config: IngestionConfig | None = None,
    ) -> None:
        """Initialize service."""
        self._event_store = event_store
        self._view_counter = view_counter
        self._geo = geo or GeoIPResolver()
        self._device_parser = device_parser or UserAgentDeviceParser()
        self._rate_limiter = rate_limiter or InMemoryRateLimiter()
        self._time = time_port or DefaultTimePort()
        self._config = config or DEFAULT_CONFIG
        self._link_config = LinkConfig(app_domain=self._config.app_domain)

    def check_rate_limit(self, client_key: str) -> bool:
        """Check if client is within rate limit."""
        return self._rate_limiter.check_rate_limit(
            key=client_key,
            max_requests=self._config.rate_limit_max_requests,
            window_seconds=self._config.rate_limit_window_seconds,
        )

    def admit(self, client_key: str | None) -> list[AnalyticsValidationError]:
        """
        Gate a request on the enabled flag and the client's rate limit.

        An admitted request is counted against the client's window.
        """
        if not self._config.enabled:
            return [
                AnalyticsValidationError(
                    code="analytics_disabled",
                    message="Analytics ingestion is disabled",
                )
            ]

        if client_key:
            if not self.check_rate_limit(client_key):
                return [
                    AnalyticsValidationError(
                        code="rate_limit_exceeded",
                        message="Too many requests",
                    )
                ]
            self._rate_limiter.record_request(
                client_key,
                self._config.rate_limit_window_seconds,
            )
        return []

    def _resolve_location(self, ip_address: str | None) -> Location:
        try:
            return self._geo.lookup(ip_address)
        except Exception:
            logger.warning("Geo lookup failed for %s", ip_address, exc_info=True)
            return Location(ip_address=ip_address)

    def _parse_device(self, user_agent: str | None) -> DeviceInfo:
        try:
            return self._device_parser.parse(user_agent)
        except Exception:
            logger.warning("Device parsing failed", exc_info=True)
            return DeviceInfo(user_agent=user_agent)

    def _parse_referral(self, context: RequestContext) -> Referral:
        try:
            return parse_referral(context.referer, context.query)
        except Exception:
            logger.warning("Referral parsing failed for %r", context.referer, exc_info=True)
            return Referral(referrer_url=context.referer)

    def _bump_view_counter(self, target_id: str) -> None:
        if self._view_counter is None:
            return
        try:
            self._view_counter.increment(target_id, 1)
        except Exception:
            logger.warning("View counter increment failed for %s", target_id, exc_info=True)

    def record(
        self,
        data: dict[str, Any],
        context: RequestContext | None = None,
        client_key: str | None = None,
    ) -> tuple[ViewEvent | None, list[AnalyticsValidationError]]:
        """
        Validate, enrich and persist one event.

        Returns:
            Tuple of (event, errors). Event is None if validation fails.
        """
        context = context or RequestContext()

        errors = self.admit(client_key)
        if errors:
            return None, errors

        errors = validate_track_payload(data, self._config)
        if errors:
            return None, errors

        # Ids are case-insensitive hex; store one canonical form
        target_id = data["targetId"].lower()
        target_type = data["targetType"]
        interaction_type = data["interactionType"]
        session_id = data.get("sessionId") or generate_session_id()

        location = self._resolve_location(context.ip_address)
        device_info = self._parse_device(context.user_agent)
        referral = self._parse_referral(context)

        link_data: LinkData | None = None
        raw_link = data.get("linkData")
        if interaction_type == "click" and raw_link:
            link_data = parse_link_data(
                raw_link.get("linkUrl"),
                link_text=raw_link.get("linkText"),
                link_position=raw_link.get("linkPosition"),
                link_type=raw_link.get("linkType"),
                social_platform=raw_link.get("socialPlatform"),
                was_external=raw_link.get("wasExternal"),
                config=self._link_config,
            )

        raw_metrics = data.get("metrics") or {}
        load_time = raw_metrics.get("loadTime")
        score = calculate_engagement_score(
            time_on_page=raw_metrics.get("timeOnPage"),
            scroll_depth=raw_metrics.get("scrollDepth"),
            interactions=1 if interaction_type != "view" else 0,
            bounced=bool(raw_metrics.get("bounceRate", False)),
            load_time_ms=int(load_time) if load_time is not None else None,
        )
        metrics = EventMetrics(
            load_time_ms=int(load_time) if load_time is not None else None,
            bounce_rate=bool(raw_metrics.get("bounceRate", False)),
            time_on_page_seconds=raw_metrics.get("timeOnPage"),
            scroll_depth_percent=raw_metrics.get("scrollDepth"),
            engagement_score=score,
        )

        created_at = self._time.now_utc()
        event = ViewEvent(
            id=str(uuid4()),
            target_id=target_id,
            target_type=target_type,
            session_id=session_id,
            interaction_type=interaction_type,
            created_at=created_at,
            timing=derive_timing(created_at),
            viewer_id=(data.get("viewerId") or "").lower() or None,
            location=location,
            device_info=device_info,
            referral=referral,
            link_data=link_data,
            metrics=metrics,
            metadata=build_metadata(data.get("metadata")),
        )

        self._event_store.save(event)

        if target_type == "business" and interaction_type == "view":
            self._bump_view_counter(target_id)

        return event, []


# --- Factory ---


def create_analytics_ingestion_service(
    event_store: EventStorePort,
    view_counter: ViewCounterPort | None = None,
    geo: GeoLookupPort | None = None,
    device_parser: DeviceParserPort | None = None,
    rate_limiter: RateLimiterPort | None = None,
    time_port: TimePort | None = None,
    config: IngestionConfig | None = None,
) -> AnalyticsIngestionService:
    """Create an AnalyticsIngestionService."""
    return AnalyticsIngestionService(
        event_store=event_store,
        view_counter=view_counter,
        geo=geo,
        device_parser=device_parser,
        rate_limiter=rate_limiter,
        time_port=time_port,
        config=config,
    )
