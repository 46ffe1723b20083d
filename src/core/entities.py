"""
Domain entities for recorded analytics events.

An event is written once by the ingest service and never updated. The
derived blocks (location, device, referral, timing, engagement score) are
filled in at ingest time and are never taken from the client.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, get_args

__all__ = [
    "CustomDimension",
    "DeviceInfo",
    "DeviceType",
    "EventMetadata",
    "EventMetrics",
    "InteractionType",
    "LinkData",
    "LinkType",
    "Location",
    "Referral",
    "ReferralSource",
    "SocialPlatform",
    "TargetType",
    "Timing",
    "ViewEvent",
    "DEVICE_TYPES",
    "INTERACTION_TYPES",
    "LINK_TYPES",
    "REFERRAL_SOURCES",
    "SOCIAL_PLATFORMS",
    "TARGET_TYPES",
]

# --- Enums ---


TargetType = Literal["business", "profile", "socialMedia", "favorite", "other"]
InteractionType = Literal[
    "view", "click", "share", "favorite", "contact", "visit_website", "call", "email"
]
LinkType = Literal[
    "social_media", "website", "phone", "email", "address", "menu", "booking", "other"
]
SocialPlatform = Literal[
    "instagram", "facebook", "twitter", "linkedin", "tiktok", "youtube", "github", "whatsapp", "other"
]
ReferralSource = Literal["direct", "search", "social", "email", "qr_code", "referral", "other"]
DeviceType = Literal["mobile", "tablet", "desktop", "other"]
LocationAccuracy = Literal["country", "region", "city", "precise"]
ViewerType = Literal["authenticated", "anonymous"]

TARGET_TYPES: tuple[str, ...] = get_args(TargetType)
INTERACTION_TYPES: tuple[str, ...] = get_args(InteractionType)
LINK_TYPES: tuple[str, ...] = get_args(LinkType)
SOCIAL_PLATFORMS: tuple[str, ...] = get_args(SocialPlatform)
REFERRAL_SOURCES: tuple[str, ...] = get_args(ReferralSource)
DEVICE_TYPES: tuple[str, ...] = get_args(DeviceType)


# --- Event Sub-blocks ---


@dataclass(frozen=True)
class Location:
    """Geo block resolved from the source IP."""

    country: str | None = None
    country_code: str | None = None
    region: str | None = None
    city: str | None = None
    coordinates: tuple[float, float] | None = None  # (lon, lat)
    ip_address: str | None = None
    timezone: str | None = None
    accuracy: LocationAccuracy | None = None


@dataclass(frozen=True)
class DeviceInfo:
    """Device block parsed from the user-agent header."""

    type: DeviceType = "other"
    os: str | None = None
    browser: str | None = None
    screen_resolution: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class Referral:
    """Traffic source block."""

    source: ReferralSource = "direct"
    medium: str | None = None
    campaign: str | None = None
    referrer_url: str | None = None
    search_query: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_content: str | None = None
    utm_term: str | None = None


@dataclass(frozen=True)
class LinkData:
    """Click target details, only present on click events."""

    link_type: LinkType | None = None
    link_url: str | None = None
    link_text: str | None = None
    link_position: str | None = None
    social_platform: SocialPlatform | None = None
    was_external: bool = False
    normalized_url: str | None = None
    display_url: str | None = None
    handle: str | None = None


@dataclass(frozen=True)
class Timing:
    """Calendar breakdown of created_at, frozen at write time."""

    hour: int
    day_of_week: int  # 0 = Sunday
    day_of_month: int
    month: int
    year: int
    quarter: int
    timezone_name: str = "UTC"
    timezone_offset_minutes: int = 0


@dataclass(frozen=True)
class EventMetrics:
    """Client performance metrics plus the derived engagement score."""

    load_time_ms: int | None = None
    bounce_rate: bool = False
    time_on_page_seconds: float | None = None
    scroll_depth_percent: float | None = None
    engagement_score: int = 0


@dataclass(frozen=True)
class CustomDimension:
    key: str
    value: str


@dataclass(frozen=True)
class EventMetadata:
    """Known metadata fields plus an opaque string map for extensions."""

    page_title: str | None = None
    page_url: str | None = None
    previous_page: str | None = None
    ab_test_variant: str | None = None
    custom_dimensions: tuple[CustomDimension, ...] = ()
    tags: tuple[str, ...] = ()
    extra: dict[str, str] = field(default_factory=dict)


# --- Event Record ---


@dataclass(frozen=True)
class ViewEvent:
    """One recorded view or interaction against a target."""

    id: str
    target_id: str
    target_type: TargetType
    session_id: str
    interaction_type: InteractionType
    created_at: datetime
    timing: Timing
    viewer_id: str | None = None
    location: Location = field(default_factory=Location)
    device_info: DeviceInfo = field(default_factory=DeviceInfo)
    referral: Referral = field(default_factory=Referral)
    link_data: LinkData | None = None
    metrics: EventMetrics = field(default_factory=EventMetrics)
    metadata: EventMetadata = field(default_factory=EventMetadata)

    @property
    def viewer_type(self) -> ViewerType:
        return "authenticated" if self.viewer_id else "anonymous"

    @property
    def is_interaction(self) -> bool:
        return self.interaction_type != "view"

    def to_dict(self) -> dict[str, Any]:
        """Wire form of the event, camelCase keys."""
        return {
            "id": self.id,
            "targetId": self.target_id,
            "targetType": self.target_type,
            "viewerId": self.viewer_id,
            "viewerType": self.viewer_type,
            "sessionId": self.session_id,
            "interactionType": self.interaction_type,
            "createdAt": self.created_at.isoformat(),
            "location": {
                "country": self.location.country,
                "countryCode": self.location.country_code,
                "region": self.location.region,
                "city": self.location.city,
                "coordinates": list(self.location.coordinates)
                if self.location.coordinates
                else None,
                "ipAddress": self.location.ip_address,
                "timezone": self.location.timezone,
                "accuracy": self.location.accuracy,
            },
            "deviceInfo": {
                "type": self.device_info.type,
                "os": self.device_info.os,
                "browser": self.device_info.browser,
                "screenResolution": self.device_info.screen_resolution,
                "userAgent": self.device_info.user_agent,
            },
            "referral": {
                "source": self.referral.source,
                "medium": self.referral.medium,
                "campaign": self.referral.campaign,
                "referrerUrl": self.referral.referrer_url,
                "searchQuery": self.referral.search_query,
                "utmSource": self.referral.utm_source,
                "utmMedium": self.referral.utm_medium,
                "utmCampaign": self.referral.utm_campaign,
                "utmContent": self.referral.utm_content,
                "utmTerm": self.referral.utm_term,
            },
            "linkData": None
            if self.link_data is None
            else {
                "linkType": self.link_data.link_type,
                "linkUrl": self.link_data.link_url,
                "linkText": self.link_data.link_text,
                "linkPosition": self.link_data.link_position,
                "socialPlatform": self.link_data.social_platform,
                "wasExternal": self.link_data.was_external,
                "normalizedUrl": self.link_data.normalized_url,
                "displayUrl": self.link_data.display_url,
                "handle": self.link_data.handle,
            },
            "timing": {
                "hour": self.timing.hour,
                "dayOfWeek": self.timing.day_of_week,
                "dayOfMonth": self.timing.day_of_month,
                "month": self.timing.month,
                "year": self.timing.year,
                "quarter": self.timing.quarter,
                "timezoneName": self.timing.timezone_name,
                "timezoneOffsetMinutes": self.timing.timezone_offset_minutes,
            },
            "metrics": {
                "loadTimeMs": self.metrics.load_time_ms,
                "bounceRate": self.metrics.bounce_rate,
                "timeOnPageSeconds": self.metrics.time_on_page_seconds,
                "scrollDepthPercent": self.metrics.scroll_depth_percent,
                "engagementScore": self.metrics.engagement_score,
            },
            "metadata": {
                "pageTitle": self.metadata.page_title,
                "pageUrl": self.metadata.page_url,
                "previousPage": self.metadata.previous_page,
                "abTestVariant": self.metadata.ab_test_variant,
                "customDimensions": [
                    {"key": d.key, "value": d.value} for d in self.metadata.custom_dimensions
                ],
                "tags": list(self.metadata.tags),
                "extra": dict(self.metadata.extra),
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ViewEvent:
        """Rebuild an event from its wire form."""
        loc = data.get("location") or {}
        dev = data.get("deviceInfo") or {}
        ref = data.get("referral") or {}
        link = data.get("linkData")
        tim = data["timing"]
        met = data.get("metrics") or {}
        meta = data.get("metadata") or {}

        created_at = data["createdAt"]
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)

        return cls(
            id=data["id"],
            target_id=data["targetId"],
            target_type=data["targetType"],
            session_id=data["sessionId"],
            interaction_type=data["interactionType"],
            created_at=created_at,
            viewer_id=data.get("viewerId"),
            location=Location(
                country=loc.get("country"),
                country_code=loc.get("countryCode"),
                region=loc.get("region"),
                city=loc.get("city"),
                coordinates=tuple(loc["coordinates"]) if loc.get("coordinates") else None,
                ip_address=loc.get("ipAddress"),
                timezone=loc.get("timezone"),
                accuracy=loc.get("accuracy"),
            ),
            device_info=DeviceInfo(
                type=dev.get("type") or "other",
                os=dev.get("os"),
                browser=dev.get("browser"),
                screen_resolution=dev.get("screenResolution"),
                user_agent=dev.get("userAgent"),
            ),
            referral=Referral(
                source=ref.get("source") or "direct",
                medium=ref.get("medium"),
                campaign=ref.get("campaign"),
                referrer_url=ref.get("referrerUrl"),
                search_query=ref.get("searchQuery"),
                utm_source=ref.get("utmSource"),
                utm_medium=ref.get("utmMedium"),
                utm_campaign=ref.get("utmCampaign"),
                utm_content=ref.get("utmContent"),
                utm_term=ref.get("utmTerm"),
            ),
            link_data=None
            if link is None
            else LinkData(
                link_type=link.get("linkType"),
                link_url=link.get("linkUrl"),
                link_text=link.get("linkText"),
                link_position=link.get("linkPosition"),
                social_platform=link.get("socialPlatform"),
                was_external=bool(link.get("wasExternal", False)),
                normalized_url=link.get("normalizedUrl"),
                display_url=link.get("displayUrl"),
                handle=link.get("handle"),
            ),
            timing=Timing(
                hour=tim["hour"],
                day_of_week=tim["dayOfWeek"],
                day_of_month=tim["dayOfMonth"],
                month=tim["month"],
                year=tim["year"],
                quarter=tim["quarter"],
                timezone_name=tim.get("timezoneName", "UTC"),
                timezone_offset_minutes=tim.get("timezoneOffsetMinutes", 0),
            ),
            metrics=EventMetrics(
                load_time_ms=met.get("loadTimeMs"),
                bounce_rate=bool(met.get("bounceRate", False)),
                time_on_page_seconds=met.get("timeOnPageSeconds"),
                scroll_depth_percent=met.get("scrollDepthPercent"),
                engagement_score=met.get("engagementScore", 0),
            ),
            metadata=EventMetadata(
                page_title=meta.get("pageTitle"),
                page_url=meta.get("pageUrl"),
                previous_page=meta.get("previousPage"),
                ab_test_variant=meta.get("abTestVariant"),
                custom_dimensions=tuple(
                    CustomDimension(key=d["key"], value=d["value"])
                    for d in meta.get("customDimensions") or []
                ),
                tags=tuple(meta.get("tags") or []),
                extra=dict(meta.get("extra") or {}),
            ),
        )
