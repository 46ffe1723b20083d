"""
Tests for AnalyticsIngestionService.

Covers payload validation (every violation reported), server-side
enrichment, the best-effort view counter and the ingest gate.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta, timezone

import pytest

from src.components.analytics import (
    AnalyticsIngestionService,
    IngestionConfig,
    InMemoryEventStore,
    InMemoryRateLimiter,
    InMemoryViewCounter,
    RequestContext,
    create_analytics_ingestion_service,
    derive_timing,
    validate_track_payload,
)
from src.core.entities import DeviceInfo, Location
from tests.conftest import NOW, TARGET_ID, VIEWER_A, MockTimePort, payload

# --- Stub Ports ---


class StubGeo:
    def __init__(self, country: str | None = "South Africa") -> None:
        self.country = country
        self.calls: list[str | None] = []

    def lookup(self, ip_address: str | None) -> Location:
        self.calls.append(ip_address)
        return Location(country=self.country, ip_address=ip_address, accuracy="country")


class ExplodingGeo:
    def lookup(self, ip_address: str | None) -> Location:
        raise RuntimeError("geo backend down")


class StubDeviceParser:
    def parse(self, user_agent: str | None) -> DeviceInfo:
        return DeviceInfo(type="mobile", user_agent=user_agent)


class FailingCounter:
    def increment(self, target_id: str, amount: int = 1) -> None:
        raise ConnectionError("counter unavailable")


# --- Fixtures ---


@pytest.fixture
def service(
    event_store: InMemoryEventStore,
    view_counter: InMemoryViewCounter,
    time_port: MockTimePort,
) -> AnalyticsIngestionService:
    return create_analytics_ingestion_service(
        event_store=event_store,
        view_counter=view_counter,
        geo=StubGeo(),
        device_parser=StubDeviceParser(),
        rate_limiter=InMemoryRateLimiter(),
        time_port=time_port,
    )


def codes(errors) -> list[str]:
    return [e.code for e in errors]


# --- Timing ---


class TestDeriveTiming:
    """Calendar fields are taken in UTC."""

    def test_fields(self) -> None:
        timing = derive_timing(datetime(2024, 11, 3, 22, 5, tzinfo=UTC))
        assert timing.hour == 22
        assert timing.day_of_week == 0  # Sunday
        assert timing.day_of_month == 3
        assert timing.month == 11
        assert timing.year == 2024
        assert timing.quarter == 4
        assert timing.timezone_name == "UTC"

    def test_offset_converted(self) -> None:
        """A local timestamp lands in its UTC hour and day."""
        local = datetime(2024, 1, 1, 1, 0, tzinfo=timezone(timedelta(hours=2)))
        timing = derive_timing(local)
        assert (timing.year, timing.month, timing.day_of_month, timing.hour) == (2023, 12, 31, 23)

    def test_naive_is_utc(self) -> None:
        assert derive_timing(datetime(2024, 6, 12, 15, 0)).hour == 15


# --- Payload Validation ---


class TestRequiredFields:
    """Top-level required fields and id formats."""

    def test_minimal_payload_valid(self) -> None:
        assert validate_track_payload(payload()) == []

    def test_all_missing_reported_together(self) -> None:
        errors = validate_track_payload({})
        assert codes(errors) == [
            "target_id_required",
            "target_type_required",
            "interaction_type_required",
        ]

    def test_uuid_target_accepted(self) -> None:
        errors = validate_track_payload(
            payload(targetId="3f2504e0-4f89-11d3-9a0c-0305e82c3301")
        )
        assert errors == []

    def test_bad_ids(self) -> None:
        errors = validate_track_payload(payload(targetId="abc", viewerId="123"))
        assert codes(errors) == ["invalid_target_id", "invalid_viewer_id"]

    def test_enum_values(self) -> None:
        errors = validate_track_payload(payload(targetType="shop", interactionType="hover"))
        assert codes(errors) == ["invalid_target_type", "invalid_interaction_type"]

    def test_empty_session_id(self) -> None:
        assert codes(validate_track_payload(payload(sessionId="  "))) == ["invalid_session_id"]

    def test_long_session_id(self) -> None:
        assert codes(validate_track_payload(payload(sessionId="s" * 129))) == ["too_long"]


class TestDerivedAndUnknownFields:
    """Server-derived blocks cannot be supplied."""

    @pytest.mark.parametrize(
        "name", ["location", "deviceInfo", "referral", "timing", "createdAt", "viewerType", "id"]
    )
    def test_derived_rejected(self, name: str) -> None:
        errors = validate_track_payload(payload(**{name: {}}))
        assert codes(errors) == ["derived_field"]
        assert errors[0].field_name == name

    def test_engagement_score_rejected(self) -> None:
        errors = validate_track_payload(payload(metrics={"engagementScore": 99}))
        assert codes(errors) == ["derived_field"]
        assert errors[0].field_name == "metrics.engagementScore"

    def test_unknown_top_level(self) -> None:
        errors = validate_track_payload(payload(color="red"))
        assert codes(errors) == ["unknown_field"]

    def test_unknown_nested(self) -> None:
        errors = validate_track_payload(payload(linkData={"href": "https://a.example"}))
        assert errors[0].field_name == "linkData.href"


class TestBlockValidation:
    """Per-field limits on linkData, metrics and metadata."""

    def test_metrics_ranges(self) -> None:
        errors = validate_track_payload(
            payload(
                metrics={
                    "loadTime": 70000,
                    "timeOnPage": -1,
                    "scrollDepth": 101,
                    "bounceRate": "yes",
                }
            )
        )
        assert codes(errors) == ["out_of_range", "out_of_range", "out_of_range", "invalid_type"]

    def test_load_time_must_be_integer(self) -> None:
        errors = validate_track_payload(payload(metrics={"loadTime": 1.5}))
        assert codes(errors) == ["invalid_type"]

    def test_non_finite_numbers_rejected(self) -> None:
        errors = validate_track_payload(
            payload(metrics={"timeOnPage": float("nan"), "scrollDepth": float("inf")})
        )
        assert codes(errors) == ["invalid_type", "invalid_type"]
        assert [e.field_name for e in errors] == ["metrics.timeOnPage", "metrics.scrollDepth"]

    def test_huge_integer_out_of_range(self) -> None:
        errors = validate_track_payload(payload(metrics={"loadTime": 10**400}))
        assert codes(errors) == ["out_of_range"]

    def test_new_social_platforms_accepted(self) -> None:
        errors = validate_track_payload(
            payload(interactionType="click", linkData={"socialPlatform": "whatsapp"})
        )
        assert errors == []

    def test_booleans_are_not_numbers(self) -> None:
        errors = validate_track_payload(payload(metrics={"timeOnPage": True}))
        assert codes(errors) == ["invalid_type"]

    def test_link_data_limits(self) -> None:
        errors = validate_track_payload(
            payload(
                interactionType="click",
                linkData={
                    "linkUrl": "not a url",
                    "linkText": "x" * 201,
                    "linkPosition": "p" * 51,
                    "wasExternal": "no",
                },
            )
        )
        assert codes(errors) == ["invalid_uri", "too_long", "too_long", "invalid_type"]

    def test_non_http_schemes_allowed(self) -> None:
        errors = validate_track_payload(
            payload(interactionType="click", linkData={"linkUrl": "tel:+27115550123"})
        )
        assert errors == []

    def test_metadata_limits(self) -> None:
        errors = validate_track_payload(
            payload(
                metadata={
                    "pageUrl": "/relative/path",
                    "pageTitle": "t" * 201,
                    "customDimensions": [{"key": "k", "value": "v"}] * 11,
                    "tags": ["a"] * 21,
                    "campaignNote": 5,
                }
            )
        )
        assert sorted(codes(errors)) == [
            "invalid_type",
            "invalid_uri",
            "too_long",
            "too_many_items",
            "too_many_items",
        ]

    def test_block_must_be_object(self) -> None:
        errors = validate_track_payload(payload(metrics=[1, 2]))
        assert codes(errors) == ["invalid_type"]


# --- Recording ---


class TestRecord:
    """Successful ingestion."""

    def test_event_persisted_with_derived_blocks(
        self,
        service: AnalyticsIngestionService,
        event_store: InMemoryEventStore,
    ) -> None:
        context = RequestContext(
            ip_address="8.8.8.8",
            user_agent="Mozilla/5.0 (iPhone)",
            referer="https://www.google.com/search?q=cafe",
        )
        event, errors = service.record(
            payload(
                viewerId=VIEWER_A,
                metrics={"timeOnPage": 61, "scrollDepth": 50, "loadTime": 900},
            ),
            context,
        )

        assert errors == []
        assert event is not None
        assert event_store.get_all() == [event]
        assert event.created_at == NOW
        assert event.timing.hour == 15
        assert event.timing.day_of_week == 3
        assert event.location.country == "South Africa"
        assert event.device_info.type == "mobile"
        assert event.referral.source == "search"
        assert event.viewer_type == "authenticated"
        # 20 time + 15 scroll + 10 load
        assert event.metrics.engagement_score == 45

    def test_session_id_generated(self, service: AnalyticsIngestionService) -> None:
        event, _ = service.record(payload())
        assert event is not None
        assert event.session_id.startswith("sess_")
        assert event.viewer_type == "anonymous"

    def test_session_id_kept(self, service: AnalyticsIngestionService) -> None:
        event, _ = service.record(payload(sessionId="abc-123"))
        assert event is not None
        assert event.session_id == "abc-123"

    def test_interaction_counts_toward_score(self, service: AnalyticsIngestionService) -> None:
        event, _ = service.record(payload(interactionType="share"))
        assert event is not None
        assert event.metrics.engagement_score == 10

    def test_click_builds_link_data(self, service: AnalyticsIngestionService) -> None:
        event, _ = service.record(
            payload(
                interactionType="click",
                linkData={"linkUrl": "https://instagram.com/cafe_joe", "linkPosition": "header"},
            )
        )
        assert event is not None
        assert event.link_data is not None
        assert event.link_data.link_type == "social_media"
        assert event.link_data.social_platform == "instagram"
        assert event.link_data.link_position == "header"

    def test_ids_stored_lowercase(
        self, service: AnalyticsIngestionService, event_store: InMemoryEventStore
    ) -> None:
        event, errors = service.record(
            payload(targetId=TARGET_ID.upper(), viewerId=VIEWER_A.upper())
        )
        assert errors == []
        assert event is not None
        assert event.target_id == TARGET_ID
        assert event.viewer_id == VIEWER_A
        assert event_store.find(TARGET_ID, "business") == [event]

    def test_whatsapp_link_normalized(self, service: AnalyticsIngestionService) -> None:
        event, _ = service.record(
            payload(interactionType="click", linkData={"linkUrl": "https://wa.me/27115550123"})
        )
        assert event is not None
        assert event.link_data is not None
        assert event.link_data.social_platform == "whatsapp"
        assert event.link_data.display_url == "+27115550123"

    def test_view_ignores_link_data(self, service: AnalyticsIngestionService) -> None:
        event, _ = service.record(payload(linkData={"linkUrl": "https://example.org"}))
        assert event is not None
        assert event.link_data is None

    def test_metadata_extras_kept(self, service: AnalyticsIngestionService) -> None:
        event, _ = service.record(
            payload(metadata={"pageUrl": "https://cafe.example.com/", "placement": "hero"})
        )
        assert event is not None
        assert event.metadata.page_url == "https://cafe.example.com/"
        assert event.metadata.extra == {"placement": "hero"}

    def test_invalid_payload_not_saved(
        self, service: AnalyticsIngestionService, event_store: InMemoryEventStore
    ) -> None:
        event, errors = service.record(payload(targetId="nope"))
        assert event is None
        assert codes(errors) == ["invalid_target_id"]
        assert event_store.get_all() == []


class TestViewCounter:
    """Business views bump the counter, best-effort."""

    def test_business_view_increments(
        self, service: AnalyticsIngestionService, view_counter: InMemoryViewCounter
    ) -> None:
        service.record(payload())
        service.record(payload())
        assert view_counter.counts == {TARGET_ID: 2}

    def test_other_events_do_not_increment(
        self, service: AnalyticsIngestionService, view_counter: InMemoryViewCounter
    ) -> None:
        service.record(payload(interactionType="click"))
        service.record(payload(targetType="profile"))
        assert view_counter.counts == {}

    def test_counter_failure_does_not_fail_ingest(
        self,
        event_store: InMemoryEventStore,
        time_port: MockTimePort,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        service = AnalyticsIngestionService(
            event_store=event_store,
            view_counter=FailingCounter(),
            geo=StubGeo(),
            device_parser=StubDeviceParser(),
            time_port=time_port,
        )
        with caplog.at_level(logging.WARNING):
            event, errors = service.record(payload())

        assert errors == []
        assert event_store.get_all() == [event]
        assert "View counter increment failed" in caplog.text


class TestEnrichmentFailures:
    def test_geo_failure_degrades(
        self, event_store: InMemoryEventStore, time_port: MockTimePort
    ) -> None:
        service = AnalyticsIngestionService(
            event_store=event_store,
            geo=ExplodingGeo(),
            device_parser=StubDeviceParser(),
            time_port=time_port,
        )
        event, errors = service.record(payload(), RequestContext(ip_address="8.8.8.8"))
        assert errors == []
        assert event is not None
        assert event.location.country is None
        assert event.location.ip_address == "8.8.8.8"


class TestIngestGate:
    """Enabled flag and rate limiting."""

    def test_rate_limit(self, event_store: InMemoryEventStore, time_port: MockTimePort) -> None:
        service = AnalyticsIngestionService(
            event_store=event_store,
            geo=StubGeo(),
            device_parser=StubDeviceParser(),
            time_port=time_port,
            config=IngestionConfig(rate_limit_max_requests=2),
        )
        assert service.record(payload(), client_key="1.2.3.4")[1] == []
        assert service.record(payload(), client_key="1.2.3.4")[1] == []
        _, errors = service.record(payload(), client_key="1.2.3.4")
        assert codes(errors) == ["rate_limit_exceeded"]
        # Other clients are unaffected
        assert service.record(payload(), client_key="5.6.7.8")[1] == []

    def test_disabled(self, event_store: InMemoryEventStore) -> None:
        service = AnalyticsIngestionService(
            event_store=event_store, config=IngestionConfig(enabled=False)
        )
        event, errors = service.record(payload())
        assert event is None
        assert codes(errors) == ["analytics_disabled"]
        assert event_store.get_all() == []


class TestInMemoryRateLimiter:
    """Sliding window bookkeeping."""

    def test_idle_clients_evicted(self) -> None:
        now = [NOW]
        limiter = InMemoryRateLimiter(sweep_every=2, clock=lambda: now[0])

        limiter.record_request("idle", window_seconds=60)
        now[0] = NOW + timedelta(minutes=5)
        limiter.record_request("active", window_seconds=60)

        assert limiter.tracked_keys() == 1
        assert limiter.check_rate_limit("idle", max_requests=1, window_seconds=60)

    def test_expired_key_dropped_on_check(self) -> None:
        now = [NOW]
        limiter = InMemoryRateLimiter(clock=lambda: now[0])
        limiter.record_request("client", window_seconds=60)
        assert not limiter.check_rate_limit("client", max_requests=1, window_seconds=60)

        now[0] = NOW + timedelta(seconds=61)

        assert limiter.check_rate_limit("client", max_requests=1, window_seconds=60)
        assert limiter.tracked_keys() == 0
