from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from itertools import count
from pathlib import Path
from typing import Any

import pytest

from src.components.analytics import InMemoryEventStore, InMemoryViewCounter, derive_timing
from src.core.entities import (
    DeviceInfo,
    EventMetadata,
    EventMetrics,
    LinkData,
    Location,
    Referral,
    ViewEvent,
)
from src.rules.loader import load_rules
from src.rules.models import Rules

TARGET_ID = "64b7f0c2a1b2c3d4e5f60718"
OTHER_TARGET_ID = "64b7f0c2a1b2c3d4e5f60719"
VIEWER_A = "5f1e2d3c4b5a697887766554"
VIEWER_B = "5f1e2d3c4b5a697887766555"

# Wednesday
NOW = datetime(2024, 6, 12, 15, 30, tzinfo=UTC)


class MockTimePort:
    """Mock time provider."""

    def __init__(self, now: datetime | None = None) -> None:
        self._now = now or NOW

    def now_utc(self) -> datetime:
        return self._now

    def set_now(self, now: datetime) -> None:
        self._now = now


@pytest.fixture
def time_port() -> MockTimePort:
    return MockTimePort()


@pytest.fixture
def event_store() -> InMemoryEventStore:
    return InMemoryEventStore()


@pytest.fixture
def view_counter() -> InMemoryViewCounter:
    return InMemoryViewCounter()


@pytest.fixture
def rules() -> Rules:
    """Real rules from the project root (tests run from there)."""
    return load_rules(Path("rules.yaml").resolve())


_ids = count(1)


def build_event(
    created_at: datetime = NOW,
    *,
    target_id: str = TARGET_ID,
    target_type: str = "business",
    interaction_type: str = "view",
    viewer_id: str | None = VIEWER_A,
    session_id: str | None = None,
    country: str | None = "South Africa",
    region: str | None = None,
    city: str | None = None,
    device_type: str = "desktop",
    source: str = "direct",
    link_type: str | None = None,
    link_url: str | None = None,
    link_position: str | None = None,
    social_platform: str | None = None,
    score: int = 50,
    time_on_page: float | None = None,
    bounced: bool = False,
    page_url: str | None = None,
) -> ViewEvent:
    """Build a stored-shape event without going through ingest."""
    n = next(_ids)
    link = None
    if interaction_type == "click":
        link = LinkData(
            link_type=link_type or "website",
            link_url=link_url,
            link_position=link_position,
            social_platform=social_platform,
        )
    return ViewEvent(
        id=f"evt-{n}",
        target_id=target_id,
        target_type=target_type,
        session_id=session_id or f"sess-{n}",
        interaction_type=interaction_type,
        created_at=created_at,
        timing=derive_timing(created_at),
        viewer_id=viewer_id,
        location=Location(country=country, region=region, city=city),
        device_info=DeviceInfo(type=device_type),
        referral=Referral(source=source),
        link_data=link,
        metrics=EventMetrics(
            engagement_score=score,
            time_on_page_seconds=time_on_page,
            bounce_rate=bounced,
        ),
        metadata=EventMetadata(page_url=page_url),
    )


@pytest.fixture
def make_event() -> Callable[..., ViewEvent]:
    return build_event


@pytest.fixture
def store_with(event_store: InMemoryEventStore) -> Callable[..., InMemoryEventStore]:
    """Save the given events and hand back the store."""

    def _fill(*events: ViewEvent) -> InMemoryEventStore:
        for event in events:
            event_store.save(event)
        return event_store

    return _fill


def payload(**overrides: Any) -> dict[str, Any]:
    """Minimal valid tracking payload."""
    data: dict[str, Any] = {
        "targetId": TARGET_ID,
        "targetType": "business",
        "interactionType": "view",
    }
    data.update(overrides)
    return data
