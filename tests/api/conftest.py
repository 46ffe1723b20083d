"""
API test wiring.

The real app is used with every port swapped for an in-memory double via
``dependency_overrides``. The client is not entered as a context manager,
so the startup hook (rules file, data directory, migrations) never runs.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from src.api import deps
from src.api.main import app
from src.components.analytics import (
    InMemoryEventStore,
    InMemoryRateLimiter,
    InMemoryViewCounter,
)
from src.core.entities import DeviceInfo, Location
from src.rules.models import Rules
from tests.conftest import MockTimePort


class StubGeo:
    def __init__(self) -> None:
        self.calls: list[str | None] = []

    def lookup(self, ip_address: str | None) -> Location:
        self.calls.append(ip_address)
        return Location(country="South Africa", city="Cape Town", ip_address=ip_address)


class StubDeviceParser:
    def parse(self, user_agent: str | None) -> DeviceInfo:
        return DeviceInfo(type="desktop", browser="Firefox", user_agent=user_agent)


@pytest.fixture
def geo() -> StubGeo:
    return StubGeo()


@pytest.fixture
def rate_limiter() -> InMemoryRateLimiter:
    return InMemoryRateLimiter()


@pytest.fixture
def client(
    event_store: InMemoryEventStore,
    view_counter: InMemoryViewCounter,
    time_port: MockTimePort,
    rules: Rules,
    geo: StubGeo,
    rate_limiter: InMemoryRateLimiter,
) -> Iterator[TestClient]:
    app.dependency_overrides.update(
        {
            deps.get_event_store: lambda: event_store,
            deps.get_view_counter: lambda: view_counter,
            deps.get_geo: lambda: geo,
            deps.get_device_parser: StubDeviceParser,
            deps.get_rate_limiter: lambda: rate_limiter,
            deps.get_clock: lambda: time_port,
            deps.get_analytics_rules: lambda: deps.AnalyticsRulesAdapter(rules),
        }
    )
    yield TestClient(app)
    app.dependency_overrides.clear()
