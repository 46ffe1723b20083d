"""
Analytics component port definitions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from src.core.entities import DeviceInfo, Location, ViewEvent


class EventStorePort(Protocol):
    """Append-only store of view/interaction events."""

    def save(self, event: ViewEvent) -> None:
        """Persist a new event."""
        ...

    def find(
        self,
        target_id: str,
        target_type: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[ViewEvent]:
        """Return events for a target, optionally bounded by created_at (inclusive)."""
        ...


class ViewCounterPort(Protocol):
    """Aggregate counter owned by the target's collaborator (e.g. business view count)."""

    def increment(self, target_id: str, amount: int = 1) -> None:
        """Atomically add `amount` to the target's counter."""
        ...


class GeoLookupPort(Protocol):
    """IP to location resolver."""

    def lookup(self, ip_address: str | None) -> Location:
        """Resolve an IP. Never raises; unknown IPs give null fields."""
        ...


class DeviceParserPort(Protocol):
    """User-agent to device info parser."""

    def parse(self, user_agent: str | None) -> DeviceInfo:
        """Parse a UA header. Never raises."""
        ...


class RateLimiterPort(Protocol):
    """Rate limiter interface."""

    def check_rate_limit(self, key: str, max_requests: int, window_seconds: int) -> bool:
        """Check if rate limit allows request. Returns True if allowed."""
        ...

    def record_request(self, key: str, window_seconds: int) -> None:
        """Record a request for rate limiting."""
        ...


class TimePort(Protocol):
    """Time provider interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...


class RulesPort(Protocol):
    """Port for analytics rules configuration."""

    def is_enabled(self) -> bool:
        """Check if analytics is enabled."""
        ...

    def get_limits(self) -> dict[str, int]:
        """Get group/row limits (location_default, location_max, ...)."""
        ...

    def get_real_time_window(self) -> dict[str, int]:
        """Get real-time window bounds (min_minutes, max_minutes, default_minutes)."""
        ...

    def get_rate_limit_config(self) -> dict[str, int]:
        """Get rate limit config (window_seconds, max_requests)."""
        ...

    def get_raw_data_cap(self) -> int:
        """Get the maximum number of raw rows attached to an export."""
        ...

    def get_default_export_metrics(self) -> list[str]:
        """Get the metrics exported when the caller names none."""
        ...

    def get_branch_timeout_seconds(self) -> float:
        """Get the per-branch timeout for composed queries."""
        ...

    def get_app_domain(self) -> str:
        """Get the host fragment that marks a link as internal."""
        ...
