import os
from functools import lru_cache
from pathlib import Path

from fastapi import Depends, Request

from src.adapters.clock import SystemClock
from src.adapters.sqlite_db import SQLiteEventRepo, SQLiteViewCounter
from src.components.analytics import InMemoryRateLimiter
from src.core.services.analytics_device import UserAgentDeviceParser
from src.core.services.analytics_geo import GeoIPResolver
from src.rules.loader import load_rules
from src.rules.models import Rules


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(os.environ.get("ANALYTICS_DATA_DIR", "./data"))
        self.db_path = str(self.data_dir / "analytics.db")
        self.rules_path = Path(
            os.environ.get("ANALYTICS_RULES_PATH", str(self.base_dir / "rules.yaml"))
        )
        self.migrations_dir = self.base_dir / "migrations"
        self.geoip_db_path = os.environ.get("GEOIP_DB_PATH")


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def _load_rules(path: Path) -> Rules:
    return load_rules(path)


def get_rules(settings: Settings = Depends(get_settings)) -> Rules:
    return _load_rules(settings.rules_path)


class AnalyticsRulesAdapter:
    """Adapter to map generic Rules to the analytics component RulesPort."""

    def __init__(self, rules: Rules):
        self._rules = rules.analytics

    def is_enabled(self) -> bool:
        return self._rules.enabled

    def get_limits(self) -> dict[str, int]:
        return self._rules.limits.model_dump()

    def get_real_time_window(self) -> dict[str, int]:
        return self._rules.real_time.model_dump()

    def get_rate_limit_config(self) -> dict[str, int]:
        return self._rules.rate_limit.model_dump()

    def get_raw_data_cap(self) -> int:
        return self._rules.export.raw_data_cap

    def get_default_export_metrics(self) -> list[str]:
        return list(self._rules.export.default_metrics)

    def get_branch_timeout_seconds(self) -> float:
        return self._rules.orchestration.branch_timeout_seconds

    def get_app_domain(self) -> str:
        return self._rules.app_domain


def get_analytics_rules(rules: Rules = Depends(get_rules)) -> AnalyticsRulesAdapter:
    return AnalyticsRulesAdapter(rules)


# --- Repos ---
def get_event_store(settings: Settings = Depends(get_settings)) -> SQLiteEventRepo:
    return SQLiteEventRepo(settings.db_path)


def get_view_counter(settings: Settings = Depends(get_settings)) -> SQLiteViewCounter:
    return SQLiteViewCounter(settings.db_path)


# --- Enrichment ---
_geo_instance: GeoIPResolver | None = None


def get_geo(
    settings: Settings = Depends(get_settings),
    rules: Rules = Depends(get_rules),
) -> GeoIPResolver:
    """Get geo resolver singleton; the environment overrides the rules path."""
    global _geo_instance
    if _geo_instance is None:
        _geo_instance = GeoIPResolver(settings.geoip_db_path or rules.analytics.geoip_db_path)
    return _geo_instance


def close_geo() -> None:
    """Release the geo database reader, if one was opened."""
    global _geo_instance
    if _geo_instance is not None:
        _geo_instance.close()
        _geo_instance = None


@lru_cache
def get_device_parser() -> UserAgentDeviceParser:
    return UserAgentDeviceParser()


# --- Clock / Rate limiting ---
_clock_instance: SystemClock | None = None


def get_clock() -> SystemClock:
    """Get clock singleton."""
    global _clock_instance
    if _clock_instance is None:
        _clock_instance = SystemClock()
    return _clock_instance


_rate_limiter_instance: InMemoryRateLimiter | None = None


def get_rate_limiter() -> InMemoryRateLimiter:
    """Get rate limiter singleton."""
    global _rate_limiter_instance
    if _rate_limiter_instance is None:
        _rate_limiter_instance = InMemoryRateLimiter()
    return _rate_limiter_instance


def get_client_key(request: Request) -> str:
    """Client key for rate limiting: first forwarded address, else the peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"
