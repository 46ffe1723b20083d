"""
Tests for IP geolocation.

No MaxMind database is shipped, so the reader is replaced with a stub
where a resolved location is needed.
"""

from __future__ import annotations

from types import SimpleNamespace

import geoip2.errors
import pytest

from src.api import deps
from src.core.services.analytics_geo import GeoIPResolver, is_public_ip, normalize_ip


class StubReader:
    """Stands in for geoip2.database.Reader."""

    def __init__(self, database_type: str = "GeoLite2-City", missing: bool = False) -> None:
        self._type = database_type
        self._missing = missing
        self.closed = False

    def metadata(self) -> SimpleNamespace:
        return SimpleNamespace(database_type=self._type)

    def city(self, ip: str) -> SimpleNamespace:
        if self._missing:
            raise geoip2.errors.AddressNotFoundError(f"{ip} not found")
        return SimpleNamespace(
            country=SimpleNamespace(name="South Africa", iso_code="ZA"),
            subdivisions=SimpleNamespace(most_specific=SimpleNamespace(name="Gauteng")),
            city=SimpleNamespace(name="Johannesburg"),
            location=SimpleNamespace(
                longitude=28.04, latitude=-26.2, time_zone="Africa/Johannesburg"
            ),
        )

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def resolver_with_reader() -> GeoIPResolver:
    resolver = GeoIPResolver()
    resolver._reader = StubReader()
    return resolver


class TestNormalizeIp:
    def test_mapped_ipv4(self) -> None:
        assert normalize_ip("::ffff:8.8.8.8") == "8.8.8.8"

    def test_forwarded_list_takes_first(self) -> None:
        assert normalize_ip("8.8.8.8, 10.0.0.1") == "8.8.8.8"

    def test_not_an_ip(self) -> None:
        assert normalize_ip("unknown") is None
        assert normalize_ip(None) is None

    def test_private_ranges(self) -> None:
        assert not is_public_ip("10.1.2.3")
        assert not is_public_ip("127.0.0.1")
        assert is_public_ip("8.8.8.8")


class TestLookupWithoutDatabase:
    """Without a database every geo field is null."""

    def test_public_ip_unresolved(self) -> None:
        location = GeoIPResolver(None).lookup("8.8.8.8")
        assert location.ip_address == "8.8.8.8"
        assert location.country is None
        assert location.city is None

    def test_missing_file(self, tmp_path) -> None:
        location = GeoIPResolver(str(tmp_path / "absent.mmdb")).lookup("8.8.8.8")
        assert location.country is None

    def test_invalid_ip_kept_as_given(self) -> None:
        location = GeoIPResolver(None).lookup("garbage")
        assert location.ip_address == "garbage"
        assert location.country is None


class TestLookupWithDatabase:
    """City lookups through the reader."""

    def test_city_resolved(self, resolver_with_reader: GeoIPResolver) -> None:
        location = resolver_with_reader.lookup("8.8.8.8")
        assert location.country == "South Africa"
        assert location.country_code == "ZA"
        assert location.region == "Gauteng"
        assert location.city == "Johannesburg"
        assert location.coordinates == (28.04, -26.2)
        assert location.timezone == "Africa/Johannesburg"
        assert location.accuracy == "city"

    def test_private_ip_skips_reader(self, resolver_with_reader: GeoIPResolver) -> None:
        location = resolver_with_reader.lookup("192.168.1.10")
        assert location.ip_address == "192.168.1.10"
        assert location.country is None

    def test_address_not_found(self) -> None:
        resolver = GeoIPResolver()
        resolver._reader = StubReader(missing=True)
        location = resolver.lookup("8.8.8.8")
        assert location.ip_address == "8.8.8.8"
        assert location.country is None


class TestClose:
    def test_reader_released(self, resolver_with_reader: GeoIPResolver) -> None:
        reader = resolver_with_reader._reader
        resolver_with_reader.close()
        assert reader.closed
        assert resolver_with_reader._reader is None
        resolver_with_reader.close()

    def test_shutdown_closes_shared_resolver(
        self, resolver_with_reader: GeoIPResolver, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        reader = resolver_with_reader._reader
        monkeypatch.setattr(deps, "_geo_instance", resolver_with_reader)

        deps.close_geo()

        assert reader.closed
        assert deps._geo_instance is None
