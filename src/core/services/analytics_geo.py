"""
IP geolocation backed by a local MaxMind database (geoip2).

The reader is opened lazily on first lookup. Without a database file, or
for private/unknown addresses, every geo field is null except the IP.
Lookups never raise.
"""

from __future__ import annotations

import ipaddress
import logging
import os
import threading

import geoip2.database
import geoip2.errors
from maxminddb.errors import InvalidDatabaseError

from src.core.entities import Location

logger = logging.getLogger(__name__)


def normalize_ip(raw_ip: str | None) -> str | None:
    """Return a canonical IP string, or None when the value is not an IP."""
    if not raw_ip:
        return None
    candidate = raw_ip.split(",")[0].strip()
    if candidate.startswith("::ffff:"):
        candidate = candidate[len("::ffff:") :]
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


def is_public_ip(ip: str) -> bool:
    addr = ipaddress.ip_address(ip)
    return not (addr.is_private or addr.is_loopback or addr.is_reserved or addr.is_link_local)


class GeoIPResolver:
    """GeoLookupPort over a MaxMind City (or Country) database."""

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = db_path
        self._reader: geoip2.database.Reader | None = None
        self._unavailable = False
        self._lock = threading.Lock()

    def _get_reader(self) -> geoip2.database.Reader | None:
        if self._reader is not None or self._unavailable:
            return self._reader
        with self._lock:
            if self._reader is None and not self._unavailable:
                if not self._db_path or not os.path.exists(self._db_path):
                    logger.info("GeoIP database not configured; locations will be null")
                    self._unavailable = True
                else:
                    try:
                        self._reader = geoip2.database.Reader(self._db_path)
                    except (OSError, InvalidDatabaseError) as e:
                        logger.warning("GeoIP database %s could not be opened: %s", self._db_path, e)
                        self._unavailable = True
        return self._reader

    def lookup(self, ip_address: str | None) -> Location:
        ip = normalize_ip(ip_address)
        if ip is None:
            return Location(ip_address=ip_address)

        if not is_public_ip(ip):
            return Location(ip_address=ip)

        reader = self._get_reader()
        if reader is None:
            return Location(ip_address=ip)

        try:
            if reader.metadata().database_type.endswith("Country"):
                return self._from_country(reader, ip)
            resp = reader.city(ip)
        except (geoip2.errors.AddressNotFoundError, ValueError):
            return Location(ip_address=ip)
        except geoip2.errors.GeoIP2Error as e:
            logger.warning("GeoIP lookup failed for %s: %s", ip, e)
            return Location(ip_address=ip)

        coordinates = None
        if resp.location.longitude is not None and resp.location.latitude is not None:
            coordinates = (resp.location.longitude, resp.location.latitude)

        region = resp.subdivisions.most_specific.name if resp.subdivisions else None
        if resp.city.name:
            accuracy = "city"
        elif region:
            accuracy = "region"
        else:
            accuracy = "country"

        return Location(
            country=resp.country.name,
            country_code=resp.country.iso_code,
            region=region,
            city=resp.city.name,
            coordinates=coordinates,
            ip_address=ip,
            timezone=resp.location.time_zone,
            accuracy=accuracy,
        )

    def _from_country(self, reader: geoip2.database.Reader, ip: str) -> Location:
        resp = reader.country(ip)
        return Location(
            country=resp.country.name or resp.registered_country.name,
            country_code=resp.country.iso_code or resp.registered_country.iso_code,
            ip_address=ip,
            accuracy="country",
        )

    def close(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None
