"""
Referral attribution - UTM and referrer parsing for tracked events.

Turns the request's Referer header and UTM query parameters into the
referral block stored on every event.

Key behaviors:
- UTM parameters win over the Referer header
- Referrers are classified as search engine, social network or plain referral
- No signal at all means source=direct
- Malformed input never raises; it degrades to the direct/unknown case
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import parse_qs, urlparse

from src.core.entities import Referral

# --- Enums ---


class TrafficSource(str, Enum):
    """Referral source classification stored on events."""

    DIRECT = "direct"
    SEARCH = "search"
    SOCIAL = "social"
    EMAIL = "email"
    QR_CODE = "qr_code"
    REFERRAL = "referral"
    OTHER = "other"


class SearchEngine(str, Enum):
    """Known search engines."""

    GOOGLE = "google"
    BING = "bing"
    YAHOO = "yahoo"
    DUCKDUCKGO = "duckduckgo"
    BAIDU = "baidu"
    YANDEX = "yandex"


class SocialNetwork(str, Enum):
    """Known social networks."""

    FACEBOOK = "facebook"
    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    INSTAGRAM = "instagram"
    PINTEREST = "pinterest"
    REDDIT = "reddit"
    YOUTUBE = "youtube"
    TIKTOK = "tiktok"


# --- Configuration ---


@dataclass(frozen=True)
class AttributionConfig:
    """Attribution configuration."""

    search_engine_domains: tuple[tuple[str, SearchEngine], ...] = (
        ("google.", SearchEngine.GOOGLE),
        ("bing.", SearchEngine.BING),
        ("yahoo.", SearchEngine.YAHOO),
        ("duckduckgo.", SearchEngine.DUCKDUCKGO),
        ("baidu.", SearchEngine.BAIDU),
        ("yandex.", SearchEngine.YANDEX),
    )

    social_network_domains: tuple[tuple[str, SocialNetwork], ...] = (
        ("facebook.", SocialNetwork.FACEBOOK),
        ("fb.", SocialNetwork.FACEBOOK),
        ("twitter.", SocialNetwork.TWITTER),
        ("x.com", SocialNetwork.TWITTER),
        ("t.co", SocialNetwork.TWITTER),
        ("linkedin.", SocialNetwork.LINKEDIN),
        ("lnkd.", SocialNetwork.LINKEDIN),
        ("instagram.", SocialNetwork.INSTAGRAM),
        ("pinterest.", SocialNetwork.PINTEREST),
        ("reddit.", SocialNetwork.REDDIT),
        ("youtube.", SocialNetwork.YOUTUBE),
        ("youtu.be", SocialNetwork.YOUTUBE),
        ("tiktok.", SocialNetwork.TIKTOK),
    )

    medium_to_source: tuple[tuple[str, TrafficSource], ...] = (
        ("cpc", TrafficSource.SEARCH),
        ("ppc", TrafficSource.SEARCH),
        ("paid", TrafficSource.SEARCH),
        ("paidsearch", TrafficSource.SEARCH),
        ("organic", TrafficSource.SEARCH),
        ("email", TrafficSource.EMAIL),
        ("newsletter", TrafficSource.EMAIL),
        ("social", TrafficSource.SOCIAL),
        ("social-media", TrafficSource.SOCIAL),
        ("qr", TrafficSource.QR_CODE),
        ("qr_code", TrafficSource.QR_CODE),
        ("qrcode", TrafficSource.QR_CODE),
        ("print", TrafficSource.QR_CODE),
        ("referral", TrafficSource.REFERRAL),
    )

    search_query_params: tuple[str, ...] = ("q", "query", "p", "text")


DEFAULT_CONFIG = AttributionConfig()


# --- Data Models ---


@dataclass
class UTMParams:
    """Parsed UTM parameters."""

    source: str | None = None
    medium: str | None = None
    campaign: str | None = None
    content: str | None = None
    term: str | None = None

    def has_any(self) -> bool:
        """Check if any UTM parameter is present."""
        return any([self.source, self.medium, self.campaign, self.content, self.term])


@dataclass
class ReferrerInfo:
    """Parsed referrer information."""

    url: str | None = None
    domain: str | None = None
    subdomain: str | None = None
    search_query: str | None = None
    is_search_engine: bool = False
    search_engine: SearchEngine | None = None
    is_social_network: bool = False
    social_network: SocialNetwork | None = None


# --- Parsing Functions ---


def parse_utm_params(data: dict[str, Any]) -> UTMParams:
    """
    Parse UTM parameters from a query mapping.

    Only prefixed keys (utm_source, ...) are read. Values are trimmed and
    lowercased; blanks become None.
    """

    def get_param(key: str) -> str | None:
        value = data.get(f"utm_{key}")
        if value and isinstance(value, str):
            return value.strip().lower() or None
        return None

    return UTMParams(
        source=get_param("source"),
        medium=get_param("medium"),
        campaign=get_param("campaign"),
        content=get_param("content"),
        term=get_param("term"),
    )


def parse_domain(url: str) -> tuple[str | None, str | None]:
    """
    Extract (domain, subdomain) from a URL.

    Two-part country TLDs such as .co.uk are kept together.
    """
    if not url:
        return None, None

    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        return None, None

    if not host:
        return None, None

    parts = host.split(".")
    if len(parts) < 2:
        return host, None

    if parts[-1] in ("uk", "au", "nz", "jp", "br", "za") and len(parts) >= 3:
        domain = ".".join(parts[-3:])
        subdomain = ".".join(parts[:-3]) if len(parts) > 3 else None
    else:
        domain = ".".join(parts[-2:])
        subdomain = ".".join(parts[:-2]) if len(parts) > 2 else None

    return domain, subdomain


def _first_param(query: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = query.get(key)
        if isinstance(value, list):
            value = value[0] if value else None
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _host_matches(host: str, hint: str) -> bool:
    # "name." hints match a whole leading label on any TLD; dotted hosts match by suffix
    if hint.endswith("."):
        return host.startswith(hint) or f".{hint}" in host
    return host == hint or host.endswith(f".{hint}")


def _source_matches(source: str, hint: str) -> bool:
    return source == hint.rstrip(".") or _host_matches(source, hint)


def parse_referrer(
    url: str | None,
    config: AttributionConfig = DEFAULT_CONFIG,
) -> ReferrerInfo:
    """
    Parse a referrer URL.

    Extracts the domain, detects search engines and social networks and
    pulls a search query out of the referrer's own query string.
    """
    if not url:
        return ReferrerInfo()

    domain, subdomain = parse_domain(url)
    info = ReferrerInfo(url=url, domain=domain, subdomain=subdomain)
    if not domain:
        return info

    host = f"{subdomain}.{domain}" if subdomain else domain

    for pattern, engine in config.search_engine_domains:
        if _host_matches(host, pattern):
            info.is_search_engine = True
            info.search_engine = engine
            try:
                query = parse_qs(urlparse(url).query)
            except ValueError:
                query = {}
            info.search_query = _first_param(query, config.search_query_params)
            break

    if not info.is_search_engine:
        for pattern, network in config.social_network_domains:
            if _host_matches(host, pattern):
                info.is_social_network = True
                info.social_network = network
                break

    return info


def classify_traffic_source(
    utm: UTMParams,
    referrer: ReferrerInfo,
    config: AttributionConfig = DEFAULT_CONFIG,
) -> TrafficSource:
    """
    Classify the referral source.

    Priority:
    1. UTM medium if it maps to a known source
    2. UTM source (search engine, social network, email, qr)
    3. Referrer classification
    4. Default to direct
    """
    mediums = dict(config.medium_to_source)

    if utm.medium and utm.medium in mediums:
        return mediums[utm.medium]

    if utm.source:
        if utm.source in {s.value for s in TrafficSource}:
            return TrafficSource(utm.source)
        for pattern, _ in config.search_engine_domains:
            if _source_matches(utm.source, pattern):
                return TrafficSource.SEARCH
        for pattern, _ in config.social_network_domains:
            if _source_matches(utm.source, pattern):
                return TrafficSource.SOCIAL
        if "email" in utm.source or "newsletter" in utm.source:
            return TrafficSource.EMAIL
        if "qr" in utm.source:
            return TrafficSource.QR_CODE
        return TrafficSource.OTHER

    if referrer.is_search_engine:
        return TrafficSource.SEARCH

    if referrer.is_social_network:
        return TrafficSource.SOCIAL

    if referrer.domain:
        return TrafficSource.REFERRAL

    return TrafficSource.DIRECT


def _medium_for(source: TrafficSource, utm: UTMParams, referrer: ReferrerInfo) -> str | None:
    if utm.medium:
        return utm.medium
    if source == TrafficSource.SEARCH and referrer.is_search_engine:
        return "organic"
    if source == TrafficSource.SOCIAL and referrer.social_network:
        return referrer.social_network.value
    if source == TrafficSource.REFERRAL:
        return "website"
    return None


def parse_referral(
    referer: str | None,
    query: dict[str, Any] | None = None,
    config: AttributionConfig = DEFAULT_CONFIG,
) -> Referral:
    """
    Build the referral block for an event.

    Args:
        referer: Value of the Referer header, if any.
        query: Query parameters of the tracking request.
        config: Attribution configuration.

    Returns:
        Referral with source defaulting to "direct".
    """
    query = query or {}
    utm = parse_utm_params(query)
    referrer = parse_referrer(referer, config)
    source = classify_traffic_source(utm, referrer, config)

    search_query = referrer.search_query or _first_param(query, ("q", "query"))

    return Referral(
        source=source.value,
        medium=_medium_for(source, utm, referrer),
        campaign=utm.campaign,
        referrer_url=referrer.url,
        search_query=search_query,
        utm_source=utm.source,
        utm_medium=utm.medium,
        utm_campaign=utm.campaign,
        utm_content=utm.content,
        utm_term=utm.term,
    )
