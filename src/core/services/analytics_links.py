"""
Link classification and social-handle normalization for click events.

Key behaviors:
- tel:/mailto:/maps links get phone/email/address types
- Known social domains get social_media plus a platform
- Menu and booking pages are recognised from the URL text
- Everything else is a website; unparseable URLs are "other"
- Social profile URLs are reduced to a handle, a canonical URL and a
  display form
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlparse

from src.core.entities import LINK_TYPES, SOCIAL_PLATFORMS, LinkData

# --- Configuration ---


@dataclass(frozen=True)
class LinkConfig:
    """Link classification configuration."""

    app_domain: str = "localhost"

    social_domains: tuple[tuple[tuple[str, ...], str], ...] = (
        (("instagram",), "instagram"),
        (("facebook", "fb.com", "fb.me"), "facebook"),
        (("twitter", "t.co", "x.com"), "twitter"),
        (("linkedin",), "linkedin"),
        (("tiktok",), "tiktok"),
        (("youtube", "youtu.be"), "youtube"),
        (("github.com",), "github"),
        (("wa.me", "whatsapp"), "whatsapp"),
    )

    menu_keywords: tuple[str, ...] = ("menu", "food")
    booking_keywords: tuple[str, ...] = ("book", "reservation", "appointment")


DEFAULT_CONFIG = LinkConfig()


@dataclass(frozen=True)
class NormalizedLink:
    """Canonical forms of a link."""

    normalized_url: str
    display_url: str
    handle: str | None = None


# --- Social URL Normalization ---

# platform -> (host hint, handle pattern, canonical template, display template)
_SOCIAL_PATTERNS: dict[str, tuple[tuple[str, ...], re.Pattern[str], str, str]] = {
    "instagram": (
        ("instagram.com/",),
        re.compile(r"instagram\.com/([^/?#]+)"),
        "https://instagram.com/{handle}",
        "@{handle}",
    ),
    "tiktok": (
        ("tiktok.com/",),
        re.compile(r"tiktok\.com/@([^/?#]+)"),
        "https://tiktok.com/@{handle}",
        "@{handle}",
    ),
    "facebook": (
        ("facebook.com/",),
        re.compile(r"facebook\.com/([^/?#]+)"),
        "https://facebook.com/{handle}",
        "{handle}",
    ),
    "twitter": (
        ("twitter.com/", "x.com/"),
        re.compile(r"(?:twitter|x)\.com/([^/?#]+)"),
        "https://twitter.com/{handle}",
        "@{handle}",
    ),
    "linkedin": (
        ("linkedin.com/",),
        re.compile(r"linkedin\.com/(?:in|company)/([^/?#]+)"),
        "https://linkedin.com/in/{handle}",
        "{handle}",
    ),
    "youtube": (
        ("youtube.com/",),
        re.compile(r"youtube\.com/(?:c/|channel/|user/|@)?([^/?#]+)"),
        "https://youtube.com/@{handle}",
        "@{handle}",
    ),
    "github": (
        ("github.com/",),
        re.compile(r"github\.com/([^/?#]+)"),
        "https://github.com/{handle}",
        "{handle}",
    ),
    "whatsapp": (
        ("wa.me/", "whatsapp.com/"),
        re.compile(r"(?:wa\.me/|whatsapp\.com/send\?phone=)(\d+)"),
        "https://wa.me/{handle}",
        "+{handle}",
    ),
}


def _strip_scheme(url: str) -> str:
    clean = re.sub(r"^https?://", "", url.strip().lower())
    return re.sub(r"^www\.", "", clean)


def normalize_social_url(url: str, platform: str | None) -> NormalizedLink:
    """
    Reduce a profile URL to a handle and canonical URL.

    Platforms without a pattern, or URLs that do not match their
    platform's pattern, only get an https:// prefix.
    """
    clean = _strip_scheme(url)

    known = _SOCIAL_PATTERNS.get(platform or "")
    if known is not None:
        hosts, pattern, canonical, display = known
        if any(host in clean for host in hosts):
            match = pattern.search(clean)
            if match:
                handle = match.group(1)
                return NormalizedLink(
                    normalized_url=canonical.format(handle=handle),
                    display_url=display.format(handle=handle),
                    handle=handle,
                )

    stripped = url.strip()
    if re.match(r"^[a-z][a-z0-9+.-]*:", stripped, re.IGNORECASE):
        normalized = stripped
    else:
        normalized = f"https://{stripped}"
    return NormalizedLink(normalized_url=normalized, display_url=clean.rstrip("/"))


# --- Link Classification ---


def _host_matches(domain: str, hint: str) -> bool:
    # Dotted hints are exact hosts; bare words match anywhere in the host
    if "." in hint:
        return domain == hint or domain.endswith("." + hint)
    return hint in domain


def classify_link(url: str, config: LinkConfig = DEFAULT_CONFIG) -> tuple[str, str | None]:
    """
    Classify a link URL.

    Returns:
        (link_type, social_platform) where social_platform is only set for
        social_media links.
    """
    lowered = url.lower()
    if "tel:" in lowered:
        return "phone", None
    if "mailto:" in lowered:
        return "email", None
    if "maps." in lowered or "goo.gl/maps" in lowered:
        return "address", None

    try:
        domain = (urlparse(url).hostname or "").lower()
    except ValueError:
        return "other", None

    if not domain:
        return "other", None

    for hints, platform in config.social_domains:
        if any(_host_matches(domain, hint) for hint in hints):
            return "social_media", platform

    if any(word in lowered for word in config.menu_keywords):
        return "menu", None
    if any(word in lowered for word in config.booking_keywords):
        return "booking", None
    return "website", None


def is_external(url: str, config: LinkConfig = DEFAULT_CONFIG) -> bool:
    """A link is external unless its host contains the app domain."""
    try:
        domain = (urlparse(url).hostname or "").lower()
    except ValueError:
        return False
    if not domain:
        return False
    return config.app_domain.lower() not in domain


def parse_link_data(
    link_url: str | None,
    link_text: str | None = None,
    link_position: str | None = None,
    link_type: str | None = None,
    social_platform: str | None = None,
    was_external: bool | None = None,
    config: LinkConfig = DEFAULT_CONFIG,
) -> LinkData:
    """
    Build the link block for a click event.

    Client-supplied type/platform/external flags override what the URL
    implies; everything else is derived from the URL.
    """
    if not link_url:
        return LinkData(
            link_type=link_type or "other",
            link_text=link_text,
            link_position=link_position,
            social_platform=social_platform,
            was_external=bool(was_external),
        )

    derived_type, derived_platform = classify_link(link_url, config)
    final_type = link_type if link_type in LINK_TYPES else derived_type
    platform = social_platform if social_platform in SOCIAL_PLATFORMS else derived_platform
    if final_type == "social_media" and platform is None:
        platform = "other"

    normalized = normalize_social_url(link_url, platform) if final_type == "social_media" else None

    return LinkData(
        link_type=final_type,
        link_url=link_url,
        link_text=link_text,
        link_position=link_position,
        social_platform=platform,
        was_external=is_external(link_url, config) if was_external is None else was_external,
        normalized_url=normalized.normalized_url if normalized else link_url,
        display_url=normalized.display_url if normalized else _strip_scheme(link_url).rstrip("/"),
        handle=normalized.handle if normalized else None,
    )
