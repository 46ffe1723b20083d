"""
Device info parsing from the User-Agent header.

Key behaviors:
- Mobile / tablet / desktop classification via the user-agents library
- Crawlers, scripts and anything unclassifiable map to type "other"
- Missing or malformed headers never raise; they give type "other"
  with null os/browser
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from user_agents import parse as parse_ua

from src.core.entities import DeviceInfo

logger = logging.getLogger(__name__)

# --- Configuration ---


@dataclass(frozen=True)
class DeviceConfig:
    """Device parsing configuration."""

    max_user_agent_length: int = 500

    # Substrings the user-agents library does not flag as bots on its own
    bot_patterns: tuple[str, ...] = (
        "bot",
        "crawler",
        "spider",
        "scraper",
        "wget",
        "curl",
        "python-requests",
        "go-http-client",
        "java/",
        "libwww",
        "httpclient",
        "headlesschrome",
        "phantomjs",
        "facebookexternalhit",
    )


DEFAULT_CONFIG = DeviceConfig()


# --- Pure Functions ---


def looks_like_bot(user_agent: str, config: DeviceConfig = DEFAULT_CONFIG) -> bool:
    """Check a UA string against known automation patterns."""
    ua_lower = user_agent.lower()
    return any(pattern in ua_lower for pattern in config.bot_patterns)


def _family(value: str | None) -> str | None:
    if not value or value == "Other":
        return None
    return value[:50]


def parse_device_info(
    user_agent: str | None,
    screen_resolution: str | None = None,
    config: DeviceConfig = DEFAULT_CONFIG,
) -> DeviceInfo:
    """
    Parse a User-Agent header into a device block.

    Args:
        user_agent: Raw header value, possibly empty.
        screen_resolution: Optional client-reported resolution.
        config: Device parsing configuration.

    Returns:
        DeviceInfo; type defaults to "other".
    """
    if not user_agent or not user_agent.strip():
        return DeviceInfo(screen_resolution=screen_resolution)

    raw = user_agent.strip()[: config.max_user_agent_length]

    try:
        ua = parse_ua(raw)
    except (TypeError, ValueError, AttributeError) as e:
        logger.debug("Could not parse user agent %r: %s", raw, e)
        return DeviceInfo(screen_resolution=screen_resolution, user_agent=raw)

    if ua.is_bot or looks_like_bot(raw, config):
        device_type = "other"
    elif ua.is_tablet:
        device_type = "tablet"
    elif ua.is_mobile:
        device_type = "mobile"
    elif ua.is_pc:
        device_type = "desktop"
    else:
        device_type = "other"

    return DeviceInfo(
        type=device_type,
        os=_family(ua.os.family),
        browser=_family(ua.browser.family),
        screen_resolution=screen_resolution,
        user_agent=raw,
    )


class UserAgentDeviceParser:
    """DeviceParserPort backed by the user-agents library."""

    def __init__(self, config: DeviceConfig | None = None) -> None:
        self._config = config or DEFAULT_CONFIG

    def parse(self, user_agent: str | None) -> DeviceInfo:
        return parse_device_info(user_agent, config=self._config)
