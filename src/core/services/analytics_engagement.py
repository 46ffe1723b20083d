"""
Engagement scoring and session id generation.

The score is a 0-100 quality-of-interaction figure built from tiered
contributions:

    time on page   >180s 30, >120s 25, >60s 20, >30s 15, >15s 10, >5s 5
    scroll depth   >=90% 25, >=75% 20, >=50% 15, >=25% 10, >=10% 5
    interactions   >=5 25, >=3 20, >=2 15, >=1 10
    bounce         -10
    load time      <=1s +10, <=2s +5, <=3s 0, <=5s -5, slower -10
    bonus          +10 when time >300s, scroll >80% and interactions >2

An unknown load time contributes nothing. The total is clamped to [0, 100].
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass

# --- Configuration ---


@dataclass(frozen=True)
class EngagementConfig:
    """Tier tables for the engagement score, highest threshold first."""

    time_tiers: tuple[tuple[float, int], ...] = (
        (180, 30),
        (120, 25),
        (60, 20),
        (30, 15),
        (15, 10),
        (5, 5),
    )
    scroll_tiers: tuple[tuple[float, int], ...] = (
        (90, 25),
        (75, 20),
        (50, 15),
        (25, 10),
        (10, 5),
    )
    interaction_tiers: tuple[tuple[int, int], ...] = (
        (5, 25),
        (3, 20),
        (2, 15),
        (1, 10),
    )
    load_time_tiers: tuple[tuple[int, int], ...] = (
        (1000, 10),
        (2000, 5),
        (3000, 0),
        (5000, -5),
    )
    slow_load_penalty: int = -10
    bounce_penalty: int = -10
    highly_engaged_bonus: int = 10

    session_id_bytes: int = 18


DEFAULT_CONFIG = EngagementConfig()


# --- Pure Functions ---


def _time_points(seconds: float, config: EngagementConfig) -> int:
    for threshold, points in config.time_tiers:
        if seconds > threshold:
            return points
    return 0


def _scroll_points(percent: float, config: EngagementConfig) -> int:
    for threshold, points in config.scroll_tiers:
        if percent >= threshold:
            return points
    return 0


def _interaction_points(count: int, config: EngagementConfig) -> int:
    for threshold, points in config.interaction_tiers:
        if count >= threshold:
            return points
    return 0


def _load_points(load_time_ms: int | None, config: EngagementConfig) -> int:
    if load_time_ms is None:
        return 0
    for threshold, points in config.load_time_tiers:
        if load_time_ms <= threshold:
            return points
    return config.slow_load_penalty


def calculate_engagement_score(
    time_on_page: float | None = None,
    scroll_depth: float | None = None,
    interactions: int = 0,
    bounced: bool = False,
    load_time_ms: int | None = None,
    config: EngagementConfig = DEFAULT_CONFIG,
) -> int:
    """
    Score one event between 0 and 100.

    Args:
        time_on_page: Seconds on page.
        scroll_depth: Max scroll depth, 0-100.
        interactions: Interaction count; 1 for any non-view event.
        bounced: Whether the visit bounced.
        load_time_ms: Page load time in milliseconds.
        config: Tier tables.

    Returns:
        Integer score clamped to [0, 100].
    """
    seconds = max(0.0, float(time_on_page or 0))
    depth = max(0.0, min(100.0, float(scroll_depth or 0)))
    count = max(0, interactions)

    score = (
        _time_points(seconds, config)
        + _scroll_points(depth, config)
        + _interaction_points(count, config)
        + _load_points(load_time_ms, config)
    )

    if bounced:
        score += config.bounce_penalty

    if seconds > 300 and depth > 80 and count > 2:
        score += config.highly_engaged_bonus

    return max(0, min(100, score))


def generate_session_id(config: EngagementConfig = DEFAULT_CONFIG) -> str:
    """New opaque session identifier for callers that did not send one."""
    return f"sess_{secrets.token_urlsafe(config.session_id_bytes)}"
