"""
Fan-out / fan-in for composed analytics (dashboard, real-time, export).

Each section is a blocking query run on a worker thread with its own
timeout. Results are tagged per section so one slow or failing section
does not take the others down with it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any

from .models import AggregationFailedError, BranchResult, CompositeOutput

logger = logging.getLogger(__name__)

DEFAULT_BRANCH_TIMEOUT_SECONDS = 10.0


async def run_branch(
    section: str,
    query: Callable[[], Any],
    timeout: float = DEFAULT_BRANCH_TIMEOUT_SECONDS,
) -> BranchResult:
    """Run one section query off the event loop, never raising."""
    try:
        value = await asyncio.wait_for(asyncio.to_thread(query), timeout=timeout)
    except TimeoutError:
        logger.warning("Analytics section %s timed out after %.1fs", section, timeout)
        return BranchResult(section=section, error=f"timed out after {timeout:g}s")
    except Exception as e:
        logger.exception("Analytics section %s failed", section)
        return BranchResult(section=section, error=str(e) or type(e).__name__)
    return BranchResult(section=section, value=value)


async def fan_out(
    branches: Mapping[str, Callable[[], Any]],
    timeout: float = DEFAULT_BRANCH_TIMEOUT_SECONDS,
) -> CompositeOutput:
    """
    Run every branch concurrently and merge the successful ones.

    Raises:
        AggregationFailedError: if there was at least one branch and all failed.
    """
    if not branches:
        return CompositeOutput(sections={})

    tasks = [run_branch(section, query, timeout) for section, query in branches.items()]
    results = await asyncio.gather(*tasks, return_exceptions=True)

    sections: dict[str, Any] = {}
    failures: list[dict[str, str]] = []
    for section, result in zip(branches, results, strict=True):
        if isinstance(result, BaseException):
            # Cancellation or an error escaping run_branch
            failures.append({"section": section, "error": type(result).__name__})
        elif result.ok:
            sections[section] = result.value
        else:
            failures.append({"section": section, "error": result.error or "failed"})

    if not sections:
        raise AggregationFailedError([f["section"] for f in failures])

    return CompositeOutput(sections=sections, failures=failures)
