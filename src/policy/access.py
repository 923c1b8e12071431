"""
Tier-based access policy.

Pure functions over TIER_PLANS. Unknown tiers or sources are denied, never
raised on.
"""

import logging
from datetime import datetime, timedelta
from typing import Mapping, Optional

from ..archivist.models import utc_now_naive
from ..config.tiers import TIER_PLANS, DEFAULT_TIER
from .schedule_window import is_schedule_active

logger = logging.getLogger(__name__)

# Interval for unknown (tier, source) pairs: never due
NEVER = timedelta.max


def is_allowed(tier: str, source: str) -> bool:
    """Whether a tier may scan a source."""
    plan = TIER_PLANS.get(tier)
    if plan is None:
        return False
    return source in plan.sources


def minimum_interval(tier: str, source: str) -> timedelta:
    """Minimum time between two scans of a source for a tier."""
    plan = TIER_PLANS.get(tier)
    if plan is None or source not in plan.sources:
        return NEVER
    return plan.source_intervals.get(source, plan.refresh_interval)


def get_tier(user_id: str, tier_map: Mapping[str, str]) -> str:
    """Tier from a prefetched user_id -> tier map."""
    return tier_map.get(user_id) or DEFAULT_TIER


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return (value - value.utcoffset()).replace(tzinfo=None)
    return value


def skip_reason(
    monitor,
    tier_map: Mapping[str, str],
    source: str,
    now: Optional[datetime] = None,
) -> Optional[str]:
    """Why a monitor must not be scanned now, or None if it may be.

    Checks short-circuit in order: tier access, refresh interval, active hours.
    """
    tier = get_tier(monitor.user_id, tier_map)
    if not is_allowed(tier, source):
        return f"tier '{tier}' has no access to {source}"

    now = now or utc_now_naive()
    if monitor.last_checked_at is not None:
        elapsed = _as_naive_utc(now) - _as_naive_utc(monitor.last_checked_at)
        interval = minimum_interval(tier, source)
        if elapsed < interval:
            return f"refresh interval not reached ({elapsed} < {interval})"

    if not is_schedule_active(monitor, now):
        return "outside active hours"

    return None


def should_skip(
    monitor,
    tier_map: Mapping[str, str],
    source: str,
    now: Optional[datetime] = None,
) -> bool:
    """True if the monitor must be skipped for this source right now."""
    return skip_reason(monitor, tier_map, source, now) is not None


def manual_scan_cooldown_remaining(
    tier: str,
    last_manual_scan_at: Optional[datetime],
    now: Optional[datetime] = None,
) -> timedelta:
    """Time left before another manual scan is allowed (zero if allowed now)."""
    if last_manual_scan_at is None:
        return timedelta(0)
    plan = TIER_PLANS.get(tier) or TIER_PLANS[DEFAULT_TIER]
    now = now or utc_now_naive()
    next_allowed = _as_naive_utc(last_manual_scan_at) + plan.manual_scan_cooldown
    return max(next_allowed - _as_naive_utc(now), timedelta(0))
