"""
Tier Registry - what each subscription tier may scan and how often.

Pure lookup tables. Anything not listed here is denied.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, FrozenSet


DEFAULT_TIER = "free"

# Every source a paid tier can use
PAID_SOURCES: FrozenSet[str] = frozenset({
    "reddit",
    "hackernews",
    "producthunt",
    "devto",
    "googlereviews",
    "trustpilot",
    "appstore",
    "playstore",
    "quora",
})


@dataclass(frozen=True)
class TierPlan:
    """Access and refresh limits for one subscription tier."""
    key: str
    sources: FrozenSet[str]
    refresh_interval: timedelta
    # Per-source overrides of refresh_interval
    source_intervals: Dict[str, timedelta] = field(default_factory=dict)

    # Minimum time between manual "scan now" requests
    manual_scan_cooldown: timedelta = timedelta(hours=24)


TIER_PLANS: dict[str, TierPlan] = {
    "free": TierPlan(
        key="free",
        sources=frozenset({"reddit"}),
        refresh_interval=timedelta(hours=24),
        manual_scan_cooldown=timedelta(hours=24),
    ),
    "pro": TierPlan(
        key="pro",
        sources=PAID_SOURCES,
        refresh_interval=timedelta(hours=4),
        manual_scan_cooldown=timedelta(hours=4),
    ),
    "enterprise": TierPlan(
        key="enterprise",
        sources=PAID_SOURCES,
        refresh_interval=timedelta(hours=2),
        manual_scan_cooldown=timedelta(hours=1),
    ),
}
