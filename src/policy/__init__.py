"""
Access policy: tier gating, refresh intervals, active hours.
"""
from .access import (
    is_allowed,
    minimum_interval,
    get_tier,
    skip_reason,
    should_skip,
    manual_scan_cooldown_remaining,
)
from .schedule_window import is_schedule_active

__all__ = [
    "is_allowed",
    "minimum_interval",
    "get_tier",
    "skip_reason",
    "should_skip",
    "manual_scan_cooldown_remaining",
    "is_schedule_active",
]
