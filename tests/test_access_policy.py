"""
Tests for tier access, refresh intervals and manual-scan cooldowns.

Run with: pytest tests/test_access_policy.py -v
"""

from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from src.policy.access import (
    NEVER,
    get_tier,
    is_allowed,
    manual_scan_cooldown_remaining,
    minimum_interval,
    should_skip,
    skip_reason,
)

NOW = datetime(2026, 10, 18, 15, 0, 0)  # Sunday 11:00 in New York


def monitor(**fields):
    defaults = dict(
        id="mon-1",
        user_id="user-1",
        last_checked_at=None,
        schedule_enabled=False,
        schedule_start_hour=None,
        schedule_end_hour=None,
        schedule_days=None,
        schedule_timezone=None,
    )
    defaults.update(fields)
    return SimpleNamespace(**defaults)


class TestIsAllowed:

    def test_free_tier_reddit_only(self):
        assert is_allowed("free", "reddit")
        assert not is_allowed("free", "hackernews")

    def test_paid_tiers(self):
        for tier in ("pro", "enterprise"):
            assert is_allowed(tier, "hackernews")
            assert is_allowed(tier, "trustpilot")
            assert not is_allowed(tier, "youtube")

    def test_unknown_tier_or_source_denied(self):
        assert not is_allowed("platinum", "reddit")
        assert not is_allowed("pro", "myspace")


class TestMinimumInterval:

    def test_tier_intervals(self):
        assert minimum_interval("free", "reddit") == timedelta(hours=24)
        assert minimum_interval("pro", "hackernews") == timedelta(hours=4)
        assert minimum_interval("enterprise", "hackernews") == timedelta(hours=2)

    def test_denied_pairs_are_never_due(self):
        assert minimum_interval("free", "hackernews") == NEVER
        assert minimum_interval("unknown", "reddit") == NEVER


class TestShouldSkip:

    def test_denied_source_always_skipped(self):
        """Access denial wins regardless of other inputs."""
        m = monitor(last_checked_at=None)
        assert should_skip(m, {"user-1": "free"}, "hackernews", NOW)
        assert "no access" in skip_reason(m, {"user-1": "free"}, "hackernews", NOW)

    def test_missing_user_defaults_to_free(self):
        assert get_tier("ghost", {}) == "free"
        assert should_skip(monitor(user_id="ghost"), {}, "hackernews", NOW)
        assert not should_skip(monitor(user_id="ghost"), {}, "reddit", NOW)

    def test_never_checked_is_due(self):
        assert not should_skip(monitor(), {"user-1": "pro"}, "hackernews", NOW)

    def test_refresh_interval_not_reached(self):
        m = monitor(last_checked_at=NOW - timedelta(hours=3))
        assert should_skip(m, {"user-1": "pro"}, "hackernews", NOW)
        assert not should_skip(m, {"user-1": "enterprise"}, "hackernews", NOW)

    def test_refresh_interval_reached(self):
        m = monitor(last_checked_at=NOW - timedelta(hours=4, minutes=1))
        assert not should_skip(m, {"user-1": "pro"}, "hackernews", NOW)

    def test_outside_active_hours(self):
        # 15:00 UTC is 11:00 in New York; window 13-17 is not active yet
        m = monitor(schedule_enabled=True, schedule_start_hour=13, schedule_end_hour=17)
        assert skip_reason(m, {"user-1": "pro"}, "hackernews", NOW) == "outside active hours"


class TestManualScanCooldown:

    def test_never_scanned_manually(self):
        assert manual_scan_cooldown_remaining("free", None, NOW) == timedelta(0)

    @pytest.mark.parametrize("tier,hours", [("free", 24), ("pro", 4), ("enterprise", 1)])
    def test_cooldown_per_tier(self, tier, hours):
        last = NOW - timedelta(minutes=30)
        remaining = manual_scan_cooldown_remaining(tier, last, NOW)
        assert remaining == timedelta(hours=hours) - timedelta(minutes=30)

    def test_cooldown_elapsed(self):
        last = NOW - timedelta(hours=5)
        assert manual_scan_cooldown_remaining("pro", last, NOW) == timedelta(0)
