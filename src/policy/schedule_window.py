"""
Active-hours check for monitors with a declared schedule.

A monitor with schedule_enabled only scans inside [start_hour, end_hour) on
its active days, evaluated in its own timezone. Overnight windows
(e.g. 22 -> 6) wrap around midnight.
"""

import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "America/New_York"
DEFAULT_START_HOUR = 9
DEFAULT_END_HOUR = 17

# Monday-Friday in 0=Sunday numbering
WEEKDAYS = [1, 2, 3, 4, 5]


@lru_cache(maxsize=128)
def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown schedule timezone '{name}', using {DEFAULT_TIMEZONE}")
        return ZoneInfo(DEFAULT_TIMEZONE)


def is_schedule_active(monitor, now: Optional[datetime] = None) -> bool:
    """True when the monitor may scan at `now` (naive values are UTC).

    Monitors without an enabled schedule are always active.
    """
    if not monitor.schedule_enabled:
        return True

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    local = now.astimezone(_zone(monitor.schedule_timezone or DEFAULT_TIMEZONE))
    start_hour = DEFAULT_START_HOUR if monitor.schedule_start_hour is None else monitor.schedule_start_hour
    end_hour = DEFAULT_END_HOUR if monitor.schedule_end_hour is None else monitor.schedule_end_hour

    # isoweekday: Mon=1..Sun=7 -> Sun=0..Sat=6
    current_day = local.isoweekday() % 7
    if monitor.schedule_days and current_day not in monitor.schedule_days:
        return False

    if start_hour <= end_hour:
        return start_hour <= local.hour < end_hour
    return local.hour >= start_hour or local.hour < end_hour
