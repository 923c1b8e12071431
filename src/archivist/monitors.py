"""
Monitor reads and state transitions.

Writers:
- Scan dispatchers: start/stop scanning, stats after each scan
- Stuck scan reaper: forced stop of scans that outlived the timeout
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select, update

from .database import get_session
from .models import Monitor, utc_now_naive
from .schemas import MonitorSnapshot

logger = logging.getLogger(__name__)


async def load_active_monitors(source: str) -> List[MonitorSnapshot]:
    """All active monitors with `source` enabled, in stable load order.

    Load order is the processing order for a dispatcher run.
    """
    async with get_session() as session:
        result = await session.execute(
            select(Monitor)
            .where(Monitor.is_active == True)  # noqa: E712
            .order_by(Monitor.created_at, Monitor.id)
        )
        monitors = result.scalars().all()

    return [
        MonitorSnapshot.model_validate(m)
        for m in monitors
        if source in (m.sources or [])
    ]


async def get_monitor(monitor_id: str) -> Optional[MonitorSnapshot]:
    """Load a single monitor by id."""
    async with get_session() as session:
        monitor = await session.get(Monitor, monitor_id)
        if monitor is None:
            return None
        return MonitorSnapshot.model_validate(monitor)


async def set_scanning(monitor_id: str, scanning: bool, now: Optional[datetime] = None) -> None:
    """Set or clear the is_scanning flag.

    updated_at moves with the flag so the reaper measures from scan start.
    """
    now = now or utc_now_naive()
    async with get_session() as session:
        await session.execute(
            update(Monitor)
            .where(Monitor.id == monitor_id)
            .values(is_scanning=scanning, updated_at=now)
        )


async def update_monitor_stats(
    monitor_id: str,
    match_count: int,
    now: Optional[datetime] = None,
    manual: bool = False,
) -> None:
    """Record a finished scan: last_checked_at, new_match_count, updated_at.

    Manual (on-demand) scans also clear is_scanning and stamp last_manual_scan_at.
    """
    now = now or utc_now_naive()
    values = {
        "last_checked_at": now,
        "new_match_count": match_count,
        "updated_at": now,
    }
    if manual:
        values["is_scanning"] = False
        values["last_manual_scan_at"] = now

    async with get_session() as session:
        await session.execute(
            update(Monitor).where(Monitor.id == monitor_id).values(**values)
        )


async def reset_stuck_scans(cutoff: datetime, now: Optional[datetime] = None) -> List[Tuple[str, str]]:
    """Clear is_scanning on every monitor whose updated_at is older than cutoff.

    One batched UPDATE ... RETURNING. Returns (id, name) for each cleared monitor.
    """
    now = now or utc_now_naive()
    async with get_session() as session:
        result = await session.execute(
            update(Monitor)
            .where(Monitor.is_scanning == True)  # noqa: E712
            .where(Monitor.updated_at < cutoff)
            .values(is_scanning=False, updated_at=now)
            .returning(Monitor.id, Monitor.name)
            .execution_options(synchronize_session=False)
        )
        return [(row[0], row[1]) for row in result.all()]
