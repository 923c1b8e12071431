"""
StuckScanReaper - periodic sweep that clears abandoned is_scanning flags.

A run that crashes, is killed, or passes its finish deadline cannot clear the
flag it set. Any monitor still marked scanning with updated_at older than the
stuck-scan timeout is reset in one batched UPDATE ... RETURNING.

Running the sweep again with nothing newly stuck changes nothing.
"""

import logging
from datetime import timedelta
from typing import Any, Callable, Dict, Mapping, Optional

from ..archivist.models import utc_now_naive
from ..archivist.monitors import reset_stuck_scans
from ..config.settings import settings
from ..workflow.executor import StepContext, WorkflowFunction

logger = logging.getLogger(__name__)


async def reap_stuck_scans(
    timeout_minutes: Optional[int] = None,
    clock: Callable = utc_now_naive,
) -> Dict[str, Any]:
    """Reset stuck monitors now. Returns {"reset": n, "monitors": [names]}."""
    if timeout_minutes is None:
        timeout_minutes = settings.stuck_scan_timeout_minutes
    now = clock()
    cutoff = now - timedelta(minutes=timeout_minutes)

    rows = await reset_stuck_scans(cutoff, now)
    for monitor_id, name in rows:
        logger.warning(
            f"STUCK_SCAN_RESET: monitor {monitor_id} ({name}) was scanning for more than "
            f"{timeout_minutes} minutes - flag cleared"
        )
    if rows:
        logger.info(f"Reaper reset {len(rows)} stuck scans")

    return {"reset": len(rows), "monitors": [name for _, name in rows]}


class StuckScanReaper:
    """Workflow handler: one checkpointed sweep per run."""

    def __init__(self, clock: Callable = utc_now_naive):
        self.clock = clock

    async def __call__(self, step: StepContext, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return await step.run("reset-stuck-scans", lambda: reap_stuck_scans(clock=self.clock))


def build_reaper_function(clock: Callable = utc_now_naive) -> WorkflowFunction:
    return WorkflowFunction(
        id="reset-stuck-scans",
        name="Reset stuck scans",
        handler=StuckScanReaper(clock),
        cron=settings.reaper_cron,
        retries=1,
        finish_timeout=timedelta(seconds=settings.reaper_finish_timeout_seconds),
        concurrency=1,
    )
