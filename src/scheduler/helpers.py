"""
Checkpointed building blocks for scan dispatchers.

Every helper wraps exactly one durable step (or suspension) so a retried run
replays what already happened instead of repeating it. Step ids are stable
per monitor: get-monitors, prefetch-plans, stagger-<id>, save-results-<id>,
trigger-analysis-<id>, update-monitor-stats-<id>.
"""

import logging
import random
from typing import Callable, Dict, List, Optional, Sequence

from ..analyst.dispatcher import dispatch_analysis
from ..archivist.accounts import prefetch_user_tiers
from ..archivist.models import utc_now_naive
from ..archivist.monitors import load_active_monitors, update_monitor_stats
from ..archivist.results import SavedResults, save_new
from ..archivist.schemas import MonitorSnapshot
from ..config.settings import settings
from ..harvester.base_source import CandidateItem, candidate_to_result
from ..workflow.events import EventBus
from ..workflow.executor import StepContext
from .stagger import stagger_delay_for, format_stagger_duration

logger = logging.getLogger(__name__)


async def get_active_monitors(step: StepContext, source: str) -> List[MonitorSnapshot]:
    """Load every active monitor enabled for a source (one step)."""
    raw = await step.run("get-monitors", lambda: load_active_monitors(source))
    return [MonitorSnapshot.model_validate(m) for m in raw]


async def prefetch_plans(step: StepContext, monitors: Sequence[MonitorSnapshot]) -> Dict[str, str]:
    """Tier for every distinct owner, in one lookup (one step)."""
    user_ids = sorted({m.user_id for m in monitors})
    if not user_ids:
        return {}
    return await step.run("prefetch-plans", lambda: prefetch_user_tiers(user_ids))


async def apply_stagger(
    step: StepContext,
    index: int,
    total: int,
    monitor_id: str,
    source: str,
    rng: Optional[random.Random] = None,
) -> None:
    """Suspend before monitor `index` of `total` when the batch is big enough.

    The first monitor never waits. The wake-up time is persisted, so a resumed
    run waits only for what is left of the delay.
    """
    if index == 0 or total <= settings.stagger_min_batch:
        return

    delay = stagger_delay_for(index, total, source, settings.stagger_jitter_percent, rng)
    logger.info(
        f"[{step.run_id}] Staggering monitor {monitor_id} by {format_stagger_duration(delay)} "
        f"({index + 1}/{total})"
    )
    await step.sleep(f"stagger-{monitor_id}", delay)


async def save_new_results(
    step: StepContext,
    key: str,
    monitor: MonitorSnapshot,
    source: str,
    items: Sequence[CandidateItem],
) -> SavedResults:
    """Persist unseen candidates (one step, skipped entirely when empty)."""
    if not items:
        return SavedResults()

    raw = await step.run(
        f"save-results-{key}",
        lambda: save_new(
            list(items),
            monitor.id,
            monitor.user_id,
            lambda item: item.source_url,
            lambda item: candidate_to_result(item, source),
        ),
    )
    return SavedResults.model_validate(raw)


async def trigger_analysis(
    step: StepContext,
    key: str,
    events: EventBus,
    saved: SavedResults,
    monitor: MonitorSnapshot,
    source: str,
) -> int:
    """Announce new results for analysis (one step). Returns events sent."""
    if not saved.ids:
        return 0
    return await step.run(
        f"trigger-analysis-{key}",
        lambda: dispatch_analysis(events, saved.ids, monitor.id, monitor.user_id, source),
    )


async def update_stats(
    step: StepContext,
    key: str,
    monitor_id: str,
    match_count: int,
    clock: Callable = utc_now_naive,
    manual: bool = False,
) -> None:
    """Record last_checked_at / new_match_count for a monitor (one step)."""

    async def record():
        await update_monitor_stats(monitor_id, match_count, clock(), manual=manual)
        return {"monitor_id": monitor_id, "new_match_count": match_count}

    await step.run(f"update-monitor-stats-{key}", record)
