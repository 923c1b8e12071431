"""
Scan dispatchers - one durable run per source, plus on-demand scans.

Scheduled run for a source:
1. Load active monitors for the source (step)
2. Prefetch owner tiers in one lookup (step)
3. For each monitor, in load order:
   a. Stagger suspend
   b. Skip check (tier access, refresh interval, active hours)
   c. Fetch candidates from the source (step)
   d. Save unseen results (step)
   e. Announce new results for analysis (step)
   f. Update monitor stats (step)

A failure in (c) or (d) only costs that monitor this cycle: it is logged as
SOURCE_FETCH_FAILED and counted as zero new results. Failures in (1) or (2)
fail the attempt and the executor retries the run.

On-demand runs scan one monitor across all of its sources, check tier access
only, and hold the monitor's is_scanning flag for the duration of the run.
"""

import logging
import random
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..archivist.accounts import prefetch_user_tiers
from ..archivist.models import utc_now_naive
from ..archivist.monitors import get_monitor, set_scanning
from ..archivist.schemas import MonitorSnapshot
from ..config.settings import settings
from ..config.sources import get_source_config
from ..harvester.base_source import CandidateItem, SourceFetcher
from ..harvester.registry import get_fetcher_class
from ..policy.access import get_tier, is_allowed, skip_reason
from ..workflow.events import EventBus, SCAN_NOW
from ..workflow.executor import NonRetriableError, StepContext, WorkflowFunction
from .helpers import (
    apply_stagger,
    get_active_monitors,
    prefetch_plans,
    save_new_results,
    trigger_analysis,
    update_stats,
)

logger = logging.getLogger(__name__)

FetcherFactory = Callable[[], SourceFetcher]


async def scan_monitor_source(
    step: StepContext,
    key: str,
    fetcher: SourceFetcher,
    monitor: MonitorSnapshot,
    source: str,
    events: EventBus,
) -> int:
    """Fetch, save and announce for one monitor on one source.

    Returns the number of new results saved (0 when fetch or save failed).
    """
    try:
        raw_items = await step.run(
            f"search-{source}-{key}",
            lambda: _fetch(fetcher, monitor),
        )
        items = [CandidateItem.model_validate(item) for item in raw_items]
        saved = await save_new_results(step, key, monitor, source, items)
    except Exception as e:
        logger.warning(
            f"SOURCE_FETCH_FAILED: [{step.run_id}] {source} monitor {monitor.id} "
            f"({monitor.name}): {e}"
        )
        return 0

    await trigger_analysis(step, key, events, saved, monitor, source)
    return saved.count


async def _fetch(fetcher: SourceFetcher, monitor: MonitorSnapshot) -> List[Dict[str, Any]]:
    items = await fetcher.fetch_candidates(monitor)
    return [item.model_dump(mode="json") for item in items]


class ScanDispatcher:
    """Workflow handler scanning every eligible monitor of one source."""

    def __init__(
        self,
        source: str,
        events: EventBus,
        fetcher_factory: Optional[FetcherFactory] = None,
        clock: Callable = utc_now_naive,
        rng: Optional[random.Random] = None,
    ):
        self.source = source
        self.events = events
        self.fetcher_factory = fetcher_factory or get_fetcher_class(source)
        if self.fetcher_factory is None:
            raise ValueError(f"No fetcher registered for {source}")
        self.clock = clock
        self.rng = rng

    async def __call__(self, step: StepContext, payload: Mapping[str, Any]) -> Dict[str, Any]:
        monitors = await get_active_monitors(step, self.source)
        if not monitors:
            logger.info(f"[{step.run_id}] No active {self.source} monitors")
            return self._summary([], 0)

        tier_map = await prefetch_plans(step, monitors)
        logger.info(f"[{step.run_id}] Scanning {len(monitors)} {self.source} monitors")

        breakdown: List[Dict[str, Any]] = []
        total = 0
        async with self.fetcher_factory() as fetcher:
            for index, monitor in enumerate(monitors):
                await apply_stagger(step, index, len(monitors), monitor.id, self.source, self.rng)

                reason = skip_reason(monitor, tier_map, self.source, self.clock())
                if reason:
                    logger.debug(f"[{step.run_id}] Skipping monitor {monitor.id}: {reason}")
                    continue

                count = await scan_monitor_source(
                    step, monitor.id, fetcher, monitor, self.source, self.events
                )
                await update_stats(step, monitor.id, monitor.id, count, self.clock)

                total += count
                breakdown.append({"monitor_id": monitor.id, "name": monitor.name, "new_results": count})

        return self._summary(breakdown, total)

    def _summary(self, breakdown: List[Dict[str, Any]], total: int) -> Dict[str, Any]:
        return {
            "source": self.source,
            "total_results": total,
            "monitor_results": breakdown,
            "message": f"Saved {total} new {self.source} results from {len(breakdown)} monitors",
        }


@asynccontextmanager
async def scanning(monitor_id: str, clock: Callable = utc_now_naive):
    """Hold a monitor's is_scanning flag for the body of an on-demand run.

    Set on every attempt, resumed ones included, so a flag the reaper cleared
    is held again. Cleared on every exit path, including exceptions and
    cancellation.
    """
    await set_scanning(monitor_id, True, clock())
    try:
        yield
    finally:
        await set_scanning(monitor_id, False, clock())


class OnDemandScan:
    """Workflow handler for an explicit "scan now" request on one monitor."""

    def __init__(
        self,
        events: EventBus,
        fetcher_factories: Optional[Mapping[str, FetcherFactory]] = None,
        clock: Callable = utc_now_naive,
    ):
        self.events = events
        self.fetcher_factories = fetcher_factories
        self.clock = clock

    def _factory_for(self, source: str) -> Optional[FetcherFactory]:
        if self.fetcher_factories is None:
            return get_fetcher_class(source)
        return self.fetcher_factories.get(source)

    async def __call__(self, step: StepContext, payload: Mapping[str, Any]) -> Dict[str, Any]:
        monitor_id = payload.get("monitorId")
        user_id = payload.get("userId")

        async def load():
            monitor = await get_monitor(monitor_id)
            return monitor.model_dump(mode="json") if monitor else None

        raw = await step.run("get-monitor", load)
        if raw is None:
            raise NonRetriableError(f"Monitor {monitor_id} not found")
        monitor = MonitorSnapshot.model_validate(raw)
        if monitor.user_id != user_id:
            raise NonRetriableError(f"Monitor {monitor_id} does not belong to user {user_id}")

        tier_map = await step.run("prefetch-plans", lambda: prefetch_user_tiers([monitor.user_id]))
        tier = get_tier(monitor.user_id, tier_map)

        per_source: Dict[str, int] = {}
        async with scanning(monitor.id, self.clock):
            for source in monitor.sources:
                if not is_allowed(tier, source):
                    logger.info(f"[{step.run_id}] Tier '{tier}' has no access to {source}, skipping")
                    continue
                factory = self._factory_for(source)
                if factory is None:
                    logger.debug(f"[{step.run_id}] No fetcher for {source}, skipping")
                    continue

                async with factory() as fetcher:
                    per_source[source] = await scan_monitor_source(
                        step, f"{source}-{monitor.id}", fetcher, monitor, source, self.events
                    )

            total = sum(per_source.values())
            await update_stats(step, monitor.id, monitor.id, total, self.clock, manual=True)

        logger.info(f"[{step.run_id}] On-demand scan of {monitor.id} saved {total} new results")
        return {
            "monitor_id": monitor.id,
            "total_results": total,
            "source_results": per_source,
            "message": f"Saved {total} new results from {len(per_source)} sources",
        }


def build_source_function(
    source: str,
    events: EventBus,
    fetcher_factory: Optional[FetcherFactory] = None,
    clock: Callable = utc_now_naive,
) -> WorkflowFunction:
    """Scheduled dispatcher function for a registered source."""
    config = get_source_config(source)
    if config is None:
        raise ValueError(f"Unknown source: {source}")
    return WorkflowFunction(
        id=f"monitor-{source}",
        name=f"Monitor {config.name}",
        handler=ScanDispatcher(source, events, fetcher_factory, clock),
        cron=config.cron,
        retries=config.retries,
        finish_timeout=config.finish_timeout,
        concurrency=config.concurrency,
    )


def build_on_demand_function(
    events: EventBus,
    fetcher_factories: Optional[Mapping[str, FetcherFactory]] = None,
    clock: Callable = utc_now_naive,
) -> WorkflowFunction:
    """Event-triggered function behind POST /monitors/{id}/scan."""
    return WorkflowFunction(
        id="monitor-scan-now",
        name="Scan monitor now",
        handler=OnDemandScan(events, fetcher_factories, clock),
        event=SCAN_NOW,
        retries=settings.on_demand_retries,
        finish_timeout=timedelta(seconds=settings.on_demand_finish_timeout_seconds),
        concurrency=settings.on_demand_concurrency,
    )
