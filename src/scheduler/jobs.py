"""
APScheduler job definitions for scheduled scans.

Each source with a fetcher and a cron expression gets its own dispatcher
function; the stuck-scan reaper runs on its own cron. A cron tick starts one
durable run with a deterministic run id (function id + tick minute), so a
tick that fires twice resumes the same run instead of starting a second one.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from ..archivist.models import utc_now_naive
from ..config.settings import settings
from ..config.sources import get_source_config
from ..harvester.registry import FETCHERS
from ..workflow.events import EventBus, EventSink, create_event_sink
from ..workflow.executor import StepExecutor, WorkflowError, WorkflowFunction, Sleeper
from ..workflow.step_store import SqlStepStore, StepStore
from .dispatcher import build_on_demand_function, build_source_function
from .reaper import build_reaper_function

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


@dataclass
class ScanRuntime:
    """Executor, event bus and every registered workflow function."""
    executor: StepExecutor
    events: EventBus
    functions: Dict[str, WorkflowFunction] = field(default_factory=dict)
    clock: Callable[[], datetime] = utc_now_naive

    def register(self, function: WorkflowFunction) -> WorkflowFunction:
        self.functions[function.id] = function
        if function.event:
            self.events.subscribe(function)
        return function

    @property
    def scheduled_functions(self):
        return [f for f in self.functions.values() if f.cron]


def build_runtime(
    store: Optional[StepStore] = None,
    sink: Optional[EventSink] = None,
    clock: Callable[[], datetime] = utc_now_naive,
    sleeper: Sleeper = asyncio.sleep,
) -> ScanRuntime:
    """Wire the executor, event bus and all scan functions together."""
    executor = StepExecutor(store or SqlStepStore(), clock=clock, sleeper=sleeper)
    events = EventBus(sink or create_event_sink(), executor)
    runtime = ScanRuntime(executor=executor, events=events, clock=clock)

    for source in FETCHERS:
        config = get_source_config(source)
        if config is None or not config.cron:
            continue
        runtime.register(build_source_function(source, events, clock=clock))

    runtime.register(build_on_demand_function(events, clock=clock))
    runtime.register(build_reaper_function(clock))
    return runtime


def scheduled_run_id(function: WorkflowFunction, now: datetime) -> str:
    return f"{function.id}:{now.strftime('%Y%m%d_%H%M')}"


async def run_scheduled_function(runtime: ScanRuntime, function: WorkflowFunction) -> None:
    """
    Job body for one cron tick.

    Run failures are already recorded on the run; they are logged here so a
    failing tick never takes the scheduler down.
    """
    run_id = scheduled_run_id(function, runtime.clock())
    try:
        output = await runtime.executor.execute(function, run_id)
        logger.info(f"[{run_id}] Scheduled run finished: {output}")
    except WorkflowError as e:
        logger.error(f"[{run_id}] Scheduled run failed: {e}")
    except Exception as e:
        logger.error(f"[{run_id}] Scheduled run could not start: {e}", exc_info=True)


def setup_scheduler(runtime: ScanRuntime) -> AsyncIOScheduler:
    """
    Initialize and start the APScheduler.

    Configures one cron job per scheduled workflow function.
    """
    global scheduler

    scheduler = AsyncIOScheduler(
        timezone=settings.scheduler_timezone,
        job_defaults={
            "coalesce": True,  # One run for a batch of missed ticks
            "max_instances": 1,  # Only one instance per function at a time
            "misfire_grace_time": 300,
        }
    )

    for function in runtime.scheduled_functions:
        scheduler.add_job(
            run_scheduled_function,
            trigger=CronTrigger.from_crontab(function.cron, timezone=settings.scheduler_timezone),
            args=[runtime, function],
            id=function.id,
            name=f"{function.name} ({function.cron})",
            replace_existing=True,
        )

    scheduler.start()
    logger.info(f"Scheduler started with {len(runtime.scheduled_functions)} scheduled functions")

    for job in scheduler.get_jobs():
        logger.info(f"Scheduled job: {job.id} - next run: {job.next_run_time}")

    return scheduler


def shutdown_scheduler():
    """Shutdown the scheduler without waiting for running jobs.

    Interrupted runs stay 'running' and are resumed on the next start.
    """
    global scheduler
    if scheduler:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler shutdown complete")
        scheduler = None
