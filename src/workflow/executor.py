"""
StepExecutor - durable, checkpointed execution of workflow functions.

A run is one logical invocation of a function, identified by run_id. Inside a
run, every unit of work is a named step:

    monitors = await step.run("get-monitors", load)
    await step.sleep(f"stagger-{monitor_id}", timedelta(seconds=150))

Guarantees:
- A step that completed is never executed again for the same run; replays
  return its memoized output.
- A failed attempt re-runs the handler from the top, replaying completed
  steps, up to `retries` extra attempts with exponential backoff.
- step.sleep records its wake-up time once; a resumed run waits only for
  the remainder.
- A run has a hard deadline of started_at + finish_timeout, across attempts
  and process restarts. Checkpointed steps stay committed when it fires.
"""

import asyncio
import contextlib
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from .step_store import StepStore, RunRecord, encode_output
from ..archivist.models import utc_now_naive
from ..config.settings import settings

logger = logging.getLogger(__name__)


class WorkflowError(Exception):
    """Base class for run-level failures."""


class NonRetriableError(WorkflowError):
    """Raised by a handler to fail the run without further attempts."""


class RunFailedError(WorkflowError):
    """The run exhausted its retry budget (or failed non-retriably)."""


class RunTimeoutError(WorkflowError):
    """The run passed its finish deadline."""


Clock = Callable[[], datetime]
Sleeper = Callable[[float], Awaitable[None]]


class StepContext:
    """Step tools handed to a workflow handler for one attempt of one run."""

    def __init__(
        self,
        run_id: str,
        store: StepStore,
        attempt: int = 0,
        clock: Clock = utc_now_naive,
        sleeper: Sleeper = asyncio.sleep,
    ):
        self.run_id = run_id
        self.store = store
        self.attempt = attempt
        self.clock = clock
        self.sleeper = sleeper

    async def run(self, step_id: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        """Execute fn once per run and memoize its output.

        Always returns the JSON form of the output, on first execution and
        on replay alike.
        """
        found, output = await self.store.get_step(self.run_id, step_id)
        if found:
            logger.debug(f"[{self.run_id}] Replaying step {step_id}")
            return output

        result = await fn()
        encoded = encode_output(result)
        await self.store.put_step(self.run_id, step_id, encoded)
        return encoded

    async def sleep(self, step_id: str, duration: timedelta) -> None:
        """Suspend the run until a persisted wake-up time."""
        found, output = await self.store.get_step(self.run_id, step_id)
        if found:
            wake_at = datetime.fromisoformat(output["wake_at"])
        else:
            wake_at = self.clock() + duration
            await self.store.put_step(self.run_id, step_id, {"wake_at": wake_at.isoformat()})

        remaining = (wake_at - self.clock()).total_seconds()
        if remaining > 0:
            await self.sleeper(remaining)


Handler = Callable[[StepContext, Dict[str, Any]], Awaitable[Any]]


@dataclass
class WorkflowFunction:
    """A handler plus its trigger and execution limits."""
    id: str
    name: str
    handler: Handler
    cron: Optional[str] = None  # Scheduled trigger
    event: Optional[str] = None  # Event trigger, e.g. "monitor/scan-now"
    retries: int = 3
    finish_timeout: timedelta = timedelta(minutes=14)
    concurrency: Optional[int] = None  # Max simultaneous runs of this function


class StepExecutor:
    """Runs workflow functions against a step store."""

    def __init__(
        self,
        store: StepStore,
        clock: Clock = utc_now_naive,
        sleeper: Sleeper = asyncio.sleep,
        retry_base_delay: Optional[float] = None,
    ):
        self.store = store
        self.clock = clock
        self.sleeper = sleeper
        self.retry_base_delay = (
            settings.run_retry_base_delay if retry_base_delay is None else retry_base_delay
        )
        self._semaphores: Dict[str, asyncio.Semaphore] = {}
        self._tasks: Set[asyncio.Task] = set()

    def _limit(self, function: WorkflowFunction):
        if not function.concurrency:
            return contextlib.nullcontext()
        if function.id not in self._semaphores:
            self._semaphores[function.id] = asyncio.Semaphore(function.concurrency)
        return self._semaphores[function.id]

    async def execute(
        self,
        function: WorkflowFunction,
        run_id: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Run (or resume) a function to completion.

        Idempotent by run_id: a completed run returns its stored output.

        Raises:
            RunFailedError: Retry budget exhausted or non-retriable failure
            RunTimeoutError: Finish deadline passed
        """
        record = await self.store.start_run(run_id, function.id, payload or {}, self.clock())

        if record.status == "completed":
            logger.info(f"[{run_id}] Run already completed, returning stored output")
            return record.output
        if record.status != "running":
            raise RunFailedError(f"Run {run_id} already finished with status {record.status}")

        async with self._limit(function):
            return await self._execute_attempts(function, record)

    async def _execute_attempts(self, function: WorkflowFunction, record: RunRecord) -> Any:
        run_id = record.run_id
        deadline = record.started_at + function.finish_timeout
        attempt = record.attempts

        while True:
            remaining = (deadline - self.clock()).total_seconds()
            if remaining <= 0:
                await self._time_out(function, run_id)

            step = StepContext(run_id, self.store, attempt, self.clock, self.sleeper)
            logger.info(f"[{run_id}] Starting {function.id} (attempt {attempt + 1}/{function.retries + 1})")

            try:
                output = await asyncio.wait_for(
                    function.handler(step, record.payload or {}),
                    timeout=remaining,
                )
            except asyncio.TimeoutError:
                await self._time_out(function, run_id)
            except NonRetriableError as e:
                await self.store.finish_run(run_id, "failed", self.clock(), error_message=str(e)[:500])
                logger.error(f"RUN_FAILED: [{run_id}] {function.id} failed non-retriably: {e}")
                raise RunFailedError(str(e)) from e
            except Exception as e:
                attempt += 1
                error_msg = str(e)[:500] or type(e).__name__
                await self.store.record_attempt(run_id, attempt, error_msg)

                if attempt > function.retries:
                    await self.store.finish_run(run_id, "failed", self.clock(), error_message=error_msg)
                    logger.error(
                        f"RUN_FAILED: [{run_id}] {function.id} failed after {attempt} attempts: {e}",
                        exc_info=True,
                    )
                    raise RunFailedError(error_msg) from e

                delay = self.retry_base_delay * (2 ** (attempt - 1))
                delay *= random.uniform(0.9, 1.1)
                logger.warning(
                    f"[{run_id}] {function.id} attempt {attempt}/{function.retries + 1} failed: {e}. "
                    f"Retrying in {delay:.2f}s"
                )
                await self.sleeper(delay)
                continue

            output = encode_output(output)
            await self.store.finish_run(run_id, "completed", self.clock(), output=output)
            logger.info(f"[{run_id}] {function.id} completed")
            return output

    async def _time_out(self, function: WorkflowFunction, run_id: str) -> None:
        timeout = function.finish_timeout.total_seconds()
        await self.store.finish_run(
            run_id, "timed_out", self.clock(),
            error_message=f"Run exceeded finish timeout of {timeout:.0f}s",
        )
        logger.error(f"SCAN_RUN_TIMEOUT: [{run_id}] {function.id} exceeded {timeout:.0f}s - run aborted")
        raise RunTimeoutError(f"Run {run_id} exceeded finish timeout")

    def start(
        self,
        function: WorkflowFunction,
        run_id: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> asyncio.Task:
        """Execute in the background. Failures are recorded on the run and logged."""
        task = asyncio.create_task(
            self._execute_logged(function, run_id, payload),
            name=f"run_{run_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _execute_logged(
        self,
        function: WorkflowFunction,
        run_id: str,
        payload: Optional[Dict[str, Any]],
    ) -> Any:
        try:
            return await self.execute(function, run_id, payload)
        except WorkflowError as e:
            logger.error(f"[{run_id}] Background run ended with error: {e}")
            return None
        except Exception as e:
            # Store unreachable before the run could start; next trigger retries
            logger.error(f"[{run_id}] Background run could not start: {e}", exc_info=True)
            return None

    async def resume_pending_runs(self, functions: Dict[str, WorkflowFunction]) -> int:
        """Restart runs left in 'running' by a previous process.

        Returns the number of runs resumed.
        """
        pending = await self.store.list_running()
        resumed = 0
        for record in pending:
            function = functions.get(record.function_id)
            if function is None:
                logger.warning(f"[{record.run_id}] Cannot resume: unknown function {record.function_id}")
                continue
            self.start(function, record.run_id, record.payload)
            resumed += 1

        if resumed:
            logger.info(f"Resumed {resumed} pending workflow runs")
        return resumed

    async def wait_idle(self) -> None:
        """Wait for all background runs started by this executor."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
