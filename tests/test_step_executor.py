"""
Tests for durable step execution: memoization, retries, suspensions,
deadlines and resumption.

Run with: pytest tests/test_step_executor.py -v
"""

import asyncio
from datetime import timedelta

import pytest

from src.workflow.executor import (
    NonRetriableError,
    RunFailedError,
    RunTimeoutError,
    StepContext,
    StepExecutor,
    WorkflowFunction,
)
from src.workflow.step_store import MemoryStepStore, SqlStepStore


def make_executor(clock, sleeper, store=None):
    return StepExecutor(store or MemoryStepStore(), clock=clock, sleeper=sleeper, retry_base_delay=1.0)


class TestStepMemoization:

    @pytest.mark.asyncio
    async def test_completed_step_not_rerun_on_retry(self, clock, sleeper):
        """A failing attempt replays completed steps instead of re-executing them."""
        calls = {"load": 0, "attempts": 0}

        async def load():
            calls["load"] += 1
            return ["a", "b"]

        async def handler(step, payload):
            calls["attempts"] += 1
            items = await step.run("get-monitors", load)
            if calls["attempts"] == 1:
                raise ConnectionError("boom")
            return {"items": items}

        fn = WorkflowFunction(id="test", name="Test", handler=handler, retries=2)
        output = await make_executor(clock, sleeper).execute(fn, "run-1")

        assert output == {"items": ["a", "b"]}
        assert calls == {"load": 1, "attempts": 2}

    @pytest.mark.asyncio
    async def test_step_output_is_json_shaped(self, clock, sleeper):
        async def handler(step, payload):
            return await step.run("when", lambda: asyncio.sleep(0, result={"at": clock()}))

        fn = WorkflowFunction(id="test", name="Test", handler=handler)
        output = await make_executor(clock, sleeper).execute(fn, "run-json")
        assert output == {"at": "2026-10-18T12:00:00"}

    @pytest.mark.asyncio
    async def test_completed_run_returns_stored_output(self, clock, sleeper):
        calls = []

        async def handler(step, payload):
            calls.append(1)
            return {"ok": True}

        fn = WorkflowFunction(id="test", name="Test", handler=handler)
        executor = make_executor(clock, sleeper)
        assert await executor.execute(fn, "run-2") == {"ok": True}
        assert await executor.execute(fn, "run-2") == {"ok": True}
        assert len(calls) == 1


class TestRetries:

    @pytest.mark.asyncio
    async def test_retry_budget_exhausted(self, clock, sleeper):
        attempts = []

        async def handler(step, payload):
            attempts.append(step.attempt)
            raise ConnectionError("database unreachable")

        fn = WorkflowFunction(id="test", name="Test", handler=handler, retries=3)
        executor = make_executor(clock, sleeper)

        with pytest.raises(RunFailedError):
            await executor.execute(fn, "run-3")

        assert attempts == [0, 1, 2, 3]
        record = await executor.store.get_run("run-3")
        assert record.status == "failed"
        assert record.attempts == 4
        assert "database unreachable" in record.error_message

    @pytest.mark.asyncio
    async def test_backoff_doubles_with_jitter(self, clock, sleeper):
        async def handler(step, payload):
            raise ConnectionError("nope")

        fn = WorkflowFunction(id="test", name="Test", handler=handler, retries=3)
        with pytest.raises(RunFailedError):
            await make_executor(clock, sleeper).execute(fn, "run-4")

        assert len(sleeper.calls) == 3
        for delay, base in zip(sleeper.calls, [1.0, 2.0, 4.0]):
            assert base * 0.9 <= delay <= base * 1.1

    @pytest.mark.asyncio
    async def test_non_retriable_fails_immediately(self, clock, sleeper):
        attempts = []

        async def handler(step, payload):
            attempts.append(1)
            raise NonRetriableError("monitor not found")

        fn = WorkflowFunction(id="test", name="Test", handler=handler, retries=3)
        executor = make_executor(clock, sleeper)
        with pytest.raises(RunFailedError):
            await executor.execute(fn, "run-5")

        assert len(attempts) == 1
        assert (await executor.store.get_run("run-5")).status == "failed"

    @pytest.mark.asyncio
    async def test_failed_run_not_restarted(self, clock, sleeper):
        async def handler(step, payload):
            raise NonRetriableError("bad payload")

        fn = WorkflowFunction(id="test", name="Test", handler=handler)
        executor = make_executor(clock, sleeper)
        with pytest.raises(RunFailedError):
            await executor.execute(fn, "run-6")
        with pytest.raises(RunFailedError):
            await executor.execute(fn, "run-6")


class TestSleep:

    @pytest.mark.asyncio
    async def test_sleep_waits_full_duration_first_time(self, clock, sleeper):
        store = MemoryStepStore()
        step = StepContext("run-s", store, clock=clock, sleeper=sleeper)
        await step.sleep("stagger-mon-1", timedelta(seconds=150))
        assert sleeper.calls == [150.0]

    @pytest.mark.asyncio
    async def test_resumed_sleep_waits_only_remainder(self, clock, sleeper):
        """A restart 100s into a 150s stagger waits the remaining 50s."""
        store = MemoryStepStore()
        await store.put_step("run-s", "stagger-mon-1", {"wake_at": (clock() + timedelta(seconds=150)).isoformat()})
        clock.advance(seconds=100)

        step = StepContext("run-s", store, clock=clock, sleeper=sleeper)
        await step.sleep("stagger-mon-1", timedelta(seconds=150))
        assert sleeper.calls == [50.0]

    @pytest.mark.asyncio
    async def test_elapsed_sleep_does_not_wait(self, clock, sleeper):
        store = MemoryStepStore()
        await store.put_step("run-s", "stagger-mon-1", {"wake_at": clock().isoformat()})
        clock.advance(minutes=5)

        step = StepContext("run-s", store, clock=clock, sleeper=sleeper)
        await step.sleep("stagger-mon-1", timedelta(seconds=150))
        assert sleeper.calls == []


class TestDeadline:

    @pytest.mark.asyncio
    async def test_run_times_out(self, clock):
        async def handler(step, payload):
            await asyncio.sleep(5)

        fn = WorkflowFunction(
            id="test", name="Test", handler=handler, finish_timeout=timedelta(milliseconds=50),
        )
        executor = StepExecutor(MemoryStepStore(), clock=clock)
        with pytest.raises(RunTimeoutError):
            await executor.execute(fn, "run-t")

        assert (await executor.store.get_run("run-t")).status == "timed_out"

    @pytest.mark.asyncio
    async def test_deadline_spans_restarts(self, clock, sleeper):
        """A run resumed after its deadline is timed out without running."""
        calls = []

        async def handler(step, payload):
            calls.append(1)

        store = MemoryStepStore()
        await store.start_run("run-late", "test", {}, clock())
        clock.advance(minutes=20)

        fn = WorkflowFunction(id="test", name="Test", handler=handler, finish_timeout=timedelta(minutes=14))
        with pytest.raises(RunTimeoutError):
            await make_executor(clock, sleeper, store).execute(fn, "run-late")
        assert calls == []


class TestResume:

    @pytest.mark.asyncio
    async def test_resume_pending_runs(self, clock, sleeper):
        store = MemoryStepStore()
        await store.start_run("run-p", "test", {"monitorId": "m1"}, clock())
        seen = []

        async def handler(step, payload):
            seen.append(payload)
            return "done"

        fn = WorkflowFunction(id="test", name="Test", handler=handler)
        executor = make_executor(clock, sleeper, store)

        assert await executor.resume_pending_runs({"test": fn, }) == 1
        await executor.wait_idle()

        assert seen == [{"monitorId": "m1"}]
        assert (await store.get_run("run-p")).status == "completed"

    @pytest.mark.asyncio
    async def test_unknown_function_not_resumed(self, clock, sleeper):
        store = MemoryStepStore()
        await store.start_run("run-x", "gone", {}, clock())
        assert await make_executor(clock, sleeper, store).resume_pending_runs({}) == 0


class TestSqlStepStore:

    @pytest.mark.asyncio
    async def test_run_and_steps_persist(self, db, clock, sleeper):
        calls = []

        async def load():
            calls.append(1)
            return {"monitors": ["m1"]}

        async def handler(step, payload):
            first = await step.run("get-monitors", load)
            if len(calls) == 1 and step.attempt == 0:
                raise ConnectionError("transient")
            return first

        store = SqlStepStore()
        fn = WorkflowFunction(id="test", name="Test", handler=handler, retries=1)
        output = await make_executor(clock, sleeper, store).execute(fn, "run-sql", {"k": "v"})

        assert output == {"monitors": ["m1"]}
        assert calls == [1]
        record = await store.get_run("run-sql")
        assert record.status == "completed"
        assert record.attempts == 1
        assert record.payload == {"k": "v"}
        assert await store.get_step("run-sql", "get-monitors") == (True, {"monitors": ["m1"]})

    @pytest.mark.asyncio
    async def test_second_step_write_ignored(self, db):
        store = SqlStepStore()
        await store.put_step("r", "s", {"v": 1})
        await store.put_step("r", "s", {"v": 2})
        assert await store.get_step("r", "s") == (True, {"v": 1})
        assert await store.get_step("r", "missing") == (False, None)
