"""
Tests for the stuck-scan reaper.

Run with: pytest tests/test_reaper.py -v
"""

from datetime import timedelta

import pytest

from src.config.settings import settings
from src.scheduler.reaper import build_reaper_function, reap_stuck_scans
from src.workflow.executor import StepExecutor
from src.workflow.step_store import MemoryStepStore


class TestReapStuckScans:

    @pytest.mark.asyncio
    async def test_clears_only_scans_past_timeout(
        self, db, make_user, make_monitor, load_monitor, clock
    ):
        await make_user()
        stuck = await make_monitor(
            name="Stuck", is_scanning=True, updated_at=clock() - timedelta(minutes=11)
        )
        running = await make_monitor(
            name="Running", is_scanning=True, updated_at=clock() - timedelta(minutes=9)
        )
        idle = await make_monitor(
            name="Idle", is_scanning=False, updated_at=clock() - timedelta(hours=3)
        )

        result = await reap_stuck_scans(clock=clock)

        assert result == {"reset": 1, "monitors": ["Stuck"]}
        cleared = await load_monitor(stuck)
        assert cleared.is_scanning is False
        assert cleared.updated_at == clock()
        assert (await load_monitor(running)).is_scanning is True
        assert (await load_monitor(idle)).updated_at == clock() - timedelta(hours=3)

    @pytest.mark.asyncio
    async def test_zero_timeout_clears_every_scan(
        self, db, make_user, make_monitor, load_monitor, clock
    ):
        await make_user()
        recent = await make_monitor(is_scanning=True, updated_at=clock() - timedelta(minutes=1))

        result = await reap_stuck_scans(timeout_minutes=0, clock=clock)

        assert result["reset"] == 1
        assert (await load_monitor(recent)).is_scanning is False

    @pytest.mark.asyncio
    async def test_second_sweep_is_noop(self, db, make_user, make_monitor, clock):
        await make_user()
        await make_monitor(is_scanning=True, updated_at=clock() - timedelta(minutes=30))

        assert (await reap_stuck_scans(clock=clock))["reset"] == 1
        assert await reap_stuck_scans(clock=clock) == {"reset": 0, "monitors": []}

    @pytest.mark.asyncio
    async def test_reaper_run_is_one_step(self, db, make_user, make_monitor, clock, sleeper):
        await make_user()
        await make_monitor(name="Stuck", is_scanning=True, updated_at=clock() - timedelta(minutes=11))
        store = MemoryStepStore()

        output = await StepExecutor(store, clock=clock, sleeper=sleeper).execute(
            build_reaper_function(clock), "reset-stuck-scans:20261018_1200"
        )

        assert output == {"reset": 1, "monitors": ["Stuck"]}
        assert list(store.steps) == [("reset-stuck-scans:20261018_1200", "reset-stuck-scans")]

    def test_reaper_schedule(self):
        fn = build_reaper_function()
        assert fn.cron == settings.reaper_cron
        assert fn.id == "reset-stuck-scans"
