"""
Shared test helpers and fakes for test infrastructure.

This module can be explicitly imported by test files.
For pytest fixtures, see conftest.py.

Usage:
    from tests.test_helpers import FakeFetcher, candidate
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from src.harvester.base_source import CandidateItem, SourceFetcher
from src.workflow.events import EventSink

BASE_TIME = datetime(2026, 10, 18, 12, 0, 0)


# =============================================================================
# Time
# =============================================================================
class FakeClock:
    """Naive-UTC clock that only moves when told to."""

    def __init__(self, start: datetime = BASE_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeSleeper:
    """Records requested sleeps and advances the clock instead of waiting."""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds=seconds)


# =============================================================================
# Collaborators
# =============================================================================
class RecordingSink(EventSink):
    """Collects published events."""

    def __init__(self):
        self.events = []
        self.publish_calls = 0

    async def publish(self, events) -> None:
        self.publish_calls += 1
        self.events.extend(events)


class FakeFetcher(SourceFetcher):
    """Fetcher returning canned items per monitor and counting calls."""

    source = "hackernews"

    def __init__(
        self,
        items: Optional[Dict[str, List[CandidateItem]]] = None,
        fail_for: Optional[set] = None,
    ):
        self._owns_client = False
        self.client = None
        self.items = items or {}
        self.fail_for = fail_for or set()
        self.calls: List[str] = []

    async def fetch_candidates(self, monitor) -> List[CandidateItem]:
        self.calls.append(monitor.id)
        if monitor.id in self.fail_for:
            raise ConnectionError(f"upstream unavailable for {monitor.id}")
        return list(self.items.get(monitor.id, []))


def candidate(url: str, title: str = "Acme launches", **kwargs) -> CandidateItem:
    return CandidateItem(source_url=url, title=title, **kwargs)
