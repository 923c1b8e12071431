"""
Base Source - Abstract interface for per-source candidate fetchers.

A fetcher turns one monitor's search terms into a list of CandidateItem
objects for one external source. Fetchers own an HTTP client and are used as
async context managers:

    async with HackerNewsFetcher() as fetcher:
        items = await fetcher.fetch_candidates(monitor)
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from ..archivist.schemas import MonitorSnapshot
from ..common.http_client import create_source_client, USER_AGENT_BOT
from .matcher import matches_monitor

logger = logging.getLogger(__name__)


class CandidateItem(BaseModel):
    """One piece of external content that may become a Result."""
    source_url: str
    title: str
    body: Optional[str] = None
    author: Optional[str] = None
    posted_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


def fallback_source_url(source: str, monitor_id: str, external_id: Any) -> str:
    """Stable dedup key for items the source gives no URL for."""
    return f"{source}://{monitor_id}/{external_id}"


def candidate_to_result(item: CandidateItem, source: str) -> Dict[str, Any]:
    """Map a candidate to Result column values."""
    return {
        "source": source,
        "title": item.title[:500],
        "content": item.body,
        "author": item.author,
        "posted_at": item.posted_at,
        "source_metadata": item.metadata or None,
    }


class SourceFetcher(ABC):
    """
    Abstract base class for source fetchers.

    Subclasses set `source` and implement fetch_candidates(). Transport
    errors propagate; the scan dispatcher isolates them per monitor.
    """

    source: str = ""
    user_agent: str = USER_AGENT_BOT

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._owns_client = client is None
        self.client = client or create_source_client(user_agent=self.user_agent)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._owns_client:
            await self.client.aclose()

    @abstractmethod
    async def fetch_candidates(self, monitor: MonitorSnapshot) -> List[CandidateItem]:
        """
        Fetch content for one monitor.

        Args:
            monitor: Monitor whose search terms drive the query

        Returns:
            Matching CandidateItem objects (may contain already-stored URLs)
        """
        pass

    def filter_matches(
        self, monitor: MonitorSnapshot, items: List[CandidateItem]
    ) -> List[CandidateItem]:
        """Keep only items the monitor's terms or search query match."""
        kept = []
        for item in items:
            result = matches_monitor(
                title=item.title,
                body=item.body,
                author=item.author,
                company_name=monitor.company_name,
                keywords=monitor.keywords,
                search_query=monitor.search_query,
            )
            if result.matches:
                item.metadata.setdefault("matched_terms", result.matched_terms)
                kept.append(item)
        logger.debug(
            f"{self.source}: {len(kept)}/{len(items)} items matched monitor {monitor.id}"
        )
        return kept
