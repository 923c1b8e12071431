"""
Hacker News Fetcher - Search recent HN stories via the Algolia API.

One search_by_date call per monitor: company name and keywords are ORed
together, multi-word terms quoted, restricted to stories from the lookback
window.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from ..base_source import SourceFetcher, CandidateItem, fallback_source_url
from ...archivist.schemas import MonitorSnapshot
from ...config.settings import settings

logger = logging.getLogger(__name__)


HN_ALGOLIA_API = "https://hn.algolia.com/api/v1"
HN_ITEM_URL = "https://news.ycombinator.com/item?id={}"


def build_query(terms: List[str]) -> str:
    """'acme OR "acme cloud"' style query for Algolia."""
    return " OR ".join(f'"{t}"' if " " in t else t for t in terms)


def story_url(object_id: Any) -> str:
    return HN_ITEM_URL.format(object_id)


class HackerNewsFetcher(SourceFetcher):
    """Fetcher for Hacker News stories."""

    source = "hackernews"

    async def fetch_candidates(self, monitor: MonitorSnapshot) -> List[CandidateItem]:
        terms = monitor.search_terms
        if not terms:
            logger.info(f"Monitor {monitor.id} has no search terms, skipping HN search")
            return []

        cutoff = int(
            (datetime.now(timezone.utc) - timedelta(hours=settings.hn_lookback_hours)).timestamp()
        )
        response = await self.client.get(
            f"{HN_ALGOLIA_API}/search_by_date",
            params={
                "query": build_query(terms),
                "tags": "story",
                "numericFilters": f"created_at_i>{cutoff}",
                "hitsPerPage": 100,
            },
        )
        response.raise_for_status()
        hits = response.json().get("hits", [])

        items = [item for item in (self._to_item(hit, monitor) for hit in hits) if item]
        return self.filter_matches(monitor, items)

    def _to_item(self, hit: Dict[str, Any], monitor: MonitorSnapshot) -> Optional[CandidateItem]:
        title = hit.get("title")
        if not title:
            return None

        object_id = hit.get("objectID")
        url = story_url(object_id) if object_id else fallback_source_url(
            self.source, monitor.id, hit.get("created_at_i")
        )

        posted_at = None
        if hit.get("created_at_i"):
            posted_at = datetime.fromtimestamp(hit["created_at_i"], tz=timezone.utc)

        return CandidateItem(
            source_url=url,
            title=title,
            body=hit.get("story_text") or hit.get("url"),
            author=hit.get("author"),
            posted_at=posted_at,
            metadata={
                "hn_id": object_id,
                "points": hit.get("points") or 0,
                "num_comments": hit.get("num_comments") or 0,
                "story_url": hit.get("url"),
            },
        )
