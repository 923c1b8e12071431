"""
Dev.to Fetcher - Articles tagged with the monitor's terms.

Dev.to tags are lowercase alphanumerics, so each term is normalized before
the tag lookup. Articles are deduplicated by id across tags.
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, List

from ..base_source import SourceFetcher, CandidateItem, fallback_source_url
from ...archivist.schemas import MonitorSnapshot

logger = logging.getLogger(__name__)


DEVTO_API = "https://dev.to/api/articles"


def to_tag(term: str) -> str:
    return re.sub(r"[^a-z0-9]", "", term.lower())


class DevToFetcher(SourceFetcher):
    """Fetcher for dev.to articles."""

    source = "devto"

    async def fetch_candidates(self, monitor: MonitorSnapshot) -> List[CandidateItem]:
        tags = []
        for term in monitor.search_terms:
            tag = to_tag(term)
            if tag and tag not in tags:
                tags.append(tag)

        seen = set()
        items: List[CandidateItem] = []
        for tag in tags:
            response = await self.client.get(DEVTO_API, params={"tag": tag, "per_page": 30})
            response.raise_for_status()
            for article in response.json():
                if article.get("id") in seen:
                    continue
                seen.add(article.get("id"))
                items.append(self._to_item(article, monitor))

        # Tag hits already match; a search query still narrows them
        if monitor.search_query:
            return self.filter_matches(monitor, items)
        return items

    def _to_item(self, article: Dict[str, Any], monitor: MonitorSnapshot) -> CandidateItem:
        posted_at = None
        if article.get("published_at"):
            posted_at = datetime.fromisoformat(article["published_at"].replace("Z", "+00:00"))

        return CandidateItem(
            source_url=article.get("url") or fallback_source_url(self.source, monitor.id, article.get("id")),
            title=article.get("title") or "",
            body=article.get("description"),
            author=(article.get("user") or {}).get("username"),
            posted_at=posted_at,
            metadata={
                "devto_id": article.get("id"),
                "tags": article.get("tag_list") or [],
                "reactions": article.get("public_reactions_count") or 0,
                "comments": article.get("comments_count") or 0,
            },
        )
