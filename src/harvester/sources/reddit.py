"""
Reddit Fetcher - New posts from configured subreddits, or site-wide search.

Monitors may list subreddits under source_config["reddit"]["communities"].
Without communities, one site-wide search over the monitor's terms is made.
A failing subreddit is logged and skipped so the rest still count.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from ..base_source import SourceFetcher, CandidateItem
from ...archivist.schemas import MonitorSnapshot
from ...common.http_client import USER_AGENT_BROWSER

logger = logging.getLogger(__name__)


REDDIT_BASE = "https://www.reddit.com"


class RedditFetcher(SourceFetcher):
    """Fetcher for Reddit posts."""

    source = "reddit"
    user_agent = USER_AGENT_BROWSER

    async def fetch_candidates(self, monitor: MonitorSnapshot) -> List[CandidateItem]:
        communities = monitor.config_for(self.source).get("communities") or []

        posts: List[Dict[str, Any]] = []
        if communities:
            for community in communities:
                name = community.strip().removeprefix("r/")
                try:
                    posts.extend(await self._listing(f"{REDDIT_BASE}/r/{name}/new.json", {"limit": 100}))
                except httpx.HTTPError as e:
                    logger.warning(f"SOURCE_FETCH_FAILED: reddit r/{name} for monitor {monitor.id}: {e}")
        else:
            terms = monitor.search_terms
            if not terms:
                return []
            query = " OR ".join(f'"{t}"' if " " in t else t for t in terms)
            posts = await self._listing(
                f"{REDDIT_BASE}/search.json",
                {"q": query, "sort": "new", "t": "day", "limit": 100},
            )

        items = [item for item in (self._to_item(p) for p in posts) if item]
        return self.filter_matches(monitor, items)

    async def _listing(self, url: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        response = await self.client.get(url, params=params)
        response.raise_for_status()
        children = response.json().get("data", {}).get("children", [])
        return [child.get("data", {}) for child in children]

    def _to_item(self, post: Dict[str, Any]) -> Optional[CandidateItem]:
        if not post.get("title") or not post.get("permalink"):
            return None

        posted_at = None
        if post.get("created_utc"):
            posted_at = datetime.fromtimestamp(post["created_utc"], tz=timezone.utc)

        return CandidateItem(
            source_url=f"https://reddit.com{post['permalink']}",
            title=post["title"],
            body=post.get("selftext") or None,
            author=post.get("author"),
            posted_at=posted_at,
            metadata={
                "subreddit": post.get("subreddit"),
                "score": post.get("score") or 0,
                "num_comments": post.get("num_comments") or 0,
            },
        )
