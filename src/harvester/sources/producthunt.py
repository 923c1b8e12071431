"""
Product Hunt Fetcher - Recent launches via the v2 GraphQL API.

Authenticates with OAuth client credentials. The access token is cached
(see TokenCache) and refreshed shortly before it expires. Without configured
credentials the fetcher logs and returns nothing.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from ..base_source import SourceFetcher, CandidateItem, fallback_source_url
from ...archivist.schemas import MonitorSnapshot
from ...common.token_cache import TokenCache
from ...config.settings import settings

logger = logging.getLogger(__name__)


PH_GRAPHQL_API = "https://api.producthunt.com/v2/api/graphql"
PH_TOKEN_URL = "https://api.producthunt.com/v2/oauth/token"
DEFAULT_TOKEN_TTL = 86400
TOKEN_KEY = "producthunt"

POSTS_QUERY = """
query RecentPosts($first: Int!) {
  posts(first: $first, order: NEWEST) {
    edges {
      node {
        id
        name
        tagline
        description
        url
        votesCount
        commentsCount
        createdAt
        user { username }
      }
    }
  }
}
"""


class ProductHuntFetcher(SourceFetcher):
    """Fetcher for Product Hunt launches."""

    source = "producthunt"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        token_cache: Optional[TokenCache] = None,
    ):
        super().__init__(client)
        self.token_cache = token_cache or TokenCache()

    async def get_access_token(self) -> str:
        """Cached token, or a fresh one via client credentials."""
        token = self.token_cache.get(TOKEN_KEY)
        if token:
            return token

        response = await self.client.post(
            PH_TOKEN_URL,
            json={
                "client_id": settings.producthunt_api_key,
                "client_secret": settings.producthunt_api_secret,
                "grant_type": "client_credentials",
            },
        )
        response.raise_for_status()
        data = response.json()
        token = data["access_token"]
        self.token_cache.set(TOKEN_KEY, token, data.get("expires_in") or DEFAULT_TOKEN_TTL)
        logger.info("Refreshed Product Hunt access token")
        return token

    async def fetch_candidates(self, monitor: MonitorSnapshot) -> List[CandidateItem]:
        if not (settings.producthunt_api_key and settings.producthunt_api_secret):
            logger.warning("Product Hunt credentials not configured, skipping")
            return []

        token = await self.get_access_token()
        response = await self.client.post(
            PH_GRAPHQL_API,
            json={"query": POSTS_QUERY, "variables": {"first": 50}},
            headers={"Authorization": f"Bearer {token}"},
        )
        if response.status_code == 401:
            # Revoked before expiry; next attempt fetches a new one
            self.token_cache.invalidate(TOKEN_KEY)
        response.raise_for_status()

        edges = response.json().get("data", {}).get("posts", {}).get("edges", [])
        items = [self._to_item(edge.get("node", {}), monitor) for edge in edges]
        return self.filter_matches(monitor, [item for item in items if item.title])

    def _to_item(self, post: Dict[str, Any], monitor: MonitorSnapshot) -> CandidateItem:
        posted_at = None
        if post.get("createdAt"):
            posted_at = datetime.fromisoformat(post["createdAt"].replace("Z", "+00:00"))

        body = " ".join(p for p in (post.get("tagline"), post.get("description")) if p) or None

        return CandidateItem(
            source_url=post.get("url") or fallback_source_url(self.source, monitor.id, post.get("id")),
            title=post.get("name") or "",
            body=body,
            author=(post.get("user") or {}).get("username"),
            posted_at=posted_at,
            metadata={
                "ph_id": post.get("id"),
                "votes": post.get("votesCount") or 0,
                "comments": post.get("commentsCount") or 0,
            },
        )
