"""
HTTP clients for source fetchers.

Every fetcher gets its own httpx.AsyncClient for the duration of one
dispatcher run. Connection failures are retried at the transport level;
HTTP status errors are left to the caller (raise_for_status) so the scan
dispatcher can isolate them per monitor.
"""

import logging
from typing import Dict, Optional

import httpx

from ..config.settings import settings

logger = logging.getLogger(__name__)


# Identifies the fetcher to public JSON APIs (Algolia, dev.to, Product Hunt)
USER_AGENT_BOT = "ScanFabric/1.0 (Brand Monitoring Bot)"

# Reddit throttles unknown bot agents on its public JSON listings
USER_AGENT_BROWSER = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


async def _log_request(request: httpx.Request) -> None:
    logger.debug(f"HTTP {request.method} {request.url.host}{request.url.path}")


def create_source_client(
    user_agent: str = USER_AGENT_BOT,
    timeout: Optional[float] = None,
    extra_headers: Optional[Dict[str, str]] = None,
) -> httpx.AsyncClient:
    """
    Async client for one fetcher.

    Args:
        user_agent: USER_AGENT_BOT or USER_AGENT_BROWSER
        timeout: Seconds per request (default: settings.request_timeout)
        extra_headers: Merged over the JSON Accept and User-Agent headers
    """
    headers = {"User-Agent": user_agent, "Accept": "application/json"}
    headers.update(extra_headers or {})

    return httpx.AsyncClient(
        timeout=timeout or settings.request_timeout,
        headers=headers,
        transport=httpx.AsyncHTTPTransport(
            retries=settings.http_connect_retries,
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
        ),
        event_hooks={"request": [_log_request]},
        follow_redirects=True,
    )
