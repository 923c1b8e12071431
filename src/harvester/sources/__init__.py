"""
Per-source candidate fetchers.
"""

from .hackernews import HackerNewsFetcher
from .reddit import RedditFetcher
from .devto import DevToFetcher
from .producthunt import ProductHuntFetcher

__all__ = [
    "HackerNewsFetcher",
    "RedditFetcher",
    "DevToFetcher",
    "ProductHuntFetcher",
]
