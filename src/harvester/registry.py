"""
Fetcher registry - source slug to fetcher class.

Sources listed in SOURCE_REGISTRY without an entry here have no fetcher and
are never scheduled.
"""

from typing import Dict, Optional, Type

from .base_source import SourceFetcher
from .sources import HackerNewsFetcher, RedditFetcher, DevToFetcher, ProductHuntFetcher

FETCHERS: Dict[str, Type[SourceFetcher]] = {
    "hackernews": HackerNewsFetcher,
    "reddit": RedditFetcher,
    "devto": DevToFetcher,
    "producthunt": ProductHuntFetcher,
}


def get_fetcher_class(source: str) -> Optional[Type[SourceFetcher]]:
    return FETCHERS.get(source)
