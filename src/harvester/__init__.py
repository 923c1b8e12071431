"""
Harvester - per-source candidate fetching and content matching.
"""

from .base_source import SourceFetcher, CandidateItem, fallback_source_url, candidate_to_result
from .matcher import matches_monitor, parse_search_query, matches_query, MatchResult
from .registry import FETCHERS, get_fetcher_class

__all__ = [
    "SourceFetcher",
    "CandidateItem",
    "fallback_source_url",
    "candidate_to_result",
    "matches_monitor",
    "parse_search_query",
    "matches_query",
    "MatchResult",
    "FETCHERS",
    "get_fetcher_class",
]
