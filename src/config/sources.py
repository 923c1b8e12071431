"""
Source Registry - per-source scheduling configuration.

Each external source gets its own dispatcher run with a cron trigger, a
retry budget, a hard finish deadline, and a stagger window. Higher-volume
sources get longer stagger windows so their tenants are spread further apart.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional


# Window used for any source not listed below
DEFAULT_STAGGER_WINDOW = timedelta(minutes=5)


@dataclass(frozen=True)
class SourceConfig:
    """Scheduling configuration for a single source."""
    slug: str
    name: str
    stagger_window: timedelta = DEFAULT_STAGGER_WINDOW
    cron: Optional[str] = None  # None = no scheduled dispatcher
    retries: int = 3
    finish_timeout: timedelta = timedelta(minutes=14)
    concurrency: int = 5


SOURCE_REGISTRY: dict[str, SourceConfig] = {
    # Low-volume forums and launch sites: 5 minute window
    "reddit": SourceConfig(
        slug="reddit",
        name="Reddit",
        cron="*/15 * * * *",
    ),
    "hackernews": SourceConfig(
        slug="hackernews",
        name="Hacker News",
        cron="*/15 * * * *",
    ),
    "producthunt": SourceConfig(
        slug="producthunt",
        name="Product Hunt",
        cron="0 */2 * * *",  # Product Hunt posts less frequently
    ),
    "quora": SourceConfig(slug="quora", name="Quora", cron="0 * * * *", retries=2),
    # Review sites and app stores: 8 minute window
    "trustpilot": SourceConfig(
        slug="trustpilot", name="Trustpilot", stagger_window=timedelta(minutes=8), retries=2,
    ),
    "googlereviews": SourceConfig(
        slug="googlereviews", name="Google Reviews", stagger_window=timedelta(minutes=8), retries=2,
    ),
    "g2": SourceConfig(slug="g2", name="G2", stagger_window=timedelta(minutes=8), retries=2),
    "yelp": SourceConfig(slug="yelp", name="Yelp", stagger_window=timedelta(minutes=8), retries=2),
    "appstore": SourceConfig(
        slug="appstore", name="App Store", stagger_window=timedelta(minutes=8), retries=2,
    ),
    "playstore": SourceConfig(
        slug="playstore", name="Play Store", stagger_window=timedelta(minutes=8), retries=2,
    ),
    # High-volume: 10 minute window
    "youtube": SourceConfig(
        slug="youtube", name="YouTube", stagger_window=timedelta(minutes=10), retries=2,
    ),
    "amazonreviews": SourceConfig(
        slug="amazonreviews", name="Amazon Reviews", stagger_window=timedelta(minutes=10), retries=2,
    ),
    # Developer communities
    "indiehackers": SourceConfig(slug="indiehackers", name="Indie Hackers"),
    "github": SourceConfig(slug="github", name="GitHub"),
    "devto": SourceConfig(slug="devto", name="Dev.to", cron="*/30 * * * *"),
    "hashnode": SourceConfig(slug="hashnode", name="Hashnode"),
    # Social
    "x": SourceConfig(slug="x", name="X"),
}


def get_source_config(slug: str) -> Optional[SourceConfig]:
    """Look up a source by slug (None for unknown sources)."""
    return SOURCE_REGISTRY.get(slug)


def get_stagger_window(slug: str) -> timedelta:
    """Stagger window for a source, falling back to the default window."""
    config = SOURCE_REGISTRY.get(slug)
    if config is None:
        return DEFAULT_STAGGER_WINDOW
    return config.stagger_window
