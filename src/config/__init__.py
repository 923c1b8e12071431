from .settings import settings
from .sources import SOURCE_REGISTRY, SourceConfig, get_source_config, get_stagger_window
from .tiers import TIER_PLANS, TierPlan, DEFAULT_TIER

__all__ = [
    "settings",
    "SOURCE_REGISTRY",
    "SourceConfig",
    "get_source_config",
    "get_stagger_window",
    "TIER_PLANS",
    "TierPlan",
    "DEFAULT_TIER",
]
