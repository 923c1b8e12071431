"""
Analyst module - fan-out of new results to the analysis consumer.
"""

from .dispatcher import build_analysis_events, dispatch_analysis

__all__ = [
    "build_analysis_events",
    "dispatch_analysis",
]
