"""
Scheduler module for scan dispatch, staggering and stuck-scan repair.
"""
from .jobs import setup_scheduler, shutdown_scheduler, build_runtime, ScanRuntime
from .dispatcher import ScanDispatcher, OnDemandScan, build_source_function, build_on_demand_function
from .reaper import StuckScanReaper, reap_stuck_scans, build_reaper_function

__all__ = [
    "setup_scheduler",
    "shutdown_scheduler",
    "build_runtime",
    "ScanRuntime",
    "ScanDispatcher",
    "OnDemandScan",
    "build_source_function",
    "build_on_demand_function",
    "StuckScanReaper",
    "reap_stuck_scans",
    "build_reaper_function",
]
