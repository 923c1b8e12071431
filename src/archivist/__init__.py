"""Database models and storage utilities."""

from .models import (
    User,
    Usage,
    Monitor,
    Result,
    WorkflowRun,
    RunStep,
)
from .database import get_session, close_db
from .schemas import MonitorSnapshot
from .results import save_new, SavedResults

__all__ = [
    "User",
    "Usage",
    "Monitor",
    "Result",
    "WorkflowRun",
    "RunStep",
    "MonitorSnapshot",
    "get_session",
    "close_db",
    "save_new",
    "SavedResults",
]
