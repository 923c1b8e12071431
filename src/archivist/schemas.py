"""
Serializable snapshots of database rows.

Step outputs are memoized as JSON, so anything crossing a step boundary is
one of these models rather than a live ORM object.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class MonitorSnapshot(BaseModel):
    """A monitor as loaded at the start of a run."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    name: str
    company_name: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    search_query: Optional[str] = None
    sources: List[str] = Field(default_factory=list)
    source_config: Optional[Dict[str, Any]] = None
    is_active: bool = True
    is_scanning: bool = False
    last_checked_at: Optional[datetime] = None
    last_manual_scan_at: Optional[datetime] = None
    new_match_count: int = 0
    schedule_enabled: bool = False
    schedule_start_hour: Optional[int] = None
    schedule_end_hour: Optional[int] = None
    schedule_days: Optional[List[int]] = None
    schedule_timezone: Optional[str] = None
    updated_at: Optional[datetime] = None

    def config_for(self, source: str) -> Dict[str, Any]:
        """Per-source settings block (empty when not configured)."""
        return (self.source_config or {}).get(source) or {}

    @property
    def search_terms(self) -> List[str]:
        """Company name first, then keywords."""
        terms = [self.company_name] if self.company_name else []
        return terms + [k for k in self.keywords if k]
