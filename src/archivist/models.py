"""
Database models using SQLModel (SQLAlchemy + Pydantic).

Schema:
- User: Account owning monitors; subscription_status is the tier key
- Usage: Per-user counters for the current billing period
- Monitor: A tenant's scan configuration over one or more sources
- Result: One ingested item, deduplicated globally by source_url
- WorkflowRun: One logical dispatcher invocation
- RunStep: Append-only memo of completed steps within a run
"""

from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
import uuid

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB


def utc_now_naive() -> datetime:
    """Return current UTC time as timezone-naive datetime.

    PostgreSQL TIMESTAMP WITHOUT TIME ZONE columns require naive datetimes.
    Using timezone-aware datetimes causes asyncpg DataError.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    """Random UUID4 as a string primary key."""
    return str(uuid.uuid4())


def json_column(nullable: bool = True) -> Column:
    """JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)."""
    return Column(JSON().with_variant(JSONB(), "postgresql"), nullable=nullable)


class User(SQLModel, table=True):
    """Account that owns monitors. Billing lives elsewhere; we only read the tier."""
    __tablename__ = "users"

    id: str = Field(default_factory=new_id, primary_key=True)
    email: Optional[str] = None
    subscription_status: str = Field(default="free")  # free, pro, enterprise
    created_at: datetime = Field(default_factory=utc_now_naive)


class Usage(SQLModel, table=True):
    """Usage counters for the user's current period."""
    __tablename__ = "usage"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="users.id", unique=True, index=True)
    results_count: int = Field(default=0)
    period_start: datetime = Field(default_factory=utc_now_naive)


class Monitor(SQLModel, table=True):
    """A tenant's configured watch over external sources.

    Mutated only by the scan dispatchers (scanning flag, stats) and the
    stuck scan reaper (forced stop).
    """
    __tablename__ = "monitors"
    __table_args__ = (
        # Reaper query: is_scanning = true AND updated_at < cutoff
        Index("idx_monitors_stuck_detection", "is_scanning", "updated_at"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    name: str

    # Matching configuration
    company_name: Optional[str] = None
    keywords: List[str] = Field(default_factory=list, sa_column=json_column(nullable=False))
    search_query: Optional[str] = None  # Boolean search expression

    # Enabled sources and per-source settings
    # {"reddit": {"communities": ["startups"]}, "producthunt": {...}}
    sources: List[str] = Field(default_factory=list, sa_column=json_column(nullable=False))
    source_config: Optional[Dict[str, Any]] = Field(default=None, sa_column=json_column())

    is_active: bool = Field(default=True, index=True)

    # Scan state
    is_scanning: bool = Field(default=False)
    last_checked_at: Optional[datetime] = None
    last_manual_scan_at: Optional[datetime] = None
    new_match_count: int = Field(default=0)

    # Active hours (only scan inside the window when enabled)
    schedule_enabled: bool = Field(default=False)
    schedule_start_hour: Optional[int] = None
    schedule_end_hour: Optional[int] = None
    schedule_days: Optional[List[int]] = Field(default=None, sa_column=json_column())  # 0=Sun
    schedule_timezone: Optional[str] = None

    created_at: datetime = Field(default_factory=utc_now_naive)
    updated_at: datetime = Field(default_factory=utc_now_naive)


class Result(SQLModel, table=True):
    """One ingested item.

    source_url is the global deduplication key: the unique index is the
    backstop when two overlapping runs race to insert the same item.
    """
    __tablename__ = "results"

    id: str = Field(default_factory=new_id, primary_key=True)
    monitor_id: str = Field(foreign_key="monitors.id", index=True)
    source: str = Field(index=True)
    source_url: str = Field(unique=True, index=True)

    title: str
    content: Optional[str] = None
    author: Optional[str] = None
    posted_at: Optional[datetime] = None

    # Source-specific key/value data (scores, comment counts, ids)
    source_metadata: Optional[Dict[str, Any]] = Field(default=None, sa_column=json_column())

    created_at: datetime = Field(default_factory=utc_now_naive)


class WorkflowRun(SQLModel, table=True):
    """One logical execution of a workflow function.

    Provides visibility into each run and lets a restarted process resume
    runs that were still in flight.
    """
    __tablename__ = "workflow_runs"

    run_id: str = Field(primary_key=True)  # e.g., "monitor-reddit:20261018_1415"
    function_id: str = Field(index=True)
    status: str = Field(default="running", index=True)  # running, completed, failed, timed_out
    attempts: int = Field(default=0)

    payload: Optional[Dict[str, Any]] = Field(default=None, sa_column=json_column())
    output: Optional[Any] = Field(default=None, sa_column=json_column())
    error_message: Optional[str] = None

    started_at: datetime = Field(default_factory=utc_now_naive)
    finished_at: Optional[datetime] = None


class RunStep(SQLModel, table=True):
    """Memoized output of one completed step: (run_id, step_id) -> output."""
    __tablename__ = "run_steps"
    __table_args__ = (
        UniqueConstraint("run_id", "step_id", name="uq_run_steps_run_step"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    run_id: str = Field(index=True)
    step_id: str
    output: Optional[Any] = Field(default=None, sa_column=json_column())
    created_at: datetime = Field(default_factory=utc_now_naive)
