"""
Durable workflow runtime: checkpointed steps, durable sleeps, run retries.
"""
from .executor import (
    StepContext,
    StepExecutor,
    WorkflowFunction,
    WorkflowError,
    NonRetriableError,
    RunFailedError,
    RunTimeoutError,
)
from .step_store import StepStore, MemoryStepStore, SqlStepStore, RunRecord
from .events import (
    Event,
    EventBus,
    EventSink,
    HttpEventSink,
    LoggingEventSink,
    create_event_sink,
    ANALYZE_ONE,
    ANALYZE_BATCH,
    SCAN_NOW,
)

__all__ = [
    "StepContext",
    "StepExecutor",
    "WorkflowFunction",
    "WorkflowError",
    "NonRetriableError",
    "RunFailedError",
    "RunTimeoutError",
    "StepStore",
    "MemoryStepStore",
    "SqlStepStore",
    "RunRecord",
    "Event",
    "EventBus",
    "EventSink",
    "HttpEventSink",
    "LoggingEventSink",
    "create_event_sink",
    "ANALYZE_ONE",
    "ANALYZE_BATCH",
    "SCAN_NOW",
]
