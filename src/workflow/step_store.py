"""
Step log storage for durable workflow runs.

The log is append-only: (run_id, step_id) -> JSON output, written once right
after a step body succeeds and consulted before any step body runs. Outputs
are stored as JSON, so every consumer sees the same shape whether the step
just ran or was replayed.
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel
from pydantic_core import to_jsonable_python
from sqlalchemy import select, update

from ..archivist.database import get_session, dialect_insert
from ..archivist.models import RunStep, WorkflowRun, utc_now_naive

logger = logging.getLogger(__name__)


def encode_output(value: Any) -> Any:
    """Normalize a step/run output to plain JSON types."""
    return json.loads(json.dumps(to_jsonable_python(value)))


class RunRecord(BaseModel):
    """State of one workflow run."""
    run_id: str
    function_id: str
    status: str = "running"  # running, completed, failed, timed_out
    attempts: int = 0
    payload: Optional[Dict[str, Any]] = None
    output: Optional[Any] = None
    error_message: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None


class StepStore(ABC):
    """Persistence contract for runs and their completed steps."""

    @abstractmethod
    async def get_step(self, run_id: str, step_id: str) -> Tuple[bool, Any]:
        """Return (found, output) for a completed step."""

    @abstractmethod
    async def put_step(self, run_id: str, step_id: str, output: Any) -> None:
        """Record a completed step. A second write for the same key is ignored."""

    @abstractmethod
    async def start_run(
        self, run_id: str, function_id: str, payload: Dict[str, Any], now: datetime
    ) -> RunRecord:
        """Create the run if new; return the existing record otherwise."""

    @abstractmethod
    async def get_run(self, run_id: str) -> Optional[RunRecord]:
        """Load a run by id."""

    @abstractmethod
    async def record_attempt(self, run_id: str, attempts: int, error_message: str) -> None:
        """Persist a failed attempt."""

    @abstractmethod
    async def finish_run(
        self,
        run_id: str,
        status: str,
        now: datetime,
        output: Any = None,
        error_message: Optional[str] = None,
    ) -> None:
        """Move a run to a terminal status."""

    @abstractmethod
    async def list_running(self) -> List[RunRecord]:
        """Runs that never reached a terminal status."""


class MemoryStepStore(StepStore):
    """In-process store. Same JSON round-trip semantics as the SQL store."""

    def __init__(self):
        self.steps: Dict[Tuple[str, str], Any] = {}
        self.runs: Dict[str, RunRecord] = {}

    async def get_step(self, run_id: str, step_id: str) -> Tuple[bool, Any]:
        key = (run_id, step_id)
        if key not in self.steps:
            return False, None
        return True, encode_output(self.steps[key])

    async def put_step(self, run_id: str, step_id: str, output: Any) -> None:
        self.steps.setdefault((run_id, step_id), encode_output(output))

    async def start_run(
        self, run_id: str, function_id: str, payload: Dict[str, Any], now: datetime
    ) -> RunRecord:
        if run_id not in self.runs:
            self.runs[run_id] = RunRecord(
                run_id=run_id,
                function_id=function_id,
                payload=encode_output(payload),
                started_at=now,
            )
        return self.runs[run_id].model_copy()

    async def get_run(self, run_id: str) -> Optional[RunRecord]:
        record = self.runs.get(run_id)
        return record.model_copy() if record else None

    async def record_attempt(self, run_id: str, attempts: int, error_message: str) -> None:
        record = self.runs[run_id]
        record.attempts = attempts
        record.error_message = error_message

    async def finish_run(
        self,
        run_id: str,
        status: str,
        now: datetime,
        output: Any = None,
        error_message: Optional[str] = None,
    ) -> None:
        record = self.runs[run_id]
        record.status = status
        record.output = encode_output(output)
        record.finished_at = now
        if error_message:
            record.error_message = error_message

    async def list_running(self) -> List[RunRecord]:
        return [r.model_copy() for r in self.runs.values() if r.status == "running"]


def _to_record(run: WorkflowRun) -> RunRecord:
    return RunRecord(
        run_id=run.run_id,
        function_id=run.function_id,
        status=run.status,
        attempts=run.attempts,
        payload=run.payload,
        output=run.output,
        error_message=run.error_message,
        started_at=run.started_at,
        finished_at=run.finished_at,
    )


class SqlStepStore(StepStore):
    """Database-backed store (workflow_runs + run_steps tables)."""

    async def get_step(self, run_id: str, step_id: str) -> Tuple[bool, Any]:
        async with get_session() as session:
            result = await session.execute(
                select(RunStep.output)
                .where(RunStep.run_id == run_id)
                .where(RunStep.step_id == step_id)
            )
            row = result.first()
        if row is None:
            return False, None
        return True, row[0]

    async def put_step(self, run_id: str, step_id: str, output: Any) -> None:
        async with get_session() as session:
            table = RunStep.__table__
            stmt = (
                dialect_insert(session, table)
                .values(
                    run_id=run_id,
                    step_id=step_id,
                    output=encode_output(output),
                    created_at=utc_now_naive(),
                )
                .on_conflict_do_nothing(index_elements=["run_id", "step_id"])
            )
            await session.execute(stmt)

    async def start_run(
        self, run_id: str, function_id: str, payload: Dict[str, Any], now: datetime
    ) -> RunRecord:
        async with get_session() as session:
            table = WorkflowRun.__table__
            stmt = (
                dialect_insert(session, table)
                .values(
                    run_id=run_id,
                    function_id=function_id,
                    status="running",
                    attempts=0,
                    payload=encode_output(payload),
                    started_at=now,
                )
                .on_conflict_do_nothing(index_elements=["run_id"])
            )
            await session.execute(stmt)
            run = await session.get(WorkflowRun, run_id)
            return _to_record(run)

    async def get_run(self, run_id: str) -> Optional[RunRecord]:
        async with get_session() as session:
            run = await session.get(WorkflowRun, run_id)
            return _to_record(run) if run else None

    async def record_attempt(self, run_id: str, attempts: int, error_message: str) -> None:
        async with get_session() as session:
            await session.execute(
                update(WorkflowRun)
                .where(WorkflowRun.run_id == run_id)
                .values(attempts=attempts, error_message=error_message)
            )

    async def finish_run(
        self,
        run_id: str,
        status: str,
        now: datetime,
        output: Any = None,
        error_message: Optional[str] = None,
    ) -> None:
        values = {"status": status, "finished_at": now, "output": encode_output(output)}
        if error_message:
            values["error_message"] = error_message
        async with get_session() as session:
            await session.execute(
                update(WorkflowRun).where(WorkflowRun.run_id == run_id).values(**values)
            )

    async def list_running(self) -> List[RunRecord]:
        async with get_session() as session:
            result = await session.execute(
                select(WorkflowRun)
                .where(WorkflowRun.status == "running")
                .order_by(WorkflowRun.started_at)
            )
            return [_to_record(run) for run in result.scalars().all()]
