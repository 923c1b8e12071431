"""
Scan Fabric - Main Application Entry Point

Multi-tenant scan orchestration: scheduled per-source dispatchers, on-demand
scans, and the stuck-scan reaper, exposed through a small FastAPI surface.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

from fastapi import FastAPI, HTTPException, Depends, Security, Request
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel

from .archivist import close_db
from .archivist.accounts import get_user_tier
from .archivist.monitors import get_monitor, set_scanning
from .config import settings, TIER_PLANS, DEFAULT_TIER
from .policy.access import manual_scan_cooldown_remaining
from .scheduler import setup_scheduler, shutdown_scheduler, build_runtime, ScanRuntime
from .scheduler import jobs as scheduler_module
from .scheduler.reaper import reap_stuck_scans
from .workflow.events import Event, SCAN_NOW


# ----- API Key Security -----

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(api_key: str = Security(api_key_header)):
    """Verify API key for protected endpoints."""
    if not api_key:
        raise HTTPException(status_code=401, detail="API key required")
    # Validate against configured API keys
    if api_key not in settings.valid_api_keys:
        raise HTTPException(status_code=403, detail="Invalid API key")
    return api_key


def run_migrations():
    """Run Alembic migrations on startup."""
    import subprocess
    import sys

    print("Running database migrations...")
    try:
        result = subprocess.run(
            [sys.executable, "-m", "alembic", "upgrade", "head"],
            capture_output=True,
            text=True,
            timeout=120,  # 2 minute timeout
        )
        if result.returncode == 0:
            print("Database migrations completed successfully")
        else:
            print(f"Migration warning: {result.stderr[-500:]}")
    except subprocess.TimeoutExpired:
        print("Warning: Migration timed out (database may be unavailable)")
    except Exception as e:
        print(f"Warning: Could not run migrations: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    print("Starting Scan Fabric...")

    run_migrations()

    runtime = build_runtime()
    app.state.runtime = runtime
    print(f"Registered {len(runtime.functions)} workflow functions")

    # Runs interrupted by the last shutdown (including staggered sleeps)
    try:
        resumed = await runtime.executor.resume_pending_runs(runtime.functions)
        print(f"Resumed {resumed} pending runs")
    except Exception as e:
        print(f"Warning: Could not resume pending runs: {e}")

    try:
        setup_scheduler(runtime)
        print("Scheduler started - source dispatchers and stuck scan reaper enabled")
    except Exception as e:
        print(f"Warning: Could not start scheduler: {e}")

    yield

    # Graceful shutdown - close all resources
    print("Shutting down...")
    shutdown_scheduler()

    try:
        await close_db()
        print("Database connections closed")
    except Exception as e:
        print(f"Warning: Error closing database: {e}")


app = FastAPI(
    title="Scan Fabric",
    description="Multi-tenant scan orchestration for brand monitors",
    version="0.1.0",
    lifespan=lifespan
)


def get_runtime(request: Request) -> ScanRuntime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Runtime not started")
    return runtime


# ----- Response Models -----

class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    scheduler_running: bool
    scheduled_functions: List[str]


class ScanRequest(BaseModel):
    user_id: str


class ScanQueuedResponse(BaseModel):
    status: str
    monitor_id: str
    event_id: str
    run_id: str


class ScanStatusResponse(BaseModel):
    monitor_id: str
    is_scanning: bool
    last_manual_scan_at: Optional[datetime] = None
    can_scan: bool
    cooldown_remaining_seconds: int
    next_scan_at: Optional[datetime] = None
    cooldown_hours: float


class RunResponse(BaseModel):
    run_id: str
    function_id: str
    status: str
    attempts: int
    output: Optional[Any] = None
    error_message: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None


class ReapResponse(BaseModel):
    reset: int
    monitors: List[str]


# ----- Endpoints -----

@app.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """Health check endpoint."""
    runtime = getattr(request.app.state, "runtime", None)
    scheduled = [f.id for f in runtime.scheduled_functions] if runtime else []
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        scheduler_running=scheduler_module.scheduler is not None,
        scheduled_functions=scheduled,
    )


async def _load_owned_monitor(monitor_id: str, user_id: str):
    monitor = await get_monitor(monitor_id)
    if monitor is None:
        raise HTTPException(status_code=404, detail="Monitor not found")
    if monitor.user_id != user_id:
        raise HTTPException(status_code=403, detail="Monitor belongs to another user")
    return monitor


@app.post(
    "/monitors/{monitor_id}/scan",
    response_model=ScanQueuedResponse,
    status_code=202,
    dependencies=[Depends(verify_api_key)],
)
async def trigger_scan(
    monitor_id: str,
    body: ScanRequest,
    runtime: ScanRuntime = Depends(get_runtime),
):
    """Queue an on-demand scan of one monitor, subject to the tier cooldown."""
    monitor = await _load_owned_monitor(monitor_id, body.user_id)

    if not monitor.is_active:
        raise HTTPException(status_code=400, detail="Monitor is paused")
    if monitor.is_scanning:
        raise HTTPException(status_code=409, detail="Scan already in progress")

    tier = await get_user_tier(body.user_id)
    remaining = manual_scan_cooldown_remaining(tier, monitor.last_manual_scan_at)
    if remaining.total_seconds() > 0:
        retry_after = int(remaining.total_seconds()) + 1
        return JSONResponse(
            status_code=429,
            content={
                "detail": f"Manual scan cooldown active for tier '{tier}'",
                "cooldown_remaining_seconds": retry_after,
            },
            headers={"Retry-After": str(retry_after)},
        )

    # Held from the request on, so a second request gets 409 before the run starts
    await set_scanning(monitor.id, True)
    event = Event(name=SCAN_NOW, data={"monitorId": monitor.id, "userId": body.user_id})
    try:
        await runtime.events.send(event)
    except Exception:
        await set_scanning(monitor.id, False)
        raise
    logger.info(f"Queued on-demand scan for monitor {monitor.id} (event {event.id})")

    return ScanQueuedResponse(
        status="queued",
        monitor_id=monitor.id,
        event_id=event.id,
        run_id=f"monitor-scan-now:{event.id}",
    )


@app.get(
    "/monitors/{monitor_id}/scan",
    response_model=ScanStatusResponse,
    dependencies=[Depends(verify_api_key)],
)
async def scan_status(monitor_id: str, user_id: str):
    """Scanning flag and manual-scan cooldown for one monitor."""
    monitor = await _load_owned_monitor(monitor_id, user_id)
    tier = await get_user_tier(user_id)
    plan = TIER_PLANS.get(tier) or TIER_PLANS[DEFAULT_TIER]
    remaining = manual_scan_cooldown_remaining(tier, monitor.last_manual_scan_at)

    next_scan_at = None
    if remaining.total_seconds() > 0 and monitor.last_manual_scan_at:
        next_scan_at = monitor.last_manual_scan_at + plan.manual_scan_cooldown

    return ScanStatusResponse(
        monitor_id=monitor.id,
        is_scanning=monitor.is_scanning,
        last_manual_scan_at=monitor.last_manual_scan_at,
        can_scan=remaining.total_seconds() <= 0 and not monitor.is_scanning,
        cooldown_remaining_seconds=int(remaining.total_seconds()),
        next_scan_at=next_scan_at,
        cooldown_hours=plan.manual_scan_cooldown.total_seconds() / 3600,
    )


@app.get("/runs/{run_id}", response_model=RunResponse, dependencies=[Depends(verify_api_key)])
async def get_run(run_id: str, runtime: ScanRuntime = Depends(get_runtime)):
    """Status and output of one workflow run."""
    record = await runtime.executor.store.get_run(run_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Run {run_id} not found")
    return RunResponse(**record.model_dump())


@app.post(
    "/admin/reap-stuck-scans",
    response_model=ReapResponse,
    dependencies=[Depends(verify_api_key)],
)
async def trigger_reaper():
    """Run the stuck-scan sweep immediately."""
    result: Dict[str, Any] = await reap_stuck_scans()
    return ReapResponse(**result)
