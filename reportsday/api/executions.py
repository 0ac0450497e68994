"""
FastAPI router module for report executions and the schedule.

Implements:
- GET  /api/history: execution records, most recent first
- POST /api/trigger: start a report run in the background
- GET  /api/next-run: next scheduled report time
- PUT  /api/schedule: replace the daily report times
- GET  /api/jobs: state of the recurring jobs
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from reportsday.core.dependencies import SchedulerDep
from reportsday.jobs.triggers import ScheduleError
from reportsday.models.schemas import ExecutionRecord, JobInfo, TriggerAck


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["executions"])


# =============================================================================
# Request / Response Models
# =============================================================================

class HistoryResponse(BaseModel):
    history: List[ExecutionRecord] = Field(default_factory=list)


class NextRunResponse(BaseModel):
    next_run: Optional[datetime] = None
    formatted: Optional[str] = Field(default=None, description="Local time as DD/MM/YYYY HH:MM")


class ScheduleUpdate(BaseModel):
    times: List[str] = Field(..., min_length=1, description='Daily report times, e.g. ["09:00", "18:00"]')


class ScheduleResponse(BaseModel):
    times: List[str]
    next_run: Optional[datetime] = None


# =============================================================================
# Endpoints
# =============================================================================

@router.get("/history", response_model=HistoryResponse)
async def get_execution_history(scheduler: SchedulerDep) -> HistoryResponse:
    return HistoryResponse(history=scheduler.history)


@router.post("/trigger", response_model=TriggerAck)
async def trigger_report(scheduler: SchedulerDep) -> TriggerAck:
    """
    Start a report run and answer immediately.

    The run continues in the background; follow it over the WebSocket or in
    /api/history.
    """
    return scheduler.trigger()


@router.get("/next-run", response_model=NextRunResponse)
async def get_next_run(scheduler: SchedulerDep) -> NextRunResponse:
    next_run = scheduler.get_next_run()
    return NextRunResponse(
        next_run=next_run,
        formatted=next_run.strftime("%d/%m/%Y %H:%M") if next_run else None,
    )


@router.put("/schedule", response_model=ScheduleResponse)
async def update_schedule(update: ScheduleUpdate, scheduler: SchedulerDep) -> ScheduleResponse:
    """
    Replace the daily report times.

    Raises:
        HTTPException 400: If any time is not a valid HH:MM
    """
    try:
        times = scheduler.set_scheduled_times(update.times)
    except ScheduleError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ScheduleResponse(times=times, next_run=scheduler.get_next_run())


@router.get("/jobs", response_model=List[JobInfo])
async def list_jobs(scheduler: SchedulerDep) -> List[JobInfo]:
    return scheduler.jobs
