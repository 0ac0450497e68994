"""
FastAPI router module for service status.

Implements GET /api/status: messaging connectivity, day cache state,
metrics API configuration, next scheduled report and live viewer count.
The same snapshot is pushed to WebSocket viewers that send ``get_status``.
"""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from reportsday.core.dependencies import RuntimeDep
from reportsday.core.runtime import Runtime
from reportsday.models.schemas import JobInfo


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["status"])


# =============================================================================
# Response Models
# =============================================================================

class MessagingStatusSection(BaseModel):
    provider: str
    status: str = Field(..., description="connected, disconnected or not_configured")
    configured: bool


class CacheStatusSection(BaseModel):
    connected: bool
    has_cache: bool
    ttl: Optional[int] = Field(default=None, description="Seconds until today's cache expires")
    call_count: int = 0


class MetricsStatusSection(BaseModel):
    configured: bool


class StatusResponse(BaseModel):
    messaging: MessagingStatusSection
    cache: CacheStatusSection
    metrics: MetricsStatusSection
    next_run: Optional[datetime] = None
    scheduled_times: List[str] = Field(default_factory=list)
    jobs: List[JobInfo] = Field(default_factory=list)
    viewers: int = 0


async def build_status(runtime: Runtime) -> StatusResponse:
    """Collect the status snapshot from every component."""
    messaging, has_cache, ttl, call_count = await asyncio.gather(
        runtime.messaging_client.status(),
        runtime.cache.exists(),
        runtime.cache.remaining_ttl(),
        runtime.cache.count(),
    )

    if messaging.connected:
        messaging_state = "connected"
    elif messaging.configured:
        messaging_state = "disconnected"
    else:
        messaging_state = "not_configured"

    return StatusResponse(
        messaging=MessagingStatusSection(
            provider=messaging.provider.value,
            status=messaging_state,
            configured=messaging.configured,
        ),
        cache=CacheStatusSection(
            connected=runtime.cache.status()["connected"],
            has_cache=has_cache,
            ttl=ttl if ttl > 0 else None,
            call_count=call_count,
        ),
        metrics=MetricsStatusSection(configured=runtime.metrics_client.is_configured),
        next_run=runtime.scheduler.get_next_run(),
        scheduled_times=runtime.scheduler.scheduled_times,
        jobs=runtime.scheduler.jobs,
        viewers=runtime.broadcaster.viewer_count,
    )


@router.get("/status", response_model=StatusResponse)
async def get_status(runtime: RuntimeDep) -> StatusResponse:
    """
    Overall service status.

    Raises:
        HTTPException 500: If a component fails unexpectedly
    """
    try:
        return await build_status(runtime)
    except Exception as e:
        logger.error(f"Error collecting status: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to collect status: {str(e)}")
