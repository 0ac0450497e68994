"""
API package initialization.

This package contains FastAPI router modules for the ReportsDAY service:
- status: Service status (messaging, day cache, metrics API, next run)
- reports: D0 KPIs, historical analysis and baseline
- executions: Execution history, manual trigger, next run, schedule
- webhook: PBX call webhook ingestion
- websocket: Live dashboard event stream
"""

from fastapi import APIRouter

from reportsday.api.status import router as status_router
from reportsday.api.reports import router as reports_router
from reportsday.api.executions import router as executions_router
from reportsday.api.webhook import router as webhook_router
from reportsday.api.websocket import router as websocket_router

# Main API router; each sub-router carries its own prefix
api_router = APIRouter()

api_router.include_router(status_router)
api_router.include_router(reports_router)
api_router.include_router(executions_router)
api_router.include_router(webhook_router)
api_router.include_router(websocket_router)

__all__ = [
    "api_router",
    "status_router",
    "reports_router",
    "executions_router",
    "webhook_router",
    "websocket_router",
]
