"""
FastAPI dependency injection module for the ReportsDAY service.

Route handlers never import module-level singletons: every component lives
on the Runtime stored in ``app.state.runtime`` during the lifespan, and is
injected through the ``Annotated`` aliases below.

Key Dependencies Provided:
- get_runtime: The Runtime owning every component
- RuntimeDep, SchedulerDep, AggregatorDep, AnalyzerDep: type aliases for
  endpoints

Usage Examples:
    @router.get("/next-run")
    async def next_run(scheduler: SchedulerDep) -> dict:
        return {"next_run": scheduler.get_next_run()}

In tests, override with:
    app.dependency_overrides[get_runtime] = lambda: fake_runtime
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from reportsday.core.runtime import Runtime
from reportsday.jobs.scheduler import ReportScheduler
from reportsday.services.aggregator import MetricsAggregator
from reportsday.services.history import HistoricalAnalyzer


# =============================================================================
# Runtime Dependency
# =============================================================================

def get_runtime(request: Request) -> Runtime:
    """
    Return the Runtime built by the application lifespan.

    Raises:
        HTTPException: 503 if the service has not finished starting
    """
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Service is starting")
    return runtime


RuntimeDep = Annotated[Runtime, Depends(get_runtime)]


# =============================================================================
# Component Dependencies
# =============================================================================

def get_scheduler(runtime: RuntimeDep) -> ReportScheduler:
    return runtime.scheduler


def get_aggregator(runtime: RuntimeDep) -> MetricsAggregator:
    return runtime.aggregator


def get_analyzer(runtime: RuntimeDep) -> HistoricalAnalyzer:
    return runtime.analyzer


SchedulerDep = Annotated[ReportScheduler, Depends(get_scheduler)]
AggregatorDep = Annotated[MetricsAggregator, Depends(get_aggregator)]
AnalyzerDep = Annotated[HistoricalAnalyzer, Depends(get_analyzer)]
