"""
FastAPI router module for KPI reports.

Implements:
- GET /api/report/d0: today's KPI snapshot
- GET /api/report/analysis: today compared with the rolling baseline
- GET /api/report/history?days=N: rolling baseline of the last N days

These endpoints query the metrics provider on every call. The history
endpoints issue one request per day with a short pause in between, so they
take a few seconds to answer.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from reportsday.core.dependencies import AggregatorDep, AnalyzerDep
from reportsday.models.schemas import DailyComparison, HistoricalSummary, KPISnapshot


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/report", tags=["reports"])


MAX_HISTORY_DAYS = 60


@router.get("/d0", response_model=KPISnapshot)
async def get_d0_report(aggregator: AggregatorDep) -> KPISnapshot:
    """Today's KPIs. All-zero when the provider has no data."""
    return await aggregator.compute_daily_kpis()


@router.get("/analysis", response_model=DailyComparison)
async def get_analysis(
    analyzer: AnalyzerDep,
    days: int = Query(default=15, ge=1, le=MAX_HISTORY_DAYS, description="Baseline window in days"),
) -> DailyComparison:
    """
    Today's KPIs classified against the last ``days`` days.

    When no baseline is available the response carries ``error`` and no
    classifications.
    """
    try:
        return await analyzer.compare_today(days=days)
    except Exception as e:
        logger.error(f"Error computing analysis: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to compute analysis: {str(e)}")


@router.get("/history", response_model=Optional[HistoricalSummary])
async def get_history(
    analyzer: AnalyzerDep,
    days: int = Query(default=15, ge=1, le=MAX_HISTORY_DAYS, description="Number of past days"),
) -> Optional[HistoricalSummary]:
    """Baseline of the last ``days`` days; null when no day produced data."""
    try:
        return await analyzer.build_history(days=days)
    except Exception as e:
        logger.error(f"Error building history: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to build history: {str(e)}")
