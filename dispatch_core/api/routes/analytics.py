"""
Analytics endpoints with Redis caching of full reports.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query

from dispatch_core.api.deps import get_aggregator
from dispatch_core.core.config import get_settings
from dispatch_core.core.logging import get_logger
from dispatch_core.schemas.analytics import AnalyticsReport, PeakHoursReport, RevenueReport
from dispatch_core.services.analytics_service import AnalyticsAggregator
from dispatch_core.services.cache_service import (
    get_cached_report,
    get_report_generation,
    set_cached_report,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/analytics", tags=["Analytics"])


def _resolve_window(start_date: Optional[date], end_date: Optional[date]) -> tuple[date, date]:
    """Default to the last N full days plus today, ending at tomorrow 00:00 UTC (exclusive)."""
    if end_date is None:
        end_date = datetime.now(timezone.utc).date() + timedelta(days=1)
    if start_date is None:
        start_date = end_date - timedelta(days=get_settings().ANALYTICS_DEFAULT_WINDOW_DAYS)
    return start_date, end_date


async def _report(
    aggregator: AnalyticsAggregator,
    start_date: Optional[date],
    end_date: Optional[date],
    include_cancelled_revenue: Optional[bool],
) -> AnalyticsReport:
    start_date, end_date = _resolve_window(start_date, end_date)
    if include_cancelled_revenue is None:
        include_cancelled_revenue = aggregator.settings.ANALYTICS_INCLUDE_CANCELLED_REVENUE

    # Windows still open at the end keep receiving bookings; only closed ones are cached
    cacheable = end_date <= datetime.now(timezone.utc).date()

    # Read before scanning; a write during the scan moves the generation on
    generation = await get_report_generation() if cacheable else None

    if cacheable:
        cached = await get_cached_report(start_date, end_date, include_cancelled_revenue, generation)
        if cached:
            logger.info("analytics_cache_hit", start_date=str(start_date), end_date=str(end_date))
            return cached.model_copy(update={"cached": True})

    report = await aggregator.aggregate(start_date, end_date, include_cancelled_revenue)
    if cacheable:
        await set_cached_report(start_date, end_date, include_cancelled_revenue, generation, report)
    return report


@router.get("/bookings", response_model=AnalyticsReport)
async def booking_analytics(
    start_date: Optional[date] = Query(None, description="Inclusive, UTC"),
    end_date: Optional[date] = Query(None, description="Exclusive, UTC"),
    include_cancelled_revenue: Optional[bool] = Query(None),
    aggregator: AnalyticsAggregator = Depends(get_aggregator),
):
    """
    Full booking report for [start_date, end_date).
    Reports for windows that have already ended are cached in Redis and
    invalidated on booking writes.
    """
    return await _report(aggregator, start_date, end_date, include_cancelled_revenue)


@router.get("/bookings/revenue", response_model=RevenueReport)
async def booking_revenue(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    include_cancelled_revenue: Optional[bool] = Query(None),
    aggregator: AnalyticsAggregator = Depends(get_aggregator),
):
    report = await _report(aggregator, start_date, end_date, include_cancelled_revenue)
    return RevenueReport(
        period=report.period,
        total_revenue=report.summary.total_revenue,
        revenue_by_status=report.revenue_by_status,
        revenue_by_service_type=report.revenue_by_service_type,
        daily_revenue_trend=report.daily_revenue_trend,
    )


@router.get("/bookings/peak-hours", response_model=PeakHoursReport)
async def booking_peak_hours(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    aggregator: AnalyticsAggregator = Depends(get_aggregator),
):
    report = await _report(aggregator, start_date, end_date, None)
    return PeakHoursReport(
        period=report.period,
        peak_hour=report.peak_hour,
        peak_day=report.peak_day,
        hourly_distribution=report.hourly_distribution,
        daily_distribution=report.daily_distribution,
    )
