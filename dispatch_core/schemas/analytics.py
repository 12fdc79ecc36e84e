"""
Pydantic schemas for the analytics report contract.

Money is Decimal end to end; no currency or locale formatting happens here.
"""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel


class AnalyticsPeriod(BaseModel):
    start_date: date
    end_date: date


class AnalyticsSummary(BaseModel):
    total_bookings: int
    completed_bookings: int
    total_revenue: Decimal
    average_booking_value: Decimal
    completion_rate: float


class StatusCount(BaseModel):
    status: str
    count: int


class ServiceTypeCount(BaseModel):
    service_type: str
    count: int


class StatusRevenue(BaseModel):
    status: str
    revenue: Decimal


class ServiceTypeRevenue(BaseModel):
    service_type: str
    revenue: Decimal


class DailyRevenue(BaseModel):
    date: date
    revenue: Decimal


class HourCount(BaseModel):
    hour: int
    booking_count: int


class DayCount(BaseModel):
    day: str
    booking_count: int


class AnalyticsReport(BaseModel):
    period: AnalyticsPeriod
    summary: AnalyticsSummary
    by_status: list[StatusCount]
    by_service_type: list[ServiceTypeCount]
    revenue_by_status: list[StatusRevenue]
    revenue_by_service_type: list[ServiceTypeRevenue]
    daily_revenue_trend: list[DailyRevenue]
    peak_hour: HourCount
    peak_day: DayCount
    hourly_distribution: list[HourCount]
    daily_distribution: list[DayCount]
    cached: bool = False


class RevenueReport(BaseModel):
    period: AnalyticsPeriod
    total_revenue: Decimal
    revenue_by_status: list[StatusRevenue]
    revenue_by_service_type: list[ServiceTypeRevenue]
    daily_revenue_trend: list[DailyRevenue]


class PeakHoursReport(BaseModel):
    period: AnalyticsPeriod
    peak_hour: HourCount
    peak_day: DayCount
    hourly_distribution: list[HourCount]
    daily_distribution: list[DayCount]
