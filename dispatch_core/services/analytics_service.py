"""
Booking analytics over a half-open UTC date window [start_date, end_date).

SINGLE-PASS AGGREGATION
=======================

Every metric in the report is derived from one family of counters filled
during one scan of the window:

  per status, per service type, per hour-of-day, per weekday, per calendar day
  (+ matching revenue sums)

So by_status always sums to total_bookings, the hourly and weekday
distributions always sum to total_bookings, and the daily trend always
sums to total_revenue. No metric is recomputed by a second query.

The window is cut into partitions that are scanned concurrently and merged.
Partitions never overlap, so merging is plain counter addition and the
result equals a single sequential scan.

The aggregator is read-only and holds no state between calls. Writes that
land during a long scan may or may not be seen; that is accepted.
"""

import asyncio
import time
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time as dt_time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal

from dispatch_core.core.config import Settings, get_settings
from dispatch_core.core.exceptions import ValidationFailed
from dispatch_core.core.logging import get_logger
from dispatch_core.core.metrics import analytics_latency, analytics_rows_scanned
from dispatch_core.domain.states import BookingStatus, ServiceType
from dispatch_core.schemas.analytics import (
    AnalyticsPeriod,
    AnalyticsReport,
    AnalyticsSummary,
    DailyRevenue,
    DayCount,
    HourCount,
    ServiceTypeCount,
    ServiceTypeRevenue,
    StatusCount,
    StatusRevenue,
)
from dispatch_core.schemas.booking import BookingRead
from dispatch_core.store.interface import EntityStore

logger = get_logger(__name__)

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
CENT = Decimal("0.01")
TENTH = Decimal("0.1")
ZERO = Decimal("0")


@dataclass
class _WindowAccumulator:
    include_cancelled_revenue: bool = True
    total: int = 0
    revenue: Decimal = ZERO
    by_status: Counter = field(default_factory=Counter)
    by_service_type: Counter = field(default_factory=Counter)
    revenue_by_status: defaultdict = field(default_factory=lambda: defaultdict(Decimal))
    revenue_by_service_type: defaultdict = field(default_factory=lambda: defaultdict(Decimal))
    revenue_by_day: defaultdict = field(default_factory=lambda: defaultdict(Decimal))
    by_hour: list[int] = field(default_factory=lambda: [0] * 24)
    by_weekday: list[int] = field(default_factory=lambda: [0] * 7)

    def add(self, booking: BookingRead) -> None:
        created = booking.created_at.astimezone(timezone.utc)
        status = booking.status.value
        service_type = booking.service_type.value

        price = booking.price
        if booking.status is BookingStatus.CANCELLED and not self.include_cancelled_revenue:
            price = ZERO

        self.total += 1
        self.revenue += price
        self.by_status[status] += 1
        self.by_service_type[service_type] += 1
        self.revenue_by_status[status] += price
        self.revenue_by_service_type[service_type] += price
        self.revenue_by_day[created.date()] += price
        self.by_hour[created.hour] += 1
        self.by_weekday[created.weekday()] += 1

    def merge(self, other: "_WindowAccumulator") -> None:
        self.total += other.total
        self.revenue += other.revenue
        self.by_status.update(other.by_status)
        self.by_service_type.update(other.by_service_type)
        for key, value in other.revenue_by_status.items():
            self.revenue_by_status[key] += value
        for key, value in other.revenue_by_service_type.items():
            self.revenue_by_service_type[key] += value
        for key, value in other.revenue_by_day.items():
            self.revenue_by_day[key] += value
        for hour, count in enumerate(other.by_hour):
            self.by_hour[hour] += count
        for weekday, count in enumerate(other.by_weekday):
            self.by_weekday[weekday] += count


def _utc_midnight(day: date) -> datetime:
    return datetime.combine(day, dt_time.min, tzinfo=timezone.utc)


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def partition_window(start: datetime, end: datetime, partition_days: int) -> list[tuple[datetime, datetime]]:
    """Split [start, end) into consecutive non-overlapping slices."""
    step = timedelta(days=max(partition_days, 1))
    partitions = []
    cursor = start
    while cursor < end:
        upper = min(cursor + step, end)
        partitions.append((cursor, upper))
        cursor = upper
    return partitions


class AnalyticsAggregator:

    def __init__(self, store: EntityStore, settings: Settings | None = None):
        self.store = store
        self.settings = settings or get_settings()

    def _validate_window(self, start_date: date, end_date: date) -> None:
        if end_date <= start_date:
            raise ValidationFailed(f"end_date {end_date} must be after start_date {start_date}")
        days = (end_date - start_date).days
        if days > self.settings.ANALYTICS_MAX_WINDOW_DAYS:
            raise ValidationFailed(
                f"Window of {days} days exceeds the maximum of {self.settings.ANALYTICS_MAX_WINDOW_DAYS}"
            )

    async def _scan(self, start: datetime, end: datetime, include_cancelled_revenue: bool) -> _WindowAccumulator:
        acc = _WindowAccumulator(include_cancelled_revenue=include_cancelled_revenue)
        async for booking in self.store.query_bookings_by_created_range(start, end):
            acc.add(booking)
        return acc

    async def aggregate(
        self,
        start_date: date,
        end_date: date,
        include_cancelled_revenue: bool | None = None,
    ) -> AnalyticsReport:
        """
        Build the full report for [start_date, end_date) in UTC.

        Raises:
            ValidationFailed: empty/negative window or window over the configured maximum
        """
        self._validate_window(start_date, end_date)
        if include_cancelled_revenue is None:
            include_cancelled_revenue = self.settings.ANALYTICS_INCLUDE_CANCELLED_REVENUE

        started = time.perf_counter()
        partitions = partition_window(
            _utc_midnight(start_date), _utc_midnight(end_date), self.settings.ANALYTICS_PARTITION_DAYS
        )
        results = await asyncio.gather(
            *(self._scan(lo, hi, include_cancelled_revenue) for lo, hi in partitions)
        )

        acc = _WindowAccumulator(include_cancelled_revenue=include_cancelled_revenue)
        for partial in results:
            acc.merge(partial)

        report = self._build_report(acc, start_date, end_date)

        elapsed = time.perf_counter() - started
        analytics_latency.observe(elapsed)
        analytics_rows_scanned.inc(acc.total)
        logger.info(
            "analytics_aggregated",
            start_date=start_date.isoformat(),
            end_date=end_date.isoformat(),
            partitions=len(partitions),
            bookings=acc.total,
            duration_ms=round(elapsed * 1000, 2),
        )
        return report

    @staticmethod
    def _build_report(acc: _WindowAccumulator, start_date: date, end_date: date) -> AnalyticsReport:
        total = acc.total
        completed = acc.by_status.get(BookingStatus.COMPLETED.value, 0)

        if total:
            average = _money(acc.revenue / total)
            completion_rate = float(
                (Decimal(completed) * 100 / Decimal(total)).quantize(TENTH, rounding=ROUND_HALF_UP)
            )
        else:
            average = _money(ZERO)
            completion_rate = 0.0

        statuses = [s.value for s in BookingStatus if acc.by_status.get(s.value)]
        service_types = [t.value for t in ServiceType if acc.by_service_type.get(t.value)]

        days = (end_date - start_date).days
        trend = [
            DailyRevenue(date=day, revenue=_money(acc.revenue_by_day.get(day, ZERO)))
            for day in (start_date + timedelta(days=offset) for offset in range(days))
        ]

        peak_hour = max(range(24), key=lambda h: (acc.by_hour[h], -h))
        peak_weekday = max(range(7), key=lambda d: (acc.by_weekday[d], -d))

        return AnalyticsReport(
            period=AnalyticsPeriod(start_date=start_date, end_date=end_date),
            summary=AnalyticsSummary(
                total_bookings=total,
                completed_bookings=completed,
                total_revenue=_money(acc.revenue),
                average_booking_value=average,
                completion_rate=completion_rate,
            ),
            by_status=[StatusCount(status=s, count=acc.by_status[s]) for s in statuses],
            by_service_type=[
                ServiceTypeCount(service_type=t, count=acc.by_service_type[t]) for t in service_types
            ],
            revenue_by_status=[
                StatusRevenue(status=s, revenue=_money(acc.revenue_by_status[s])) for s in statuses
            ],
            revenue_by_service_type=[
                ServiceTypeRevenue(service_type=t, revenue=_money(acc.revenue_by_service_type[t]))
                for t in service_types
            ],
            daily_revenue_trend=trend,
            peak_hour=HourCount(hour=peak_hour, booking_count=acc.by_hour[peak_hour]),
            peak_day=DayCount(day=WEEKDAYS[peak_weekday], booking_count=acc.by_weekday[peak_weekday]),
            hourly_distribution=[HourCount(hour=h, booking_count=acc.by_hour[h]) for h in range(24)],
            daily_distribution=[
                DayCount(day=WEEKDAYS[d], booking_count=acc.by_weekday[d]) for d in range(7)
            ],
        )
