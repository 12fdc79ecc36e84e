"""
Tests for booking analytics aggregation.
"""

import random
from datetime import date, timedelta
from decimal import Decimal

import pytest

from dispatch_core.core.config import Settings
from dispatch_core.core.exceptions import ValidationFailed
from dispatch_core.domain.states import BookingStatus, ServiceType
from dispatch_core.services.analytics_service import AnalyticsAggregator, partition_window
from helpers import drive_booking, make_booking_data, utc


async def _book(coordinator, engine, created_at, price="100.00", status=BookingStatus.PENDING,
                service_type=ServiceType.CARGO):
    booking = await coordinator.create_booking(
        make_booking_data(price=price, service_type=service_type, created_at=created_at)
    )
    return await drive_booking(engine, booking, status)


@pytest.fixture
def monday() -> date:
    return date(2026, 3, 2)


@pytest.mark.asyncio
async def test_small_window_report(coordinator, engine, aggregator, monday):
    await _book(coordinator, engine, utc(2026, 3, 2, 9), "100.00", BookingStatus.COMPLETED)
    await _book(coordinator, engine, utc(2026, 3, 2, 9, 30), "200.00", BookingStatus.CANCELLED,
                ServiceType.PASSENGER)
    await _book(coordinator, engine, utc(2026, 3, 2, 14), "300.00")

    report = await aggregator.aggregate(monday, monday + timedelta(days=1))

    assert report.summary.total_bookings == 3
    assert report.summary.completed_bookings == 1
    assert report.summary.total_revenue == Decimal("600.00")
    assert report.summary.average_booking_value == Decimal("200.00")
    assert report.summary.completion_rate == 33.3

    assert [(s.status, s.count) for s in report.by_status] == [
        ("pending", 1),
        ("completed", 1),
        ("cancelled", 1),
    ]
    assert [(t.service_type, t.count) for t in report.by_service_type] == [("cargo", 2), ("passenger", 1)]
    assert report.peak_hour.hour == 9
    assert report.peak_hour.booking_count == 2
    assert report.peak_day.day == "Monday"
    assert report.peak_day.booking_count == 3
    assert [(d.date, d.revenue) for d in report.daily_revenue_trend] == [(monday, Decimal("600.00"))]


@pytest.mark.asyncio
async def test_two_of_three_completed_rounds_up(coordinator, engine, aggregator, monday):
    await _book(coordinator, engine, utc(2026, 3, 2, 8), "100.00", BookingStatus.COMPLETED)
    await _book(coordinator, engine, utc(2026, 3, 2, 12), "200.00", BookingStatus.COMPLETED)
    await _book(coordinator, engine, utc(2026, 3, 2, 16), "300.00", BookingStatus.CANCELLED)

    report = await aggregator.aggregate(monday, monday + timedelta(days=1))

    assert report.summary.total_bookings == 3
    assert report.summary.completed_bookings == 2
    assert report.summary.total_revenue == Decimal("600.00")
    assert report.summary.average_booking_value == Decimal("200.00")
    # 66.666... rounds half up at one decimal
    assert report.summary.completion_rate == 66.7
    revenue = {r.status: r.revenue for r in report.revenue_by_status}
    assert revenue == {"completed": Decimal("300.00"), "cancelled": Decimal("300.00")}


@pytest.mark.asyncio
async def test_cancelled_revenue_can_be_excluded(coordinator, engine, aggregator, monday):
    await _book(coordinator, engine, utc(2026, 3, 2, 9), "100.00", BookingStatus.COMPLETED)
    await _book(coordinator, engine, utc(2026, 3, 2, 10), "200.00", BookingStatus.CANCELLED)
    await _book(coordinator, engine, utc(2026, 3, 2, 11), "300.00")

    report = await aggregator.aggregate(monday, monday + timedelta(days=1), include_cancelled_revenue=False)

    assert report.summary.total_bookings == 3
    assert report.summary.total_revenue == Decimal("400.00")
    assert report.summary.average_booking_value == Decimal("133.33")
    revenue = {r.status: r.revenue for r in report.revenue_by_status}
    assert revenue["cancelled"] == Decimal("0.00")


@pytest.mark.asyncio
async def test_empty_window(aggregator, monday):
    report = await aggregator.aggregate(monday, monday + timedelta(days=5))

    assert report.summary.total_bookings == 0
    assert report.summary.total_revenue == Decimal("0")
    assert report.summary.average_booking_value == Decimal("0")
    assert report.summary.completion_rate == 0.0
    assert report.by_status == []
    assert report.peak_hour.hour == 0
    assert report.peak_hour.booking_count == 0
    assert report.peak_day.day == "Monday"
    assert len(report.hourly_distribution) == 24
    assert len(report.daily_distribution) == 7
    assert len(report.daily_revenue_trend) == 5
    assert all(d.revenue == 0 for d in report.daily_revenue_trend)


@pytest.mark.asyncio
async def test_window_is_half_open(coordinator, engine, aggregator, monday):
    await _book(coordinator, engine, utc(2026, 3, 2, 0, 0))
    await _book(coordinator, engine, utc(2026, 3, 2, 23, 59, 59))
    await _book(coordinator, engine, utc(2026, 3, 3, 0, 0))
    await _book(coordinator, engine, utc(2026, 3, 1, 23, 59, 59))

    report = await aggregator.aggregate(monday, monday + timedelta(days=1))

    assert report.summary.total_bookings == 2


@pytest.mark.asyncio
async def test_peak_ties_break_to_earliest(coordinator, engine, aggregator, monday):
    # One booking at 15:00 on Tuesday, one at 07:00 on Monday
    await _book(coordinator, engine, utc(2026, 3, 3, 15))
    await _book(coordinator, engine, utc(2026, 3, 2, 7))

    report = await aggregator.aggregate(monday, monday + timedelta(days=7))

    assert report.peak_hour.hour == 7
    assert report.peak_day.day == "Monday"


@pytest.mark.asyncio
async def test_distributions_and_trend_are_consistent(coordinator, engine, store, monday):
    rng = random.Random(7)
    for _ in range(120):
        created = utc(2026, 3, 2) + timedelta(minutes=rng.randrange(10 * 24 * 60))
        await _book(
            coordinator,
            engine,
            created,
            price=f"{rng.randrange(100, 100000) / 100:.2f}",
            status=rng.choice(list(BookingStatus)),
            service_type=rng.choice(list(ServiceType)),
        )

    start, end = monday, monday + timedelta(days=10)
    partitioned = await AnalyticsAggregator(store, Settings(ANALYTICS_PARTITION_DAYS=3)).aggregate(start, end)
    single = await AnalyticsAggregator(store, Settings(ANALYTICS_PARTITION_DAYS=30)).aggregate(start, end)

    assert partitioned == single

    report = partitioned
    total = report.summary.total_bookings
    assert total == 120
    assert sum(s.count for s in report.by_status) == total
    assert sum(t.count for t in report.by_service_type) == total
    assert sum(h.booking_count for h in report.hourly_distribution) == total
    assert sum(d.booking_count for d in report.daily_distribution) == total
    assert sum(d.revenue for d in report.daily_revenue_trend) == report.summary.total_revenue
    assert sum(r.revenue for r in report.revenue_by_status) == report.summary.total_revenue
    assert report.peak_hour.booking_count == max(h.booking_count for h in report.hourly_distribution)
    assert 0 <= report.summary.completion_rate <= 100
    assert len(report.daily_revenue_trend) == 10


@pytest.mark.asyncio
async def test_window_validation(aggregator, monday):
    with pytest.raises(ValidationFailed):
        await aggregator.aggregate(monday, monday)
    with pytest.raises(ValidationFailed):
        await aggregator.aggregate(monday, monday - timedelta(days=1))
    with pytest.raises(ValidationFailed):
        await aggregator.aggregate(monday, monday + timedelta(days=367))


def test_partitions_cover_window_without_overlap():
    start, end = utc(2026, 3, 1), utc(2026, 3, 11)

    parts = partition_window(start, end, 3)

    assert parts[0][0] == start
    assert parts[-1][1] == end
    assert len(parts) == 4
    for (_, upper), (lower, _) in zip(parts, parts[1:]):
        assert upper == lower
