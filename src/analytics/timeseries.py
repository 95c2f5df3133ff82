"""
Time-Series Aggregator

Revenue and order counts of paid orders, grouped by calendar bucket in
the analytics time zone:

- revenue_series: sparse buckets at day/week/month/year granularity
- revenue_overview: exactly N contiguous daily buckets, zero-filled
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Union

import structlog

from src.analytics.buckets import BucketKey, DailyBucket, Granularity, MetricBucket, bucket_key
from src.analytics.params import OVERVIEW_DAY_LIMITS, parse_granularity, parse_int
from src.analytics.ranges import DateRange, end_of_day, get_zone, local_date, start_of_day
from src.config import get_settings
from src.database.models import OrderStatus
from src.database.stores import OrderRow, OrderStore

logger = structlog.get_logger(__name__)

# Keyword ranges too short for weekly buckets to show more than one point
DAILY_FALLBACK_RANGES = ("today", "yesterday", "last7")

DEFAULT_OVERVIEW_ZONE = "Europe/London"


@dataclass
class RevenueSeries:
    interval: Granularity
    points: List[MetricBucket] = field(default_factory=list)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "interval": self.interval.value,
            "points": [
                {"label": p.label, "revenue": p.revenue, "orders": p.order_count}
                for p in self.points
            ],
        }


@dataclass
class RevenueOverview:
    days: int
    timezone: str
    points: List[DailyBucket] = field(default_factory=list)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "days": self.days,
            "timezone": self.timezone,
            "points": [
                {
                    "date": p.day.isoformat(),
                    "label": p.label,
                    "revenue": p.revenue,
                    "orders": p.order_count,
                    "isToday": p.is_today,
                }
                for p in self.points
            ],
        }


def effective_granularity(granularity: Granularity, date_range: DateRange) -> Granularity:
    """Weekly series over a short keyword range are grouped by day instead."""
    if granularity is Granularity.WEEK and date_range.keyword in DAILY_FALLBACK_RANGES:
        return Granularity.DAY
    return granularity


def group_orders(orders: Iterable[OrderRow], granularity: Granularity, tz: tzinfo) -> List[MetricBucket]:
    """Sum revenue and count orders per bucket; buckets come back in chronological order."""
    totals: Dict[BucketKey, Decimal] = defaultdict(Decimal)
    counts: Dict[BucketKey, int] = defaultdict(int)
    
    for order in orders:
        key = bucket_key(local_date(order.created_at, tz), granularity)
        totals[key] += Decimal(order.total)
        counts[key] += 1
    
    return [
        MetricBucket(label=key.label, revenue=float(totals[key]), order_count=counts[key])
        for key in sorted(totals)
    ]


def fill_daily(orders: Iterable[OrderRow], days: int, tz: tzinfo, now: datetime) -> List[DailyBucket]:
    """Exactly `days` consecutive local days ending today, zero where nothing was paid."""
    today = local_date(now, tz)
    first_day = today - timedelta(days=days - 1)
    
    totals: Dict[Any, Decimal] = defaultdict(Decimal)
    counts: Dict[Any, int] = defaultdict(int)
    for order in orders:
        day = local_date(order.created_at, tz)
        totals[day] += Decimal(order.total)
        counts[day] += 1
    
    buckets = []
    for offset in range(days):
        day = first_day + timedelta(days=offset)
        buckets.append(
            DailyBucket(
                label=day.isoformat(),
                revenue=float(totals.get(day, Decimal("0"))),
                order_count=counts.get(day, 0),
                day=day,
                is_today=day == today,
            )
        )
    return buckets


async def revenue_series(
    store: OrderStore,
    date_range: DateRange,
    interval: Optional[Union[str, Granularity]] = None,
    tz: Optional[Union[str, tzinfo]] = None,
) -> RevenueSeries:
    """Sparse revenue series for a resolved range."""
    requested = parse_granularity(interval, get_settings().analytics.default_interval)
    granularity = effective_granularity(requested, date_range)
    zone = get_zone(tz)
    
    start, end = date_range.as_utc_naive()
    orders = await store.fetch_orders([OrderStatus.PAID], start, end)
    points = group_orders(orders, granularity, zone)
    
    logger.debug(
        "Revenue series computed",
        interval=granularity.value,
        requested_interval=requested.value,
        orders=len(orders),
        points=len(points),
    )
    return RevenueSeries(interval=granularity, points=points)


async def revenue_overview(
    store: OrderStore,
    days: Any = None,
    tz: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RevenueOverview:
    """Fixed-width daily overview for dashboard charts."""
    day_count = parse_int(days, name="days", default=OVERVIEW_DAY_LIMITS[0], bounds=OVERVIEW_DAY_LIMITS)
    zone_name = tz or DEFAULT_OVERVIEW_ZONE
    zone = get_zone(zone_name)
    now = now or datetime.now(zone)
    if now.tzinfo is None:
        now = now.replace(tzinfo=zone)

    today = local_date(now, zone)
    window = DateRange(
        start_of_day(today - timedelta(days=day_count - 1), zone),
        end_of_day(today, zone),
    )
    start, end = window.as_utc_naive()
    orders = await store.fetch_orders([OrderStatus.PAID], start, end)
    
    return RevenueOverview(
        days=day_count,
        timezone=zone_name,
        points=fill_daily(orders, day_count, zone, now),
    )
