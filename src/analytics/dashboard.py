"""
Dashboard Composer

Runs the six dashboard sub-queries concurrently against one resolved
range and merges them into a single envelope. A failing section is
reported as failed; the others are still returned.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import structlog
from prometheus_client import Counter

from src.analytics import snapshots
from src.analytics.buckets import Granularity
from src.analytics.params import parse_granularity
from src.analytics.ranges import DateRange
from src.analytics.timeseries import revenue_series
from src.config import get_settings
from src.database.stores import OrderStore, StockStore
from src.errors import ClientError, UpstreamQueryFailure

logger = structlog.get_logger(__name__)

SECTION_FAILURES = Counter(
    "dashboard_section_failures_total",
    "Dashboard sub-queries that failed",
    ["section"],
)


@dataclass(frozen=True)
class SectionOk:
    section: str
    data: Any
    
    ok = True


@dataclass(frozen=True)
class SectionFailed:
    section: str
    reason: str
    
    ok = False


SectionResult = Union[SectionOk, SectionFailed]


async def guarded(section: str, awaitable: Awaitable[Any]) -> Any:
    """
    Await one store-backed query, re-raising anything but a client error
    as UpstreamQueryFailure tagged with the section name.
    """
    try:
        return await awaitable
    except ClientError:
        raise
    except UpstreamQueryFailure:
        raise
    except Exception as e:
        raise UpstreamQueryFailure(section, e) from e


async def run_section(section: str, factory: Callable[[], Awaitable[Any]]) -> SectionResult:
    try:
        data = await guarded(section, factory())
    except UpstreamQueryFailure as e:
        SECTION_FAILURES.labels(section=section).inc()
        logger.error(
            "Dashboard section failed",
            section=section,
            error=str(e.cause),
            error_type=type(e.cause).__name__,
        )
        return SectionFailed(section=section, reason=e.message)
    return SectionOk(section=section, data=data)


@dataclass
class DashboardEnvelope:
    range: DateRange
    sections: List[SectionResult]
    
    @property
    def failed(self) -> List[str]:
        return [s.section for s in self.sections if not s.ok]
    
    @property
    def partial(self) -> bool:
        return bool(self.failed)
    
    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"range": self.range.to_dict()}
        errors: Dict[str, str] = {}
        for result in self.sections:
            if isinstance(result, SectionOk):
                body[result.section] = result.data
            else:
                body[result.section] = None
                errors[result.section] = result.reason
        body["partial"] = self.partial
        body["failed"] = self.failed
        if errors:
            body["errors"] = errors
        return body


async def compose_dashboard(
    orders: OrderStore,
    stock: StockStore,
    date_range: DateRange,
    interval: Optional[Union[str, Granularity]] = None,
) -> DashboardEnvelope:
    """
    Fan out summary, revenue, top products, recent orders and both stock
    listings. The interval is validated before anything is queried.
    """
    analytics = get_settings().analytics
    granularity = parse_granularity(interval, analytics.default_interval)
    
    async def revenue() -> Dict[str, Any]:
        series = await revenue_series(orders, date_range, granularity)
        return series.to_dict()
    
    factories: Dict[str, Callable[[], Awaitable[Any]]] = {
        "summary": lambda: snapshots.summary(orders, stock, date_range),
        "revenue": revenue,
        "topProducts": lambda: snapshots.top_products(
            orders, date_range, analytics.dashboard_top_products
        ),
        "recentOrders": lambda: snapshots.recent_orders(
            orders, date_range, analytics.dashboard_recent_orders
        ),
        "lowStock": lambda: snapshots.low_stock(stock, analytics.dashboard_stock_limit),
        "outOfStock": lambda: snapshots.out_of_stock(stock, analytics.dashboard_stock_limit),
    }
    
    results = await asyncio.gather(
        *(run_section(name, factory) for name, factory in factories.items())
    )
    envelope = DashboardEnvelope(range=date_range, sections=list(results))
    
    if envelope.partial:
        logger.warning("Dashboard composed with failures", failed=envelope.failed)
    return envelope
