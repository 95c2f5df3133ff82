"""
Analytics API Endpoints

Read-only dashboard metrics. Every endpoint accepts either a `range`
keyword or explicit `from`/`to` dates and answers with
{"success": true, "data": ...}.
"""

from typing import Any, Awaitable, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
import structlog

from src.analytics import snapshots
from src.analytics.dashboard import compose_dashboard, guarded
from src.analytics.params import parse_granularity
from src.analytics.ranges import DateRange, resolve_range
from src.analytics.timeseries import revenue_overview, revenue_series
from src.config import get_settings
from src.database.stores import OrderStore, StockStore
from src.serving.api.deps import get_order_store, get_stock_store, require_permission

router = APIRouter(dependencies=[Depends(require_permission("analytics.read"))])
logger = structlog.get_logger(__name__)


class Envelope(BaseModel):
    """Successful response wrapper"""
    success: bool = True
    data: Any


async def date_range(
    range_: Optional[str] = Query(None, alias="range", description="Range keyword, e.g. last30"),
    date_from: Optional[str] = Query(None, alias="from", description="ISO start date"),
    date_to: Optional[str] = Query(None, alias="to", description="ISO end date"),
) -> DateRange:
    return resolve_range(range_, date_from, date_to)


async def respond(section: str, awaitable: Awaitable[Any]) -> Envelope:
    return Envelope(data=await guarded(section, awaitable))


@router.get("/summary", response_model=Envelope)
async def get_summary(
    period: DateRange = Depends(date_range),
    orders: OrderStore = Depends(get_order_store),
    stock: StockStore = Depends(get_stock_store),
) -> Envelope:
    """Order volume, paid revenue, status tally and stock alert counts."""
    return await respond("summary", snapshots.summary(orders, stock, period))


@router.get("/revenue", response_model=Envelope)
async def get_revenue(
    interval: Optional[str] = Query(None, description="day, week, month or year"),
    period: DateRange = Depends(date_range),
    orders: OrderStore = Depends(get_order_store),
) -> Envelope:
    granularity = parse_granularity(interval, get_settings().analytics.default_interval)
    series = await guarded("revenue", revenue_series(orders, period, granularity))
    return Envelope(data=series.to_dict())


@router.get("/revenue-overview", response_model=Envelope)
async def get_revenue_overview(
    days: Optional[str] = Query(None, description="Number of days, clamped to 7..90"),
    tz: Optional[str] = Query(None, description="IANA time zone"),
    orders: OrderStore = Depends(get_order_store),
) -> Envelope:
    """Gap-filled daily revenue for the last N days."""
    overview = await guarded("revenueOverview", revenue_overview(orders, days, tz))
    return Envelope(data=overview.to_dict())


@router.get("/order-status", response_model=Envelope)
async def get_order_status(
    period: DateRange = Depends(date_range),
    orders: OrderStore = Depends(get_order_store),
) -> Envelope:
    return await respond("orderStatus", snapshots.order_status_counts(orders, period))


@router.get("/top-products", response_model=Envelope)
async def get_top_products(
    limit: Optional[str] = Query(None, description="1..25"),
    period: DateRange = Depends(date_range),
    orders: OrderStore = Depends(get_order_store),
) -> Envelope:
    return await respond("topProducts", snapshots.top_products(orders, period, limit))


@router.get("/recent-orders", response_model=Envelope)
async def get_recent_orders(
    limit: Optional[str] = Query(None, description="1..25"),
    period: DateRange = Depends(date_range),
    orders: OrderStore = Depends(get_order_store),
) -> Envelope:
    return await respond("recentOrders", snapshots.recent_orders(orders, period, limit))


@router.get("/low-stock", response_model=Envelope)
async def get_low_stock(
    limit: Optional[str] = Query(None, description="1..200"),
    stock: StockStore = Depends(get_stock_store),
) -> Envelope:
    return await respond("lowStock", snapshots.low_stock(stock, limit))


@router.get("/out-of-stock", response_model=Envelope)
async def get_out_of_stock(
    limit: Optional[str] = Query(None, description="1..200"),
    stock: StockStore = Depends(get_stock_store),
) -> Envelope:
    return await respond("outOfStock", snapshots.out_of_stock(stock, limit))


@router.get("/dashboard", response_model=Envelope)
async def get_dashboard(
    interval: Optional[str] = Query(None, description="Revenue interval"),
    period: DateRange = Depends(date_range),
    orders: OrderStore = Depends(get_order_store),
    stock: StockStore = Depends(get_stock_store),
) -> Envelope:
    """All dashboard sections at once; failed sections are listed under `failed`."""
    envelope = await compose_dashboard(orders, stock, period, interval)
    return Envelope(data=envelope.to_dict())
