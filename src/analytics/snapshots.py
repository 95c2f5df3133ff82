"""
Snapshot Aggregators

Independent read-only queries behind the dashboard cards. Order-based
snapshots are range-scoped; stock listings always reflect current state.
"""

import asyncio
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import structlog

from src.analytics.params import (
    RECENT_ORDERS_LIMITS,
    STOCK_LISTING_LIMITS,
    TOP_PRODUCTS_LIMITS,
    parse_int,
)
from src.analytics.ranges import DateRange
from src.database.models import (
    COUNTABLE_ORDER_STATUSES,
    ORDER_STATUS_LABELS,
    Order,
    OrderStatus,
    StockState,
)
from src.database.stores import OrderStore, SoldLineRow, StockStore, VariantRow
from src.inventory.availability import Availability, classify, coerce_quantity

logger = structlog.get_logger(__name__)

# Machine key -> summary field name
SUMMARY_STATUS_FIELDS = {
    OrderStatus.PENDING: "pendingOrders",
    OrderStatus.PAID: "paidOrders",
    OrderStatus.FAILED: "failedOrders",
    OrderStatus.CANCELLED: "cancelledOrders",
    OrderStatus.REFUND_PENDING: "refundPendingOrders",
    OrderStatus.REFUNDED: "refundedOrders",
    OrderStatus.REFUND_FAILED: "refundFailedOrders",
}


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc).isoformat(timespec="milliseconds")


def _money(value: Decimal) -> float:
    return float(value)


# =============================================================================
# STATUS COUNTS
# =============================================================================

def _status_tables(counts: Dict[OrderStatus, int]) -> Tuple[Dict[str, int], Dict[str, int]]:
    by_status = {status.value: counts.get(status, 0) for status in OrderStatus}
    labelled = {ORDER_STATUS_LABELS[status]: counts.get(status, 0) for status in OrderStatus}
    return by_status, labelled


async def order_status_counts(orders: OrderStore, date_range: DateRange) -> Dict[str, Any]:
    """Tally of countable orders under machine keys and human labels."""
    start, end = date_range.as_utc_naive()
    counts = await orders.count_by_status(COUNTABLE_ORDER_STATUSES, start, end)
    by_status, labelled = _status_tables(counts)
    return {"counts": labelled, "byStatus": by_status}


# =============================================================================
# STOCK LISTINGS
# =============================================================================

def classify_units(rows: List[VariantRow]) -> List[Tuple[VariantRow, Availability]]:
    return [
        (row, classify(row.stock_quantity, row.reserved_quantity, row.low_stock_alert))
        for row in rows
    ]


def _stock_item(row: VariantRow, availability: Availability) -> Dict[str, Any]:
    product = None
    if row.product_id is not None:
        product = {
            "id": str(row.product_id),
            "name": row.product_name,
            "status": row.product_status,
        }
    return {
        "id": str(row.id),
        "sku": row.sku,
        "name": row.name,
        "stockQuantity": coerce_quantity(row.stock_quantity),
        "reservedQuantity": coerce_quantity(row.reserved_quantity),
        "lowStockAlert": availability.threshold,
        "available": availability.available,
        "state": availability.state.value,
        "product": product,
    }


def select_stock(
    classified: List[Tuple[VariantRow, Availability]],
    state: StockState,
    limit: int,
) -> List[Dict[str, Any]]:
    """Units in `state`, lowest availability first (ties by sku), truncated to `limit`."""
    matching = [pair for pair in classified if pair[1].state is state]
    matching.sort(key=lambda pair: (pair[1].available, pair[0].sku, str(pair[0].id)))
    return [_stock_item(row, availability) for row, availability in matching[:limit]]


async def stock_listing(stock: StockStore, state: StockState, limit: Any = None) -> Dict[str, Any]:
    """Low or out-of-stock listing of active units."""
    lim = parse_int(limit, name="limit", default=50, bounds=STOCK_LISTING_LIMITS)
    classified = classify_units(await stock.fetch_active_variants())
    return {"items": select_stock(classified, state, lim)}


async def low_stock(stock: StockStore, limit: Any = None) -> Dict[str, Any]:
    return await stock_listing(stock, StockState.LOW, limit)


async def out_of_stock(stock: StockStore, limit: Any = None) -> Dict[str, Any]:
    return await stock_listing(stock, StockState.OUT, limit)


# =============================================================================
# SUMMARY
# =============================================================================

async def summary(orders: OrderStore, stock: StockStore, date_range: DateRange) -> Dict[str, Any]:
    """Order volume, paid revenue, status tally, and low/out stock counts."""
    start, end = date_range.as_utc_naive()
    
    counts, revenue, variants = await asyncio.gather(
        orders.count_by_status(COUNTABLE_ORDER_STATUSES, start, end),
        orders.sum_total(OrderStatus.PAID, start, end),
        stock.fetch_active_variants(),
    )
    
    states = [availability.state for _, availability in classify_units(variants)]
    _, labelled = _status_tables(counts)
    
    data: Dict[str, Any] = {
        "totalOrders": sum(counts.values()),
        "revenue": _money(revenue),
    }
    for status, field_name in SUMMARY_STATUS_FIELDS.items():
        data[field_name] = counts.get(status, 0)
    data["lowStockItems"] = states.count(StockState.LOW)
    data["outOfStockItems"] = states.count(StockState.OUT)
    data["orderStatus"] = labelled
    return data


# =============================================================================
# TOP PRODUCTS
# =============================================================================

def rank_products(lines: List[SoldLineRow], limit: int) -> List[Dict[str, Any]]:
    """
    Group sold lines by (product, variant), then by product with a nested
    variant list. Products and their variants are sorted by revenue
    descending; only the first `limit` products are kept.
    """
    per_variant: Dict[Tuple[Any, Any], Dict[str, Any]] = {}
    for line in lines:
        key = (line.product_id, line.variant_id)
        entry = per_variant.get(key)
        if entry is None:
            entry = per_variant[key] = {
                "line": line,
                "revenue": Decimal("0"),
                "quantity": 0,
            }
        entry["revenue"] += Decimal(line.subtotal)
        entry["quantity"] += line.quantity
    
    per_product: Dict[Any, List[Dict[str, Any]]] = defaultdict(list)
    for (product_id, _), entry in per_variant.items():
        per_product[product_id].append(entry)
    
    products = []
    for product_id, entries in per_product.items():
        entries.sort(key=lambda e: (-e["revenue"], e["line"].sku))
        products.append({
            "productId": str(product_id),
            "productName": entries[0]["line"].product_name,
            "totalRevenue": sum((e["revenue"] for e in entries), Decimal("0")),
            "totalQuantity": sum(e["quantity"] for e in entries),
            "variants": [
                {
                    "variantId": str(e["line"].variant_id),
                    "name": e["line"].variant_name,
                    "sku": e["line"].sku,
                    "revenue": _money(e["revenue"]),
                    "quantity": e["quantity"],
                }
                for e in entries
            ],
        })
    
    products.sort(key=lambda p: (-p["totalRevenue"], p["productName"] or "", p["productId"]))
    for product in products:
        product["totalRevenue"] = _money(product["totalRevenue"])
    return products[:limit]


async def top_products(orders: OrderStore, date_range: DateRange, limit: Any = None) -> Dict[str, Any]:
    lim = parse_int(limit, name="limit", default=5, bounds=TOP_PRODUCTS_LIMITS)
    start, end = date_range.as_utc_naive()
    lines = await orders.fetch_sold_lines(start, end)
    return {"products": rank_products(lines, lim)}


# =============================================================================
# RECENT ORDERS
# =============================================================================

def _recent_order(order: Order) -> Dict[str, Any]:
    customer = None
    if order.customer is not None:
        customer = {
            "id": str(order.customer.id),
            "firstName": order.customer.first_name,
            "lastName": order.customer.last_name,
            "email": order.customer.email,
            "phone": order.customer.phone,
        }
    return {
        "id": str(order.id),
        "orderNumber": order.order_number,
        "status": order.status.value,
        "total": _money(order.total or Decimal("0")),
        "currency": order.currency,
        "itemCount": sum(item.quantity for item in order.items),
        "createdAt": _iso(order.created_at),
        "paidAt": _iso(order.paid_at),
        "customer": customer,
    }


async def recent_orders(orders: OrderStore, date_range: DateRange, limit: Any = None) -> Dict[str, Any]:
    lim = parse_int(limit, name="limit", default=5, bounds=RECENT_ORDERS_LIMITS)
    start, end = date_range.as_utc_naive()
    rows = await orders.fetch_recent(start, end, lim)
    return {"orders": [_recent_order(order) for order in rows]}
