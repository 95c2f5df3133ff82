"""
Alert message templates: subjects and template parameters for each
notification kind. Rendering the email body is the channel's concern.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional
import re

from src.analytics.ranges import get_zone

LOW_STOCK_TEMPLATE = "low_stock_alert"
OUT_OF_STOCK_TEMPLATE = "out_of_stock_alert"
NEW_ORDER_TEMPLATE = "new_order_alert"

_SCHEME = re.compile(r"^https?://", re.IGNORECASE)


def normalize_base_url(raw: Optional[str], production: bool = False) -> Optional[str]:
    """
    Dashboard base URL without a trailing slash. Outside production a
    bare host gets an http:// scheme.
    """
    value = (raw or "").strip()
    if not value:
        return None
    value = value.rstrip("/")
    if _SCHEME.match(value) or production:
        return value
    return f"http://{value}"


def _subject(prefix: str, reference: Optional[str]) -> str:
    return f"{prefix} – {reference}" if reference else prefix


def low_stock_params(
    display_name: str,
    sku: Optional[str],
    current_stock: int,
    threshold: int,
    dashboard_url: Optional[str],
) -> Dict[str, Any]:
    return {
        "subject": _subject("Low Stock Alert", sku),
        "product_name": display_name,
        "sku": sku,
        "current_stock": current_stock,
        "threshold": threshold,
        "dashboard_url": dashboard_url,
    }


def out_of_stock_params(
    display_name: str,
    sku: Optional[str],
    last_known_stock: int,
    dashboard_url: Optional[str],
) -> Dict[str, Any]:
    return {
        "subject": _subject("Out of Stock", sku),
        "product_name": display_name,
        "sku": sku,
        "last_known_stock": last_known_stock,
        "dashboard_url": dashboard_url,
    }


def format_order_date(moment: Optional[datetime], tz: Any = None) -> Optional[str]:
    """en-GB style local timestamp, e.g. 17/10/2026, 14:03:00"""
    if moment is None:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(get_zone(tz)).strftime("%d/%m/%Y, %H:%M:%S")


def new_order_params(
    order_number: str,
    customer_name: str,
    customer_email: Optional[str],
    total: Decimal,
    currency: str,
    order_date: Optional[str],
    items: list,
    dashboard_url: Optional[str],
) -> Dict[str, Any]:
    return {
        "subject": _subject("New Order Alert", order_number),
        "order_id": order_number,
        "customer_name": customer_name,
        "customer_email": customer_email,
        "total": float(total),
        "currency": currency or "GBP",
        "order_date": order_date,
        "items": items,
        "dashboard_url": dashboard_url,
    }
