"""
Request parameter parsing shared by the HTTP layer and direct callers.

Numeric limits outside their bounds are clamped; values that are not
numbers at all are rejected.
"""

from typing import Any, Optional, Union

from src.analytics.buckets import Granularity
from src.errors import InvalidParameter

TOP_PRODUCTS_LIMITS = (1, 25)
RECENT_ORDERS_LIMITS = (1, 25)
STOCK_LISTING_LIMITS = (1, 200)
OVERVIEW_DAY_LIMITS = (7, 90)


def parse_int(value: Any, *, name: str, default: int, bounds: tuple) -> int:
    """Parse an integer parameter and clamp it into `bounds` (inclusive)."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise InvalidParameter(f"{name} must be an integer", details={name: value})
    if isinstance(value, int):
        number = value
    else:
        try:
            number = int(str(value).strip())
        except ValueError as e:
            raise InvalidParameter(f"{name} must be an integer", details={name: value}) from e
    
    minimum, maximum = bounds
    return max(minimum, min(number, maximum))


def parse_granularity(value: Optional[Union[str, Granularity]], default: str = "week") -> Granularity:
    if isinstance(value, Granularity):
        return value
    raw = value or default
    try:
        return Granularity(raw)
    except ValueError as e:
        raise InvalidParameter(
            f"Unknown interval {raw!r}",
            details={"interval": raw, "allowed": [g.value for g in Granularity]},
        ) from e
