"""
Availability Classifier

The one place available stock is computed and classified. Stock
listings, dashboard counts and the alert pipeline all call `classify`,
so the arithmetic and coercion cannot drift between them.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from src.database.models import StockState


def coerce_quantity(value: Any) -> int:
    """Stored quantity as an int; missing or malformed values count as 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(Decimal(str(value)))
    except (InvalidOperation, ValueError, TypeError, OverflowError):
        return 0


def compute_available(stock_quantity: Any, reserved_quantity: Any) -> int:
    return coerce_quantity(stock_quantity) - coerce_quantity(reserved_quantity)


@dataclass(frozen=True)
class Availability:
    available: int
    threshold: int
    state: StockState


def classify(stock_quantity: Any, reserved_quantity: Any, low_stock_threshold: Any) -> Availability:
    """
    Classify a unit as out (available <= 0), low (0 < available <= threshold,
    threshold > 0) or ok.
    """
    available = compute_available(stock_quantity, reserved_quantity)
    threshold = coerce_quantity(low_stock_threshold)
    
    if available <= 0:
        state = StockState.OUT
    elif threshold > 0 and available <= threshold:
        state = StockState.LOW
    else:
        state = StockState.OK
    return Availability(available=available, threshold=threshold, state=state)
