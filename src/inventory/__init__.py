"""
Inventory Alerting Module
"""
from .availability import Availability, classify, compute_available
from .alerts import AlertRecord, AlertRunResult, InventoryAlertService
from .order_alerts import OrderAlertService
from .recipients import AlertClass, RecipientDirectory

__all__ = [
    "Availability",
    "classify",
    "compute_available",
    "AlertRecord",
    "AlertRunResult",
    "InventoryAlertService",
    "OrderAlertService",
    "AlertClass",
    "RecipientDirectory",
]
