"""
New-order alert: one notification per order to staff subscribed to new
orders. The order's `new_order_alert_sent_at` marker is claimed before
dispatch, so repeated or concurrent calls notify at most once.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
import uuid

import structlog

from src.database.models import Order, utcnow
from src.database.stores import OrderStore
from src.inventory.alerts import ALERT_DISPATCHES
from src.inventory.recipients import AlertClass, RecipientDirectory
from src.notifications.channels import AbstractNotifications
from src.notifications.templates import NEW_ORDER_TEMPLATE, format_order_date, new_order_params

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class NewOrderAlertResult:
    sent: int = 0
    skipped: Optional[str] = None
    dispatch_failed: bool = False


def _customer_name(order: Order) -> str:
    if order.customer is None:
        return ""
    return f"{order.customer.first_name or ''} {order.customer.last_name or ''}".strip()


class OrderAlertService:
    def __init__(
        self,
        orders: OrderStore,
        recipients: RecipientDirectory,
        channel: AbstractNotifications,
        dashboard_url: Optional[str] = None,
        timezone: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.orders = orders
        self.recipients = recipients
        self.channel = channel
        self.dashboard_url = dashboard_url
        self.timezone = timezone
        self.clock = clock
    
    async def notify_new_order(self, order_id: uuid.UUID) -> NewOrderAlertResult:
        order = await self.orders.get_order(order_id)
        if order is None:
            logger.warning("New-order alert for unknown order", order_id=str(order_id))
            return NewOrderAlertResult(skipped="not_found")
        if order.new_order_alert_sent_at is not None:
            return NewOrderAlertResult(skipped="already_sent")
        
        recipients = await self.recipients.resolve(AlertClass.NEW_ORDER)
        emails = recipients.for_class(AlertClass.NEW_ORDER)
        if not emails:
            return NewOrderAlertResult(skipped="no_recipients")
        
        if not await self.orders.claim_new_order_alert(order.id, self.clock()):
            return NewOrderAlertResult(skipped="already_sent")
        
        params = new_order_params(
            order_number=order.order_number,
            customer_name=_customer_name(order),
            customer_email=order.customer.email if order.customer else None,
            total=order.total,
            currency=order.currency,
            order_date=format_order_date(order.created_at, self.timezone),
            items=[
                {"name": item.name, "quantity": item.quantity, "subtotal": float(item.subtotal)}
                for item in order.items
            ],
            dashboard_url=self.dashboard_url,
        )
        
        try:
            outcome = await self.channel.dispatch(emails, NEW_ORDER_TEMPLATE, params)
        except Exception as e:
            ALERT_DISPATCHES.labels(template=NEW_ORDER_TEMPLATE, outcome="failed").inc()
            logger.error(
                "New-order alert dispatch failed",
                order_id=str(order.id),
                order_number=order.order_number,
                error=str(e),
                error_type=type(e).__name__,
            )
            return NewOrderAlertResult(dispatch_failed=True)
        
        ALERT_DISPATCHES.labels(template=NEW_ORDER_TEMPLATE, outcome="sent").inc()
        logger.info("New-order alert sent", order_number=order.order_number, recipients=outcome.recipients)
        return NewOrderAlertResult(sent=outcome.recipients)
