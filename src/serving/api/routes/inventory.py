"""
Inventory Alert Endpoints

Called by whatever changed stock (order placement, cancellation,
restock, manual adjustment). Evaluation runs after the response is sent.
"""

from typing import Dict, List, Optional
import uuid

from fastapi import APIRouter, BackgroundTasks, Depends, status
from pydantic import BaseModel, ConfigDict, Field
import structlog

from src.inventory.alerts import InventoryAlertService
from src.inventory.order_alerts import OrderAlertService
from src.serving.api.deps import (
    get_inventory_alert_service,
    get_order_alert_service,
    require_permission,
)
from src.serving.api.routes.analytics import Envelope

router = APIRouter(dependencies=[Depends(require_permission("products.write"))])
logger = structlog.get_logger(__name__)


class EvaluateAlertsRequest(BaseModel):
    """Units whose stock or reservation just changed"""
    model_config = ConfigDict(populate_by_name=True)
    
    variant_ids: List[uuid.UUID] = Field(alias="variantIds", min_length=1, max_length=500)
    last_known_stock: Optional[Dict[str, int]] = Field(
        default=None,
        alias="lastKnownStock",
        description="Available stock per variant id before the change",
    )


async def run_inventory_alerts(
    service: InventoryAlertService,
    variant_ids: List[uuid.UUID],
    last_known_stock: Optional[Dict[str, int]],
) -> None:
    try:
        await service.process_variants(variant_ids, last_known_stock)
    except Exception as e:
        logger.exception("Inventory alert run failed", variants=len(variant_ids), error=str(e))


async def run_new_order_alert(service: OrderAlertService, order_id: uuid.UUID) -> None:
    try:
        await service.notify_new_order(order_id)
    except Exception as e:
        logger.exception("New-order alert failed", order_id=str(order_id), error=str(e))


@router.post("/alerts/evaluate", response_model=Envelope, status_code=status.HTTP_202_ACCEPTED)
async def evaluate_alerts(
    body: EvaluateAlertsRequest,
    background_tasks: BackgroundTasks,
    service: InventoryAlertService = Depends(get_inventory_alert_service),
) -> Envelope:
    variant_ids = list(dict.fromkeys(body.variant_ids))
    background_tasks.add_task(run_inventory_alerts, service, variant_ids, body.last_known_stock)
    return Envelope(data={"accepted": len(variant_ids)})


@router.post(
    "/orders/{order_id}/new-order-alert",
    response_model=Envelope,
    status_code=status.HTTP_202_ACCEPTED,
)
async def new_order_alert(
    order_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    service: OrderAlertService = Depends(get_order_alert_service),
) -> Envelope:
    background_tasks.add_task(run_new_order_alert, service, order_id)
    return Envelope(data={"orderId": str(order_id), "accepted": True})
