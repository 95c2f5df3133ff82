"""
Inventory Alert State Machine

Each stock-keeping unit carries an AlertRecord (ok/low/out plus the time
each alert last fired). Re-evaluating a unit notifies only when its
classification changes:

    ok  -> low   dispatch low-stock alert
    *   -> out   dispatch out-of-stock alert
    *   -> ok    silent recovery

Per unit, evaluation runs under a KeyedLock and the new record is
claimed with a compare-and-set on the persisted state before anything is
dispatched, so one transition yields at most one notification.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional
import uuid

import structlog
from prometheus_client import Counter

from src.database.models import StockState, RecordStatus, utcnow
from src.database.stores import AlertSubject, StockStore
from src.inventory.availability import Availability, classify, coerce_quantity
from src.inventory.locks import KeyedLock, LocalKeyedLock, LockUnavailable
from src.inventory.recipients import AlertClass, RecipientDirectory, RecipientSet
from src.notifications.channels import AbstractNotifications
from src.notifications.templates import (
    LOW_STOCK_TEMPLATE,
    OUT_OF_STOCK_TEMPLATE,
    low_stock_params,
    out_of_stock_params,
)

logger = structlog.get_logger(__name__)

ALERT_TRANSITIONS = Counter(
    "inventory_alert_transitions_total",
    "Claimed inventory alert state transitions",
    ["state"],
)

ALERT_DISPATCHES = Counter(
    "inventory_alert_dispatch_total",
    "Alert notification dispatch attempts",
    ["template", "outcome"],
)

TARGET_CLASS = {
    StockState.LOW: AlertClass.LOW_STOCK,
    StockState.OUT: AlertClass.OUT_OF_STOCK,
}


@dataclass(frozen=True)
class AlertRecord:
    """Last observed classification of a unit and when each alert last fired."""
    state: StockState = StockState.OK
    low_notified_at: Optional[datetime] = None
    out_notified_at: Optional[datetime] = None
    
    @classmethod
    def of(cls, subject: AlertSubject) -> "AlertRecord":
        return cls(
            state=subject.alert_state,
            low_notified_at=subject.low_stock_notified_at,
            out_notified_at=subject.out_of_stock_notified_at,
        )
    
    def transition_to(self, state: StockState, at: datetime) -> "AlertRecord":
        """Record after moving to `state`; unchanged when already there."""
        if state is self.state:
            return self
        if state is StockState.LOW:
            return replace(self, state=state, low_notified_at=at)
        if state is StockState.OUT:
            return replace(self, state=state, out_notified_at=at)
        return replace(self, state=state)


class Outcome(str, Enum):
    SKIPPED = "skipped"
    UNCHANGED = "unchanged"
    CONFLICT = "conflict"
    TRANSITIONED = "transitioned"


@dataclass(frozen=True)
class Evaluation:
    variant_id: uuid.UUID
    outcome: Outcome
    previous: Optional[StockState] = None
    current: Optional[StockState] = None
    notified: int = 0
    dispatch_failed: bool = False


@dataclass
class AlertRunResult:
    processed: int = 0
    sent: int = 0
    failed_dispatches: int = 0
    evaluations: List[Evaluation] = field(default_factory=list)
    
    def to_dict(self) -> Dict[str, int]:
        return {
            "processed": self.processed,
            "sent": self.sent,
            "failedDispatches": self.failed_dispatches,
        }


def unique_ids(variant_ids: Iterable) -> List[uuid.UUID]:
    """Parse and de-duplicate ids, keeping first-seen order; blanks are dropped."""
    seen: Dict[uuid.UUID, None] = {}
    for raw in variant_ids or []:
        if raw is None or raw == "":
            continue
        value = raw if isinstance(raw, uuid.UUID) else uuid.UUID(str(raw))
        seen.setdefault(value, None)
    return list(seen)


class InventoryAlertService:
    def __init__(
        self,
        stock: StockStore,
        recipients: RecipientDirectory,
        channel: AbstractNotifications,
        locks: Optional[KeyedLock] = None,
        dashboard_url: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.stock = stock
        self.recipients = recipients
        self.channel = channel
        self.locks = locks or LocalKeyedLock()
        self.dashboard_url = dashboard_url
        self.clock = clock
    
    async def process_variants(
        self,
        variant_ids: Iterable,
        last_known_stock: Optional[Dict[str, int]] = None,
    ) -> AlertRunResult:
        """
        Re-evaluate the given units. Recipients are fetched once; when
        nobody is subscribed to either inventory alert, units are left
        untouched.
        """
        ids = unique_ids(variant_ids)
        result = AlertRunResult()
        if not ids:
            return result
        
        recipients = await self.recipients.resolve(AlertClass.LOW_STOCK, AlertClass.OUT_OF_STOCK)
        if recipients.is_empty():
            logger.info("No inventory alert recipients, evaluation skipped", variants=len(ids))
            return result
        
        known = {str(k): v for k, v in (last_known_stock or {}).items()}
        for variant_id in ids:
            evaluation = await self.evaluate(variant_id, recipients, known.get(str(variant_id)))
            result.evaluations.append(evaluation)
            if evaluation.outcome is Outcome.TRANSITIONED:
                result.processed += 1
                result.sent += evaluation.notified
                if evaluation.dispatch_failed:
                    result.failed_dispatches += 1
        
        logger.info("Inventory alerts processed", variants=len(ids), **result.to_dict())
        return result
    
    async def evaluate(
        self,
        variant_id: uuid.UUID,
        recipients: RecipientSet,
        last_known_stock: Optional[int] = None,
    ) -> Evaluation:
        """Evaluate one unit under its lock."""
        try:
            async with self.locks.hold(str(variant_id)):
                return await self._evaluate_locked(variant_id, recipients, last_known_stock)
        except LockUnavailable:
            logger.warning("Alert lock busy, evaluation skipped", variant_id=str(variant_id))
            return Evaluation(variant_id=variant_id, outcome=Outcome.SKIPPED)
    
    async def _evaluate_locked(
        self,
        variant_id: uuid.UUID,
        recipients: RecipientSet,
        last_known_stock: Optional[int],
    ) -> Evaluation:
        subject = await self.stock.load_alert_subject(variant_id)
        if subject is None or subject.status is not RecordStatus.ACTIVE:
            return Evaluation(variant_id=variant_id, outcome=Outcome.SKIPPED)
        
        availability = classify(subject.stock_quantity, subject.reserved_quantity, subject.low_stock_alert)
        record = AlertRecord.of(subject)
        if availability.state is record.state:
            return Evaluation(
                variant_id=variant_id,
                outcome=Outcome.UNCHANGED,
                previous=record.state,
                current=record.state,
            )
        
        updated = record.transition_to(availability.state, self.clock())
        claimed = await self.stock.compare_and_set_alert(
            variant_id,
            expected_state=record.state,
            new_state=updated.state,
            low_stock_notified_at=updated.low_notified_at,
            out_of_stock_notified_at=updated.out_notified_at,
        )
        if not claimed:
            return Evaluation(
                variant_id=variant_id,
                outcome=Outcome.CONFLICT,
                previous=record.state,
                current=availability.state,
            )
        
        ALERT_TRANSITIONS.labels(state=updated.state.value).inc()
        logger.info(
            "Inventory alert state changed",
            variant_id=str(variant_id),
            sku=subject.sku,
            previous=record.state.value,
            current=updated.state.value,
            available=availability.available,
        )
        
        notified, failed = await self._notify(subject, availability, recipients, last_known_stock)
        return Evaluation(
            variant_id=variant_id,
            outcome=Outcome.TRANSITIONED,
            previous=record.state,
            current=updated.state,
            notified=notified,
            dispatch_failed=failed,
        )
    
    async def _notify(
        self,
        subject: AlertSubject,
        availability: Availability,
        recipients: RecipientSet,
        last_known_stock: Optional[int],
    ):
        """Dispatch the alert for a claimed transition. Returns (recipients reached, failed)."""
        alert_class = TARGET_CLASS.get(availability.state)
        if alert_class is None:
            return 0, False
        
        emails = recipients.for_class(alert_class)
        if availability.state is StockState.LOW:
            template = LOW_STOCK_TEMPLATE
            params = low_stock_params(
                subject.display_name,
                subject.sku,
                current_stock=availability.available,
                threshold=availability.threshold,
                dashboard_url=self.dashboard_url,
            )
        else:
            template = OUT_OF_STOCK_TEMPLATE
            last_known = availability.available if last_known_stock is None else coerce_quantity(last_known_stock)
            params = out_of_stock_params(
                subject.display_name,
                subject.sku,
                last_known_stock=last_known,
                dashboard_url=self.dashboard_url,
            )
        
        if not emails:
            ALERT_DISPATCHES.labels(template=template, outcome="no_recipients").inc()
            return 0, False
        
        try:
            outcome = await self.channel.dispatch(emails, template, params)
        except Exception as e:
            # State has already advanced; the alert is not retried
            ALERT_DISPATCHES.labels(template=template, outcome="failed").inc()
            logger.error(
                "Inventory alert dispatch failed",
                variant_id=str(subject.id),
                sku=subject.sku,
                template=template,
                error=str(e),
                error_type=type(e).__name__,
            )
            return 0, True
        
        ALERT_DISPATCHES.labels(template=template, outcome="sent").inc()
        return outcome.recipients, False
