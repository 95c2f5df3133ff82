"""
Data Stores

Read-side adapters over the operational tables, plus the alert-state
read/compare-and-set used by the inventory alert pipeline.

Every method opens its own session from the factory, so concurrent
callers never share an AsyncSession.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
import uuid

import structlog
from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from src.database.models import (
    Order,
    OrderItem,
    OrderStatus,
    Product,
    ProductVariant,
    RecordStatus,
    StockState,
)

logger = structlog.get_logger(__name__)


def _created_at_conditions(start: Optional[datetime], end: Optional[datetime]) -> list:
    conditions = []
    if start is not None:
        conditions.append(Order.created_at >= start)
    if end is not None:
        conditions.append(Order.created_at <= end)
    return conditions


# =============================================================================
# ROW TYPES
# =============================================================================

@dataclass(frozen=True)
class OrderRow:
    id: uuid.UUID
    status: OrderStatus
    created_at: datetime
    total: Decimal


@dataclass(frozen=True)
class SoldLineRow:
    """Paid line item joined to its product and variant names"""
    product_id: uuid.UUID
    product_name: str
    variant_id: uuid.UUID
    variant_name: str
    sku: str
    quantity: int
    subtotal: Decimal


@dataclass(frozen=True)
class VariantRow:
    """Stock-keeping unit with its product joined (product may be missing)"""
    id: uuid.UUID
    sku: str
    name: str
    stock_quantity: Optional[int]
    reserved_quantity: Optional[int]
    low_stock_alert: Optional[int]
    product_id: Optional[uuid.UUID]
    product_name: Optional[str]
    product_status: Optional[str]


@dataclass(frozen=True)
class AlertSubject:
    """Everything the alert state machine reads for one unit"""
    id: uuid.UUID
    sku: str
    name: str
    product_name: Optional[str]
    status: RecordStatus
    stock_quantity: Optional[int]
    reserved_quantity: Optional[int]
    low_stock_alert: Optional[int]
    alert_state: StockState
    low_stock_notified_at: Optional[datetime]
    out_of_stock_notified_at: Optional[datetime]
    
    @property
    def display_name(self) -> str:
        if self.product_name:
            return f"{self.product_name} – {self.name}"
        return self.name


# =============================================================================
# ORDER STORE
# =============================================================================

class OrderStore:
    """Read-only queries over orders, by status set and creation-time range."""
    
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
    
    async def fetch_orders(
        self,
        statuses: Iterable[OrderStatus],
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> List[OrderRow]:
        query = (
            select(Order.id, Order.status, Order.created_at, Order.total)
            .where(and_(Order.status.in_(list(statuses)), *_created_at_conditions(start, end)))
            .order_by(Order.created_at, Order.id)
        )
        async with self.session_factory() as session:
            result = await session.execute(query)
            return [
                OrderRow(id=row.id, status=row.status, created_at=row.created_at, total=row.total or Decimal("0"))
                for row in result.all()
            ]
    
    async def count_by_status(
        self,
        statuses: Iterable[OrderStatus],
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> Dict[OrderStatus, int]:
        query = (
            select(Order.status, func.count(Order.id).label("count"))
            .where(and_(Order.status.in_(list(statuses)), *_created_at_conditions(start, end)))
            .group_by(Order.status)
        )
        async with self.session_factory() as session:
            result = await session.execute(query)
            return {OrderStatus(row.status): int(row.count) for row in result.all()}
    
    async def sum_total(
        self,
        status: OrderStatus,
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> Decimal:
        query = select(func.coalesce(func.sum(Order.total), 0)).where(
            and_(Order.status == status, *_created_at_conditions(start, end))
        )
        async with self.session_factory() as session:
            result = await session.execute(query)
            return Decimal(str(result.scalar() or 0))
    
    async def fetch_sold_lines(
        self,
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> List[SoldLineRow]:
        """Line items of paid orders; lines whose product or variant no longer exists are dropped."""
        query = (
            select(
                OrderItem.product_id,
                Product.name.label("product_name"),
                OrderItem.variant_id,
                ProductVariant.name.label("variant_name"),
                ProductVariant.sku,
                OrderItem.quantity,
                OrderItem.subtotal,
            )
            .join(Order, Order.id == OrderItem.order_id)
            .join(Product, Product.id == OrderItem.product_id)
            .join(ProductVariant, ProductVariant.id == OrderItem.variant_id)
            .where(and_(Order.status == OrderStatus.PAID, *_created_at_conditions(start, end)))
        )
        async with self.session_factory() as session:
            result = await session.execute(query)
            return [
                SoldLineRow(
                    product_id=row.product_id,
                    product_name=row.product_name,
                    variant_id=row.variant_id,
                    variant_name=row.variant_name,
                    sku=row.sku,
                    quantity=int(row.quantity or 0),
                    subtotal=row.subtotal or Decimal("0"),
                )
                for row in result.all()
            ]
    
    async def fetch_recent(
        self,
        start: Optional[datetime],
        end: Optional[datetime],
        limit: int,
    ) -> List[Order]:
        """Newest orders of any status, with customer and items loaded."""
        query = select(Order).options(selectinload(Order.customer), selectinload(Order.items))
        conditions = _created_at_conditions(start, end)
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit)
        async with self.session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())
    
    async def get_order(self, order_id: uuid.UUID) -> Optional[Order]:
        query = (
            select(Order)
            .options(selectinload(Order.customer), selectinload(Order.items))
            .where(Order.id == order_id)
        )
        async with self.session_factory() as session:
            result = await session.execute(query)
            return result.scalar_one_or_none()
    
    async def claim_new_order_alert(self, order_id: uuid.UUID, at: datetime) -> bool:
        """Set the new-order marker if unset. Returns False if another caller already claimed it."""
        async with self.session_factory() as session:
            result = await session.execute(
                update(Order)
                .where(and_(Order.id == order_id, Order.new_order_alert_sent_at.is_(None)))
                .values(new_order_alert_sent_at=at)
            )
            await session.commit()
            return result.rowcount == 1


# =============================================================================
# STOCK STORE
# =============================================================================

class StockStore:
    """Queries over stock-keeping units and their embedded alert state."""
    
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
    
    async def fetch_active_variants(self) -> List[VariantRow]:
        query = (
            select(
                ProductVariant.id,
                ProductVariant.sku,
                ProductVariant.name,
                ProductVariant.stock_quantity,
                ProductVariant.reserved_quantity,
                ProductVariant.low_stock_alert,
                Product.id.label("product_id"),
                Product.name.label("product_name"),
                Product.status.label("product_status"),
            )
            .outerjoin(Product, Product.id == ProductVariant.product_id)
            .where(ProductVariant.status == RecordStatus.ACTIVE)
        )
        async with self.session_factory() as session:
            result = await session.execute(query)
            return [
                VariantRow(
                    id=row.id,
                    sku=row.sku,
                    name=row.name,
                    stock_quantity=row.stock_quantity,
                    reserved_quantity=row.reserved_quantity,
                    low_stock_alert=row.low_stock_alert,
                    product_id=row.product_id,
                    product_name=row.product_name,
                    product_status=row.product_status.value if row.product_status else None,
                )
                for row in result.all()
            ]
    
    async def load_alert_subject(self, variant_id: uuid.UUID) -> Optional[AlertSubject]:
        query = (
            select(ProductVariant, Product.name.label("product_name"))
            .outerjoin(Product, Product.id == ProductVariant.product_id)
            .where(ProductVariant.id == variant_id)
        )
        async with self.session_factory() as session:
            row = (await session.execute(query)).one_or_none()
        if row is None:
            return None
        variant: ProductVariant = row[0]
        return AlertSubject(
            id=variant.id,
            sku=variant.sku,
            name=variant.name,
            product_name=row.product_name,
            status=variant.status,
            stock_quantity=variant.stock_quantity,
            reserved_quantity=variant.reserved_quantity,
            low_stock_alert=variant.low_stock_alert,
            alert_state=variant.alert_state or StockState.OK,
            low_stock_notified_at=variant.low_stock_notified_at,
            out_of_stock_notified_at=variant.out_of_stock_notified_at,
        )
    
    async def compare_and_set_alert(
        self,
        variant_id: uuid.UUID,
        expected_state: StockState,
        new_state: StockState,
        low_stock_notified_at: Optional[datetime],
        out_of_stock_notified_at: Optional[datetime],
    ) -> bool:
        """
        Write the alert record only if the persisted state still equals
        `expected_state`. Returns whether this caller won the write.
        """
        async with self.session_factory() as session:
            result = await session.execute(
                update(ProductVariant)
                .where(
                    and_(
                        ProductVariant.id == variant_id,
                        ProductVariant.alert_state == expected_state,
                    )
                )
                .values(
                    alert_state=new_state,
                    low_stock_notified_at=low_stock_notified_at,
                    out_of_stock_notified_at=out_of_stock_notified_at,
                )
            )
            await session.commit()
            won = result.rowcount == 1
        if not won:
            logger.info(
                "Alert state changed concurrently, transition skipped",
                variant_id=str(variant_id),
                expected_state=expected_state.value,
            )
        return won
