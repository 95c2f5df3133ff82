"""
Database Models

Operational schema read by the metrics and alerting engine:

Catalog:
- Product: catalog entry grouping its variants
- ProductVariant: stock-keeping unit with stock, reservations and alert state

Sales:
- Customer: buyer identity joined into recent orders
- Order / OrderItem: order header and immutable line-item snapshots

Staff directory:
- Role: named permission set
- User: staff member with notification preferences

All timestamps are stored as naive UTC.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List
import uuid

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Current time as naive UTC, the storage convention for every column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


def _enum_column(enum_cls: type) -> SQLEnum:
    # Persist enum values ("refund_pending"), not member names
    return SQLEnum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=20,
        validate_strings=True,
    )


# =============================================================================
# ENUMERATIONS
# =============================================================================

class OrderStatus(str, Enum):
    """Order status enumeration"""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUND_PENDING = "refund_pending"
    REFUNDED = "refunded"
    REFUND_FAILED = "refund_failed"


# Statuses included in volume and status metrics
COUNTABLE_ORDER_STATUSES = (
    OrderStatus.PAID,
    OrderStatus.REFUND_PENDING,
    OrderStatus.REFUNDED,
)

# Human labels exposed next to machine keys
ORDER_STATUS_LABELS = {
    OrderStatus.PENDING: "Pending",
    OrderStatus.PAID: "Paid",
    OrderStatus.FAILED: "Failed",
    OrderStatus.CANCELLED: "Cancelled",
    OrderStatus.REFUND_PENDING: "Refund Pending",
    OrderStatus.REFUNDED: "Refunded",
    OrderStatus.REFUND_FAILED: "Refund Failed",
}


class RecordStatus(str, Enum):
    """Lifecycle status shared by products, variants, roles and users"""
    ACTIVE = "active"
    INACTIVE = "inactive"


class StockState(str, Enum):
    """Availability classification of a stock-keeping unit"""
    OK = "ok"
    LOW = "low"
    OUT = "out"


# =============================================================================
# STAFF DIRECTORY
# =============================================================================

class Role(Base):
    """
    Role Table
    
    Named permission set. Permissions are strings such as "products.read",
    "orders.*" or the global wildcard "*".
    """
    __tablename__ = "roles"
    
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    permissions: Mapped[List[str]] = mapped_column(JSON, default=list)
    status: Mapped[RecordStatus] = mapped_column(_enum_column(RecordStatus), default=RecordStatus.ACTIVE)
    
    users: Mapped[List["User"]] = relationship(back_populates="role")


class User(Base):
    """
    Staff User Table
    
    Only the fields the recipient directory needs: contact address,
    status, role, and per-alert notification preferences.
    """
    __tablename__ = "users"
    
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(254), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(200))
    status: Mapped[RecordStatus] = mapped_column(_enum_column(RecordStatus), default=RecordStatus.ACTIVE)
    role_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("roles.id"))
    
    # Notification preferences
    notify_low_stock: Mapped[bool] = mapped_column(Boolean, default=False)
    notify_out_of_stock: Mapped[bool] = mapped_column(Boolean, default=False)
    notify_new_orders: Mapped[bool] = mapped_column(Boolean, default=False)
    
    role: Mapped[Optional["Role"]] = relationship(back_populates="users")
    
    __table_args__ = (
        Index("ix_users_role_status", "role_id", "status"),
    )


# =============================================================================
# CATALOG
# =============================================================================

class Product(Base):
    """Product Table"""
    __tablename__ = "products"
    
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[RecordStatus] = mapped_column(_enum_column(RecordStatus), default=RecordStatus.ACTIVE)
    
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
    
    variants: Mapped[List["ProductVariant"]] = relationship(back_populates="product")


class ProductVariant(Base):
    """
    Product Variant Table (stock-keeping unit)
    
    Available stock is never stored: it is always derived from
    stock_quantity and reserved_quantity by src.inventory.availability.
    
    The alert_* columns form the embedded AlertRecord. They are only
    written by the alert state machine, through a compare-and-set on
    alert_state.
    """
    __tablename__ = "product_variants"
    
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("products.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    sku: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    
    # Inventory
    stock_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reserved_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    low_stock_alert: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    status: Mapped[RecordStatus] = mapped_column(_enum_column(RecordStatus), default=RecordStatus.ACTIVE)
    
    # Embedded alert record
    alert_state: Mapped[StockState] = mapped_column(
        _enum_column(StockState), nullable=False, default=StockState.OK
    )
    low_stock_notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    out_of_stock_notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
    
    product: Mapped["Product"] = relationship(back_populates="variants")
    
    __table_args__ = (
        Index("ix_product_variants_product", "product_id"),
        Index("ix_product_variants_status", "status"),
    )


# =============================================================================
# SALES
# =============================================================================

class Customer(Base):
    """Customer Table (guest or registered buyer)"""
    __tablename__ = "customers"
    
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    email: Mapped[Optional[str]] = mapped_column(String(254))
    phone: Mapped[Optional[str]] = mapped_column(String(40))
    
    orders: Mapped[List["Order"]] = relationship(back_populates="customer")


class Order(Base):
    """
    Order Table
    
    Orders are immutable once paid, apart from status transitions made by
    the fulfilment and refund paths.
    """
    __tablename__ = "orders"
    
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    customer_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("customers.id"), nullable=False)
    
    status: Mapped[OrderStatus] = mapped_column(_enum_column(OrderStatus), default=OrderStatus.PENDING)
    currency: Mapped[str] = mapped_column(String(3), default="GBP")
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    new_order_alert_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    
    customer: Mapped["Customer"] = relationship(back_populates="orders")
    items: Mapped[List["OrderItem"]] = relationship(
        back_populates="order", order_by="OrderItem.position"
    )
    
    __table_args__ = (
        Index("ix_orders_status_created", "status", "created_at"),
        Index("ix_orders_created", "created_at"),
    )


class OrderItem(Base):
    """
    Order Line Item
    
    Snapshot of the purchased variant at checkout time; never recomputed.
    """
    __tablename__ = "order_items"
    
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("orders.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("products.id"), nullable=False)
    variant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("product_variants.id"), nullable=False)
    
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    sku: Mapped[str] = mapped_column(String(64), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    
    order: Mapped["Order"] = relationship(back_populates="items")
    product: Mapped["Product"] = relationship()
    variant: Mapped["ProductVariant"] = relationship()
    
    __table_args__ = (
        Index("ix_order_items_order", "order_id"),
    )
