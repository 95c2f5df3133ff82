"""
Test Suite Configuration
"""
import os

os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("ANALYTICS_TIMEZONE", "Europe/London")
os.environ.setdefault("RATE_LIMIT_REQUESTS", "100000")
os.environ.setdefault("ENABLE_METRICS", "true")

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from src.config import Settings
from src.database.connection import create_session_factory
from src.database.models import (
    Base,
    Customer,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    ProductVariant,
    RecordStatus,
    Role,
    StockState,
    User,
)
from src.database.stores import OrderStore, StockStore
from src.errors import NotificationDispatchFailure
from src.notifications.channels import AbstractNotifications, DispatchOutcome


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
async def test_engine(tmp_path):
    """File-backed SQLite so concurrent sessions see each other's commits"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    yield engine
    
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return create_session_factory(test_engine)


@pytest.fixture
def order_store(session_factory) -> OrderStore:
    return OrderStore(session_factory)


@pytest.fixture
def stock_store(session_factory) -> StockStore:
    return StockStore(session_factory)


class RecordingNotifications(AbstractNotifications):
    """Captures dispatches instead of sending them"""
    
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Tuple[List[str], str, Dict[str, Any]]] = []
        self.attempts = 0
    
    async def dispatch(self, recipients, template_kind, params) -> DispatchOutcome:
        self.attempts += 1
        if self.fail:
            raise NotificationDispatchFailure(template_kind, "relay unavailable")
        self.sent.append((list(recipients), template_kind, dict(params)))
        return DispatchOutcome(template_kind=template_kind, recipients=len(recipients))


@pytest.fixture
def channel() -> RecordingNotifications:
    return RecordingNotifications()


@pytest.fixture
def failing_channel() -> RecordingNotifications:
    return RecordingNotifications(fail=True)


class Seeder:
    """Inserts rows directly through the ORM"""
    
    def __init__(self, session_factory):
        self.session_factory = session_factory
        self._orders = 0
    
    async def add(self, *objects):
        async with self.session_factory() as session:
            session.add_all(objects)
            await session.commit()
        return objects
    
    async def user(
        self,
        email: str,
        permissions: Sequence[str] = ("*",),
        low: bool = False,
        out: bool = False,
        new_orders: bool = False,
        status: RecordStatus = RecordStatus.ACTIVE,
        role_status: RecordStatus = RecordStatus.ACTIVE,
    ) -> User:
        role = Role(name=f"role-{email}", permissions=list(permissions), status=role_status)
        user = User(
            email=email,
            status=status,
            role=role,
            notify_low_stock=low,
            notify_out_of_stock=out,
            notify_new_orders=new_orders,
        )
        await self.add(role, user)
        return user
    
    async def product(self, name: str, variants: Sequence[Dict[str, Any]]) -> Tuple[Product, List[ProductVariant]]:
        product = Product(name=name)
        created = []
        for overrides in variants:
            values = {
                "name": "Default",
                "price": Decimal("1.00"),
                "stock_quantity": 100,
                "reserved_quantity": 0,
                "low_stock_alert": 5,
                "alert_state": StockState.OK,
            }
            values.update(overrides)
            variant = ProductVariant(**values)
            product.variants.append(variant)
            created.append(variant)
        await self.add(product)
        return product, created
    
    async def customer(self, first_name: str = "Ada", last_name: str = "Lovelace", email: str = "ada@example.com") -> Customer:
        customer = Customer(first_name=first_name, last_name=last_name, email=email, phone="01234 567890")
        await self.add(customer)
        return customer
    
    async def order(
        self,
        customer: Customer,
        created_at: datetime,
        total: str = "10.00",
        status: OrderStatus = OrderStatus.PAID,
        lines: Sequence[Tuple[Product, ProductVariant, int, str]] = (),
        alert_sent_at: Optional[datetime] = None,
    ) -> Order:
        self._orders += 1
        order = Order(
            order_number=f"ORD-{self._orders:04d}",
            customer_id=customer.id,
            status=status,
            created_at=created_at,
            paid_at=created_at if status is OrderStatus.PAID else None,
            subtotal=Decimal(total),
            total=Decimal(total),
            new_order_alert_sent_at=alert_sent_at,
        )
        for position, (product, variant, quantity, subtotal) in enumerate(lines):
            order.items.append(
                OrderItem(
                    position=position,
                    product_id=product.id,
                    variant_id=variant.id,
                    name=f"{product.name} – {variant.name}",
                    sku=variant.sku,
                    price=Decimal(subtotal) / quantity,
                    quantity=quantity,
                    subtotal=Decimal(subtotal),
                )
            )
        await self.add(order)
        return order


@pytest.fixture
def seeder(session_factory) -> Seeder:
    return Seeder(session_factory)
