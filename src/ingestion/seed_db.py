"""
Demo Data Seeding

Populates roles, staff users, products with variants, customers and
orders with Faker, then runs one inventory alert pass over every
variant so the embedded alert records match current stock.

Usage:
    python -m src.ingestion.seed_db
"""

import asyncio
import random
from datetime import timedelta
from decimal import Decimal
from typing import List

import structlog
from faker import Faker

from src.config import get_settings
from src.config.logging import configure_logging
from src.database.connection import close_database, get_db, get_session_factory, init_database
from src.database.models import (
    Customer,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    ProductVariant,
    Role,
    User,
    utcnow,
)
from src.database.stores import StockStore
from src.inventory.alerts import InventoryAlertService
from src.inventory.recipients import RecipientDirectory
from src.notifications.channels import LoggingNotifications

logger = structlog.get_logger(__name__)

fake = Faker("en_GB")
Faker.seed(42)
random.seed(42)

PRODUCT_COUNT = 12
CUSTOMER_COUNT = 60
ORDER_COUNT = 400
HISTORY_DAYS = 120

VARIANT_NAMES = ["500ml", "1L", "2L", "Family Pack"]

# Weighted so most demo orders are countable
STATUS_WEIGHTS = {
    OrderStatus.PAID: 70,
    OrderStatus.PENDING: 8,
    OrderStatus.FAILED: 5,
    OrderStatus.CANCELLED: 5,
    OrderStatus.REFUND_PENDING: 4,
    OrderStatus.REFUNDED: 6,
    OrderStatus.REFUND_FAILED: 2,
}


def build_roles_and_users() -> List[Role]:
    admin = Role(name="Admin", permissions=["*"])
    warehouse = Role(name="Warehouse", permissions=["products.*", "orders.read"])
    support = Role(name="Support", permissions=["orders.read", "analytics.read"])
    
    admin.users = [
        User(email="owner@example.com", name="Shop Owner",
             notify_low_stock=True, notify_out_of_stock=True, notify_new_orders=True),
    ]
    warehouse.users = [
        User(email=fake.unique.company_email(), name=fake.name(),
             notify_low_stock=True, notify_out_of_stock=True)
        for _ in range(2)
    ]
    support.users = [
        User(email=fake.unique.company_email(), name=fake.name(), notify_new_orders=True)
    ]
    return [admin, warehouse, support]


def build_catalog() -> List[Product]:
    products = []
    for _ in range(PRODUCT_COUNT):
        product = Product(name=f"{fake.word().title()} {fake.random_element(['Milk', 'Yoghurt', 'Cream', 'Butter'])}")
        for variant_name in random.sample(VARIANT_NAMES, k=random.randint(1, 3)):
            product.variants.append(
                ProductVariant(
                    name=variant_name,
                    sku=f"SKU-{fake.unique.random_number(digits=8, fix_len=True)}",
                    price=Decimal(random.randint(99, 999)) / 100,
                    stock_quantity=random.choice([0, 2, 4, 8, 15, 40, 120]),
                    reserved_quantity=random.choice([0, 0, 0, 1, 3]),
                    low_stock_alert=5,
                )
            )
        products.append(product)
    return products


def build_orders(customers: List[Customer], products: List[Product]) -> List[Order]:
    variants = [(p, v) for p in products for v in p.variants]
    now = utcnow()
    orders = []
    
    for n in range(ORDER_COUNT):
        created_at = now - timedelta(minutes=random.randint(0, HISTORY_DAYS * 24 * 60))
        status = random.choices(list(STATUS_WEIGHTS), weights=list(STATUS_WEIGHTS.values()))[0]
        order = Order(
            order_number=f"ORD-{n + 1:06d}",
            customer=random.choice(customers),
            status=status,
            created_at=created_at,
            paid_at=created_at + timedelta(minutes=2) if status is not OrderStatus.PENDING else None,
            new_order_alert_sent_at=created_at,
        )
        subtotal = Decimal("0")
        for position, (product, variant) in enumerate(random.sample(variants, k=random.randint(1, 3))):
            quantity = random.randint(1, 4)
            line = variant.price * quantity
            subtotal += line
            order.items.append(
                OrderItem(
                    position=position,
                    product=product,
                    variant=variant,
                    name=f"{product.name} – {variant.name}",
                    sku=variant.sku,
                    price=variant.price,
                    quantity=quantity,
                    subtotal=line,
                )
            )
        order.subtotal = subtotal
        order.total = subtotal
        orders.append(order)
    
    return orders


async def seed() -> None:
    roles = build_roles_and_users()
    products = build_catalog()
    customers = [
        Customer(
            first_name=fake.first_name(),
            last_name=fake.last_name(),
            email=fake.unique.email(),
            phone=fake.phone_number(),
        )
        for _ in range(CUSTOMER_COUNT)
    ]
    orders = build_orders(customers, products)
    
    async with get_db() as db:
        db.add_all(roles)
        db.add_all(products)
        db.add_all(customers)
        db.add_all(orders)
    
    logger.info(
        "Demo data inserted",
        roles=len(roles),
        products=len(products),
        variants=sum(len(p.variants) for p in products),
        customers=len(customers),
        orders=len(orders),
    )
    
    sessions = get_session_factory()
    service = InventoryAlertService(
        stock=StockStore(sessions),
        recipients=RecipientDirectory(sessions),
        channel=LoggingNotifications(),
    )
    result = await service.process_variants([v.id for p in products for v in p.variants])
    logger.info("Initial alert pass finished", **result.to_dict())


async def main():
    configure_logging()
    logger.info("Starting database seeding...", database=get_settings().database.async_url.split("@")[-1])
    await init_database(create_schema=True)
    
    try:
        await seed()
        logger.info("Database seeding completed successfully!")
    except Exception as e:
        logger.error("Seeding failed", error=str(e))
        raise
    finally:
        await close_database()


if __name__ == "__main__":
    asyncio.run(main())
