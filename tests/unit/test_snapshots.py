"""
Unit Tests - Snapshot Aggregators (SQLite-backed)
"""
from datetime import datetime

import pytest

from src.analytics import snapshots
from src.analytics.ranges import DateRange, resolve_range
from src.database.models import OrderStatus, RecordStatus
from src.errors import InvalidParameter

ALL = DateRange(None, None, "all")


@pytest.fixture
async def catalog(seeder):
    _, (low, out) = await seeder.product("Whole Milk", [
        {"name": "1L", "sku": "MILK-1L", "stock_quantity": 10, "reserved_quantity": 8},
        {"name": "2L", "sku": "MILK-2L", "stock_quantity": 5, "reserved_quantity": 5},
    ])
    _, (ok, retired) = await seeder.product("Butter", [
        {"name": "250g", "sku": "BUT-250", "stock_quantity": 20},
        {"name": "500g", "sku": "BUT-500", "stock_quantity": 0, "status": RecordStatus.INACTIVE},
    ])
    _, (lower,) = await seeder.product("Cream", [
        {"name": "300ml", "sku": "CRM-300", "stock_quantity": 1},
    ])
    return {"low": low, "out": out, "ok": ok, "retired": retired, "lower": lower}


class TestStatusAndSummary:
    
    async def test_summary(self, seeder, order_store, stock_store, catalog):
        customer = await seeder.customer()
        await seeder.order(customer, datetime(2024, 3, 1, 12), "10.00", OrderStatus.PAID)
        await seeder.order(customer, datetime(2024, 3, 2, 12), "5.00", OrderStatus.REFUNDED)
        await seeder.order(customer, datetime(2024, 3, 3, 12), "7.00", OrderStatus.PENDING)
        await seeder.order(customer, datetime(2024, 3, 4, 12), "9.00", OrderStatus.FAILED)
        
        data = await snapshots.summary(order_store, stock_store, ALL)
        
        assert data["totalOrders"] == 2
        assert data["revenue"] == 10.0
        assert data["paidOrders"] == 1
        assert data["refundedOrders"] == 1
        assert data["pendingOrders"] == 0
        assert data["lowStockItems"] == 2
        assert data["outOfStockItems"] == 1
        assert data["orderStatus"]["Paid"] == 1
        assert data["orderStatus"]["Refund Failed"] == 0
    
    async def test_status_counts_under_both_keys(self, seeder, order_store):
        customer = await seeder.customer()
        await seeder.order(customer, datetime(2024, 3, 1, 12), status=OrderStatus.PAID)
        await seeder.order(customer, datetime(2024, 3, 1, 13), status=OrderStatus.REFUND_PENDING)
        await seeder.order(customer, datetime(2024, 3, 1, 14), status=OrderStatus.CANCELLED)
        
        data = await snapshots.order_status_counts(order_store, ALL)
        
        assert data["byStatus"]["paid"] == 1
        assert data["byStatus"]["refund_pending"] == 1
        assert data["byStatus"]["cancelled"] == 0
        assert data["counts"]["Refund Pending"] == 1
        assert set(data["counts"]) == {
            "Pending", "Paid", "Failed", "Cancelled", "Refund Pending", "Refunded", "Refund Failed",
        }
    
    async def test_range_filters_orders(self, seeder, order_store, stock_store):
        customer = await seeder.customer()
        await seeder.order(customer, datetime(2024, 2, 10, 12), "4.00")
        await seeder.order(customer, datetime(2024, 3, 10, 12), "6.00")
        feb = resolve_range("lastMonth", now=datetime(2024, 3, 15, 12))
        
        data = await snapshots.summary(order_store, stock_store, feb)
        
        assert data["totalOrders"] == 1
        assert data["revenue"] == 4.0
    
    async def test_reads_are_repeatable(self, seeder, order_store, stock_store, catalog):
        customer = await seeder.customer()
        await seeder.order(customer, datetime(2024, 3, 1, 12), "10.00")
        
        first = await snapshots.summary(order_store, stock_store, ALL)
        second = await snapshots.summary(order_store, stock_store, ALL)
        
        assert first == second


class TestStockListings:
    
    async def test_low_stock_sorted_by_available(self, stock_store, catalog):
        data = await snapshots.low_stock(stock_store)
        
        assert [i["sku"] for i in data["items"]] == ["CRM-300", "MILK-1L"]
        assert data["items"][1]["available"] == 2
        assert data["items"][1]["product"]["name"] == "Whole Milk"
        assert data["items"][1]["state"] == "low"
    
    async def test_out_of_stock_ignores_inactive_units(self, stock_store, catalog):
        data = await snapshots.out_of_stock(stock_store)
        
        assert [i["sku"] for i in data["items"]] == ["MILK-2L"]
    
    async def test_limit_is_clamped(self, stock_store, catalog):
        assert len((await snapshots.low_stock(stock_store, 0))["items"]) == 1
        assert len((await snapshots.low_stock(stock_store, "1000"))["items"]) == 2
    
    async def test_non_numeric_limit(self, stock_store):
        with pytest.raises(InvalidParameter):
            await snapshots.low_stock(stock_store, "many")


class TestTopProducts:
    
    async def test_limit_keeps_highest_revenue_products(self, seeder, order_store):
        a, (a1, a2) = await seeder.product("A", [{"name": "small", "sku": "A-S"}, {"name": "large", "sku": "A-L"}])
        b, (b1,) = await seeder.product("B", [{"name": "one", "sku": "B-1"}])
        c, (c1,) = await seeder.product("C", [{"name": "one", "sku": "C-1"}])
        customer = await seeder.customer()
        await seeder.order(customer, datetime(2024, 3, 1, 12), "100.00", lines=[(a, a1, 1, "30.00"), (a, a2, 2, "70.00")])
        await seeder.order(customer, datetime(2024, 3, 1, 13), "80.00", lines=[(b, b1, 4, "80.00")])
        await seeder.order(customer, datetime(2024, 3, 1, 14), "60.00", lines=[(c, c1, 3, "60.00")])
        await seeder.order(
            customer, datetime(2024, 3, 1, 15), "500.00", OrderStatus.REFUNDED, lines=[(c, c1, 25, "500.00")]
        )
        
        data = await snapshots.top_products(order_store, ALL, 2)
        products = data["products"]
        
        assert [p["productName"] for p in products] == ["A", "B"]
        assert products[0]["totalRevenue"] == 100.0
        assert products[0]["totalQuantity"] == 3
        assert [v["sku"] for v in products[0]["variants"]] == ["A-L", "A-S"]
        assert products[0]["variants"][0]["revenue"] == 70.0
    
    async def test_lines_for_missing_products_are_dropped(self, seeder, order_store):
        a, (a1,) = await seeder.product("A", [{"name": "one", "sku": "A-1"}])
        ghost, (g1,) = await seeder.product("Ghost", [{"name": "one", "sku": "G-1"}])
        customer = await seeder.customer()
        await seeder.order(customer, datetime(2024, 3, 1, 12), "30.00", lines=[(a, a1, 1, "10.00"), (ghost, g1, 1, "20.00")])
        
        async with seeder.session_factory() as session:
            await session.delete(await session.get(type(g1), g1.id))
            await session.commit()
        
        data = await snapshots.top_products(order_store, ALL)
        
        assert [p["productName"] for p in data["products"]] == ["A"]


class TestRecentOrders:
    
    async def test_newest_first_with_customer(self, seeder, order_store):
        customer = await seeder.customer("Grace", "Hopper", "grace@example.com")
        await seeder.order(customer, datetime(2024, 3, 1, 12), status=OrderStatus.PENDING)
        newest = await seeder.order(customer, datetime(2024, 3, 2, 12), status=OrderStatus.CANCELLED)
        
        data = await snapshots.recent_orders(order_store, ALL, 1)
        
        assert len(data["orders"]) == 1
        assert data["orders"][0]["orderNumber"] == newest.order_number
        assert data["orders"][0]["status"] == "cancelled"
        assert data["orders"][0]["customer"]["lastName"] == "Hopper"
        assert data["orders"][0]["createdAt"].startswith("2024-03-02T12:00:00")
