"""
Unit Tests - Dashboard Composer
"""
from datetime import datetime

import pytest

from src.analytics.dashboard import DashboardEnvelope, SectionFailed, compose_dashboard, run_section
from src.analytics.ranges import DateRange
from src.database.models import OrderStatus
from src.errors import InvalidParameter

ALL = DateRange(None, None, "all")


class BrokenSoldLines:
    """Order store whose line-item query fails"""
    
    def __init__(self, store):
        self.store = store
    
    def __getattr__(self, name):
        return getattr(self.store, name)
    
    async def fetch_sold_lines(self, start, end):
        raise ConnectionError("line items unavailable")


@pytest.fixture
async def shop(seeder):
    product, (variant,) = await seeder.product("Milk", [
        {"name": "1L", "sku": "MILK-1L", "stock_quantity": 3},
    ])
    _, (empty,) = await seeder.product("Cream", [
        {"name": "300ml", "sku": "CRM-300", "stock_quantity": 0},
    ])
    customer = await seeder.customer()
    await seeder.order(customer, datetime(2024, 3, 1, 12), "6.00", OrderStatus.PAID, lines=[(product, variant, 2, "6.00")])


async def test_all_sections_succeed(order_store, stock_store, shop):
    envelope = await compose_dashboard(order_store, stock_store, ALL, "month")
    data = envelope.to_dict()
    
    assert data["partial"] is False
    assert data["failed"] == []
    assert data["summary"]["revenue"] == 6.0
    assert data["revenue"]["points"] == [{"label": "2024-03", "revenue": 6.0, "orders": 1}]
    assert data["topProducts"]["products"][0]["productName"] == "Milk"
    assert len(data["recentOrders"]["orders"]) == 1
    assert [i["sku"] for i in data["lowStock"]["items"]] == ["MILK-1L"]
    assert [i["sku"] for i in data["outOfStock"]["items"]] == ["CRM-300"]


async def test_failed_section_is_isolated(order_store, stock_store, shop):
    envelope = await compose_dashboard(BrokenSoldLines(order_store), stock_store, ALL, "month")
    data = envelope.to_dict()
    
    assert data["partial"] is True
    assert data["failed"] == ["topProducts"]
    assert data["topProducts"] is None
    assert "line items unavailable" in data["errors"]["topProducts"]
    for section in ("summary", "revenue", "recentOrders", "lowStock", "outOfStock"):
        assert data[section] is not None


async def test_invalid_interval_aborts_before_fan_out(order_store, stock_store):
    with pytest.raises(InvalidParameter):
        await compose_dashboard(order_store, stock_store, ALL, "hourly")


async def test_run_section_tags_failure():
    async def boom():
        raise RuntimeError("store down")
    
    result = await run_section("summary", boom)
    
    assert isinstance(result, SectionFailed)
    assert result.section == "summary"
    assert not DashboardEnvelope(range=ALL, sections=[result]).to_dict()["summary"]
