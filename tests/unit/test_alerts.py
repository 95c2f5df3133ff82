"""
Unit Tests - Inventory Alert State Machine (SQLite-backed)
"""
import asyncio
from datetime import datetime

import pytest

from src.database.models import ProductVariant, RecordStatus, StockState
from src.inventory.alerts import InventoryAlertService, Outcome
from src.inventory.locks import LocalKeyedLock
from src.inventory.recipients import AlertClass, RecipientDirectory

CLOCK = datetime(2024, 3, 15, 12, 0)


def make_service(session_factory, stock_store, channel, locks=None) -> InventoryAlertService:
    return InventoryAlertService(
        stock=stock_store,
        recipients=RecipientDirectory(session_factory),
        channel=channel,
        locks=locks or LocalKeyedLock(),
        dashboard_url="https://admin.example.com",
        clock=lambda: CLOCK,
    )


async def set_stock(session_factory, variant_id, stock, reserved=0):
    async with session_factory() as session:
        variant = await session.get(ProductVariant, variant_id)
        variant.stock_quantity = stock
        variant.reserved_quantity = reserved
        await session.commit()


async def load(session_factory, variant_id) -> ProductVariant:
    async with session_factory() as session:
        return await session.get(ProductVariant, variant_id)


@pytest.fixture
async def subscribers(seeder):
    await seeder.user("Stock@Example.com ", permissions=["products.*"], low=True, out=True)
    await seeder.user("buyer@example.com", permissions=["products.read"], low=True)
    await seeder.user("sales@example.com", permissions=["orders.read"], low=True, out=True)
    await seeder.user("gone@example.com", permissions=["*"], low=True, status=RecordStatus.INACTIVE)


@pytest.fixture
async def milk(seeder):
    _, (variant,) = await seeder.product("Whole Milk", [
        {"name": "1L", "sku": "MILK-1L", "stock_quantity": 20, "low_stock_alert": 5},
    ])
    return variant


class TestRecipients:
    
    async def test_eligible_and_opted_in_only(self, session_factory, subscribers):
        recipients = await RecipientDirectory(session_factory).resolve(
            AlertClass.LOW_STOCK, AlertClass.OUT_OF_STOCK
        )
        
        assert recipients.for_class(AlertClass.LOW_STOCK) == ["buyer@example.com", "stock@example.com"]
        assert recipients.for_class(AlertClass.OUT_OF_STOCK) == ["stock@example.com"]
    
    async def test_inactive_roles_are_excluded(self, seeder, session_factory):
        await seeder.user("old@example.com", permissions=["*"], new_orders=True, role_status=RecordStatus.INACTIVE)
        
        recipients = await RecipientDirectory(session_factory).resolve(AlertClass.NEW_ORDER)
        
        assert recipients.is_empty()


class TestTransitions:
    
    async def test_ok_to_low_notifies_once(self, session_factory, stock_store, channel, subscribers, milk):
        service = make_service(session_factory, stock_store, channel)
        await set_stock(session_factory, milk.id, 10, 7)
        
        result = await service.process_variants([milk.id])
        
        assert result.processed == 1
        assert result.sent == 2
        assert len(channel.sent) == 1
        recipients, template, params = channel.sent[0]
        assert recipients == ["buyer@example.com", "stock@example.com"]
        assert template == "low_stock_alert"
        assert params["subject"] == "Low Stock Alert – MILK-1L"
        assert params["product_name"] == "Whole Milk – 1L"
        assert params["current_stock"] == 3
        assert params["threshold"] == 5
        
        variant = await load(session_factory, milk.id)
        assert variant.alert_state is StockState.LOW
        assert variant.low_stock_notified_at == CLOCK
    
    async def test_hysteresis(self, session_factory, stock_store, channel, subscribers, milk):
        service = make_service(session_factory, stock_store, channel)
        await set_stock(session_factory, milk.id, 4)
        await service.process_variants([milk.id])
        
        later = make_service(session_factory, stock_store, channel)
        later.clock = lambda: datetime(2024, 3, 16)
        await set_stock(session_factory, milk.id, 3)
        result = await later.process_variants([milk.id])
        
        assert result.processed == 0
        assert len(channel.sent) == 1
        variant = await load(session_factory, milk.id)
        assert variant.low_stock_notified_at == CLOCK
    
    async def test_low_to_ok_is_silent(self, session_factory, stock_store, channel, subscribers, milk):
        service = make_service(session_factory, stock_store, channel)
        await set_stock(session_factory, milk.id, 4)
        await service.process_variants([milk.id])
        
        await set_stock(session_factory, milk.id, 50)
        result = await service.process_variants([milk.id])
        
        assert result.processed == 1
        assert result.sent == 0
        assert len(channel.sent) == 1
        assert (await load(session_factory, milk.id)).alert_state is StockState.OK
    
    async def test_out_of_stock_uses_last_known_stock(self, session_factory, stock_store, channel, subscribers, milk):
        service = make_service(session_factory, stock_store, channel)
        await set_stock(session_factory, milk.id, 0)
        
        await service.process_variants([str(milk.id)], {str(milk.id): 6})
        
        recipients, template, params = channel.sent[0]
        assert recipients == ["stock@example.com"]
        assert template == "out_of_stock_alert"
        assert params["subject"] == "Out of Stock – MILK-1L"
        assert params["last_known_stock"] == 6
        variant = await load(session_factory, milk.id)
        assert variant.alert_state is StockState.OUT
        assert variant.out_of_stock_notified_at == CLOCK
    
    async def test_dispatch_failure_still_advances_state(self, session_factory, stock_store, failing_channel, subscribers, milk):
        failing = failing_channel
        service = make_service(session_factory, stock_store, failing)
        await set_stock(session_factory, milk.id, 0)
        
        result = await service.process_variants([milk.id])
        again = await service.process_variants([milk.id])
        
        assert result.failed_dispatches == 1
        assert failing.attempts == 1
        assert again.processed == 0
        assert (await load(session_factory, milk.id)).alert_state is StockState.OUT
    
    async def test_transition_without_class_recipients_still_advances(self, seeder, session_factory, stock_store, channel, milk):
        await seeder.user("low-only@example.com", permissions=["*"], low=True)
        service = make_service(session_factory, stock_store, channel)
        await set_stock(session_factory, milk.id, 0)
        
        result = await service.process_variants([milk.id])
        
        assert result.processed == 1
        assert channel.sent == []
        variant = await load(session_factory, milk.id)
        assert variant.alert_state is StockState.OUT
        assert variant.out_of_stock_notified_at == CLOCK
    
    async def test_inactive_units_are_skipped(self, seeder, session_factory, stock_store, channel, subscribers):
        _, (retired,) = await seeder.product("Old", [
            {"name": "x", "sku": "OLD-1", "stock_quantity": 0, "status": RecordStatus.INACTIVE},
        ])
        service = make_service(session_factory, stock_store, channel)
        
        result = await service.process_variants([retired.id])
        
        assert result.evaluations[0].outcome is Outcome.SKIPPED
        assert (await load(session_factory, retired.id)).alert_state is StockState.OK


class TestBatch:
    
    async def test_no_recipients_short_circuits(self, session_factory, stock_store, channel, milk):
        service = make_service(session_factory, stock_store, channel)
        await set_stock(session_factory, milk.id, 0)
        
        result = await service.process_variants([milk.id])
        
        assert result.processed == 0
        assert result.evaluations == []
        assert (await load(session_factory, milk.id)).alert_state is StockState.OK
    
    async def test_duplicate_ids_are_evaluated_once(self, session_factory, stock_store, channel, subscribers, milk):
        service = make_service(session_factory, stock_store, channel)
        await set_stock(session_factory, milk.id, 2)
        
        result = await service.process_variants([milk.id, str(milk.id), milk.id])
        
        assert len(result.evaluations) == 1
        assert len(channel.sent) == 1


class TestConcurrency:
    
    async def test_same_unit_notifies_once_with_shared_lock(self, session_factory, stock_store, channel, subscribers, milk):
        service = make_service(session_factory, stock_store, channel)
        await set_stock(session_factory, milk.id, 0)
        recipients = await service.recipients.resolve(AlertClass.LOW_STOCK, AlertClass.OUT_OF_STOCK)
        
        results = await asyncio.gather(*(service.evaluate(milk.id, recipients) for _ in range(5)))
        
        outcomes = sorted(r.outcome.value for r in results)
        assert outcomes.count("transitioned") == 1
        assert len(channel.sent) == 1
    
    async def test_compare_and_set_guards_separate_workers(self, session_factory, stock_store, channel, subscribers, milk):
        # Separate lock instances, as in two worker processes without Redis
        workers = [make_service(session_factory, stock_store, channel) for _ in range(3)]
        await set_stock(session_factory, milk.id, 0)
        recipients = await workers[0].recipients.resolve(AlertClass.LOW_STOCK, AlertClass.OUT_OF_STOCK)
        
        results = await asyncio.gather(*(w.evaluate(milk.id, recipients) for w in workers))
        
        assert sum(r.outcome is Outcome.TRANSITIONED for r in results) == 1
        assert len(channel.sent) == 1
