"""
Unit Tests - Keyed Locks
"""
import asyncio

from src.inventory.locks import LocalKeyedLock, build_keyed_lock


async def test_same_key_is_serialized():
    locks = LocalKeyedLock()
    active = 0
    peak = 0
    
    async def worker():
        nonlocal active, peak
        async with locks.hold("unit-1"):
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
    
    await asyncio.gather(*(worker() for _ in range(5)))
    
    assert peak == 1


async def test_different_keys_run_concurrently():
    locks = LocalKeyedLock()
    entered = asyncio.Event()
    
    async def holder():
        async with locks.hold("unit-1"):
            entered.set()
            await asyncio.sleep(0.05)
    
    async def other():
        await entered.wait()
        async with locks.hold("unit-2"):
            return "done"
    
    results = await asyncio.wait_for(asyncio.gather(holder(), other()), timeout=1)
    
    assert results[1] == "done"


async def test_entries_are_released():
    locks = LocalKeyedLock()
    
    async with locks.hold("unit-1"):
        assert len(locks) == 1
    
    assert len(locks) == 0


def test_without_redis_locks_are_local():
    assert isinstance(build_keyed_lock(None), LocalKeyedLock)
