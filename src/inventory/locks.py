"""
Per-unit locking for the alert pipeline.

Evaluations of the same unit run one at a time; different units never
wait on each other. The in-process lock covers a single worker, the
Redis lock covers every worker sharing the Redis instance.
"""

import abc
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

import structlog
from redis.asyncio import Redis
from redis.exceptions import LockError

logger = structlog.get_logger(__name__)


class LockUnavailable(Exception):
    """The lock for a key could not be acquired in time"""


class KeyedLock(abc.ABC):
    """One mutual-exclusion region per key"""
    
    @abc.abstractmethod
    def hold(self, key: str) -> "AsyncIterator[None]":
        raise NotImplementedError


class _Entry:
    __slots__ = ("lock", "users")
    
    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class LocalKeyedLock(KeyedLock):
    """asyncio.Lock per key; an entry is dropped once nobody holds or waits on it."""
    
    def __init__(self) -> None:
        self._entries: Dict[str, _Entry] = {}
    
    def __len__(self) -> int:
        return len(self._entries)
    
    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]


class RedisKeyedLock(KeyedLock):
    """Redis lock named `<prefix>:<key>`, shared across processes."""
    
    def __init__(
        self,
        redis: Redis,
        prefix: str = "inventory-alert",
        timeout: float = 30,
        blocking_timeout: float = 10,
    ):
        self.redis = redis
        self.prefix = prefix
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout
    
    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        name = f"{self.prefix}:{key}"
        lock = self.redis.lock(name, timeout=self.timeout, blocking_timeout=self.blocking_timeout)
        acquired = await lock.acquire()
        if not acquired:
            raise LockUnavailable(name)
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as e:
                # Lock expired while held; the compare-and-set claim still guards the write
                logger.warning("Redis lock release failed", lock=name, error=str(e))


def build_keyed_lock(redis: Optional[Redis], timeout: float = 30, blocking_timeout: float = 10) -> KeyedLock:
    if redis is None:
        return LocalKeyedLock()
    return RedisKeyedLock(redis, timeout=timeout, blocking_timeout=blocking_timeout)
