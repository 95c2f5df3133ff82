"""
Redis Connection Module

Optional Redis client shared by the process. It backs the cross-worker
inventory alert locks and the readiness probe. Computed metrics are never
stored in it.
"""

from typing import Optional

import structlog
from redis.asyncio import ConnectionPool, Redis

from src.config import get_settings

logger = structlog.get_logger(__name__)

# Global Redis connection
_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[Redis] = None


def is_redis_enabled() -> bool:
    return get_settings().redis.enabled


async def init_redis() -> Redis:
    """Initialize Redis connection pool"""
    global _redis_pool, _redis_client
    
    if _redis_client is not None:
        return _redis_client
    
    redis_settings = get_settings().redis
    _redis_pool = ConnectionPool.from_url(
        redis_settings.get_url(),
        max_connections=redis_settings.max_connections,
        socket_timeout=redis_settings.socket_timeout,
    )
    _redis_client = Redis(connection_pool=_redis_pool)
    
    try:
        await _redis_client.ping()
        logger.info("Redis connection established")
    except Exception as e:
        logger.error("Redis connection failed", error=str(e))
        raise
    
    return _redis_client


async def close_redis() -> None:
    """Close Redis connection pool"""
    global _redis_pool, _redis_client
    
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
    
    if _redis_pool:
        await _redis_pool.disconnect()
        _redis_pool = None
    
    logger.info("Redis connection closed")


def get_redis() -> Redis:
    """Get Redis client instance"""
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


def get_redis_or_none() -> Optional[Redis]:
    return _redis_client


async def check_redis_health() -> bool:
    if _redis_client is None:
        return False
    try:
        return bool(await _redis_client.ping())
    except Exception as e:
        logger.warning("Redis health check failed", error=str(e))
        return False
