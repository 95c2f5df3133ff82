"""
FastAPI Application Factory

Creates and configures the API: lifespan (database, optional Redis,
notification channel, alert locks), middleware, error mapping, routes
and Prometheus metrics.
"""

from contextlib import asynccontextmanager
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CollectorRegistry, make_asgi_app, multiprocess
import structlog

from src.config import get_settings
from src.config.logging import configure_logging
from src.database.connection import close_database, init_database
from src.errors import ClientError, OpsDashboardError, UpstreamQueryFailure
from src.inventory.locks import build_keyed_lock
from src.notifications.channels import build_channel
from src.serving.api.middleware import (
    RateLimitMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from src.serving.api.routes import analytics_router, health_router, inventory_router
from src.serving.cache import close_redis, get_redis_or_none, init_redis, is_redis_enabled

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    configure_logging()
    logger.info("Starting operations dashboard API", environment=settings.app_env)
    
    try:
        await init_database(create_schema=settings.is_development)
    except Exception as e:
        logger.warning("Database init failed, readiness will report not_ready", error=str(e))
    
    if is_redis_enabled():
        try:
            await init_redis()
        except Exception as e:
            logger.warning("Redis init failed, alert locks stay in-process", error=str(e))
    
    app.state.notification_channel = build_channel(settings.alerts)
    app.state.alert_locks = build_keyed_lock(
        get_redis_or_none(),
        timeout=settings.alerts.lock_timeout_seconds,
        blocking_timeout=settings.alerts.lock_wait_seconds,
    )
    
    yield
    
    logger.info("Shutting down...")
    await app.state.notification_channel.close()
    await close_redis()
    await close_database()


def _status_for(error: OpsDashboardError) -> int:
    if isinstance(error, ClientError):
        return 400
    if isinstance(error, UpstreamQueryFailure):
        return 503
    return 500


async def handle_service_error(request: Request, exc: OpsDashboardError) -> JSONResponse:
    status_code = _status_for(exc)
    log = logger.warning if status_code < 500 else logger.error
    log("Request rejected", path=request.url.path, error=exc.code, message=exc.message)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def _metrics_app():
    if "PROMETHEUS_MULTIPROC_DIR" in os.environ:
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        return make_asgi_app(registry=registry)
    return make_asgi_app()


def create_api_app() -> FastAPI:
    """
    Create and configure FastAPI application.
    
    Returns:
        Configured FastAPI app instance
    """
    settings = get_settings()
    app = FastAPI(
        title="Operations Dashboard API",
        description="Sales metrics and inventory alerting for the admin dashboard",
        version=settings.version,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )
    
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.security.rate_limit_requests,
        window_seconds=settings.security.rate_limit_window_seconds,
    )
    
    app.add_exception_handler(OpsDashboardError, handle_service_error)
    
    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(analytics_router, prefix="/api/v1/analytics", tags=["Analytics"])
    app.include_router(inventory_router, prefix="/api/v1/inventory", tags=["Inventory"])
    
    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.version,
            "environment": settings.app_env,
            "timezone": settings.analytics.timezone,
            "documentation": "/docs" if settings.is_development else None,
        }
    
    if settings.monitoring.enable_metrics:
        app.mount("/metrics", _metrics_app())
    
    return app
