"""
API Middleware

- Request logging with a request id bound to the structlog context
- Sliding-window rate limiting per client address
- Security headers
"""

import time
import uuid
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, Iterable
import asyncio

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import structlog

logger = structlog.get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with timing; log lines emitted while serving it carry its request_id"""
    
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        
        logger.info(
            "Request started",
            method=request.method,
            path=request.url.path,
            client=request.client.host if request.client else None,
        )
        
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception("Request failed", path=request.url.path, error=str(e))
            raise
        
        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Request completed",
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        response.headers["X-Request-ID"] = request_id
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding-window rate limiter keyed by client address.
    
    Counts are per worker process. Health probes and /metrics scrapes
    are never limited.
    """
    
    def __init__(
        self,
        app,
        max_requests: int = 100,
        window_seconds: int = 60,
        exempt_prefixes: Iterable[str] = ("/api/v1/health", "/metrics"),
    ):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.exempt_prefixes = tuple(exempt_prefixes)
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = asyncio.Lock()
    
    def _limited(self) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content={"success": False, "error": "rate_limited", "message": "Rate limit exceeded"},
            headers={
                "Retry-After": str(self.window_seconds),
                "X-RateLimit-Limit": str(self.max_requests),
                "X-RateLimit-Remaining": "0",
            },
        )
    
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path.startswith(self.exempt_prefixes):
            return await call_next(request)
        
        client_id = request.client.host if request.client else "unknown"
        now = time.monotonic()
        
        async with self._lock:
            hits = self._hits[client_id]
            while hits and now - hits[0] >= self.window_seconds:
                hits.popleft()
            
            if len(hits) >= self.max_requests:
                logger.warning("Rate limit exceeded", client=client_id, path=request.url.path)
                return self._limited()
            
            hits.append(now)
            remaining = self.max_requests - len(hits)
        
        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Hardening headers for a JSON-only API; dashboard data is never cached"""
    
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Referrer-Policy"] = "no-referrer"
        if request.url.path.startswith("/api/v1/analytics"):
            response.headers["Cache-Control"] = "no-store"
        
        return response
