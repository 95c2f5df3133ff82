"""
API Dependencies

Authentication, permission checks, and the stores and services the
routes need. Services hold process-wide collaborators (notification
channel, keyed lock) created at startup and kept on `app.state`.
"""

from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import get_settings
from src.database.connection import get_session_factory
from src.database.stores import OrderStore, StockStore
from src.inventory.alerts import InventoryAlertService
from src.inventory.locks import LocalKeyedLock
from src.inventory.order_alerts import OrderAlertService
from src.inventory.recipients import RecipientDirectory
from src.notifications.channels import LoggingNotifications
from src.notifications.templates import normalize_base_url
from src.serving.api.security import DEV_PRINCIPAL, Principal, decode_access_token

bearer = HTTPBearer(auto_error=False)


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> Principal:
    """Decode the bearer token. Bypassed in debug mode."""
    if get_settings().debug:
        return DEV_PRINCIPAL
    
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    
    principal = decode_access_token(credentials.credentials)
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


def require_permission(permission: str) -> Callable:
    async def checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not principal.can(permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permission: {permission}",
            )
        return principal
    
    return checker


def get_sessions() -> async_sessionmaker[AsyncSession]:
    return get_session_factory()


def get_order_store(sessions: async_sessionmaker[AsyncSession] = Depends(get_sessions)) -> OrderStore:
    return OrderStore(sessions)


def get_stock_store(sessions: async_sessionmaker[AsyncSession] = Depends(get_sessions)) -> StockStore:
    return StockStore(sessions)


def _dashboard_url() -> Optional[str]:
    settings = get_settings()
    return normalize_base_url(settings.alerts.dashboard_url, production=settings.is_production)


def get_inventory_alert_service(
    request: Request,
    sessions: async_sessionmaker[AsyncSession] = Depends(get_sessions),
) -> InventoryAlertService:
    state = request.app.state
    channel = getattr(state, "notification_channel", None) or LoggingNotifications()
    locks = getattr(state, "alert_locks", None)
    if locks is None:
        locks = state.alert_locks = LocalKeyedLock()
    return InventoryAlertService(
        stock=StockStore(sessions),
        recipients=RecipientDirectory(sessions),
        channel=channel,
        locks=locks,
        dashboard_url=_dashboard_url(),
    )


def get_order_alert_service(
    request: Request,
    sessions: async_sessionmaker[AsyncSession] = Depends(get_sessions),
) -> OrderAlertService:
    channel = getattr(request.app.state, "notification_channel", None) or LoggingNotifications()
    return OrderAlertService(
        orders=OrderStore(sessions),
        recipients=RecipientDirectory(sessions),
        channel=channel,
        dashboard_url=_dashboard_url(),
        timezone=get_settings().analytics.timezone,
    )
