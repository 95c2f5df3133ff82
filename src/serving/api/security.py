"""
Bearer token handling.

Tokens are HS256 JWTs whose `permissions` claim lists permission strings
such as "analytics.read". "*" grants everything and "<area>.*" grants
every permission in that area.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

import structlog
from jose import JWTError, jwt

from src.config import get_settings

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Principal:
    subject: str
    email: Optional[str] = None
    permissions: List[str] = field(default_factory=list)
    
    def can(self, permission: str) -> bool:
        return has_permission(self.permissions, permission)


DEV_PRINCIPAL = Principal(subject="dev-user", email="dev@ops-dashboard.local", permissions=["*"])


def has_permission(granted: Iterable[str], required: str) -> bool:
    area = required.split(".", 1)[0]
    for permission in granted or []:
        if permission in ("*", required, f"{area}.*"):
            return True
    return False


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    security = get_settings().security
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=24))
    to_encode.update({"exp": expire})
    return jwt.encode(
        to_encode,
        security.jwt_secret_key.get_secret_value(),
        algorithm=security.jwt_algorithm,
    )


def decode_access_token(token: str) -> Optional[Principal]:
    """Principal carried by a valid token, or None when it is invalid or expired."""
    security = get_settings().security
    try:
        payload = jwt.decode(
            token,
            security.jwt_secret_key.get_secret_value(),
            algorithms=[security.jwt_algorithm],
        )
    except JWTError as e:
        logger.info("Rejected access token", error=str(e))
        return None
    
    permissions = payload.get("permissions") or []
    if not isinstance(permissions, list):
        return None
    return Principal(
        subject=str(payload.get("sub", "")),
        email=payload.get("email"),
        permissions=[str(p) for p in permissions],
    )
