"""
Recipient Directory

Resolves which staff addresses receive each class of alert: active users
in active roles that can see the relevant area, who have opted in.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Set

import structlog
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.database.models import RecordStatus, Role, User

logger = structlog.get_logger(__name__)


class AlertClass(str, Enum):
    LOW_STOCK = "low-stock"
    OUT_OF_STOCK = "out-of-stock"
    NEW_ORDER = "new-order"


# Role permissions that make a user eligible, per alert class
ELIGIBLE_PERMISSIONS: Dict[AlertClass, Set[str]] = {
    AlertClass.LOW_STOCK: {"*", "products.read", "products.*"},
    AlertClass.OUT_OF_STOCK: {"*", "products.read", "products.*"},
    AlertClass.NEW_ORDER: {"*", "orders.read", "orders.*"},
}

PREFERENCE_COLUMNS = {
    AlertClass.LOW_STOCK: User.notify_low_stock,
    AlertClass.OUT_OF_STOCK: User.notify_out_of_stock,
    AlertClass.NEW_ORDER: User.notify_new_orders,
}


def normalize_emails(emails: Iterable[str]) -> List[str]:
    """Trimmed, lower-cased, de-duplicated and sorted; blanks dropped."""
    cleaned = {str(email or "").strip().lower() for email in emails}
    cleaned.discard("")
    return sorted(cleaned)


@dataclass
class RecipientSet:
    by_class: Dict[AlertClass, List[str]] = field(default_factory=dict)
    
    def for_class(self, alert_class: AlertClass) -> List[str]:
        return self.by_class.get(alert_class, [])
    
    def is_empty(self) -> bool:
        return not any(self.by_class.values())


class RecipientDirectory:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
    
    async def resolve(self, *classes: AlertClass) -> RecipientSet:
        """Recipients for each requested class, fetched in one query."""
        opted_in = or_(*(PREFERENCE_COLUMNS[c].is_(True) for c in classes))
        query = (
            select(
                User.email,
                User.notify_low_stock,
                User.notify_out_of_stock,
                User.notify_new_orders,
                Role.permissions,
            )
            .join(Role, Role.id == User.role_id)
            .where(
                and_(
                    User.status == RecordStatus.ACTIVE,
                    Role.status == RecordStatus.ACTIVE,
                    opted_in,
                )
            )
        )
        async with self.session_factory() as session:
            rows = (await session.execute(query)).all()
        
        flags = {
            AlertClass.LOW_STOCK: "notify_low_stock",
            AlertClass.OUT_OF_STOCK: "notify_out_of_stock",
            AlertClass.NEW_ORDER: "notify_new_orders",
        }
        result = RecipientSet()
        for alert_class in classes:
            eligible = ELIGIBLE_PERMISSIONS[alert_class]
            result.by_class[alert_class] = normalize_emails(
                row.email
                for row in rows
                if getattr(row, flags[alert_class]) and eligible.intersection(row.permissions or [])
            )
        
        logger.debug(
            "Recipients resolved",
            counts={c.value: len(result.for_class(c)) for c in classes},
        )
        return result
