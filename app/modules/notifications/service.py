import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from app.config import settings
from app.database.store import PersistentStore
from app.modules.auth.schemas import Actor, UserRole, normalize_email
from app.modules.notifications.schemas import (
    SUPPLIER_VISIBLE_TYPES, Notification, NotificationStatus,
)

logger = logging.getLogger(__name__)

NOTIFICATIONS_TABLE = "notifications"


def recipient_filters(actor: Actor) -> Dict[str, Any]:
    """Predicate selecting the notifications addressed to an actor."""
    if actor.role == UserRole.ADMIN:
        return {"admin_user_id": actor.id}
    return {
        "supplier_email": normalize_email(actor.email),
        "type": SUPPLIER_VISIBLE_TYPES,
    }


class NotificationService:
    """Reads and writes on the notifications table. Store errors propagate."""

    def __init__(self, store: PersistentStore):
        self.store = store

    def create(
        self,
        notification_type: str,
        content: Any,
        *,
        admin_user_id: Optional[str] = None,
        supplier_email: Optional[str] = None,
        connection_request_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        """Insert an unread notification addressed to exactly one recipient."""
        if bool(admin_user_id) == bool(supplier_email):
            raise ValueError("A notification needs exactly one of admin_user_id or supplier_email")

        row = {
            "type": notification_type,
            "content": content if isinstance(content, str) else json.dumps(content),
            "status": NotificationStatus.UNREAD.value,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        if admin_user_id:
            row["admin_user_id"] = admin_user_id
        else:
            row["supplier_email"] = normalize_email(supplier_email)
        if connection_request_id:
            row["connection_request_id"] = connection_request_id
        if metadata:
            row["metadata"] = json.dumps(metadata)
        return Notification.from_row(self.store.insert(NOTIFICATIONS_TABLE, row))

    def fetch_recent(self, actor: Actor, limit: Optional[int] = None) -> List[Notification]:
        """Newest-first notifications for an actor, bounded by the feed limit."""
        rows = self.store.select(
            NOTIFICATIONS_TABLE,
            recipient_filters(actor),
            order_by="created_at",
            descending=True,
            limit=limit or settings.notification_feed_limit,
        )
        return [Notification.from_row(row) for row in rows]

    def get(self, actor: Actor, notification_id: str) -> Optional[Notification]:
        filters = {**recipient_filters(actor), "id": notification_id}
        rows = self.store.select(NOTIFICATIONS_TABLE, filters, limit=1)
        return Notification.from_row(rows[0]) if rows else None

    def mark_read(self, actor: Actor, notification_id: str) -> int:
        filters = {**recipient_filters(actor), "id": notification_id}
        return len(self.store.update(NOTIFICATIONS_TABLE, filters, {"status": NotificationStatus.READ.value}))

    def mark_all_read(self, actor: Actor) -> int:
        """Flip every unread notification of the actor; matching nothing is not an error."""
        filters = {**recipient_filters(actor), "status": NotificationStatus.UNREAD.value}
        return len(self.store.update(NOTIFICATIONS_TABLE, filters, {"status": NotificationStatus.READ.value}))

    def mark_request_notification_read(self, connection_request_id: str, supplier_email: str) -> int:
        filters = {
            "connection_request_id": connection_request_id,
            "supplier_email": normalize_email(supplier_email),
        }
        return len(self.store.update(NOTIFICATIONS_TABLE, filters, {"status": NotificationStatus.READ.value}))
