import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Set

from starlette.concurrency import run_in_threadpool

from app.config import settings
from app.database.store import ChangeEvent, PersistentStore, StoreError, Subscription
from app.modules.auth.schemas import Actor, UserRole
from app.modules.connections.schemas import Party
from app.modules.connections.service import ConnectionWorkflowEngine
from app.modules.notifications.formatting import present, should_hide_notification
from app.modules.notifications.schemas import (
    ActionOutcome, ConnectionRequestPayload, FeedSnapshot, Notification, NotificationStatus,
)
from app.modules.notifications.service import NOTIFICATIONS_TABLE, NotificationService, recipient_filters

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[FeedSnapshot], Awaitable[None]]


class NotificationFeed:
    """Live view of one actor's notifications.

    open() loads the newest notifications and subscribes to inserts addressed
    to the actor; every insert triggers a full bounded re-query that replaces
    local state. close() tears the subscription down synchronously, and any
    fetch still in flight is discarded when it lands.
    """

    def __init__(
        self,
        store: PersistentStore,
        actor: Actor,
        engine: Optional[ConnectionWorkflowEngine] = None,
        service: Optional[NotificationService] = None,
        limit: Optional[int] = None,
        on_update: Optional[UpdateCallback] = None,
    ):
        self.store = store
        self.actor = actor
        self.service = service or NotificationService(store)
        self.engine = engine or ConnectionWorkflowEngine(store, notifications=self.service)
        self.limit = limit or settings.notification_feed_limit
        self.on_update = on_update
        self.notifications: List[Notification] = []
        self._subscription: Optional[Subscription] = None
        self._mounted = True
        self._pending: Set[asyncio.Task] = set()

    @property
    def channel_name(self) -> str:
        return f"notification-changes-{self.actor.role.value}-{self.actor.id or self.actor.normalized_email}"

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def open(self) -> FeedSnapshot:
        await self.refresh()
        try:
            self._subscription = await self.store.subscribe(
                NOTIFICATIONS_TABLE,
                recipient_filters(self.actor),
                self._on_change,
                events=("INSERT",),
                channel_name=self.channel_name,
            )
        except StoreError as e:
            logger.error(f"Error setting up notification subscription for {self.channel_name}: {e}")
        if not self._mounted and self._subscription:
            # Closed while subscribing
            self._subscription.unsubscribe()
        return self.snapshot()

    def close(self) -> None:
        self._mounted = False
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _on_change(self, event: ChangeEvent):
        if not self._mounted:
            return
        task = asyncio.ensure_future(self.refresh())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def refresh(self) -> bool:
        """Re-run the bounded query and replace local state. Keeps stale data on failure."""
        try:
            fetched = await run_in_threadpool(self.service.fetch_recent, self.actor, self.limit)
        except StoreError as e:
            logger.error(f"Error fetching notifications for {self.channel_name}: {e}")
            return False
        except Exception as e:
            logger.exception(f"Unexpected error refreshing notifications for {self.channel_name}: {e}")
            return False
        if not self._mounted:
            return False
        self.notifications = fetched
        await self._emit()
        return True

    async def _emit(self):
        if self.on_update is None:
            return
        try:
            await self.on_update(self.snapshot())
        except Exception as e:
            logger.warning(f"Notification update callback failed for {self.channel_name}: {e}")

    # -------------------------------------------------------------------------
    # View
    # -------------------------------------------------------------------------

    @property
    def unread_count(self) -> int:
        return sum(
            1 for n in self.notifications
            if n.is_unread and not should_hide_notification(n, self.actor.role)
        )

    def snapshot(self) -> FeedSnapshot:
        views = [present(n, self.actor.role) for n in self.notifications]
        return FeedSnapshot(
            unread_count=self.unread_count,
            notifications=[v for v in views if v is not None],
        )

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    async def mark_as_read(self, notification_id: str) -> ActionOutcome:
        try:
            await run_in_threadpool(self.service.mark_read, self.actor, notification_id)
        except StoreError as e:
            logger.error(f"Error marking notification {notification_id} as read: {e}")
            return ActionOutcome(ok=False, message="Failed to mark notification as read. Please try again.")
        for n in self.notifications:
            if n.id == notification_id:
                n.status = NotificationStatus.READ
        await self._emit()
        return ActionOutcome(ok=True)

    async def mark_all_as_read(self) -> ActionOutcome:
        try:
            await run_in_threadpool(self.service.mark_all_read, self.actor)
        except StoreError as e:
            logger.error(f"Error marking all notifications as read for {self.channel_name}: {e}")
            return ActionOutcome(ok=False, message="Failed to mark notifications as read. Please try again.")
        for n in self.notifications:
            n.status = NotificationStatus.READ
        await self._emit()
        return ActionOutcome(ok=True)

    async def accept_connection(self, notification_id: str) -> ActionOutcome:
        return await self._respond(notification_id, accept=True)

    async def decline_connection(self, notification_id: str) -> ActionOutcome:
        return await self._respond(notification_id, accept=False)

    async def _respond(self, notification_id: str, accept: bool) -> ActionOutcome:
        verb = "accept" if accept else "decline"
        failure = ActionOutcome(ok=False, message=f"Failed to {verb} connection. Please try again.")
        if self.actor.role != UserRole.SUPPLIER:
            logger.warning(f"{self.actor.role.value} {self.actor.id} tried to {verb} a connection")
            return failure

        notification = await self._find(notification_id)
        if notification is None:
            logger.error(f"Notification {notification_id} not found for {self.channel_name}")
            return failure
        request_id = await self._resolve_request_id(notification)
        if request_id is None:
            logger.error(f"Notification {notification_id} does not reference a pending connection request")
            return failure

        supplier = Party(id=self.actor.id, name=self.actor.name, email=self.actor.email)
        operation = self.engine.accept_connection_request if accept else self.engine.decline_connection_request
        result = await run_in_threadpool(operation, request_id, supplier)
        if not result.ok:
            logger.error(f"Error trying to {verb} connection {request_id}: {result.error.message}")
            return failure

        if notification.connection_request_id is None:
            # Legacy rows are not matched by the engine's back-reference update
            try:
                await run_in_threadpool(self.service.mark_read, self.actor, notification.id)
            except StoreError as e:
                logger.error(f"Error marking legacy notification {notification.id} as read: {e}")

        await self.refresh()
        if accept:
            return ActionOutcome(ok=True, message="Connection accepted! You can now message each other.")
        return ActionOutcome(ok=True, message="Connection request declined.")

    async def _find(self, notification_id: str) -> Optional[Notification]:
        for n in self.notifications:
            if n.id == notification_id:
                return n
        try:
            return await run_in_threadpool(self.service.get, self.actor, notification_id)
        except StoreError as e:
            logger.error(f"Error loading notification {notification_id}: {e}")
            return None
        except Exception as e:
            logger.exception(f"Unexpected error loading notification {notification_id}: {e}")
            return None

    async def _resolve_request_id(self, notification: Notification) -> Optional[str]:
        if notification.connection_request_id:
            return notification.connection_request_id
        payload = notification.payload
        if not isinstance(payload, ConnectionRequestPayload) or not payload.requester_id:
            return None
        result = await run_in_threadpool(self.engine.find_pending_request, payload.requester_id, self.actor.id)
        if not result.ok or result.data is None:
            return None
        return result.data.id
