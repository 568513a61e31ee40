import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from app.core.dependencies import (
    Providers, get_current_actor, get_store, get_workflow_engine,
)
from app.database.store import PersistentStore
from app.modules.auth.schemas import Actor
from app.modules.connections.service import ConnectionWorkflowEngine
from app.modules.notifications.feed import NotificationFeed
from app.modules.notifications.schemas import ActionOutcome, FeedSnapshot
from app.modules.profiles.service import ProfileService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])
ws_router = APIRouter()


async def get_feed(
    actor: Actor = Depends(get_current_actor),
    store: PersistentStore = Depends(get_store),
    engine: ConnectionWorkflowEngine = Depends(get_workflow_engine),
) -> NotificationFeed:
    """One-shot feed for a single request; loaded but not subscribed"""
    feed = NotificationFeed(store, actor, engine=engine, service=engine.notifications)
    if not await feed.refresh():
        raise HTTPException(status_code=503, detail="Notifications are temporarily unavailable")
    return feed


def _checked(outcome: ActionOutcome, status_code: int) -> ActionOutcome:
    if not outcome.ok:
        raise HTTPException(status_code=status_code, detail=outcome.message)
    return outcome


@router.get("", response_model=FeedSnapshot)
async def list_notifications(feed: NotificationFeed = Depends(get_feed)):
    """Most recent notifications for the current user with the unread count"""
    return feed.snapshot()


@router.post("/read-all", response_model=FeedSnapshot)
async def mark_all_as_read(feed: NotificationFeed = Depends(get_feed)):
    """Mark every notification of the current user as read"""
    _checked(await feed.mark_all_as_read(), 503)
    return feed.snapshot()


@router.post("/{notification_id}/read", response_model=FeedSnapshot)
async def mark_as_read(notification_id: str, feed: NotificationFeed = Depends(get_feed)):
    """Mark one notification as read"""
    _checked(await feed.mark_as_read(notification_id), 503)
    return feed.snapshot()


@router.post("/{notification_id}/accept", response_model=ActionOutcome)
async def accept_connection(notification_id: str, feed: NotificationFeed = Depends(get_feed)):
    """Accept the connection request behind a notification"""
    return _checked(await feed.accept_connection(notification_id), 400)


@router.post("/{notification_id}/decline", response_model=ActionOutcome)
async def decline_connection(notification_id: str, feed: NotificationFeed = Depends(get_feed)):
    """Decline the connection request behind a notification"""
    return _checked(await feed.decline_connection(notification_id), 400)


@ws_router.websocket("/ws/notifications")
async def notifications_websocket(
    websocket: WebSocket,
    token: str = Query(..., description="Access token for authentication")
):
    """
    Live notification feed for the authenticated user.

    Connection URL:
        ws://localhost:8000/ws/notifications?token={jwt}

    Events sent:
        - {"type": "snapshot", "unread_count": 2, "notifications": [...]}
          on connect and after every change
        - {"type": "alert", "ok": false, "message": "..."} after an action

    Messages accepted:
        - "ping" (answered with "pong")
        - {"action": "mark_read", "id": "..."}
        - {"action": "mark_all_read"}
        - {"action": "accept", "id": "..."} / {"action": "decline", "id": "..."}
    """
    user = await run_in_threadpool(Providers.get_identity_provider().get_current_user, token)
    if user is None:
        logger.warning("WebSocket auth failed: invalid token")
        await websocket.close(code=4001, reason="Invalid token")
        return

    store = Providers.get_store()
    actor = await run_in_threadpool(ProfileService(store).actor_for, user)
    await websocket.accept()

    async def send_snapshot(snapshot: FeedSnapshot):
        await websocket.send_json({"type": "snapshot", **snapshot.model_dump(mode="json")})

    feed = NotificationFeed(store, actor, on_update=send_snapshot)
    try:
        await send_snapshot(await feed.open())

        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text("pong")
                continue
            try:
                message = json.loads(data)
            except ValueError:
                logger.debug(f"WebSocket received non-JSON message: {data[:100]}")
                continue
            if not isinstance(message, dict):
                continue

            outcome = await _dispatch(feed, message)
            if outcome is not None and (outcome.message or not outcome.ok):
                await websocket.send_json({"type": "alert", **outcome.model_dump()})

    except WebSocketDisconnect:
        logger.info(f"WebSocket client disconnected from {feed.channel_name}")
    finally:
        feed.close()


async def _dispatch(feed: NotificationFeed, message: dict):
    action = message.get("action")
    notification_id = message.get("id")
    if action == "mark_all_read":
        return await feed.mark_all_as_read()
    if not notification_id:
        return None
    if action == "mark_read":
        return await feed.mark_as_read(notification_id)
    if action == "accept":
        return await feed.accept_connection(notification_id)
    if action == "decline":
        return await feed.decline_connection(notification_id)
    logger.debug(f"Unknown notification action: {action}")
    return None
