"""
Display text for notifications.

Every function here is pure and total: it works from the already-parsed
payload and never raises. New notification types get their text in
format_notification_message and nowhere else.
"""

from datetime import datetime, timezone
from typing import Optional

from app.modules.auth.schemas import UserRole
from app.modules.notifications.schemas import (
    ApplicationAcceptedPayload, ConnectionRequestPayload, ConnectionResponsePayload,
    InvitationPayload, MessagePayload, Notification, NotificationType, NotificationView,
)


def should_hide_notification(notification: Optional[Notification], viewer_role: UserRole) -> bool:
    """Hide message echoes: a viewer does not see messages sent by their own role."""
    if notification is None:
        return False
    payload = notification.payload
    return isinstance(payload, MessagePayload) and payload.sender_role == viewer_role


def _event_label(event_name: Optional[str], event_id) -> str:
    if event_name:
        return event_name
    if event_id:
        return f"Event ID: {event_id}"
    return "Unknown event"


def format_notification_message(notification: Notification, viewer_role: UserRole) -> Optional[str]:
    """User-facing text for a notification, or None if this viewer should not see it."""
    payload = notification.payload
    kind = notification.type

    if isinstance(payload, ConnectionRequestPayload):
        if viewer_role != UserRole.SUPPLIER:
            return None
        if payload.requester_name:
            return f"{payload.requester_name} wants to connect with you"
        return payload.text or "Someone wants to connect with you"

    if kind == NotificationType.TASK_ASSIGNMENT.value:
        if viewer_role == UserRole.SUPPLIER:
            return "You have been assigned a new task for this event."
        return "You assigned a new task for this event."

    if isinstance(payload, InvitationPayload) and viewer_role == UserRole.SUPPLIER:
        if not payload.event_name or payload.event_name == "this event":
            return "New public event added."
        return f'You have been added to "{payload.event_name}"'

    if isinstance(payload, ApplicationAcceptedPayload):
        label = payload.event_name or payload.event_id or "Unknown event"
        if viewer_role == UserRole.ADMIN:
            return f'Application accepted notification for event "{label}"'
        return f'Your application to the event "{label}" has been accepted!'

    if isinstance(payload, ConnectionResponsePayload):
        if payload.text:
            return payload.text
        verb = "accepted" if payload.accepted else "declined"
        return f"{payload.supplier_name or 'The supplier'} has {verb} your connection request"

    if payload.text:
        return payload.text

    event_id = getattr(payload, "event_id", None) or notification.event_id
    label = _event_label(getattr(payload, "event_name", None), event_id)
    if isinstance(payload, InvitationPayload):
        return f'You invited a supplier to "{label}"'
    return f'{kind or "New"} notification for event "{label}"'


def format_relative_time(timestamp: Optional[datetime], now: Optional[datetime] = None) -> str:
    if timestamp is None:
        return ""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    seconds = int((now - timestamp).total_seconds())
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if seconds < 60:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    return timestamp.date().isoformat()


def present(
    notification: Notification,
    viewer_role: UserRole,
    now: Optional[datetime] = None,
) -> Optional[NotificationView]:
    """View model for one notification, or None when hidden from this viewer."""
    if should_hide_notification(notification, viewer_role):
        return None
    message = format_notification_message(notification, viewer_role)
    if message is None:
        return None
    return NotificationView(
        id=notification.id,
        type=notification.type,
        status=notification.status,
        message=message,
        relative_time=format_relative_time(notification.created_at, now),
        created_at=notification.created_at,
        connection_request_id=notification.connection_request_id,
        actionable=(
            viewer_role == UserRole.SUPPLIER
            and notification.type == NotificationType.CONNECTION_REQUEST.value
            and notification.is_unread
        ),
    )
