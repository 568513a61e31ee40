import json
import logging
import re
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from app.core.errors import MalformedMetadataError
from app.modules.auth.schemas import UserRole

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    CONNECTION_REQUEST = "connection_request"
    CONNECTION_ACCEPTED = "connection_accepted"
    CONNECTION_DECLINED = "connection_declined"
    INVITATION = "invitation"
    APPLICATION_ACCEPTED = "application_accepted"
    NEW_MESSAGE = "new_message"
    TASK_ASSIGNMENT = "task_assignment"


class NotificationStatus(str, Enum):
    UNREAD = "unread"
    READ = "read"


# Types a supplier's bell shows; admin rows are not type-restricted
SUPPLIER_VISIBLE_TYPES = (
    NotificationType.INVITATION.value,
    NotificationType.APPLICATION_ACCEPTED.value,
    NotificationType.NEW_MESSAGE.value,
    NotificationType.TASK_ASSIGNMENT.value,
    NotificationType.CONNECTION_REQUEST.value,
)


class ConnectionRequestPayload(BaseModel):
    kind: Literal["connection_request"] = "connection_request"
    requester_id: Optional[str] = None
    requester_name: Optional[str] = None
    requester_email: Optional[str] = None
    supplier_id: Optional[str] = None
    text: Optional[str] = None


class ConnectionResponsePayload(BaseModel):
    kind: Literal["connection_response"] = "connection_response"
    accepted: bool
    supplier_id: Optional[str] = None
    supplier_name: Optional[str] = None
    supplier_email: Optional[str] = None
    text: Optional[str] = None


class InvitationPayload(BaseModel):
    kind: Literal["invitation"] = "invitation"
    event_id: Optional[str] = None
    event_name: Optional[str] = None
    text: Optional[str] = None


class ApplicationAcceptedPayload(BaseModel):
    kind: Literal["application_accepted"] = "application_accepted"
    event_id: Optional[str] = None
    event_name: Optional[str] = None
    text: Optional[str] = None


class MessagePayload(BaseModel):
    kind: Literal["new_message"] = "new_message"
    sender_role: Optional[UserRole] = None
    text: Optional[str] = None


class TaskAssignmentPayload(BaseModel):
    kind: Literal["task_assignment"] = "task_assignment"
    text: Optional[str] = None


class GenericPayload(BaseModel):
    kind: Literal["generic"] = "generic"
    text: Optional[str] = None


NotificationPayload = Annotated[
    Union[
        ConnectionRequestPayload,
        ConnectionResponsePayload,
        InvitationPayload,
        ApplicationAcceptedPayload,
        MessagePayload,
        TaskAssignmentPayload,
        GenericPayload,
    ],
    Field(discriminator="kind"),
]


def decode_json_object(value: Any, field: str, strict: bool) -> Optional[Dict[str, Any]]:
    """Decode a JSON object stored as text.

    With strict=False a string that does not look like JSON is plain text and
    yields None. Raises MalformedMetadataError for anything else undecodable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        return value
    if not isinstance(value, str):
        raise MalformedMetadataError(field, value)
    text = value.strip()
    if not strict and not text.startswith("{"):
        return None
    try:
        decoded = json.loads(text)
    except ValueError:
        raise MalformedMetadataError(field, value)
    if not isinstance(decoded, dict):
        raise MalformedMetadataError(field, value)
    return decoded


def _decode_or_empty(value: Any, field: str, strict: bool) -> Optional[Dict[str, Any]]:
    try:
        return decode_json_object(value, field, strict)
    except MalformedMetadataError as e:
        logger.debug(f"{e.message}; falling back to raw content: {e.details.get('raw')}")
        return None


_QUOTED = re.compile(r'"([^"]+)"')
_TIMESTAMP = TypeAdapter(datetime)


def _str(data: Dict[str, Any], key: str) -> Optional[str]:
    """String value at key, or None for anything else."""
    value = data.get(key)
    return value if isinstance(value, str) and value else None


def _id(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


def _status(value: Any) -> NotificationStatus:
    try:
        return NotificationStatus(value)
    except ValueError:
        return NotificationStatus.UNREAD


def _timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return _TIMESTAMP.validate_python(value)
    except ValidationError:
        logger.debug(f"Unparseable notification timestamp: {value!r}")
        return None


def _sender_role(text: Optional[str]) -> Optional[UserRole]:
    lowered = (text or "").lower()
    if lowered.startswith("new message from admin"):
        return UserRole.ADMIN
    if lowered.startswith("new message from supplier"):
        return UserRole.SUPPLIER
    return None


def _quoted_event_name(text: Optional[str]) -> Optional[str]:
    # Event rows are written by the events service with the name quoted in content
    match = _QUOTED.search(text or "")
    return match.group(1) if match else None


def _build_payload(
    row: Dict[str, Any], kind: str, content: Dict[str, Any], text: Optional[str]
) -> NotificationPayload:
    metadata = _decode_or_empty(row.get("metadata"), "metadata", strict=True) or {}

    if kind == NotificationType.CONNECTION_REQUEST.value:
        return ConnectionRequestPayload(
            requester_id=_id(metadata.get("admin_id")) or _id(content.get("requester_id")),
            requester_name=_str(metadata, "admin_name") or _str(content, "requester_name"),
            requester_email=_str(content, "requester_email") or _str(metadata, "admin_email"),
            supplier_id=_id(metadata.get("supplier_id")),
            text=text,
        )
    if kind in (NotificationType.CONNECTION_ACCEPTED.value, NotificationType.CONNECTION_DECLINED.value):
        return ConnectionResponsePayload(
            accepted=kind == NotificationType.CONNECTION_ACCEPTED.value,
            supplier_id=_id(metadata.get("supplier_id")),
            supplier_name=_str(content, "supplier_name") or _str(metadata, "supplier_name"),
            supplier_email=_str(content, "supplier_email") or _str(metadata, "supplier_email"),
            text=text,
        )
    if kind == NotificationType.INVITATION.value:
        return InvitationPayload(event_id=_id(row.get("event_id")), event_name=_quoted_event_name(text), text=text)
    if kind == NotificationType.APPLICATION_ACCEPTED.value:
        return ApplicationAcceptedPayload(
            event_id=_id(row.get("event_id")), event_name=_quoted_event_name(text), text=text
        )
    if kind == NotificationType.NEW_MESSAGE.value:
        return MessagePayload(sender_role=_sender_role(text), text=text)
    if kind == NotificationType.TASK_ASSIGNMENT.value:
        return TaskAssignmentPayload(text=text)
    return GenericPayload(text=text)


def _payload_text(row: Dict[str, Any], content: Dict[str, Any]) -> Optional[str]:
    raw_content = row.get("content")
    if content:
        return _str(content, "message")
    if isinstance(raw_content, str) and raw_content.strip():
        return raw_content
    return _str(row, "message")


def parse_payload(row: Dict[str, Any]) -> NotificationPayload:
    """Turn a raw notifications row into its typed payload. Never raises."""
    kind = row.get("type") if isinstance(row.get("type"), str) else ""
    content = _decode_or_empty(row.get("content"), "content", strict=False) or {}
    text = _payload_text(row, content)
    try:
        return _build_payload(row, kind, content, text)
    except ValidationError as e:
        logger.debug(f"Notification {row.get('id')} of type {kind!r} has an unexpected shape: {e}")
        return GenericPayload(text=text)


class Notification(BaseModel):
    id: str
    type: str
    status: NotificationStatus = NotificationStatus.UNREAD
    payload: NotificationPayload
    content: Optional[str] = None
    connection_request_id: Optional[str] = None
    admin_user_id: Optional[str] = None
    supplier_email: Optional[str] = None
    event_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Notification":
        """Build from a stored row; malformed fields degrade to defaults instead of raising."""
        raw_content = row.get("content")
        return cls(
            id=_id(row.get("id")) or "",
            type=row.get("type") if isinstance(row.get("type"), str) else "",
            status=_status(row.get("status")),
            payload=parse_payload(row),
            content=raw_content if isinstance(raw_content, str) else None,
            connection_request_id=_id(row.get("connection_request_id")),
            admin_user_id=_id(row.get("admin_user_id")),
            supplier_email=_str(row, "supplier_email"),
            event_id=_id(row.get("event_id")),
            created_at=_timestamp(row.get("created_at")),
        )

    @property
    def is_unread(self) -> bool:
        return self.status == NotificationStatus.UNREAD


class NotificationView(BaseModel):
    id: str
    type: str
    status: NotificationStatus
    message: str
    relative_time: str
    created_at: Optional[datetime] = None
    connection_request_id: Optional[str] = None
    actionable: bool = False


class FeedSnapshot(BaseModel):
    unread_count: int
    notifications: List[NotificationView]


class ActionOutcome(BaseModel):
    ok: bool
    message: Optional[str] = None
