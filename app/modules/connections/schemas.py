from enum import Enum
from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class ConnectionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


ACTIVE_STATUSES = (ConnectionStatus.PENDING.value, ConnectionStatus.ACCEPTED.value)


class ConnectionDirection(str, Enum):
    RECEIVED = "received"
    SENT = "sent"


class Party(BaseModel):
    """One side of a connection request"""
    id: str
    name: str
    email: str


class ConnectionRequest(BaseModel):
    id: str
    requester_id: str
    requester_name: Optional[str] = None
    requester_email: Optional[str] = None
    supplier_id: str
    supplier_name: Optional[str] = None
    supplier_email: Optional[str] = None
    status: ConnectionStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def requester(self) -> Party:
        return Party(id=self.requester_id, name=self.requester_name or "", email=self.requester_email or "")

    @property
    def supplier(self) -> Party:
        return Party(id=self.supplier_id, name=self.supplier_name or "", email=self.supplier_email or "")


class ConnectionRequestCreate(BaseModel):
    supplier_id: str


class ConnectionStatusResponse(BaseModel):
    connected: bool
