from enum import Enum
from pydantic import BaseModel, EmailStr, Field
from typing import Any, Dict, Optional


class UserRole(str, Enum):
    ADMIN = "admin"
    SUPPLIER = "supplier"


def resolve_role(metadata: Optional[Dict[str, Any]]) -> UserRole:
    """Role from identity metadata: 'admin' (any case) is admin, anything else supplier."""
    metadata = metadata or {}
    raw = metadata.get("user_type") or metadata.get("type") or ""
    return UserRole.ADMIN if str(raw).strip().lower() == "admin" else UserRole.SUPPLIER


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


class AuthUser(BaseModel):
    id: str
    email: str
    user_metadata: Dict[str, Any] = Field(default_factory=dict)
    app_metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def role(self) -> UserRole:
        return resolve_role(self.user_metadata)


class Actor(BaseModel):
    """The authenticated party a request or feed acts for."""
    id: str
    email: str
    role: UserRole
    name: str

    @property
    def normalized_email(self) -> str:
        return normalize_email(self.email)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    email: str
    role: UserRole


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    user_type: UserRole
    full_name: Optional[str] = None
    company_name: Optional[str] = None
    service_type: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None

    def to_metadata(self) -> Dict[str, Any]:
        metadata = {"user_type": self.user_type.value}
        for key in ("full_name", "company_name", "service_type", "address", "phone"):
            value = getattr(self, key)
            if value:
                metadata[key] = value
        return metadata


class RegisterResponse(BaseModel):
    user_id: str
    email: str
    role: UserRole
    message: str
