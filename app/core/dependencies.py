"""
Core dependencies for route protection and service wiring
"""

import logging

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.config import settings
from app.database.memory_store import MemoryStore
from app.database.store import PersistentStore
from app.database.supabase_client import SupabaseClient
from app.database.supabase_store import SupabaseStore
from app.modules.auth.schemas import Actor, AuthUser, UserRole
from app.modules.auth.service import IdentityProvider
from app.modules.connections.service import ConnectionWorkflowEngine
from app.modules.notifications.service import NotificationService
from app.modules.profiles.service import ProfileService
from app.modules.roster.service import RosterService

logger = logging.getLogger(__name__)

security = HTTPBearer()


class Providers:
    """Process-wide store and identity provider, created on first use."""
    _store: PersistentStore = None
    _identity: IdentityProvider = None

    @classmethod
    def get_store(cls) -> PersistentStore:
        if cls._store is None:
            if settings.uses_memory_store:
                logger.warning("Using in-memory store; data is lost on restart")
                cls._store = MemoryStore()
            else:
                cls._store = SupabaseStore()
        return cls._store

    @classmethod
    def get_identity_provider(cls) -> IdentityProvider:
        if cls._identity is None:
            cls._identity = IdentityProvider(SupabaseClient.get_client())
        return cls._identity

    @classmethod
    def reset(cls):
        if cls._identity is not None:
            cls._identity.cache.invalidate()
        cls._store = None
        cls._identity = None


def get_store() -> PersistentStore:
    return Providers.get_store()


def get_identity_provider() -> IdentityProvider:
    return Providers.get_identity_provider()


def get_profile_service(store: PersistentStore = Depends(get_store)) -> ProfileService:
    return ProfileService(store)


def get_notification_service(store: PersistentStore = Depends(get_store)) -> NotificationService:
    return NotificationService(store)


def get_roster_service(store: PersistentStore = Depends(get_store)) -> RosterService:
    return RosterService(store)


def get_workflow_engine(store: PersistentStore = Depends(get_store)) -> ConnectionWorkflowEngine:
    return ConnectionWorkflowEngine(store)


def get_current_token(
    credentials: HTTPAuthorizationCredentials = Security(security)
) -> str:
    """Extract JWT token from Authorization header"""
    return credentials.credentials


def get_current_user(
    token: str = Depends(get_current_token),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> AuthUser:
    """Resolve the bearer token to an authenticated user"""
    user = identity.get_current_user(token)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token"
        )
    return user


def get_current_actor(
    user: AuthUser = Depends(get_current_user),
    profiles: ProfileService = Depends(get_profile_service),
) -> Actor:
    """Current user as an acting party (role from auth metadata, name from profile)"""
    return profiles.actor_for(user)


def require_role(required_role: UserRole):
    """Factory function to create a role check dependency"""
    def check_role(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role != required_role:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"This action requires the {required_role.value} role"
            )
        return actor
    return check_role
