import hashlib
import logging
import threading
import time
from contextlib import contextmanager
from typing import Dict, Optional, Tuple

from supabase import Client
from fastapi import HTTPException

from app.config.settings import settings
from app.modules.auth.schemas import AuthUser, LoginRequest, RegisterRequest

logger = logging.getLogger(__name__)


def _token_key(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


class SessionCache:
    """Authenticated users keyed by access token.

    Filled on sign-in, dropped on sign-out, and consulted before every token
    lookup so parallel requests with the same token reach Supabase Auth once.
    """

    def __init__(self, ttl_sec: int = 60, max_size: int = 500):
        self.ttl_sec = ttl_sec
        self.max_size = max_size
        self._entries: Dict[str, Tuple[AuthUser, float]] = {}
        self._locks: Dict[str, Tuple[threading.Lock, int]] = {}
        self._guard = threading.Lock()

    def initialize(self, token: str, user: AuthUser) -> None:
        with self._guard:
            key = _token_key(token)
            if key not in self._entries and len(self._entries) >= self.max_size:
                self._evict_expired()
                if len(self._entries) >= self.max_size:
                    return
            self._entries[key] = (user, time.monotonic() + self.ttl_sec)

    def get(self, token: str) -> Optional[AuthUser]:
        with self._guard:
            key = _token_key(token)
            entry = self._entries.get(key)
            if entry is None:
                return None
            user, expiry = entry
            if time.monotonic() >= expiry:
                del self._entries[key]
                return None
            return user

    def invalidate(self, token: Optional[str] = None) -> None:
        """Drop one token, or everything when no token is given."""
        with self._guard:
            if token is None:
                self._entries.clear()
                return
            self._entries.pop(_token_key(token), None)

    @contextmanager
    def lookup_lock(self, token: str):
        """Serialize lookups for one token. The lock is dropped once its last holder leaves."""
        key = _token_key(token)
        with self._guard:
            lock, holders = self._locks.get(key, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[key] = (lock, holders + 1)
        try:
            with lock:
                yield
        finally:
            with self._guard:
                _, holders = self._locks[key]
                if holders <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, holders - 1)

    def _evict_expired(self):
        now = time.monotonic()
        for key in [k for k, (_, expiry) in self._entries.items() if expiry <= now]:
            del self._entries[key]


class IdentityProvider:
    """Supabase Auth adapter: sign-up, sign-in, sign-out and token resolution."""

    def __init__(self, supabase: Client, cache: Optional[SessionCache] = None):
        self.supabase = supabase
        self.cache = cache or SessionCache(
            ttl_sec=settings.session_cache_ttl_sec,
            max_size=settings.session_cache_max_size,
        )

    @staticmethod
    def _to_auth_user(user, fallback_email: str = "") -> AuthUser:
        return AuthUser(
            id=user.id,
            email=user.email or fallback_email,
            user_metadata=user.user_metadata or {},
            app_metadata=user.app_metadata or {},
        )

    def sign_up(self, register_data: RegisterRequest) -> AuthUser:
        """Register a new user; metadata carries the role and profile seed fields."""
        try:
            auth_response = self.supabase.auth.sign_up({
                "email": register_data.email,
                "password": register_data.password,
                "options": {
                    "data": register_data.to_metadata()
                }
            })

            if not auth_response.user:
                raise HTTPException(status_code=400, detail="Failed to register user")

            user = self._to_auth_user(auth_response.user, register_data.email)
            # Session is absent when email confirmation is required
            if auth_response.session:
                self.cache.initialize(auth_response.session.access_token, user)
            return user
        except HTTPException:
            raise
        except Exception as e:
            error_message = str(e)
            if "already registered" in error_message.lower() or "already exists" in error_message.lower():
                raise HTTPException(status_code=400, detail="User already exists")
            raise HTTPException(status_code=500, detail=f"Registration failed: {error_message}")

    def sign_in(self, login_data: LoginRequest) -> Tuple[AuthUser, str]:
        """Authenticate with email/password; returns the user and access token."""
        try:
            auth_response = self.supabase.auth.sign_in_with_password({
                "email": login_data.email,
                "password": login_data.password
            })

            if not auth_response.user or not auth_response.session:
                raise HTTPException(status_code=401, detail="Invalid credentials")

            user = self._to_auth_user(auth_response.user, login_data.email)
            token = auth_response.session.access_token
            self.cache.initialize(token, user)
            logger.info(f"User {user.id} signed in as {user.role.value}")
            return user, token
        except HTTPException:
            raise
        except Exception as e:
            error_message = str(e)
            if "invalid" in error_message.lower() or "credentials" in error_message.lower():
                raise HTTPException(status_code=401, detail="Invalid email or password")
            raise HTTPException(status_code=500, detail=f"Login failed: {error_message}")

    def get_current_user(self, token: str) -> Optional[AuthUser]:
        """Resolve a token to a user, or None if it is invalid or expired."""
        cached = self.cache.get(token)
        if cached is not None:
            return cached
        with self.cache.lookup_lock(token):
            cached = self.cache.get(token)
            if cached is not None:
                return cached
            try:
                user_response = self.supabase.auth.get_user(jwt=token)
            except Exception as e:
                logger.warning(f"Token lookup failed: {e}")
                return None
            if not user_response or not user_response.user:
                return None
            user = self._to_auth_user(user_response.user)
            self.cache.initialize(token, user)
            return user

    def sign_out(self, token: str) -> bool:
        """Sign out and drop the cached session for this token."""
        self.cache.invalidate(token)
        try:
            # The shared client holds no user session; revoke the caller's by JWT
            self.supabase.auth.admin.sign_out(token)
            return True
        except Exception as e:
            logger.warning(f"Sign-out failed: {e}")
            return False
