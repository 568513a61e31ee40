import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import HTTPException

from app.database.store import PersistentStore, StoreError
from app.modules.auth.schemas import Actor, AuthUser, UserRole, normalize_email
from app.modules.profiles.schemas import (
    DEFAULT_SUPPLIER_IMAGE, SERVICE_CATEGORIES, Profile, ProfileUpdate,
    SupplierCard, SupplierListResponse,
)

logger = logging.getLogger(__name__)

PROFILES_TABLE = "profiles"


def profile_from_metadata(user: AuthUser) -> Profile:
    """Profile seeded from auth metadata; the role always comes from metadata."""
    meta = user.user_metadata
    return Profile(
        id=user.id,
        email=user.email,
        full_name=meta.get("full_name") or (user.email.split("@")[0] if user.email else None),
        company_name=meta.get("company_name") or meta.get("companyname") or None,
        user_type=user.role,
        service_type=meta.get("service_type") or meta.get("serviceType") or None,
        address=meta.get("address") or None,
        phone=meta.get("phone") or None,
    )


class ProfileService:
    def __init__(self, store: PersistentStore):
        self.store = store

    def get_profile(self, user_id: str) -> Optional[Profile]:
        try:
            rows = self.store.select(PROFILES_TABLE, {"id": user_id}, limit=1)
        except StoreError as e:
            raise HTTPException(status_code=503, detail=f"Profile store unavailable: {e.message}")
        return Profile(**rows[0]) if rows else None

    def get_supplier(self, supplier_id: str) -> Profile:
        profile = self.get_profile(supplier_id)
        if not profile or profile.user_type != UserRole.SUPPLIER:
            raise HTTPException(status_code=404, detail="Supplier not found")
        return profile

    def ensure_profile(self, user: AuthUser) -> Profile:
        """Return the user's profile, creating it from metadata on first sign-in.

        The stored role is overwritten by the metadata role if they disagree.
        Falls back to a metadata-only profile when the store is unreachable.
        """
        seeded = profile_from_metadata(user)
        try:
            rows = self.store.select(PROFILES_TABLE, {"id": user.id}, limit=1)
            if not rows:
                now = datetime.now(timezone.utc).isoformat()
                row = seeded.model_dump(mode="json", exclude={"fallback", "created_at", "updated_at"})
                row["email"] = normalize_email(row["email"])
                row.update({"created_at": now, "updated_at": now})
                logger.info(f"Creating {seeded.user_type.value} profile for {user.id}")
                return Profile(**self.store.insert(PROFILES_TABLE, row))
            profile = Profile(**rows[0])
            if profile.user_type != user.role:
                logger.warning(
                    f"Profile {user.id} role {profile.user_type.value} disagrees with "
                    f"auth metadata {user.role.value}; using metadata"
                )
                profile.user_type = user.role
            return profile
        except StoreError as e:
            logger.error(f"Profile lookup failed for {user.id}, using metadata: {e}")
            seeded.fallback = True
            return seeded

    def update_profile(self, user_id: str, profile_data: ProfileUpdate) -> Profile:
        """Update the owner's editable profile fields"""
        update_data = profile_data.model_dump(mode="json", exclude_none=True)
        update_data["updated_at"] = datetime.now(timezone.utc).isoformat()
        try:
            rows = self.store.update(PROFILES_TABLE, {"id": user_id}, update_data)
        except StoreError as e:
            raise HTTPException(status_code=503, detail=f"Profile store unavailable: {e.message}")
        if not rows:
            raise HTTPException(status_code=404, detail="Profile not found")
        return Profile(**rows[0])

    def list_suppliers(
        self,
        category: Optional[str] = None,
        search: Optional[str] = None,
        sort: str = "name",
    ) -> SupplierListResponse:
        """Suppliers in a service category, filtered by search and sorted by name or newest"""
        filters = {"user_type": UserRole.SUPPLIER.value}
        if category:
            filters["service_type"] = category
        try:
            rows = self.store.select(PROFILES_TABLE, filters)
        except StoreError as e:
            raise HTTPException(status_code=503, detail=f"Failed to load suppliers: {e.message}")

        profiles = [Profile(**row) for row in rows]
        if search:
            needle = search.strip().lower()
            profiles = [
                p for p in profiles
                if needle in p.display_name.lower() or needle in (p.address or "").lower()
            ]
        if sort == "newest":
            profiles.sort(key=lambda p: p.created_at.timestamp() if p.created_at else 0.0, reverse=True)
        else:
            profiles.sort(key=lambda p: p.display_name.lower())

        cards = [self._to_card(p) for p in profiles]
        return SupplierListResponse(category=category, total=len(cards), suppliers=cards)

    @staticmethod
    def _to_card(profile: Profile) -> SupplierCard:
        return SupplierCard(
            id=profile.id,
            name=profile.display_name,
            email=profile.email,
            location=profile.address or "Location not specified",
            phone=profile.phone or "Not provided",
            service_type=profile.service_type,
            image=SERVICE_CATEGORIES.get(profile.service_type or "", DEFAULT_SUPPLIER_IMAGE),
        )

    def actor_for(self, user: AuthUser) -> Actor:
        """Build the acting party: role from metadata, display name from the profile."""
        profile = self.ensure_profile(user)
        return Actor(id=user.id, email=user.email, role=user.role, name=profile.display_name)
