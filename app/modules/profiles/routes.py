from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from app.core.dependencies import get_current_user, get_profile_service
from app.modules.auth.schemas import AuthUser
from app.modules.profiles.schemas import Profile, ProfileUpdate, SupplierListResponse
from app.modules.profiles.service import ProfileService

router = APIRouter(tags=["profiles"])


@router.get("/suppliers", response_model=SupplierListResponse)
def list_suppliers(
    category: Optional[str] = None,
    search: Optional[str] = None,
    sort: str = Query("name", pattern="^(name|newest)$"),
    user: AuthUser = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service),
):
    """Suppliers in a service category, e.g. ?category=Hotels&search=downtown"""
    return service.list_suppliers(category=category, search=search, sort=sort)


@router.get("/suppliers/{supplier_id}", response_model=Profile)
def get_supplier(
    supplier_id: str,
    user: AuthUser = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service),
):
    """Supplier profile page data"""
    return service.get_supplier(supplier_id)


@router.put("/profiles/me", response_model=Profile)
def update_my_profile(
    profile_data: ProfileUpdate,
    user: AuthUser = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service),
):
    """Edit the current user's own profile"""
    service.ensure_profile(user)
    return service.update_profile(user.id, profile_data)


@router.get("/profiles/{user_id}", response_model=Profile)
def get_profile(
    user_id: str,
    user: AuthUser = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service),
):
    """Get a profile by user id"""
    profile = service.get_profile(user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile
