from fastapi import APIRouter, Depends
from app.core.dependencies import (
    get_current_token, get_current_user, get_identity_provider, get_profile_service,
)
from app.modules.auth.schemas import (
    AuthUser, LoginRequest, RegisterRequest, RegisterResponse, TokenResponse,
)
from app.modules.auth.service import IdentityProvider
from app.modules.profiles.schemas import Profile
from app.modules.profiles.service import ProfileService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=RegisterResponse, status_code=201)
def register(
    register_data: RegisterRequest,
    identity: IdentityProvider = Depends(get_identity_provider),
    profiles: ProfileService = Depends(get_profile_service),
):
    """Register a new admin or supplier and seed their profile"""
    user = identity.sign_up(register_data)
    profiles.ensure_profile(user)
    return RegisterResponse(
        user_id=user.id,
        email=user.email,
        role=user.role,
        message="User registered successfully"
    )


@router.post("/login", response_model=TokenResponse)
def login(
    login_data: LoginRequest,
    identity: IdentityProvider = Depends(get_identity_provider),
    profiles: ProfileService = Depends(get_profile_service),
):
    """Login, make sure a profile exists, and get an access token"""
    user, token = identity.sign_in(login_data)
    profiles.ensure_profile(user)
    return TokenResponse(
        access_token=token,
        user_id=user.id,
        email=user.email,
        role=user.role,
    )


@router.post("/logout", status_code=200)
def logout(
    token: str = Depends(get_current_token),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    """Logout and drop the cached session"""
    identity.sign_out(token)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=Profile)
def get_me(
    user: AuthUser = Depends(get_current_user),
    profiles: ProfileService = Depends(get_profile_service),
):
    """Current user's profile, with the role taken from auth metadata"""
    return profiles.ensure_profile(user)
