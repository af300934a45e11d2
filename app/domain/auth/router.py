"""Auth router - registration, login, token rotation and staff management"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import MANAGEMENT_ROLES, get_current_user, require_roles
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from .schemas import (
    ChangePasswordRequest,
    EmailRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    StaffCreate,
    StaffUpdate,
    TokenResponse,
    UserResponse,
    VerifyEmailRequest,
)
from .service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])
users_router = APIRouter(prefix="/api/v1/users", tags=["Users"])

login_rate_limit = create_rate_limiter(limit=10, window_seconds=300, key_prefix="login")
register_rate_limit = create_rate_limiter(limit=5, window_seconds=3600, key_prefix="register")
code_rate_limit = create_rate_limiter(limit=5, window_seconds=900, key_prefix="auth_code")


def get_auth_service(db: Session = Depends(get_db)) -> AuthService:
    """Dependency injection for AuthService"""
    return AuthService(db)


# ============================================================================
# REGISTRATION
# ============================================================================


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    data: RegisterRequest,
    _: None = Depends(register_rate_limit),
    service: AuthService = Depends(get_auth_service),
):
    """Create a tenant and its owner account"""
    return service.register(data)


@router.post("/verify-email", response_model=TokenResponse)
async def verify_email(data: VerifyEmailRequest, service: AuthService = Depends(get_auth_service)):
    return service.verify_email(data.email, data.code)


@router.post("/resend-code")
async def resend_code(
    data: EmailRequest,
    _: None = Depends(code_rate_limit),
    service: AuthService = Depends(get_auth_service),
):
    return service.resend_code(data.email)


# ============================================================================
# SESSION
# ============================================================================


@router.post("/login", response_model=TokenResponse)
async def login(
    data: LoginRequest,
    _: None = Depends(login_rate_limit),
    service: AuthService = Depends(get_auth_service),
):
    return service.login(data.email, data.password)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(data: RefreshRequest, service: AuthService = Depends(get_auth_service)):
    """Exchange a refresh token for a new access/refresh pair"""
    return service.refresh(data.refresh_token)


@router.post("/logout")
async def logout(data: RefreshRequest, service: AuthService = Depends(get_auth_service)):
    return service.logout(data.refresh_token)


@router.get("/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/change-password")
async def change_password(
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    return service.change_password(current_user, data)


@router.post("/forgot-password")
async def forgot_password(
    data: EmailRequest,
    _: None = Depends(code_rate_limit),
    service: AuthService = Depends(get_auth_service),
):
    return service.forgot_password(data.email)


@router.post("/reset-password")
async def reset_password(data: ResetPasswordRequest, service: AuthService = Depends(get_auth_service)):
    return service.reset_password(data)


# ============================================================================
# STAFF USERS
# ============================================================================


@users_router.get("", response_model=list[UserResponse])
async def list_users(
    current_user: User = Depends(require_roles(*MANAGEMENT_ROLES)),
    service: AuthService = Depends(get_auth_service),
):
    return service.list_users(current_user)


@users_router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    data: StaffCreate,
    current_user: User = Depends(require_roles(*MANAGEMENT_ROLES)),
    service: AuthService = Depends(get_auth_service),
):
    """Invite a staff member; a temporary password is emailed"""
    return service.create_user(data, current_user)


@users_router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    data: StaffUpdate,
    current_user: User = Depends(require_roles(*MANAGEMENT_ROLES)),
    service: AuthService = Depends(get_auth_service),
):
    return service.update_user(user_id, data, current_user)


@users_router.delete("/{user_id}")
async def deactivate_user(
    user_id: str,
    current_user: User = Depends(require_roles(*MANAGEMENT_ROLES)),
    service: AuthService = Depends(get_auth_service),
):
    return service.deactivate_user(user_id, current_user)
