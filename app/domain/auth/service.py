"""Auth service - registration, login and token rotation"""

import logging
import secrets
from datetime import datetime, timedelta

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import JWT_ACCESS_EXPIRES_MINUTES, TRIAL_DAYS, VERIFICATION_CODE_MINUTES
from ...models import Tenant, User
from ...plan_limits import enforce_limit
from ...security_utils import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    generate_verification_code,
    hash_password,
    hash_token,
    verify_password,
)
from ...services.email_service import (
    send_password_reset_email,
    send_staff_invitation_email,
    send_verification_code_email,
)
from ...shared.validators import slugify
from ...tenancy import validate_tenant
from .repository import UserRepository
from .schemas import (
    ChangePasswordRequest,
    RegisterRequest,
    ResetPasswordRequest,
    StaffCreate,
    StaffUpdate,
    UserResponse,
)

logger = logging.getLogger(__name__)


class AuthService:
    """Service layer for authentication and staff accounts"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = UserRepository()

    # ------------------------------------------------------------------
    # Registration and verification
    # ------------------------------------------------------------------

    def _unique_slug(self, business_name: str) -> str:
        base = slugify(business_name) or "salon"
        slug = base
        suffix = 2
        while self.repo.slug_exists(self.db, slug):
            slug = f"{base}-{suffix}"
            suffix += 1
        return slug

    def _new_code(self, user: User) -> str:
        code = generate_verification_code()
        user.verification_code = code
        user.verification_expires_at = datetime.utcnow() + timedelta(minutes=VERIFICATION_CODE_MINUTES)
        return code

    def register(self, data: RegisterRequest) -> dict:
        """Create a trial tenant and its owner account (status PENDING until verified)"""
        logger.info(f"📥 Registration request for {data.email}")

        if self.repo.get_by_email(self.db, data.email):
            logger.warning(f"⚠️ Registration with existing email {data.email}")
            raise HTTPException(status_code=409, detail="Email already registered")

        tenant = Tenant(
            name=data.business_name,
            slug=self._unique_slug(data.business_name),
            email=data.email,
            phone=data.phone,
            status="TRIAL",
            plan_type="FREE",
            trial_ends_at=datetime.utcnow() + timedelta(days=TRIAL_DAYS),
            feature_overrides={},
            settings={},
        )
        owner = User(
            name=data.name,
            email=data.email,
            phone=data.phone,
            password_hash=hash_password(data.password),
            role="OWNER",
            status="PENDING",
        )
        code = self._new_code(owner)
        owner = self.repo.create_tenant_with_owner(self.db, tenant, owner)

        send_verification_code_email(owner.email, owner.name, code)
        logger.info(f"✅ Tenant {tenant.slug} registered with owner {owner.id}")

        return {
            "message": "Registration successful. Check your email for the verification code.",
            "user_id": owner.id,
            "tenant_id": owner.tenant_id,
            "email": owner.email,
        }

    def verify_email(self, email: str, code: str) -> dict:
        user = self.repo.get_by_email(self.db, email)
        if (
            not user
            or not user.verification_code
            or user.verification_code != code
            or not user.verification_expires_at
            or user.verification_expires_at < datetime.utcnow()
        ):
            raise HTTPException(status_code=400, detail="Invalid or expired verification code")

        user.status = "ACTIVE"
        user.email_verified_at = datetime.utcnow()
        user.verification_code = None
        user.verification_expires_at = None
        self.repo.save(self.db, user)
        logger.info(f"✅ Email verified for user {user.id}")
        return self._issue_tokens(user)

    def resend_code(self, email: str) -> dict:
        """Always returns the same message so emails cannot be enumerated"""
        user = self.repo.get_by_email(self.db, email)
        if user and user.status == "PENDING":
            code = self._new_code(user)
            self.repo.save(self.db, user)
            send_verification_code_email(user.email, user.name, code)
        return {"message": "If the account exists, a new code was sent"}

    # ------------------------------------------------------------------
    # Login and tokens
    # ------------------------------------------------------------------

    def _issue_tokens(self, user: User) -> dict:
        access_token = create_access_token(user.id, user.tenant_id, user.role, user.email)
        refresh_token, jti, expires_at = create_refresh_token(user.id, user.tenant_id)
        self.repo.add_refresh_token(self.db, user.id, hash_token(jti), expires_at)
        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "bearer",
            "expires_in": JWT_ACCESS_EXPIRES_MINUTES * 60,
            "user": UserResponse.model_validate(user),
        }

    def login(self, email: str, password: str) -> dict:
        user = self.repo.get_by_email(self.db, email)
        if not user:
            raise HTTPException(status_code=401, detail="Invalid email or password")

        if not verify_password(password, user.password_hash):
            user.failed_logins = (user.failed_logins or 0) + 1
            self.repo.save(self.db, user)
            logger.warning(f"⚠️ Failed login for {email} ({user.failed_logins} attempts)")
            raise HTTPException(status_code=401, detail="Invalid email or password")

        if user.status == "PENDING":
            self.resend_code(user.email)
            raise HTTPException(
                status_code=401, detail="Email not verified. A new verification code was sent."
            )
        if user.status != "ACTIVE":
            raise HTTPException(status_code=401, detail="User account is not active")

        is_valid, error = validate_tenant(user.tenant)
        if not is_valid:
            raise HTTPException(status_code=403, detail=error)

        user.failed_logins = 0
        user.last_login_at = datetime.utcnow()
        self.repo.save(self.db, user)
        logger.info(f"✅ User {user.id} logged in")
        return self._issue_tokens(user)

    def refresh(self, refresh_token: str) -> dict:
        """Rotate a refresh token: the presented token is revoked and a new pair issued"""
        payload = decode_refresh_token(refresh_token)
        if not payload:
            raise HTTPException(status_code=401, detail="Invalid refresh token")

        stored = self.repo.get_refresh_token(self.db, hash_token(payload["jti"]))
        if not stored:
            raise HTTPException(status_code=401, detail="Invalid refresh token")
        if stored.revoked_at is not None:
            # A revoked token was replayed: revoke the whole family
            self.repo.revoke_all_refresh_tokens(self.db, stored.user_id)
            logger.warning(f"🚫 Refresh token reuse detected for user {stored.user_id}")
            raise HTTPException(status_code=401, detail="Refresh token has been revoked")

        user = self.repo.get_by_id(self.db, payload["sub"], payload.get("tenantId"))
        if not user or user.status != "ACTIVE":
            raise HTTPException(status_code=401, detail="User account is not active")

        stored.revoked_at = datetime.utcnow()
        self.db.commit()
        return self._issue_tokens(user)

    def logout(self, refresh_token: str) -> dict:
        payload = decode_refresh_token(refresh_token)
        if payload:
            stored = self.repo.get_refresh_token(self.db, hash_token(payload["jti"]))
            if stored and stored.revoked_at is None:
                stored.revoked_at = datetime.utcnow()
                self.db.commit()
        return {"message": "Logged out"}

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def change_password(self, user: User, data: ChangePasswordRequest) -> dict:
        if not verify_password(data.current_password, user.password_hash):
            raise HTTPException(status_code=400, detail="Current password is incorrect")
        user.password_hash = hash_password(data.new_password)
        self.repo.save(self.db, user)
        self.repo.revoke_all_refresh_tokens(self.db, user.id)
        return {"message": "Password changed"}

    def forgot_password(self, email: str) -> dict:
        user = self.repo.get_by_email(self.db, email)
        if user and user.status == "ACTIVE":
            user.reset_code = generate_verification_code()
            user.reset_expires_at = datetime.utcnow() + timedelta(minutes=VERIFICATION_CODE_MINUTES)
            self.repo.save(self.db, user)
            send_password_reset_email(user.email, user.name, user.reset_code)
        return {"message": "If the account exists, a reset code was sent"}

    def reset_password(self, data: ResetPasswordRequest) -> dict:
        user = self.repo.get_by_email(self.db, data.email)
        if (
            not user
            or not user.reset_code
            or user.reset_code != data.code
            or not user.reset_expires_at
            or user.reset_expires_at < datetime.utcnow()
        ):
            raise HTTPException(status_code=400, detail="Invalid or expired reset code")
        user.password_hash = hash_password(data.new_password)
        user.reset_code = None
        user.reset_expires_at = None
        user.failed_logins = 0
        self.repo.save(self.db, user)
        self.repo.revoke_all_refresh_tokens(self.db, user.id)
        return {"message": "Password reset"}

    # ------------------------------------------------------------------
    # Staff accounts
    # ------------------------------------------------------------------

    def list_users(self, current_user: User) -> list[User]:
        return self.repo.list_by_tenant(self.db, current_user.tenant_id)

    def create_user(self, data: StaffCreate, current_user: User) -> User:
        enforce_limit(self.db, current_user.tenant, "users")
        if self.repo.get_by_email(self.db, data.email):
            raise HTTPException(status_code=409, detail="Email already registered")

        temporary_password = secrets.token_urlsafe(9)
        user = User(
            tenant_id=current_user.tenant_id,
            name=data.name,
            email=data.email,
            phone=data.phone,
            role=data.role,
            status="ACTIVE",
            email_verified_at=None,
            password_hash=hash_password(temporary_password),
        )
        user = self.repo.create_user(self.db, user)
        send_staff_invitation_email(user.email, user.name, current_user.tenant.name, temporary_password)
        logger.info(f"✅ Staff user {user.id} created by {current_user.id}")
        return user

    def _get_user(self, user_id: str, current_user: User) -> User:
        user = self.repo.get_by_id(self.db, user_id, current_user.tenant_id)
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
        return user

    def update_user(self, user_id: str, data: StaffUpdate, current_user: User) -> User:
        user = self._get_user(user_id, current_user)
        if user.role == "OWNER" and current_user.role != "OWNER":
            raise HTTPException(status_code=403, detail="Only the owner can change the owner account")
        if data.role == "OWNER" and current_user.role != "OWNER":
            raise HTTPException(status_code=403, detail="Only the owner can grant the owner role")

        for key, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(user, key, value)
        return self.repo.save(self.db, user)

    def deactivate_user(self, user_id: str, current_user: User) -> dict:
        user = self._get_user(user_id, current_user)
        if user.id == current_user.id:
            raise HTTPException(status_code=400, detail="You cannot deactivate your own account")
        if user.role == "OWNER":
            raise HTTPException(status_code=400, detail="The owner account cannot be deactivated")
        user.status = "INACTIVE"
        self.repo.save(self.db, user)
        self.repo.revoke_all_refresh_tokens(self.db, user.id)
        return {"message": "User deactivated"}
