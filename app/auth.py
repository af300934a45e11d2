import logging
from datetime import datetime
from typing import Optional

from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session, joinedload

from .database import get_db
from .models import User
from .models_integration import ApiKey
from .plan_limits import has_feature
from .security_middleware import set_rls_context
from .security_utils import decode_access_token, split_api_key
from .tenancy import build_tenant_context, ensure_valid_tenant, set_tenant_context

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

ROLES = ("SUPER_ADMIN", "OWNER", "MANAGER", "PROFESSIONAL", "RECEPTIONIST")
MANAGEMENT_ROLES = ("SUPER_ADMIN", "OWNER", "MANAGER")


def _activate_tenant(db: Session, user: User) -> User:
    ensure_valid_tenant(user.tenant)
    set_tenant_context(build_tenant_context(user.tenant))
    set_rls_context(db, user.tenant_id)
    return user


def _user_from_api_key(db: Session, api_key: str) -> User:
    parts = split_api_key(api_key)
    if not parts:
        raise HTTPException(status_code=401, detail="Invalid API key")
    prefix, key_hash = parts

    key = (
        db.query(ApiKey)
        .filter(ApiKey.prefix == prefix, ApiKey.key_hash == key_hash, ApiKey.is_active.is_(True))
        .first()
    )
    if not key or (key.expires_at and key.expires_at < datetime.utcnow()):
        logger.warning(f"🚫 Rejected API key with prefix {prefix}")
        raise HTTPException(status_code=401, detail="Invalid API key")

    user = (
        db.query(User)
        .options(joinedload(User.tenant))
        .filter(User.id == key.created_by, User.tenant_id == key.tenant_id)
        .first()
    )
    if not user or user.status != "ACTIVE":
        raise HTTPException(status_code=401, detail="API key owner is not active")
    if not has_feature(user.tenant, "api_access"):
        raise HTTPException(status_code=403, detail="Feature 'api_access' is not available on your plan")

    key.last_used_at = datetime.utcnow()
    db.commit()
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the authenticated user from a bearer access token (or X-API-Key),
    then set the tenant context and the RLS session variable.
    """
    if credentials is None:
        if x_api_key:
            return _activate_tenant(db, _user_from_api_key(db, x_api_key))
        raise HTTPException(status_code=401, detail="Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user = (
        db.query(User)
        .options(joinedload(User.tenant))
        .filter(User.id == payload.get("sub"), User.tenant_id == payload.get("tenantId"))
        .first()
    )
    if not user:
        logger.warning(f"⚠️ Token subject {payload.get('sub')} not found")
        raise HTTPException(status_code=401, detail="User not found")
    if user.status != "ACTIVE":
        raise HTTPException(status_code=401, detail="User account is not active")

    return _activate_tenant(db, user)


def require_roles(*roles: str):
    """Dependency factory: 403 unless the current user has one of `roles`"""

    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles and current_user.role != "SUPER_ADMIN":
            logger.warning(
                f"🚫 User {current_user.id} with role {current_user.role} denied (needs {roles})"
            )
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return current_user

    return dependency
