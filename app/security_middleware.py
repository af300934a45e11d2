"""
Response security headers and PostgreSQL row level security context.
"""

import logging
from typing import Callable

from fastapi import Request, Response
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

RLS_SETTING = "app.current_tenant_id"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}

# Public booking pages may be cached by the browser, tenant data may not
PRIVATE_PREFIX = "/api/v1/"
PUBLIC_PREFIX = "/api/v1/public/"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)

        path = request.url.path
        if path.startswith(PRIVATE_PREFIX) and not path.startswith(PUBLIC_PREFIX):
            response.headers["Cache-Control"] = "no-store"
        return response


def _supports_rls(db: Session) -> bool:
    bind = db.get_bind()
    return bind is not None and bind.dialect.name == "postgresql"


def set_rls_context(db: Session, tenant_id: str) -> None:
    """
    Set the tenant RLS context for a database session.

    Policies on tenant tables compare tenant_id with
    current_setting('app.current_tenant_id'), so every query on this session
    only sees rows of the authenticated tenant. Called by get_current_user.
    No-op on databases without row level security (SQLite in tests).
    """
    if not _supports_rls(db):
        return
    try:
        db.execute(
            text(f"SELECT set_config('{RLS_SETTING}', :tenant_id, false)"),
            {"tenant_id": str(tenant_id)},
        )
        logger.debug(f"RLS context set for tenant_id={tenant_id}")
    except Exception as e:
        logger.error(f"❌ Failed to set RLS context for tenant_id={tenant_id}: {e}")
        raise


def clear_rls_context(db: Session) -> None:
    """Reset the tenant setting before the connection goes back to the pool"""
    if not _supports_rls(db):
        return
    try:
        db.execute(text(f"SELECT set_config('{RLS_SETTING}', '', false)"))
    except Exception as e:
        logger.warning(f"⚠️ Failed to clear RLS context: {e}")
