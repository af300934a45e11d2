"""
Security utilities: password hashing, JWT tokens, API keys and credential encryption.
"""

import base64
import hashlib
import json
import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Any, Optional

import bleach
from cryptography.fernet import Fernet, InvalidToken
from jose import JWTError
from jose import jwt as jose_jwt
from passlib.context import CryptContext

from .config import (
    ENCRYPTION_KEY,
    JWT_ACCESS_EXPIRES_MINUTES,
    JWT_ALGORITHM,
    JWT_REFRESH_EXPIRES_DAYS,
    JWT_REFRESH_SECRET,
    JWT_SECRET,
)

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

API_KEY_PREFIX = "glm_"


# ============================================================================
# PASSWORD SECURITY
# ============================================================================


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against argon2 hash"""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception as e:
        logger.error(f"Password verification error: {e}")
        return False


def generate_verification_code() -> str:
    """Six digit numeric code for email verification and password reset"""
    return f"{secrets.randbelow(1_000_000):06d}"


# ============================================================================
# JWT ACCESS / REFRESH TOKENS
# ============================================================================


def create_access_token(user_id: str, tenant_id: str, role: str, email: str) -> str:
    expire = datetime.utcnow() + timedelta(minutes=JWT_ACCESS_EXPIRES_MINUTES)
    payload = {
        "sub": user_id,
        "tenantId": tenant_id,
        "role": role,
        "email": email,
        "type": "access",
        "exp": expire,
    }
    return jose_jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def create_refresh_token(user_id: str, tenant_id: str) -> tuple[str, str, datetime]:
    """
    Create a refresh token.

    Returns:
        (token, jti, expires_at); the jti hash is persisted for rotation
    """
    jti = str(uuid.uuid4())
    expires_at = datetime.utcnow() + timedelta(days=JWT_REFRESH_EXPIRES_DAYS)
    payload = {
        "sub": user_id,
        "tenantId": tenant_id,
        "type": "refresh",
        "jti": jti,
        "exp": expires_at,
    }
    token = jose_jwt.encode(payload, JWT_REFRESH_SECRET, algorithm=JWT_ALGORITHM)
    return token, jti, expires_at


def decode_access_token(token: str) -> Optional[dict[str, Any]]:
    """Decoded payload if valid, None if invalid, expired or not an access token"""
    try:
        payload = jose_jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        return None
    if payload.get("type") != "access":
        return None
    return payload


def decode_refresh_token(token: str) -> Optional[dict[str, Any]]:
    try:
        payload = jose_jwt.decode(token, JWT_REFRESH_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"Refresh token verification failed: {e}")
        return None
    if payload.get("type") != "refresh" or not payload.get("jti"):
        return None
    return payload


def hash_token(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


# ============================================================================
# API KEYS
# ============================================================================


def generate_api_key() -> tuple[str, str, str]:
    """
    Generate a new API key.

    Returns:
        (full_key, prefix, key_hash); full_key is shown to the user once
    """
    raw = secrets.token_urlsafe(32)
    return f"{API_KEY_PREFIX}{raw}", raw[:8], hash_token(raw)


def split_api_key(full_key: str) -> Optional[tuple[str, str]]:
    """Return (prefix, key_hash) for a presented key, None if malformed"""
    if not full_key or not full_key.startswith(API_KEY_PREFIX):
        return None
    raw = full_key[len(API_KEY_PREFIX) :]
    if len(raw) < 8:
        return None
    return raw[:8], hash_token(raw)


# ============================================================================
# CREDENTIAL ENCRYPTION
# ============================================================================


def _get_cipher() -> Fernet:
    if ENCRYPTION_KEY:
        return Fernet(ENCRYPTION_KEY.encode())
    # Development fallback derived from the JWT secret
    return Fernet(_derive_key(JWT_SECRET))


def _derive_key(secret: str) -> bytes:
    return base64.urlsafe_b64encode(hashlib.sha256(secret.encode()).digest())


def encrypt_credentials(credentials: dict) -> str:
    return _get_cipher().encrypt(json.dumps(credentials).encode()).decode()


def decrypt_credentials(encrypted: Optional[str]) -> dict:
    if not encrypted:
        return {}
    try:
        return json.loads(_get_cipher().decrypt(encrypted.encode()).decode())
    except InvalidToken as e:
        logger.error("❌ Failed to decrypt integration credentials")
        raise ValueError("Unable to decrypt credentials") from e


def mask_sensitive_data(data: str, visible_chars: int = 4) -> str:
    """Mask a secret for display, keeping the last few characters"""
    if not data or len(data) <= visible_chars:
        return "*" * len(data or "")
    return "*" * (len(data) - visible_chars) + data[-visible_chars:]


# ============================================================================
# INPUT SANITIZATION
# ============================================================================

ALLOWED_HTML_TAGS = [
    "p",
    "br",
    "strong",
    "em",
    "u",
    "a",
    "ul",
    "ol",
    "li",
    "h1",
    "h2",
    "h3",
    "blockquote",
    "span",
    "div",
    "img",
    "table",
    "tr",
    "td",
]


def sanitize_html(html_content: str, allowed_tags: Optional[list] = None) -> str:
    """
    Sanitize HTML content of notification templates.
    """
    allowed_attributes = {"a": ["href", "title", "target"], "img": ["src", "alt"], "*": ["class"]}

    return bleach.clean(
        html_content,
        tags=allowed_tags or ALLOWED_HTML_TAGS,
        attributes=allowed_attributes,
        strip=True,
    )
