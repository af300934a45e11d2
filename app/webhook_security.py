"""
Webhook Security Module

Signing of outgoing webhooks and signature verification of inbound
messaging webhooks (WhatsApp Cloud API).
"""

import hashlib
import hmac
import logging

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def create_webhook_signature(secret: str, payload: bytes) -> str:
    """Signature sent in X-Webhook-Signature: sha256=<hex>"""
    return f"sha256={compute_hmac_sha256(secret, payload)}"


def verify_webhook_signature(secret: str, payload: bytes, signature_header: str) -> bool:
    """Verify a sha256=<hex> signature against the raw body"""
    if not signature_header or not signature_header.startswith("sha256="):
        return False
    return constant_time_compare(create_webhook_signature(secret, payload), signature_header)


async def verify_whatsapp_webhook(request: Request, app_secret: str) -> bytes:
    """
    Verify the X-Hub-Signature-256 header Meta sends with WhatsApp webhooks.

    Returns:
        Raw request body

    Raises:
        HTTPException 401 if the signature is missing or invalid
    """
    raw_body = await request.body()

    if not app_secret:
        logger.warning("⚠️ WHATSAPP_APP_SECRET not configured - skipping signature check")
        return raw_body

    signature = request.headers.get("X-Hub-Signature-256", "")
    if not verify_webhook_signature(app_secret, raw_body, signature):
        logger.warning("🚫 WhatsApp webhook signature verification failed")
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    logger.debug("✅ WhatsApp webhook signature verified")
    return raw_body
