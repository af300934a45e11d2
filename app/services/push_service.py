"""
Push notifications through Firebase Cloud Messaging.
"""

import asyncio
import logging
from typing import Optional

import firebase_admin
from firebase_admin import credentials, messaging

from ..config import FIREBASE_CREDENTIALS_FILE, FIREBASE_PROJECT_ID

logger = logging.getLogger(__name__)


def _get_app() -> Optional[firebase_admin.App]:
    """Initialize Firebase Admin SDK once; None when not configured"""
    if not FIREBASE_PROJECT_ID:
        return None
    try:
        return firebase_admin.get_app()
    except ValueError:
        if FIREBASE_CREDENTIALS_FILE:
            cred = credentials.Certificate(FIREBASE_CREDENTIALS_FILE)
        else:
            cred = credentials.ApplicationDefault()
        app = firebase_admin.initialize_app(cred, {"projectId": FIREBASE_PROJECT_ID})
        logger.info("Firebase Admin initialized for push notifications")
        return app


def _send(token: str, title: str, body: str, data: Optional[dict]) -> str:
    message = messaging.Message(
        token=token,
        notification=messaging.Notification(title=title, body=body),
        data={k: str(v) for k, v in (data or {}).items()},
    )
    return messaging.send(message, app=_get_app())


async def send_push(
    token: str, title: str, body: str, data: Optional[dict] = None
) -> tuple[bool, Optional[str], Optional[str]]:
    """Send to one device token. Returns (success, message_id, error)"""
    if not token:
        return False, None, "No device token"
    if not FIREBASE_PROJECT_ID:
        logger.warning("⚠️ FIREBASE_PROJECT_ID not configured - push not sent")
        return False, None, "Push provider not configured"

    try:
        message_id = await asyncio.to_thread(_send, token, title, body, data)
        logger.info(f"✅ Push sent (id={message_id})")
        return True, message_id, None
    except Exception as e:
        logger.error(f"❌ Push delivery failed: {str(e)}")
        return False, None, str(e)
