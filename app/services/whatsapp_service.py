"""
WhatsApp Cloud API client.
"""

import logging
from typing import Optional

import httpx

from ..config import WHATSAPP_ACCESS_TOKEN, WHATSAPP_API_URL, WHATSAPP_PHONE_NUMBER_ID

logger = logging.getLogger(__name__)


def _resolve(credentials: Optional[dict]) -> tuple[Optional[str], Optional[str]]:
    credentials = credentials or {}
    return (
        credentials.get("phone_number_id") or WHATSAPP_PHONE_NUMBER_ID,
        credentials.get("access_token") or WHATSAPP_ACCESS_TOKEN,
    )


async def _post_message(payload: dict, credentials: Optional[dict]) -> tuple[bool, Optional[str], Optional[str]]:
    phone_number_id, access_token = _resolve(credentials)
    if not phone_number_id or not access_token:
        logger.warning("⚠️ WhatsApp not configured - message not sent")
        return False, None, "WhatsApp provider not configured"

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{WHATSAPP_API_URL}/{phone_number_id}/messages",
                headers={"Authorization": f"Bearer {access_token}"},
                json=payload,
                timeout=15.0,
            )
        if response.status_code in (200, 201):
            messages = response.json().get("messages") or [{}]
            message_id = messages[0].get("id")
            logger.info(f"✅ WhatsApp message sent to {payload.get('to')} (id={message_id})")
            return True, message_id, None

        error = response.json().get("error", {}).get("message", response.text)
        logger.error(f"❌ WhatsApp API error {response.status_code}: {error}")
        return False, None, error
    except httpx.HTTPError as e:
        logger.error(f"❌ WhatsApp request failed: {str(e)}")
        return False, None, str(e)


def _to_wa_number(phone: str) -> str:
    return phone.lstrip("+")


async def send_text_message(
    to_phone: str, body: str, credentials: Optional[dict] = None
) -> tuple[bool, Optional[str], Optional[str]]:
    """Send a plain text message. Returns (success, message_id, error)"""
    payload = {
        "messaging_product": "whatsapp",
        "to": _to_wa_number(to_phone),
        "type": "text",
        "text": {"preview_url": False, "body": body},
    }
    return await _post_message(payload, credentials)


async def send_template_message(
    to_phone: str,
    template_name: str,
    language: str = "pt_BR",
    parameters: Optional[list[str]] = None,
    credentials: Optional[dict] = None,
) -> tuple[bool, Optional[str], Optional[str]]:
    """Send an approved template message with positional body parameters"""
    template = {"name": template_name, "language": {"code": language}}
    if parameters:
        template["components"] = [
            {"type": "body", "parameters": [{"type": "text", "text": p} for p in parameters]}
        ]
    payload = {
        "messaging_product": "whatsapp",
        "to": _to_wa_number(to_phone),
        "type": "template",
        "template": template,
    }
    return await _post_message(payload, credentials)


async def verify_credentials(credentials: dict) -> tuple[bool, Optional[str]]:
    """Fetch the phone number object to check the token"""
    phone_number_id, access_token = _resolve(credentials)
    if not phone_number_id or not access_token:
        return False, "phone_number_id and access_token are required"
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"{WHATSAPP_API_URL}/{phone_number_id}",
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=10.0,
            )
        if response.status_code == 200:
            return True, None
        return False, f"WhatsApp API returned HTTP {response.status_code}"
    except httpx.HTTPError as e:
        return False, str(e)
