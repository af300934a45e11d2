"""
Twilio SMS Service
Sends SMS through the Twilio REST API, using the tenant's own Twilio
integration when configured and the platform account otherwise.
"""

import logging
from typing import Optional

import httpx

from ..config import TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_FROM_NUMBER

logger = logging.getLogger(__name__)

TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"


async def send_sms(
    to_phone: str,
    message_body: str,
    credentials: Optional[dict] = None,
) -> tuple[bool, Optional[str], Optional[str]]:
    """
    Send SMS via Twilio

    Args:
        to_phone: Recipient phone number in E.164 format
        message_body: SMS message content
        credentials: Decrypted tenant credentials
            {account_sid, auth_token, from_number | messaging_service_sid}

    Returns:
        (success, message_sid, error_message)
    """
    if not to_phone:
        return False, None, "No phone number provided"
    if not to_phone.startswith("+"):
        logger.warning(f"Phone number not in E.164 format: {to_phone}")
        return False, None, "Phone number must be in E.164 format (e.g., +5511999999999)"

    credentials = credentials or {}
    account_sid = credentials.get("account_sid") or TWILIO_ACCOUNT_SID
    auth_token = credentials.get("auth_token") or TWILIO_AUTH_TOKEN
    if not account_sid or not auth_token:
        logger.warning("⚠️ Twilio not configured - SMS not sent")
        return False, None, "SMS provider not configured"

    data = {"To": to_phone, "Body": message_body}
    if credentials.get("messaging_service_sid"):
        data["MessagingServiceSid"] = credentials["messaging_service_sid"]
    else:
        data["From"] = credentials.get("from_number") or TWILIO_FROM_NUMBER

    try:
        logger.info(f"📱 Sending SMS to {to_phone}")
        async with httpx.AsyncClient() as client:
            response = await client.post(
                TWILIO_API_URL.format(account_sid=account_sid),
                auth=(account_sid, auth_token),
                data=data,
                timeout=10.0,
            )

        logger.info(f"📡 Twilio API response status: {response.status_code}")
        if response.status_code in (200, 201):
            message_sid = response.json().get("sid")
            logger.info(f"✅ SMS sent to {to_phone} (sid={message_sid})")
            return True, message_sid, None

        error_message = response.json().get("message", response.text)
        logger.error(f"❌ Twilio rejected SMS to {to_phone}: {error_message}")
        return False, None, error_message
    except httpx.HTTPError as e:
        logger.error(f"❌ SMS request to Twilio failed: {str(e)}")
        return False, None, str(e)


async def verify_credentials(credentials: dict) -> tuple[bool, Optional[str]]:
    """Check a Twilio account SID / auth token pair by fetching the account"""
    account_sid = credentials.get("account_sid")
    auth_token = credentials.get("auth_token")
    if not account_sid or not auth_token:
        return False, "account_sid and auth_token are required"
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"https://api.twilio.com/2010-04-01/Accounts/{account_sid}.json",
                auth=(account_sid, auth_token),
                timeout=10.0,
            )
        if response.status_code == 200:
            return True, None
        return False, f"Twilio returned HTTP {response.status_code}"
    except httpx.HTTPError as e:
        return False, str(e)
