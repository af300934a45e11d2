"""
Email delivery through Resend.
"""

import logging
from typing import Optional

import resend

from ..config import EMAIL_FROM_ADDRESS, FRONTEND_URL, RESEND_API_KEY

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


def send_email(
    to: str,
    subject: str,
    html_content: str,
    text_content: Optional[str] = None,
    from_address: Optional[str] = None,
) -> tuple[bool, Optional[str], Optional[str]]:
    """
    Send a single email.

    Returns:
        (success, provider_message_id, error_message)
    """
    if not RESEND_API_KEY:
        logger.warning(f"⚠️ RESEND_API_KEY not configured - email to {to} not sent")
        return False, None, "Email provider not configured"

    params = {
        "from": from_address or EMAIL_FROM_ADDRESS,
        "to": [to],
        "subject": subject,
        "html": html_content,
    }
    if text_content:
        params["text"] = text_content

    try:
        logger.info(f"📧 Sending email to {to}: {subject}")
        response = resend.Emails.send(params)
        message_id = response.get("id") if isinstance(response, dict) else None
        logger.info(f"✅ Email sent to {to} (id={message_id})")
        return True, message_id, None
    except Exception as e:
        logger.error(f"❌ Failed to send email to {to}: {str(e)}")
        return False, None, str(e)


def send_verification_code_email(to: str, name: str, code: str) -> bool:
    html = (
        f"<p>Olá {name},</p>"
        f"<p>Seu código de verificação é <strong>{code}</strong>.</p>"
        "<p>O código expira em 15 minutos.</p>"
    )
    success, _, _ = send_email(to, "Confirme seu email - Glamo", html)
    return success


def send_password_reset_email(to: str, name: str, code: str) -> bool:
    html = (
        f"<p>Olá {name},</p>"
        f"<p>Use o código <strong>{code}</strong> para redefinir sua senha.</p>"
        f'<p>Ou acesse <a href="{FRONTEND_URL}/reset-password">{FRONTEND_URL}/reset-password</a>.</p>'
    )
    success, _, _ = send_email(to, "Redefinição de senha - Glamo", html)
    return success


def send_staff_invitation_email(to: str, name: str, business_name: str, temporary_password: str) -> bool:
    html = (
        f"<p>Olá {name},</p>"
        f"<p>Você foi convidado para a equipe de <strong>{business_name}</strong> no Glamo.</p>"
        f"<p>Sua senha temporária é <strong>{temporary_password}</strong>. "
        f'Acesse <a href="{FRONTEND_URL}/login">{FRONTEND_URL}/login</a> e altere-a.</p>'
    )
    success, _, _ = send_email(to, f"Convite para {business_name} - Glamo", html)
    return success
