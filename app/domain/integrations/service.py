"""Integration service - provider credentials, webhooks, API keys and WhatsApp"""

import logging
import secrets
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import User
from ...models_customer import Customer
from ...models_integration import ApiKey, Integration, Webhook, WebhookDelivery, WhatsAppMessage
from ...models_notification import Notification
from ...security_utils import decrypt_credentials, encrypt_credentials, generate_api_key
from ...services import twilio_service, whatsapp_service
from ...shared.validators import normalize_phone
from .schemas import (
    ApiKeyCreate,
    IntegrationCreate,
    IntegrationUpdate,
    WebhookCreate,
    WebhookUpdate,
    WhatsAppSendRequest,
)
from .webhooks import deliver

logger = logging.getLogger(__name__)

WHATSAPP_STATUS_MAP = {"delivered": "DELIVERED", "read": "READ", "failed": "FAILED"}


def get_provider_credentials(db: Session, tenant_id: str, provider: str) -> Optional[dict]:
    """Decrypted credentials of the tenant's ACTIVE integration for `provider`"""
    integration = (
        db.query(Integration)
        .filter(
            Integration.tenant_id == tenant_id,
            Integration.provider == provider,
            Integration.status == "ACTIVE",
        )
        .first()
    )
    if not integration or not integration.encrypted_credentials:
        return None
    try:
        return decrypt_credentials(integration.encrypted_credentials)
    except ValueError:
        logger.error(f"❌ Stored {provider} credentials for tenant {tenant_id} are unreadable")
        return None


class IntegrationService:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Integrations
    # ------------------------------------------------------------------

    @staticmethod
    def serialize(integration: Integration) -> dict:
        return {
            "id": integration.id,
            "provider": integration.provider,
            "name": integration.name,
            "config": integration.config,
            "status": integration.status,
            "has_credentials": bool(integration.encrypted_credentials),
            "last_error": integration.last_error,
            "last_tested_at": integration.last_tested_at,
            "last_test_result": integration.last_test_result,
            "created_at": integration.created_at,
        }

    def _get_integration(self, integration_id: str, current_user: User) -> Integration:
        integration = (
            self.db.query(Integration)
            .filter(Integration.id == integration_id, Integration.tenant_id == current_user.tenant_id)
            .first()
        )
        if not integration:
            raise HTTPException(status_code=404, detail="Integration not found")
        return integration

    def list_integrations(self, current_user: User) -> list[dict]:
        rows = (
            self.db.query(Integration)
            .filter(Integration.tenant_id == current_user.tenant_id)
            .order_by(Integration.created_at)
            .all()
        )
        return [self.serialize(i) for i in rows]

    def get_integration(self, integration_id: str, current_user: User) -> dict:
        return self.serialize(self._get_integration(integration_id, current_user))

    def create_integration(self, data: IntegrationCreate, current_user: User) -> dict:
        existing = (
            self.db.query(Integration)
            .filter(Integration.tenant_id == current_user.tenant_id, Integration.provider == data.provider)
            .first()
        )
        if existing and data.provider != "CUSTOM":
            raise HTTPException(status_code=409, detail=f"{data.provider} integration already exists")

        integration = Integration(
            tenant_id=current_user.tenant_id,
            provider=data.provider,
            name=data.name,
            encrypted_credentials=encrypt_credentials(data.credentials) if data.credentials else None,
            config=data.config,
            status="INACTIVE",
        )
        self.db.add(integration)
        self.db.commit()
        self.db.refresh(integration)
        logger.info(f"✅ {data.provider} integration created for tenant {current_user.tenant_id}")
        return self.serialize(integration)

    def update_integration(self, integration_id: str, data: IntegrationUpdate, current_user: User) -> dict:
        integration = self._get_integration(integration_id, current_user)
        if data.name is not None:
            integration.name = data.name
        if data.config is not None:
            integration.config = data.config
        if data.credentials is not None:
            integration.encrypted_credentials = encrypt_credentials(data.credentials)
        self.db.commit()
        self.db.refresh(integration)
        return self.serialize(integration)

    def delete_integration(self, integration_id: str, current_user: User) -> dict:
        integration = self._get_integration(integration_id, current_user)
        self.db.delete(integration)
        self.db.commit()
        return {"message": "Integration deleted"}

    def set_active(self, integration_id: str, active: bool, current_user: User) -> dict:
        integration = self._get_integration(integration_id, current_user)
        if active and not integration.encrypted_credentials:
            raise HTTPException(status_code=400, detail="Integration has no credentials")
        integration.status = "ACTIVE" if active else "INACTIVE"
        integration.last_error = None
        self.db.commit()
        self.db.refresh(integration)
        return self.serialize(integration)

    async def test_integration(self, integration_id: str, current_user: User) -> dict:
        """Ping the provider with the stored credentials and store the result"""
        integration = self._get_integration(integration_id, current_user)
        try:
            credentials = decrypt_credentials(integration.encrypted_credentials)
        except ValueError:
            credentials = {}

        if not credentials:
            ok, error = False, "No credentials configured"
        elif integration.provider == "TWILIO":
            ok, error = await twilio_service.verify_credentials(credentials)
        elif integration.provider == "WHATSAPP":
            ok, error = await whatsapp_service.verify_credentials(credentials)
        else:
            ok, error = True, None

        now = datetime.utcnow()
        integration.last_tested_at = now
        integration.last_test_result = {"success": ok, "error": error, "tested_at": now.isoformat()}
        if not ok:
            integration.status = "ERROR"
            integration.last_error = error
        elif integration.status == "ERROR":
            integration.status = "ACTIVE"
            integration.last_error = None
        self.db.commit()
        logger.info(f"🔍 Integration {integration.id} test: {'ok' if ok else error}")
        return {"success": ok, "error": error}

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def _get_webhook(self, webhook_id: str, current_user: User) -> Webhook:
        webhook = (
            self.db.query(Webhook)
            .filter(Webhook.id == webhook_id, Webhook.tenant_id == current_user.tenant_id)
            .first()
        )
        if not webhook:
            raise HTTPException(status_code=404, detail="Webhook not found")
        return webhook

    def list_webhooks(self, current_user: User) -> list[Webhook]:
        return (
            self.db.query(Webhook)
            .filter(Webhook.tenant_id == current_user.tenant_id)
            .order_by(Webhook.created_at)
            .all()
        )

    def create_webhook(self, data: WebhookCreate, current_user: User) -> Webhook:
        webhook = Webhook(
            tenant_id=current_user.tenant_id,
            name=data.name,
            url=str(data.url),
            events=data.events,
            headers=data.headers,
            secret=f"whsec_{secrets.token_hex(24)}",
            max_retries=data.max_retries,
            retry_interval=data.retry_interval,
        )
        self.db.add(webhook)
        self.db.commit()
        self.db.refresh(webhook)
        logger.info(f"✅ Webhook {webhook.id} created for events {data.events}")
        return webhook

    def update_webhook(self, webhook_id: str, data: WebhookUpdate, current_user: User) -> Webhook:
        webhook = self._get_webhook(webhook_id, current_user)
        for key, value in data.model_dump(exclude_unset=True).items():
            if value is None:
                continue
            setattr(webhook, key, str(value) if key == "url" else value)
        self.db.commit()
        self.db.refresh(webhook)
        return webhook

    def delete_webhook(self, webhook_id: str, current_user: User) -> dict:
        webhook = self._get_webhook(webhook_id, current_user)
        self.db.delete(webhook)
        self.db.commit()
        return {"message": "Webhook deleted"}

    def list_deliveries(self, webhook_id: str, current_user: User, status: Optional[str] = None):
        webhook = self._get_webhook(webhook_id, current_user)
        query = self.db.query(WebhookDelivery).filter(WebhookDelivery.webhook_id == webhook.id)
        if status:
            query = query.filter(WebhookDelivery.status == status.upper())
        return query.order_by(WebhookDelivery.created_at.desc())

    async def retry_delivery(self, delivery_id: str, current_user: User) -> WebhookDelivery:
        delivery = (
            self.db.query(WebhookDelivery)
            .filter(WebhookDelivery.id == delivery_id, WebhookDelivery.tenant_id == current_user.tenant_id)
            .first()
        )
        if not delivery:
            raise HTTPException(status_code=404, detail="Delivery not found")
        if delivery.status == "SENT":
            raise HTTPException(status_code=400, detail="Delivery already succeeded")

        # Manual retry gets a fresh attempt budget
        delivery.attempts = 0
        delivery.status = "PENDING"
        await deliver(self.db, delivery)
        self.db.refresh(delivery)
        return delivery

    # ------------------------------------------------------------------
    # API keys
    # ------------------------------------------------------------------

    def list_api_keys(self, current_user: User) -> list[ApiKey]:
        return (
            self.db.query(ApiKey)
            .filter(ApiKey.tenant_id == current_user.tenant_id)
            .order_by(ApiKey.created_at.desc())
            .all()
        )

    def create_api_key(self, data: ApiKeyCreate, current_user: User) -> dict:
        full_key, prefix, key_hash = generate_api_key()
        api_key = ApiKey(
            tenant_id=current_user.tenant_id,
            name=data.name,
            prefix=prefix,
            key_hash=key_hash,
            scopes=data.scopes,
            expires_at=data.expires_at,
            created_by=current_user.id,
        )
        self.db.add(api_key)
        self.db.commit()
        self.db.refresh(api_key)
        logger.info(f"🔑 API key {prefix}... created by user {current_user.id}")

        response = {c.name: getattr(api_key, c.name) for c in ApiKey.__table__.columns}
        response["key"] = full_key
        return response

    def _get_api_key(self, key_id: str, current_user: User) -> ApiKey:
        api_key = (
            self.db.query(ApiKey)
            .filter(ApiKey.id == key_id, ApiKey.tenant_id == current_user.tenant_id)
            .first()
        )
        if not api_key:
            raise HTTPException(status_code=404, detail="API key not found")
        return api_key

    def revoke_api_key(self, key_id: str, current_user: User) -> ApiKey:
        api_key = self._get_api_key(key_id, current_user)
        api_key.is_active = False
        api_key.revoked_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(api_key)
        return api_key

    def delete_api_key(self, key_id: str, current_user: User) -> dict:
        api_key = self._get_api_key(key_id, current_user)
        self.db.delete(api_key)
        self.db.commit()
        return {"message": "API key deleted"}

    # ------------------------------------------------------------------
    # WhatsApp
    # ------------------------------------------------------------------

    async def send_whatsapp(self, data: WhatsAppSendRequest, current_user: User) -> dict:
        credentials = get_provider_credentials(self.db, current_user.tenant_id, "WHATSAPP")
        to_phone = normalize_phone(data.to)
        if data.template_name:
            ok, message_id, error = await whatsapp_service.send_template_message(
                to_phone, data.template_name, data.language, data.parameters, credentials
            )
        elif data.body:
            ok, message_id, error = await whatsapp_service.send_text_message(to_phone, data.body, credentials)
        else:
            raise HTTPException(status_code=400, detail="Either body or template_name is required")

        if not ok:
            raise HTTPException(status_code=502, detail=f"WhatsApp send failed: {error}")

        self.db.add(
            WhatsAppMessage(
                tenant_id=current_user.tenant_id,
                wa_message_id=message_id or "",
                direction="OUTBOUND",
                from_phone=to_phone,
                message_type="template" if data.template_name else "text",
                body=data.body or data.template_name,
                status="sent",
            )
        )
        self.db.commit()
        return {"success": True, "message_id": message_id}

    def _tenant_for_phone_number_id(self, phone_number_id: Optional[str]) -> Optional[str]:
        if not phone_number_id:
            return None
        for integration in self.db.query(Integration).filter(Integration.provider == "WHATSAPP").all():
            if (integration.config or {}).get("phone_number_id") == phone_number_id:
                return integration.tenant_id
        return None

    def handle_whatsapp_payload(self, payload: dict) -> dict:
        """Store inbound messages and apply delivery status updates"""
        received = 0
        statuses = 0
        for entry in payload.get("entry", []):
            for change in entry.get("changes", []):
                value = change.get("value", {})
                tenant_id = self._tenant_for_phone_number_id(
                    value.get("metadata", {}).get("phone_number_id")
                )

                for message in value.get("messages", []):
                    from_phone = f"+{message.get('from', '')}"
                    customer = None
                    if tenant_id:
                        customer = (
                            self.db.query(Customer)
                            .filter(
                                Customer.tenant_id == tenant_id,
                                Customer.phone == from_phone,
                                Customer.deleted_at.is_(None),
                            )
                            .first()
                        )
                    self.db.add(
                        WhatsAppMessage(
                            tenant_id=tenant_id,
                            wa_message_id=message.get("id", ""),
                            direction="INBOUND",
                            from_phone=from_phone,
                            customer_id=customer.id if customer else None,
                            message_type=message.get("type"),
                            body=(message.get("text") or {}).get("body"),
                            status="received",
                            raw=message,
                        )
                    )
                    received += 1

                for status in value.get("statuses", []):
                    wa_id = status.get("id")
                    state = status.get("status")
                    for stored in self.db.query(WhatsAppMessage).filter(WhatsAppMessage.wa_message_id == wa_id):
                        stored.status = state
                    mapped = WHATSAPP_STATUS_MAP.get(state)
                    if mapped:
                        notification = (
                            self.db.query(Notification)
                            .filter(Notification.provider_message_id == wa_id)
                            .first()
                        )
                        if notification:
                            notification.status = mapped
                            if mapped == "READ":
                                notification.read_at = datetime.utcnow()
                    statuses += 1

        self.db.commit()
        logger.info(f"📥 WhatsApp webhook: {received} message(s), {statuses} status update(s)")
        return {"received": received, "statuses": statuses}
