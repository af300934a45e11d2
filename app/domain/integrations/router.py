"""Integration router - providers, webhooks, API keys and the WhatsApp webhook"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from ...auth import MANAGEMENT_ROLES, require_roles
from ...config import WHATSAPP_APP_SECRET, WHATSAPP_VERIFY_TOKEN
from ...database import get_db
from ...models import User
from ...plan_limits import enforce_feature
from ...shared.pagination import Page, PageParams, page_params, paginate
from ...webhook_security import constant_time_compare, verify_whatsapp_webhook
from .schemas import (
    ApiKeyCreate,
    ApiKeyCreatedResponse,
    ApiKeyResponse,
    DeliveryResponse,
    IntegrationCreate,
    IntegrationResponse,
    IntegrationUpdate,
    WebhookCreate,
    WebhookCreatedResponse,
    WebhookResponse,
    WebhookUpdate,
    WhatsAppSendRequest,
)
from .service import IntegrationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/integrations", tags=["Integrations"])
whatsapp_webhook_router = APIRouter(prefix="/api/v1/webhooks/whatsapp", tags=["WhatsApp Webhook"])

admin_only = require_roles(*MANAGEMENT_ROLES)


def get_integration_service(db: Session = Depends(get_db)) -> IntegrationService:
    return IntegrationService(db)


# ============================================================================
# PROVIDER INTEGRATIONS
# ============================================================================


@router.get("", response_model=list[IntegrationResponse])
async def list_integrations(
    current_user: User = Depends(admin_only),
    service: IntegrationService = Depends(get_integration_service),
):
    return service.list_integrations(current_user)


@router.post("", response_model=IntegrationResponse, status_code=201)
async def create_integration(
    data: IntegrationCreate,
    current_user: User = Depends(admin_only),
    service: IntegrationService = Depends(get_integration_service),
):
    """Store provider credentials (encrypted at rest)"""
    return service.create_integration(data, current_user)


@router.get("/webhooks", response_model=list[WebhookResponse])
async def list_webhooks(
    current_user: User = Depends(admin_only),
    service: IntegrationService = Depends(get_integration_service),
):
    return service.list_webhooks(current_user)


@router.post("/webhooks", response_model=WebhookCreatedResponse, status_code=201)
async def create_webhook(
    data: WebhookCreate,
    current_user: User = Depends(admin_only),
    service: IntegrationService = Depends(get_integration_service),
):
    """The signing secret is only returned here"""
    return service.create_webhook(data, current_user)


@router.patch("/webhooks/{webhook_id}", response_model=WebhookResponse)
async def update_webhook(
    webhook_id: str,
    data: WebhookUpdate,
    current_user: User = Depends(admin_only),
    service: IntegrationService = Depends(get_integration_service),
):
    return service.update_webhook(webhook_id, data, current_user)


@router.delete("/webhooks/{webhook_id}")
async def delete_webhook(
    webhook_id: str,
    current_user: User = Depends(admin_only),
    service: IntegrationService = Depends(get_integration_service),
):
    return service.delete_webhook(webhook_id, current_user)


@router.get("/webhooks/{webhook_id}/deliveries", response_model=Page[DeliveryResponse])
async def list_deliveries(
    webhook_id: str,
    status: Optional[str] = Query(None),
    params: PageParams = Depends(page_params),
    current_user: User = Depends(admin_only),
    service: IntegrationService = Depends(get_integration_service),
):
    return paginate(service.list_deliveries(webhook_id, current_user, status), params)


@router.post("/webhooks/deliveries/{delivery_id}/retry", response_model=DeliveryResponse)
async def retry_delivery(
    delivery_id: str,
    current_user: User = Depends(admin_only),
    service: IntegrationService = Depends(get_integration_service),
):
    return await service.retry_delivery(delivery_id, current_user)


# ============================================================================
# API KEYS
# ============================================================================


@router.get("/api-keys", response_model=list[ApiKeyResponse])
async def list_api_keys(
    current_user: User = Depends(admin_only),
    service: IntegrationService = Depends(get_integration_service),
):
    return service.list_api_keys(current_user)


@router.post("/api-keys", response_model=ApiKeyCreatedResponse, status_code=201)
async def create_api_key(
    data: ApiKeyCreate,
    current_user: User = Depends(admin_only),
    service: IntegrationService = Depends(get_integration_service),
):
    """The full key is shown once; only its hash is stored"""
    enforce_feature(current_user.tenant, "api_access")
    return service.create_api_key(data, current_user)


@router.post("/api-keys/{key_id}/revoke", response_model=ApiKeyResponse)
async def revoke_api_key(
    key_id: str,
    current_user: User = Depends(admin_only),
    service: IntegrationService = Depends(get_integration_service),
):
    return service.revoke_api_key(key_id, current_user)


@router.delete("/api-keys/{key_id}")
async def delete_api_key(
    key_id: str,
    current_user: User = Depends(admin_only),
    service: IntegrationService = Depends(get_integration_service),
):
    return service.delete_api_key(key_id, current_user)


# ============================================================================
# WHATSAPP
# ============================================================================


@router.post("/whatsapp/send")
async def send_whatsapp(
    data: WhatsAppSendRequest,
    current_user: User = Depends(admin_only),
    service: IntegrationService = Depends(get_integration_service),
):
    enforce_feature(current_user.tenant, "whatsapp")
    return await service.send_whatsapp(data, current_user)


# Declared after the static paths so they are not captured as ids
@router.get("/{integration_id}", response_model=IntegrationResponse)
async def get_integration(
    integration_id: str,
    current_user: User = Depends(admin_only),
    service: IntegrationService = Depends(get_integration_service),
):
    return service.get_integration(integration_id, current_user)


@router.patch("/{integration_id}", response_model=IntegrationResponse)
async def update_integration(
    integration_id: str,
    data: IntegrationUpdate,
    current_user: User = Depends(admin_only),
    service: IntegrationService = Depends(get_integration_service),
):
    return service.update_integration(integration_id, data, current_user)


@router.delete("/{integration_id}")
async def delete_integration(
    integration_id: str,
    current_user: User = Depends(admin_only),
    service: IntegrationService = Depends(get_integration_service),
):
    return service.delete_integration(integration_id, current_user)


@router.post("/{integration_id}/activate", response_model=IntegrationResponse)
async def activate_integration(
    integration_id: str,
    current_user: User = Depends(admin_only),
    service: IntegrationService = Depends(get_integration_service),
):
    return service.set_active(integration_id, True, current_user)


@router.post("/{integration_id}/deactivate", response_model=IntegrationResponse)
async def deactivate_integration(
    integration_id: str,
    current_user: User = Depends(admin_only),
    service: IntegrationService = Depends(get_integration_service),
):
    return service.set_active(integration_id, False, current_user)


@router.post("/{integration_id}/test")
async def test_integration(
    integration_id: str,
    current_user: User = Depends(admin_only),
    service: IntegrationService = Depends(get_integration_service),
):
    return await service.test_integration(integration_id, current_user)


# ============================================================================
# WHATSAPP CLOUD API WEBHOOK (public)
# ============================================================================


@whatsapp_webhook_router.get("", response_class=PlainTextResponse)
async def verify_whatsapp_subscription(
    hub_mode: Optional[str] = Query(None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(None, alias="hub.challenge"),
):
    """Subscription handshake: echo the challenge when the verify token matches"""
    if (
        hub_mode == "subscribe"
        and WHATSAPP_VERIFY_TOKEN
        and hub_verify_token
        and constant_time_compare(hub_verify_token, WHATSAPP_VERIFY_TOKEN)
    ):
        logger.info("✅ WhatsApp webhook subscription verified")
        return hub_challenge or ""
    logger.warning("🚫 WhatsApp webhook verification rejected")
    raise HTTPException(status_code=403, detail="Verification failed")


@whatsapp_webhook_router.post("")
async def receive_whatsapp_webhook(
    request: Request,
    service: IntegrationService = Depends(get_integration_service),
):
    raw_body = await verify_whatsapp_webhook(request, WHATSAPP_APP_SECRET)
    try:
        payload = json.loads(raw_body or b"{}")
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    return service.handle_whatsapp_payload(payload)
