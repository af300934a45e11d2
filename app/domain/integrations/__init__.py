from .router import router, whatsapp_webhook_router

__all__ = ["router", "whatsapp_webhook_router"]
