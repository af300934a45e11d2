import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

# Every model module must be imported before create_all and mapper configuration
from . import (
    models,  # noqa: F401
    models_appointment,  # noqa: F401
    models_commission,  # noqa: F401
    models_customer,  # noqa: F401
    models_financial,  # noqa: F401
    models_integration,  # noqa: F401
    models_inventory,  # noqa: F401
    models_marketing,  # noqa: F401
    models_notification,  # noqa: F401
)
from .config import ALLOWED_ORIGINS, CACHE_ENABLED, ENVIRONMENT, RATE_LIMIT_ENABLED, SECURITY_HEADERS_ENABLED
from .database import Base, engine, get_db
from .domain.appointments import router as appointments_router
from .domain.auth import router as auth_router
from .domain.auth import users_router
from .domain.booking import router as booking_router
from .domain.catalog import router as catalog_router
from .domain.commissions import router as commissions_router
from .domain.customers import router as customers_router
from .domain.financial import router as financial_router
from .domain.integrations import router as integrations_router
from .domain.integrations import whatsapp_webhook_router
from .domain.inventory import router as inventory_router
from .domain.marketing import router as marketing_router
from .domain.notifications import router as notifications_router
from .domain.professionals import router as professionals_router
from .domain.tenants import router as tenants_router
from .rate_limiter import get_redis_client
from .security_middleware import SecurityHeadersMiddleware
from .tenancy import clear_tenant_context

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

ROUTERS = (
    auth_router,
    users_router,
    tenants_router,
    professionals_router,
    catalog_router,
    customers_router,
    appointments_router,
    financial_router,
    commissions_router,
    inventory_router,
    marketing_router,
    notifications_router,
    integrations_router,
    whatsapp_webhook_router,
    booking_router,
)


def _redis_status() -> str:
    if not (RATE_LIMIT_ENABLED or CACHE_ENABLED):
        return "disabled"
    try:
        get_redis_client().ping()
        return "ok"
    except Exception as e:
        logger.warning(f"⚠️ Redis unavailable: {e}")
        return "unavailable"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"🚀 Glamo API starting ({ENVIRONMENT})")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
    except Exception as e:
        # Several workers racing on the same schema
        if "already exists" in str(e) or "duplicate key" in str(e):
            logger.info("Database tables already created by another worker")
        else:
            logger.error(f"❌ Failed to create database tables: {e}")
            raise

    if _redis_status() == "unavailable":
        logger.warning("⚠️ Rate limits count per process and the public catalog is served uncached")

    yield
    logger.info("Glamo API shutting down")


app = FastAPI(title="Glamo API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """A missing or malformed Authorization header is a 401, not a 422"""
    if any("authorization" in str(error.get("loc", "")).lower() for error in exc.errors()):
        return JSONResponse(
            status_code=401,
            content={"detail": "Not authenticated. Send a Bearer token or X-API-Key header."},
        )

    logger.info(f"Validation failed for {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})


@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
    start = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"❌ [{request_id}] {request.method} {request.url.path} failed: {e}")
        raise
    finally:
        clear_tenant_context()

    elapsed_ms = (time.perf_counter() - start) * 1000
    response.headers["X-Request-ID"] = request_id
    if response.status_code >= 500:
        logger.error(f"❌ [{request_id}] {request.method} {request.url.path} {response.status_code} ({elapsed_ms:.0f}ms)")
    return response


if SECURITY_HEADERS_ENABLED:
    app.add_middleware(SecurityHeadersMiddleware)
else:
    logger.warning("⚠️ Security headers disabled")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in ALLOWED_ORIGINS.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "Retry-After"],
)

for api_router in ROUTERS:
    app.include_router(api_router)


@app.get("/")
def root():
    return {"message": "Glamo API is running"}


@app.get("/health")
def health(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except Exception as e:
        logger.error(f"❌ Health check database query failed: {e}")
        database = "unavailable"

    return {
        "status": "healthy" if database == "ok" else "unhealthy",
        "environment": ENVIRONMENT,
        "database": database,
        "redis": _redis_status(),
    }
