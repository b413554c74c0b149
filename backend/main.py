# main.py - Add-on Lifecycle Engine API
# Serves the tenant add-on router plus /health. Every response carries the
# request id it was logged under, so engine log lines can be matched to calls.

import os
import uuid
import time
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from database import DATABASE_URL, async_session_maker, init_db, close_db
from models import Addon, TenantAddon
from telemetry import setup_telemetry, SERVICE_NAME, SERVICE_VERSION

# Logging
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
)
logger = logging.getLogger("addon-engine")

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

# Installation state is tenant data: never cache it, never frame it
API_RESPONSE_HEADERS = {
    "Cache-Control": "no-store",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
}


def _check_startup_config():
    """Warn about settings that break tenant isolation or install races."""
    warnings = []

    jwt_key = os.getenv("JWT_SECRET_KEY", "")
    if not jwt_key or len(jwt_key) < 32:
        warnings.append("⚠️  JWT_SECRET_KEY is not set or shorter than 32 chars, tokens will not survive a restart")

    if DATABASE_URL.startswith("sqlite"):
        warnings.append("⚠️  DATABASE_URL points at SQLite, FOR UPDATE is ignored, use Postgres in production")

    for w in warnings:
        logger.warning(w)

    return len(warnings) == 0


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"🚀 Starting {SERVICE_NAME} v{SERVICE_VERSION} ({ENVIRONMENT})")
    await init_db()
    _check_startup_config()
    # No-op unless OTEL_EXPORTER_OTLP_ENDPOINT is set
    setup_telemetry(app)
    yield
    logger.info(f"🛑 Shutting down {SERVICE_NAME}")
    await close_db()


app = FastAPI(
    title="Add-on Lifecycle Engine",
    description="Tenant add-on install, upgrade, enable/disable and uninstall with dependency resolution",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)

# ============================================================
# CORS
# ============================================================

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)


# ============================================================
# MIDDLEWARE: request id, access log, response headers
# ============================================================

@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000

    response.headers["X-Request-ID"] = request_id
    response.headers.update(API_RESPONSE_HEADERS)

    tenant_id = request.path_params.get("tenant_id", "-")
    logger.info(
        f"{request.method} {request.url.path} → {response.status_code} "
        f"{elapsed_ms:.1f}ms tenant={tenant_id} rid={request_id[:8]}"
    )
    return response


# ============================================================
# EXCEPTION HANDLERS
# ============================================================

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(err.get("loc", [])), "msg": str(err.get("msg", "")), "type": str(err.get("type", ""))}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=jsonable_encoder({
            "detail": errors,
            "request_id": getattr(request.state, "request_id", None),
        }),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "detail": {"error": "Internal server error", "code": "INTERNAL_ERROR"},
            "request_id": getattr(request.state, "request_id", None),
        },
    )


# ============================================================
# ROUTERS
# ============================================================

from routers import addons

app.include_router(addons.router)


# ============================================================
# HEALTH & ROOT
# ============================================================

@app.get("/health")
async def health_check():
    """Database reachability plus catalog and installation counts"""
    payload = {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "environment": ENVIRONMENT,
    }
    try:
        async with async_session_maker() as db:
            payload["catalog_addons"] = (await db.execute(select(func.count()).select_from(Addon))).scalar_one()
            payload["installations"] = (await db.execute(select(func.count()).select_from(TenantAddon))).scalar_one()
        payload["database"] = "connected"
        payload["status"] = "healthy"
    except SQLAlchemyError as e:
        logger.warning(f"Health check failed: {e}")
        payload["database"] = f"error: {str(e)[:100]}"
        payload["status"] = "degraded"
    return payload


@app.get("/")
async def root():
    return {
        "name": "Add-on Lifecycle Engine",
        "version": SERVICE_VERSION,
        "addons_api": "/api/v1/tenants/{tenant_id}/addons",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=ENVIRONMENT == "development",
        workers=int(os.getenv("WORKERS", 1)),
    )
