"""Main application entry point for the VoiceAuth backend."""

import os
import time
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import DEFAULT_ACCESS_SECRET, DEFAULT_REFRESH_SECRET, get_settings
from app.core.errors import register_exception_handlers
from app.db import init_db, close_db
from app.api.routes import api_router

# ─────────────────────────────────────────────────────────────
# Logging Setup
# ─────────────────────────────────────────────────────────────
settings = get_settings()

log_level = logging.DEBUG if settings.debug else logging.INFO

logging.basicConfig(
    level=log_level,
    format="%(asctime)s | %(levelname)-8s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("voiceauth")

# Suppress verbose SQLAlchemy logs outside debug
if not settings.debug:
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("passlib").setLevel(logging.ERROR)


# ─────────────────────────────────────────────────────────────
# Request logging + last-resort 500 envelope
# ─────────────────────────────────────────────────────────────
async def catch_exceptions_middleware(request: Request, call_next):
    started = time.perf_counter()
    try:
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f}ms)")
        return response
    except Exception as exc:
        logger.error(f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}: {exc}")
        logger.error(traceback.format_exc())
        content = {"success": False, "message": "Internal Server Error", "code": "INTERNAL_ERROR"}
        if not settings.is_production:
            content["errors"] = str(exc)
        return JSONResponse(status_code=500, content=content)


def log_environment_check() -> None:
    """Report which secrets are configured, never their values."""
    logger.info(f"Environment: {settings.app_env}")
    logger.info(f"ACCESS_TOKEN_SECRET: {'Set' if settings.access_token_secret != DEFAULT_ACCESS_SECRET else 'Default'}")
    logger.info(f"REFRESH_TOKEN_SECRET: {'Set' if settings.refresh_token_secret != DEFAULT_REFRESH_SECRET else 'Default'}")
    if settings.is_production and (
        settings.access_token_secret == DEFAULT_ACCESS_SECRET
        or settings.refresh_token_secret == DEFAULT_REFRESH_SECRET
    ):
        logger.warning("Default JWT secrets in use in production; set ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET")
    if settings.access_token_secret == settings.refresh_token_secret:
        logger.warning("Access and refresh tokens share one secret")


# ─────────────────────────────────────────────────────────────
# Lifespan: Startup + Shutdown
# ─────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    # ─── Startup ───
    logger.info(f"Starting up {settings.app_name} v{app.version}...")
    log_environment_check()

    await init_db()
    logger.info("Database tables initialized")

    logger.info(f"User API: {settings.effective_base_url}{settings.api_prefix}/users")
    yield

    # ─── Shutdown ───
    logger.info("Shutting down application...")
    await close_db()
    logger.info("Database connections closed")


# ─────────────────────────────────────────────────────────────
# FastAPI App
# ─────────────────────────────────────────────────────────────
app = FastAPI(
    title=settings.app_name,
    description="Voice authentication demo API: accounts, JWT sessions and voice samples",
    version="1.0.0",
    docs_url="/docs" if settings.debug else None,  # Hide docs in prod
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan,
    default_response_class=JSONResponse,
)

register_exception_handlers(app)

# ─────────────────────────────────────────────────────────────
# Security & Performance Middleware
# ─────────────────────────────────────────────────────────────
app.add_middleware(BaseHTTPMiddleware, dispatch=catch_exceptions_middleware)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=settings.allowed_hosts_list,
)

# Credentials are required for the refresh-token cookie
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=600,
)

# ─────────────────────────────────────────────────────────────
# Static Files (locally stored uploads)
# ─────────────────────────────────────────────────────────────
os.makedirs(settings.upload_dir, exist_ok=True)
app.mount(
    "/uploads",
    StaticFiles(directory=settings.upload_dir, html=False),
    name="uploads",
)

# ─────────────────────────────────────────────────────────────
# API Router
# ─────────────────────────────────────────────────────────────
app.include_router(api_router, prefix=settings.api_prefix)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "app": settings.app_name, "version": app.version}


# ─────────────────────────────────────────────────────────────
# Run with Uvicorn (only when running directly)
# ─────────────────────────────────────────────────────────────
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="info" if not settings.debug else "debug",
    )
