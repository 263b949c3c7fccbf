"""Main FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from src.api.dependencies import lock_service, supabase_service
from src.api.middleware import (
    api_key_middleware,
    limiter,
    rate_limit_error_handler,
    register_exception_handlers,
    request_logging_middleware,
)
from src.api.routes import mail_router, mailboxes_router
from src.config.settings import settings
from src.utils.logging import configure_logging, get_logger

# Configure logging
configure_logging()
logger = get_logger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan manager."""
    logger.info("Starting ConsoLegal mail sync service", env=settings.app.env)

    if not supabase_service.is_configured:
        logger.warning("Supabase is not configured; sync requests will fail")
        if settings.app.env == "production":
            raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required in production")

    await lock_service.connect()

    yield

    await lock_service.disconnect()
    logger.info("Application shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="ConsoLegal Mail Sync",
    description="Mirrors assigned IMAP mailboxes into the CRM message store",
    version=VERSION,
    lifespan=lifespan,
)

# Rate limiting state and error handler
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_error_handler)
register_exception_handlers(app)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.admin.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add custom middleware
app.middleware("http")(request_logging_middleware)
app.middleware("http")(api_key_middleware)

# Include API routers
app.include_router(mail_router, prefix="/api/v1")
app.include_router(mailboxes_router, prefix="/api/v1")


# Health endpoints
@app.get("/health")
async def health_check():
    """Basic health check."""
    return {
        "status": "healthy",
        "version": VERSION,
    }


@app.get("/health/detailed")
async def detailed_health():
    """Component health: message store and sync lock backend."""
    components_status = {}
    overall_status = "healthy"

    if not supabase_service.is_configured:
        components_status["supabase"] = "not_configured"
        overall_status = "degraded"
    elif await supabase_service.check_health():
        components_status["supabase"] = "connected"
    else:
        components_status["supabase"] = "unreachable"
        overall_status = "degraded"

    if not lock_service.is_enabled:
        components_status["redis"] = "not_initialized"
        overall_status = "degraded"
    elif await lock_service.check_health():
        components_status["redis"] = "connected"
    else:
        components_status["redis"] = "unreachable"
        overall_status = "degraded"

    components_status["imap_host"] = f"{settings.imap.host}:{settings.imap.port}"

    return {
        "status": overall_status,
        "version": VERSION,
        "components": components_status,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=settings.admin.port,
        reload=settings.app.debug,
        log_level=settings.app.log_level.lower(),
    )
