"""
Ticket Gate API - Main Application Entry Point

Event ticket issuance and door validation:
- Capacity-safe issuance (conditional increment + ticket insert in one transaction)
- AES-GCM encrypted QR payloads with a freshness window
- Exactly-once admission via compare-and-swap on ticket status
- Append-only audit of every scan
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ticketgate.core.config import Settings, get_settings
from ticketgate.core.logging import setup_logging, get_logger
from ticketgate.core.metrics import metrics_endpoint
from ticketgate.api.router import api_router
from ticketgate.api.middleware import RequestLoggingMiddleware
from ticketgate.services.cache_service import get_redis, close_redis, get_cache_stats

settings = get_settings()

# Anyone holding these can mint tokens or forge ticket codes
GUARDED_SECRETS = ("TICKET_ENCRYPTION_KEY", "SECRET_KEY")


def refuse_default_secrets(current: Settings) -> None:
    """Stop a production start that still uses a secret shipped in the source."""
    if current.ENVIRONMENT != "production":
        return
    defaulted = [
        name for name in GUARDED_SECRETS
        if getattr(current, name) == Settings.model_fields[name].default
    ]
    if defaulted:
        get_logger(__name__).error("default_secrets_in_production", keys=defaulted)
        raise RuntimeError(f"Refusing to start in production with default {', '.join(defaulted)}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )
    refuse_default_secrets(settings)

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Tier listings served uncached")

    yield

    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Event ticket issuance and door validation API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
