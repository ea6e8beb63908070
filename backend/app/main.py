"""FastAPI application entry point"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.core.config import settings
from app.core.logging import setup_logging
from app.core.middleware import setup_cors_middleware, security_middleware, global_exception_handler
from app.core.otel import initialize_tracing, instrument_app
from app.db.session import engine, init_db
from app.db.redis import get_redis_client

# Import routers
from app.api import ai, auth, monitoring, roster, stripe_webhook, super_admin

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    # Startup
    if initialize_tracing():
        logger.info(f"OpenTelemetry tracing enabled, exporting to {settings.OTEL_EXPORTER_OTLP_ENDPOINT}")
    else:
        logger.info("OpenTelemetry not configured - running without distributed tracing")

    logger.info("Initializing database...")
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    logger.info("Testing Redis connection...")
    try:
        get_redis_client().ping()
        logger.info("Redis connection successful")
    except Exception as e:
        logger.error(f"Redis connection failed: {e}")
        raise

    if settings.unsigned_webhooks_enabled:
        logger.warning("=" * 70)
        logger.warning("STRIPE WEBHOOK SIGNATURE VERIFICATION IS DISABLED")
        logger.warning("Unsigned webhook payloads will be accepted. Never run this way in production.")
        logger.warning("=" * 70)
    elif not settings.STRIPE_WEBHOOK_SECRET:
        logger.error("STRIPE_WEBHOOK_SECRET is not set - every webhook delivery will be rejected")

    yield

    # Shutdown
    logger.info("Shutting down...")


# Create FastAPI app
app = FastAPI(
    title="TaekUp Backend",
    description="Martial arts club management: billing webhooks, admin dashboard and roster import",
    version="1.0.0",
    lifespan=lifespan
)

# Trace requests and queries with OpenTelemetry
instrument_app(app, engine)

setup_cors_middleware(app)
app.middleware("http")(security_middleware)
app.add_exception_handler(Exception, global_exception_handler)

# Include routers
app.include_router(stripe_webhook.router)
app.include_router(auth.router)
app.include_router(super_admin.router)
app.include_router(roster.router)
app.include_router(ai.router)
app.include_router(monitoring.router)
