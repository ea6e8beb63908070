"""Monitoring API routes for health checks and metrics"""
import logging
from fastapi import APIRouter, Response, Depends
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import get_db
from app.services.email_service import validate_email_config

router = APIRouter(tags=["monitoring"])
logger = logging.getLogger(__name__)


@router.get("/metrics")
def metrics_endpoint():
    """Prometheus metrics endpoint"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Health check endpoint"""
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        logger.error(f"Health check database error: {e}")
        database = "error"

    email_ok, email_error = validate_email_config()
    if not email_ok:
        logger.warning(f"Health check email configuration: {email_error}")

    return {
        "status": "healthy" if database == "ok" else "degraded",
        "database": database,
        "stripe_webhook_signing": "disabled" if settings.unsigned_webhooks_enabled else "enabled",
        "email": "configured" if email_ok else "not_configured",
    }
