"""Stripe webhook API route"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.core.exceptions import WebhookError
from app.db.session import get_db
from app.services.webhook_service import process_stripe_webhook

router = APIRouter(prefix="/api/stripe", tags=["stripe"])
logger = logging.getLogger(__name__)


@router.post("/webhook")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """Handle Stripe webhook events

    Note: This route must be excluded from any global JSON parsing middleware
    to ensure the request body remains as raw bytes for signature verification.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    try:
        return process_stripe_webhook(payload, sig_header, db)
    except WebhookError as e:
        if e.status_code < 500:
            logger.warning(f"Rejected webhook: {e}")
            raise HTTPException(e.status_code, e.message)
        logger.error(f"Webhook processing failed: {e}")
        # Non-2xx so Stripe redelivers
        raise HTTPException(500, "Webhook processing failed")
