"""Stripe webhook processing: verification, dispatch and per-event handlers"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

import stripe
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    WebhookError, SignatureInvalid, MalformedPayload, WebhookNotConfigured,
    LookupNotFound, PersistenceFailure
)
from app.core.metrics import webhook_events_counter, payments_recorded_counter
from app.models.club import Club
from app.models.payment import Payment
from app.models.stripe_event import StripeEvent
from app.services.activity_service import log_activity
from app.services.email_service import send_payment_confirmation_email, PAYMENT_CONFIRMATION_SUBJECT
from app.services.notification_service import deliver_notification
from app.services.stripe_service import (
    _get_stripe_value, _get_nested, from_timestamp, format_amount,
    retrieve_customer_email, get_checkout_plan_details, get_invoice_plan_details
)

logger = logging.getLogger("webhook")

PAYMENT_CONFIRMATION = "payment_confirmation"


class EventType(str, Enum):
    """Stripe event types this service acts on"""
    CHECKOUT_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    PAYMENT_FAILED = "invoice.payment_failed"
    OTHER = "other"

    @classmethod
    def from_stripe(cls, value: str) -> "EventType":
        try:
            return cls(value)
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class StripeWebhookEvent:
    """A verified Stripe event"""
    id: str
    type: EventType
    raw_type: str
    data: Dict[str, Any]
    payload: Dict[str, Any] = field(repr=False)

# ============================================================================
# VERIFICATION
# ============================================================================

def _parse_event(text: str) -> StripeWebhookEvent:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedPayload(f"Invalid JSON payload: {e.msg}")

    if not isinstance(payload, dict):
        raise MalformedPayload("Event payload must be a JSON object")

    event_id = payload.get("id")
    event_type = payload.get("type")
    data = payload.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    if not isinstance(event_id, str) or not isinstance(event_type, str) or not isinstance(obj, dict):
        raise MalformedPayload("Event is missing id, type or data.object")

    return StripeWebhookEvent(
        id=event_id,
        type=EventType.from_stripe(event_type),
        raw_type=event_type,
        data=obj,
        payload=payload
    )


def verify_webhook_event(payload: bytes, sig_header: Optional[str]) -> StripeWebhookEvent:
    """Authenticate a raw webhook body and parse it into a typed event.

    Raises:
        SignatureInvalid: header missing or signature mismatch
        MalformedPayload: body is not a Stripe event
        WebhookNotConfigured: no secret and unsigned mode disabled
    """
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError:
        raise MalformedPayload("Payload is not valid UTF-8")

    secret = settings.STRIPE_WEBHOOK_SECRET
    if secret:
        if not sig_header:
            raise SignatureInvalid("Missing stripe-signature header")
        try:
            stripe.WebhookSignature.verify_header(
                text, sig_header, secret, tolerance=stripe.Webhook.DEFAULT_TOLERANCE
            )
        except stripe.SignatureVerificationError as e:
            logger.error(f"Invalid webhook signature: {e}")
            raise SignatureInvalid()
    elif settings.STRIPE_WEBHOOK_ALLOW_UNSIGNED:
        logger.warning("STRIPE_WEBHOOK_SECRET not set - accepting webhook WITHOUT signature verification")
    else:
        logger.error("Webhook secret not configured")
        raise WebhookNotConfigured()

    return _parse_event(text)

# ============================================================================
# EVENT LEDGER
# ============================================================================

def log_stripe_event(event: StripeWebhookEvent, db: Session) -> StripeEvent:
    """Get or create the ledger row for an event id"""
    stripe_event = db.query(StripeEvent).filter(StripeEvent.event_id == event.id).first()
    if stripe_event:
        return stripe_event

    stripe_event = StripeEvent(
        event_id=event.id,
        event_type=event.raw_type,
        payload=event.payload,
        processed=False
    )
    try:
        db.add(stripe_event)
        db.commit()
    except IntegrityError:
        # Concurrent delivery of the same event inserted it first
        db.rollback()
        return db.query(StripeEvent).filter(StripeEvent.event_id == event.id).one()
    db.refresh(stripe_event)
    return stripe_event


def mark_stripe_event_processed(event_id: str, db: Session, error_message: str = None):
    """Mark a ledger row processed, or store the error and leave it open for retry"""
    stripe_event = db.query(StripeEvent).filter(StripeEvent.event_id == event_id).first()
    if stripe_event:
        if error_message is None:
            stripe_event.processed = True
            stripe_event.processed_at = datetime.now(timezone.utc)
        stripe_event.error_message = error_message
        db.commit()

# ============================================================================
# SHARED HANDLER STEPS
# ============================================================================

def find_club_by_email(email: Optional[str], db: Session) -> Optional[Club]:
    """Club owned by this email address, if any"""
    if not email:
        return None
    return db.query(Club).filter(func.lower(Club.owner_email) == email.strip().lower()).first()


def record_payment(
    db: Session,
    invoice: Dict[str, Any],
    club_id: Optional[int],
    amount: int,
    status: str,
    paid_at: Optional[datetime] = None,
    period_start: Optional[datetime] = None,
    period_end: Optional[datetime] = None
) -> Payment:
    """Insert one payment row for an invoice event"""
    payment = Payment(
        club_id=club_id,
        stripe_invoice_id=_get_stripe_value(invoice, "id"),
        stripe_payment_intent_id=_get_stripe_value(invoice, "payment_intent"),
        amount=amount,
        currency=_get_stripe_value(invoice, "currency", "usd"),
        status=status,
        paid_at=paid_at,
        period_start=period_start,
        period_end=period_end
    )
    try:
        db.add(payment)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceFailure(f"Could not save {status} payment for invoice {payment.stripe_invoice_id}") from e

    payments_recorded_counter.labels(status=status).inc()
    logger.info(f"Payment saved: invoice {payment.stripe_invoice_id}, status {status}, amount {amount}")
    return payment


def _resolve_invoice_customer(event: StripeWebhookEvent) -> Optional[str]:
    try:
        return retrieve_customer_email(_get_stripe_value(event.data, "customer"))
    except LookupNotFound as e:
        logger.info(f"Skipping {event.raw_type} {event.id}: {e}")
        return None

# ============================================================================
# HANDLERS
# ============================================================================

def handle_checkout_completed(event: StripeWebhookEvent, db: Session):
    session = event.data
    session_id = _get_stripe_value(session, "id")
    logger.info(f"Checkout completed: {session_id}")

    email = _get_stripe_value(session, "customer_email") or _get_nested(session, "customer_details", "email")
    if not email:
        logger.info(f"No customer email found in checkout session {session_id}")
        return

    club = find_club_by_email(email, db)
    club_id = club.id if club else None
    outcome = None

    if club is None:
        logger.info(f"No club found for {email} - no payment confirmation sent")
    else:
        owner_name, club_name = club.owner_name, club.name

        def send():
            details = get_checkout_plan_details(session)
            return send_payment_confirmation_email(email, {
                "owner_name": owner_name,
                "club_name": club_name,
                "plan_name": details["plan_name"],
                "amount": format_amount(details["amount"], details["currency"]),
                "billing_period": details["billing_period"],
            })

        # A receipt already sent for the first invoice covers the checkout too
        outcome = deliver_notification(
            db, club_id, PAYMENT_CONFIRMATION, email, send,
            subject=PAYMENT_CONFIRMATION_SUBJECT,
            any_reference=True
        )

    log_activity(
        db, "checkout_completed", "Checkout Completed",
        description=f"Checkout completed for {email}",
        club_id=club_id,
        metadata={"session_id": session_id, "email": email, "notification": outcome}
    )


def handle_subscription_created(event: StripeWebhookEvent, db: Session):
    subscription = event.data
    subscription_id = _get_stripe_value(subscription, "id")
    logger.info(f"Subscription created: {subscription_id}")

    try:
        email = retrieve_customer_email(_get_stripe_value(subscription, "customer"))
    except LookupNotFound as e:
        logger.info(f"Skipping subscription {subscription_id}: {e}")
        return

    club = find_club_by_email(email, db)
    log_activity(
        db, "subscription_created", "New Subscription",
        description=f"New subscription for {email}",
        club_id=club.id if club else None,
        metadata={"subscription_id": subscription_id, "email": email}
    )


def handle_payment_succeeded(event: StripeWebhookEvent, db: Session):
    invoice = event.data
    invoice_id = _get_stripe_value(invoice, "id")
    logger.info(f"Payment succeeded: {invoice_id}")

    email = _resolve_invoice_customer(event)
    if email is None:
        return

    club = find_club_by_email(email, db)
    club_id = club.id if club else None
    amount = _get_stripe_value(invoice, "amount_paid", 0)
    currency = _get_stripe_value(invoice, "currency", "usd")

    record_payment(
        db, invoice, club_id, amount, "succeeded",
        paid_at=from_timestamp(_get_nested(invoice, "status_transitions", "paid_at")) or datetime.now(timezone.utc),
        period_start=from_timestamp(_get_stripe_value(invoice, "period_start")),
        period_end=from_timestamp(_get_stripe_value(invoice, "period_end"))
    )

    outcome = None
    if club is not None:
        plan = get_invoice_plan_details(invoice)
        data = {
            "owner_name": club.owner_name,
            "club_name": club.name,
            "plan_name": plan["plan_name"],
            "amount": format_amount(amount, currency),
            "billing_period": plan["billing_period"],
        }
        outcome = deliver_notification(
            db, club_id, PAYMENT_CONFIRMATION, email,
            lambda: send_payment_confirmation_email(email, data),
            subject=PAYMENT_CONFIRMATION_SUBJECT,
            reference=f"invoice:{invoice_id or event.id}"
        )

    log_activity(
        db, "payment_succeeded", "Payment Received",
        description=f"Payment of {format_amount(amount, currency)} received from {email}",
        club_id=club_id,
        metadata={"invoice_id": invoice_id, "amount": amount, "currency": currency, "email": email, "notification": outcome}
    )


def handle_payment_failed(event: StripeWebhookEvent, db: Session):
    invoice = event.data
    invoice_id = _get_stripe_value(invoice, "id")
    logger.info(f"Payment failed: {invoice_id}")

    email = _resolve_invoice_customer(event)
    if email is None:
        return

    club = find_club_by_email(email, db)
    club_id = club.id if club else None
    amount = _get_stripe_value(invoice, "amount_due", 0)
    currency = _get_stripe_value(invoice, "currency", "usd")

    record_payment(db, invoice, club_id, amount, "failed")

    log_activity(
        db, "payment_failed", "Payment Failed",
        description=f"Payment of {format_amount(amount, currency)} failed for {email}",
        club_id=club_id,
        metadata={"invoice_id": invoice_id, "amount": amount, "currency": currency, "email": email}
    )


EVENT_HANDLERS: Dict[EventType, Callable[[StripeWebhookEvent, Session], None]] = {
    EventType.CHECKOUT_COMPLETED: handle_checkout_completed,
    EventType.SUBSCRIPTION_CREATED: handle_subscription_created,
    EventType.PAYMENT_SUCCEEDED: handle_payment_succeeded,
    EventType.PAYMENT_FAILED: handle_payment_failed,
}

# ============================================================================
# DISPATCH
# ============================================================================

def dispatch_event(event: StripeWebhookEvent, db: Session) -> Dict[str, Any]:
    """Route a verified event to its handler.

    Raises:
        WebhookError: (status 500) when the handler faults, so Stripe retries
    """
    handler = EVENT_HANDLERS.get(event.type)
    if handler is None:
        logger.info(f"Unhandled event type: {event.raw_type}")
        webhook_events_counter.labels(event_type=event.type.value, outcome="ignored").inc()
        return {"received": True, "handled": False}

    try:
        stripe_event = log_stripe_event(event, db)
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceFailure("Could not record webhook event", event_id=event.id) from e

    if stripe_event.processed:
        logger.info(f"Webhook event {event.id} already processed")
        webhook_events_counter.labels(event_type=event.type.value, outcome="duplicate").inc()
        return {"received": True, "handled": True, "status": "already_processed"}

    try:
        handler(event, db)
    except Exception as e:
        db.rollback()
        logger.error(f"Error processing webhook {event.id} ({event.raw_type}): {e}", exc_info=True)
        webhook_events_counter.labels(event_type=event.type.value, outcome="error").inc()
        try:
            mark_stripe_event_processed(event.id, db, error_message=str(e))
        except SQLAlchemyError:
            db.rollback()
            logger.error(f"Could not record error for webhook {event.id}", exc_info=True)
        if isinstance(e, WebhookError) and e.status_code >= 500:
            e.event_id = e.event_id or event.id
            raise
        raise WebhookError("Webhook processing failed", event_id=event.id) from e

    mark_stripe_event_processed(event.id, db)
    webhook_events_counter.labels(event_type=event.type.value, outcome="processed").inc()
    logger.info(f"Successfully processed webhook event {event.id} of type {event.raw_type}")
    return {"received": True, "handled": True, "status": "success"}


def process_stripe_webhook(payload: bytes, sig_header: Optional[str], db: Session) -> Dict[str, Any]:
    """Verify, then dispatch, one Stripe webhook delivery.

    Args:
        payload: Raw request body as bytes (must not be parsed by middleware)
        sig_header: Stripe-Signature header value
        db: Database session

    Raises:
        SignatureInvalid, MalformedPayload: caller fault, respond 400
        WebhookNotConfigured, WebhookError: server fault, respond 500
    """
    try:
        event = verify_webhook_event(payload, sig_header)
    except WebhookError:
        webhook_events_counter.labels(event_type="unverified", outcome="rejected").inc()
        raise

    logger.info(f"Received event: {event.raw_type} ({event.id})")
    return dispatch_event(event, db)
