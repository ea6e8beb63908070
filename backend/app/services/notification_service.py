"""Idempotent notification delivery backed by the email log"""
import logging
from datetime import datetime, timezone
from typing import Callable, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.models.email_log import EmailLog, ACTIVE_DELIVERY_STATUSES
from app.core.exceptions import NotificationDeliveryFailed, PersistenceFailure
from app.core.metrics import notifications_counter

logger = logging.getLogger(__name__)

# Delivery outcomes returned by deliver_notification
SENT = "sent"
FAILED = "failed"
DUPLICATE = "duplicate"


def _has_active_notification(db: Session, club_id: int, email_type: str) -> bool:
    try:
        return db.query(EmailLog.id).filter(
            EmailLog.club_id == club_id,
            EmailLog.email_type == email_type,
            EmailLog.status.in_(ACTIVE_DELIVERY_STATUSES)
        ).first() is not None
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceFailure(f"Could not check '{email_type}' notifications for club {club_id}") from e


def claim_notification(
    db: Session,
    club_id: int,
    email_type: str,
    recipient: str,
    subject: Optional[str] = None,
    reference: str = "",
    any_reference: bool = False
) -> Optional[EmailLog]:
    """Claim the right to send one notification.

    Inserts a 'pending' email log row. The partial unique index on
    (club_id, email_type, reference) for pending/sent rows makes the insert
    itself the check: only one concurrent or repeated caller wins.

    With any_reference, a pending or sent row of the same type under any
    reference also counts as already sent.

    Returns:
        The claimed row, or None if the notification was already sent or is
        being sent by another delivery.

    Raises:
        PersistenceFailure: on database errors other than the uniqueness conflict
    """
    if any_reference and _has_active_notification(db, club_id, email_type):
        logger.info(f"Notification '{email_type}' already sent or in flight for club {club_id}")
        return None

    entry = EmailLog(
        club_id=club_id,
        recipient=recipient,
        email_type=email_type,
        reference=reference or "",
        subject=subject,
        status="pending"
    )
    try:
        db.add(entry)
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(f"Notification '{email_type}' already sent or in flight for club {club_id} (ref: {reference or '-'})")
        return None
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceFailure(f"Could not claim '{email_type}' notification for club {club_id}") from e
    return entry


def record_delivery(
    db: Session,
    entry: EmailLog,
    message_id: Optional[str] = None,
    error: Optional[str] = None
) -> EmailLog:
    """Mark a claimed row as sent, or failed (which releases the claim)."""
    if error is None:
        entry.status = "sent"
        entry.message_id = message_id
        entry.sent_at = datetime.now(timezone.utc)
    else:
        entry.status = "failed"
        entry.error = error
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceFailure(f"Could not record delivery of email log {entry.id}") from e
    return entry


def deliver_notification(
    db: Session,
    club_id: int,
    email_type: str,
    recipient: str,
    send: Callable[[], str],
    subject: Optional[str] = None,
    reference: str = "",
    any_reference: bool = False
) -> str:
    """Send a notification at most once per (club, email_type, reference).

    Args:
        send: zero-argument callable performing the delivery, returning the provider message id

    Returns:
        SENT, FAILED or DUPLICATE
    """
    entry = claim_notification(
        db, club_id, email_type, recipient,
        subject=subject, reference=reference, any_reference=any_reference
    )
    if entry is None:
        notifications_counter.labels(kind=email_type, status=DUPLICATE).inc()
        return DUPLICATE

    try:
        message_id = send()
    except NotificationDeliveryFailed as e:
        logger.error(f"Failed to send '{email_type}' email to {recipient}: {e}")
        record_delivery(db, entry, error=str(e))
        notifications_counter.labels(kind=email_type, status=FAILED).inc()
        return FAILED
    except Exception as e:
        # Release the claim before propagating so a retry can send again
        record_delivery(db, entry, error=str(e) or type(e).__name__)
        notifications_counter.labels(kind=email_type, status=FAILED).inc()
        raise

    record_delivery(db, entry, message_id=message_id)
    notifications_counter.labels(kind=email_type, status=SENT).inc()
    logger.info(f"'{email_type}' email sent to {recipient} (club {club_id})")
    return SENT
