"""EmailLog model"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index, text
from datetime import datetime, timezone
from app.models.base import Base

# Rows in these states hold the delivery slot; a 'failed' row releases it for a retry
ACTIVE_DELIVERY_STATUSES = ("pending", "sent")


class EmailLog(Base):
    """Transactional email log, also the idempotency fence for notifications"""
    __tablename__ = "email_log"
    __table_args__ = (
        Index(
            "uq_email_log_active_delivery",
            "club_id", "email_type", "reference",
            unique=True,
            sqlite_where=text("status IN ('pending', 'sent')"),
            postgresql_where=text("status IN ('pending', 'sent')"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    club_id = Column(Integer, ForeignKey("clubs.id", ondelete="SET NULL"), nullable=True, index=True)
    recipient = Column(String(255), nullable=False)
    email_type = Column(String(100), nullable=False, index=True)  # e.g. 'payment_confirmation'
    reference = Column(String(255), default="", nullable=False)  # e.g. 'invoice:in_123'; '' for once-per-club emails
    subject = Column(String(500), nullable=True)
    status = Column(String(50), default="pending", nullable=False)  # 'pending', 'sent', 'failed'
    message_id = Column(String(255), nullable=True)
    error = Column(Text, nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
