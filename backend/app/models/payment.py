"""Payment model"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from app.models.base import Base


class Payment(Base):
    """One row per Stripe invoice payment event observed (append-only)"""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    club_id = Column(Integer, ForeignKey("clubs.id", ondelete="SET NULL"), nullable=True, index=True)
    stripe_invoice_id = Column(String(255), nullable=True, index=True)
    stripe_payment_intent_id = Column(String(255), nullable=True)
    amount = Column(Integer, nullable=False)  # minor units (cents)
    currency = Column(String(10), default="usd", nullable=False)
    status = Column(String(50), nullable=False, index=True)  # 'succeeded', 'failed'
    paid_at = Column(DateTime(timezone=True), nullable=True)
    period_start = Column(DateTime(timezone=True), nullable=True)
    period_end = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationship
    club = relationship("Club", back_populates="payments")
