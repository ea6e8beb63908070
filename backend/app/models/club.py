"""Club model"""
from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from app.models.base import Base


class Club(Base):
    """Martial arts club account, owned by the person who signed up"""
    __tablename__ = "clubs"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    owner_email = Column(String(255), unique=True, nullable=False, index=True)
    owner_name = Column(String(255), nullable=True)
    country = Column(String(100), nullable=True)
    city = Column(String(100), nullable=True)
    art_type = Column(String(100), default="Taekwondo", nullable=True)
    trial_start = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=True)
    trial_end = Column(DateTime(timezone=True), nullable=True)
    trial_status = Column(String(50), default="active", nullable=False)  # 'active', 'expired', 'converted'
    status = Column(String(50), default="active", nullable=False)  # 'active', 'churned', 'paused'
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    wizard_data = Column(JSON, nullable=True)  # Setup wizard answers: language, belts, branding
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    users = relationship("User", back_populates="club")
    students = relationship("Student", back_populates="club", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="club")
