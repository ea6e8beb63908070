"""ActivityLog model"""
from sqlalchemy import Column, Integer, String, Text, JSON, DateTime, ForeignKey
from datetime import datetime, timezone
from app.models.base import Base


class ActivityLog(Base):
    """Append-only audit trail shown on the super admin dashboard"""
    __tablename__ = "activity_log"

    id = Column(Integer, primary_key=True, index=True)
    club_id = Column(Integer, ForeignKey("clubs.id", ondelete="SET NULL"), nullable=True, index=True)
    event_type = Column(String(100), nullable=False, index=True)
    event_title = Column(String(255), nullable=False)
    event_description = Column(Text, nullable=True)
    # 'metadata' is reserved on declarative classes
    event_metadata = Column("metadata", JSON, nullable=True)
    actor_email = Column(String(255), nullable=True)
    actor_type = Column(String(50), nullable=True)  # 'system', 'user', 'super_admin'
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
