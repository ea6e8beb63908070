"""Student model"""
from sqlalchemy import Column, Integer, String, DateTime, Date, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from app.models.base import Base


class Student(Base):
    """Student enrolled at a club"""
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    club_id = Column(Integer, ForeignKey("clubs.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    parent_name = Column(String(255), nullable=True)
    parent_email = Column(String(255), nullable=True, index=True)
    parent_phone = Column(String(50), nullable=True)
    belt = Column(String(100), nullable=False, default="white")
    birthday = Column(Date, nullable=True)
    total_points = Column(Integer, default=0, nullable=False)
    total_xp = Column(Integer, default=0, nullable=False)
    global_xp = Column(Integer, default=0, nullable=False)
    premium_status = Column(String(50), default="none", nullable=False)  # 'none', 'club_sponsored', 'parent_paid'
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    club = relationship("Club", back_populates="students")
