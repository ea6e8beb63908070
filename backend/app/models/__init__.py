"""SQLAlchemy models package - imports all models so they register with Base.metadata"""
from app.models.base import Base
from app.models.club import Club
from app.models.user import User
from app.models.student import Student
from app.models.payment import Payment
from app.models.email_log import EmailLog
from app.models.activity_log import ActivityLog
from app.models.stripe_event import StripeEvent

# Export all for convenience
__all__ = [
    "Base", "Club", "User", "Student", "Payment",
    "EmailLog", "ActivityLog", "StripeEvent"
]
