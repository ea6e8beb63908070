"""Activity (audit) log writes"""
import logging
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from app.models.activity_log import ActivityLog
from app.core.exceptions import PersistenceFailure

logger = logging.getLogger(__name__)


def log_activity(
    db: Session,
    event_type: str,
    event_title: str,
    description: Optional[str] = None,
    club_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
    actor_email: Optional[str] = None,
    actor_type: str = "system"
) -> ActivityLog:
    """Append one activity log entry and commit it.

    Raises:
        PersistenceFailure: if the insert fails
    """
    entry = ActivityLog(
        club_id=club_id,
        event_type=event_type,
        event_title=event_title,
        event_description=description,
        event_metadata=metadata or {},
        actor_email=actor_email,
        actor_type=actor_type
    )
    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to write activity log entry '{event_type}': {e}")
        raise PersistenceFailure(f"Could not write activity log entry '{event_type}'") from e

    logger.debug(f"Activity logged: {event_type} - {description}")
    return entry
