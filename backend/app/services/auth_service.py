"""Auth service - club user login, password reset and super admin sessions"""
import bcrypt
import hmac
import logging
import secrets
from datetime import datetime, timezone, timedelta
from typing import Optional, Dict
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.user import User
from app.core.config import settings
from app.core.metrics import login_attempts_counter
from app.db.redis import (
    set_session, get_session, delete_session,
    set_password_reset_token, get_password_reset_email, delete_password_reset_token,
    set_super_admin_session, get_super_admin_session, delete_super_admin_session
)
from app.services.activity_service import log_activity

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("security")

MIN_PASSWORD_LENGTH = 8


def hash_password(password: str) -> str:
    """Hash a password using bcrypt"""
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash"""
    # Accounts created by the signup wizard before a password is set have no hash
    if not password_hash or not password:
        return False
    return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))


def get_user_by_email(email: str, db: Session) -> Optional[User]:
    """Get user by email (case-insensitive)"""
    return db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()


def authenticate_user(email: str, password: str, db: Session) -> Optional[User]:
    """Authenticate an active user by email and password"""
    user = get_user_by_email(email, db)
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def create_session(user_id: int) -> str:
    """Create a new session for a user

    Returns:
        str: Session ID
    """
    session_id = secrets.token_urlsafe(32)
    set_session(session_id, user_id)
    return session_id


def _user_payload(user: User) -> Dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "club_id": user.club_id,
    }


def login_user(email: str, password: str, db: Session) -> dict:
    """Authenticate, create a session and return user info

    Raises:
        ValueError: If credentials are invalid
    """
    user = authenticate_user(email, password, db)
    if not user:
        login_attempts_counter.labels(status="failed", method="password").inc()
        security_logger.warning(f"Failed login attempt for {email}")
        raise ValueError("Invalid email or password")

    user.last_login_at = datetime.now(timezone.utc)
    db.commit()

    session_id = create_session(user.id)
    login_attempts_counter.labels(status="success", method="password").inc()
    logger.info(f"User logged in: {user.email} (ID: {user.id})")

    return {"user": _user_payload(user), "session_id": session_id}


def logout_user(session_id: Optional[str]) -> dict:
    """Logout flow: delete session"""
    if session_id:
        delete_session(session_id)
        logger.info(f"User logged out (session: {session_id[:16]}...)")

    return {"message": "Logged out successfully"}


def get_current_user_from_session(session_id: Optional[str], db: Session) -> dict:
    """Get user info from session, {"user": None} when not logged in"""
    if not session_id:
        return {"user": None}

    user_id = get_session(session_id)
    if not user_id:
        return {"user": None}

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        return {"user": None}

    return {"user": _user_payload(user)}

# ============================================================================
# PASSWORD RESET
# ============================================================================

def forgot_password_with_email(email: str, db: Session) -> dict:
    """Issue a reset token and email it if an active user exists.

    The response is the same whether or not the address is registered.
    """
    from app.services.email_service import send_password_reset_email
    from app.core.exceptions import NotificationDeliveryFailed

    message = {"message": "If an account exists with this email, a password reset link has been sent."}

    user = get_user_by_email(email, db)
    if not user or not user.is_active:
        return message

    reset_token = secrets.token_urlsafe(32)
    set_password_reset_token(reset_token, user.email)

    try:
        send_password_reset_email(user.email, reset_token, name=user.name)
    except NotificationDeliveryFailed:
        logger.warning(f"Failed to send password reset email to {user.email}", exc_info=True)

    log_activity(
        db, "password_reset_requested", "Password Reset Requested",
        description=f"Password reset requested for {user.email}",
        club_id=user.club_id,
        actor_email=user.email,
        actor_type="user"
    )
    return message


def reset_password_with_validation(token: str, new_password: str, db: Session) -> dict:
    """Validate password and complete reset

    Raises:
        ValueError: If password too short or token invalid
    """
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

    email = get_password_reset_email(token) if token else None
    if not email:
        raise ValueError("Invalid or expired reset link")

    user = get_user_by_email(email, db)
    if not user:
        raise ValueError("Invalid or expired reset link")

    user.password_hash = hash_password(new_password)
    db.commit()
    delete_password_reset_token(token)

    log_activity(
        db, "password_reset_completed", "Password Reset Completed",
        description=f"Password reset completed for {user.email}",
        club_id=user.club_id,
        actor_email=user.email,
        actor_type="user"
    )
    logger.info(f"Password reset for user {user.id}")
    return {"message": "Password has been reset successfully."}

# ============================================================================
# SUPER ADMIN
# ============================================================================

def login_super_admin(email: str, password: str) -> dict:
    """Check super admin credentials and issue a bearer token

    Raises:
        ValueError: If credentials are invalid or super admin is not configured
    """
    if not settings.SUPER_ADMIN_PASSWORD:
        security_logger.error("Super admin login attempted but SUPER_ADMIN_PASSWORD is not set")
        raise ValueError("Invalid credentials")

    email_ok = hmac.compare_digest(email.strip().lower().encode(), settings.SUPER_ADMIN_EMAIL.lower().encode())
    password_ok = hmac.compare_digest(password.encode(), settings.SUPER_ADMIN_PASSWORD.encode())
    if not (email_ok and password_ok):
        login_attempts_counter.labels(status="failed", method="super_admin").inc()
        security_logger.warning(f"Failed super admin login attempt for {email}")
        raise ValueError("Invalid credentials")

    token = secrets.token_urlsafe(32)
    set_super_admin_session(token, settings.SUPER_ADMIN_EMAIL)
    expires_at = datetime.now(timezone.utc) + timedelta(seconds=settings.SUPER_ADMIN_SESSION_TTL)

    login_attempts_counter.labels(status="success", method="super_admin").inc()
    security_logger.info(f"Super admin logged in: {settings.SUPER_ADMIN_EMAIL}")
    return {"token": token, "expires_at": expires_at.isoformat(), "email": settings.SUPER_ADMIN_EMAIL}


def verify_super_admin_token(token: Optional[str]) -> Optional[str]:
    """Email of the super admin owning this token, None if invalid or expired"""
    if not token:
        return None
    return get_super_admin_session(token)


def logout_super_admin(token: Optional[str]) -> dict:
    if token:
        delete_super_admin_session(token)
    return {"message": "Logged out successfully"}
