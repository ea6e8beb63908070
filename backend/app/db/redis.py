"""Redis client for session management, reset tokens and rate limiting"""
import redis
import logging
from typing import Optional
from app.core.config import settings

logger = logging.getLogger(__name__)

# Lazy initialization - no connection at import time
_client = None


def get_redis_client():
    """Get or create Redis client (lazy initialization)

    This prevents connection attempts during import, allowing mocks to be applied first.
    """
    global _client
    if _client is None:
        _client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client


def set_session(session_id: str, user_id: int) -> None:
    """Store club user session in Redis"""
    key = f"session:{session_id}"
    get_redis_client().setex(key, settings.SESSION_TTL, user_id)


def get_session(session_id: str) -> Optional[int]:
    """Get user_id from session"""
    key = f"session:{session_id}"
    user_id = get_redis_client().get(key)
    return int(user_id) if user_id else None


def delete_session(session_id: str) -> None:
    """Delete session from Redis"""
    key = f"session:{session_id}"
    get_redis_client().delete(key)


def set_super_admin_session(token: str, email: str) -> None:
    """Store a super admin bearer token"""
    key = f"super_admin_session:{token}"
    get_redis_client().setex(key, settings.SUPER_ADMIN_SESSION_TTL, email)


def get_super_admin_session(token: str) -> Optional[str]:
    """Get the super admin email for a bearer token, None if unknown or expired"""
    key = f"super_admin_session:{token}"
    return get_redis_client().get(key)


def delete_super_admin_session(token: str) -> None:
    """Revoke a super admin bearer token"""
    key = f"super_admin_session:{token}"
    get_redis_client().delete(key)


def set_password_reset_token(token: str, email: str) -> None:
    """Store password reset token"""
    key = f"password_reset:{token}"
    get_redis_client().setex(key, settings.PASSWORD_RESET_TTL, email)


def get_password_reset_email(token: str) -> Optional[str]:
    """Get email for a password reset token"""
    key = f"password_reset:{token}"
    return get_redis_client().get(key)


def delete_password_reset_token(token: str) -> None:
    """Delete password reset token"""
    key = f"password_reset:{token}"
    get_redis_client().delete(key)


def increment_rate_limit(identifier: str, window: int) -> int:
    """Increment rate limit counter and return the count for the current fixed window"""
    key = f"ratelimit:{identifier}"
    client = get_redis_client()
    count = client.incr(key)
    if count == 1:
        client.expire(key, window)
    return int(count)


def check_rate_limit(identifier: str, strict: bool = False) -> bool:
    """Check if request is within rate limit using Redis. Returns True if allowed, False if rate limited."""
    max_requests = settings.RATE_LIMIT_STRICT_REQUESTS if strict else settings.RATE_LIMIT_REQUESTS
    identifier = f"{identifier}:strict" if strict else identifier

    current_count = increment_rate_limit(identifier, settings.RATE_LIMIT_WINDOW)
    return current_count <= max_requests
