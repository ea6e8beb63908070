"""Security dependencies, rate limiting and access logging"""
import json
import logging
from datetime import datetime, timezone
from typing import Optional
from fastapi import Header, HTTPException, Request, Response
from app.db.redis import get_session, get_super_admin_session, check_rate_limit as redis_check_rate_limit
from app.core.config import settings

security_logger = logging.getLogger("security")
api_access_logger = logging.getLogger("api_access")

SESSION_COOKIE = "session_id"


def require_auth(request: Request) -> int:
    """Dependency: Require a club user session, return user_id"""
    session_id = request.cookies.get(SESSION_COOKIE)

    if not session_id:
        raise HTTPException(401, "Not authenticated. Please log in.")

    user_id = get_session(session_id)
    if not user_id:
        raise HTTPException(401, "Session expired. Please log in again.")

    return user_id


def get_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Token from an 'Authorization: Bearer <token>' header"""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def require_super_admin(request: Request, authorization: Optional[str] = Header(None)) -> str:
    """Dependency: Require a valid super admin bearer token, return the admin email"""
    token = get_bearer_token(authorization)
    if not token:
        raise HTTPException(401, "Super admin authentication required")

    email = get_super_admin_session(token)
    if not email:
        security_logger.warning(
            f"Invalid super admin token - IP: {get_client_ip(request)}, Path: {request.url.path}"
        )
        raise HTTPException(401, "Invalid or expired session")

    return email


def get_client_ip(request: Request) -> str:
    client_ip = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    if not client_ip:
        client_ip = request.client.host if request.client else "unknown"
    return client_ip


def get_client_identifier(request: Request, session_id: Optional[str] = None) -> str:
    """Get a unique identifier for rate limiting"""
    if session_id:
        return f"session:{session_id}"
    return f"ip:{get_client_ip(request)}"


def check_rate_limit(identifier: str, strict: bool = False) -> bool:
    """Check if request is within rate limit

    Args:
        identifier: Client identifier (session ID or IP)
        strict: If True, use stricter rate limits for state-changing operations

    Returns:
        True if within limit, False if exceeded
    """
    return redis_check_rate_limit(identifier, strict=strict)


def log_api_access(
    request: Request,
    session_id: Optional[str] = None,
    status_code: int = 200,
    error: Optional[str] = None
):
    """Log detailed API access information"""
    log_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "method": request.method,
        "path": request.url.path,
        "query": str(request.url.query) if request.url.query else None,
        "session_id": session_id[:16] + "..." if session_id else None,
        "client_ip": get_client_ip(request),
        "user_agent": request.headers.get("User-Agent", "unknown"),
        "origin": request.headers.get("Origin", "none"),
        "status_code": status_code,
        "error": error
    }

    if error or status_code >= 400:
        api_access_logger.warning(f"API Access: {json.dumps(log_data)}")
    else:
        api_access_logger.info(f"API Access: {json.dumps(log_data)}")


def set_auth_cookie(response: Response, session_id: str) -> None:
    """Set the HttpOnly session cookie"""
    response.set_cookie(
        key=SESSION_COOKIE,
        value=session_id,
        httponly=True,
        secure=settings.ENVIRONMENT == "production",
        samesite="lax",
        max_age=settings.SESSION_TTL
    )
