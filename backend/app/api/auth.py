"""Auth API routes"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session
from app.schemas.auth import LoginRequest, ForgotPasswordRequest, ResetPasswordRequest
from app.services.auth_service import (
    login_user, logout_user, forgot_password_with_email,
    reset_password_with_validation, get_current_user_from_session
)
from app.core.security import set_auth_cookie, SESSION_COOKIE
from app.db.session import get_db

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger(__name__)


@router.post("/login")
def login(request_data: LoginRequest, response: Response, db: Session = Depends(get_db)):
    """Login club user"""
    try:
        result = login_user(request_data.email, request_data.password, db)
    except ValueError as e:
        raise HTTPException(401, str(e))
    set_auth_cookie(response, result["session_id"])
    return {"user": result["user"]}


@router.post("/logout")
def logout(request: Request, response: Response):
    """Logout club user"""
    session_id = request.cookies.get(SESSION_COOKIE)
    result = logout_user(session_id)
    if session_id:
        response.delete_cookie(SESSION_COOKIE)
    return result


@router.get("/me")
def get_current_user(request: Request, db: Session = Depends(get_db)):
    """Get current logged-in user"""
    return get_current_user_from_session(request.cookies.get(SESSION_COOKIE), db)


@router.post("/forgot-password")
def forgot_password(request_data: ForgotPasswordRequest, db: Session = Depends(get_db)):
    """Initiate password reset by sending a reset link"""
    return forgot_password_with_email(request_data.email, db)


@router.post("/reset-password")
def reset_password(request_data: ResetPasswordRequest, db: Session = Depends(get_db)):
    """Complete password reset using the token from the emailed link"""
    try:
        return reset_password_with_validation(request_data.token, request_data.new_password, db)
    except ValueError as e:
        raise HTTPException(400, str(e))
