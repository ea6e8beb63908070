"""Super admin API routes"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from app.schemas.auth import SuperAdminLoginRequest
from app.core.security import require_super_admin, get_bearer_token
from app.db.session import get_db
from app.services.auth_service import login_super_admin, logout_super_admin
from app.services.admin_service import get_overview, list_clubs, list_payments, DEFAULT_PAGE_SIZE

router = APIRouter(prefix="/api/super-admin", tags=["super-admin"])
logger = logging.getLogger(__name__)


@router.post("/login")
def super_admin_login(request_data: SuperAdminLoginRequest):
    """Exchange super admin credentials for a bearer token"""
    try:
        return login_super_admin(request_data.email, request_data.password)
    except ValueError as e:
        raise HTTPException(401, str(e))


@router.get("/verify")
def super_admin_verify(email: str = Depends(require_super_admin)):
    """Check that the bearer token is still valid"""
    return {"valid": True, "email": email}


@router.post("/logout")
def super_admin_logout(authorization: Optional[str] = Header(None)):
    """Revoke the bearer token"""
    return logout_super_admin(get_bearer_token(authorization))


@router.get("/overview")
def overview(
    email: str = Depends(require_super_admin),
    db: Session = Depends(get_db)
):
    """Dashboard headline numbers"""
    return get_overview(db)


@router.get("/clubs")
def clubs(
    status: Optional[str] = Query(None),
    trial_status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    offset: int = Query(0, ge=0),
    email: str = Depends(require_super_admin),
    db: Session = Depends(get_db)
):
    """List clubs with filters"""
    return list_clubs(db, status=status, trial_status=trial_status, search=search, limit=limit, offset=offset)


@router.get("/payments")
def payments(
    status: Optional[str] = Query(None),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    offset: int = Query(0, ge=0),
    email: str = Depends(require_super_admin),
    db: Session = Depends(get_db)
):
    """List recent payments"""
    return list_payments(db, status=status, limit=limit, offset=offset)
