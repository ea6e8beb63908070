"""Roster import API routes"""
import json
import logging
from typing import Optional
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.security import require_auth
from app.db.session import get_db
from app.models.user import User
from app.schemas.roster import RosterMapping
from app.services.roster_service import import_roster, preview_roster

router = APIRouter(prefix="/api/roster", tags=["roster"])
logger = logging.getLogger(__name__)

MAX_CSV_BYTES = 2 * 1024 * 1024


def require_club_staff(user_id: int = Depends(require_auth), db: Session = Depends(get_db)) -> User:
    """Dependency: Require an owner or coach attached to a club"""
    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active or not user.club_id or user.role not in ("owner", "coach"):
        raise HTTPException(403, "Club staff access required")
    return user


async def _read_csv(file: Optional[UploadFile], text: Optional[str]) -> str:
    if file is not None:
        content = await file.read()
        if len(content) > MAX_CSV_BYTES:
            raise HTTPException(413, "CSV file too large")
        try:
            return content.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise HTTPException(400, "CSV file must be UTF-8 encoded")
    if text:
        if len(text.encode("utf-8")) > MAX_CSV_BYTES:
            raise HTTPException(413, "CSV text too large")
        return text
    raise HTTPException(400, "Provide a CSV file or text")


def _parse_mapping(mapping: Optional[str]) -> Optional[dict]:
    if not mapping:
        return None
    try:
        return RosterMapping(**json.loads(mapping)).model_dump(exclude_unset=True)
    except (json.JSONDecodeError, TypeError, ValidationError) as e:
        raise HTTPException(400, f"Invalid column mapping: {e}")


@router.post("/preview")
async def preview(
    file: Optional[UploadFile] = File(None),
    text: Optional[str] = Form(None),
    mapping: Optional[str] = Form(None),
    import_global_xp: bool = Form(False),
    user: User = Depends(require_club_staff),
    db: Session = Depends(get_db)
):
    """Parse a roster CSV and show the students that would be imported"""
    csv_text = await _read_csv(file, text)
    try:
        return preview_roster(user.club_id, csv_text, db, mapping=_parse_mapping(mapping), import_global_xp=import_global_xp)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.post("/import")
async def import_students(
    file: Optional[UploadFile] = File(None),
    text: Optional[str] = Form(None),
    mapping: Optional[str] = Form(None),
    import_global_xp: bool = Form(False),
    user: User = Depends(require_club_staff),
    db: Session = Depends(get_db)
):
    """Import students from a roster CSV"""
    csv_text = await _read_csv(file, text)
    try:
        return import_roster(
            user.club_id, csv_text, db,
            mapping=_parse_mapping(mapping),
            import_global_xp=import_global_xp,
            actor_email=user.email
        )
    except ValueError as e:
        raise HTTPException(400, str(e))
