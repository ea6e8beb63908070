"""Roster service - import students from a CSV export"""
import csv
import io
import logging
import re
from datetime import datetime, date
from typing import Dict, List, Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from app.models.club import Club
from app.models.student import Student
from app.services.activity_service import log_activity

logger = logging.getLogger(__name__)

# World Taekwondo colour belts, used when the club has not configured its own
DEFAULT_BELTS = [
    {"id": "wt-1", "name": "White Belt"},
    {"id": "wt-2", "name": "White/Yellow Stripe"},
    {"id": "wt-3", "name": "Yellow Belt"},
    {"id": "wt-4", "name": "Yellow/Green Stripe"},
    {"id": "wt-5", "name": "Green Belt"},
    {"id": "wt-6", "name": "Green/Blue Stripe"},
    {"id": "wt-7", "name": "Blue Belt"},
    {"id": "wt-8", "name": "Blue/Red Stripe"},
    {"id": "wt-9", "name": "Red Belt"},
    {"id": "wt-10", "name": "Red/Black Stripe"},
    {"id": "wt-11", "name": "Black Belt"},
]

MAPPING_FIELDS = (
    "name", "parent_name", "parent_email", "parent_phone",
    "belt", "birthday", "points", "xp", "global_xp",
)

# Header predicates, applied to the lower-cased header text
_COLUMN_RULES = {
    "name": lambda h: "student" in h or ("name" in h and "parent" not in h),
    "parent_name": lambda h: "parent" in h and "name" in h,
    "parent_email": lambda h: "email" in h,
    "parent_phone": lambda h: "phone" in h or "mobile" in h,
    "belt": lambda h: "belt" in h or "rank" in h or "level" in h,
    "birthday": lambda h: "birth" in h or "dob" in h,
    "points": lambda h: "point" in h and "xp" not in h,
    "xp": lambda h: "xp" in h and "global" not in h,
    "global_xp": lambda h: "global" in h and "xp" in h,
}

_BIRTHDAY_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y", "%Y/%m/%d", "%d.%m.%Y", "%B %d, %Y", "%b %d, %Y", "%d %B %Y")


def parse_roster_csv(text: str) -> Tuple[List[str], List[List[str]]]:
    """Split CSV text into a header row and data rows

    Raises:
        ValueError: if there is no header row and at least one data row
    """
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    rows = [[cell.strip() for cell in row] for row in reader]
    rows = [row for row in rows if any(row)]

    if len(rows) < 2:
        raise ValueError("CSV must have at least a header row and one data row")
    return rows[0], rows[1:]


def detect_column_mapping(headers: List[str]) -> Dict[str, Optional[str]]:
    """Guess which header holds each student field"""
    mapping = {}
    for field, rule in _COLUMN_RULES.items():
        mapping[field] = next((h for h in headers if rule(h.lower())), None)
    return mapping


def _usable_belts(belts) -> List[Dict[str, str]]:
    return [b for b in belts or [] if isinstance(b, dict) and b.get("id")]


def get_club_belts(club: Optional[Club]) -> List[Dict[str, str]]:
    """The club's configured belts with an id, else the default list"""
    belts = (club.wizard_data or {}).get("belts") if club else None
    return _usable_belts(belts) or DEFAULT_BELTS


def match_belt(value: Optional[str], belts: List[Dict[str, str]]) -> str:
    """Belt id for a free-text belt name; defaults to the first (lowest) belt"""
    belts = _usable_belts(belts)
    default = str(belts[0]["id"]) if belts else "white"
    normalized = (value or "").strip().lower()
    if not normalized:
        return default

    for belt in belts:
        name = (belt.get("name") or "").lower()
        if normalized in (str(belt["id"]).lower(), name, name.replace(" belt", "")):
            return str(belt["id"])

    for belt in belts:
        name = (belt.get("name") or "").lower()
        if normalized in name or normalized in str(belt["id"]).lower() or (name and name in normalized):
            return str(belt["id"])
    return default


def parse_int(value: Optional[str]) -> int:
    """Leading integer after dropping non-digit characters, 0 if none"""
    match = re.match(r"-?\d+", re.sub(r"[^0-9-]", "", value or ""))
    return int(match.group()) if match else 0


def parse_birthday(value: Optional[str]) -> Optional[str]:
    """ISO date for a birthday in a common format, None if unparseable"""
    value = (value or "").strip()
    if not value:
        return None
    for fmt in _BIRTHDAY_FORMATS:
        try:
            return datetime.strptime(value, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def build_students(
    rows: List[List[str]],
    headers: List[str],
    mapping: Dict[str, Optional[str]],
    belts: List[Dict[str, str]],
    import_global_xp: bool = False
) -> List[Dict]:
    """Turn CSV rows into student dicts, skipping rows without a name"""
    index = {field: headers.index(col) for field, col in mapping.items() if col and col in headers}

    def value(row, field):
        i = index.get(field)
        return row[i] if i is not None and i < len(row) else ""

    students = []
    for row in rows:
        name = value(row, "name").strip()
        if not name:
            continue
        students.append({
            "name": name,
            "parent_name": value(row, "parent_name") or None,
            "parent_email": value(row, "parent_email") or None,
            "parent_phone": value(row, "parent_phone") or None,
            "belt": match_belt(value(row, "belt"), belts),
            "birthday": parse_birthday(value(row, "birthday")),
            "total_points": parse_int(value(row, "points")),
            "total_xp": parse_int(value(row, "xp")),
            "global_xp": parse_int(value(row, "global_xp")) if import_global_xp else 0,
        })
    return students


def _resolve_mapping(headers: List[str], overrides: Optional[Dict[str, Optional[str]]]) -> Dict[str, Optional[str]]:
    mapping = detect_column_mapping(headers)
    for field, column in (overrides or {}).items():
        if field not in MAPPING_FIELDS:
            raise ValueError(f"Unknown mapping field: {field}")
        if column and column not in headers:
            raise ValueError(f"Column not found in CSV: {column}")
        mapping[field] = column or None
    return mapping


def _get_club(club_id: int, db: Session) -> Club:
    club = db.query(Club).filter(Club.id == club_id).first()
    if not club:
        raise ValueError("Club not found")
    return club


def preview_roster(
    club_id: int,
    csv_text: str,
    db: Session,
    mapping: Optional[Dict[str, Optional[str]]] = None,
    import_global_xp: bool = False
) -> Dict:
    """Parse and map a roster without saving anything"""
    club = _get_club(club_id, db)
    headers, rows = parse_roster_csv(csv_text)
    resolved = _resolve_mapping(headers, mapping)
    students = build_students(rows, headers, resolved, get_club_belts(club), import_global_xp)
    return {
        "headers": headers,
        "mapping": resolved,
        "students": students,
        "skipped": len(rows) - len(students),
    }


def import_roster(
    club_id: int,
    csv_text: str,
    db: Session,
    mapping: Optional[Dict[str, Optional[str]]] = None,
    import_global_xp: bool = False,
    actor_email: Optional[str] = None
) -> Dict:
    """Create Student rows for every named row in the CSV

    Raises:
        ValueError: club missing, CSV unusable or mapping invalid
    """
    preview = preview_roster(club_id, csv_text, db, mapping=mapping, import_global_xp=import_global_xp)
    students = preview["students"]

    for data in students:
        db.add(Student(
            club_id=club_id,
            name=data["name"],
            parent_name=data["parent_name"],
            parent_email=data["parent_email"],
            parent_phone=data["parent_phone"],
            belt=data["belt"],
            birthday=date.fromisoformat(data["birthday"]) if data["birthday"] else None,
            total_points=data["total_points"],
            total_xp=data["total_xp"],
            global_xp=data["global_xp"],
        ))
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.error(f"Failed to import roster for club {club_id}", exc_info=True)
        raise

    log_activity(
        db, "students_imported", "Students Imported",
        description=f"Imported {len(students)} students from CSV",
        club_id=club_id,
        metadata={"imported": len(students), "skipped": preview["skipped"]},
        actor_email=actor_email,
        actor_type="user" if actor_email else "system"
    )
    logger.info(f"Imported {len(students)} students for club {club_id}")
    return {"imported": len(students), "skipped": preview["skipped"], "students": students}
