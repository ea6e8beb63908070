"""Admin service - super admin dashboard queries"""
import logging
from typing import Dict, Optional
from datetime import datetime, timezone, timedelta
from sqlalchemy.orm import Session
from sqlalchemy import func, or_

from app.models.club import Club
from app.models.payment import Payment
from app.models.student import Student

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200
REVENUE_WINDOW_DAYS = 30
TRIAL_ENDING_WINDOW_DAYS = 3
RECENT_SIGNUPS = 5


def _clamp_limit(limit: Optional[int]) -> int:
    if not limit or limit < 1:
        return DEFAULT_PAGE_SIZE
    return min(limit, MAX_PAGE_SIZE)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _club_summary(club: Club) -> Dict:
    return {
        "id": club.id,
        "name": club.name,
        "owner_email": club.owner_email,
        "owner_name": club.owner_name,
        "country": club.country,
        "city": club.city,
        "art_type": club.art_type,
        "trial_start": _iso(club.trial_start),
        "trial_end": _iso(club.trial_end),
        "trial_status": club.trial_status,
        "status": club.status,
        "created_at": _iso(club.created_at),
    }


def get_overview(db: Session) -> Dict:
    """Headline numbers for the super admin dashboard"""
    now = datetime.now(timezone.utc)

    total_clubs = db.query(func.count(Club.id)).scalar() or 0
    trial_clubs = db.query(func.count(Club.id)).filter(Club.trial_status == "active").scalar() or 0
    active_clubs = db.query(func.count(Club.id)).filter(
        Club.trial_status == "converted", Club.status == "active"
    ).scalar() or 0
    churned_clubs = db.query(func.count(Club.id)).filter(Club.status == "churned").scalar() or 0

    total_students = db.query(func.count(Student.id)).scalar() or 0
    premium_students = db.query(func.count(Student.id)).filter(Student.premium_status != "none").scalar() or 0

    revenue_cents = db.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
        Payment.status == "succeeded",
        Payment.paid_at >= now - timedelta(days=REVENUE_WINDOW_DAYS)
    ).scalar() or 0

    recent_signups = db.query(Club).order_by(Club.created_at.desc(), Club.id.desc()).limit(RECENT_SIGNUPS).all()
    expiring_trials = db.query(Club).filter(
        Club.trial_status == "active",
        Club.trial_end >= now,
        Club.trial_end <= now + timedelta(days=TRIAL_ENDING_WINDOW_DAYS)
    ).order_by(Club.trial_end.asc()).all()

    return {
        "stats": {
            "total_clubs": total_clubs,
            "trial_clubs": trial_clubs,
            "active_clubs": active_clubs,
            "churned_clubs": churned_clubs,
            "total_students": total_students,
            "premium_students": premium_students,
            "monthly_revenue": round(int(revenue_cents) / 100.0, 2),
        },
        "recent_signups": [_club_summary(c) for c in recent_signups],
        "expiring_trials": [_club_summary(c) for c in expiring_trials],
    }


def list_clubs(
    db: Session,
    status: Optional[str] = None,
    trial_status: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0
) -> Dict:
    """List clubs with student counts

    Returns:
        Dict with 'clubs', 'total', 'limit', 'offset'
    """
    limit = _clamp_limit(limit)
    offset = max(offset or 0, 0)

    query = db.query(Club)
    if status:
        query = query.filter(Club.status == status)
    if trial_status:
        query = query.filter(Club.trial_status == trial_status)
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(or_(func.lower(Club.name).like(pattern), func.lower(Club.owner_email).like(pattern)))

    total = query.count()
    clubs = query.order_by(Club.created_at.desc(), Club.id.desc()).offset(offset).limit(limit).all()

    # Student counts for the page in one query
    club_ids = [c.id for c in clubs]
    counts = dict(
        db.query(Student.club_id, func.count(Student.id))
        .filter(Student.club_id.in_(club_ids))
        .group_by(Student.club_id)
        .all()
    ) if club_ids else {}

    return {
        "clubs": [dict(_club_summary(c), student_count=counts.get(c.id, 0)) for c in clubs],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


def list_payments(
    db: Session,
    status: Optional[str] = None,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0
) -> Dict:
    """Recent payment records with the paying club's name"""
    limit = _clamp_limit(limit)
    offset = max(offset or 0, 0)

    query = db.query(Payment, Club.name).outerjoin(Club, Payment.club_id == Club.id)
    if status:
        query = query.filter(Payment.status == status)

    total = query.count()
    rows = query.order_by(Payment.created_at.desc(), Payment.id.desc()).offset(offset).limit(limit).all()

    return {
        "payments": [{
            "id": p.id,
            "club_id": p.club_id,
            "club_name": club_name,
            "stripe_invoice_id": p.stripe_invoice_id,
            "amount": p.amount,
            "currency": p.currency,
            "status": p.status,
            "paid_at": _iso(p.paid_at),
            "period_start": _iso(p.period_start),
            "period_end": _iso(p.period_end),
            "created_at": _iso(p.created_at),
        } for p, club_name in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
    }
