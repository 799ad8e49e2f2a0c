from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.deps import get_db, get_member
from app.core.exceptions import NotFoundError
from app.models.applicant import Applicant
from app.models.waitlist_application import WaitlistApplication
from app.schemas.referral import (
    AttributeRequest,
    Leaderboard,
    LeaderboardEntry,
    ReferralEdgeOut,
    ReferralStats,
)
from app.services.referral_ledger import ReferralLedger

router = APIRouter(prefix="/referrals", tags=["referrals"])


@router.post("/attribute", response_model=ReferralEdgeOut, status_code=201)
def attribute_referral(payload: AttributeRequest, db: Session = Depends(get_db)):
    """Credit the owner of ``referral_code`` with referring this application."""
    application = db.get(WaitlistApplication, payload.application_id)
    if application is None:
        raise NotFoundError("Application not found", details=str(payload.application_id))
    edge = ReferralLedger(db).attribute(payload.referral_code, application.applicant_id)
    referrer = db.get(Applicant, edge.referrer_id)
    return ReferralEdgeOut(
        referrer_display_name=referrer.display_name,
        attribution_type=edge.attribution_type.value,
        created_at=edge.created_at,
    )


@router.get("/stats/{application_id}", response_model=ReferralStats)
def referral_stats(member: Applicant = Depends(get_member), db: Session = Depends(get_db)):
    """Referral totals for the member holding ``application_id``."""
    stats = ReferralLedger(db).stats(member.id)
    return ReferralStats(**stats.__dict__)


@router.get("/leaderboard", response_model=Leaderboard)
def referral_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    period_days: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
):
    rows = ReferralLedger(db).leaderboard(limit=limit, period_days=period_days)
    return Leaderboard(entries=[LeaderboardEntry(**row.__dict__) for row in rows])
