import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import client_identity, enforce_rate_limit, get_db
from app.schemas.invite import RedeemRequest, RedeemResponse
from app.schemas.waitlist import (
    ApplicationStatusResponse,
    BetaSummary,
    WaitlistSubmitRequest,
    WaitlistSubmitResponse,
)
from app.services.admission_service import AdmissionService

router = APIRouter()

REDEEM_MESSAGES = {
    "approved": "Invite accepted. Welcome to the beta!",
    "already_approved": "You're already in the beta.",
    "waitlisted": "The beta is full right now. You're on the waitlist and your invite is still valid.",
}


@router.post("/waitlist/submit", response_model=WaitlistSubmitResponse, status_code=201)
def submit_application(payload: WaitlistSubmitRequest, request: Request, db: Session = Depends(get_db)):
    """Apply for the beta; the response carries the admission outcome."""
    enforce_rate_limit("submit", payload.email, settings.SUBMIT_MAX_PER_MINUTE)
    enforce_rate_limit("submit-ip", client_identity(request), settings.SUBMIT_MAX_PER_MINUTE * 3)
    return AdmissionService(db).submit(payload.answers, payload.email, payload.display_name)


@router.post("/waitlist/redeem", response_model=RedeemResponse)
def redeem_invite(payload: RedeemRequest, request: Request, db: Session = Depends(get_db)):
    enforce_rate_limit("redeem", client_identity(request), settings.REDEEM_MAX_PER_MINUTE)
    result = AdmissionService(db).redeem(payload.code, payload.application_id)
    return RedeemResponse(status=result.status, position=result.position, message=REDEEM_MESSAGES[result.status])


@router.get("/waitlist/status/{application_id}", response_model=ApplicationStatusResponse)
def application_status(application_id: uuid.UUID, db: Session = Depends(get_db)):
    return AdmissionService(db).status_of(application_id)


@router.get("/beta/summary", response_model=BetaSummary)
def beta_summary(db: Session = Depends(get_db)):
    return AdmissionService(db).beta_summary()
