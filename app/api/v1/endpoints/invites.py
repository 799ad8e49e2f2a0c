from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.deps import get_db, get_member
from app.models.applicant import Applicant
from app.schemas.invite import InviteCodeOut, InviteQuotaOut, IssueCodeRequest
from app.services.invite_quota_manager import InviteQuotaManager

# Routes are keyed by the member's own application id, never by member id.
router = APIRouter(prefix="/invites", tags=["invites"])


@router.post("/{application_id}/codes", response_model=InviteCodeOut, status_code=201)
def issue_invite_code(
    payload: Optional[IssueCodeRequest] = None,
    member: Applicant = Depends(get_member),
    db: Session = Depends(get_db),
):
    """Issue a new invite code against the member's remaining quota."""
    payload = payload or IssueCodeRequest()
    return InviteQuotaManager(db).issue_code(member.id, payload.max_uses, payload.expires_in_days)


@router.get("/{application_id}/codes", response_model=List[InviteCodeOut])
def list_invite_codes(member: Applicant = Depends(get_member), db: Session = Depends(get_db)):
    return InviteQuotaManager(db).list_codes(member.id)


@router.get("/{application_id}/quota", response_model=InviteQuotaOut)
def invite_quota(member: Applicant = Depends(get_member), db: Session = Depends(get_db)):
    return InviteQuotaManager(db).get_quota(member.id)
