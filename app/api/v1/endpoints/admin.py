from typing import List, Optional
import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import get_admin_actor, get_db
from app.schemas.admin import (
    BulkApproveOut,
    BulkApproveRequest,
    CapacityOut,
    CapUpdate,
    DecisionOut,
    PublicAdmissionUpdate,
    RejectRequest,
    WaveOut,
    WaveRequest,
)
from app.schemas.waitlist import WaitlistEntry
from app.services.admin_override import AdminOverride
from app.services.capacity_gate import CapacityGate
from app.services.waitlist_ranker import WaitlistRanker

router = APIRouter(prefix="/admin", tags=["admin"])


def _capacity_out(config) -> CapacityOut:
    return CapacityOut(
        cap=config.cap,
        admitted=config.admitted_count,
        remaining=config.remaining,
        public_admission_enabled=config.public_admission_enabled,
        version=config.version,
    )


def _decision_out(decision) -> DecisionOut:
    return DecisionOut(
        application_id=decision.application_id,
        admitted=decision.admitted,
        status=decision.status.value,
        position=decision.position,
    )


@router.get("/waitlist", response_model=List[WaitlistEntry])
def list_waitlist(
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    actor: str = Depends(get_admin_actor),
):
    """Waiting applications in rank order (admin only)"""
    limit = max(1, min(limit, 500))
    page = WaitlistRanker(db).ranked_page(offset=max(0, offset), limit=limit)
    return [
        WaitlistEntry(
            position=item.position,
            application_id=item.application.id,
            display_name=item.application.applicant.display_name,
            score=item.application.score,
            status=item.application.status.value,
            submitted_at=item.application.submitted_at,
        )
        for item in page
    ]


@router.post("/applications/approve", response_model=BulkApproveOut)
def bulk_approve_applications(
    payload: BulkApproveRequest,
    db: Session = Depends(get_db),
    actor: str = Depends(get_admin_actor),
):
    """Approve every listed application, or none when capacity cannot cover them all."""
    decisions = AdminOverride(db, actor).bulk_approve(payload.application_ids)
    return BulkApproveOut(approved=[_decision_out(d) for d in decisions])


@router.post("/applications/{application_id}/approve", response_model=DecisionOut)
def approve_application(application_id: uuid.UUID, db: Session = Depends(get_db), actor: str = Depends(get_admin_actor)):
    return _decision_out(AdminOverride(db, actor).approve(application_id))


@router.post("/applications/{application_id}/reject", response_model=DecisionOut)
def reject_application(
    application_id: uuid.UUID,
    payload: RejectRequest,
    db: Session = Depends(get_db),
    actor: str = Depends(get_admin_actor),
):
    application = AdminOverride(db, actor).reject(application_id, payload.reason)
    return DecisionOut(application_id=application.id, admitted=False, status=application.status.value)


@router.post("/members/{application_id}/remove")
def remove_member(application_id: uuid.UUID, db: Session = Depends(get_db), actor: str = Depends(get_admin_actor)):
    """Void a member; the freed slot goes to the next applicant in line."""
    slot = AdminOverride(db, actor).remove_member(application_id)
    return {"application_id": str(slot.application_id), "released_at": slot.released_at}


@router.get("/capacity", response_model=CapacityOut)
def get_capacity(db: Session = Depends(get_db), actor: str = Depends(get_admin_actor)):
    return _capacity_out(CapacityGate(db).current_config())


@router.put("/capacity", response_model=CapacityOut)
def update_capacity(payload: CapUpdate, db: Session = Depends(get_db), actor: str = Depends(get_admin_actor)):
    AdminOverride(db, actor).set_cap(payload.cap)
    return _capacity_out(CapacityGate(db).current_config())


@router.put("/public-admission", response_model=CapacityOut)
def update_public_admission(
    payload: PublicAdmissionUpdate,
    db: Session = Depends(get_db),
    actor: str = Depends(get_admin_actor),
):
    return _capacity_out(AdminOverride(db, actor).set_public_admission(payload.enabled))


@router.post("/waves", response_model=WaveOut)
def run_wave(
    payload: Optional[WaveRequest] = None,
    db: Session = Depends(get_db),
    actor: str = Depends(get_admin_actor),
):
    size = payload.size if payload else None
    admitted = AdminOverride(db, actor).trigger_wave(size)
    return WaveOut(
        admitted=admitted,
        remaining_capacity=CapacityGate(db).remaining_capacity(),
        queued=settings.WAVES_VIA_CELERY,
    )
