import secrets
from typing import Optional
import uuid

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db  # noqa: F401  re-exported for routers
from app.models.applicant import Applicant
from app.services.admission_service import AdmissionService
from app.utils.rate_limiter import allow_for_identity


def get_admin_actor(
    x_admin_token: Optional[str] = Header(None),
    x_admin_actor: Optional[str] = Header(None),
) -> str:
    """Authenticate an operator call and return the actor recorded in the audit log."""
    if not settings.ADMIN_API_TOKEN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin interface is disabled",
        )
    if not x_admin_token or not secrets.compare_digest(x_admin_token, settings.ADMIN_API_TOKEN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return (x_admin_actor or "admin").strip()[:100] or "admin"


def client_identity(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",", 1)[0].strip()
    return request.client.host if request.client else "anonymous"


def enforce_rate_limit(action: str, identity: str, limit: int) -> None:
    if not allow_for_identity(action, identity, limit, 60):
        raise HTTPException(status_code=429, detail="Too many requests, slow down.")


def get_member(application_id: uuid.UUID, db: Session = Depends(get_db)) -> Applicant:
    """Resolve the member that owns ``application_id``; 403 unless admitted."""
    return AdmissionService(db).member_for(application_id)
