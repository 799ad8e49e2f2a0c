from sqlalchemy import Column, String, DateTime, Integer, Boolean, ForeignKey, JSON, Index, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from datetime import datetime, timezone
import uuid
import enum

from app.core.database import Base
from app.core.types import GUID


class ApplicationStatusEnum(enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    WAITLISTED = "waitlisted"
    REJECTED = "rejected"


# pending -> anything decided; waitlisted -> approved (waves, admin); nothing else
ALLOWED_TRANSITIONS = {
    ApplicationStatusEnum.PENDING: {
        ApplicationStatusEnum.APPROVED,
        ApplicationStatusEnum.WAITLISTED,
        ApplicationStatusEnum.REJECTED,
    },
    ApplicationStatusEnum.WAITLISTED: {ApplicationStatusEnum.APPROVED},
    ApplicationStatusEnum.APPROVED: set(),
    ApplicationStatusEnum.REJECTED: set(),
}

# Statuses that make up the queue ranked by WaitlistRanker
WAITING_STATUSES = (ApplicationStatusEnum.PENDING, ApplicationStatusEnum.WAITLISTED)


def can_transition(current: ApplicationStatusEnum, target: ApplicationStatusEnum) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def _utcnow():
    return datetime.now(timezone.utc)


class WaitlistApplication(Base):
    __tablename__ = "waitlist_applications"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    applicant_id = Column(GUID(), ForeignKey("applicants.id"), nullable=False, unique=True)

    answers = Column(JSON, nullable=False, default=dict)
    score = Column(Integer, nullable=False, default=0)
    scoring_version = Column(String, nullable=False)
    status = Column(
        SQLEnum(ApplicationStatusEnum, name="applicationstatusenum", values_callable=lambda x: [e.value for e in x]),
        default=ApplicationStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    flagged = Column(Boolean, default=False, nullable=False)  # honeypot tripped
    rejection_reason = Column(String, nullable=True)

    # Python-side timestamp: sub-second precision matters for tie-breaking
    submitted_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    decided_at = Column(DateTime(timezone=True), nullable=True)
    decided_by = Column(String, nullable=True)  # admin actor, "system" or "wave"
    decision_source = Column(String, nullable=True)  # live|wave|admin|redemption|public

    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    applicant = relationship("Applicant", back_populates="application")

    __table_args__ = (
        Index("ix_waitlist_rank", "status", "score", "submitted_at"),
    )

    def __repr__(self):
        return f"<WaitlistApplication(id={self.id}, status={self.status.value}, score={self.score})>"
