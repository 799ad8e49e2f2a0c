from sqlalchemy import Column, Integer, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.database import Base
from app.core.types import GUID


class InviteQuota(Base):
    __tablename__ = "invite_quotas"

    member_id = Column(GUID(), ForeignKey("applicants.id"), primary_key=True)
    quota = Column(Integer, nullable=False, default=0)
    used = Column(Integer, nullable=False, default=0)
    # number of referral thresholds already rewarded, so recounts never grant twice
    rewards_granted = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    member = relationship("Applicant", back_populates="invite_quota")

    __table_args__ = (
        CheckConstraint("used <= quota", name="ck_invite_quota_used"),
        CheckConstraint("used >= 0", name="ck_invite_quota_used_positive"),
    )

    @property
    def remaining(self) -> int:
        return max(0, self.quota - self.used)
