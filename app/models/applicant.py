from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from app.core.database import Base
from app.core.types import GUID


class Applicant(Base):
    """A person who applied for beta access. Never deleted; voided instead."""
    __tablename__ = "applicants"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, index=True, nullable=False)  # always lower-cased
    display_name = Column(String, nullable=False)

    # Personal referral code, assigned when the applicant becomes a member
    referral_code = Column(String, unique=True, index=True, nullable=True)

    voided_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    application = relationship("WaitlistApplication", back_populates="applicant", uselist=False)
    member_slot = relationship("MemberSlot", back_populates="applicant", uselist=False)
    invite_quota = relationship("InviteQuota", back_populates="member", uselist=False)

    @property
    def is_voided(self) -> bool:
        return self.voided_at is not None

    def __repr__(self):
        return f"<Applicant(id={self.id}, email={self.email})>"
