from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from app.core.database import Base
from app.core.types import GUID


class MemberSlot(Base):
    """One consumed unit of the global cap. At most one per applicant."""
    __tablename__ = "member_slots"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    applicant_id = Column(GUID(), ForeignKey("applicants.id"), nullable=False, unique=True)
    application_id = Column(GUID(), ForeignKey("waitlist_applications.id"), nullable=False, unique=True)
    source = Column(String, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    released_at = Column(DateTime(timezone=True), nullable=True)  # member removed, slot freed

    applicant = relationship("Applicant", back_populates="member_slot")
