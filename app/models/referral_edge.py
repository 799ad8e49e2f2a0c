from sqlalchemy import Column, String, DateTime, ForeignKey, CheckConstraint, Enum as SQLEnum
from sqlalchemy.sql import func
import uuid
import enum

from app.core.database import Base
from app.core.types import GUID


class AttributionTypeEnum(enum.Enum):
    SIGNUP = "signup"
    CODE_REDEMPTION = "code_redemption"


class ReferralEdge(Base):
    __tablename__ = "referral_edges"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    referrer_id = Column(GUID(), ForeignKey("applicants.id"), nullable=False, index=True)
    # first attribution wins: one edge per referred identity
    referred_id = Column(GUID(), ForeignKey("applicants.id"), nullable=False, unique=True)
    attribution_type = Column(
        SQLEnum(AttributionTypeEnum, name="attributiontypeenum", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    code = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    __table_args__ = (
        CheckConstraint("referrer_id <> referred_id", name="ck_referral_not_self"),
    )
