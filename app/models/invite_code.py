from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from datetime import datetime, timezone
import uuid

from app.core.database import Base
from app.core.types import GUID


class InviteCode(Base):
    __tablename__ = "invite_codes"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    code = Column(String(64), unique=True, index=True, nullable=False)
    issuer_id = Column(GUID(), ForeignKey("applicants.id"), nullable=False, index=True)
    max_uses = Column(Integer, nullable=False, default=1)
    uses = Column(Integer, nullable=False, default=0)
    redeemed_by = Column(GUID(), ForeignKey("applicants.id"), nullable=True)  # latest redeemer
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    redemptions = relationship("InviteRedemption", back_populates="invite_code")

    __table_args__ = (
        CheckConstraint("uses <= max_uses", name="ck_invite_code_uses"),
    )

    def is_expired(self, now: datetime = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        expires = self.expires_at
        if expires.tzinfo is None:
            # SQLite hands back naive datetimes
            expires = expires.replace(tzinfo=timezone.utc)
        return expires <= now

    def __repr__(self):
        return f"<InviteCode(code={self.code}, uses={self.uses}/{self.max_uses})>"


class InviteRedemption(Base):
    __tablename__ = "invite_redemptions"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    code_id = Column(GUID(), ForeignKey("invite_codes.id"), nullable=False, index=True)
    redeemer_id = Column(GUID(), ForeignKey("applicants.id"), nullable=False)
    redeemed_at = Column(DateTime(timezone=True), server_default=func.now())

    invite_code = relationship("InviteCode", back_populates="redemptions")

    __table_args__ = (
        UniqueConstraint("code_id", "redeemer_id", name="uq_redemption_code_redeemer"),
    )
