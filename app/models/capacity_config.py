from sqlalchemy import Column, Integer, Boolean, String, DateTime, CheckConstraint
from sqlalchemy.sql import func

from app.core.database import Base

CAPACITY_CONFIG_ID = 1


class CapacityConfig(Base):
    """Single-row table holding the cap and the authoritative admitted counter.

    ``admitted_count`` and ``version`` only move through the conditional
    UPDATE issued by CapacityGate.
    """
    __tablename__ = "capacity_config"

    id = Column(Integer, primary_key=True, default=CAPACITY_CONFIG_ID)
    cap = Column(Integer, nullable=False)
    public_admission_enabled = Column(Boolean, nullable=False, default=False)
    admitted_count = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=0)

    updated_by = Column(String, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("cap >= 0", name="ck_capacity_cap_positive"),
        CheckConstraint("admitted_count >= 0", name="ck_capacity_admitted_positive"),
    )

    @property
    def remaining(self) -> int:
        return max(0, self.cap - self.admitted_count)
