from pydantic import BaseModel, Field
from typing import List, Optional
import uuid


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class CapUpdate(BaseModel):
    cap: int = Field(..., ge=0)


class PublicAdmissionUpdate(BaseModel):
    enabled: bool


class WaveRequest(BaseModel):
    size: Optional[int] = Field(None, ge=1)


class DecisionOut(BaseModel):
    application_id: uuid.UUID
    admitted: bool
    status: str
    position: Optional[int] = None


class WaveOut(BaseModel):
    admitted: List[uuid.UUID]
    remaining_capacity: int
    queued: bool = False


class CapacityOut(BaseModel):
    cap: int
    admitted: int
    remaining: int
    public_admission_enabled: bool
    version: int


class BulkApproveRequest(BaseModel):
    application_ids: List[uuid.UUID] = Field(..., min_length=1, max_length=500)


class BulkApproveOut(BaseModel):
    approved: List[DecisionOut]
