from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
import uuid


class InviteCodeOut(BaseModel):
    code: str
    max_uses: int
    uses: int
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InviteQuotaOut(BaseModel):
    quota: int
    used: int
    remaining: int

    class Config:
        from_attributes = True


class RedeemRequest(BaseModel):
    code: str
    application_id: uuid.UUID


class RedeemResponse(BaseModel):
    status: str  # approved | already_approved | waitlisted
    position: Optional[int] = None
    message: str


class IssueCodeRequest(BaseModel):
    max_uses: Optional[int] = Field(None, ge=1)
    expires_in_days: Optional[int] = Field(None, ge=0)
