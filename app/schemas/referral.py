from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
import uuid


class AttributeRequest(BaseModel):
    referral_code: str
    application_id: uuid.UUID


class ReferralEdgeOut(BaseModel):
    referrer_display_name: str
    attribution_type: str
    created_at: Optional[datetime] = None


class ReferralStats(BaseModel):
    referral_code: Optional[str] = None
    total_referrals: int
    admitted_referrals: int
    pending_referrals: int
    invites_remaining: int
    bonus_invites_granted: int


class LeaderboardEntry(BaseModel):
    rank: int
    display_name: str
    referral_count: int


class Leaderboard(BaseModel):
    entries: List[LeaderboardEntry]
