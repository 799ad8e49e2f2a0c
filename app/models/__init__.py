# Import all models here for Alembic
from app.models.applicant import Applicant
from app.models.waitlist_application import WaitlistApplication, ApplicationStatusEnum
from app.models.member_slot import MemberSlot
from app.models.referral_edge import ReferralEdge, AttributionTypeEnum
from app.models.invite_quota import InviteQuota
from app.models.invite_code import InviteCode, InviteRedemption
from app.models.capacity_config import CapacityConfig

__all__ = [
    "Applicant",
    "WaitlistApplication",
    "ApplicationStatusEnum",
    "MemberSlot",
    "ReferralEdge",
    "AttributionTypeEnum",
    "InviteQuota",
    "InviteCode",
    "InviteRedemption",
    "CapacityConfig",
]
