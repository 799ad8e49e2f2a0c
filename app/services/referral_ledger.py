import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple
import uuid

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    AlreadyAttributedError,
    BaseAppException,
    CodeExpiredError,
    InvalidCodeError,
    NotFoundError,
    SelfReferralError,
)
from app.core.types import coerce_uuid
from app.models.applicant import Applicant
from app.models.invite_quota import InviteQuota
from app.models.referral_edge import AttributionTypeEnum, ReferralEdge
from app.models.waitlist_application import ApplicationStatusEnum, WaitlistApplication
from app.services.invite_quota_manager import InviteQuotaManager
from app.services.notification_service import NotificationService
from app.utils.audit import audit
from app.utils.locks import quota_locks, referral_locks
from app.utils.retry import run_with_db_retry
from app.utils.sanitization import normalize_code

logger = logging.getLogger(__name__)


@dataclass
class ReferralStats:
    member_id: uuid.UUID
    referral_code: Optional[str]
    total_referrals: int
    admitted_referrals: int
    pending_referrals: int
    invites_remaining: int
    bonus_invites_granted: int


@dataclass
class LeaderboardRow:
    rank: int
    member_id: uuid.UUID
    display_name: str
    referral_count: int


class ReferralLedger:
    """Who referred whom, and the invite rewards that follow from it."""

    def __init__(
        self,
        db: Session,
        quota_manager: Optional[InviteQuotaManager] = None,
        notifier: Optional[NotificationService] = None,
    ):
        self.db = db
        self.notifier = notifier or NotificationService(db)
        self.quota_manager = quota_manager or InviteQuotaManager(db, notifier=self.notifier)

    def resolve_referrer(self, referral_code: str) -> Applicant:
        """Map a member referral code or an invite code to the referring member."""
        cleaned = normalize_code(referral_code)
        if not cleaned:
            raise InvalidCodeError("Referral code is required")

        member = self.db.query(Applicant).filter(Applicant.referral_code == cleaned).first()
        if member is None:
            invite = self.quota_manager.find_code(cleaned)
            if invite is None:
                raise InvalidCodeError("Referral code not recognised", details=cleaned)
            if invite.is_expired():
                raise CodeExpiredError("Referral code has expired", details=cleaned)
            member = self.db.get(Applicant, invite.issuer_id)

        if member is None or member.is_voided or member.referral_code is None:
            raise InvalidCodeError("Referral code is no longer valid", details=cleaned)
        return member

    def attribute(self, referral_code: str, referred_applicant_id) -> ReferralEdge:
        """Record that the owner of ``referral_code`` referred the applicant.

        First attribution wins; later attempts fail with AlreadyAttributedError.
        """
        referred_id = coerce_uuid(referred_applicant_id)

        def unit() -> Tuple[ReferralEdge, int]:
            with referral_locks.hold(referred_id):
                try:
                    referrer = self.resolve_referrer(referral_code)
                    referred = self.db.get(Applicant, referred_id)
                    if referred is None:
                        raise NotFoundError("Applicant not found", details=str(referred_id))
                    if referrer.id == referred.id:
                        raise SelfReferralError("You cannot use your own referral code")
                    if self.edge_for(referred_id) is not None:
                        raise AlreadyAttributedError("This applicant has already been referred")
                    with quota_locks.hold(referrer.id):
                        edge, granted = self.record_edge(
                            referrer_id=referrer.id,
                            referred_id=referred_id,
                            attribution_type=AttributionTypeEnum.SIGNUP,
                            code=normalize_code(referral_code),
                        )
                        self.db.commit()
                except BaseAppException:
                    self.db.rollback()
                    raise
                except IntegrityError:
                    # another process attributed the same applicant first
                    self.db.rollback()
                    raise AlreadyAttributedError("This applicant has already been referred")
                self.db.refresh(edge)
                return edge, granted

        edge, granted = run_with_db_retry(self.db, unit, label="referrals.attribute")
        audit(
            "REFERRAL_ATTRIBUTED",
            user_id=str(edge.referrer_id),
            referred_id=str(edge.referred_id),
            attribution_type=edge.attribution_type,
            bonus_granted=granted,
        )
        if granted:
            self.notifier.notify(edge.referrer_id, "referral_reward")
        return edge

    def record_edge(
        self,
        referrer_id,
        referred_id,
        attribution_type: AttributionTypeEnum,
        code: Optional[str] = None,
    ) -> Tuple[ReferralEdge, int]:
        """Persist an edge and apply the reward rule in the caller's transaction.

        The caller holds the referral lock of the referred applicant and the
        quota lock of the referrer. Returns the edge and the number of bonus
        invites it unlocked.
        """
        edge = ReferralEdge(
            referrer_id=coerce_uuid(referrer_id),
            referred_id=coerce_uuid(referred_id),
            attribution_type=attribution_type,
            code=code,
        )
        self.db.add(edge)
        self.db.flush()
        granted = self._apply_reward_rule(edge.referrer_id)
        logger.info(f"Referral edge {edge.referrer_id} -> {edge.referred_id} ({attribution_type.value})")
        return edge, granted

    def _apply_reward_rule(self, referrer_id: uuid.UUID) -> int:
        """One bonus per REFERRAL_BONUS_EVERY edges, settled once per threshold."""
        every = settings.REFERRAL_BONUS_EVERY
        if every <= 0:
            return 0
        quota = self.db.get(InviteQuota, referrer_id)
        if quota is None:
            logger.warning(f"Referrer {referrer_id} has no invite quota; no reward applied")
            return 0
        self.db.refresh(quota)
        settled_through = self.referral_count(referrer_id) // every
        if settled_through <= quota.rewards_granted:
            return 0
        owed = (settled_through - quota.rewards_granted) * settings.REFERRAL_BONUS_AMOUNT
        self.quota_manager.grant_bonus(referrer_id, owed, rewards_through=settled_through, commit=False)
        return owed

    def edge_for(self, referred_id) -> Optional[ReferralEdge]:
        return self.db.query(ReferralEdge).filter(ReferralEdge.referred_id == coerce_uuid(referred_id)).first()

    def referral_count(self, referrer_id) -> int:
        return self.db.query(ReferralEdge).filter(ReferralEdge.referrer_id == coerce_uuid(referrer_id)).count()

    def stats(self, member_id) -> ReferralStats:
        member_id = coerce_uuid(member_id)
        member = self.db.get(Applicant, member_id)
        if member is None:
            raise NotFoundError("Member not found", details=str(member_id))
        total = self.referral_count(member_id)
        admitted = (
            self.db.query(ReferralEdge)
            .join(WaitlistApplication, WaitlistApplication.applicant_id == ReferralEdge.referred_id)
            .filter(
                ReferralEdge.referrer_id == member_id,
                WaitlistApplication.status == ApplicationStatusEnum.APPROVED,
            )
            .count()
        )
        quota = self.db.get(InviteQuota, member_id)
        return ReferralStats(
            member_id=member_id,
            referral_code=member.referral_code,
            total_referrals=total,
            admitted_referrals=admitted,
            pending_referrals=total - admitted,
            invites_remaining=quota.remaining if quota else 0,
            bonus_invites_granted=(quota.rewards_granted * settings.REFERRAL_BONUS_AMOUNT) if quota else 0,
        )

    def leaderboard(self, limit: int = 10, period_days: Optional[int] = None) -> List[LeaderboardRow]:
        referral_count = func.count(ReferralEdge.id).label("referral_count")
        query = (
            self.db.query(Applicant.id, Applicant.display_name, referral_count)
            .join(ReferralEdge, ReferralEdge.referrer_id == Applicant.id)
            .filter(Applicant.voided_at.is_(None))
        )
        if period_days:
            since = datetime.now(timezone.utc) - timedelta(days=period_days)
            query = query.filter(ReferralEdge.created_at >= since)
        rows = (
            query.group_by(Applicant.id, Applicant.display_name)
            .order_by(referral_count.desc(), func.min(ReferralEdge.created_at).asc(), Applicant.id.asc())
            .limit(limit)
            .all()
        )
        return [
            LeaderboardRow(rank=i + 1, member_id=row[0], display_name=row[1], referral_count=row[2])
            for i, row in enumerate(rows)
        ]
