import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional
import uuid

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    BaseAppException,
    CodeExpiredError,
    CodeNotFoundError,
    InvalidCodeError,
    InvalidTransitionError,
    MaxUsesReachedError,
    NotFoundError,
    QuotaExhaustedError,
    SelfReferralError,
    ValidationError,
)
from app.core.types import coerce_uuid
from app.models.applicant import Applicant
from app.models.invite_code import InviteCode, InviteRedemption
from app.models.invite_quota import InviteQuota
from app.models.referral_edge import AttributionTypeEnum, ReferralEdge
from app.models.waitlist_application import ApplicationStatusEnum, WaitlistApplication
from app.services.notification_service import NotificationService
from app.utils.audit import audit
from app.utils.locks import admission_lock, code_locks, quota_locks, referral_locks
from app.utils.retry import run_with_db_retry
from app.utils.sanitization import generate_code, normalize_code

logger = logging.getLogger(__name__)


@dataclass
class RedeemResult:
    status: str  # approved | already_approved | waitlisted
    application_id: uuid.UUID
    issuer_id: Optional[uuid.UUID] = None
    position: Optional[int] = None


class InviteQuotaManager:
    def __init__(self, db: Session, notifier: Optional[NotificationService] = None):
        self.db = db
        self.notifier = notifier or NotificationService(db)
        self._rewarded_members: List[uuid.UUID] = []

    # --- quota -----------------------------------------------------------

    def seed(self, member: Applicant) -> InviteQuota:
        """Give a new member its starting quota and personal referral code.

        Runs inside the caller's admission unit; does not commit.
        """
        quota = self.db.get(InviteQuota, member.id)
        if quota is None:
            quota = InviteQuota(member_id=member.id, quota=settings.INVITE_QUOTA_DEFAULT, used=0, rewards_granted=0)
            self.db.add(quota)
        if not member.referral_code:
            member.referral_code = self._unique_referral_code()
        self.db.flush()
        return quota

    def _unique_referral_code(self) -> str:
        while True:
            candidate = generate_code(length=8)
            taken = self.db.query(Applicant.id).filter(Applicant.referral_code == candidate).first()
            if not taken:
                return candidate

    def get_quota(self, member_id) -> InviteQuota:
        quota = self.db.get(InviteQuota, coerce_uuid(member_id))
        if quota is None:
            raise NotFoundError("Member has no invite quota", details=str(member_id))
        return quota

    def grant_bonus(self, member_id, amount: int, *, rewards_through: Optional[int] = None, commit: bool = True) -> InviteQuota:
        """Raise a member's quota by ``amount``. Quotas never go down.

        ``rewards_through`` records how many referral thresholds this grant
        settles; the update only applies while that count is still behind.
        With ``commit=False`` the grant joins the caller's transaction, and the
        caller already holds the member's quota lock.
        """
        if amount is None or amount <= 0:
            raise ValidationError("Bonus amount must be positive", fields={"amount": "must be > 0"})
        member_id = coerce_uuid(member_id)
        if not commit:
            return self._apply_bonus(member_id, amount, rewards_through)
        with quota_locks.hold(member_id):
            quota = self._apply_bonus(member_id, amount, rewards_through)
            self.db.commit()
            self.db.refresh(quota)
            return quota

    def _apply_bonus(self, member_id: uuid.UUID, amount: int, rewards_through: Optional[int]) -> InviteQuota:
        values = {"quota": InviteQuota.quota + amount}
        stmt = update(InviteQuota).where(InviteQuota.member_id == member_id)
        if rewards_through is not None:
            values["rewards_granted"] = rewards_through
            stmt = stmt.where(InviteQuota.rewards_granted < rewards_through)
        result = self.db.execute(stmt.values(**values).execution_options(synchronize_session=False))
        if result.rowcount == 0:
            if self.db.get(InviteQuota, member_id) is None:
                raise NotFoundError("Member has no invite quota", details=str(member_id))
            logger.info(f"Bonus for member {member_id} already settled through {rewards_through}")
        else:
            audit("INVITE_BONUS_GRANTED", user_id=str(member_id), amount=amount, rewards_through=rewards_through)
        quota = self.db.get(InviteQuota, member_id)
        self.db.refresh(quota)
        return quota

    # --- codes -----------------------------------------------------------

    def outstanding_uses(self, member_id) -> int:
        """Uses still available on the member's live codes."""
        now = datetime.now(timezone.utc)
        codes = self.db.query(InviteCode).filter(InviteCode.issuer_id == coerce_uuid(member_id)).all()
        return sum(c.max_uses - c.uses for c in codes if not c.is_expired(now))

    def list_codes(self, member_id) -> List[InviteCode]:
        return (
            self.db.query(InviteCode)
            .filter(InviteCode.issuer_id == coerce_uuid(member_id))
            .order_by(InviteCode.created_at.desc())
            .all()
        )

    def issue_code(self, member_id, max_uses: Optional[int] = None, expires_in_days: Optional[int] = None) -> InviteCode:
        """Issue a code against the member's remaining quota.

        Uses reserved by live, unredeemed codes count against the quota, so the
        member can never hand out more redemptions than it is allowed.
        """
        member_id = coerce_uuid(member_id)
        max_uses = max_uses or settings.INVITE_CODE_MAX_USES
        if max_uses < 1:
            raise ValidationError("max_uses must be at least 1", fields={"max_uses": "must be >= 1"})
        ttl = settings.INVITE_CODE_TTL_DAYS if expires_in_days is None else expires_in_days

        def unit() -> InviteCode:
            with quota_locks.hold(member_id):
                member = self.db.get(Applicant, member_id)
                if member is None or member.is_voided:
                    raise NotFoundError("Member not found", details=str(member_id))
                quota = self.get_quota(member_id)
                self.db.refresh(quota)
                reserved = self.outstanding_uses(member_id)
                if quota.used >= quota.quota or quota.used + reserved + max_uses > quota.quota:
                    raise QuotaExhaustedError(
                        "No invites left to issue",
                        details=f"quota={quota.quota} used={quota.used} reserved={reserved}",
                    )
                invite = InviteCode(
                    code=self._unique_invite_code(),
                    issuer_id=member_id,
                    max_uses=max_uses,
                    uses=0,
                    expires_at=datetime.now(timezone.utc) + timedelta(days=ttl) if ttl else None,
                )
                self.db.add(invite)
                self.db.commit()
                self.db.refresh(invite)
                audit("INVITE_CODE_ISSUED", user_id=str(member_id), code=invite.code, max_uses=max_uses)
                return invite

        return run_with_db_retry(self.db, unit, label="invites.issue_code")

    def _unique_invite_code(self) -> str:
        while True:
            candidate = generate_code(prefix=settings.INVITE_CODE_PREFIX, length=6)
            if not self.db.query(InviteCode.id).filter(InviteCode.code == candidate).first():
                return candidate

    def find_code(self, code: str) -> Optional[InviteCode]:
        cleaned = normalize_code(code)
        if not cleaned:
            return None
        return self.db.query(InviteCode).filter(InviteCode.code == cleaned).first()

    # --- redemption --------------------------------------------------------

    def redeem(self, code: str, redeemer_application_id) -> RedeemResult:
        """Redeem ``code`` for an application and admit it in the same unit.

        The code is consumed if and only if the application is newly admitted:
        an applicant who cannot be admitted because the cap is full is
        waitlisted and keeps the code unused.
        """
        from app.services.capacity_gate import CapacityGate, DecisionContext

        cleaned = normalize_code(code)
        if not cleaned:
            raise ValidationError("Invite code is required", fields={"code": "missing"})
        application_id = coerce_uuid(redeemer_application_id)
        gate = CapacityGate(self.db, notifier=self.notifier)

        # resolve before locking: unknown codes never get a lock entry
        known = self.find_code(cleaned)
        if known is None:
            raise CodeNotFoundError("Invite code not found", details=cleaned)
        applicant_id = self.db.query(WaitlistApplication.applicant_id).filter(WaitlistApplication.id == application_id).scalar()
        if applicant_id is None:
            raise NotFoundError("Application not found", details=str(application_id))
        issuer_id = known.issuer_id

        def unit():
            with code_locks.hold(cleaned), referral_locks.hold(applicant_id), quota_locks.hold(issuer_id), admission_lock:
                self._rewarded_members = []
                try:
                    invite = self.db.query(InviteCode).filter(InviteCode.code == cleaned).populate_existing().first()
                    if invite is None:
                        raise CodeNotFoundError("Invite code not found", details=cleaned)
                    if invite.is_expired():
                        raise CodeExpiredError("Invite code has expired", details=cleaned)
                    if invite.uses >= invite.max_uses:
                        raise MaxUsesReachedError("Invite code has already been used", details=cleaned)

                    issuer = self.db.get(Applicant, invite.issuer_id)
                    if issuer is None or issuer.is_voided:
                        raise InvalidCodeError("Invite code is no longer valid", details=cleaned)

                    application = self.db.get(WaitlistApplication, application_id)
                    if application is None:
                        raise NotFoundError("Application not found", details=str(application_id))
                    if application.applicant_id == invite.issuer_id:
                        raise SelfReferralError("You cannot redeem your own invite code")

                    decision = gate.decide(application_id, DecisionContext.redemption(), commit=False)
                    if decision.status == ApplicationStatusEnum.REJECTED:
                        raise InvalidTransitionError("Rejected applications cannot redeem invites")
                    if not decision.admitted:
                        self.db.commit()
                        return decision, RedeemResult("waitlisted", application_id, invite.issuer_id, decision.position)
                    if not decision.newly_admitted:
                        self.db.rollback()
                        return decision, RedeemResult("already_approved", application_id, invite.issuer_id)

                    self._consume(invite, application)
                    self.db.commit()
                    return decision, RedeemResult("approved", application_id, invite.issuer_id)
                except BaseAppException:
                    self.db.rollback()
                    raise

        decision, result = run_with_db_retry(self.db, unit, label="invites.redeem")
        gate.after_commit(decision, DecisionContext.redemption())
        if result.status == "approved":
            audit("INVITE_REDEEMED", user_id=str(result.issuer_id), code=cleaned, application_id=str(application_id))
            self.notifier.notify(result.issuer_id, "invite_redeemed")
            for member_id in self._rewarded_members:
                self.notifier.notify(member_id, "referral_reward")
        else:
            logger.info(f"Redemption of {cleaned} for {application_id} ended as {result.status}")
        self._rewarded_members = []
        return result

    def _consume(self, invite: InviteCode, application: WaitlistApplication) -> None:
        """Consume one use of the code and one unit of the issuer's quota."""
        from app.services.referral_ledger import ReferralLedger

        used_code = self.db.execute(
            update(InviteCode)
            .where(InviteCode.id == invite.id, InviteCode.uses < InviteCode.max_uses)
            .values(uses=InviteCode.uses + 1, redeemed_by=application.applicant_id)
            .execution_options(synchronize_session=False)
        )
        if used_code.rowcount == 0:
            raise MaxUsesReachedError("Invite code has already been used", details=invite.code)

        used_quota = self.db.execute(
            update(InviteQuota)
            .where(InviteQuota.member_id == invite.issuer_id, InviteQuota.used < InviteQuota.quota)
            .values(used=InviteQuota.used + 1)
            .execution_options(synchronize_session=False)
        )
        if used_quota.rowcount == 0:
            raise QuotaExhaustedError("The inviting member has no invites left", details=invite.code)

        self.db.add(InviteRedemption(code_id=invite.id, redeemer_id=application.applicant_id))

        already = (
            self.db.query(ReferralEdge.id)
            .filter(ReferralEdge.referred_id == application.applicant_id)
            .first()
        )
        if not already:
            _, granted = ReferralLedger(self.db, quota_manager=self, notifier=self.notifier).record_edge(
                referrer_id=invite.issuer_id,
                referred_id=application.applicant_id,
                attribution_type=AttributionTypeEnum.CODE_REDEMPTION,
                code=invite.code,
            )
            if granted:
                self._rewarded_members.append(invite.issuer_id)
        self.db.flush()
