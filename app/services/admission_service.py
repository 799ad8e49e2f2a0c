"""
Public entry points of the admission engine: submit, redeem, status, summary.

Composes intake, referral attribution, invite redemption and the capacity
gate so that the HTTP layer only deals with one service.
"""
import logging
from typing import Any, Mapping, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import (
    AlreadyAttributedError,
    AuthorizationError,
    CodeExpiredError,
    CodeNotFoundError,
    InvalidCodeError,
    MaxUsesReachedError,
    NotFoundError,
    QuotaExhaustedError,
    SelfReferralError,
)
from app.core.types import coerce_uuid
from app.models.applicant import Applicant
from app.models.waitlist_application import ApplicationStatusEnum, WaitlistApplication
from app.schemas.waitlist import (
    ApplicationStatusResponse,
    BetaSummary,
    WaitlistSubmitResponse,
)
from app.services.applicant_intake import ApplicantIntake
from app.services.capacity_gate import CapacityGate, DecisionContext
from app.services.invite_quota_manager import InviteQuotaManager, RedeemResult
from app.services.notification_service import NotificationService
from app.services.referral_ledger import ReferralLedger
from app.services.waitlist_ranker import WaitlistRanker

logger = logging.getLogger(__name__)

# Code problems that should not fail the whole submission
SOFT_CODE_ERRORS = (
    AlreadyAttributedError,
    CodeExpiredError,
    CodeNotFoundError,
    InvalidCodeError,
    MaxUsesReachedError,
    QuotaExhaustedError,
    SelfReferralError,
)

MESSAGES = {
    ApplicationStatusEnum.APPROVED: "You're in! Welcome to the beta.",
    ApplicationStatusEnum.WAITLISTED: "The beta is full right now. You're on the waitlist.",
    ApplicationStatusEnum.PENDING: "Your application has been received.",
    ApplicationStatusEnum.REJECTED: "Your application was not accepted.",
}


class AdmissionService:
    def __init__(self, db: Session, notifier: Optional[NotificationService] = None):
        self.db = db
        self.notifier = notifier or NotificationService(db)
        self.intake = ApplicantIntake(db)
        self.gate = CapacityGate(db, notifier=self.notifier)
        self.invites = InviteQuotaManager(db, notifier=self.notifier)
        self.referrals = ReferralLedger(db, quota_manager=self.invites, notifier=self.notifier)
        self.ranker = WaitlistRanker(db)

    def submit(self, raw_answers: Mapping[str, Any], email: str, display_name: str) -> WaitlistSubmitResponse:
        application = self.intake.submit(raw_answers, email, display_name)
        answers = raw_answers if isinstance(raw_answers, Mapping) else {}

        referral_status = None
        referral_code = (answers.get("referral_code") or "").strip()
        if referral_code:
            try:
                self.referrals.attribute(referral_code, application.applicant_id)
                referral_status = "attributed"
            except SOFT_CODE_ERRORS as e:
                logger.warning(f"Referral code on submission {application.id} ignored: {e.error_code}")
                referral_status = e.error_code

        invite_status = None
        position = None
        invite_code = (answers.get("invite_code") or "").strip()
        redeemed: Optional[RedeemResult] = None
        if invite_code:
            try:
                redeemed = self.invites.redeem(invite_code, application.id)
                invite_status = redeemed.status
                position = redeemed.position
            except SOFT_CODE_ERRORS as e:
                logger.warning(f"Invite code on submission {application.id} unusable: {e.error_code}")
                invite_status = e.error_code

        if redeemed is None:
            decision = self.gate.decide(application.id, DecisionContext.live())
            position = decision.position

        self.db.refresh(application)
        return self._submit_response(application, position, referral_status, invite_status)

    def _submit_response(self, application, position, referral_status, invite_status) -> WaitlistSubmitResponse:
        return WaitlistSubmitResponse(
            application_id=application.id,
            status=application.status.value,
            score=application.score,
            position=position,
            estimated_days=self.ranker.estimated_days(position),
            referral_status=referral_status,
            invite_status=invite_status,
            message=MESSAGES[application.status],
        )

    def redeem(self, code: str, application_id) -> RedeemResult:
        return self.invites.redeem(code, application_id)

    def status_of(self, application_id) -> ApplicationStatusResponse:
        try:
            application_id = coerce_uuid(application_id)
        except ValueError:
            raise NotFoundError("Application not found", details=str(application_id))
        application = self.db.get(WaitlistApplication, application_id)
        if application is None:
            raise NotFoundError("Application not found", details=str(application_id))
        position = self.ranker.position_of(application_id)
        return ApplicationStatusResponse(
            application_id=application.id,
            status=application.status.value,
            position=position,
            total_waiting=self.ranker.total_waiting() if position else None,
            estimated_days=self.ranker.estimated_days(position),
            submitted_at=application.submitted_at,
            decided_at=application.decided_at,
            referral_code=application.applicant.referral_code if application.status == ApplicationStatusEnum.APPROVED else None,
        )

    def member_for(self, application_id) -> Applicant:
        """The active member behind an application id the caller holds.

        The application id is only ever handed to the applicant, so it doubles
        as the member's proof of ownership for invite and stats routes.
        """
        application = self.db.get(WaitlistApplication, coerce_uuid(application_id))
        if application is None:
            raise NotFoundError("Application not found", details=str(application_id))
        member = application.applicant
        if application.status != ApplicationStatusEnum.APPROVED or member is None or member.is_voided:
            raise AuthorizationError("Only admitted members can manage invites")
        return member

    def beta_summary(self) -> BetaSummary:
        config = self.gate.current_config()
        return BetaSummary(
            cap=config.cap,
            admitted=config.admitted_count,
            remaining=config.remaining,
            public_admission_enabled=config.public_admission_enabled,
            waitlist_count=self.ranker.total_waiting(),
        )
