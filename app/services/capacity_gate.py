"""
Capacity-gated admission.

Every admission runs as one unit: read the capacity row, decide, then bump
the admitted counter with a conditional UPDATE, create the member slot, move
the application to ``approved`` and seed the member's invites, all in a
single transaction. Within a process the unit is serialised by
``admission_lock``; across processes the ``WHERE`` clause of the counter
update (version stamp plus ``admitted_count < limit``) makes the
compare-and-increment atomic, and losers re-read and retry a bounded number
of times.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional
import uuid

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    AtCapacityError,
    BaseAppException,
    CapacityRaceRetryExhaustedError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.core.types import coerce_uuid
from app.models.applicant import Applicant
from app.models.capacity_config import CAPACITY_CONFIG_ID, CapacityConfig
from app.models.member_slot import MemberSlot
from app.models.waitlist_application import (
    ApplicationStatusEnum,
    WaitlistApplication,
    can_transition,
)
from app.services.invite_quota_manager import InviteQuotaManager
from app.services.notification_service import NotificationService
from app.services.waitlist_ranker import WaitlistRanker
from app.utils.audit import audit
from app.utils.locks import admission_lock
from app.utils.retry import run_with_db_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecisionContext:
    """Which path asked for the decision.

    ``forced`` admissions skip scoring rules and queue order but still need a
    free slot; ``live`` decisions also honour the auto-approve threshold, the
    honeypot flag and the capacity buffer.
    """
    source: str = "live"  # live | wave | admin | redemption
    forced: bool = False
    actor: Optional[str] = None

    @classmethod
    def live(cls) -> "DecisionContext":
        return cls()

    @classmethod
    def wave(cls) -> "DecisionContext":
        return cls(source="wave", actor="wave")

    @classmethod
    def admin(cls, actor: str) -> "DecisionContext":
        return cls(source="admin", forced=True, actor=actor)

    @classmethod
    def redemption(cls) -> "DecisionContext":
        return cls(source="redemption")

    @property
    def reconsiders_waitlisted(self) -> bool:
        return self.forced or self.source in ("wave", "redemption")

    @property
    def uses_buffer(self) -> bool:
        return self.source == "live"


@dataclass
class Decision:
    application_id: uuid.UUID
    applicant_id: uuid.UUID
    admitted: bool
    status: ApplicationStatusEnum
    position: Optional[int] = None
    newly_admitted: bool = False
    newly_waitlisted: bool = False


class CapacityGate:
    def __init__(self, db: Session, notifier: Optional[NotificationService] = None):
        self.db = db
        self.notifier = notifier or NotificationService(db)

    # --- configuration -----------------------------------------------------

    def ensure_config(self) -> CapacityConfig:
        """Return the capacity row, creating it from settings on first use."""
        config = self.db.get(CapacityConfig, CAPACITY_CONFIG_ID)
        if config is not None:
            return config
        config = CapacityConfig(
            id=CAPACITY_CONFIG_ID,
            cap=settings.BETA_CAP,
            public_admission_enabled=settings.PUBLIC_ADMISSION_ENABLED,
            admitted_count=self._active_slot_count(),
            version=0,
            updated_by="system",
        )
        self.db.add(config)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
        return self.db.get(CapacityConfig, CAPACITY_CONFIG_ID, populate_existing=True)

    def current_config(self) -> CapacityConfig:
        """Fresh read of the capacity row; never served from the session cache."""
        config = self.db.get(CapacityConfig, CAPACITY_CONFIG_ID, populate_existing=True)
        if config is None:
            config = self.ensure_config()
        return config

    def _active_slot_count(self) -> int:
        return self.db.query(MemberSlot).filter(MemberSlot.released_at.is_(None)).count()

    def sync_admitted_count(self) -> int:
        """Re-derive the admitted counter from the active member slots."""
        def unit() -> int:
            with admission_lock:
                config = self.current_config()
                count = self._active_slot_count()
                if config.admitted_count != count:
                    logger.warning(f"Admitted counter drifted ({config.admitted_count} stored, {count} slots); resyncing")
                self.db.execute(
                    update(CapacityConfig)
                    .where(CapacityConfig.id == CAPACITY_CONFIG_ID)
                    .values(admitted_count=count, version=CapacityConfig.version + 1)
                    .execution_options(synchronize_session=False)
                )
                self.db.commit()
                return count

        return run_with_db_retry(self.db, unit, label="capacity.sync")

    def set_cap(self, new_cap: int, actor: str) -> CapacityConfig:
        if new_cap is None or new_cap < 0:
            raise ValidationError("Cap must be zero or more", fields={"cap": "must be >= 0"})

        def unit() -> CapacityConfig:
            with admission_lock:
                config = self.current_config()
                if new_cap < config.admitted_count:
                    raise ValidationError(
                        "Cap cannot be lower than the number of admitted members",
                        details=f"admitted={config.admitted_count}",
                        fields={"cap": f"must be >= {config.admitted_count}"},
                    )
                self.db.execute(
                    update(CapacityConfig)
                    .where(CapacityConfig.id == CAPACITY_CONFIG_ID)
                    .values(cap=new_cap, version=CapacityConfig.version + 1, updated_by=actor)
                    .execution_options(synchronize_session=False)
                )
                self.db.commit()
                return self.current_config()

        return run_with_db_retry(self.db, unit, label="capacity.set_cap")

    def set_public_admission(self, enabled: bool, actor: str) -> CapacityConfig:
        def unit() -> CapacityConfig:
            with admission_lock:
                self.db.execute(
                    update(CapacityConfig)
                    .where(CapacityConfig.id == CAPACITY_CONFIG_ID)
                    .values(public_admission_enabled=enabled, version=CapacityConfig.version + 1, updated_by=actor)
                    .execution_options(synchronize_session=False)
                )
                self.db.commit()
                return self.current_config()

        self.ensure_config()
        return run_with_db_retry(self.db, unit, label="capacity.public_admission")

    def remaining_capacity(self) -> int:
        return self.current_config().remaining

    # --- decisions ---------------------------------------------------------

    def decide(self, application_id, context: Optional[DecisionContext] = None, commit: bool = True) -> Decision:
        """Admit or waitlist an application, exactly once.

        Re-running on an already decided application returns the recorded
        outcome without touching any state. With ``commit=False`` the caller
        owns the transaction (and must hold ``admission_lock``) and is
        responsible for calling :meth:`after_commit`.
        """
        context = context or DecisionContext.live()
        application_id = coerce_uuid(application_id)
        if not commit:
            with admission_lock:
                return self._decide_unit(application_id, context)

        def unit() -> Decision:
            with admission_lock:
                try:
                    decision = self._decide_unit(application_id, context)
                    self.db.commit()
                    return decision
                except BaseAppException:
                    self.db.rollback()
                    raise
                except IntegrityError:
                    # the slot was created concurrently by another process
                    self.db.rollback()
                    logger.warning(f"Concurrent admission detected for {application_id}; returning recorded outcome")
                    return self.recorded_outcome(application_id)

        decision = run_with_db_retry(self.db, unit, label="capacity.decide")
        self.after_commit(decision, context)
        return decision

    def recorded_outcome(self, application_id) -> Decision:
        application = self._load_application(coerce_uuid(application_id))
        return self._outcome(application)

    def _load_application(self, application_id: uuid.UUID) -> WaitlistApplication:
        application = (
            self.db.query(WaitlistApplication)
            .filter(WaitlistApplication.id == application_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if application is None:
            raise NotFoundError("Application not found", details=str(application_id))
        return application

    def _outcome(self, application: WaitlistApplication) -> Decision:
        position = None
        if application.status == ApplicationStatusEnum.WAITLISTED:
            position = WaitlistRanker(self.db).position_of(application.id)
        return Decision(
            application_id=application.id,
            applicant_id=application.applicant_id,
            admitted=application.status == ApplicationStatusEnum.APPROVED,
            status=application.status,
            position=position,
        )

    def _decide_unit(self, application_id: uuid.UUID, context: DecisionContext) -> Decision:
        application = self._load_application(application_id)
        status = application.status

        if status in (ApplicationStatusEnum.APPROVED, ApplicationStatusEnum.REJECTED):
            return self._outcome(application)
        if status == ApplicationStatusEnum.WAITLISTED and not context.reconsiders_waitlisted:
            return self._outcome(application)

        applicant = self.db.get(Applicant, application.applicant_id)
        if applicant is None or applicant.is_voided:
            raise InvalidTransitionError("Voided applicants cannot be admitted", details=str(application_id))

        config = self.current_config()
        eligible = True
        if context.source == "live":
            if application.flagged:
                eligible = False
                logger.info(f"Application {application_id} is flagged; not admitting live")
            elif not config.public_admission_enabled and application.score < settings.AUTO_APPROVE_THRESHOLD:
                eligible = False

        if eligible:
            try:
                admitted = self._try_take_slot(context)
            except CapacityRaceRetryExhaustedError:
                logger.warning(f"Admission of {application_id} kept conflicting; waitlisting")
                admitted = False
            if admitted:
                return self._admit(application, applicant, context)

        if context.forced:
            raise AtCapacityError("No capacity left; raise the cap first", details=str(application_id))
        return self._waitlist(application, context)

    def _try_take_slot(self, context: DecisionContext) -> bool:
        """Compare-and-increment the admitted counter. False when the cap is reached."""
        for attempt in range(1, settings.CAPACITY_MAX_RETRIES + 1):
            config = self.current_config()
            stmt = (
                update(CapacityConfig)
                .where(CapacityConfig.id == CAPACITY_CONFIG_ID, CapacityConfig.version == config.version)
                .values(admitted_count=CapacityConfig.admitted_count + 1, version=CapacityConfig.version + 1)
                .execution_options(synchronize_session=False)
            )
            if not config.public_admission_enabled:
                limit = config.cap
                if context.uses_buffer:
                    limit = max(0, config.cap - settings.CAPACITY_BUFFER)
                if config.admitted_count >= limit:
                    return False
                stmt = stmt.where(CapacityConfig.admitted_count < limit)
            if self.db.execute(stmt).rowcount == 1:
                return True
            logger.info(f"Capacity counter moved under us (attempt {attempt}); re-reading")
        raise CapacityRaceRetryExhaustedError("Admission retries exhausted")

    def _admit(self, application: WaitlistApplication, applicant: Applicant, context: DecisionContext) -> Decision:
        self._transition(application, ApplicationStatusEnum.APPROVED, context)
        self.db.add(MemberSlot(applicant_id=applicant.id, application_id=application.id, source=context.source))
        InviteQuotaManager(self.db, notifier=self.notifier).seed(applicant)
        self.db.flush()
        return Decision(
            application_id=application.id,
            applicant_id=applicant.id,
            admitted=True,
            status=ApplicationStatusEnum.APPROVED,
            newly_admitted=True,
        )

    def _waitlist(self, application: WaitlistApplication, context: DecisionContext) -> Decision:
        newly = False
        if application.status == ApplicationStatusEnum.PENDING:
            self._transition(application, ApplicationStatusEnum.WAITLISTED, context)
            newly = True
        self.db.flush()
        decision = self._outcome(application)
        decision.newly_waitlisted = newly
        return decision

    def _transition(self, application: WaitlistApplication, target: ApplicationStatusEnum, context: DecisionContext) -> None:
        if not can_transition(application.status, target):
            raise InvalidTransitionError(
                f"Cannot move application from {application.status.value} to {target.value}",
                details=str(application.id),
            )
        application.status = target
        application.decided_at = datetime.now(timezone.utc)
        application.decided_by = context.actor or "system"
        application.decision_source = context.source

    def after_commit(self, decision: Optional[Decision], context: Optional[DecisionContext] = None) -> None:
        """Audit and notify once the decision is durable."""
        if decision is None or not (decision.newly_admitted or decision.newly_waitlisted):
            return
        context = context or DecisionContext.live()
        outcome = "admitted" if decision.newly_admitted else "waitlisted"
        audit(
            "CAPACITY_DECISION",
            user_id=str(decision.applicant_id),
            application_id=str(decision.application_id),
            outcome=outcome,
            source=context.source,
            actor=context.actor,
            position=decision.position,
        )
        self.notifier.notify(decision.applicant_id, outcome)

    # --- waves and removals --------------------------------------------------

    def run_wave(self, size: Optional[int] = None) -> List[uuid.UUID]:
        """Promote the best-ranked waiting applications while slots remain.

        One application at a time, each through :meth:`decide`, so an
        interrupted wave can simply be run again.
        """
        size = size or settings.WAVE_DEFAULT_SIZE
        admitted: List[uuid.UUID] = []
        skipped = set()
        while len(admitted) < size:
            config = self.current_config()
            if not config.public_admission_enabled and config.admitted_count >= config.cap:
                break
            candidate = None
            for application in WaitlistRanker(self.db).rank(page_size=size):
                if application.id not in skipped and not application.flagged:
                    candidate = application
                    break
            if candidate is None:
                break
            candidate_id = candidate.id
            try:
                decision = self.decide(candidate_id, DecisionContext.wave())
            except InvalidTransitionError:
                skipped.add(candidate_id)
                continue
            if not decision.admitted:
                break
            if decision.newly_admitted:
                admitted.append(candidate_id)
            else:
                skipped.add(candidate_id)
        logger.info(f"Capacity wave admitted {len(admitted)} application(s)")
        if admitted:
            audit("CAPACITY_WAVE", admitted=len(admitted), remaining=self.remaining_capacity())
        return admitted

    def release_member(self, application_id, actor: str) -> MemberSlot:
        """Free the slot held by an admitted member and void the applicant."""
        application_id = coerce_uuid(application_id)

        def unit() -> MemberSlot:
            with admission_lock:
                try:
                    slot = (
                        self.db.query(MemberSlot)
                        .filter(MemberSlot.application_id == application_id)
                        .populate_existing()
                        .first()
                    )
                    if slot is None or slot.released_at is not None:
                        raise NotFoundError("No active member slot for this application", details=str(application_id))
                    now = datetime.now(timezone.utc)
                    slot.released_at = now
                    applicant = self.db.get(Applicant, slot.applicant_id)
                    applicant.voided_at = now
                    self.db.execute(
                        update(CapacityConfig)
                        .where(CapacityConfig.id == CAPACITY_CONFIG_ID, CapacityConfig.admitted_count > 0)
                        .values(admitted_count=CapacityConfig.admitted_count - 1, version=CapacityConfig.version + 1)
                        .execution_options(synchronize_session=False)
                    )
                    self.db.commit()
                except BaseAppException:
                    self.db.rollback()
                    raise
                self.db.refresh(slot)
                return slot

        slot = run_with_db_retry(self.db, unit, label="capacity.release")
        audit("MEMBER_RELEASED", user_id=str(slot.applicant_id), application_id=str(application_id), actor=actor)
        return slot
