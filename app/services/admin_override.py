import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional
import uuid

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    AtCapacityError,
    BaseAppException,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.core.types import coerce_uuid
from app.models.capacity_config import CapacityConfig
from app.models.member_slot import MemberSlot
from app.models.waitlist_application import (
    WAITING_STATUSES,
    ApplicationStatusEnum,
    WaitlistApplication,
    can_transition,
)
from app.services.capacity_gate import CapacityGate, Decision, DecisionContext
from app.services.notification_service import NotificationService
from app.utils.audit import admin_event
from app.utils.locks import admission_lock
from app.utils.retry import run_with_db_retry

logger = logging.getLogger(__name__)


class AdminOverride:
    """Operator actions. Every call emits an ADMIN_OVERRIDE audit event, failed ones included."""

    def __init__(self, db: Session, actor: str, notifier: Optional[NotificationService] = None):
        if not actor:
            raise ValidationError("Admin actions need an actor", fields={"actor": "missing"})
        self.db = db
        self.actor = actor
        self.notifier = notifier or NotificationService(db)
        self.gate = CapacityGate(db, notifier=self.notifier)

    @contextmanager
    def _audited(self, action: str, application_id=None, **fields) -> Iterator[Dict[str, Any]]:
        """Emit the audit event when the block ends, with its outcome."""
        outcome = "error"
        try:
            yield fields
            outcome = "ok"
        except BaseAppException as e:
            outcome = e.error_code
            raise
        finally:
            admin_event(action, actor=self.actor, application_id=application_id, outcome=outcome, **fields)

    def approve(self, application_id) -> Decision:
        """Admit regardless of score or queue position. Still takes a slot."""
        application_id = coerce_uuid(application_id)
        with self._audited("approve", application_id) as event:
            decision = self.gate.decide(application_id, DecisionContext.admin(self.actor))
            event["admitted"] = decision.admitted
            event["already_decided"] = not decision.newly_admitted
        return decision

    def bulk_approve(self, application_ids: Iterable) -> List[Decision]:
        """Approve an explicit list of applications, or none of them.

        The whole batch is refused up front when the remaining capacity cannot
        cover every application that still needs a slot. Each approval is
        audited on its own.
        """
        ids = list(dict.fromkeys(coerce_uuid(a) for a in application_ids))
        if not ids:
            raise ValidationError("No applications to approve", fields={"application_ids": "empty"})

        with admission_lock:
            with self._audited("bulk_approve", requested=len(ids)) as event:
                applications = (
                    self.db.query(WaitlistApplication)
                    .filter(WaitlistApplication.id.in_(ids))
                    .populate_existing()
                    .all()
                )
                found = {a.id for a in applications}
                missing = [str(i) for i in ids if i not in found]
                if missing:
                    raise NotFoundError("Application not found", details=", ".join(missing))
                waiting = [a for a in applications if a.status in WAITING_STATUSES]
                voided = [str(a.id) for a in waiting if a.applicant.is_voided]
                if voided:
                    raise InvalidTransitionError("Voided applicants cannot be admitted", details=", ".join(voided))
                needed = len(waiting)
                config = self.gate.current_config()
                event["needed"] = needed
                event["remaining"] = config.remaining
                if not config.public_admission_enabled and config.remaining < needed:
                    raise AtCapacityError(
                        f"Only {config.remaining} slot(s) left for {needed} approval(s); raise the cap first",
                        details=f"remaining={config.remaining} needed={needed}",
                    )
            return [self.approve(i) for i in ids]

    def reject(self, application_id, reason: Optional[str] = None) -> WaitlistApplication:
        application_id = coerce_uuid(application_id)

        def unit() -> WaitlistApplication:
            with admission_lock:
                try:
                    application = self.db.get(WaitlistApplication, application_id, populate_existing=True)
                    if application is None:
                        raise NotFoundError("Application not found", details=str(application_id))
                    if application.status == ApplicationStatusEnum.REJECTED:
                        return application
                    if not can_transition(application.status, ApplicationStatusEnum.REJECTED):
                        raise InvalidTransitionError(
                            f"Cannot reject an application that is {application.status.value}",
                            details=str(application_id),
                        )
                    application.status = ApplicationStatusEnum.REJECTED
                    application.rejection_reason = reason
                    application.decided_at = datetime.now(timezone.utc)
                    application.decided_by = self.actor
                    application.decision_source = "admin"
                    self.db.commit()
                except BaseAppException:
                    self.db.rollback()
                    raise
                self.db.refresh(application)
                return application

        with self._audited("reject", application_id, reason=reason):
            application = run_with_db_retry(self.db, unit, label="admin.reject")
        self.notifier.notify(application.applicant_id, "rejected")
        return application

    def set_cap(self, new_cap: int) -> CapacityConfig:
        """Change the cap; raising it releases a capacity wave."""
        with self._audited("set_cap", cap=new_cap) as event:
            previous = self.gate.current_config().cap
            event["previous_cap"] = previous
            config = self.gate.set_cap(new_cap, self.actor)
        if config.cap > previous:
            self.trigger_wave(config.cap - previous)
        return config

    def set_public_admission(self, enabled: bool) -> CapacityConfig:
        with self._audited("set_public_admission", enabled=enabled):
            return self.gate.set_public_admission(enabled, self.actor)

    def remove_member(self, application_id) -> MemberSlot:
        """Void an admitted member and hand the freed slot to the waitlist."""
        application_id = coerce_uuid(application_id)
        with self._audited("remove_member", application_id):
            slot = self.gate.release_member(application_id, self.actor)
        self.trigger_wave(1)
        return slot

    def trigger_wave(self, size: Optional[int] = None) -> List[uuid.UUID]:
        """Run a wave inline, or queue it on celery when configured."""
        size = size or settings.WAVE_DEFAULT_SIZE
        with self._audited("wave", size=size, queued=settings.WAVES_VIA_CELERY) as event:
            if settings.WAVES_VIA_CELERY:
                from app.tasks.capacity_tasks import run_capacity_wave
                run_capacity_wave.delay(size)
                return []
            admitted = self.gate.run_wave(size)
            event["admitted"] = len(admitted)
            return admitted
