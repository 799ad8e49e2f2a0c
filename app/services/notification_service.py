import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.types import coerce_uuid
from app.models.applicant import Applicant
from app.services.email_service import EmailService

logger = logging.getLogger(__name__)

NOTIFICATION_EVENTS = ("admitted", "waitlisted", "rejected", "referral_reward", "invite_redeemed")


class NotificationService:
    """Fire-and-forget notifications. Never raises: a failed notification must
    not undo the state change that triggered it."""

    def __init__(self, db: Session, email_service: Optional[EmailService] = None):
        self.db = db
        self.email = email_service or EmailService()

    def notify(self, applicant_id, event_type: str) -> bool:
        try:
            if settings.NOTIFICATIONS_VIA_CELERY:
                from app.tasks.notification_tasks import send_waitlist_notification
                send_waitlist_notification.delay(str(applicant_id), event_type)
                return True
            return self.deliver(applicant_id, event_type)
        except Exception as e:
            logger.error(f"Failed to notify applicant {applicant_id} about {event_type}: {e}")
            return False

    def deliver(self, applicant_id, event_type: str) -> bool:
        if event_type not in NOTIFICATION_EVENTS:
            logger.warning(f"Unknown notification event {event_type}")
            return False
        applicant = self.db.get(Applicant, coerce_uuid(applicant_id))
        if applicant is None:
            logger.warning(f"Cannot notify missing applicant {applicant_id}")
            return False
        return self.email.send_event(
            applicant.email,
            event_type,
            name=applicant.display_name,
            referral_code=applicant.referral_code,
        )
