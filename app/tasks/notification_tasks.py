import logging

from app.core.celery_app import celery_app
from app.core.database import SessionLocal
from app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


@celery_app.task
def send_waitlist_notification(applicant_id: str, event_type: str):
    """Deliver one admission/waitlist/reward email outside the request"""
    db = SessionLocal()
    try:
        sent = NotificationService(db).deliver(applicant_id, event_type)
        logger.info(f"Notification {event_type} for {applicant_id}: {'sent' if sent else 'skipped'}")
        return {"status": "sent" if sent else "skipped", "applicant_id": applicant_id, "event": event_type}
    except Exception as e:
        logger.error(f"Failed to deliver {event_type} notification to {applicant_id}: {str(e)}")
        return {"status": "failed", "applicant_id": applicant_id, "error": str(e)}
    finally:
        db.close()
