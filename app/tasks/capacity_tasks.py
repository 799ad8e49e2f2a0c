import logging
from typing import Optional

from app.core.celery_app import celery_app
from app.core.database import SessionLocal
from app.services.capacity_gate import CapacityGate

logger = logging.getLogger(__name__)


@celery_app.task
def run_capacity_wave(size: Optional[int] = None):
    """Promote waitlisted applications into freed capacity.

    Each admission is its own idempotent decision, so a wave that dies half way
    is finished by simply running it again.
    """
    db = SessionLocal()
    try:
        admitted = CapacityGate(db).run_wave(size)
        return {"status": "completed", "admitted": [str(a) for a in admitted]}
    finally:
        db.close()


@celery_app.task
def reconcile_admitted_count():
    """Re-derive the admitted counter from active member slots"""
    db = SessionLocal()
    try:
        count = CapacityGate(db).sync_admitted_count()
        logger.info(f"Admitted counter reconciled to {count}")
        return {"status": "completed", "admitted": count}
    finally:
        db.close()
