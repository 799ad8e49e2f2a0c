# Tasks package
from .capacity_tasks import run_capacity_wave, reconcile_admitted_count
from .notification_tasks import send_waitlist_notification

__all__ = [
    "run_capacity_wave",
    "reconcile_admitted_count",
    "send_waitlist_notification",
]
