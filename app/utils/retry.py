import logging
import time
from typing import Callable, TypeVar

from sqlalchemy.exc import OperationalError, DBAPIError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import PersistenceUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_transient(exc: DBAPIError) -> bool:
    return isinstance(exc, OperationalError) or bool(getattr(exc, "connection_invalidated", False))


def run_with_db_retry(db: Session, unit: Callable[[], T], *, label: str, attempts: int = None) -> T:
    """Run ``unit`` retrying transient datastore failures a bounded number of times.

    The session is rolled back between attempts so every retry starts from a
    clean transaction. Business exceptions propagate untouched.
    """
    attempts = attempts or settings.DB_MAX_RETRIES
    last_error = None
    for attempt in range(1, attempts + 1):
        try:
            return unit()
        except DBAPIError as e:
            db.rollback()
            if not _is_transient(e):
                raise
            last_error = e
            logger.warning(f"{label}: transient datastore error (attempt {attempt}/{attempts}): {e.orig}")
            time.sleep(settings.DB_RETRY_BACKOFF_SECONDS * attempt)
    logger.error(f"{label}: datastore unavailable after {attempts} attempts")
    raise PersistenceUnavailableError(
        "The service is temporarily unavailable, please try again",
        details=str(last_error.orig) if last_error is not None else None,
    )
