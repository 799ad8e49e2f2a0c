from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterator, List, Optional, Sequence
import math
import uuid

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.types import coerce_uuid
from app.models.member_slot import MemberSlot
from app.models.waitlist_application import WaitlistApplication, ApplicationStatusEnum, WAITING_STATUSES


@dataclass(frozen=True)
class RankedApplication:
    position: int
    application: WaitlistApplication


class WaitlistRanker:
    """Read-only ordered view of the waiting queue.

    Order is score descending, then submission time ascending, then id, which
    is a total order: positions only move when applications are submitted or
    decided.
    """

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _ordering():
        return (
            WaitlistApplication.score.desc(),
            WaitlistApplication.submitted_at.asc(),
            WaitlistApplication.id.asc(),
        )

    def _waiting(self, statuses: Sequence[ApplicationStatusEnum]):
        return self.db.query(WaitlistApplication).filter(WaitlistApplication.status.in_(list(statuses)))

    @staticmethod
    def _after(anchor: WaitlistApplication):
        """Predicate for applications ranked strictly after ``anchor``."""
        return or_(
            WaitlistApplication.score < anchor.score,
            and_(WaitlistApplication.score == anchor.score, WaitlistApplication.submitted_at > anchor.submitted_at),
            and_(
                WaitlistApplication.score == anchor.score,
                WaitlistApplication.submitted_at == anchor.submitted_at,
                WaitlistApplication.id > anchor.id,
            ),
        )

    @staticmethod
    def _before(anchor: WaitlistApplication):
        """Predicate for applications ranked strictly before ``anchor``."""
        return or_(
            WaitlistApplication.score > anchor.score,
            and_(WaitlistApplication.score == anchor.score, WaitlistApplication.submitted_at < anchor.submitted_at),
            and_(
                WaitlistApplication.score == anchor.score,
                WaitlistApplication.submitted_at == anchor.submitted_at,
                WaitlistApplication.id < anchor.id,
            ),
        )

    def rank(
        self,
        page_size: int = 100,
        after: Optional[uuid.UUID] = None,
        statuses: Sequence[ApplicationStatusEnum] = WAITING_STATUSES,
    ) -> Iterator[WaitlistApplication]:
        """Lazily yield waiting applications in rank order, one page at a time.

        Pass the id of the last application seen as ``after`` to resume a
        previous iteration.
        """
        anchor = self.db.get(WaitlistApplication, coerce_uuid(after)) if after else None
        while True:
            query = self._waiting(statuses)
            if anchor is not None:
                query = query.filter(self._after(anchor))
            page = query.order_by(*self._ordering()).limit(page_size).all()
            if not page:
                return
            yield from page
            if len(page) < page_size:
                return
            anchor = page[-1]

    def ranked_page(self, offset: int = 0, limit: int = 50) -> List[RankedApplication]:
        rows = (
            self._waiting(WAITING_STATUSES)
            .order_by(*self._ordering())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return [RankedApplication(position=offset + i + 1, application=row) for i, row in enumerate(rows)]

    def position_of(self, application_id) -> Optional[int]:
        """1-based queue position, or None when the application is not waiting."""
        application = self.db.get(WaitlistApplication, coerce_uuid(application_id))
        if application is None or application.status not in WAITING_STATUSES:
            return None
        ahead = self._waiting(WAITING_STATUSES).filter(self._before(application)).count()
        return ahead + 1

    def total_waiting(self) -> int:
        return self._waiting(WAITING_STATUSES).count()

    def daily_admission_rate(self, days: int = 7) -> float:
        since = datetime.now(timezone.utc) - timedelta(days=days)
        recent = self.db.query(MemberSlot).filter(MemberSlot.created_at >= since).count()
        rate = recent / days
        return rate if rate > 0 else float(settings.WAITLIST_DEFAULT_DAILY_ADMISSIONS)

    def estimated_days(self, position: Optional[int]) -> Optional[int]:
        if position is None:
            return None
        rate = self.daily_admission_rate()
        if rate <= 0:
            return None
        return math.ceil(position / rate)
