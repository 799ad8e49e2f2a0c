from datetime import datetime, timezone

from app.models.waitlist_application import ApplicationStatusEnum
from app.services.waitlist_ranker import WaitlistRanker


def test_rank_is_a_stable_total_order(db_session, make_application):
    same_time = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    for score in (3, 7, 7, 1):
        make_application(score=score)
    # identical score and timestamp fall back to id order
    make_application(score=5, submitted_at=same_time)
    make_application(score=5, submitted_at=same_time)

    ranker = WaitlistRanker(db_session)
    first = [a.id for a in ranker.rank()]
    second = [a.id for a in ranker.rank()]

    assert first == second
    scores = [a.score for a in ranker.rank()]
    assert scores == sorted(scores, reverse=True)


def test_ties_broken_by_earlier_submission(db_session, make_application):
    early = make_application(score=4, submitted_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
    late = make_application(score=4, submitted_at=datetime(2026, 1, 2, tzinfo=timezone.utc))

    ranker = WaitlistRanker(db_session)
    assert [a.id for a in ranker.rank()] == [early.id, late.id]
    assert ranker.position_of(early.id) == 1
    assert ranker.position_of(late.id) == 2


def test_rank_pages_lazily_and_resumes(db_session, make_application):
    apps = [make_application(score=s) for s in range(10)]
    ranker = WaitlistRanker(db_session)

    full = [a.id for a in ranker.rank(page_size=3)]
    assert len(full) == 10
    assert full == [a.id for a in ranker.rank(page_size=100)]

    resumed = [a.id for a in ranker.rank(page_size=4, after=full[4])]
    assert resumed == full[5:]
    assert full[0] == apps[-1].id


def test_decided_applications_leave_the_queue(db_session, make_application):
    approved = make_application(score=9, status=ApplicationStatusEnum.APPROVED)
    rejected = make_application(score=8, status=ApplicationStatusEnum.REJECTED)
    waiting = make_application(score=1, status=ApplicationStatusEnum.WAITLISTED)
    pending = make_application(score=2)

    ranker = WaitlistRanker(db_session)
    assert [a.id for a in ranker.rank()] == [pending.id, waiting.id]
    assert ranker.position_of(approved.id) is None
    assert ranker.position_of(rejected.id) is None
    assert ranker.total_waiting() == 2


def test_ranked_page_numbers_positions(db_session, make_application):
    for s in (1, 2, 3, 4):
        make_application(score=s)
    page = WaitlistRanker(db_session).ranked_page(offset=2, limit=2)
    assert [(p.position, p.application.score) for p in page] == [(3, 2), (4, 1)]


def test_estimated_days_uses_default_velocity(db_session):
    ranker = WaitlistRanker(db_session)
    assert ranker.daily_admission_rate() == 5.0
    assert ranker.estimated_days(7) == 2
    assert ranker.estimated_days(None) is None
