import os
import tempfile
from datetime import datetime, timedelta, timezone

# Point the app at a throwaway database before anything imports the engine
_TMP_DIR = tempfile.mkdtemp(prefix="beta-admission-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["EMAIL_ENABLED"] = "false"
os.environ["RESEND_API_KEY"] = ""
os.environ["NOTIFICATIONS_VIA_CELERY"] = "false"
os.environ["WAVES_VIA_CELERY"] = "false"
os.environ["ADMIN_API_TOKEN"] = "test-admin-token"

import pytest
from httpx import ASGITransport, AsyncClient

from app import models  # noqa: F401
from app.core.config import settings
from app.core.database import Base, SessionLocal, engine
from app.models.applicant import Applicant
from app.models.waitlist_application import ApplicationStatusEnum, WaitlistApplication
from app.services.capacity_gate import CapacityGate

from tests.helpers import RecordingNotifier


@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def session_factory():
    return SessionLocal


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
async def client():
    from main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def capacity(db_session):
    """Seed the capacity row with the given cap: ``capacity(3)``."""
    def _set(cap, public=False):
        gate = CapacityGate(db_session, notifier=RecordingNotifier())
        gate.ensure_config()
        gate.set_cap(cap, actor="tests")
        if public:
            gate.set_public_admission(True, actor="tests")
        return gate.current_config()
    return _set


@pytest.fixture
def make_application(db_session):
    """Insert a pending application directly, with full control over score and time."""
    counter = {"n": 0}
    base_time = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def _make(score=0, email=None, submitted_at=None, flagged=False, status=ApplicationStatusEnum.PENDING):
        counter["n"] += 1
        applicant = Applicant(
            email=email or f"applicant{counter['n']}@example.com",
            display_name=f"Applicant {counter['n']}",
        )
        db_session.add(applicant)
        db_session.flush()
        application = WaitlistApplication(
            applicant_id=applicant.id,
            answers={},
            score=score,
            scoring_version=settings.SCORING_VERSION,
            status=status,
            flagged=flagged,
            submitted_at=submitted_at or base_time + timedelta(minutes=counter["n"]),
        )
        db_session.add(application)
        db_session.commit()
        db_session.refresh(application)
        return application

    return _make


@pytest.fixture
def member(db_session, capacity, make_application, notifier):
    """An admitted member with a seeded invite quota and referral code."""
    capacity(100)
    application = make_application(score=5)
    CapacityGate(db_session, notifier=notifier).decide(application.id)
    applicant = db_session.get(Applicant, application.applicant_id)
    db_session.refresh(applicant)
    return applicant
