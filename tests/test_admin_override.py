import uuid

import pytest

from app.core.exceptions import AtCapacityError, InvalidTransitionError, NotFoundError, ValidationError
from app.models.applicant import Applicant
from app.models.waitlist_application import ApplicationStatusEnum
from app.services import admin_override as admin_module
from app.services.admin_override import AdminOverride
from app.services.capacity_gate import CapacityGate


@pytest.fixture
def admin_events(monkeypatch):
    events = []

    def record(action, *, actor, application_id=None, **fields):
        events.append(dict(action=action, actor=actor, application_id=application_id, **fields))

    monkeypatch.setattr(admin_module, "admin_event", record)
    return events


def test_approve_bypasses_score_but_takes_a_slot(db_session, capacity, make_application, notifier, admin_events):
    capacity(1)
    low = make_application(score=0)
    make_application(score=10)

    decision = AdminOverride(db_session, "ops@example.com", notifier=notifier).approve(low.id)

    assert decision.admitted is True
    assert CapacityGate(db_session).current_config().admitted_count == 1
    assert admin_events[0]["action"] == "approve"
    assert admin_events[0]["actor"] == "ops@example.com"
    assert admin_events[0]["application_id"] == low.id


def test_approve_cannot_exceed_cap(db_session, capacity, make_application, notifier, admin_events):
    capacity(0)
    application = make_application()
    with pytest.raises(AtCapacityError):
        AdminOverride(db_session, "ops@example.com", notifier=notifier).approve(application.id)

    # refused approvals are still audited
    assert admin_events[-1]["action"] == "approve"
    assert admin_events[-1]["application_id"] == application.id
    assert admin_events[-1]["outcome"] == "at_capacity"


def test_reject_pending(db_session, capacity, make_application, notifier, admin_events):
    capacity(5)
    application = make_application()

    rejected = AdminOverride(db_session, "ops@example.com", notifier=notifier).reject(application.id, "spam")

    assert rejected.status == ApplicationStatusEnum.REJECTED
    assert rejected.rejection_reason == "spam"
    assert rejected.decided_by == "ops@example.com"
    assert notifier.of_type("rejected") == [application.applicant_id]
    assert admin_events[-1]["action"] == "reject"


def test_reject_approved_is_invalid(db_session, capacity, make_application, notifier, admin_events):
    capacity(5)
    application = make_application()
    admin = AdminOverride(db_session, "ops@example.com", notifier=notifier)
    admin.approve(application.id)

    with pytest.raises(InvalidTransitionError):
        admin.reject(application.id, "changed my mind")
    assert admin_events[-1]["action"] == "reject"
    assert admin_events[-1]["outcome"] == "invalid_transition"


def test_raising_cap_runs_a_wave(db_session, capacity, make_application, notifier, admin_events):
    capacity(0)
    gate = CapacityGate(db_session, notifier=notifier)
    apps = [make_application(score=s) for s in (1, 8, 5)]
    for a in apps:
        gate.decide(a.id)

    AdminOverride(db_session, "ops@example.com", notifier=notifier).set_cap(2)

    statuses = {}
    for a in apps:
        db_session.refresh(a)
        statuses[a.score] = a.status
    assert statuses == {
        8: ApplicationStatusEnum.APPROVED,
        5: ApplicationStatusEnum.APPROVED,
        1: ApplicationStatusEnum.WAITLISTED,
    }
    assert [e["action"] for e in admin_events] == ["set_cap", "wave"]


def test_lowering_cap_below_admitted_fails(db_session, capacity, make_application, notifier, admin_events):
    capacity(2)
    admin = AdminOverride(db_session, "ops@example.com", notifier=notifier)
    admin.approve(make_application().id)
    admin.approve(make_application().id)

    with pytest.raises(ValidationError):
        admin.set_cap(1)


def test_remove_member_hands_slot_to_waitlist(db_session, capacity, make_application, notifier, admin_events):
    capacity(1)
    gate = CapacityGate(db_session, notifier=notifier)
    member = make_application(score=1)
    waiting = make_application(score=3)
    gate.decide(member.id)
    gate.decide(waiting.id)

    AdminOverride(db_session, "ops@example.com", notifier=notifier).remove_member(member.id)

    db_session.refresh(waiting)
    assert waiting.status == ApplicationStatusEnum.APPROVED
    removed = db_session.get(Applicant, member.applicant_id)
    db_session.refresh(removed)
    assert removed.is_voided
    assert gate.current_config().admitted_count == 1


def test_public_admission_toggle(db_session, capacity, make_application, notifier, admin_events):
    capacity(0)
    AdminOverride(db_session, "ops@example.com", notifier=notifier).set_public_admission(True)

    assert CapacityGate(db_session, notifier=notifier).decide(make_application().id).admitted is True
    assert admin_events[-1] == {"action": "set_public_admission", "actor": "ops@example.com",
                                "application_id": None, "enabled": True, "outcome": "ok"}


def test_actor_is_required(db_session):
    with pytest.raises(ValidationError):
        AdminOverride(db_session, "")


def test_bulk_approve_admits_every_listed_application(db_session, capacity, make_application, notifier, admin_events):
    capacity(3)
    apps = [make_application(score=s) for s in (0, 2, 4)]

    decisions = AdminOverride(db_session, "ops@example.com", notifier=notifier).bulk_approve([a.id for a in apps])

    assert [d.admitted for d in decisions] == [True, True, True]
    assert CapacityGate(db_session).current_config().admitted_count == 3
    approvals = [e for e in admin_events if e["action"] == "approve"]
    assert [e["application_id"] for e in approvals] == [a.id for a in apps]
    assert all(e["outcome"] == "ok" for e in approvals)


def test_bulk_approve_is_all_or_nothing(db_session, capacity, make_application, notifier, admin_events):
    capacity(2)
    apps = [make_application() for _ in range(3)]

    with pytest.raises(AtCapacityError):
        AdminOverride(db_session, "ops@example.com", notifier=notifier).bulk_approve([a.id for a in apps])

    for a in apps:
        db_session.refresh(a)
        assert a.status == ApplicationStatusEnum.PENDING
    assert CapacityGate(db_session).current_config().admitted_count == 0
    assert [e["action"] for e in admin_events] == ["bulk_approve"]
    assert admin_events[0]["outcome"] == "at_capacity"
    assert admin_events[0]["needed"] == 3
    assert admin_events[0]["remaining"] == 2


def test_bulk_approve_skips_already_admitted_when_counting(db_session, capacity, make_application, notifier, admin_events):
    capacity(2)
    admin = AdminOverride(db_session, "ops@example.com", notifier=notifier)
    first = make_application()
    admin.approve(first.id)
    second = make_application()

    decisions = admin.bulk_approve([first.id, second.id, first.id])

    assert len(decisions) == 2
    assert decisions[0].newly_admitted is False
    assert decisions[1].admitted is True
    assert CapacityGate(db_session).current_config().admitted_count == 2


def test_bulk_approve_unknown_id_changes_nothing(db_session, capacity, make_application, notifier, admin_events):
    capacity(5)
    application = make_application()

    with pytest.raises(NotFoundError):
        AdminOverride(db_session, "ops@example.com", notifier=notifier).bulk_approve([application.id, uuid.uuid4()])

    db_session.refresh(application)
    assert application.status == ApplicationStatusEnum.PENDING
    assert admin_events[-1]["outcome"] == "not_found"
