import pytest

from app.core.exceptions import DuplicateEmailError, ValidationError
from app.models.member_slot import MemberSlot
from app.models.waitlist_application import ApplicationStatusEnum
from app.services.applicant_intake import ApplicantIntake

from tests.helpers import PLAIN_ANSWERS, VALID_ANSWERS


def test_submit_creates_pending_application(db_session):
    application = ApplicantIntake(db_session).submit(VALID_ANSWERS, "  Golfer@Example.com ", "Pat Golfer")

    assert application.status == ApplicationStatusEnum.PENDING
    assert application.score == 10
    assert application.scoring_version == "v2"
    assert application.applicant.email == "golfer@example.com"
    assert application.applicant.display_name == "Pat Golfer"
    # intake never decides capacity
    assert db_session.query(MemberSlot).count() == 0


def test_duplicate_email_is_case_insensitive(db_session):
    intake = ApplicantIntake(db_session)
    intake.submit(PLAIN_ANSWERS, "dup@example.com", "First")

    with pytest.raises(DuplicateEmailError):
        intake.submit(PLAIN_ANSWERS, "DUP@Example.COM", "Second")


def test_missing_answers_are_enumerated(db_session):
    answers = dict(PLAIN_ANSWERS)
    del answers["role"]
    del answers["city_region"]

    with pytest.raises(ValidationError) as exc:
        ApplicantIntake(db_session).submit(answers, "missing@example.com", "Missing")

    assert "answers.role" in exc.value.field_names
    assert "answers.city_region" in exc.value.field_names


def test_terms_must_be_accepted(db_session):
    answers = dict(PLAIN_ANSWERS, terms_accepted=False)
    with pytest.raises(ValidationError) as exc:
        ApplicantIntake(db_session).submit(answers, "terms@example.com", "Terms")
    assert exc.value.field_names == ["answers.terms_accepted"]


def test_bad_email_and_empty_name_reported_together(db_session):
    with pytest.raises(ValidationError) as exc:
        ApplicantIntake(db_session).submit(PLAIN_ANSWERS, "not-an-email", "   ")
    assert "email" in exc.value.field_names
    assert "display_name" in exc.value.field_names


def test_display_name_is_sanitised(db_session):
    application = ApplicantIntake(db_session).submit(PLAIN_ANSWERS, "name@example.com", "  Jo\x00\n  Smith " + "x" * 80)
    name = application.applicant.display_name
    assert name.startswith("Jo Smith")
    assert len(name) <= 50
    assert "\x00" not in name


def test_unprintable_name_falls_back_to_email(db_session):
    application = ApplicantIntake(db_session).submit(PLAIN_ANSWERS, "fallback@example.com", "\x01\x02")
    assert application.applicant.display_name == "fallback"


def test_honeypot_flags_and_is_not_stored(db_session):
    answers = dict(PLAIN_ANSWERS, contact_phone="555-0100")
    application = ApplicantIntake(db_session).submit(answers, "bot@example.com", "Bot")

    assert application.flagged is True
    assert "contact_phone" not in application.answers


def test_unknown_answer_keys_are_kept_and_ignored_by_scoring(db_session):
    answers = dict(PLAIN_ANSWERS, favourite_club="7 iron")
    application = ApplicantIntake(db_session).submit(answers, "extra@example.com", "Extra")
    assert application.score == 0
    assert application.answers["favourite_club"] == "7 iron"
