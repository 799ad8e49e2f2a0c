import logging
from typing import Any, Dict, Mapping

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import BaseAppException, DuplicateEmailError, ValidationError
from app.models.applicant import Applicant
from app.models.waitlist_application import ApplicationStatusEnum, WaitlistApplication
from app.schemas.waitlist import ApplicantIdentity, WaitlistAnswers
from app.services import scoring_policy
from app.utils.audit import audit
from app.utils.retry import run_with_db_retry
from app.utils.sanitization import normalize_email, sanitize_display_name

logger = logging.getLogger(__name__)

HONEYPOT_FIELD = "contact_phone"


def _fields_from(error: PydanticValidationError) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for item in error.errors():
        name = ".".join(str(part) for part in item.get("loc", ())) or "__root__"
        fields.setdefault(name, item.get("msg", "invalid"))
    return fields


class ApplicantIntake:
    """Validates submissions and turns them into pending applications.

    Intake never makes a capacity decision; the caller hands the returned
    application to CapacityGate.
    """

    def __init__(self, db: Session):
        self.db = db

    def validate(self, raw_answers: Mapping[str, Any], email: str, display_name: str):
        email = normalize_email(email)
        name = sanitize_display_name(display_name)
        if not name and (display_name or "").strip() and "@" in email:
            # only unprintable characters were given
            name = sanitize_display_name(email.split("@", 1)[0])
        fields: Dict[str, str] = {}

        try:
            identity = ApplicantIdentity(email=email, display_name=name)
        except PydanticValidationError as e:
            identity = None
            fields.update(_fields_from(e))

        if not isinstance(raw_answers, Mapping):
            fields["answers"] = "must be an object"
            answers = None
        else:
            try:
                answers = WaitlistAnswers(**raw_answers)
            except PydanticValidationError as e:
                answers = None
                fields.update({f"answers.{k}": v for k, v in _fields_from(e).items()})

        if fields:
            logger.warning(f"Rejected submission with invalid fields: {sorted(fields)}")
            raise ValidationError("Submission is invalid", details=", ".join(sorted(fields)), fields=fields)
        return identity, answers

    def find_by_email(self, email: str):
        return self.db.query(Applicant).filter(func.lower(Applicant.email) == normalize_email(email)).first()

    def submit(self, raw_answers: Mapping[str, Any], email: str, display_name: str) -> WaitlistApplication:
        identity, answers = self.validate(raw_answers, email, display_name)

        stored = answers.dict()
        flagged = bool((stored.pop(HONEYPOT_FIELD, None) or "").strip())
        version = settings.SCORING_VERSION
        result = scoring_policy.score_breakdown(stored, version)

        def unit() -> WaitlistApplication:
            if self.find_by_email(identity.email) is not None:
                raise DuplicateEmailError("An application with this email already exists", details=identity.email)
            try:
                applicant = Applicant(email=identity.email, display_name=identity.display_name)
                self.db.add(applicant)
                self.db.flush()
                application = WaitlistApplication(
                    applicant_id=applicant.id,
                    answers=stored,
                    score=result.capped_total,
                    scoring_version=version,
                    status=ApplicationStatusEnum.PENDING,
                    flagged=flagged,
                )
                self.db.add(application)
                self.db.commit()
            except BaseAppException:
                self.db.rollback()
                raise
            except IntegrityError:
                # the same email was submitted concurrently
                self.db.rollback()
                raise DuplicateEmailError("An application with this email already exists", details=identity.email)
            self.db.refresh(application)
            return application

        application = run_with_db_retry(self.db, unit, label="intake.submit")
        if flagged:
            logger.warning(f"Application {application.id} filled the honeypot field; flagged")
        audit(
            "WAITLIST_SUBMITTED",
            email=identity.email,
            user_id=str(application.applicant_id),
            application_id=str(application.id),
            score=application.score,
            scoring_version=version,
            breakdown=result.breakdown,
            flagged=flagged,
        )
        return application
