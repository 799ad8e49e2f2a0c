"""
Custom exceptions for the admission engine.

Every exception carries a stable ``error_code`` (the outcome enum returned to
callers) and the HTTP status the API layer maps it to.
"""
from typing import Dict, List, Optional


class BaseAppException(Exception):
    """Base application exception"""
    error_code = "error"
    status_code = 400

    def __init__(self, message: str, details: str = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict:
        body = {"error": self.error_code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(BaseAppException):
    """Raised when a resource is not found"""
    error_code = "not_found"
    status_code = 404


class ValidationError(BaseAppException):
    """Raised when validation fails; ``fields`` maps each bad field to its problem"""
    error_code = "validation_error"
    status_code = 422

    def __init__(self, message: str, details: str = None, fields: Optional[Dict[str, str]] = None):
        super().__init__(message, details)
        self.fields = fields or {}

    @property
    def field_names(self) -> List[str]:
        return sorted(self.fields)

    def to_dict(self) -> Dict:
        body = super().to_dict()
        if self.fields:
            body["fields"] = self.fields
        return body


class BusinessLogicError(BaseAppException):
    """Raised when business logic constraints are violated"""
    error_code = "business_rule"
    status_code = 409


class DuplicateEmailError(BusinessLogicError):
    error_code = "duplicate_email"


class AlreadyAttributedError(BusinessLogicError):
    error_code = "already_attributed"


class MaxUsesReachedError(BusinessLogicError):
    error_code = "max_uses_reached"


class QuotaExhaustedError(BusinessLogicError):
    error_code = "quota_exhausted"


class InvalidTransitionError(BusinessLogicError):
    """Raised when a status change would break the monotonic lifecycle"""
    error_code = "invalid_transition"


class InvalidCodeError(BaseAppException):
    error_code = "invalid_code"


class CodeNotFoundError(BaseAppException):
    error_code = "code_not_found"
    status_code = 404


class CodeExpiredError(BaseAppException):
    error_code = "code_expired"
    status_code = 410


class SelfReferralError(BaseAppException):
    error_code = "self_referral"


class CapacityRaceRetryExhaustedError(BaseAppException):
    """Internal: admission kept conflicting. Callers treat it as waitlisted."""
    error_code = "capacity_race_retry_exhausted"
    status_code = 409


class AuthorizationError(BaseAppException):
    """Raised when the caller does not own or may not use the resource"""
    error_code = "forbidden"
    status_code = 403


class PersistenceUnavailableError(BaseAppException):
    """Raised when the datastore keeps failing after bounded retries"""
    error_code = "try_again"
    status_code = 503


class AtCapacityError(BusinessLogicError):
    """Raised when a forced admission finds no free slot"""
    error_code = "at_capacity"
