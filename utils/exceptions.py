"""
Custom exception classes and error kinds for the checkout engine.

Collaborators (catalog, availability and appointment stores) raise the
exception types below. The checkout core converts them into ``Err`` values
carrying a :class:`BookingError` so that backend failures are never mixed up
with "no data".
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class DatabaseError(Exception):
    """Base exception for storage backend operations."""

    pass


class RequestTimeoutError(DatabaseError):
    """Raised when a backend request outlives its timeout; its outcome is unknown."""

    pass


class BookingCreationError(DatabaseError):
    """Raised when the multi-row booking write fails."""

    def __init__(self, message: str, rolled_back: bool = True):
        super().__init__(message)
        self.rolled_back = rolled_back


class ErrorKind(str, Enum):
    """Error taxonomy surfaced to the UI layer."""

    INVALID_SELECTION = "invalid_selection"
    VALIDATION_FAILED = "validation_failed"
    AVAILABILITY_CHECK_FAILED = "availability_check_failed"
    CONFLICT_AT_COMMIT = "conflict_at_commit"
    COMMIT_FAILED = "commit_failed"


class StepCondition(str, Enum):
    """Specific step predicate that was not met."""

    NO_SERVICES = "no_services"
    STAFF_UNASSIGNED = "staff_unassigned"
    STAFF_UNAVAILABLE = "staff_unavailable"
    DATE_MISSING = "date_missing"
    START_TIME_MISSING = "start_time_missing"
    OUTSIDE_WORKING_HOURS = "outside_working_hours"
    BUSINESS_CLOSED = "business_closed"
    DATE_IN_PAST = "date_in_past"
    BEYOND_BOOKING_HORIZON = "beyond_booking_horizon"
    NAME_MISSING = "name_missing"
    EMAIL_INVALID = "email_invalid"
    PHONE_INVALID = "phone_invalid"
    PAYMENT_METHOD_MISSING = "payment_method_missing"
    COMMIT_REQUIRED = "commit_required"
    STEP_NOT_REACHABLE = "step_not_reachable"
    REQUEST_IN_FLIGHT = "request_in_flight"


class ValidationIssue(BaseModel):
    """One unmet step condition, precise enough for the UI to highlight it."""

    step: str
    condition: StepCondition
    message: str
    subject: Optional[str] = None

    class Config:
        frozen = True


class BookingError(BaseModel):
    """Error value carried by ``Err`` results."""

    kind: ErrorKind
    message: str
    subject: Optional[str] = None
    issues: List[ValidationIssue] = Field(default_factory=list)

    class Config:
        frozen = True

    @classmethod
    def invalid_selection(cls, message: str, subject: Optional[str] = None) -> "BookingError":
        return cls(kind=ErrorKind.INVALID_SELECTION, message=message, subject=subject)

    @classmethod
    def validation_failed(cls, issues: List[ValidationIssue]) -> "BookingError":
        message = "; ".join(issue.message for issue in issues) or "Step is not valid"
        return cls(kind=ErrorKind.VALIDATION_FAILED, message=message, issues=issues)

    @classmethod
    def availability_check_failed(
        cls, message: str, subject: Optional[str] = None
    ) -> "BookingError":
        return cls(
            kind=ErrorKind.AVAILABILITY_CHECK_FAILED, message=message, subject=subject
        )

    @classmethod
    def conflict_at_commit(cls, message: str, subject: Optional[str] = None) -> "BookingError":
        return cls(kind=ErrorKind.CONFLICT_AT_COMMIT, message=message, subject=subject)

    @classmethod
    def commit_failed(cls, message: str) -> "BookingError":
        return cls(kind=ErrorKind.COMMIT_FAILED, message=message)
