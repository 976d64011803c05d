"""Error taxonomy shared by every service.

Each error carries a machine-readable ``code`` and a user-facing ``message``
specific enough for a dashboard to render an actionable hint. HTTP status
mapping lives with the class so the app needs a single exception handler.

Conflict and not-found errors are surfaced verbatim and never retried.
``StorageUnavailableError`` is the only retryable error.
"""

from typing import ClassVar


class EnrollmentGateError(Exception):
    """Base class for all domain errors."""

    code: ClassVar[str] = "error"
    status_code: ClassVar[int] = 400
    retryable: ClassVar[bool] = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, object]:
        """Serialize for an API error body."""
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }


class InvalidInputError(EnrollmentGateError):
    """Raised when arguments are malformed. The caller can fix and resend."""

    code = "invalid_input"
    status_code = 400


# ==============================================================================
# Not found
# ==============================================================================


class NotFoundError(EnrollmentGateError):
    """Raised when the referenced entity does not exist."""

    code = "not_found"
    status_code = 404


class CodeNotFoundError(NotFoundError):
    """Raised when an access code is unknown."""

    code = "code_not_found"

    def __init__(self, message: str = "This access code is not valid.") -> None:
        super().__init__(message)


class EnrollmentNotFoundError(NotFoundError):
    """Raised when no enrollment exists for a (student, course) pair."""

    code = "enrollment_not_found"

    def __init__(
        self, message: str = "No enrollment exists for this student and course."
    ) -> None:
        super().__init__(message)


class AccountNotFoundError(NotFoundError):
    """Raised when a user account does not exist."""

    code = "account_not_found"

    def __init__(self, message: str = "User account not found.") -> None:
        super().__init__(message)


# ==============================================================================
# Conflicts
# ==============================================================================


class ConflictError(EnrollmentGateError):
    """Raised when the current state forbids the requested change."""

    code = "conflict"
    status_code = 409


class CodeAlreadyUsedError(ConflictError):
    """Raised when an access code is no longer active."""

    code = "code_already_used"

    def __init__(
        self, message: str = "This access code has already been used."
    ) -> None:
        super().__init__(message)


class DuplicateEnrollmentError(ConflictError):
    """Raised when the student is already enrolled in the course."""

    code = "already_enrolled"

    def __init__(
        self, message: str = "You are already enrolled in this course."
    ) -> None:
        super().__init__(message)


class InvalidTransitionError(ConflictError):
    """Raised when a state machine transition is not allowed."""

    code = "invalid_transition"


# ==============================================================================
# Access, authorization, infrastructure
# ==============================================================================


class CodeExpiredError(EnrollmentGateError):
    """Raised when an access code is past its expiry. Terminal."""

    code = "code_expired"
    status_code = 410

    def __init__(self, message: str = "This access code has expired.") -> None:
        super().__init__(message)


class PaymentNotVerifiedError(EnrollmentGateError):
    """Raised when gated content is requested before verification."""

    code = "payment_not_verified"
    status_code = 402

    def __init__(
        self,
        message: str = "Your enrollment is awaiting payment verification.",
    ) -> None:
        super().__init__(message)


class PermissionDeniedError(EnrollmentGateError):
    """Raised when the caller's role does not allow the operation."""

    code = "permission_denied"
    status_code = 403

    def __init__(
        self, message: str = "You do not have permission to perform this action."
    ) -> None:
        super().__init__(message)


class StorageUnavailableError(EnrollmentGateError):
    """Raised when the backing store cannot be reached. Retryable.

    Wraps the underlying driver exception, preserving it for logging.
    """

    code = "storage_unavailable"
    status_code = 503
    retryable = True

    def __init__(
        self,
        message: str = "The service is temporarily unavailable. Please try again.",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.original_error = original_error


class SubscriptionError(EnrollmentGateError):
    """Raised to a change-feed observer whose subscription failed.

    The observer has already received every event queued before the failure
    and may resubscribe.
    """

    code = "subscription_failed"
    status_code = 503
    retryable = True

    def __init__(
        self,
        message: str = "Live updates were interrupted. Please reconnect.",
    ) -> None:
        super().__init__(message)
