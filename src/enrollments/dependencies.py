"""Dependencies for enrollment routes."""

from collections.abc import Callable

from src.enrollments.access_service import CourseAccessService
from src.enrollments.service import EnrollmentStore


# Service getter functions (set by main.py)
_enrollment_store_getter: Callable[[], EnrollmentStore] | None = None
_course_access_service_getter: Callable[[], CourseAccessService] | None = None


def set_enrollment_store_getter(getter: Callable[[], EnrollmentStore]) -> None:
    """Set the enrollment store getter function."""
    global _enrollment_store_getter  # noqa: PLW0603 - Required for DI pattern
    _enrollment_store_getter = getter


def set_course_access_service_getter(
    getter: Callable[[], CourseAccessService],
) -> None:
    """Set the course access service getter function."""
    global _course_access_service_getter  # noqa: PLW0603 - Required for DI pattern
    _course_access_service_getter = getter


def get_enrollment_store() -> EnrollmentStore:
    """Get EnrollmentStore instance."""
    if _enrollment_store_getter is not None:
        return _enrollment_store_getter()

    msg = "EnrollmentStore not configured"
    raise RuntimeError(msg)


def get_course_access_service() -> CourseAccessService:
    """Get CourseAccessService instance."""
    if _course_access_service_getter is not None:
        return _course_access_service_getter()

    msg = "CourseAccessService not configured"
    raise RuntimeError(msg)
