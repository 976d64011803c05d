"""Subscription filter predicates.

Predicates run on the publisher side for every event and must be cheap.
"""

from src.realtime.feed import EventPredicate
from src.realtime.models import ChangeEvent, EntityType


def all_enrollments() -> EventPredicate:
    def predicate(event: ChangeEvent) -> bool:
        return event.entity_type is EntityType.ENROLLMENT

    return predicate


def enrollments_for_student(student_id: str) -> EventPredicate:
    """Enrollment changes owned by one student."""

    def predicate(event: ChangeEvent) -> bool:
        return (
            event.entity_type is EntityType.ENROLLMENT
            and event.data.get("student_id") == student_id
        )

    return predicate


def enrollments_for_course(course_id: str) -> EventPredicate:
    """Enrollment changes for one course (coordinator dashboards)."""

    def predicate(event: ChangeEvent) -> bool:
        return (
            event.entity_type is EntityType.ENROLLMENT
            and event.data.get("course_id") == course_id
        )

    return predicate


def audit_entries() -> EventPredicate:
    def predicate(event: ChangeEvent) -> bool:
        return event.entity_type is EntityType.AUDIT_ENTRY

    return predicate
