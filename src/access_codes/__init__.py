"""Single-use access codes that enroll a student into a course.

Note: Router is imported directly in main.py to avoid circular imports.
"""

from src.access_codes.models import (
    ACCESS_CODES_TABLES_CQL,
    AccessCode,
    AccessCodeStatus,
    RedemptionResult,
)
from src.access_codes.service import AccessCodeRegistry


__all__ = [
    "ACCESS_CODES_TABLES_CQL",
    "AccessCode",
    "AccessCodeRegistry",
    "AccessCodeStatus",
    "RedemptionResult",
]
