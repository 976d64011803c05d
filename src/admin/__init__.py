"""Privileged admin actions (role-checked, audited).

Note: Router is imported directly in main.py to avoid circular imports.
"""

from src.admin.service import AdminActionService, actor_for


__all__ = [
    "AdminActionService",
    "actor_for",
]
