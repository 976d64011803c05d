"""User accounts.

Provides:
- Account records created on first authenticated use
- Self-service profile updates (closed field set)
- Audited suspension, unsuspension and deletion

Note: Router is imported directly in main.py to avoid circular imports.
"""

from src.accounts.models import ACCOUNTS_TABLES_CQL, AccountStatus, UserAccount
from src.accounts.service import AccountStore


__all__ = [
    "ACCOUNTS_TABLES_CQL",
    "AccountStatus",
    "AccountStore",
    "UserAccount",
]
