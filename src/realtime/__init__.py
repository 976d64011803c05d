"""Real-time change feed for dashboards.

Provides:
- ChangeFeed publisher with per-subscription queues and filter predicates
- Redis pub/sub relay between API processes
- WebSocket endpoints for enrollment and audit streams

Note: Router is imported directly in main.py to avoid circular imports.
"""

from src.realtime.feed import ChangeFeed, Subscription
from src.realtime.models import ChangeEvent, ChangeKind, EntityType, SubscriptionState


__all__ = [
    "ChangeEvent",
    "ChangeFeed",
    "ChangeKind",
    "EntityType",
    "Subscription",
    "SubscriptionState",
]
