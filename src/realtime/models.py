"""Change feed models.

A ``ChangeEvent`` is an immutable snapshot of an entity's full state after a
committed mutation. Observers never see partial entity states.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from src.utils.dates import ensure_utc_aware


def _optional_int(value: Any) -> int | None:
    return None if value is None else int(value)


class EntityType(str, Enum):
    """Entities published on the change feed."""

    ENROLLMENT = "enrollment"
    AUDIT_ENTRY = "audit_entry"


class ChangeKind(str, Enum):
    """Kind of committed mutation."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class SubscriptionState(str, Enum):
    """Subscription lifecycle: connecting -> active -> (error | closed)."""

    CONNECTING = "connecting"
    ACTIVE = "active"
    ERROR = "error"
    CLOSED = "closed"


@dataclass(frozen=True)
class ChangeEvent:
    """Committed mutation, as delivered to subscribers.

    ``version`` is the entity version the snapshot was taken at, for entities
    that carry one; it orders snapshots of the same entity.
    """

    sequence: int
    entity_type: EntityType
    entity_key: str
    kind: ChangeKind
    data: Mapping[str, Any]
    origin: str
    committed_at: datetime
    version: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", MappingProxyType(dict(self.data)))

    def to_message(self) -> dict[str, Any]:
        """Convert to a JSON-serializable message."""
        return {
            "type": "change",
            "sequence": self.sequence,
            "entity_type": self.entity_type.value,
            "entity_key": self.entity_key,
            "kind": self.kind.value,
            "data": dict(self.data),
            "origin": self.origin,
            "committed_at": self.committed_at.isoformat(),
            "version": self.version,
        }

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> "ChangeEvent":
        """Rebuild an event relayed from another process.

        Raises:
            KeyError: If a field is missing
            ValueError: If a field has an unknown value
        """
        return cls(
            sequence=int(message["sequence"]),
            entity_type=EntityType(message["entity_type"]),
            entity_key=str(message["entity_key"]),
            kind=ChangeKind(message["kind"]),
            data=message["data"],
            origin=str(message["origin"]),
            committed_at=ensure_utc_aware(
                datetime.fromisoformat(message["committed_at"])
            ),
            version=_optional_int(message.get("version")),
        )
