"""Domain models for dump progress checkpoints."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId

# Smallest possible ObjectId; every real _id compares greater.
MIN_OBJECT_ID = ObjectId("000000000000000000000000")


@dataclass
class DumpProgress:
    """
    Last transferred ``_id`` per collection, enabling resumable dumps.

    Values only move forward during a transfer; ``reset()`` is the one way
    back to the start.

    Attributes:
        entries: Mapping of collection name to last transferred ObjectId
    """

    entries: dict[str, ObjectId] = field(default_factory=dict)

    def get(self, collection: str) -> ObjectId:
        """Return the lower bound for the next transfer of ``collection``."""
        return self.entries.get(collection, MIN_OBJECT_ID)

    def has(self, collection: str) -> bool:
        """True when progress beyond the minimum key is recorded."""
        return self.entries.get(collection, MIN_OBJECT_ID) != MIN_OBJECT_ID

    def advance(self, collection: str, last_id: ObjectId) -> None:
        """Record ``last_id`` as transferred; older ids are ignored."""
        if last_id > self.get(collection):
            self.entries[collection] = last_id

    def reset(self, collection: str) -> None:
        """Restart ``collection`` from the minimum key."""
        self.entries[collection] = MIN_OBJECT_ID

    def to_dict(self) -> dict[str, str]:
        """Serialize to JSON-compatible dict of hex strings."""
        return {name: str(oid) for name, oid in self.entries.items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DumpProgress:
        """
        Deserialize from dict of hex strings.

        Raises:
            ValueError: If a value is not a valid ObjectId
        """
        entries: dict[str, ObjectId] = {}
        for name, value in data.items():
            try:
                entries[name] = ObjectId(value)
            except (InvalidId, TypeError) as e:
                raise ValueError(f"Invalid ObjectId for collection '{name}': {value!r}") from e
        return cls(entries=entries)
