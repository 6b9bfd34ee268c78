"""Port interfaces for dump progress and resume token persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bson import ObjectId

    from ...domain.types import ResumeToken


class CollectionProgressPort(ABC):
    """Dump progress handle scoped to a single collection."""

    collection: str

    @abstractmethod
    def load(self) -> bool:
        """
        Load stored progress for the collection.

        Returns:
            True if a stored value beyond the minimum key exists
        """
        pass

    @abstractmethod
    def get(self) -> ObjectId:
        """Current lower bound (last transferred ``_id``)."""
        pass

    @abstractmethod
    def advance(self, last_id: ObjectId) -> None:
        """Record ``last_id`` as transferred."""
        pass

    @abstractmethod
    def reset(self) -> None:
        """Restart the collection from the minimum key."""
        pass

    @abstractmethod
    async def persist(self) -> None:
        """
        Write progress to durable storage and wait for completion.

        Raises:
            PersistenceWriteError: If the write fails
        """
        pass

    @abstractmethod
    def persist_in_background(self) -> None:
        """Schedule a best-effort write; failures are logged, not raised."""
        pass


class DumpProgressStorePort(ABC):
    """Port for the shared dump progress checkpoint."""

    @abstractmethod
    def scoped(self, collection: str) -> CollectionProgressPort:
        """
        Get a progress handle for one collection.

        Args:
            collection: Source collection name

        Returns:
            Handle that only reads and writes this collection's entry
        """
        pass

    @abstractmethod
    async def clear(self, collection: str) -> None:
        """Remove the stored entry for ``collection``."""
        pass


class ResumeTokenStorePort(ABC):
    """Port for persisting change feed resume tokens."""

    @abstractmethod
    async def load(self, collection: str) -> ResumeToken | None:
        """
        Load the stored token.

        Returns:
            Token, or None if absent or unreadable
        """
        pass

    @abstractmethod
    async def save(self, collection: str, token: ResumeToken) -> None:
        """
        Store ``token`` for ``collection``.

        Raises:
            PersistenceWriteError: If the write fails
        """
        pass

    @abstractmethod
    async def remove(self, collection: str) -> None:
        """Delete the stored token, if any."""
        pass
