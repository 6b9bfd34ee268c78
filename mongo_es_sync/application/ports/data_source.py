"""Port interfaces for the source database: cursors and change feeds."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

from bson import ObjectId

from ...domain.types import ResumeToken

# Handlers may be plain callables or coroutine functions.
FeedHandler = Callable[..., Awaitable[None] | None]

FEED_EVENTS = ("change", "close", "error")


@runtime_checkable
class CursorPort(Protocol):
    """Ordered cursor over documents with ``_id`` above a lower bound."""

    async def count(self) -> int:
        """
        Point-in-time number of documents matching the cursor filter.

        Returns:
            Document count at the time of the call
        """
        ...

    async def next(self) -> dict[str, Any] | None:
        """
        Fetch the next document.

        Returns:
            Next document, or None when the cursor is exhausted

        Raises:
            Exception: Driver error if the read fails
        """
        ...


@runtime_checkable
class ChangeFeedPort(Protocol):
    """Push-based change feed with change/close/error listeners."""

    def on(self, event: str, handler: FeedHandler) -> None:
        """
        Register a listener.

        Args:
            event: One of "change", "close", "error"
            handler: Called with the change document (change), the error (error)
                or no arguments (close)
        """
        ...

    def event_names(self) -> list[str]:
        """Names of events that currently have listeners."""
        ...

    def remove_all_listeners(self, event: str | None = None) -> None:
        """Deregister listeners for ``event``, or for every event when None."""
        ...

    async def close(self) -> None:
        """Stop delivering events and release the underlying stream."""
        ...


@runtime_checkable
class DataSourcePort(Protocol):
    """Protocol for reading and watching source collections."""

    def find_after(self, collection: str, lower_bound: ObjectId) -> CursorPort:
        """
        Open a cursor over documents with ``_id`` greater than ``lower_bound``.

        Args:
            collection: Source collection name
            lower_bound: Exclusive lower bound on ``_id``

        Returns:
            CursorPort ordered by ``_id`` ascending
        """
        ...

    def watch(
        self,
        collection: str,
        resume_after: ResumeToken | None = None,
        full_document: str = "updateLookup",
    ) -> ChangeFeedPort:
        """
        Open a change feed for ``collection``.

        Args:
            collection: Source collection name
            resume_after: Resume token to continue after, or None for the live position
            full_document: Full document mode ("updateLookup" delivers current state)

        Returns:
            ChangeFeedPort that starts delivering once listeners are registered
        """
        ...
