from typing import Any, Mapping, Protocol, runtime_checkable

from ...domain.models.mapping import CollectionMapping


@runtime_checkable
class IndexingSinkPort(Protocol):
    """Protocol for writing replicated documents into the search index."""

    bulk_size: int
    mappings: dict[str, CollectionMapping]

    def set_mappings(self, collection: str) -> None:
        """
        Resolve and cache the index mapping for ``collection``.

        Args:
            collection: Source collection name
        """
        ...

    async def send_bulk_request(self, batch: list[dict[str, Any]]) -> None:
        """
        Send a bulk request body of alternating descriptors and documents.

        Args:
            batch: Bulk request entries (descriptor, document, ...)
        """
        ...

    async def delete_collection(self, collection: str) -> None:
        """
        Delete every indexed document that came from ``collection``.

        Args:
            collection: Source collection name
        """
        ...

    async def replicate(self, change: Mapping[str, Any]) -> None:
        """
        Apply a single change stream event (insert/update/replace/delete).

        Args:
            change: Raw change stream document
        """
        ...
