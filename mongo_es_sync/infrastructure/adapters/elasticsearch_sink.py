from __future__ import annotations

import base64
import datetime
import logging
import uuid
from typing import Any, Mapping

from bson import Binary, DBRef, Decimal128, ObjectId, Regex, Timestamp
from elasticsearch import ApiError, AsyncElasticsearch, NotFoundError, TransportError

from ...application.ports.indexing_sink import IndexingSinkPort
from ...domain.models.change_event import ChangeEvent
from ...domain.models.mapping import CollectionMapping

logger = logging.getLogger(__name__)

UPSERT_OPERATIONS = {"insert", "replace", "update"}


def to_json_safe(value: Any) -> Any:
    """Convert BSON values the JSON serializer can't handle."""
    if isinstance(value, Mapping):
        return {key: to_json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(item) for item in value]
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, Decimal128):
        return str(value.to_decimal())
    if isinstance(value, (Binary, bytes)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, datetime.datetime):
        return value.isoformat()
    if isinstance(value, Timestamp):
        return value.as_datetime().isoformat()
    if isinstance(value, Regex):
        pattern = value.pattern
        return pattern.decode("utf-8") if isinstance(pattern, bytes) else pattern
    if isinstance(value, DBRef):
        return to_json_safe(value.as_doc())
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


class ElasticsearchSink(IndexingSinkPort):
    """
    Adapter writing replicated documents to Elasticsearch.

    Documents are indexed under ``str(_id)`` with ``_id`` removed from the
    body. Collections without a configured mapping go to an index named
    after the collection.
    """

    def __init__(
        self,
        client: AsyncElasticsearch,
        bulk_size: int = 500,
        collection_mappings: Mapping[str, CollectionMapping] | None = None,
    ) -> None:
        """
        Initialize Elasticsearch sink.

        Args:
            client: AsyncElasticsearch client
            bulk_size: Documents per bulk request
            collection_mappings: Configured mappings by collection name
        """
        if bulk_size < 1:
            raise ValueError("bulk_size must be >= 1")
        self.client = client
        self.bulk_size = bulk_size
        self._configured = dict(collection_mappings or {})
        self.mappings: dict[str, CollectionMapping] = {}

    def set_mappings(self, collection: str) -> None:
        self.mappings[collection] = self._configured.get(collection) or CollectionMapping(index=collection)

    def mapping_for(self, collection: str) -> CollectionMapping:
        if collection not in self.mappings:
            self.set_mappings(collection)
        return self.mappings[collection]

    async def send_bulk_request(self, batch: list[dict[str, Any]]) -> None:
        """
        Send a bulk body; per-item failures are logged.

        Raises:
            ApiError/TransportError: If the request itself fails
        """
        if not batch:
            return
        response = await self.client.bulk(operations=to_json_safe(batch))
        if response.get("errors"):
            failed = [
                item
                for item in response.get("items", [])
                for result in item.values()
                if result.get("error")
            ]
            first = next(iter(failed[0].values())) if failed else {}
            logger.error(
                f"Bulk request had {len(failed)} failed items of {len(batch) // 2}: {first.get('error')}",
                extra={"failed_items": len(failed)},
            )

    async def delete_collection(self, collection: str) -> None:
        """Delete every document in the collection's index (missing index is not an error)."""
        mapping = self.mapping_for(collection)
        try:
            response = await self.client.delete_by_query(
                index=mapping.index,
                query={"match_all": {}},
                conflicts="proceed",
                refresh=True,
            )
        except NotFoundError:
            logger.info(f"Index {mapping.index} does not exist, nothing to delete for {collection}")
            return
        logger.info(
            f"Deleted {response.get('deleted', 0)} documents of {collection} from index {mapping.index}"
        )

    async def replicate(self, change: Mapping[str, Any]) -> None:
        """Apply one change event; write failures are logged, not raised."""
        event = ChangeEvent.from_change(change)
        collection = event.namespace.get("coll", "")
        mapping = self.mapping_for(collection)

        try:
            if event.operation_type in UPSERT_OPERATIONS:
                await self._index_document(mapping, event)
            elif event.operation_type == "delete":
                await self._delete_document(mapping, event)
            else:
                logger.debug(f"Ignoring {event.operation_type} event for {collection}")
        except (ApiError, TransportError) as e:
            logger.error(
                f"Failed to replicate {event.operation_type} of {event.document_id} in {collection}: {e}",
                extra={"collection": collection},
            )

    async def _index_document(self, mapping: CollectionMapping, event: ChangeEvent) -> None:
        if event.full_document is None:
            # update of a document deleted before the lookup ran
            logger.debug(f"No full document for {event.document_id}, skipping")
            return

        document = dict(event.full_document)
        doc_id = document.pop("_id", event.document_id)
        action = mapping.descriptor_for(doc_id, document)["index"]
        params: dict[str, Any] = {
            "index": mapping.index,
            "id": action["_id"],
            "document": to_json_safe(document),
        }
        if "routing" in action:
            params["routing"] = action["routing"]
        await self.client.index(**params)

    async def _delete_document(self, mapping: CollectionMapping, event: ChangeEvent) -> None:
        try:
            await self.client.delete(index=mapping.index, id=str(event.document_id))
        except NotFoundError:
            logger.debug(f"Document {event.document_id} already absent from {mapping.index}")
