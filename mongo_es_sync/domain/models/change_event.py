"""Typed view over a MongoDB change stream document."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True)
class ChangeEvent:
    """
    A single change delivered by the change feed.

    Attributes:
        operation_type: insert | update | replace | delete | invalidate | ...
        token: Resume token (the change document's ``_id``)
        document_key: ``{"_id": ...}`` of the changed document
        full_document: Current state of the document, if delivered
        namespace: ``{"db": ..., "coll": ...}``
    """

    operation_type: str
    token: Mapping[str, Any] | None = None
    document_key: Mapping[str, Any] = field(default_factory=dict)
    full_document: Mapping[str, Any] | None = None
    namespace: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_invalidate(self) -> bool:
        return self.operation_type == "invalidate"

    @property
    def document_id(self) -> Any:
        return self.document_key.get("_id")

    @classmethod
    def from_change(cls, change: Mapping[str, Any]) -> ChangeEvent:
        """Build from a raw change stream document."""
        return cls(
            operation_type=change["operationType"],
            token=change.get("_id"),
            document_key=change.get("documentKey") or {},
            full_document=change.get("fullDocument"),
            namespace=change.get("ns") or {},
        )
