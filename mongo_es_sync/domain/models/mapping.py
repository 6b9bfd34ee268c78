"""Per-collection index mapping."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class CollectionMapping:
    """
    Where and how a collection's documents are indexed.

    Attributes:
        index: Target index name
        doc_type: Legacy mapping type (``_type``), omitted when None
        parent_field: Document field holding the parent id, sent as routing
    """

    index: str
    doc_type: str | None = None
    parent_field: str | None = None

    def descriptor_for(self, doc_id: Any, document: dict[str, Any]) -> dict[str, Any]:
        """Build the bulk ``index`` descriptor for one document."""
        action: dict[str, Any] = {"_index": self.index, "_id": str(doc_id)}
        if self.doc_type:
            action["_type"] = self.doc_type
        if self.parent_field:
            parent = document.get(self.parent_field)
            if parent is not None:
                action["routing"] = str(parent)
        return {"index": action}

    def __post_init__(self) -> None:
        if not self.index:
            raise ValueError("index must be non-empty")
