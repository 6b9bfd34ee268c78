"""Bulk request batch accumulated during a dump."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class BulkBatch:
    """
    Ordered bulk request body: descriptor, document, descriptor, document, ...

    Attributes:
        entries: Alternating operation descriptors and document bodies
    """

    entries: list[dict[str, Any]] = field(default_factory=list)

    def append(self, descriptor: dict[str, Any], document: dict[str, Any]) -> None:
        """Append one descriptor/document pair."""
        self.entries.append(descriptor)
        self.entries.append(document)

    @property
    def document_count(self) -> int:
        return len(self.entries) // 2

    def is_empty(self) -> bool:
        return not self.entries

    def is_full(self, bulk_size: int) -> bool:
        """True once the batch holds ``bulk_size`` documents."""
        return bool(self.entries) and len(self.entries) % (bulk_size * 2) == 0

    def drain(self) -> list[dict[str, Any]]:
        """Hand the entries off for sending and start a new, empty batch."""
        entries = self.entries
        self.entries = []
        return entries

    def __post_init__(self) -> None:
        if len(self.entries) % 2 != 0:
            raise ValueError("entries must alternate descriptor and document")
