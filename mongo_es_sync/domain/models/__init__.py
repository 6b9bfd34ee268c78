"""Domain models for collection replication."""

from .bulk_batch import BulkBatch
from .change_event import ChangeEvent
from .checkpoint import MIN_OBJECT_ID, DumpProgress
from .mapping import CollectionMapping

__all__ = [
    "BulkBatch",
    "ChangeEvent",
    "CollectionMapping",
    "DumpProgress",
    "MIN_OBJECT_ID",
]
