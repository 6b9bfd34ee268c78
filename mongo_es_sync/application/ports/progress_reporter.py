"""Port interface for reporting dump transfer progress."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Protocol


class TransferProgress(Protocol):
    """Progress handle for one collection's dump."""

    def update(self, transferred: int, docs_per_sec: float) -> None:
        """
        Report documents handed off so far.

        Args:
            transferred: Documents handed off for sending
            docs_per_sec: Average throughput since the dump started
        """
        ...

    def finish(self, transferred: int) -> None:
        """Mark the dump as complete."""
        ...


class ProgressReporterPort(ABC):
    """Port for reporting progress during dump transfers."""

    @abstractmethod
    def start_transfer(
        self,
        collection: str,
        total_documents: int,
    ) -> TransferProgress:
        """
        Start progress reporting for a collection dump.

        Args:
            collection: Collection being dumped
            total_documents: Nominal number of documents (count snapshot)

        Returns:
            TransferProgress for updating progress
        """
        pass
