"""Rich-based progress reporter adapter for dump transfers."""

from __future__ import annotations

import logging
import sys
import time

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

from ...application.ports.progress_reporter import ProgressReporterPort, TransferProgress

logger = logging.getLogger(__name__)


class RichTransferProgress:
    """Progress bar for one collection's dump."""

    def __init__(
        self,
        progress: Progress,
        task_id: TaskID,
        collection: str,
    ) -> None:
        """
        Initialize transfer progress context.

        Args:
            progress: Rich Progress instance
            task_id: Task ID for this collection
            collection: Collection being dumped
        """
        self.progress = progress
        self.task_id = task_id
        self.collection = collection

    def update(self, transferred: int, docs_per_sec: float) -> None:
        self.progress.update(
            self.task_id,
            completed=transferred,
            description=f"[cyan]{self.collection}[/cyan] {docs_per_sec:.0f} docs/s",
        )

    def finish(self, transferred: int) -> None:
        """Mark the dump as complete."""
        self.progress.update(
            self.task_id,
            completed=transferred,
            total=transferred,
            description=f"[green]{self.collection}[/green] done",
        )
        self.progress.stop_task(self.task_id)


class LoggingTransferProgress:
    """Fallback progress context for non-interactive mode using logging."""

    def __init__(
        self,
        collection: str,
        total_documents: int,
    ) -> None:
        self.collection = collection
        self.total_documents = total_documents
        self.start_time = time.time()
        logger.info(f"Starting dump of {collection} ({total_documents} documents)")

    def update(self, transferred: int, docs_per_sec: float) -> None:
        """
        Log progress with an estimate of the remaining time.

        Args:
            transferred: Documents handed off so far
            docs_per_sec: Average throughput since the dump started
        """
        percentage = (transferred / self.total_documents * 100) if self.total_documents > 0 else 0
        if docs_per_sec > 0:
            remaining = max(self.total_documents - transferred, 0) / docs_per_sec
            logger.info(
                f"Progress {self.collection}: {transferred}/{self.total_documents} documents "
                f"({percentage:.1f}%) - Estimated remaining: {remaining:.1f}s"
            )
        else:
            logger.info(
                f"Progress {self.collection}: {transferred}/{self.total_documents} documents ({percentage:.1f}%)"
            )

    def finish(self, transferred: int) -> None:
        elapsed = time.time() - self.start_time
        logger.info(f"Completed dump of {self.collection}: {transferred} documents in {elapsed:.1f}s")


class RichProgressReporterAdapter(ProgressReporterPort):
    """Rich-based progress reporter adapter, one bar per collection."""

    def __init__(self) -> None:
        """Initialize Rich progress reporter."""
        # Detect non-interactive mode (non-TTY)
        self.is_interactive = sys.stdout.isatty()
        self.console = Console(file=sys.stdout if self.is_interactive else sys.stderr)
        self.progress: Progress | None = None

        if not self.is_interactive:
            logger.info("Non-interactive mode detected - using structured logging for progress")

    def start_transfer(
        self,
        collection: str,
        total_documents: int,
    ) -> TransferProgress:
        """
        Start progress reporting for a collection dump.

        Args:
            collection: Collection being dumped
            total_documents: Nominal number of documents

        Returns:
            TransferProgress for updating progress
        """
        if not self.is_interactive:
            return LoggingTransferProgress(collection=collection, total_documents=total_documents)

        if self.progress is None:
            self.progress = Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
                TimeElapsedColumn(),
                TimeRemainingColumn(),
                console=self.console,
                expand=True,
            )
            self.progress.start()

        task_id = self.progress.add_task(f"[cyan]{collection}[/cyan]", total=total_documents)
        return RichTransferProgress(progress=self.progress, task_id=task_id, collection=collection)

    def cleanup(self) -> None:
        """Stop the live display (call when done)."""
        if self.progress is not None:
            self.progress.stop()
            self.progress = None
