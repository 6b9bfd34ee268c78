"""Dump progress store adapter: one shared JSON file, atomic serialized writes."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from ...application.ports.checkpoint_store import CollectionProgressPort, DumpProgressStorePort
from ...domain.errors import PersistenceWriteError
from ...domain.models.checkpoint import DumpProgress

if TYPE_CHECKING:
    from bson import ObjectId

logger = logging.getLogger(__name__)


class DumpProgressReadError(Exception):
    """Raised when the dump progress file exists but cannot be parsed."""

    pass


class JsonDumpProgressStore(DumpProgressStorePort):
    """
    Adapter for the dump progress file (collection name -> last ``_id``).

    All collections share one in-memory DumpProgress and one file. Writes
    rewrite the whole map under a single lock, so concurrent collections never
    overwrite each other's entries.
    """

    def __init__(self, path: Path | str = "dumpProgress.json") -> None:
        """
        Initialize dump progress store.

        Args:
            path: Progress file path (default: ./dumpProgress.json)
        """
        self.path = Path(path)
        self._progress: DumpProgress | None = None
        self._write_lock = asyncio.Lock()
        self._background: set[asyncio.Task[None]] = set()

    @property
    def progress(self) -> DumpProgress:
        """Shared progress map, read from disk on first access."""
        if self._progress is None:
            self._progress = self._read()
        return self._progress

    def scoped(self, collection: str) -> CollectionDumpProgress:
        return CollectionDumpProgress(self, collection)

    def _read(self) -> DumpProgress:
        """
        Load progress from file.

        Returns:
            DumpProgress, empty if the file doesn't exist

        Raises:
            DumpProgressReadError: If file exists but cannot be read/parsed
        """
        if not self.path.exists():
            logger.debug(f"Dump progress file not found: {self.path}")
            return DumpProgress()

        try:
            with self.path.open("r") as f:
                data = json.load(f)
            progress = DumpProgress.from_dict(data)
            logger.debug(
                f"Dump progress loaded: {self.path}",
                extra={"path": str(self.path), "collections": sorted(progress.entries)},
            )
            return progress
        except json.JSONDecodeError as e:
            error_msg = f"Invalid JSON in dump progress file {self.path}: {e}"
            logger.error(error_msg)
            raise DumpProgressReadError(error_msg) from e
        except (OSError, ValueError, AttributeError) as e:
            error_msg = f"Failed to load dump progress from {self.path}: {e}"
            logger.error(error_msg)
            raise DumpProgressReadError(error_msg) from e

    async def persist(self) -> None:
        """
        Write the whole progress map and wait for completion.

        Raises:
            PersistenceWriteError: If the write fails
        """
        async with self._write_lock:
            snapshot = self.progress.to_dict()
            await asyncio.to_thread(self._write, snapshot)

    def persist_in_background(self) -> None:
        """Schedule ``persist()``; failures are logged and the next write self-corrects."""
        task = asyncio.create_task(self.persist())
        self._background.add(task)
        task.add_done_callback(self._background_done)

    def _background_done(self, task: asyncio.Task[None]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background dump progress write failed: {error}")

    async def wait_pending(self) -> None:
        """Wait for background writes scheduled so far."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def clear(self, collection: str) -> None:
        """Remove ``collection`` from the progress map and rewrite the file."""
        self.progress.entries.pop(collection, None)
        await self.persist()

    def _write(self, snapshot: dict[str, str]) -> None:
        """Write to temp file first, then rename over the progress file."""
        path = self.path
        temp_path: Path | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                dir=path.parent,
                prefix=f".{path.name}.tmp.",
                delete=False,
            ) as temp_file:
                temp_path = Path(temp_file.name)
                json.dump(snapshot, temp_file)
                temp_file.flush()
                os.fsync(temp_file.fileno())

            shutil.move(str(temp_path), str(path))
            logger.debug(f"Dump progress saved: {path}", extra={"path": str(path)})

        except OSError as e:
            if temp_path is not None and temp_path.exists():
                temp_path.unlink(missing_ok=True)
            raise PersistenceWriteError(str(path), str(e)) from e


class CollectionDumpProgress(CollectionProgressPort):
    """Progress handle that only touches one collection's entry."""

    def __init__(self, store: JsonDumpProgressStore, collection: str) -> None:
        self.store = store
        self.collection = collection

    def load(self) -> bool:
        return self.store.progress.has(self.collection)

    def get(self) -> ObjectId:
        return self.store.progress.get(self.collection)

    def advance(self, last_id: ObjectId) -> None:
        self.store.progress.advance(self.collection, last_id)

    def reset(self) -> None:
        self.store.progress.reset(self.collection)

    async def persist(self) -> None:
        await self.store.persist()

    def persist_in_background(self) -> None:
        self.store.persist_in_background()
