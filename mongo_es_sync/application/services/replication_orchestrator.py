"""Per-collection replication: dump, change feed and reset state machine."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Mapping

from ...domain.errors import (
    BootstrapDuringResetError,
    FeedInvalidated,
    FeedOtherError,
    FeedTokenInvalid,
    PersistenceWriteError,
    TransientReadError,
)
from ...domain.models.bulk_batch import BulkBatch
from ...domain.models.change_event import ChangeEvent
from ...domain.models.checkpoint import MIN_OBJECT_ID
from ...domain.policy.reset_policy import ResetPlan, plan_for_error, plan_for_invalidate
from ...domain.types import ReplicationState, ResumeToken
from ...infrastructure.logging import set_collection
from ..dto.replication import BootstrapResult
from ..ports.checkpoint_store import CollectionProgressPort, ResumeTokenStorePort
from ..ports.data_source import ChangeFeedPort, DataSourcePort
from ..ports.indexing_sink import IndexingSinkPort
from ..ports.progress_reporter import ProgressReporterPort, TransferProgress
from .pause_gate import PAUSE_GATE, PauseGate

logger = logging.getLogger(__name__)


class ReplicationOrchestrator:
    """
    Replicates one collection into the index.

    Owns the collection's dump progress handle, resume token, in-flight bulk
    batch and change feed. State moves DETACHED -> BOOTSTRAPPING -> WATCHING;
    feed invalidation and feed errors drive resets that re-dump, reattach the
    feed, or both.
    """

    def __init__(
        self,
        collection: str,
        data_source: DataSourcePort,
        sink: IndexingSinkPort,
        dump_progress: CollectionProgressPort,
        token_store: ResumeTokenStorePort,
        pause_gate: PauseGate | None = None,
        progress_reporter: ProgressReporterPort | None = None,
    ) -> None:
        """
        Initialize orchestrator for a single collection.

        Args:
            collection: Source collection name
            data_source: DataSourcePort for cursors and change feeds
            sink: IndexingSinkPort receiving bulk and single-document writes
            dump_progress: Progress handle scoped to this collection
            token_store: ResumeTokenStorePort (file or collection backed)
            pause_gate: Shared pause latch (defaults to the process-wide gate)
            progress_reporter: Optional progress reporter for dump transfers
        """
        self.collection = collection
        self.data_source = data_source
        self.sink = sink
        self.sink.set_mappings(collection)
        self.dump_progress = dump_progress
        self.token_store = token_store
        self.pause_gate = pause_gate or PAUSE_GATE
        self.progress_reporter = progress_reporter
        self.resume_token: ResumeToken | None = None
        self.change_stream: ChangeFeedPort | None = None
        self.state = ReplicationState.DETACHED
        self._reset_lock = asyncio.Lock()
        self._pending_resets: set[asyncio.Task[None]] = set()

    # ==========================================
    # Lifecycle
    # ==========================================

    async def start(self, force_bootstrap: bool = False) -> None:
        """
        Load checkpoints, dump if needed, then attach the change feed.

        A dump runs when forced or when no resume token is stored. It resumes
        from stored progress, so an already completed dump sends nothing.

        Args:
            force_bootstrap: Re-dump from the first document
        """
        set_collection(self.collection)
        if self.load_dump_progress():
            logger.info(f"{self.collection} dump progress found: {self.dump_progress.get()}")
        await self.load_resume_token()

        if force_bootstrap or not self.has_resume_token():
            await self.run_bootstrap(force_from_start=force_bootstrap)

        await self.attach_feed()

    async def stop(self) -> None:
        """Cancel pending resets, then tear down the feed (persisting the token)."""
        pending = list(self._pending_resets)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        async with self._reset_lock:
            await self._remove_change_stream()
            self.state = ReplicationState.DETACHED
        logger.info(f"{self.collection} replication stopped")

    # ==========================================
    # Dump
    # ==========================================

    async def run_bootstrap(self, force_from_start: bool = False) -> BootstrapResult:
        """
        Bulk-transfer documents with ``_id`` above the stored progress.

        Batches of ``sink.bulk_size`` documents are sent with one request in
        flight while the next batch accumulates. Progress is persisted in the
        background after each handoff and synchronously at the end.

        Args:
            force_from_start: Reset progress to the minimum key first

        Returns:
            BootstrapResult with documents_sent, nominal_total, batches_sent
        """
        self.state = ReplicationState.BOOTSTRAPPING
        try:
            return await self._dump_collection(force_from_start)
        finally:
            self.state = ReplicationState.WATCHING if self.change_stream else ReplicationState.DETACHED

    async def _dump_collection(self, force_from_start: bool) -> BootstrapResult:
        if force_from_start:
            self.dump_progress.reset()

        mapping = self.sink.mappings[self.collection]
        bulk_size = self.sink.bulk_size

        cursor = self.data_source.find_after(self.collection, self.dump_progress.get())
        count = await cursor.count()
        logger.info(
            f"Dumping collection {self.collection}: {count} documents after {self.dump_progress.get()}",
            extra={"collection": self.collection, "nominal_total": count},
        )

        progress: TransferProgress | None = None
        if self.progress_reporter:
            progress = self.progress_reporter.start_transfer(self.collection, count)

        batch = BulkBatch()
        request_count = 0
        batches_sent = 0
        read_errors = 0
        start_time = time.monotonic()
        current_bulk_request: asyncio.Task[None] | None = None

        for _ in range(count):
            if batch.is_full(bulk_size):
                request_count += batch.document_count
                elapsed = time.monotonic() - start_time
                if current_bulk_request is not None:
                    await current_bulk_request
                current_bulk_request = asyncio.create_task(self.sink.send_bulk_request(batch.drain()))
                batches_sent += 1

                docs_per_sec = request_count / elapsed if elapsed > 0 else 0.0
                logger.info(
                    f"{self.collection} request progress: {request_count}/{count} - {docs_per_sec:.2f} docs/sec"
                )
                if progress:
                    progress.update(request_count, docs_per_sec)
                self.dump_progress.persist_in_background()

            if self.pause_gate.is_paused:
                logger.info("Dump pause signal received")
                await self.pause_gate.wait()
                logger.info("Dump resume signal received. Re-instantiating find cursor")
                cursor = self.data_source.find_after(self.collection, self.dump_progress.get())

            try:
                document = await cursor.next()
            except Exception as e:
                read_errors += 1
                logger.error(str(TransientReadError(self.collection, e)))
                continue

            if document is None:
                break

            doc_id = document.pop("_id")
            self.dump_progress.advance(doc_id)
            batch.append(mapping.descriptor_for(doc_id, document), document)

        request_count += batch.document_count
        logger.info(f"{self.collection} FINAL request progress: {request_count}/{count}")

        if current_bulk_request is not None:
            await current_bulk_request
        if not batch.is_empty():
            await self.sink.send_bulk_request(batch.drain())
            batches_sent += 1
        await self.dump_progress.persist()

        if progress:
            progress.finish(request_count)

        last_id = self.dump_progress.get()
        duration = time.monotonic() - start_time
        logger.info(
            f"{self.collection} dump done: {request_count} documents in {batches_sent} requests ({duration:.2f}s)",
            extra={"collection": self.collection, "read_errors": read_errors},
        )
        return BootstrapResult(
            collection=self.collection,
            documents_sent=request_count,
            nominal_total=count,
            batches_sent=batches_sent,
            read_errors=read_errors,
            duration_seconds=duration,
            last_id=str(last_id) if last_id != MIN_OBJECT_ID else None,
        )

    def load_dump_progress(self) -> bool:
        """Load stored progress; True when a stored value exists."""
        return self.dump_progress.load()

    # ==========================================
    # Change feed
    # ==========================================

    async def attach_feed(self, ignore_checkpoint: bool = False) -> None:
        """
        Open the change feed at the resume token and register listeners.

        Args:
            ignore_checkpoint: Start from the live position, discarding the token
        """
        logger.info(f"new watcher for collection {self.collection}")
        if self.change_stream is not None:
            await self._remove_change_stream()

        if ignore_checkpoint:
            self.resume_token = None
        else:
            await self.load_resume_token()

        stream = self.data_source.watch(
            self.collection,
            resume_after=self.resume_token,
            full_document="updateLookup",
        )
        stream.on("change", self._on_change)
        stream.on("close", self._on_close)
        stream.on("error", self._on_error)
        self.change_stream = stream
        self.state = ReplicationState.WATCHING

    async def _on_change(self, change: Mapping[str, Any]) -> None:
        event = ChangeEvent.from_change(change)
        if event.is_invalidate:
            logger.info(f"{self.collection} invalidate")
            self._schedule_reset(plan_for_invalidate(), FeedInvalidated(self.collection), self.change_stream)
            return

        self.resume_token = event.token
        await self.sink.replicate(change)

    def _on_close(self) -> None:
        logger.info(f"the changestream for {self.collection} has closed")

    def _on_error(self, error: BaseException) -> None:
        logger.error(f"{self.collection} changeStream error: {error}")
        plan = plan_for_error(error)
        if plan.discard_checkpoint:
            failure: Exception = FeedTokenInvalid(self.collection, getattr(error, "code", 0), error)
        else:
            failure = FeedOtherError(self.collection, error)
        self._schedule_reset(plan, failure, self.change_stream)

    # ==========================================
    # Reset
    # ==========================================

    async def reset(
        self,
        purge_and_rebootstrap: bool = False,
        discard_checkpoint: bool = False,
        origin: ChangeFeedPort | None = None,
    ) -> None:
        """
        Tear down the feed, optionally purge and re-dump, then reattach.

        Failures while purging or dumping are logged and the feed is attached
        regardless.

        Args:
            purge_and_rebootstrap: Delete indexed documents and re-dump from the start
            discard_checkpoint: Drop the resume token (memory and storage)
            origin: Feed that raised the reset; skipped once another feed replaced it
        """
        async with self._reset_lock:
            if origin is not None and self.change_stream is not origin:
                logger.info(f"Skipping reset for {self.collection}: its change feed was already replaced")
                return

            await self._remove_change_stream()

            if purge_and_rebootstrap:
                await self.remove_resume_token()
                try:
                    await self.sink.delete_collection(self.collection)
                except Exception as e:
                    logger.error(f"Error deleting indexed documents for {self.collection}: {e}", exc_info=True)
                try:
                    await self.run_bootstrap(force_from_start=True)
                except Exception as e:
                    logger.error(str(BootstrapDuringResetError(self.collection, e)), exc_info=True)

            if discard_checkpoint:
                await self.remove_resume_token()

            await self.attach_feed(ignore_checkpoint=purge_and_rebootstrap or discard_checkpoint)

    def _schedule_reset(self, plan: ResetPlan, cause: Exception, origin: ChangeFeedPort | None) -> None:
        logger.warning(f"Resetting change feed: {cause}", extra={"collection": self.collection})
        task = asyncio.create_task(
            self.reset(
                purge_and_rebootstrap=plan.purge_and_rebootstrap,
                discard_checkpoint=plan.discard_checkpoint,
                origin=origin,
            )
        )
        self._pending_resets.add(task)
        task.add_done_callback(self._reset_done)

    def _reset_done(self, task: asyncio.Task[None]) -> None:
        self._pending_resets.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                f"Change feed reset failed for {self.collection}: {task.exception()}",
                exc_info=task.exception(),
            )

    async def wait_for_reset(self) -> None:
        """Wait until every scheduled reset has finished."""
        while self._pending_resets:
            await asyncio.gather(*list(self._pending_resets), return_exceptions=True)

    async def _remove_change_stream(self) -> None:
        stream = self.change_stream
        if stream is None:
            return

        for name in stream.event_names():
            stream.remove_all_listeners(name)
        self.change_stream = None
        await stream.close()
        await self.save_resume_token()

    # ==========================================
    # Resume token
    # ==========================================

    def has_resume_token(self) -> bool:
        return bool(self.resume_token)

    async def load_resume_token(self) -> ResumeToken | None:
        """Return the in-memory token, loading it from storage if absent."""
        if not self.resume_token:
            self.resume_token = await self.token_store.load(self.collection)
        return self.resume_token

    async def save_resume_token(self) -> None:
        """Persist the current token; no-op without one."""
        if not self.resume_token:
            return
        try:
            await self.token_store.save(self.collection, self.resume_token)
            logger.debug(f"resumeToken for collection {self.collection} saved")
        except PersistenceWriteError as e:
            logger.error(str(e))

    async def remove_resume_token(self) -> None:
        """Clear the token in memory and in storage."""
        self.resume_token = None
        try:
            await self.token_store.remove(self.collection)
        except PersistenceWriteError as e:
            logger.error(str(e))
