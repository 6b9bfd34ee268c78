"""In-memory fakes of the replication ports."""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable

import pytest
from bson import ObjectId
from pymongo.errors import AutoReconnect

from mongo_es_sync.application.services.pause_gate import PauseGate
from mongo_es_sync.application.services.replication_orchestrator import ReplicationOrchestrator
from mongo_es_sync.domain.models.checkpoint import DumpProgress
from mongo_es_sync.domain.models.mapping import CollectionMapping


def make_documents(count: int) -> list[dict[str, Any]]:
    """Documents with strictly increasing ObjectIds."""
    return [{"_id": ObjectId(f"{i:024x}"), "name": f"doc-{i}", "n": i} for i in range(1, count + 1)]


class FakeCursor:
    """Cursor over a snapshot of documents; yields to the loop before each read."""

    def __init__(self, source: FakeDataSource, documents: list[dict[str, Any]]) -> None:
        self._source = source
        self._documents = documents
        self._position = 0

    async def count(self) -> int:
        return len(self._documents)

    async def next(self) -> dict[str, Any] | None:
        await asyncio.sleep(0)
        self._source.reads += 1
        read_number = self._source.reads
        if read_number in self._source.read_failures:
            raise AutoReconnect(f"connection reset on read {read_number}")
        if self._source.after_read is not None:
            self._source.after_read(read_number)
        if self._position >= len(self._documents):
            return None
        document = self._documents[self._position]
        self._position += 1
        return dict(document)


class FakeChangeFeed:
    """Change feed whose events are emitted by the test."""

    def __init__(self, collection: str, resume_after: Any, full_document: str) -> None:
        self.collection = collection
        self.resume_after = resume_after
        self.full_document = full_document
        self.listeners: dict[str, list[Callable[..., Any]]] = {}
        self.closed = False

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.listeners.setdefault(event, []).append(handler)

    def event_names(self) -> list[str]:
        return [name for name, handlers in self.listeners.items() if handlers]

    def remove_all_listeners(self, event: str | None = None) -> None:
        if event is None:
            self.listeners.clear()
        else:
            self.listeners.pop(event, None)

    async def close(self) -> None:
        self.closed = True

    async def emit(self, event: str, *args: Any) -> None:
        for handler in list(self.listeners.get(event, [])):
            result = handler(*args)
            if inspect.isawaitable(result):
                await result


class FakeDataSource:
    """Records cursor lower bounds and opened feeds."""

    def __init__(self) -> None:
        self.documents: dict[str, list[dict[str, Any]]] = {}
        self.find_calls: list[tuple[str, ObjectId]] = []
        self.feeds: list[FakeChangeFeed] = []
        self.reads = 0
        self.read_failures: set[int] = set()
        self.after_read: Callable[[int], None] | None = None

    def find_after(self, collection: str, lower_bound: ObjectId) -> FakeCursor:
        self.find_calls.append((collection, lower_bound))
        matching = [doc for doc in self.documents.get(collection, []) if doc["_id"] > lower_bound]
        return FakeCursor(self, sorted(matching, key=lambda doc: doc["_id"]))

    def watch(
        self,
        collection: str,
        resume_after: Any = None,
        full_document: str = "updateLookup",
    ) -> FakeChangeFeed:
        feed = FakeChangeFeed(collection, resume_after, full_document)
        self.feeds.append(feed)
        return feed


class FakeSink:
    """Captures bulk bodies, purges and replicated changes in call order."""

    def __init__(self, bulk_size: int = 5) -> None:
        self.bulk_size = bulk_size
        self.mappings: dict[str, CollectionMapping] = {}
        self.bulk_requests: list[list[dict[str, Any]]] = []
        self.deleted: list[str] = []
        self.replicated: list[Any] = []
        self.calls: list[str] = []
        self.fail_bulk = False
        self.hold_bulk: asyncio.Event | None = None

    def set_mappings(self, collection: str) -> None:
        self.mappings[collection] = CollectionMapping(index=collection)

    async def send_bulk_request(self, batch: list[dict[str, Any]]) -> None:
        self.calls.append("bulk")
        if self.hold_bulk is not None:
            await self.hold_bulk.wait()
        if self.fail_bulk:
            raise ConnectionError("index unreachable")
        self.bulk_requests.append(list(batch))

    async def delete_collection(self, collection: str) -> None:
        self.calls.append("delete")
        self.deleted.append(collection)

    async def replicate(self, change: Any) -> None:
        self.calls.append("replicate")
        self.replicated.append(change)

    def sent_ids(self) -> list[str]:
        return [entry["index"]["_id"] for request in self.bulk_requests for entry in request[::2]]


class MemoryTokenStore:
    def __init__(self) -> None:
        self.tokens: dict[str, Any] = {}
        self.removed: list[str] = []

    async def load(self, collection: str) -> Any:
        return self.tokens.get(collection)

    async def save(self, collection: str, token: Any) -> None:
        self.tokens[collection] = token

    async def remove(self, collection: str) -> None:
        self.removed.append(collection)
        self.tokens.pop(collection, None)


class MemoryDumpProgress:
    """Progress handle for one collection; every persist records a snapshot."""

    def __init__(self, collection: str, progress: DumpProgress | None = None) -> None:
        self.collection = collection
        self.progress = progress or DumpProgress()
        self.snapshots: list[dict[str, str]] = []

    def load(self) -> bool:
        return self.progress.has(self.collection)

    def get(self) -> ObjectId:
        return self.progress.get(self.collection)

    def advance(self, last_id: ObjectId) -> None:
        self.progress.advance(self.collection, last_id)

    def reset(self) -> None:
        self.progress.reset(self.collection)

    async def persist(self) -> None:
        self.snapshots.append(self.progress.to_dict())

    def persist_in_background(self) -> None:
        self.snapshots.append(self.progress.to_dict())


class MemoryDumpProgressStore:
    def __init__(self) -> None:
        self.progress = DumpProgress()
        self.handles: dict[str, MemoryDumpProgress] = {}

    def scoped(self, collection: str) -> MemoryDumpProgress:
        handle = MemoryDumpProgress(collection, self.progress)
        self.handles[collection] = handle
        return handle

    async def clear(self, collection: str) -> None:
        self.progress.entries.pop(collection, None)


@pytest.fixture
def data_source() -> FakeDataSource:
    return FakeDataSource()


@pytest.fixture
def sink() -> FakeSink:
    return FakeSink(bulk_size=5)


@pytest.fixture
def token_store() -> MemoryTokenStore:
    return MemoryTokenStore()


@pytest.fixture
def dump_progress() -> MemoryDumpProgress:
    return MemoryDumpProgress("users")


@pytest.fixture
def pause_gate() -> PauseGate:
    return PauseGate()


@pytest.fixture
def orchestrator(
    data_source: FakeDataSource,
    sink: FakeSink,
    dump_progress: MemoryDumpProgress,
    token_store: MemoryTokenStore,
    pause_gate: PauseGate,
) -> ReplicationOrchestrator:
    return ReplicationOrchestrator(
        collection="users",
        data_source=data_source,
        sink=sink,
        dump_progress=dump_progress,
        token_store=token_store,
        pause_gate=pause_gate,
    )


@pytest.fixture
def make_docs() -> Callable[[int], list[dict[str, Any]]]:
    return make_documents


@pytest.fixture
def dump_store() -> MemoryDumpProgressStore:
    return MemoryDumpProgressStore()
