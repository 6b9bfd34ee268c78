"""MongoDB data source adapter built on motor."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from typing import Any

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING

from ...application.ports.data_source import FEED_EVENTS, ChangeFeedPort, CursorPort, DataSourcePort, FeedHandler
from ...domain.types import ResumeToken

logger = logging.getLogger(__name__)


class MotorCursor(CursorPort):
    """``_id``-ordered cursor; ``count()`` uses the same filter."""

    def __init__(self, collection: AsyncIOMotorCollection, query: dict[str, Any]) -> None:
        self._collection = collection
        self._query = query
        self._cursor = collection.find(query).sort("_id", ASCENDING)

    async def count(self) -> int:
        return await self._collection.count_documents(self._query)

    async def next(self) -> dict[str, Any] | None:
        try:
            return await self._cursor.next()
        except StopAsyncIteration:
            return None


class MotorChangeFeed(ChangeFeedPort):
    """
    Change stream wrapped in an event-listener interface.

    A pump task iterates the change stream and dispatches ``change`` per
    event, ``error`` when iteration fails, and ``close`` when the pump ends.
    The pump starts with the first registered listener; listeners removed
    before an event is dispatched never see it.
    """

    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        resume_after: ResumeToken | None = None,
        full_document: str = "updateLookup",
    ) -> None:
        self._collection = collection
        self._options: dict[str, Any] = {"full_document": full_document}
        if resume_after:
            self._options["resume_after"] = resume_after
        self._listeners: dict[str, list[FeedHandler]] = {}
        self._task: asyncio.Task[None] | None = None

    def on(self, event: str, handler: FeedHandler) -> None:
        if event not in FEED_EVENTS:
            raise ValueError(f"Unknown change feed event '{event}'. Must be one of {FEED_EVENTS}")
        self._listeners.setdefault(event, []).append(handler)
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._pump())

    def event_names(self) -> list[str]:
        return [name for name, handlers in self._listeners.items() if handlers]

    def remove_all_listeners(self, event: str | None = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)

    async def close(self) -> None:
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        if task is not asyncio.current_task():
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _pump(self) -> None:
        name = self._collection.name
        try:
            async with self._collection.watch(**self._options) as stream:
                logger.debug(f"Change stream opened for {name}", extra={"collection": name})
                async for change in stream:
                    await self._emit("change", change)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._emit("error", e)
        finally:
            await self._emit("close")

    async def _emit(self, event: str, *args: Any) -> None:
        for handler in list(self._listeners.get(event, [])):
            result = handler(*args)
            if inspect.isawaitable(result):
                await result


class MotorDataSource(DataSourcePort):
    """DataSourcePort over a motor database."""

    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self.database = database

    @classmethod
    def from_url(cls, url: str, database_name: str) -> MotorDataSource:
        """
        Connect to MongoDB.

        Args:
            url: MongoDB connection string (change streams need a replica set)
            database_name: Database holding the replicated collections
        """
        client: AsyncIOMotorClient = AsyncIOMotorClient(url)
        return cls(client[database_name])

    async def ping(self) -> None:
        """Verify connectivity; raises the driver error on failure."""
        await self.database.client.admin.command("ping")
        logger.info(f"Connected to MongoDB database {self.database.name}")

    def find_after(self, collection: str, lower_bound: ObjectId) -> MotorCursor:
        return MotorCursor(self.database[collection], {"_id": {"$gt": lower_bound}})

    def watch(
        self,
        collection: str,
        resume_after: ResumeToken | None = None,
        full_document: str = "updateLookup",
    ) -> MotorChangeFeed:
        return MotorChangeFeed(self.database[collection], resume_after=resume_after, full_document=full_document)

    def close(self) -> None:
        self.database.client.close()
