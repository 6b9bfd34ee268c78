"""Unit tests for the motor-backed data source adapter."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from pymongo import ASCENDING
from pymongo.errors import OperationFailure

from mongo_es_sync.infrastructure.adapters.mongo_data_source import MotorChangeFeed, MotorCursor, MotorDataSource


class ScriptedStream:
    """Async context manager / iterator standing in for a motor change stream."""

    def __init__(self, changes: list[Any], error: BaseException | None = None, block: bool = False) -> None:
        self._changes = list(changes)
        self._error = error
        self._block = block

    async def __aenter__(self) -> ScriptedStream:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None

    def __aiter__(self) -> ScriptedStream:
        return self

    async def __anext__(self) -> Any:
        await asyncio.sleep(0)
        if self._changes:
            return self._changes.pop(0)
        if self._error is not None:
            raise self._error
        if self._block:
            await asyncio.Event().wait()
        raise StopAsyncIteration


def make_collection(stream: ScriptedStream) -> MagicMock:
    collection = MagicMock()
    collection.name = "users"
    collection.watch.return_value = stream
    return collection


async def settle() -> None:
    for _ in range(20):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_cursor_sorts_by_id_and_counts_same_filter():
    collection = MagicMock()
    collection.count_documents = AsyncMock(return_value=4)
    query = {"_id": {"$gt": ObjectId()}}

    cursor = MotorCursor(collection, query)

    collection.find.assert_called_once_with(query)
    collection.find.return_value.sort.assert_called_once_with("_id", ASCENDING)
    assert await cursor.count() == 4
    collection.count_documents.assert_awaited_once_with(query)


@pytest.mark.asyncio
async def test_cursor_returns_none_when_exhausted():
    collection = MagicMock()
    collection.find.return_value.sort.return_value.next = AsyncMock(side_effect=StopAsyncIteration)

    cursor = MotorCursor(collection, {})

    assert await cursor.next() is None


def test_find_after_uses_exclusive_lower_bound():
    database = MagicMock()
    lower = ObjectId()

    MotorDataSource(database).find_after("users", lower)

    database.__getitem__.return_value.find.assert_called_once_with({"_id": {"$gt": lower}})


@pytest.mark.asyncio
async def test_feed_dispatches_changes_then_close():
    changes = [{"_id": {"_data": "1"}}, {"_id": {"_data": "2"}}]
    collection = make_collection(ScriptedStream(changes))
    received: list[Any] = []
    closed: list[bool] = []

    feed = MotorChangeFeed(collection, resume_after={"_data": "0"})
    feed.on("change", received.append)
    feed.on("close", lambda: closed.append(True))
    await settle()

    collection.watch.assert_called_once_with(full_document="updateLookup", resume_after={"_data": "0"})
    assert received == changes
    assert closed == [True]


@pytest.mark.asyncio
async def test_feed_without_token_omits_resume_after():
    collection = make_collection(ScriptedStream([]))

    feed = MotorChangeFeed(collection)
    feed.on("close", lambda: None)
    await settle()

    collection.watch.assert_called_once_with(full_document="updateLookup")


@pytest.mark.asyncio
async def test_feed_dispatches_errors_to_async_handlers():
    failure = OperationFailure("resume of change stream was not possible", code=40585)
    collection = make_collection(ScriptedStream([], error=failure))
    errors: list[BaseException] = []

    async def on_error(error: BaseException) -> None:
        errors.append(error)

    feed = MotorChangeFeed(collection)
    feed.on("error", on_error)
    await settle()

    assert errors == [failure]


@pytest.mark.asyncio
async def test_feed_rejects_unknown_events():
    feed = MotorChangeFeed(make_collection(ScriptedStream([])))

    with pytest.raises(ValueError):
        feed.on("end", lambda: None)


@pytest.mark.asyncio
async def test_close_stops_pump_and_removed_listeners_see_nothing():
    collection = make_collection(ScriptedStream([], block=True))
    closed: list[bool] = []

    feed = MotorChangeFeed(collection)
    feed.on("close", lambda: closed.append(True))
    await settle()
    assert feed.event_names() == ["close"]

    feed.remove_all_listeners("close")
    await feed.close()

    assert feed.event_names() == []
    assert closed == []
