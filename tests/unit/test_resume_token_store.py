"""Unit tests for resume token stores."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo.errors import AutoReconnect

from mongo_es_sync.domain.errors import PersistenceWriteError
from mongo_es_sync.infrastructure.adapters.resume_token_store import (
    CollectionResumeTokenStore,
    FileResumeTokenStore,
)

TOKEN = {"_data": "8263A1B2C3000000012B022C0100296E5A1004"}


@pytest.mark.asyncio
async def test_file_store_round_trips_token(tmp_path: Path):
    store = FileResumeTokenStore(tmp_path / "resumeTokens")

    await store.save("users", TOKEN)

    assert await store.load("users") == TOKEN
    assert (tmp_path / "resumeTokens" / "users").exists()


@pytest.mark.asyncio
async def test_file_store_missing_token_is_none(tmp_path: Path):
    store = FileResumeTokenStore(tmp_path)

    assert await store.load("users") is None


@pytest.mark.asyncio
async def test_file_store_unreadable_token_is_none(tmp_path: Path):
    (tmp_path / "users").write_bytes(b"%%% not base64 %%%")
    store = FileResumeTokenStore(tmp_path)

    assert await store.load("users") is None


@pytest.mark.asyncio
async def test_file_store_remove_is_idempotent(tmp_path: Path):
    store = FileResumeTokenStore(tmp_path)
    await store.save("users", TOKEN)

    await store.remove("users")
    await store.remove("users")

    assert await store.load("users") is None


@pytest.mark.asyncio
async def test_file_store_write_failure_raises(tmp_path: Path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    store = FileResumeTokenStore(blocker)

    with pytest.raises(PersistenceWriteError):
        await store.save("users", TOKEN)


def make_database(collection: MagicMock) -> MagicMock:
    database = MagicMock()
    database.__getitem__.return_value = collection
    return database


@pytest.mark.asyncio
async def test_collection_store_loads_token_field():
    checkpoints = MagicMock()
    checkpoints.find_one = AsyncMock(return_value={"_id": "users", "token": TOKEN})
    store = CollectionResumeTokenStore(make_database(checkpoints), "resumeTokens")

    assert await store.load("users") == TOKEN
    checkpoints.find_one.assert_awaited_once_with({"_id": "users"})


@pytest.mark.asyncio
async def test_collection_store_load_failure_is_none():
    checkpoints = MagicMock()
    checkpoints.find_one = AsyncMock(side_effect=AutoReconnect("down"))
    store = CollectionResumeTokenStore(make_database(checkpoints), "resumeTokens")

    assert await store.load("users") is None


@pytest.mark.asyncio
async def test_collection_store_upserts_token():
    checkpoints = MagicMock()
    checkpoints.update_one = AsyncMock()
    store = CollectionResumeTokenStore(make_database(checkpoints), "resumeTokens")

    await store.save("users", TOKEN)

    checkpoints.update_one.assert_awaited_once_with({"_id": "users"}, {"$set": {"token": TOKEN}}, upsert=True)


@pytest.mark.asyncio
async def test_collection_store_save_failure_raises():
    checkpoints = MagicMock()
    checkpoints.update_one = AsyncMock(side_effect=AutoReconnect("down"))
    store = CollectionResumeTokenStore(make_database(checkpoints), "resumeTokens")

    with pytest.raises(PersistenceWriteError, match="resumeTokens/users"):
        await store.save("users", TOKEN)


@pytest.mark.asyncio
async def test_collection_store_remove_deletes_document():
    checkpoints = MagicMock()
    checkpoints.delete_one = AsyncMock()
    store = CollectionResumeTokenStore(make_database(checkpoints), "resumeTokens")

    await store.remove("users")

    checkpoints.delete_one.assert_awaited_once_with({"_id": "users"})
