"""Resume token store adapters: one file per collection, or a checkpoint collection."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import bson
from bson.errors import BSONError
from pymongo.errors import PyMongoError

from ...application.ports.checkpoint_store import ResumeTokenStorePort
from ...domain.errors import PersistenceWriteError

if TYPE_CHECKING:
    from motor.motor_asyncio import AsyncIOMotorDatabase

    from ...domain.types import ResumeToken

logger = logging.getLogger(__name__)


class FileResumeTokenStore(ResumeTokenStorePort):
    """Stores each collection's token as base64-encoded BSON in ``<directory>/<collection>``."""

    def __init__(self, directory: Path | str = "resumeTokens") -> None:
        self.directory = Path(directory)

    def token_path(self, collection: str) -> Path:
        return self.directory / collection

    async def load(self, collection: str) -> ResumeToken | None:
        return await asyncio.to_thread(self._read, collection)

    def _read(self, collection: str) -> ResumeToken | None:
        path = self.token_path(collection)
        if not path.exists():
            return None
        try:
            return bson.decode(base64.b64decode(path.read_bytes(), validate=True))
        except (OSError, binascii.Error, BSONError) as e:
            logger.debug(f"resumeToken for {collection} could not be read from {path}: {e}")
            return None

    async def save(self, collection: str, token: ResumeToken) -> None:
        data = base64.b64encode(bson.encode(token))
        await asyncio.to_thread(self._write, collection, data)
        logger.debug(f"resumeToken for collection {collection} saved to disk")

    def _write(self, collection: str, data: bytes) -> None:
        path = self.token_path(collection)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise PersistenceWriteError(str(path), str(e)) from e

    async def remove(self, collection: str) -> None:
        path = self.token_path(collection)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceWriteError(str(path), str(e)) from e


class CollectionResumeTokenStore(ResumeTokenStorePort):
    """Stores tokens as ``{_id: <collection>, token: <token>}`` documents."""

    def __init__(self, database: AsyncIOMotorDatabase, collection_name: str) -> None:
        """
        Initialize collection-backed token store.

        Args:
            database: Motor database holding the checkpoint collection
            collection_name: Name of the checkpoint collection
        """
        self.database = database
        self.collection_name = collection_name

    async def load(self, collection: str) -> ResumeToken | None:
        try:
            record = await self.database[self.collection_name].find_one({"_id": collection})
        except PyMongoError as e:
            logger.debug(f"resumeToken for {collection} could not be retrieved from database: {e}")
            return None
        if not record:
            return None
        return record.get("token")

    async def save(self, collection: str, token: ResumeToken) -> None:
        try:
            await self.database[self.collection_name].update_one(
                {"_id": collection},
                {"$set": {"token": token}},
                upsert=True,
            )
        except PyMongoError as e:
            raise PersistenceWriteError(f"{self.collection_name}/{collection}", str(e)) from e
        logger.debug(f"resumeToken for collection {collection} saved to database")

    async def remove(self, collection: str) -> None:
        try:
            await self.database[self.collection_name].delete_one({"_id": collection})
        except PyMongoError as e:
            raise PersistenceWriteError(f"{self.collection_name}/{collection}", str(e)) from e
