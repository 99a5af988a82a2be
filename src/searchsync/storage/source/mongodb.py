"""
MongoDB implementation of SourceStore using the pymongo asyncio API.
"""
from typing import Any, Dict, List, Optional, Sequence

import structlog
from bson import ObjectId
from pymongo import AsyncMongoClient
from pymongo.asynchronous.change_stream import AsyncChangeStream
from pymongo.asynchronous.database import AsyncDatabase

from searchsync.storage.source.base import SourceStore

logger = structlog.get_logger()


class MongoSourceStore(SourceStore):
    """Reads pages and change streams from a MongoDB database."""

    def __init__(
        self,
        uri: str,
        max_pool_size: int = 10,
        server_selection_timeout_ms: int = 5000,
    ):
        self._uri = uri
        self._max_pool_size = max_pool_size
        self._server_selection_timeout_ms = server_selection_timeout_ms
        self.client: Optional[AsyncMongoClient] = None
        self._db: Optional[AsyncDatabase] = None

    @classmethod
    def from_settings(cls, settings) -> "MongoSourceStore":
        return cls(
            uri=settings.MONGO_URI,
            max_pool_size=settings.MONGO_MAX_POOL_SIZE,
            server_selection_timeout_ms=settings.MONGO_SERVER_SELECTION_TIMEOUT_MS,
        )

    async def connect(self) -> None:
        if self.client:
            return
        client = AsyncMongoClient(
            self._uri,
            maxPoolSize=self._max_pool_size,
            serverSelectionTimeoutMS=self._server_selection_timeout_ms,
        )
        try:
            await client.aconnect()
            await client.admin.command("ping")
            # The database is the one named in the connection URI
            db = client.get_default_database()
        except Exception as e:
            logger.error("mongodb_connect_failed", error=str(e))
            await client.close()
            raise
        self.client = client
        self._db = db
        logger.info("mongodb_connected", database=self._db.name)

    async def close(self) -> None:
        if self.client:
            await self.client.close()
            self.client = None
            self._db = None
            logger.info("mongodb_connection_closed")

    async def health_check(self) -> bool:
        if not self.client:
            return False
        try:
            await self.client.admin.command("ping")
            return True
        except Exception as e:
            logger.error("mongodb_health_check_failed", error=str(e))
            return False

    def _database(self) -> AsyncDatabase:
        if self._db is None:
            raise RuntimeError("MongoSourceStore is not connected")
        return self._db

    async def find_page(self, collection: str, skip: int, limit: int) -> List[Dict[str, Any]]:
        cursor = self._database()[collection].find({}).skip(skip).limit(limit)
        return await cursor.to_list()

    async def find_by_ids(self, collection: str, ids: Sequence[str]) -> List[Dict[str, Any]]:
        # Index ids are str(_id); match both the ObjectId and the plain string form
        keys: List[Any] = list(ids)
        keys.extend(ObjectId(i) for i in ids if ObjectId.is_valid(i))
        cursor = self._database()[collection].find({"_id": {"$in": keys}})
        return await cursor.to_list()

    async def watch(self, collection: str, operation_types: Sequence[str]) -> AsyncChangeStream:
        pipeline = [{"$match": {"operationType": {"$in": list(operation_types)}}}]
        stream = await self._database()[collection].watch(
            pipeline, full_document="updateLookup"
        )
        logger.info("mongodb_change_stream_opened", collection=collection)
        return stream
