"""MongoDB-backed implementation of the store port.

Each collection holds plain documents keyed by a string ``_id``; records
leave the adapter with ``_id`` renamed to ``id``. Unique indexes back the
at-most-one-swipe-per-ordered-pair and at-most-one-match-per-pair rules.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, AsyncIterator, List, Optional

from bson import ObjectId
from pymongo import ASCENDING, AsyncMongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from studyswipe.errors import ConflictError, TransientIOError
from studyswipe.logger import logger
from studyswipe.settings import Settings, get_settings
from studyswipe.store import Collections, Document, Filter, Sort, Store


def to_str_id(doc):
    if not doc:
        return doc
    doc["id"] = str(doc.pop("_id"))
    # Convert nested ObjectIds if any
    for k, v in list(doc.items()):
        if isinstance(v, ObjectId):
            doc[k] = str(v)
    return doc


def to_mongo_filter(filter: Filter, prefix: str = "") -> Filter:
    """Rename ``id`` to ``_id`` and optionally nest every field under ``prefix``."""
    out = {}
    for key, value in filter.items():
        if key in ("$or", "$and"):
            out[key] = [to_mongo_filter(sub, prefix) for sub in value]
            continue
        field = "_id" if key == "id" else key
        out[prefix + field] = value
    return out


class MongoStore(Store):
    """Store backed by a MongoDB database through pymongo's async client."""

    def __init__(self, client: AsyncMongoClient, database_name: str):
        self.client = client
        self.db = client[database_name]

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "MongoStore":
        settings = settings or get_settings()
        client = AsyncMongoClient(
            settings.database_url,
            tz_aware=True,
            timeoutMS=int(settings.request_timeout * 1000),
        )
        return cls(client, settings.database_name)

    async def ensure_indexes(self) -> None:
        try:
            await self.db[Collections.SWIPES].create_index(
                [("swiper_id", ASCENDING), ("swiped_id", ASCENDING)], unique=True
            )
            await self.db[Collections.MATCHES].create_index(
                [("user1_id", ASCENDING), ("user2_id", ASCENDING)], unique=True
            )
            await self.db[Collections.MESSAGES].create_index(
                [("match_id", ASCENDING), ("created_at", ASCENDING)]
            )
            await self.db[Collections.PROFILES].create_index([("created_at", ASCENDING)])
        except PyMongoError as e:
            raise TransientIOError(f"Failed to create indexes: {e}") from e

    async def create_document(self, collection_name: str, data: Any) -> str:
        """Insert a dict or pydantic model, stamping created_at. Returns the id."""
        if hasattr(data, "model_dump"):
            data = data.model_dump()
        doc = dict(data)
        doc["_id"] = str(doc.pop("id", None) or ObjectId())
        doc.setdefault("created_at", datetime.now(timezone.utc))
        try:
            result = await self.db[collection_name].insert_one(doc)
        except DuplicateKeyError as e:
            raise ConflictError(f"Duplicate {collection_name} record") from e
        except PyMongoError as e:
            raise TransientIOError(f"Insert into {collection_name} failed: {e}") from e
        return str(result.inserted_id)

    async def get_documents(
        self,
        collection_name: str,
        filter_dict: Optional[Filter] = None,
        sort: Optional[Sort] = None,
        limit: Optional[int] = None,
    ) -> List[Document]:
        cursor = self.db[collection_name].find(to_mongo_filter(filter_dict or {}))
        if sort:
            cursor = cursor.sort([(("_id" if k == "id" else k), d) for k, d in sort])
        if limit:
            cursor = cursor.limit(limit)
        try:
            docs = await cursor.to_list(None)
        except PyMongoError as e:
            raise TransientIOError(f"Query on {collection_name} failed: {e}") from e
        return [to_str_id(d) for d in docs]

    async def insert_one(self, collection: str, document: Document) -> Document:
        doc_id = await self.create_document(collection, document)
        doc = await self.find_one(collection, {"id": doc_id})
        if doc is None:
            # Deleted by a concurrent session between the insert and the read
            raise TransientIOError(f"{collection} record {doc_id} vanished after insert")
        return doc

    async def find(self, collection, filter, *, sort=None, limit=None):
        return await self.get_documents(collection, filter, sort=sort, limit=limit)

    async def update_one(self, collection, filter, changes):
        try:
            doc = await self.db[collection].find_one_and_update(
                to_mongo_filter(filter),
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise TransientIOError(f"Update on {collection} failed: {e}") from e
        return to_str_id(doc)

    async def delete_many(self, collection, filter):
        try:
            result = await self.db[collection].delete_many(to_mongo_filter(filter))
        except PyMongoError as e:
            raise TransientIOError(f"Delete on {collection} failed: {e}") from e
        return result.deleted_count

    async def subscribe(self, collection: str, filter: Filter) -> AsyncIterator[Document]:
        # Change streams need a replica set; on a standalone server watch()
        # fails and the caller falls back to polling.
        pipeline = [
            {"$match": {"operationType": "insert", **to_mongo_filter(filter, "fullDocument.")}}
        ]
        try:
            async with await self.db[collection].watch(pipeline) as stream:
                logger.debug(f"Change stream open on {collection} {filter}")
                while stream.alive:
                    try:
                        change = await stream.next()
                    except StopAsyncIteration:
                        break
                    except PyMongoError as e:
                        # timeoutMS bounds each wait; a quiet stream stays open
                        if e.timeout and stream.alive:
                            continue
                        raise
                    yield to_str_id(change["fullDocument"])
        except PyMongoError as e:
            raise TransientIOError(f"Change stream on {collection} failed: {e}") from e

    async def ping(self) -> bool:
        try:
            await self.client.admin.command("ping")
        except PyMongoError as e:
            logger.warning(f"Database ping failed: {e}")
            return False
        return True

    async def list_collection_names(self) -> List[str]:
        try:
            return await self.db.list_collection_names()
        except PyMongoError as e:
            raise TransientIOError(f"Listing collections failed: {e}") from e

    async def close(self) -> None:
        await self.client.close()
