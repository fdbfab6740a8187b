"""
MongoMetadataStore: artifact records in a MongoDB collection via Motor.

Uniqueness of ``code`` is enforced by a unique index, not by a lookup before
the write. Expiry is checked against the stored ``expires_at`` deadline; the
collection carries no Mongo TTL index, the ExpirySweeper purges instead.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Set

from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from codedrop.common.clock import Clock, utcnow
from codedrop.common.exceptions import DuplicateCodeError, MetadataStoreError
from codedrop.metadata.schemas import ArtifactRecord

logger = logging.getLogger(__name__)


class MongoMetadataStore:
    def __init__(self, collection, ttl: timedelta, clock: Clock = utcnow, batch_size: int = 500):
        self.collection = collection
        self.ttl = ttl
        self.clock = clock
        self.batch_size = batch_size

    async def setup(self) -> None:
        try:
            await self.collection.create_index([("code", ASCENDING)], unique=True, name="code_unique")
            await self.collection.create_index([("expires_at", ASCENDING)], name="expires_at")
        except PyMongoError as e:
            raise MetadataStoreError(f"Failed to create indexes: {e}") from e
        logger.info(f"Indexes ready on {self.collection.name}")

    async def insert(self, code: str, storage_name: str, created_at: datetime) -> ArtifactRecord:
        record = ArtifactRecord.create(code, storage_name, created_at, self.ttl)
        try:
            if await self._try_insert(record):
                return record

            # Code is held by some record; only an expired one may be displaced.
            displaced = await self.collection.delete_one(
                {"code": code, "expires_at": {"$lte": self.clock()}}
            )
            if displaced.deleted_count == 0:
                raise DuplicateCodeError(code)
            logger.debug(f"Displaced expired record for code {code}")

            if await self._try_insert(record):
                return record
            raise DuplicateCodeError(code)
        except PyMongoError as e:
            raise MetadataStoreError(f"Insert failed for code {code}: {e}") from e

    async def _try_insert(self, record: ArtifactRecord) -> bool:
        try:
            await self.collection.insert_one(record.to_document())
        except DuplicateKeyError:
            return False
        return True

    async def find_active(self, code: str) -> Optional[ArtifactRecord]:
        try:
            doc = await self.collection.find_one(
                {"code": code, "expires_at": {"$gt": self.clock()}}
            )
        except PyMongoError as e:
            raise MetadataStoreError(f"Lookup failed for code {code}: {e}") from e
        if doc is None:
            return None
        return ArtifactRecord.from_document(doc)

    async def delete(self, code: str, storage_name: Optional[str] = None) -> bool:
        query = {"code": code}
        if storage_name is not None:
            query["storage_name"] = storage_name
        try:
            result = await self.collection.delete_one(query)
        except PyMongoError as e:
            raise MetadataStoreError(f"Delete failed for code {code}: {e}") from e
        return result.deleted_count > 0

    async def delete_expired(self) -> List[ArtifactRecord]:
        """Remove up to batch_size expired records; the next sweep takes the rest."""
        query = {"expires_at": {"$lte": self.clock()}}
        try:
            docs = await self.collection.find(query).limit(self.batch_size).to_list(length=self.batch_size)
            if not docs:
                return []
            ids = [doc["_id"] for doc in docs]
            await self.collection.delete_many({"_id": {"$in": ids}, **query})
        except PyMongoError as e:
            raise MetadataStoreError(f"Expiry purge failed: {e}") from e
        return [ArtifactRecord.from_document(doc) for doc in docs]

    async def storage_names(self) -> Set[str]:
        try:
            names = await self.collection.distinct("storage_name")
        except PyMongoError as e:
            raise MetadataStoreError(f"Failed to list storage names: {e}") from e
        return set(names)
