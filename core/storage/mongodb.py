"""
MongoDB storage backend implementation.

Provides MongoDB implementations for:
- Collection storage with canonical id reconciliation
- Seed marker guard

Every document written here carries both the native ``_id`` (ObjectId) and a
string ``id``. Reads expose only ``id``; lookups accept either form so that
fixture data imported with explicit ids and legacy documents that only have
``_id`` stay reachable.
"""

import copy
from contextlib import contextmanager
from datetime import timedelta
from typing import Any, Iterator, Mapping, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import (
    DuplicateKeyError,
    ExecutionTimeout,
    NetworkTimeout,
    PyMongoError,
    ServerSelectionTimeoutError,
    WTimeoutError,
)

from core.logging import get_logger
from core.storage.base import (
    CREATED_AT,
    ID_FIELD,
    NATIVE_ID_FIELD,
    UPDATED_AT,
    BaseCollectionStore,
    BaseSeedGuard,
    Record,
    next_timestamp,
    parse_timestamp,
    split_create_fields,
    strip_reserved,
    utcnow,
)
from core.storage.errors import DuplicateIdError, StorageError, StoreTimeoutError


logger = get_logger(__name__)

_TIMEOUT_ERRORS = (
    ServerSelectionTimeoutError,
    NetworkTimeout,
    ExecutionTimeout,
    WTimeoutError,
)


@contextmanager
def _driver_errors(collection: str, operation: str) -> Iterator[None]:
    """Translate driver exceptions into the storage error taxonomy."""
    try:
        yield
    except _TIMEOUT_ERRORS as e:
        logger.error(
            "MongoDB operation timed out",
            collection=collection,
            operation=operation,
            error=str(e),
        )
        raise StoreTimeoutError(f"{operation} on {collection} timed out: {e}") from e
    except PyMongoError as e:
        logger.error(
            "MongoDB operation failed",
            collection=collection,
            operation=operation,
            error=str(e),
        )
        raise StorageError(f"{operation} on {collection} failed: {e}") from e


def id_lookup_filter(record_id: Any) -> dict[str, Any]:
    """
    Build the filter matching a canonical id in every stored form.

    Matches the explicit ``id`` field, a legacy string ``_id``, and the
    ObjectId ``_id`` when the value parses as one.
    """
    record_id = str(record_id)
    clauses: list[dict[str, Any]] = [
        {ID_FIELD: record_id},
        {NATIVE_ID_FIELD: record_id},
    ]
    if ObjectId.is_valid(record_id):
        clauses.append({NATIVE_ID_FIELD: ObjectId(record_id)})
    return {"$or": clauses}


def translate_query(query: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Rewrite an ``id`` equality into the reconciling lookup."""
    query = dict(query or {})
    if ID_FIELD not in query:
        return query

    lookup = id_lookup_filter(query.pop(ID_FIELD))
    if not query:
        return lookup
    return {"$and": [lookup, query]}


def document_to_record(doc: Mapping[str, Any]) -> Record:
    """Map a raw document to a Record, hiding the native primary key."""
    data = dict(doc)
    native_id = data.pop(NATIVE_ID_FIELD, None)

    if not data.get(ID_FIELD):
        data[ID_FIELD] = str(native_id)
    if data.get(CREATED_AT) is None and isinstance(native_id, ObjectId):
        data[CREATED_AT] = native_id.generation_time.replace(tzinfo=None)

    return Record.from_dict(data)


class MongoCollectionStore(BaseCollectionStore):
    """
    MongoDB-backed collection.

    Uses the pooled motor client owned by the ConnectionManager; this class
    never opens or closes connections itself.
    """

    def __init__(self, name: str, database: AsyncIOMotorDatabase):
        super().__init__(name)
        self._collection = database[name]

    async def setup(self) -> None:
        """Create the lookup index on the canonical id."""
        with _driver_errors(self.name, "setup"):
            await self._collection.create_index(ID_FIELD, name="idx_id")

    async def find(self, query: Optional[Mapping[str, Any]] = None) -> list[Record]:
        with _driver_errors(self.name, "find"):
            cursor = self._collection.find(translate_query(query))
            docs = await cursor.to_list(length=None)
        return [document_to_record(doc) for doc in docs]

    async def find_one(self, query: Optional[Mapping[str, Any]] = None) -> Optional[Record]:
        with _driver_errors(self.name, "find_one"):
            doc = await self._collection.find_one(translate_query(query))
        if doc is None:
            return None
        return document_to_record(doc)

    async def find_by_id(self, record_id: str) -> Optional[Record]:
        with _driver_errors(self.name, "find_by_id"):
            doc = await self._collection.find_one(id_lookup_filter(record_id))
        if doc is None:
            return None
        return document_to_record(doc)

    async def create(self, fields: Mapping[str, Any]) -> Record:
        supplied_id, body = split_create_fields(fields)
        native_id = ObjectId()
        now = utcnow()

        doc = copy.deepcopy(body)
        doc[NATIVE_ID_FIELD] = native_id
        doc[ID_FIELD] = supplied_id or str(native_id)
        doc[CREATED_AT] = now
        doc[UPDATED_AT] = now

        with _driver_errors(self.name, "create"):
            if supplied_id is not None:
                # Also catches an id equal to another document's ObjectId hex
                taken = await self._collection.find_one(
                    id_lookup_filter(supplied_id), projection={NATIVE_ID_FIELD: 1}
                )
                if taken is not None:
                    raise DuplicateIdError(self.name, supplied_id)
            await self._collection.insert_one(doc)

        logger.debug("Record created", collection=self.name, id=doc[ID_FIELD])
        return document_to_record(copy.deepcopy(doc))

    async def update(self, record_id: str, fields: Mapping[str, Any]) -> Optional[Record]:
        changes = copy.deepcopy(strip_reserved(fields))

        with _driver_errors(self.name, "update"):
            doc = await self._collection.find_one(id_lookup_filter(record_id))
            if doc is None:
                return None

            changes[UPDATED_AT] = next_timestamp(parse_timestamp(doc.get(UPDATED_AT)))
            if not doc.get(ID_FIELD):
                # Backfill the canonical id on legacy documents
                changes[ID_FIELD] = str(doc[NATIVE_ID_FIELD])

            await self._collection.update_one(
                {NATIVE_ID_FIELD: doc[NATIVE_ID_FIELD]},
                {"$set": changes},
            )

        doc.update(changes)
        return document_to_record(doc)

    async def delete(self, record_id: str) -> bool:
        with _driver_errors(self.name, "delete"):
            result = await self._collection.delete_one(id_lookup_filter(record_id))

        if result.deleted_count > 0:
            logger.debug("Record deleted", collection=self.name, id=str(record_id))
            return True
        return False

    async def count(self, query: Optional[Mapping[str, Any]] = None) -> int:
        with _driver_errors(self.name, "count"):
            return await self._collection.count_documents(translate_query(query))


class MongoSeedGuard(BaseSeedGuard):
    """
    Seed marker guarded by the unique ``_id`` index.

    Inserting the marker is atomic across processes, so only one cold start
    wins the claim. A ``completed`` marker is reclaimed by the next run, and
    a ``running`` marker older than the lease is treated as abandoned and
    may be taken over.
    """

    COLLECTION_NAME = "_seed_markers"

    def __init__(self, database: AsyncIOMotorDatabase, lease_seconds: int = 600):
        self._collection = database[self.COLLECTION_NAME]
        self._lease = timedelta(seconds=lease_seconds)

    async def acquire(self, key: str) -> bool:
        now = utcnow()

        with _driver_errors(self.COLLECTION_NAME, "acquire"):
            try:
                await self._collection.insert_one(
                    {"_id": key, "status": "running", "startedAt": now}
                )
                return True
            except DuplicateKeyError:
                pass

            marker = await self._collection.find_one({"_id": key})
            if marker is None:
                return False

            status = marker.get("status")
            started_at = marker.get("startedAt")
            if status == "running" and started_at is not None and now - started_at < self._lease:
                return False

            # Compare-and-set on status and startedAt so only one initializer reclaims
            result = await self._collection.update_one(
                {"_id": key, "status": status, "startedAt": started_at},
                {"$set": {"status": "running", "startedAt": now}},
            )

        if result.modified_count == 0:
            return False
        if status == "running":
            logger.warning("Took over stale seed marker", key=key)
        return True

    async def complete(self, key: str) -> None:
        with _driver_errors(self.COLLECTION_NAME, "complete"):
            await self._collection.update_one(
                {"_id": key},
                {"$set": {"status": "completed", "completedAt": utcnow()}},
            )

    async def release(self, key: str) -> None:
        with _driver_errors(self.COLLECTION_NAME, "release"):
            await self._collection.delete_one({"_id": key})
