"""
Local file storage backend implementation.

Each collection is held in memory and mirrored to ``<data_dir>/<name>.json``
after every mutation. Used for offline/dev runs and as the fallback when
MongoDB is unreachable.
"""

import asyncio
import copy
import json
import os
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Mapping, Optional

from core.logging import get_logger
from core.storage.base import (
    BaseCollectionStore,
    BaseSeedGuard,
    Record,
    next_timestamp,
    parse_timestamp,
    split_create_fields,
    strip_reserved,
    utcnow,
)
from core.storage.errors import CorruptDataError, DuplicateIdError, StorageError


logger = get_logger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class LocalCollectionStore(BaseCollectionStore):
    """
    File-backed collection.

    Reads never fail: a missing file starts an empty collection and an
    unreadable one is moved aside, logged, and replaced by an empty one.
    Mutations are serialized per collection and rewrite the whole file.
    """

    def __init__(self, name: str, data_dir: Path):
        super().__init__(name)
        self.path = Path(data_dir) / f"{name}.json"
        self._lock = asyncio.Lock()
        self._records: list[Record] = self._load()

    def _read(self) -> tuple[list[Record], bool]:
        """
        Parse the collection file. Raises CorruptDataError.

        Returns the records and whether any of them had to be given an id.
        """
        try:
            content = self.path.read_text(encoding="utf-8")
            raw = json.loads(content or "[]")
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CorruptDataError(str(self.path), str(e)) from e

        if not isinstance(raw, list):
            raise CorruptDataError(str(self.path), "top-level value is not a list")

        records = []
        assigned = False
        for item in raw:
            if not isinstance(item, dict):
                raise CorruptDataError(str(self.path), "entry is not an object")
            if not (item.get("id") or item.get("_id")):
                item = dict(item, id=str(uuid.uuid4()))
                assigned = True
                logger.warning(
                    "Assigned id to stored record without one",
                    collection=self.name,
                    id=item["id"],
                )
            records.append(Record.from_dict(item))
        return records, assigned

    def _load(self) -> list[Record]:
        self.path.parent.mkdir(parents=True, exist_ok=True)

        if not self.path.exists():
            self._write([])
            return []

        try:
            records, assigned = self._read()
        except CorruptDataError as e:
            backup = self.path.with_name(
                f"{self.path.name}.corrupt-{utcnow():%Y%m%dT%H%M%S}"
            )
            os.replace(self.path, backup)
            logger.warning(
                "Collection file unreadable, starting empty",
                collection=self.name,
                path=str(self.path),
                backup=str(backup),
                error=e.reason,
            )
            self._write([])
            return []

        if assigned:
            # Persist new ids so they survive the next reload
            self._write([record.to_dict() for record in records])
        return records

    def _write(self, documents: list[dict[str, Any]]) -> None:
        # Full rewrite through a temp file so readers never see a partial file
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        payload = json.dumps(documents, indent=4, default=_json_default)
        tmp_path.write_text(payload, encoding="utf-8")
        os.replace(tmp_path, self.path)

    async def _flush(self) -> None:
        """Mirror memory to disk. Caller must hold the lock."""
        documents = [record.to_dict() for record in self._records]
        try:
            await asyncio.to_thread(self._write, documents)
        except (OSError, TypeError) as e:
            logger.error(
                "Collection write failed",
                collection=self.name,
                path=str(self.path),
                error=str(e),
            )
            raise StorageError(f"Failed to write {self.path}: {e}") from e

    def _index_of(self, record_id: str) -> int:
        record_id = str(record_id)
        for idx, record in enumerate(self._records):
            if record.id == record_id:
                return idx
        return -1

    async def find(self, query: Optional[Mapping[str, Any]] = None) -> list[Record]:
        query = query or {}
        return [copy.deepcopy(r) for r in self._records if r.matches(query)]

    async def find_one(self, query: Optional[Mapping[str, Any]] = None) -> Optional[Record]:
        query = query or {}
        for record in self._records:
            if record.matches(query):
                return copy.deepcopy(record)
        return None

    async def find_by_id(self, record_id: str) -> Optional[Record]:
        idx = self._index_of(record_id)
        if idx == -1:
            return None
        return copy.deepcopy(self._records[idx])

    async def create(self, fields: Mapping[str, Any]) -> Record:
        supplied_id, body = split_create_fields(fields)
        now = utcnow()
        record = Record(
            id=supplied_id or str(uuid.uuid4()),
            fields=copy.deepcopy(body),
            created_at=now,
            updated_at=now,
        )

        async with self._lock:
            if supplied_id is not None and self._index_of(supplied_id) != -1:
                raise DuplicateIdError(self.name, supplied_id)
            self._records.append(record)
            await self._flush()

        logger.debug("Record created", collection=self.name, id=record.id)
        return copy.deepcopy(record)

    async def update(self, record_id: str, fields: Mapping[str, Any]) -> Optional[Record]:
        changes = copy.deepcopy(strip_reserved(fields))

        async with self._lock:
            idx = self._index_of(record_id)
            if idx == -1:
                return None

            current = self._records[idx]
            updated = Record(
                id=current.id,
                fields={**current.fields, **changes},
                created_at=current.created_at,
                updated_at=next_timestamp(current.updated_at),
            )
            self._records[idx] = updated
            await self._flush()

        return copy.deepcopy(updated)

    async def delete(self, record_id: str) -> bool:
        async with self._lock:
            idx = self._index_of(record_id)
            if idx == -1:
                return False

            del self._records[idx]
            await self._flush()

        logger.debug("Record deleted", collection=self.name, id=str(record_id))
        return True

    async def count(self, query: Optional[Mapping[str, Any]] = None) -> int:
        query = query or {}
        return sum(1 for r in self._records if r.matches(query))


class LocalSeedGuard(BaseSeedGuard):
    """
    Seed marker stored in a local collection file.

    Only guards initializers inside one process; the local store is not
    meant to be shared between processes. A ``running`` marker left behind
    by a crashed process is taken over once it is older than the lease.
    """

    COLLECTION_NAME = "_seed_markers"

    def __init__(self, data_dir: Path, lease_seconds: int = 600):
        self._markers = LocalCollectionStore(self.COLLECTION_NAME, data_dir)
        self._lease = timedelta(seconds=lease_seconds)
        self._lock = asyncio.Lock()

    async def acquire(self, key: str) -> bool:
        now = utcnow()

        async with self._lock:
            marker = await self._markers.find_by_id(key)
            if marker is None:
                await self._markers.create({"id": key, "status": "running", "startedAt": now})
                return True

            if marker.get("status") == "running":
                started_at = parse_timestamp(marker.get("startedAt"))
                if started_at is not None and now - started_at < self._lease:
                    return False
                logger.warning("Took over stale seed marker", key=key)

            await self._markers.update(key, {"status": "running", "startedAt": now})
            return True

    async def complete(self, key: str) -> None:
        await self._markers.update(key, {"status": "completed", "completedAt": utcnow()})

    async def release(self, key: str) -> None:
        await self._markers.delete(key)
