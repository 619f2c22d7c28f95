"""
Abstract base classes for storage backends.

This module defines the contracts that all storage implementations must follow,
enabling the local file store and the MongoDB store to be swapped behind the
same collection interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional


ID_FIELD = "id"
NATIVE_ID_FIELD = "_id"
CREATED_AT = "createdAt"
UPDATED_AT = "updatedAt"

IDENTIFIER_FIELDS = (ID_FIELD, NATIVE_ID_FIELD)
RESERVED_FIELDS = (ID_FIELD, NATIVE_ID_FIELD, CREATED_AT, UPDATED_AT)

# MongoDB stores datetimes with millisecond precision
_TIMESTAMP_RESOLUTION = timedelta(milliseconds=1)


def utcnow() -> datetime:
    """Naive UTC now, truncated to milliseconds."""
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def next_timestamp(previous: Optional[datetime]) -> datetime:
    """Return a timestamp strictly after ``previous``."""
    now = utcnow()
    if previous is not None and now <= previous:
        return previous + _TIMESTAMP_RESOLUTION
    return now


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Accept a datetime or an ISO-8601 string; anything else is None."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


@dataclass
class Record:
    """
    One stored document.

    The typed core (``id`` and the two timestamps) is managed by the store.
    Everything else the caller supplied lives in ``fields`` untouched.
    """
    id: str
    fields: dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the flat wire shape handed to the HTTP layer."""
        data: dict[str, Any] = {ID_FIELD: self.id}
        data.update(self.fields)
        data[CREATED_AT] = self.created_at
        data[UPDATED_AT] = self.updated_at
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Record":
        """
        Create from a flat document.

        ``id`` wins over a legacy ``_id``. Raises ValueError when neither is
        present, since every record must carry a canonical id.
        """
        raw_id = data.get(ID_FIELD) or data.get(NATIVE_ID_FIELD)
        if raw_id is None or str(raw_id) == "":
            raise ValueError("Document has no id")

        return cls(
            id=str(raw_id),
            fields={k: v for k, v in data.items() if k not in RESERVED_FIELDS},
            created_at=parse_timestamp(data.get(CREATED_AT)),
            updated_at=parse_timestamp(data.get(UPDATED_AT)),
        )

    def __getitem__(self, key: str) -> Any:
        return self.to_dict()[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.to_dict().get(key, default)

    def matches(self, query: Mapping[str, Any]) -> bool:
        """Flat field equality; a missing field compares equal to None."""
        data = self.to_dict()
        for key, value in query.items():
            if key == ID_FIELD:
                if self.id != str(value):
                    return False
            elif data.get(key) != value:
                return False
        return True


def split_create_fields(fields: Mapping[str, Any]) -> tuple[Optional[str], dict[str, Any]]:
    """
    Separate a caller-supplied identifier from the storable fields.

    Fixture imports may carry ``id`` or a legacy ``_id``; either becomes the
    canonical id. Store-managed timestamps are dropped.
    """
    supplied = fields.get(ID_FIELD) or fields.get(NATIVE_ID_FIELD)
    body = {k: v for k, v in fields.items() if k not in RESERVED_FIELDS}
    return (str(supplied) if supplied not in (None, "") else None), body


def strip_reserved(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Drop identifier and timestamp keys from update payloads."""
    return {k: v for k, v in fields.items() if k not in RESERVED_FIELDS}


class BaseCollectionStore(ABC):
    """
    Abstract base class for one named collection.

    Filters are flat field-equality maps; an empty filter matches everything.
    Absent results are ``None`` (lookups) or ``False`` (delete), never errors.
    """

    def __init__(self, name: str):
        self.name = name

    async def setup(self) -> None:
        """
        Prepare the backing medium (indexes, files).

        This should be idempotent - safe to call multiple times.
        """

    @abstractmethod
    async def find(self, query: Optional[Mapping[str, Any]] = None) -> list[Record]:
        """Return all records matching ``query``."""
        pass

    @abstractmethod
    async def find_one(self, query: Optional[Mapping[str, Any]] = None) -> Optional[Record]:
        """Return the first match under ``find`` ordering."""
        pass

    @abstractmethod
    async def find_by_id(self, record_id: str) -> Optional[Record]:
        """Look up by canonical id."""
        pass

    @abstractmethod
    async def create(self, fields: Mapping[str, Any]) -> Record:
        """
        Persist a new record.

        Assigns the id (unless the caller supplied one) and both timestamps.
        """
        pass

    @abstractmethod
    async def update(self, record_id: str, fields: Mapping[str, Any]) -> Optional[Record]:
        """
        Shallow-merge ``fields`` into a record and refresh ``updatedAt``.

        Returns None if no record has that id.
        """
        pass

    @abstractmethod
    async def delete(self, record_id: str) -> bool:
        """Remove a record. Returns True if one was removed."""
        pass

    @abstractmethod
    async def count(self, query: Optional[Mapping[str, Any]] = None) -> int:
        """Count records matching ``query``."""
        pass


class BaseSeedGuard(ABC):
    """
    Marker-based guard that lets exactly one initializer run the seed at a time.

    The marker is claimed before any fixture insert and marked completed
    after the last one. A completed marker can be claimed again, so every
    startup re-checks the seed; only a run in progress blocks others.
    """

    @abstractmethod
    async def acquire(self, key: str) -> bool:
        """Claim ``key``. False while another run holds it."""
        pass

    @abstractmethod
    async def complete(self, key: str) -> None:
        """Mark ``key`` as completed and free for the next run."""
        pass

    @abstractmethod
    async def release(self, key: str) -> None:
        """Drop a claimed marker so a later run can retry."""
        pass
