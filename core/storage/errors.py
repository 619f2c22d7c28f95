"""
Error taxonomy for the storage layer.

"No matching record" is never an error here: lookups return ``None`` and
deletes return ``False`` so callers can tell an empty result from a broken
store.
"""

from typing import Any


class StorageError(Exception):
    """Base class for all storage-layer failures."""


class ConfigurationError(StorageError):
    """Remote storage is mandatory but not configured."""


class DatabaseConnectionError(StorageError, ConnectionError):
    """The remote database could not be reached within the timeout."""


class StoreTimeoutError(StorageError, TimeoutError):
    """A store operation exceeded the backend's timeout."""


class CorruptDataError(StorageError):
    """A local collection file could not be parsed."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Unreadable collection file {path}: {reason}")
        self.path = path
        self.reason = reason


class UniquenessViolation(StorageError):
    """
    A create would duplicate a protected field.

    Raised by the caller-side precedent check only. Neither backend enforces
    the constraint, so two concurrent creates can still both succeed.
    """

    def __init__(self, collection: str, field: str, value: Any):
        super().__init__(f"{collection}.{field} already exists: {value!r}")
        self.collection = collection
        self.field = field
        self.value = value


class DuplicateIdError(StorageError):
    """A create supplied an id that already belongs to another record."""

    def __init__(self, collection: str, record_id: str):
        super().__init__(f"{collection} already has a record with id {record_id!r}")
        self.collection = collection
        self.record_id = record_id
