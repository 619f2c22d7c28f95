"""
Storage abstraction layer.

Provides interchangeable collection backends:
- Local JSON files (offline/dev use, and fallback)
- MongoDB (production)

Application code goes through DataAccess and never needs to know which
backend is bound.
"""

from core.storage.base import (
    BaseCollectionStore,
    BaseSeedGuard,
    Record,
)
from core.storage.connection import ConnectionManager, ConnectionState
from core.storage.errors import (
    ConfigurationError,
    CorruptDataError,
    DatabaseConnectionError,
    DuplicateIdError,
    StorageError,
    StoreTimeoutError,
    UniquenessViolation,
)
from core.storage.factory import (
    COLLECTIONS,
    UNIQUE_FIELDS,
    DataAccess,
    StorageMode,
    resolve_storage_mode,
)

__all__ = [
    # Contracts
    "BaseCollectionStore",
    "BaseSeedGuard",
    "Record",
    # Connection
    "ConnectionManager",
    "ConnectionState",
    # Errors
    "ConfigurationError",
    "CorruptDataError",
    "DatabaseConnectionError",
    "DuplicateIdError",
    "StorageError",
    "StoreTimeoutError",
    "UniquenessViolation",
    # Facade
    "COLLECTIONS",
    "UNIQUE_FIELDS",
    "DataAccess",
    "StorageMode",
    "resolve_storage_mode",
]
