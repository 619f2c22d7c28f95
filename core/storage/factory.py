"""
Storage factory and data-access facade.

Decides which backend is active and exposes the six named collections
through one handle. The rest of the application only ever talks to
``DataAccess``.

Connection failure policy, applied here and nowhere else:
- storage_mode=local: never connect.
- storage_mode=remote: a missing URI raises ConfigurationError and a failed
  connection raises DatabaseConnectionError (fatal at startup).
- storage_mode=auto: try MongoDB when a URI is configured and fall back to
  the local store with a warning when it fails.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping, Optional

from core.logging import get_logger
from core.storage.base import BaseCollectionStore, BaseSeedGuard
from core.storage.connection import ConnectionManager
from core.storage.errors import (
    ConfigurationError,
    DatabaseConnectionError,
    UniquenessViolation,
)


if TYPE_CHECKING:
    from core.config import Settings


logger = get_logger(__name__)


COLLECTIONS = ("users", "influencers", "categories", "locations", "inquiries", "campaigns")

# Checked by callers before create; no backend constraint backs these
UNIQUE_FIELDS: dict[str, tuple[str, ...]] = {
    "users": ("username", "email"),
    "influencers": ("username", "email"),
}


class StorageMode(str, Enum):
    """Backend currently bound to the facade."""
    LOCAL = "local"
    REMOTE = "remote"


def resolve_storage_mode(settings: "Settings") -> StorageMode:
    """
    Determine which storage backend to attempt based on settings.

    Raises:
        ConfigurationError: remote mode requested without a connection string
    """
    mode = settings.storage_mode.lower()

    if mode == "local":
        return StorageMode.LOCAL
    if mode == "remote":
        if not settings.has_mongodb:
            raise ConfigurationError(
                "storage_mode=remote requires MONGODB_URI to be set"
            )
        return StorageMode.REMOTE
    if mode == "auto":
        return StorageMode.REMOTE if settings.has_mongodb else StorageMode.LOCAL

    raise ConfigurationError(
        f"Unsupported storage mode: {mode}. "
        f"Supported modes: ['auto', 'local', 'remote']"
    )


@dataclass(frozen=True)
class _Bindings:
    """Everything bound to one backend, swapped as a single reference."""
    mode: StorageMode
    collections: Mapping[str, BaseCollectionStore]
    seed_guard: BaseSeedGuard


def _build_local(settings: "Settings") -> _Bindings:
    from core.storage.local import LocalCollectionStore, LocalSeedGuard

    return _Bindings(
        mode=StorageMode.LOCAL,
        collections={
            name: LocalCollectionStore(name, settings.data_dir) for name in COLLECTIONS
        },
        seed_guard=LocalSeedGuard(settings.data_dir, lease_seconds=settings.seed_lease_seconds),
    )


async def _build_remote(settings: "Settings", connection: ConnectionManager) -> _Bindings:
    from core.storage.mongodb import MongoCollectionStore, MongoSeedGuard

    database = connection.database
    collections = {name: MongoCollectionStore(name, database) for name in COLLECTIONS}
    for store in collections.values():
        await store.setup()

    return _Bindings(
        mode=StorageMode.REMOTE,
        collections=collections,
        seed_guard=MongoSeedGuard(database, lease_seconds=settings.seed_lease_seconds),
    )


class DataAccess:
    """
    Single handle over the six named collections.

    ``initialize()`` is safe to call on every request: after the first
    successful binding it returns immediately. All collection handles are
    replaced together so no caller sees a mix of backends.
    """

    def __init__(
        self,
        settings: "Settings",
        connection: Optional[ConnectionManager] = None,
    ):
        """
        Initialize the facade.

        Args:
            settings: Application settings
            connection: Process-wide connection state; pass the same instance
                to every DataAccess in a process so the client is reused
        """
        self._settings = settings
        self._connection = connection or ConnectionManager(
            database_name=settings.mongodb_database,
            timeout_seconds=settings.connect_timeout_seconds,
        )
        self._bindings: Optional[_Bindings] = None
        self._lock = asyncio.Lock()

    @property
    def connection(self) -> ConnectionManager:
        return self._connection

    @property
    def initialized(self) -> bool:
        return self._bindings is not None

    @property
    def mode(self) -> Optional[StorageMode]:
        return self._bindings.mode if self._bindings else None

    @property
    def connected(self) -> bool:
        """True when bound to MongoDB and the connection is up."""
        return self.mode == StorageMode.REMOTE and self._connection.is_connected

    @property
    def last_error(self) -> Optional[str]:
        return self._connection.last_error

    async def initialize(self, force: bool = False) -> bool:
        """
        Bind the collections to the active backend.

        Args:
            force: Rebuild the bindings even if already initialized

        Returns:
            The ``connected`` flag after binding

        Raises:
            ConfigurationError: remote mode without a connection string
            DatabaseConnectionError: remote mode and MongoDB unreachable
        """
        if self._bindings is not None and not force:
            return self.connected

        async with self._lock:
            if self._bindings is not None and not force:
                return self.connected

            bindings = await self._bind()
            self._bindings = bindings

        logger.info(
            "Data access initialized",
            mode=bindings.mode.value,
            connected=self.connected,
        )
        return self.connected

    async def _bind(self) -> _Bindings:
        settings = self._settings
        mode = resolve_storage_mode(settings)

        if mode == StorageMode.LOCAL:
            return _build_local(settings)

        if await self._connection.initialize(settings.mongodb_uri):
            return await _build_remote(settings, self._connection)

        if settings.storage_mode == "remote":
            raise DatabaseConnectionError(
                f"MongoDB unreachable: {self._connection.last_error}"
            )

        logger.warning(
            "MongoDB unavailable, falling back to local storage",
            error=self._connection.last_error,
            data_dir=str(settings.data_dir),
        )
        return _build_local(settings)

    def collection(self, name: str) -> BaseCollectionStore:
        """Get a collection by name."""
        if self._bindings is None:
            raise RuntimeError(
                "Data access not initialized. Call initialize() first."
            )
        try:
            return self._bindings.collections[name]
        except KeyError:
            raise KeyError(
                f"Unknown collection: {name}. Known collections: {list(COLLECTIONS)}"
            ) from None

    @property
    def users(self) -> BaseCollectionStore:
        return self.collection("users")

    @property
    def influencers(self) -> BaseCollectionStore:
        return self.collection("influencers")

    @property
    def categories(self) -> BaseCollectionStore:
        return self.collection("categories")

    @property
    def locations(self) -> BaseCollectionStore:
        return self.collection("locations")

    @property
    def inquiries(self) -> BaseCollectionStore:
        return self.collection("inquiries")

    @property
    def campaigns(self) -> BaseCollectionStore:
        return self.collection("campaigns")

    @property
    def seed_guard(self) -> BaseSeedGuard:
        if self._bindings is None:
            raise RuntimeError(
                "Data access not initialized. Call initialize() first."
            )
        return self._bindings.seed_guard

    async def ensure_unique(self, name: str, fields: Mapping[str, Any]) -> None:
        """
        Precedent check for protected fields before a create.

        Check-then-act: two concurrent creates can both pass. Callers that
        need a hard guarantee must serialize creates themselves.

        Raises:
            UniquenessViolation: a record already holds one of the values
        """
        store = self.collection(name)
        for field in UNIQUE_FIELDS.get(name, ()):
            value = fields.get(field)
            if value in (None, ""):
                continue
            if await store.find_one({field: value}) is not None:
                raise UniquenessViolation(name, field, value)

    async def close(self) -> None:
        """Drop bindings and close the MongoDB client."""
        self._bindings = None
        await self._connection.close()
        logger.info("Data access closed")
