"""
MongoDB connection lifecycle.

One ConnectionManager lives for the whole process and is handed to every
DataAccess initialization, so repeated cold-start initializations reuse the
same client instead of reconnecting.
"""

import asyncio
import re
from enum import Enum
from typing import Any, Callable, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from core.logging import get_logger


logger = get_logger(__name__)

ClientFactory = Callable[..., Any]

_PASSWORD_IN_URI = re.compile(r"(://[^:/@]+:)([^@]+)(@)")


def mask_uri(uri: str) -> str:
    """Hide the password component of a connection string."""
    return _PASSWORD_IN_URI.sub(r"\1****\3", uri)


class ConnectionState(str, Enum):
    """Connection lifecycle states."""
    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    READY = "ready"
    FAILED = "failed"


class ConnectionManager:
    """
    Establishes and caches the MongoDB client.

    ``initialize()`` never raises on connection problems. It returns False
    and records ``last_error``; the caller decides between local fallback
    and a fatal startup error. The outcome, success or failure, is cached
    until ``reset()`` is called.
    """

    def __init__(
        self,
        database_name: str = "directory",
        timeout_seconds: float = 5.0,
        client_factory: Optional[ClientFactory] = None,
    ):
        """
        Initialize connection manager.

        Args:
            database_name: Database used when the URI does not name one
            timeout_seconds: Upper bound for establishing the connection
            client_factory: Callable creating the driver client
                (defaults to AsyncIOMotorClient)
        """
        self._database_name = database_name
        self._timeout_seconds = timeout_seconds
        self._client_factory = client_factory or AsyncIOMotorClient
        self._client: Optional[Any] = None
        self._lock = asyncio.Lock()
        self.state = ConnectionState.UNINITIALIZED
        self.last_error: Optional[str] = None

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.READY

    @property
    def database(self) -> AsyncIOMotorDatabase:
        """Get the connected database."""
        if self._client is None or not self.is_connected:
            raise RuntimeError(
                "Connection not initialized. Call initialize() first."
            )
        return self._client.get_default_database(default=self._database_name)

    async def initialize(self, connection_string: str) -> bool:
        """
        Connect once per process.

        Returns True immediately when already connected. Concurrent callers
        wait for the single in-flight attempt and share its result.
        """
        if self.state in (ConnectionState.READY, ConnectionState.FAILED):
            return self.is_connected

        async with self._lock:
            if self.state in (ConnectionState.READY, ConnectionState.FAILED):
                return self.is_connected
            return await self._connect(connection_string)

    async def _connect(self, connection_string: str) -> bool:
        self.state = ConnectionState.CONNECTING
        logger.info("Connecting to MongoDB", uri=mask_uri(connection_string))

        timeout_ms = int(self._timeout_seconds * 1000)
        client = None
        try:
            client = self._client_factory(
                connection_string,
                serverSelectionTimeoutMS=timeout_ms,
                connectTimeoutMS=timeout_ms,
            )
            await asyncio.wait_for(
                client.admin.command("ping"),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError:
            self._fail(client, f"Timed out after {self._timeout_seconds}s")
            return False
        except Exception as e:
            # Any driver or URI parsing error means "not connected"
            self._fail(client, f"{type(e).__name__}: {e}")
            return False

        self._client = client
        self.state = ConnectionState.READY
        self.last_error = None
        logger.info("Connected to MongoDB", database=self._database_name)
        return True

    def _fail(self, client: Optional[Any], error: str) -> None:
        if client is not None:
            client.close()
        self._client = None
        self.state = ConnectionState.FAILED
        self.last_error = error
        logger.error("MongoDB connection failed", error=error)

    def reset(self) -> None:
        """Forget a cached failure so the next initialize() tries again."""
        if self.state == ConnectionState.FAILED:
            self.state = ConnectionState.UNINITIALIZED

    async def close(self) -> None:
        """Close the MongoDB client."""
        if self._client is not None:
            self._client.close()
            self._client = None
        self.state = ConnectionState.UNINITIALIZED
        logger.info("MongoDB connection closed")
