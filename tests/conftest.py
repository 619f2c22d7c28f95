"""
Pytest configuration and fixtures.
"""

import asyncio
import os
import sys
from pathlib import Path

import pytest
from mongomock_motor import AsyncMongoMockClient
from pymongo.errors import ServerSelectionTimeoutError

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Set test environment
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DEBUG", "true")

from core.config import Settings


class _FakeAdmin:
    def __init__(self, fail: bool, hang: bool):
        self._fail = fail
        self._hang = hang

    async def command(self, name: str) -> dict:
        if self._hang:
            await asyncio.sleep(3600)
        if self._fail:
            raise ServerSelectionTimeoutError("No servers available")
        return {"ok": 1.0}


class FakeMotorClient:
    """Stands in for AsyncIOMotorClient, backed by mongomock."""

    def __init__(self, mock: AsyncMongoMockClient, uri: str, fail: bool, hang: bool, **options):
        self.uri = uri
        self.options = options
        self.admin = _FakeAdmin(fail, hang)
        self.closed = False
        self._mock = mock

    def get_default_database(self, default=None):
        return self._mock[default]

    def close(self) -> None:
        self.closed = True


class CountingClientFactory:
    """Connection-establishment hook that records every client it opens."""

    def __init__(self, fail: bool = False, hang: bool = False):
        self.fail = fail
        self.hang = hang
        self.mock = AsyncMongoMockClient()
        self.clients: list[FakeMotorClient] = []

    @property
    def calls(self) -> int:
        return len(self.clients)

    def __call__(self, uri: str, **options) -> FakeMotorClient:
        client = FakeMotorClient(self.mock, uri, self.fail, self.hang, **options)
        self.clients.append(client)
        return client


@pytest.fixture
def client_factory():
    """A working MongoDB client factory."""
    return CountingClientFactory()


@pytest.fixture
def failing_client_factory():
    """A client factory whose server is never reachable."""
    return CountingClientFactory(fail=True)


@pytest.fixture
def mongo_database():
    """An in-memory MongoDB database."""
    return AsyncMongoMockClient()["directory_test"]


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def make_settings(tmp_path, data_dir):
    """Build isolated settings; keyword arguments override the defaults."""
    def _make(**overrides) -> Settings:
        values = {
            "storage_mode": "local",
            "mongodb_uri": None,
            "data_dir": data_dir,
            "fixtures_dir": tmp_path / "fixtures",
            "connect_timeout_seconds": 1.0,
            "password_hash_rounds": 4,
            "seed_admin_password": "correct-horse-battery",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def hanging_client_factory():
    """A client factory whose server never answers the ping."""
    return CountingClientFactory(hang=True)
