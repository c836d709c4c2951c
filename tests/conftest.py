"""
Shared fixtures for LakeShare tests.
"""

import pytest

from lakeshare.share_server.config import ServerConfig
from lakeshare.share_server.storage.memory import InMemoryStorageBackend
from lakeshare.share_server.storage.registry import BackendRegistry
from lakeshare.share_server.storage.tokens import SignedUrlTokenStore

from .helpers import MemoryTable


@pytest.fixture
def backend():
    """A fresh in-memory storage backend."""
    return InMemoryStorageBackend(bucket="lake")


@pytest.fixture
def table(backend):
    """An empty Delta table in the in-memory backend."""
    return MemoryTable(backend)


@pytest.fixture
def tokens():
    return SignedUrlTokenStore(secret="test-secret")


@pytest.fixture
def registry(backend, tokens):
    """A backend registry with the in-memory backend registered."""
    reg = BackendRegistry(ServerConfig(), tokens)
    reg.register(backend)
    return reg
