"""
Global pytest configuration and fixtures.
"""

from typing import Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from google.cloud.firestore import DocumentReference

from firestore_mcp.config import Settings
from firestore_mcp.infrastructure import FirestoreService
from firestore_mcp.services import DocumentCache, ValueNormalizer
from firestore_mcp.tools import FirestoreTools


class FakeClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, milliseconds: float) -> None:
        self.now += milliseconds / 1000


def make_reference(path: str) -> DocumentReference:
    """Build a client-less document reference for a document path."""
    return DocumentReference(*path.strip("/").split("/"))


def make_snapshot(path: str, data: Optional[Dict] = None, exists: bool = True) -> MagicMock:
    """Build a document snapshot double."""
    snapshot = MagicMock()
    snapshot.exists = exists
    snapshot.id = path.split("/")[-1]
    snapshot.reference = make_reference(path)
    snapshot.to_dict.return_value = data if exists else None
    return snapshot


@pytest.fixture
def test_settings() -> Settings:
    """Test settings configuration."""
    return Settings(
        app_name="firestore-mcp-test",
        version="1.0.0-test",
        environment="testing",
        firestore_project_id="test-project",
        use_firestore_emulator=True,
        firestore_emulator_host="localhost:8081",
        cache_ttl_ms=100,
        cache_max_size=10,
        log_level="DEBUG",
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_store():
    """Firestore store double resolving document paths to real references."""
    store = MagicMock()
    store.document.side_effect = make_reference
    return store


@pytest.fixture
def normalizer(mock_store) -> ValueNormalizer:
    return ValueNormalizer(mock_store)


@pytest.fixture
def mock_firestore_service():
    """FirestoreService double with async operations."""
    service = MagicMock(spec=FirestoreService)
    service.document.side_effect = make_reference
    service.get_document = AsyncMock()
    service.create_document = AsyncMock()
    service.set_document = AsyncMock()
    service.update_document = AsyncMock()
    service.delete_document = AsyncMock()
    service.query_documents = AsyncMock(return_value=[])
    service.list_collections = AsyncMock(return_value=[])
    service.run_transaction = AsyncMock(return_value=[])
    service.batch_write = AsyncMock()
    return service


@pytest.fixture
def tools(mock_firestore_service, fake_clock) -> FirestoreTools:
    """Tool handlers over a mocked store and a fake-clock cache."""
    cache = DocumentCache(ttl_ms=60000, max_size=10, clock=fake_clock)
    return FirestoreTools(
        store=mock_firestore_service,
        cache=cache,
        normalizer=ValueNormalizer(mock_firestore_service),
    )


# Pytest markers
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests (>100ms)")


@pytest.fixture
def snapshot_factory():
    """Factory for document snapshot doubles."""
    return make_snapshot


@pytest.fixture
def reference_factory():
    """Factory for client-less document references."""
    return make_reference
