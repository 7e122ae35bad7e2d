"""
Shared fixtures and factories for restcache tests.
"""

from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from prometheus_client import CollectorRegistry

from restcache.adapters.base import Response
from restcache.adapters.memory_cache import InMemoryCacheStore
from restcache.core.registry import OperationRegistry
from restcache.metrics import MetricsCollector
from restcache.retry import RetryConfig, RetryPolicy


PETS_OPERATIONS: Dict[str, Dict[str, str]] = {
    "listPets": {"path": "/pets", "method": "GET"},
    "getPet": {"path": "/pets/{petId}", "method": "GET"},
    "createPet": {"path": "/pets", "method": "POST"},
    "updatePet": {"path": "/pets/{petId}", "method": "PUT"},
    "patchPet": {"path": "/pets/{petId}", "method": "PATCH"},
    "deletePet": {"path": "/pets/{petId}", "method": "DELETE"},
    "listOwnerPets": {"path": "/owners/{ownerId}/pets", "method": "GET"},
    "createOwnerPet": {"path": "/owners/{ownerId}/pets", "method": "POST"},
    "getOwner": {"path": "/owners/{ownerId}", "method": "GET"},
}


class TestDataFactory:
    """Factory for test payloads."""

    @staticmethod
    def pet(pet_id: int = 1, name: str = "Rex", status: str = "available") -> Dict[str, Any]:
        return {"id": pet_id, "name": name, "status": status}

    @staticmethod
    def pets(count: int = 2) -> List[Dict[str, Any]]:
        return [TestDataFactory.pet(i, f"pet-{i}") for i in range(1, count + 1)]


def make_response(data: Any = None, status_code: int = 200, headers: Optional[Dict[str, str]] = None) -> Response:
    """Executor response with the given payload."""
    return Response(status_code=status_code, data=data, headers=headers or {})


def make_registry(**overrides: Any) -> OperationRegistry:
    """Pets registry; pass ``name=None`` to remove an operation."""
    operations = dict(PETS_OPERATIONS)
    for name, value in overrides.items():
        if value is None:
            operations.pop(name, None)
        else:
            operations[name] = value
    return OperationRegistry.from_mapping(operations)


@pytest.fixture
def registry():
    """Pets operation registry."""
    return make_registry()


@pytest.fixture
def executor():
    """Request executor whose execute() returns a single pet."""
    mock = MagicMock()
    mock.execute = AsyncMock(return_value=make_response(TestDataFactory.pet()))
    return mock


@pytest.fixture
def cache():
    """Reference in-memory cache store."""
    return InMemoryCacheStore()


@pytest.fixture
def mock_cache():
    """CacheStore double recording every call."""
    mock = MagicMock()
    mock.get = AsyncMock(return_value=None)
    mock.set = AsyncMock()
    mock.cancel = AsyncMock(return_value=[])
    mock.invalidate = AsyncMock()
    mock.fetch_or_compute = AsyncMock()
    mock.subscribe = MagicMock(return_value=lambda: None)
    return mock


@pytest.fixture
def retry_policy():
    """Default retry limits without real sleeping."""
    return RetryPolicy(RetryConfig(jitter=False), sleep=AsyncMock())


@pytest.fixture
def metrics():
    """Metrics collector on an isolated Prometheus registry."""
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def registry_factory():
    """Build a pets registry with operations added, replaced or removed."""
    return make_registry


@pytest.fixture
def pet_factory():
    """Test payload factory."""
    return TestDataFactory
