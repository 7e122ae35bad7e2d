"""
Unit tests for ApiClient.
"""

import pytest

from restcache.adapters.http_executor import HttpxRequestExecutor
from restcache.adapters.memory_cache import InMemoryCacheStore
from restcache.client import ApiClient
from restcache.config import EngineSettings
from restcache.engine.read import LazyReadEngine, ReadEngine
from restcache.engine.write import WriteEngine
from restcache.errors import ConfigurationError


class TestApiClient:
    """Test cases for ApiClient."""

    @pytest.fixture
    def settings(self):
        """Settings with a short stale time."""
        return EngineSettings(base_url="http://api.test", stale_time=5.0, gc_time=30.0, max_retries=1, retry_jitter=False)

    @pytest.fixture
    def client(self, registry, executor, settings, metrics):
        """Client over the mock executor."""
        return ApiClient(registry, executor, settings=settings, metrics=metrics)

    def test_defaults(self, client, settings):
        """Test default cache and retry wiring."""
        assert isinstance(client.cache, InMemoryCacheStore)
        assert client.cache.gc_time == 30.0
        assert client.retry.config.max_retries == 1
        assert client.retry.config.jitter is False

    def test_query(self, client):
        """Test building a reactive read."""
        engine = client.query("getPet", path_params={"petId": 1})

        assert isinstance(engine, ReadEngine)
        assert engine.stale_time == 5.0
        assert engine.query_key.value == ["pets", "1"]

    def test_query_stale_time_override(self, client):
        """Test per-query stale time."""
        assert client.query("listPets", stale_time=0.0).stale_time == 0.0

    def test_lazy_query(self, client):
        """Test building a lazy read."""
        engine = client.lazy_query("listPets", query_params={"limit": 5})

        assert isinstance(engine, LazyReadEngine)
        assert engine.query_key.value == ["pets", {"limit": 5}]

    def test_mutation(self, client, metrics):
        """Test building a write engine with hook options."""
        engine = client.mutation("createPet", dont_invalidate=True)

        assert isinstance(engine, WriteEngine)
        assert engine._metrics is metrics

    @pytest.mark.parametrize("operation_id", ["createPet", "deletePet"])
    def test_query_rejects_mutations(self, client, operation_id):
        """Test verb enforcement for reads."""
        with pytest.raises(ConfigurationError):
            client.query(operation_id)
        with pytest.raises(ConfigurationError):
            client.lazy_query(operation_id)

    def test_mutation_rejects_queries(self, client):
        """Test verb enforcement for writes."""
        with pytest.raises(ConfigurationError):
            client.mutation("listPets")

    def test_unknown_operation(self, client):
        """Test unknown names."""
        with pytest.raises(ConfigurationError):
            client.query("adoptPet")

    def test_from_settings(self, registry, settings):
        """Test httpx wiring from settings."""
        client = ApiClient.from_settings(registry, settings)

        assert isinstance(client.executor, HttpxRequestExecutor)
        assert client.executor.base_url == "http://api.test"
        assert client.settings is settings

    def test_from_openapi(self, settings):
        """Test registry extraction honouring the exclude prefix."""
        document = {
            "paths": {
                "/pets": {"get": {"operationId": "listPets"}, "post": {"operationId": "createPet"}},
                "/legacy": {"get": {"operationId": "_deprecated_listLegacy"}},
            }
        }

        client = ApiClient.from_openapi(document, settings)

        assert sorted(client.registry) == ["createPet", "listPets"]
        assert isinstance(client.mutation("createPet"), WriteEngine)
