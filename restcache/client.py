"""
ApiClient: per-operation entry points over a shared executor and cache.
"""

from typing import Any, Mapping, Optional

import httpx

from .adapters.base import CacheStore, RequestExecutor
from .adapters.http_executor import HttpxRequestExecutor
from .adapters.memory_cache import InMemoryCacheStore
from .config import EngineSettings, get_settings
from .core.registry import OperationDescriptor, OperationRegistry
from .engine.read import ErrorHandler, LazyReadEngine, OnLoad, ReadEngine
from .engine.write import WriteEngine
from .errors import ConfigurationError
from .logging import configure_from_settings, get_logger
from .metrics import MetricsCollector
from .retry import RetryConfig, RetryPolicy


class ApiClient:
    """Builds read and write engines for the operations of one API."""

    def __init__(
        self,
        registry: OperationRegistry,
        executor: RequestExecutor,
        cache: Optional[CacheStore] = None,
        *,
        settings: Optional[EngineSettings] = None,
        retry: Optional[RetryPolicy] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.registry = registry
        self.executor = executor
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else InMemoryCacheStore(gc_time=self.settings.gc_time)
        self.retry = retry or RetryPolicy(RetryConfig.from_settings(self.settings))
        self.metrics = metrics
        self.logger = get_logger("restcache.client")

    @classmethod
    def from_settings(
        cls,
        registry: OperationRegistry,
        settings: Optional[EngineSettings] = None,
        *,
        cache: Optional[CacheStore] = None,
        client: Optional[httpx.AsyncClient] = None,
        metrics: Optional[MetricsCollector] = None,
        configure_logs: bool = False,
    ) -> "ApiClient":
        """Wire an httpx executor from EngineSettings.

        With ``configure_logs`` the process-wide structlog setup is applied
        from the settings' log level and format.
        """
        settings = settings or get_settings()
        if configure_logs:
            configure_from_settings(settings)
        executor = HttpxRequestExecutor.from_settings(settings, client=client)
        api_client = cls(registry, executor, cache, settings=settings, metrics=metrics)
        api_client.logger.info("Client configured", base_url=settings.base_url, operations=len(registry))
        return api_client

    @classmethod
    def from_openapi(
        cls,
        document: Mapping[str, Any],
        settings: Optional[EngineSettings] = None,
        **kwargs: Any,
    ) -> "ApiClient":
        """Build the registry from an OpenAPI document, then wire as ``from_settings``."""
        settings = settings or get_settings()
        registry = OperationRegistry.from_openapi(document, exclude_prefix=settings.exclude_prefix)
        return cls.from_settings(registry, settings, **kwargs)

    def _query_descriptor(self, operation_id: str) -> OperationDescriptor:
        descriptor = self.registry.require(operation_id)
        if not descriptor.is_query:
            raise ConfigurationError(
                f"Operation '{operation_id}' uses method {descriptor.method.value} and cannot be used as a query. "
                "Use mutation() instead.",
                details={"operation_id": operation_id, "method": descriptor.method.value}
            )
        return descriptor

    def query(
        self,
        operation_id: str,
        *,
        path_params: Any = None,
        query_params: Any = None,
        enabled: Any = True,
        stale_time: Optional[float] = None,
        headers: Optional[Mapping[str, str]] = None,
        on_load: Optional[OnLoad] = None,
        error_handler: Optional[ErrorHandler] = None,
    ) -> ReadEngine:
        """Reactive read that fetches whenever its key changes and it is enabled."""
        descriptor = self._query_descriptor(operation_id)
        return ReadEngine(
            operation_id,
            descriptor,
            self.executor,
            self.cache,
            path_params=path_params,
            query_params=query_params,
            enabled=enabled,
            stale_time=self.settings.stale_time if stale_time is None else stale_time,
            retry=self.retry,
            headers=headers,
            on_load=on_load,
            error_handler=error_handler,
            metrics=self.metrics,
        )

    def lazy_query(
        self,
        operation_id: str,
        *,
        path_params: Any = None,
        query_params: Any = None,
        stale_time: Optional[float] = None,
        headers: Optional[Mapping[str, str]] = None,
        on_load: Optional[OnLoad] = None,
        error_handler: Optional[ErrorHandler] = None,
    ) -> LazyReadEngine:
        """Read that only runs when ``fetch()`` is awaited."""
        descriptor = self._query_descriptor(operation_id)
        return LazyReadEngine(
            operation_id,
            descriptor,
            self.executor,
            self.cache,
            path_params=path_params,
            query_params=query_params,
            stale_time=self.settings.stale_time if stale_time is None else stale_time,
            retry=self.retry,
            headers=headers,
            on_load=on_load,
            error_handler=error_handler,
            metrics=self.metrics,
        )

    def mutation(self, operation_id: str, **options: Any) -> WriteEngine:
        """Write engine for a POST/PUT/PATCH/DELETE operation.

        ``options`` are the hook-level defaults accepted by WriteEngine.
        """
        options.setdefault("metrics", self.metrics)
        return WriteEngine(operation_id, self.registry, self.executor, self.cache, **options)
