"""
Cached, retryable reads for GET/HEAD/OPTIONS operations.
"""

import asyncio
import inspect
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set, Union

from ..adapters.base import CacheEvent, CacheStore, RequestExecutor
from ..core.keys import QueryKey, keys_equal, to_key, with_query_params
from ..core.observable import Computed, read
from ..core.paths import is_resolved, resolve_path
from ..core.registry import OperationDescriptor
from ..errors import ConfigurationError, ReadCancelledError, TransportError, UnresolvedParametersError
from ..logging import bind_operation, get_logger
from ..metrics import MetricsCollector
from ..retry import RetryPolicy, call_with_retry

ErrorHandler = Callable[[TransportError], Union[Any, Awaitable[Any]]]
OnLoad = Callable[[Any], None]


class ReadStatus(str, Enum):
    UNRESOLVED = "unresolved"
    DISABLED = "disabled"
    ENABLED = "enabled"
    IN_FLIGHT = "in_flight"
    SUCCESS = "success"
    ERROR = "error"


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class ReadEngine:
    """Keeps one operation's data in sync with the cache.

    Path parameters, query parameters and the ``enabled`` flag may be
    observables, getters or plain values. Whenever the derived query key or
    enabled state changes the engine re-resolves and, when enabled, fetches
    through ``CacheStore.fetch_or_compute`` so fresh entries are reused.

    Auto-fetching needs a running event loop; engines built outside one fetch
    on ``start()`` or ``refetch()``.
    """

    auto_fetch = True

    def __init__(
        self,
        operation_id: str,
        descriptor: OperationDescriptor,
        executor: RequestExecutor,
        cache: CacheStore,
        *,
        path_params: Any = None,
        query_params: Any = None,
        enabled: Any = True,
        stale_time: float = 60.0,
        retry: Optional[RetryPolicy] = None,
        headers: Optional[Mapping[str, str]] = None,
        on_load: Optional[OnLoad] = None,
        error_handler: Optional[ErrorHandler] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        if not descriptor.is_query:
            raise ConfigurationError(
                f"Operation '{operation_id}' uses method {descriptor.method.value} and cannot be used for reads. "
                "Use a write engine for POST/PUT/PATCH/DELETE operations.",
                details={"operation_id": operation_id, "method": descriptor.method.value}
            )

        self.operation_id = operation_id
        self.descriptor = descriptor
        self.method = descriptor.method
        self.stale_time = stale_time
        self.headers: Dict[str, str] = dict(headers or {})
        self.logger = get_logger(f"restcache.read.{operation_id}")

        self._executor = executor
        self._cache = cache
        self._retry = retry or RetryPolicy()
        self._error_handler = error_handler
        self._metrics = metrics
        self._enabled_source = enabled

        self.path_params = Computed(lambda: dict(read(path_params) or {}), [path_params])
        self.query_params = Computed(lambda: dict(read(query_params) or {}), [query_params])
        self.resolved_path = Computed(
            lambda: resolve_path(descriptor.path_template, self.path_params.value),
            [path_params],
        )
        self.query_key = Computed(
            lambda: with_query_params(to_key(self.resolved_path.value), self.query_params.value),
            [path_params, query_params],
        )
        self.is_enabled = Computed(self._compute_enabled, [enabled, path_params])

        self._data: Any = None
        self._error: Optional[BaseException] = None
        self._status: Optional[ReadStatus] = None
        self._in_flight = 0
        self._on_load_callbacks: List[OnLoad] = [on_load] if on_load is not None else []
        self._tasks: Set["asyncio.Task[Any]"] = set()
        self._attached_key: Optional[QueryKey] = None
        self._detach: Optional[Callable[[], None]] = None

        self._subscriptions = [
            self.query_key.subscribe(self._on_key_change),
            self.is_enabled.subscribe(self._on_enabled_change),
        ]
        self._attach(self.query_key.value)
        self._schedule_fetch()

    def _compute_enabled(self) -> bool:
        return bool(read(self._enabled_source)) and is_resolved(self.resolved_path.value)

    # State

    @property
    def data(self) -> Any:
        return self._data

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def status(self) -> ReadStatus:
        if self._in_flight:
            return ReadStatus.IN_FLIGHT
        if self._status is not None:
            return self._status
        if not is_resolved(self.resolved_path.value):
            return ReadStatus.UNRESOLVED
        if not self.is_enabled.value:
            return ReadStatus.DISABLED
        return ReadStatus.ENABLED

    @property
    def is_fetching(self) -> bool:
        return self._in_flight > 0

    @property
    def is_pending(self) -> bool:
        return self._status is None

    @property
    def is_success(self) -> bool:
        return self._status is ReadStatus.SUCCESS

    @property
    def is_error(self) -> bool:
        return self._status is ReadStatus.ERROR

    # Callbacks

    def on_load(self, callback: OnLoad) -> None:
        """Call ``callback`` once with the first data; immediately if data is already here."""
        if self._data is not None:
            callback(self._data)
        else:
            self._on_load_callbacks.append(callback)

    def _deliver(self, data: Any) -> None:
        self._data = data
        self._error = None
        self._status = ReadStatus.SUCCESS
        if data is not None and self._on_load_callbacks:
            callbacks, self._on_load_callbacks = self._on_load_callbacks, []
            for callback in callbacks:
                callback(data)

    # Reactivity

    def _attach(self, key: QueryKey) -> None:
        if self._attached_key is not None and keys_equal(self._attached_key, key):
            return
        if self._detach is not None:
            self._detach()
        self._attached_key = list(key)
        self._detach = self._cache.subscribe(key, self._on_cache_event)

    def _on_key_change(self, key: QueryKey) -> None:
        self._attach(key)
        self._data = None
        self._error = None
        self._status = None
        self._schedule_fetch()

    def _on_enabled_change(self, enabled: bool) -> None:
        # Disabling never cancels a request that is already running.
        if enabled:
            self._schedule_fetch()

    async def _on_cache_event(self, event: CacheEvent) -> None:
        if self._attached_key is None or not keys_equal(event.key, self._attached_key):
            return
        if event.kind == "updated":
            self._deliver(event.data)
        elif event.kind == "invalidated" and self.is_enabled.value:
            await self.refetch()

    def _schedule_fetch(self) -> None:
        if not self.auto_fetch or not self.is_enabled.value:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._background_fetch())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _background_fetch(self) -> None:
        try:
            await self._fetch(force=False)
        except Exception:
            # Already recorded on the engine and logged by _fetch.
            pass

    # Fetching

    async def _request(self, path: str, query_params: Dict[str, Any], headers: Dict[str, str]) -> Any:
        try:
            if self._metrics is not None:
                with self._metrics.time_request(self.operation_id, self.method.value):
                    response = await self._executor.execute(
                        self.method, path, None, query_params or None, headers or None
                    )
            else:
                response = await self._executor.execute(
                    self.method, path, None, query_params or None, headers or None
                )
        except TransportError as exc:
            self._count("requests_total", operation=self.operation_id, method=self.method.value, outcome="error")
            if self._error_handler is None:
                raise
            self.logger.info("Read error handed to error handler", path=path, error=str(exc))
            return await maybe_await(self._error_handler(exc))

        self._count("requests_total", operation=self.operation_id, method=self.method.value, outcome="success")
        return response.data

    async def _fetch(
        self,
        force: bool,
        query_params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        path = self.resolved_path.value
        if not is_resolved(path):
            raise UnresolvedParametersError(self.operation_id, path, self.path_params.value)

        effective_params = {**self.query_params.value, **dict(query_params or {})}
        effective_headers = {**self.headers, **dict(headers or {})}
        key = with_query_params(to_key(path), effective_params)
        previous_status = self._status
        loaded = False

        async def loader() -> Any:
            nonlocal loaded
            loaded = True
            return await call_with_retry(
                lambda: self._request(path, effective_params, effective_headers),
                self._retry,
                name=self.operation_id,
                on_retry=lambda attempt, error: self._count("retries_total", operation=self.operation_id),
            )

        self._attach(key)
        self._in_flight += 1
        with bind_operation(self.operation_id):
            self.logger.debug("Fetching", path=path, key=key, force=force)
            try:
                data = await self._cache.fetch_or_compute(key, loader, 0.0 if force else self.stale_time)
            except ReadCancelledError:
                self.logger.info("In-flight read cancelled", key=key)
                self._status = previous_status
                return self._data
            except Exception as exc:
                if keys_equal(key, self._attached_key or []):
                    self._error = exc
                    self._status = ReadStatus.ERROR
                self.logger.error("Read failed", path=path, error=str(exc))
                raise
            finally:
                self._in_flight -= 1

        self._count("cache_misses_total" if loaded else "cache_hits_total", operation=self.operation_id)
        if keys_equal(key, self._attached_key or []):
            self._deliver(data)
        return data

    def _count(self, metric: str, **labels: str) -> None:
        if self._metrics is not None:
            self._metrics.increment_counter(metric, **labels)

    async def start(self) -> Any:
        """Fetch now if enabled and the cache holds nothing fresh."""
        if not self.is_enabled.value:
            return self._data
        try:
            return await self._fetch(force=False)
        except Exception:
            return None

    async def refetch(self) -> Any:
        """Fetch again with the same key, ignoring staleness.

        Errors are recorded on the engine rather than raised. An unresolved
        path is a no-op.
        """
        if not is_resolved(self.resolved_path.value):
            self.logger.debug("Refetch skipped, path not resolved", path=self.resolved_path.value)
            return None
        try:
            return await self._fetch(force=True)
        except Exception:
            return None

    async def wait_settled(self) -> None:
        """Wait for background fetches started by reactive changes."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        """Stop reacting to parameter and cache changes."""
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions = []
        if self._detach is not None:
            self._detach()
            self._detach = None
        self._attached_key = None


class LazyReadEngine(ReadEngine):
    """A read that only runs when ``fetch()`` is awaited.

    Never enabled for automatic fetching; invalidations mark the cache stale
    but do not trigger a request.
    """

    auto_fetch = False

    def __init__(self, *args: Any, **kwargs: Any):
        kwargs["enabled"] = False
        super().__init__(*args, **kwargs)

    async def fetch(
        self,
        query_params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """Resolve through the cache; raises on unresolved params or failure.

        ``query_params`` and ``headers`` are merged over the engine-level ones.
        """
        return await self._fetch(force=False, query_params=query_params, headers=headers)
