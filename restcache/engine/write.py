"""
Mutations and the post-mutation invalidation protocol.

A successful mutation:

1. optionally writes its payload into the cache at its own key (PUT/PATCH),
2. invalidates its own key (exact for POST, prefix otherwise),
3. invalidates the collection it belongs to, including filtered variants,
4. invalidates any extra operations named by the caller,
5. asks explicitly passed read engines to refetch.

Steps 2-5 run concurrently. Every step is allowed to finish; the first
failure, in the order above, is then raised to the caller.

Reads cancelled before dispatch are invalidated again when the call settles,
unless steps 2-3 already cover their keys. This also happens when the
mutation fails or its error handler recovers it.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..adapters.base import CacheStore, KeyPredicate, RequestExecutor, Response
from ..core.keys import ListKeyMatcher, QueryKey, is_prefix, keys_equal, to_key
from ..core.list_paths import list_path_for
from ..core.observable import Computed, Ref, read
from ..core.paths import is_resolved, resolve_path
from ..core.registry import HttpMethod, OperationRegistry
from ..errors import ConfigurationError, InvalidationWarning, TransportError, UnresolvedParametersError
from ..logging import bind_operation, get_logger
from ..metrics import MetricsCollector
from .context import CallContext, OperationTargets
from .read import ErrorHandler, maybe_await

OPTIMISTIC_METHODS = frozenset({HttpMethod.PUT, HttpMethod.PATCH})


class MutationStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class MutationResult:
    """Outcome of one ``mutate`` call."""

    data: Any = None
    response: Optional[Response] = None
    warnings: List[InvalidationWarning] = field(default_factory=list)
    recovered: bool = False


class WriteEngine:
    """Executes one mutation operation and keeps the cache consistent after it.

    Hook-level options given here are defaults for every ``mutate`` call;
    per-call values override the scalar switches and extend the target lists.
    """

    def __init__(
        self,
        operation_id: str,
        registry: OperationRegistry,
        executor: RequestExecutor,
        cache: CacheStore,
        *,
        path_params: Any = None,
        query_params: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        dont_invalidate: Optional[bool] = None,
        dont_update_cache: Optional[bool] = None,
        invalidate_operations: OperationTargets = None,
        refetch_endpoints: Optional[List[Any]] = None,
        error_handler: Optional[ErrorHandler] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        descriptor = registry.require(operation_id)
        if not descriptor.is_mutation:
            raise ConfigurationError(
                f"Operation '{operation_id}' uses method {descriptor.method.value} and cannot be used for mutations. "
                "Use a read engine for GET/HEAD/OPTIONS operations.",
                details={"operation_id": operation_id, "method": descriptor.method.value}
            )

        self.operation_id = operation_id
        self.descriptor = descriptor
        self.method = descriptor.method
        self.registry = registry
        self.headers: Dict[str, str] = dict(headers or {})
        self.logger = get_logger(f"restcache.write.{operation_id}")

        self._executor = executor
        self._cache = cache
        self._error_handler = error_handler
        self._metrics = metrics
        self._query_params = query_params
        self._context = CallContext.build(
            dont_invalidate=dont_invalidate,
            dont_update_cache=dont_update_cache,
            invalidate_operations=invalidate_operations,
            refetch_endpoints=refetch_endpoints,
        )

        self.extra_path_params: Ref[Dict[str, Any]] = Ref({})
        self.path_params = Computed(
            lambda: {**dict(read(path_params) or {}), **self.extra_path_params.value},
            [path_params, self.extra_path_params],
        )
        self.resolved_path = Computed(
            lambda: resolve_path(descriptor.path_template, self.path_params.value),
            [path_params, self.extra_path_params],
        )
        self.query_key = Computed(
            lambda: to_key(self.resolved_path.value),
            [path_params, self.extra_path_params],
        )
        self.is_enabled = Computed(
            lambda: is_resolved(self.resolved_path.value),
            [path_params, self.extra_path_params],
        )

        self._status = MutationStatus.IDLE
        self._data: Any = None
        self._error: Optional[BaseException] = None

    @property
    def status(self) -> MutationStatus:
        return self._status

    @property
    def data(self) -> Any:
        return self._data

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def is_pending(self) -> bool:
        return self._status is MutationStatus.PENDING

    def reset(self) -> None:
        """Forget the last result."""
        self._status = MutationStatus.IDLE
        self._data = None
        self._error = None

    async def mutate(
        self,
        body: Any = None,
        *,
        path_params: Optional[Mapping[str, Any]] = None,
        query_params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        dont_invalidate: Optional[bool] = None,
        dont_update_cache: Optional[bool] = None,
        invalidate_operations: OperationTargets = None,
        refetch_endpoints: Optional[List[Any]] = None,
    ) -> MutationResult:
        """Dispatch the mutation and run the invalidation protocol.

        Raises UnresolvedParametersError without touching the network when a
        path placeholder is still unset, and re-raises transport errors unless
        an error handler recovers them.
        """
        context = self._context.merge(CallContext.build(
            dont_invalidate=dont_invalidate,
            dont_update_cache=dont_update_cache,
            invalidate_operations=invalidate_operations,
            refetch_endpoints=refetch_endpoints,
            extra_path_params=path_params,
        ))
        self.extra_path_params.value = dict(context.extra_path_params)
        cancelled: List[QueryKey] = []

        with bind_operation(self.operation_id):
            try:
                params = self.path_params.value
                path = self.resolved_path.value
                if not is_resolved(path):
                    raise UnresolvedParametersError(self.operation_id, path, params)
                key = self.query_key.value

                self._status = MutationStatus.PENDING
                self._error = None

                cancelled = list(await self._cache.cancel(key, exact=False) or [])

                result = await self._dispatch(path, body, query_params, headers)
                if not result.recovered:
                    pending, cancelled = cancelled, []
                    result.warnings = await self._invalidate(context, params, key, result.data, pending)

                self._data = result.data
                self._status = MutationStatus.SUCCESS
                return result
            except Exception as exc:
                self._error = exc
                self._status = MutationStatus.ERROR
                self.logger.error("Mutation failed", error=str(exc))
                raise
            finally:
                if cancelled:
                    await self._restore(cancelled)
                self.extra_path_params.value = {}

    async def _restore(self, keys: List[QueryKey]) -> None:
        """Reload reads this mutation cancelled when no invalidation will."""
        results = await asyncio.gather(
            *(self._cache.invalidate(target, exact=True) for target in keys), return_exceptions=True
        )
        for target, outcome in zip(keys, results):
            if isinstance(outcome, BaseException):
                self.logger.error("Restoring cancelled read failed", key=target, error=str(outcome))
            else:
                self._count("invalidations_total", operation=self.operation_id, kind="restore")
                self.logger.debug("Restored cancelled read", key=target)

    async def _dispatch(
        self,
        path: str,
        body: Any,
        query_params: Optional[Mapping[str, Any]],
        headers: Optional[Mapping[str, str]],
    ) -> MutationResult:
        effective_params = {**dict(read(self._query_params) or {}), **dict(query_params or {})}
        effective_headers = {**self.headers, **dict(headers or {})}
        self.logger.debug("Dispatching mutation", method=self.method.value, path=path)

        try:
            if self._metrics is not None:
                with self._metrics.time_request(self.operation_id, self.method.value):
                    response = await self._executor.execute(
                        self.method, path, body, effective_params or None, effective_headers or None
                    )
            else:
                response = await self._executor.execute(
                    self.method, path, body, effective_params or None, effective_headers or None
                )
        except TransportError as exc:
            self._count("requests_total", operation=self.operation_id, method=self.method.value, outcome="error")
            if self._error_handler is None:
                raise
            self.logger.info("Mutation error handed to error handler", path=path, error=str(exc))
            data = await maybe_await(self._error_handler(exc))
            return MutationResult(data=data, recovered=True)

        self._count("requests_total", operation=self.operation_id, method=self.method.value, outcome="success")
        return MutationResult(data=response.data, response=response)

    async def _invalidate(
        self,
        context: CallContext,
        params: Mapping[str, Any],
        key: QueryKey,
        data: Any,
        cancelled: Sequence[QueryKey] = (),
    ) -> List[InvalidationWarning]:
        warnings: List[InvalidationWarning] = []

        if self.method in OPTIMISTIC_METHODS and context.should_update_cache and data is not None:
            await self._cache.set(key, data)
            self._count("invalidations_total", operation=self.operation_id, kind="optimistic")
            self.logger.debug("Wrote mutation result to cache", key=key)

        steps: List[Tuple[str, Awaitable[Any]]] = []
        covers: List[KeyPredicate] = []

        if context.should_invalidate:
            exact = self.method == HttpMethod.POST
            steps.append(("own", self._cache.invalidate(key, exact=exact)))
            covers.append(partial(keys_equal, key) if exact else partial(is_prefix, key))
            self.logger.debug("Invalidating own key", key=key, exact=exact)

            list_key = self._list_key(params, warnings)
            if list_key is not None and not keys_equal(list_key, key):
                matcher = ListKeyMatcher(list_key)
                steps.append(("list", self._cache.invalidate(predicate=matcher)))
                covers.append(matcher)
                self.logger.debug("Invalidating list key", list_key=list_key)

        for cancelled_key in cancelled:
            if not any(cover(cancelled_key) for cover in covers):
                steps.append(("restore", self._cache.invalidate(cancelled_key, exact=True)))
                self.logger.debug("Restoring cancelled read", key=cancelled_key)

        for name, override in context.invalidate_operations:
            target = self._named_key(name, {**params, **override}, warnings)
            if target is not None:
                steps.append(("named", self._cache.invalidate(target, exact=True)))
                self.logger.debug("Invalidating named operation", target_operation=name, key=target)

        for endpoint in context.refetch_endpoints:
            steps.append(("refetch", endpoint.refetch()))

        results = await asyncio.gather(*(step for _, step in steps), return_exceptions=True)

        first_error: Optional[BaseException] = None
        for (kind, _), outcome in zip(steps, results):
            if isinstance(outcome, BaseException):
                self.logger.error("Invalidation step failed", kind=kind, error=str(outcome))
                if first_error is None:
                    first_error = outcome
            else:
                self._count("invalidations_total", operation=self.operation_id, kind=kind)

        for warning in warnings:
            self.logger.warning("Invalidation skipped", reason=warning.message, **warning.details)
            self._count("invalidation_warnings_total", operation=self.operation_id)

        if first_error is not None:
            raise first_error
        return warnings

    def _list_key(self, params: Mapping[str, Any], warnings: List[InvalidationWarning]) -> Optional[QueryKey]:
        list_path = list_path_for(self.operation_id, self.registry)
        if list_path is None:
            return None
        resolved = resolve_path(list_path, params)
        if not is_resolved(resolved):
            warnings.append(InvalidationWarning(
                self.operation_id,
                f"List path '{list_path}' has unresolved parameters",
                details={"target": list_path, "path": resolved}
            ))
            return None
        list_key = to_key(resolved)
        return list_key or None

    def _named_key(
        self,
        name: str,
        params: Mapping[str, Any],
        warnings: List[InvalidationWarning],
    ) -> Optional[QueryKey]:
        descriptor = self.registry.get(name)
        if descriptor is None:
            warnings.append(InvalidationWarning(
                self.operation_id,
                f"Operation '{name}' is not in the registry",
                details={"target": name}
            ))
            return None
        resolved = resolve_path(descriptor.path_template, params)
        if not is_resolved(resolved):
            warnings.append(InvalidationWarning(
                self.operation_id,
                f"Operation '{name}' has unresolved parameters",
                details={"target": name, "path": resolved}
            ))
            return None
        return to_key(resolved)

    def _count(self, metric: str, **labels: str) -> None:
        if self._metrics is not None:
            self._metrics.increment_counter(metric, **labels)
