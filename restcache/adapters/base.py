"""
Capability interfaces the engines consume.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, runtime_checkable

from ..core.registry import HttpMethod

KeyPredicate = Callable[[Sequence[Any]], bool]
Loader = Callable[[], Awaitable[Any]]


@dataclass
class Response:
    """Result of a dispatched request."""

    status_code: int
    data: Any = None
    headers: Dict[str, str] = field(default_factory=dict)


@runtime_checkable
class RequestExecutor(Protocol):
    """Transport capability. Failures raise TransportError subclasses."""

    async def execute(
        self,
        method: HttpMethod,
        url: str,
        body: Any = None,
        query_params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Response:
        ...


@dataclass(frozen=True)
class CacheEvent:
    """Notification delivered to cache subscribers."""

    kind: str  # "updated" or "invalidated"
    key: Sequence[Any]
    data: Any = None


CacheListener = Callable[[CacheEvent], Awaitable[None]]


@runtime_checkable
class CacheStore(Protocol):
    """Cache capability. The engines only hold keys, never entries."""

    async def get(self, key: Sequence[Any]) -> Any:
        ...

    async def set(self, key: Sequence[Any], value: Any) -> None:
        ...

    async def cancel(self, key: Sequence[Any], exact: bool = False) -> List[List[Any]]:
        """Cancel matching in-flight loads; returns the keys that were cancelled."""
        ...

    async def invalidate(
        self,
        key: Optional[Sequence[Any]] = None,
        *,
        exact: bool = False,
        predicate: Optional[KeyPredicate] = None,
    ) -> None:
        ...

    async def fetch_or_compute(self, key: Sequence[Any], loader: Loader, stale_time: float) -> Any:
        ...

    def subscribe(self, key: Sequence[Any], listener: CacheListener) -> Callable[[], None]:
        ...
