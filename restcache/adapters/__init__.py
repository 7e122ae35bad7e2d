"""
Capability interfaces and their reference implementations.

- base: RequestExecutor / CacheStore protocols, Response, CacheEvent
- http_executor: httpx transport with status classification
- memory_cache: in-process CacheStore with in-flight tracking

Engines depend on the protocols only; any object with the same shape can be
injected instead.
"""

from .base import CacheEvent, CacheStore, RequestExecutor, Response
from .http_executor import HttpxRequestExecutor
from .memory_cache import CacheEntry, InMemoryCacheStore

__all__ = [
    "CacheEvent",
    "CacheStore",
    "RequestExecutor",
    "Response",
    "HttpxRequestExecutor",
    "CacheEntry",
    "InMemoryCacheStore",
]
