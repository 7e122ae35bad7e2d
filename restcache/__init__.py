"""
Cache-aware reads and mutations for REST APIs described by an operation registry.

This package aggregates:

- core: path resolution, cache keys, list-path inference, the registry
- engine: ReadEngine / LazyReadEngine / WriteEngine and the invalidation protocol
- adapters: httpx request executor and in-memory cache store
- config: EngineSettings via pydantic-settings
- logging: structlog configuration with correlation context
- metrics: Prometheus counters and histograms
- errors: exception taxonomy and error responses

Engines only talk to the executor and the cache through the protocols in
``restcache.adapters.base``; ApiClient wires the reference implementations.
"""

from .client import ApiClient
from .config import EngineSettings, get_settings
from .core import HttpMethod, OperationDescriptor, OperationRegistry, Ref
from .engine import LazyReadEngine, MutationResult, MutationStatus, ReadEngine, ReadStatus, WriteEngine
from .errors import (
    ClientTransportError,
    ConfigurationError,
    InvalidationWarning,
    ReadCancelledError,
    RestCacheException,
    TransientTransportError,
    TransportError,
    UnresolvedParametersError,
)

__version__ = "0.1.0"

__all__ = [
    "ApiClient",
    "EngineSettings",
    "get_settings",
    "HttpMethod",
    "OperationDescriptor",
    "OperationRegistry",
    "Ref",
    "ReadEngine",
    "LazyReadEngine",
    "ReadStatus",
    "WriteEngine",
    "MutationResult",
    "MutationStatus",
    "RestCacheException",
    "ConfigurationError",
    "UnresolvedParametersError",
    "TransportError",
    "ClientTransportError",
    "TransientTransportError",
    "ReadCancelledError",
    "InvalidationWarning",
]
