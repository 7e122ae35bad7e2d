"""
Pure resolution layer: registry, path templates, cache keys, list inference
and the observable capability. Nothing here performs I/O.
"""

from .keys import ListKeyMatcher, hash_key, is_prefix, matches_list_key, normalize, to_key, with_query_params
from .list_paths import list_path_for, pluralize, resolve_list_path
from .observable import Computed, Constant, Observable, Ref, read, to_observable
from .paths import is_resolved, placeholders, resolve_path
from .registry import (
    MUTATION_METHODS,
    QUERY_METHODS,
    HttpMethod,
    OperationDescriptor,
    OperationRegistry,
    is_mutation_method,
    is_query_method,
)

__all__ = [
    "HttpMethod",
    "OperationDescriptor",
    "OperationRegistry",
    "QUERY_METHODS",
    "MUTATION_METHODS",
    "is_query_method",
    "is_mutation_method",
    "resolve_path",
    "is_resolved",
    "placeholders",
    "to_key",
    "with_query_params",
    "normalize",
    "is_prefix",
    "hash_key",
    "matches_list_key",
    "ListKeyMatcher",
    "resolve_list_path",
    "list_path_for",
    "pluralize",
    "Observable",
    "Ref",
    "Computed",
    "Constant",
    "read",
    "to_observable",
]
