"""
Static operation registry: operation name -> (path template, HTTP verb).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional, Union

from ..errors import ConfigurationError


class HttpMethod(str, Enum):
    """HTTP verbs an operation can declare."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"

    @classmethod
    def parse(cls, value: Union[str, "HttpMethod"]) -> "HttpMethod":
        if isinstance(value, HttpMethod):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ConfigurationError(f"Unknown HTTP method '{value}'", details={"method": str(value)})


QUERY_METHODS = frozenset({HttpMethod.GET, HttpMethod.HEAD, HttpMethod.OPTIONS})
MUTATION_METHODS = frozenset({HttpMethod.POST, HttpMethod.PUT, HttpMethod.PATCH, HttpMethod.DELETE})

HTTP_METHOD_NAMES = tuple(m.value.lower() for m in HttpMethod)


def is_query_method(method: HttpMethod) -> bool:
    return method in QUERY_METHODS


def is_mutation_method(method: HttpMethod) -> bool:
    return method in MUTATION_METHODS


@dataclass(frozen=True)
class OperationDescriptor:
    """A single operation as produced by the code generator."""

    path_template: str
    method: HttpMethod
    list_path: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", HttpMethod.parse(self.method))

    @property
    def is_query(self) -> bool:
        return is_query_method(self.method)

    @property
    def is_mutation(self) -> bool:
        return is_mutation_method(self.method)


class OperationRegistry(Mapping[str, OperationDescriptor]):
    """Immutable mapping of operation names to descriptors."""

    def __init__(self, operations: Optional[Mapping[str, OperationDescriptor]] = None):
        self._operations: Mapping[str, OperationDescriptor] = MappingProxyType(dict(operations or {}))

    def __getitem__(self, name: str) -> OperationDescriptor:
        return self._operations[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._operations)

    def __len__(self) -> int:
        return len(self._operations)

    def __repr__(self) -> str:
        return f"OperationRegistry({sorted(self._operations)!r})"

    def require(self, name: str) -> OperationDescriptor:
        """Look up an operation, raising ConfigurationError when it is unknown."""
        try:
            return self._operations[name]
        except KeyError:
            raise ConfigurationError(
                f"Operation '{name}' is not in the registry",
                details={"operation_id": name}
            )

    @classmethod
    def from_mapping(cls, operations: Mapping[str, Any]) -> "OperationRegistry":
        """Build a registry from plain dicts or descriptors.

        Accepted values are ``OperationDescriptor`` instances or mappings with
        ``path`` (or ``path_template``), ``method`` and optionally ``list_path``.
        """
        parsed: Dict[str, OperationDescriptor] = {}
        for name, info in operations.items():
            if isinstance(info, OperationDescriptor):
                parsed[name] = info
                continue
            path = info.get("path_template", info.get("path"))
            if path is None or "method" not in info:
                raise ConfigurationError(
                    f"Operation '{name}' needs a path and a method",
                    details={"operation_id": name}
                )
            parsed[name] = OperationDescriptor(
                path_template=path,
                method=HttpMethod.parse(info["method"]),
                list_path=info.get("list_path", info.get("listPath")),
            )
        return cls(parsed)

    @classmethod
    def from_openapi(cls, document: Mapping[str, Any], exclude_prefix: Optional[str] = "_deprecated") -> "OperationRegistry":
        """Extract ``{path, method}`` for every operation that declares an operationId.

        Operations without an operationId are skipped, as are those whose id
        starts with ``exclude_prefix``.
        """
        paths = document.get("paths")
        if not isinstance(paths, Mapping):
            raise ConfigurationError("Invalid OpenAPI document: missing paths")

        parsed: Dict[str, OperationDescriptor] = {}
        for path, path_item in paths.items():
            if not isinstance(path_item, Mapping):
                continue
            for method_name, operation in path_item.items():
                if method_name.lower() not in HTTP_METHOD_NAMES or not isinstance(operation, Mapping):
                    continue
                operation_id = operation.get("operationId")
                if not operation_id:
                    continue
                if exclude_prefix and operation_id.startswith(exclude_prefix):
                    continue
                parsed[operation_id] = OperationDescriptor(path, HttpMethod.parse(method_name))

        return cls(dict(sorted(parsed.items())))
