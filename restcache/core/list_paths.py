"""
Infer the collection ("list") endpoint a mutation belongs to.

``createPet``/``updatePet``/``deletePet`` map to ``listPet`` or ``listPets``
when the registry has such a GET operation. Otherwise a path ending in a
``{param}`` segment falls back to its parent collection (``/pets/{petId}`` ->
``/pets/``).
"""

from __future__ import annotations

from typing import Mapping, Optional

from .paths import PLACEHOLDER_RE
from .registry import HttpMethod, OperationDescriptor

VERB_PREFIXES = {
    HttpMethod.POST: "create",
    HttpMethod.PUT: "update",
    HttpMethod.PATCH: "update",
    HttpMethod.DELETE: "delete",
}

_ES_SUFFIXES = ("s", "x", "z", "ch", "sh", "o")


def pluralize(name: str) -> str:
    if name.endswith("y"):
        return name[:-1] + "ies"
    if name.endswith(_ES_SUFFIXES):
        return name + "es"
    return name + "s"


def resource_name(operation_name: str, method: HttpMethod) -> Optional[str]:
    """``updatePet`` + PUT -> ``Pet``; None when the name does not follow the convention."""
    prefix = VERB_PREFIXES.get(method)
    if prefix is None or not operation_name.startswith(prefix):
        return None
    remainder = operation_name[len(prefix):]
    if not remainder or not remainder[0].isupper():
        return None
    return remainder


def _parent_collection(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    segments = [segment for segment in path.split("/") if segment]
    if len(segments) < 2 or not PLACEHOLDER_RE.fullmatch(segments[-1]):
        return None
    return "/" + "/".join(segments[:-1]) + "/"


def resolve_list_path(
    operation_name: str,
    method: HttpMethod,
    registry: Mapping[str, OperationDescriptor],
    path: Optional[str] = None,
) -> Optional[str]:
    """Path template of the collection endpoint, or None. Never raises."""
    try:
        method = HttpMethod.parse(method)
    except Exception:
        return None
    if method not in VERB_PREFIXES:
        return None

    resource = resource_name(operation_name, method)
    if resource is not None:
        for candidate in ("list" + resource, "list" + pluralize(resource)):
            descriptor = registry.get(candidate)
            if descriptor is not None and descriptor.method == HttpMethod.GET:
                return descriptor.path_template

    return _parent_collection(path)


def list_path_for(operation_name: str, registry: Mapping[str, OperationDescriptor]) -> Optional[str]:
    """Explicit ``list_path`` of a registered operation, else the inferred one."""
    descriptor = registry.get(operation_name)
    if descriptor is None:
        return None
    if descriptor.list_path is not None:
        return descriptor.list_path
    return resolve_list_path(operation_name, descriptor.method, registry, descriptor.path_template)
