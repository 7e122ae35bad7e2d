"""
Per-call options for mutations, merged over hook-level defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

OperationTargets = Union[Sequence[str], Mapping[str, Optional[Mapping[str, Any]]], None]


def normalize_targets(targets: OperationTargets) -> Tuple[Tuple[str, Dict[str, Any]], ...]:
    """``["getPet"]`` or ``{"getPet": {"petId": 1}}`` -> ``(("getPet", {...}),)``."""
    if not targets:
        return ()
    if isinstance(targets, Mapping):
        return tuple((name, dict(params or {})) for name, params in targets.items())
    if isinstance(targets, str):
        return ((targets, {}),)
    return tuple((name, {}) for name in targets)


@dataclass(frozen=True)
class CallContext:
    """Invalidation switches and extra targets for one mutation call.

    ``None`` means "not specified at this level". Scalars from the call win
    over the hook; target lists accumulate, hook first.
    """

    dont_invalidate: Optional[bool] = None
    dont_update_cache: Optional[bool] = None
    invalidate_operations: Tuple[Tuple[str, Dict[str, Any]], ...] = ()
    refetch_endpoints: Tuple[Any, ...] = ()
    extra_path_params: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        dont_invalidate: Optional[bool] = None,
        dont_update_cache: Optional[bool] = None,
        invalidate_operations: OperationTargets = None,
        refetch_endpoints: Optional[Iterable[Any]] = None,
        extra_path_params: Optional[Mapping[str, Any]] = None,
    ) -> "CallContext":
        return cls(
            dont_invalidate=dont_invalidate,
            dont_update_cache=dont_update_cache,
            invalidate_operations=normalize_targets(invalidate_operations),
            refetch_endpoints=tuple(refetch_endpoints or ()),
            extra_path_params=dict(extra_path_params or {}),
        )

    def merge(self, call: "CallContext") -> "CallContext":
        return CallContext(
            dont_invalidate=call.dont_invalidate if call.dont_invalidate is not None else self.dont_invalidate,
            dont_update_cache=call.dont_update_cache if call.dont_update_cache is not None else self.dont_update_cache,
            invalidate_operations=self.invalidate_operations + call.invalidate_operations,
            refetch_endpoints=self.refetch_endpoints + call.refetch_endpoints,
            extra_path_params=dict(call.extra_path_params),
        )

    @property
    def should_invalidate(self) -> bool:
        return not self.dont_invalidate

    @property
    def should_update_cache(self) -> bool:
        return not self.dont_update_cache
