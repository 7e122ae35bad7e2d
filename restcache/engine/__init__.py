"""
Read and write engines.

- read: ReadEngine (reactive cached reads) and LazyReadEngine (on demand)
- write: WriteEngine (mutations plus the invalidation protocol)
- context: CallContext, per-call options merged over hook-level defaults
"""

from .context import CallContext, normalize_targets
from .read import LazyReadEngine, ReadEngine, ReadStatus
from .write import MutationResult, MutationStatus, WriteEngine

__all__ = [
    "CallContext",
    "normalize_targets",
    "ReadEngine",
    "LazyReadEngine",
    "ReadStatus",
    "WriteEngine",
    "MutationResult",
    "MutationStatus",
]
