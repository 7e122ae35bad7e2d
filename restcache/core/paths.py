"""
Path template resolution.
"""

from __future__ import annotations

import re
from typing import Any, List

from .observable import read

PLACEHOLDER_RE = re.compile(r"\{([^}]+)\}")


def resolve_path(template: str, params: Any = None) -> str:
    """Substitute every ``{name}`` whose parameter is set.

    ``None`` means "unset": the placeholder is left intact. Empty strings and
    ``0`` are valid values. Keys with no matching placeholder are ignored.
    """
    values = read(params)
    if not values:
        return template

    def _substitute(match: "re.Match[str]") -> str:
        value = values.get(match.group(1))
        if value is None:
            return match.group(0)
        return str(value)

    return PLACEHOLDER_RE.sub(_substitute, template)


def is_resolved(path: str) -> bool:
    """True iff no ``{...}`` placeholder remains."""
    return PLACEHOLDER_RE.search(path) is None


def placeholders(template: str) -> List[str]:
    """Placeholder names in the order they appear."""
    return PLACEHOLDER_RE.findall(template)
