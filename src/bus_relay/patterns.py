"""Entity name filtering against ignore patterns."""

import re
from collections.abc import Iterable


def split_patterns(value: str | None) -> tuple[str, ...]:
    """Split a comma-separated pattern list, dropping blank entries."""
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(",") if part.strip())


def is_ignored(name: str, patterns: Iterable[str]) -> bool:
    """Return True if any pattern is found anywhere in name, ignoring case."""
    return any(re.search(pattern, name, re.IGNORECASE) for pattern in patterns)
