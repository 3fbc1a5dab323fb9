"""Label-based exclusion of issues and pull requests from measurement."""

from __future__ import annotations

from typing import Iterable, Sequence


def should_exclude_by_labels(item_labels: Iterable[str], exclude_labels: Sequence[str]) -> bool:
    """Return ``True`` if any item label is in the exclusion list.

    An empty exclusion list never excludes anything.
    """
    if not exclude_labels:
        return False
    excluded = set(exclude_labels)
    return any(label in excluded for label in item_labels)
