"""Choosing one chain result among the linked PRs of an issue."""

from __future__ import annotations

from typing import Iterable, Optional

from .models import ChainResult
from .timeutil import is_earlier

EMPTY_RESULT = ChainResult(production_merged_at=None, pr_chain=())


def select_best_result(results: Iterable[Optional[ChainResult]]) -> ChainResult:
    """Pick the representative chain for an issue.

    The result with the earliest production merge wins. When no result reached
    production, the first non-``None`` result is kept so its chain is still
    reported. With no results at all an empty result is returned.
    """
    best: Optional[ChainResult] = None

    for result in results:
        if result is None:
            continue

        if result.production_merged_at is not None:
            if best is None or best.production_merged_at is None or is_earlier(
                result.production_merged_at, best.production_merged_at
            ):
                best = result
        elif best is None:
            best = result

    return best if best is not None else EMPTY_RESULT
