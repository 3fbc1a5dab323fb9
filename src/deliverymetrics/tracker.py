"""Production-merge tracking.

Follows a pull request through the chain of branch merges it flows into
(``feature -> main -> staging -> production``) until a PR merged into a
production branch is found.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .errors import FetchError
from .interfaces import PRFetcher
from .models import ChainResult, MinimalPRInfo, PRChainItem

MAX_PR_CHAIN_DEPTH = 5


def is_production_branch(branch: Optional[str], production_pattern: str) -> bool:
    """Case-insensitive substring match of ``production_pattern`` in ``branch``."""
    if not branch:
        return False
    return production_pattern.lower() in branch.lower()


class PRChainTracker:
    """Depth-bounded walk from an initial PR to a production merge.

    The walk stops when:
    - a PR merged into a production branch is found,
    - a PR is unmerged or has no merge commit,
    - a lookup fails or finds nothing,
    - ``max_depth`` PRs have been visited.

    Every outcome is returned as a :class:`ChainResult`; lookup failures only
    shorten the chain.
    """

    def __init__(
        self,
        fetcher: PRFetcher,
        max_depth: int = MAX_PR_CHAIN_DEPTH,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._fetcher = fetcher
        self._max_depth = max_depth
        self._logger = logger or logging.getLogger(__name__)

    def _get_pr(self, number: int) -> Optional[MinimalPRInfo]:
        try:
            return self._fetcher.get_pr(number)
        except FetchError as exc:
            self._logger.warning(
                "Failed to fetch PR while tracking",
                extra={"pr_number": number, "error": str(exc)},
            )
            return None

    def _find_next(self, sha: str, current: int) -> Optional[int]:
        try:
            return self._fetcher.find_pr_by_commit(sha, current)
        except FetchError as exc:
            self._logger.warning(
                "Failed to look up PR for merge commit",
                extra={"pr_number": current, "sha": sha, "error": str(exc)},
            )
            return None

    def track(self, initial_pr_number: int, production_pattern: str) -> ChainResult:
        chain: List[PRChainItem] = []
        current = initial_pr_number

        for _ in range(self._max_depth):
            pr = self._get_pr(current)
            if pr is None:
                break

            chain.append(PRChainItem.from_pr_info(pr))

            if pr.merged_at is not None and is_production_branch(pr.base_branch, production_pattern):
                self._logger.info(
                    "Found production merge",
                    extra={"pr_number": pr.number, "base_branch": pr.base_branch, "merged_at": pr.merged_at},
                )
                return ChainResult(production_merged_at=pr.merged_at, pr_chain=tuple(chain))

            if pr.merged_at is None or pr.merge_commit_sha is None:
                break

            next_number = self._find_next(pr.merge_commit_sha, current)
            if next_number is None:
                break

            current = next_number
        else:
            self._logger.debug(
                "PR chain depth limit reached",
                extra={"initial_pr_number": initial_pr_number, "max_depth": self._max_depth},
            )

        return ChainResult(production_merged_at=None, pr_chain=tuple(chain))
