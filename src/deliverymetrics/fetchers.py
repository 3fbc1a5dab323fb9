"""Shared PRFetcher behaviour: not-found handling and the self-loop guard."""

from __future__ import annotations

import logging
from abc import abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .errors import NotFoundError
from .interfaces import PRFetcher
from .models import MinimalPRInfo


@dataclass(frozen=True, slots=True)
class CommitPRCandidate:
    """A PR returned by a commit-to-PR lookup."""

    number: int
    merged_at: Optional[str]


def select_commit_pr(candidates: Sequence[CommitPRCandidate]) -> Optional[CommitPRCandidate]:
    """Prefer the first merged candidate, else the first one, else ``None``."""
    for candidate in candidates:
        if candidate.merged_at is not None:
            return candidate
    return candidates[0] if candidates else None


class BasePRFetcher(PRFetcher):
    """Implements the PRFetcher contract on top of two raw lookups.

    Subclasses provide ``_fetch_pr`` and ``_fetch_commit_prs`` and may raise
    ``NotFoundError`` from either; it is turned into ``None`` here.
    """

    def __init__(self, owner: str, repo: str, logger: Optional[logging.Logger] = None) -> None:
        self._owner = owner
        self._repo = repo
        self._logger = logger or logging.getLogger(__name__)

    @property
    def repository(self) -> str:
        return f"{self._owner}/{self._repo}"

    @abstractmethod
    def _fetch_pr(self, number: int) -> Optional[MinimalPRInfo]:
        ...

    @abstractmethod
    def _fetch_commit_prs(self, sha: str) -> List[CommitPRCandidate]:
        ...

    def get_pr(self, number: int) -> Optional[MinimalPRInfo]:
        try:
            return self._fetch_pr(number)
        except NotFoundError:
            self._logger.debug(
                "Pull request not found",
                extra={"repository": self.repository, "pr_number": number},
            )
            return None

    def find_pr_by_commit(self, sha: str, exclude_pr_number: int) -> Optional[int]:
        try:
            candidates = self._fetch_commit_prs(sha)
        except NotFoundError:
            self._logger.debug(
                "Commit not found",
                extra={"repository": self.repository, "sha": sha},
            )
            return None

        selected = select_commit_pr(candidates)
        if selected is None:
            return None

        if selected.number == exclude_pr_number:
            return None

        return selected.number
