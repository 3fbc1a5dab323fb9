"""Grouping PRs by repository and fetching their details in fixed-size batches.

Failure isolation is per batch: a batch whose combined request fails yields
default records for its PRs, and a PR missing from a successful batch gets
a default record of its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from .config import DEFAULT_BATCH_SIZE
from .errors import ApiError, MalformedRepositoryError
from .models import PullRequest

D = TypeVar("D")
R = TypeVar("R")
T = TypeVar("T")

BatchFetch = Callable[[str, str, Sequence[int]], List[Optional[D]]]


@dataclass(frozen=True, slots=True)
class RepositoryRef:
    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


def parse_repository(full_name: str) -> RepositoryRef:
    """Split ``owner/repo`` into its two parts.

    Raises:
        MalformedRepositoryError: Unless there are exactly two non-empty segments.
    """
    parts = (full_name or "").strip().split("/")
    if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
        raise MalformedRepositoryError(f"Invalid repository format: {full_name!r}. Expected 'owner/repo'.")
    return RepositoryRef(owner=parts[0].strip(), repo=parts[1].strip())


def group_by_repository(pull_requests: Sequence[PullRequest]) -> Dict[str, List[PullRequest]]:
    """Group PRs by repository key, keeping first-seen repository order."""
    groups: Dict[str, List[PullRequest]] = {}
    for pr in pull_requests:
        groups.setdefault(pr.repository, []).append(pr)
    return groups


def chunk(items: Sequence[T], size: int) -> List[List[T]]:
    if size <= 0:
        raise ValueError("Batch size must be greater than 0.")
    return [list(items[start:start + size]) for start in range(0, len(items), size)]


class BatchGrouper:
    """Runs a per-batch detail fetch over a flat PR list."""

    def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE, logger: Optional[logging.Logger] = None) -> None:
        if batch_size <= 0:
            raise ValueError("Batch size must be greater than 0.")
        self._batch_size = batch_size
        self._logger = logger or logging.getLogger(__name__)

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def run(
        self,
        pull_requests: Sequence[PullRequest],
        fetch_batch: BatchFetch,
        build: Callable[[D, PullRequest], R],
        default: Callable[[PullRequest], R],
        description: str = "PR details",
    ) -> List[R]:
        """Fetch and derive one record per PR.

        Args:
            pull_requests: PRs from any number of repositories.
            fetch_batch: ``(owner, repo, numbers) -> results`` with results
                index-aligned with ``numbers``.
            build: Derives a record from a fetched result and its PR.
            default: Produces the fallback record for a PR.
            description: Used in log messages.

        Returns:
            Records grouped by repository, in batch order. PRs of malformed
            repositories are skipped.
        """
        records: List[R] = []

        for repository, prs in group_by_repository(pull_requests).items():
            try:
                ref = parse_repository(repository)
            except MalformedRepositoryError as exc:
                self._logger.warning(
                    "Skipping PRs with malformed repository",
                    extra={"repository": repository, "prs": len(prs), "error": str(exc)},
                )
                continue

            for batch in chunk(prs, self._batch_size):
                records.extend(self._run_batch(ref, batch, fetch_batch, build, default, description))

        return records

    def _run_batch(
        self,
        ref: RepositoryRef,
        batch: List[PullRequest],
        fetch_batch: BatchFetch,
        build: Callable[[D, PullRequest], R],
        default: Callable[[PullRequest], R],
        description: str,
    ) -> List[R]:
        numbers = [pr.number for pr in batch]
        try:
            results = fetch_batch(ref.owner, ref.repo, numbers)
        except ApiError as exc:
            self._logger.warning(
                f"Failed to fetch batch {description}",
                extra={"repository": ref.full_name, "pr_numbers": numbers, "error": str(exc)},
            )
            return [default(pr) for pr in batch]

        records: List[R] = []
        for index, pr in enumerate(batch):
            result = results[index] if index < len(results) else None
            records.append(default(pr) if result is None else build(result, pr))
        return records
