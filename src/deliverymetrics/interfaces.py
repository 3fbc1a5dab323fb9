"""Backend-agnostic interfaces used by the tracker and the metrics pipeline.

A concrete backend (REST or GraphQL) is picked once when the pipeline is
built; nothing downstream of these interfaces branches on which one it got.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence

from .models import (
    Deployment,
    Issue,
    LinkedPR,
    MinimalPRInfo,
    PullRequest,
    PullRequestDetail,
    PullRequestSize,
    WorkflowRun,
)


class PRFetcher(ABC):
    """Per-repository pull request lookups needed to walk a merge chain."""

    @abstractmethod
    def get_pr(self, number: int) -> Optional[MinimalPRInfo]:
        """Return the PR, or ``None`` if it does not exist.

        Raises:
            FetchError: If the remote call could not be completed after retries.
        """

    @abstractmethod
    def find_pr_by_commit(self, sha: str, exclude_pr_number: int) -> Optional[int]:
        """Return the number of the PR containing ``sha``.

        ``None`` is returned when the commit or a containing PR cannot be
        found, and when the containing PR is ``exclude_pr_number`` itself.

        Raises:
            FetchError: On unrecoverable remote failures only.
        """


class MetricsBackend(ABC):
    """All remote reads the pipeline needs, bound to one API flavour."""

    @abstractmethod
    def pr_fetcher(self, owner: str, repo: str) -> PRFetcher:
        """Return a PR fetcher bound to ``owner/repo``."""

    @abstractmethod
    def list_issues(
        self,
        owner: str,
        repo: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        labels: Sequence[str] = (),
    ) -> List[Issue]:
        """List issues (never PRs), newest first, created within the window."""

    @abstractmethod
    def list_linked_prs(self, owner: str, repo: str, issue_number: int) -> List[LinkedPR]:
        """List same-repository PRs cross-referenced from an issue."""

    @abstractmethod
    def list_pull_requests(
        self,
        owner: str,
        repo: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[PullRequest]:
        """List PRs created within the window, most recently updated first."""

    @abstractmethod
    def fetch_pr_details(
        self, owner: str, repo: str, numbers: Sequence[int]
    ) -> List[Optional[PullRequestDetail]]:
        """Fetch commit/review/timeline activity for one batch of PRs.

        The result is index-aligned with ``numbers``; PRs the API did not
        return are ``None``.
        """

    @abstractmethod
    def fetch_pr_sizes(
        self, owner: str, repo: str, numbers: Sequence[int]
    ) -> List[Optional[PullRequestSize]]:
        """Fetch additions/deletions/changed files for one batch of PRs."""

    @abstractmethod
    def list_deployments(
        self,
        owner: str,
        repo: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[Deployment]:
        """List deployments created within the window, each with its latest status."""

    @abstractmethod
    def list_workflow_runs(
        self,
        owner: str,
        repo: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[WorkflowRun]:
        """List GitHub Actions workflow runs created within the window."""
