"""Metrics derivation pipeline.

Drives the backend per repository: lists issues, resolves their linked PRs,
tracks each linked PR to production, and derives cycle and coding time.
Separately derives rework, review-efficiency and size records for a PR list
via batched detail requests, and DORA deployment metrics per repository
from deployments, workflow runs and merged PRs.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .batching import BatchGrouper, RepositoryRef, parse_repository
from .config import DEFAULT_BATCH_SIZE, DEFAULT_DEPLOY_WORKFLOW_PATTERNS, DEFAULT_PRODUCTION_PATTERN
from .dora import DEFAULT_DORA_PERIOD_DAYS, calculate_dora_metrics, filter_by_environment
from .errors import ApiError, MalformedRepositoryError
from .interfaces import MetricsBackend
from .kpi import (
    build_coding_time,
    build_cycle_time,
    calculate_review,
    calculate_rework,
    calculate_size,
    default_review,
    default_rework,
    default_size,
)
from .labels import should_exclude_by_labels
from .models import (
    DEPLOYMENT_SUCCESS_STATE,
    ChainResult,
    Deployment,
    DoraMetrics,
    Issue,
    IssueCodingTime,
    IssueCycleTime,
    LinkedPR,
    PRReviewData,
    PRReworkData,
    PRSizeData,
    PullRequest,
    WorkflowRun,
)
from .selector import select_best_result
from .tracker import PRChainTracker


class MetricsDerivationPipeline:
    """Sequential, synchronous derivation of delivery metrics for one run."""

    def __init__(
        self,
        backend: MetricsBackend,
        production_pattern: str = DEFAULT_PRODUCTION_PATTERN,
        batch_size: int = DEFAULT_BATCH_SIZE,
        exclude_labels: Sequence[str] = (),
        deploy_environment: Optional[str] = None,
        deploy_workflow_patterns: Sequence[str] = DEFAULT_DEPLOY_WORKFLOW_PATTERNS,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._backend = backend
        self._production_pattern = production_pattern
        self._exclude_labels = tuple(exclude_labels)
        self._deploy_environment = deploy_environment
        self._deploy_workflow_patterns = tuple(deploy_workflow_patterns)
        self._logger = logger or logging.getLogger(__name__)
        self._grouper = BatchGrouper(batch_size=batch_size, logger=self._logger)

    def _parse_repositories(self, repositories: Sequence[str]) -> Iterator[RepositoryRef]:
        for name in repositories:
            try:
                yield parse_repository(name)
            except MalformedRepositoryError as exc:
                self._logger.warning("Skipping malformed repository", extra={"repository": name, "error": str(exc)})

    def _iter_issues(
        self,
        repositories: Sequence[str],
        since: Optional[datetime],
        until: Optional[datetime],
        labels: Sequence[str],
    ) -> Iterator[Tuple[RepositoryRef, Issue, List[LinkedPR]]]:
        for ref in self._parse_repositories(repositories):
            self._logger.info("Processing repository", extra={"repository": ref.full_name})
            try:
                issues = self._backend.list_issues(ref.owner, ref.repo, since=since, until=until, labels=labels)
            except ApiError as exc:
                self._logger.warning(
                    "Failed to fetch issues, skipping repository",
                    extra={"repository": ref.full_name, "error": str(exc)},
                )
                continue

            for issue in issues:
                if should_exclude_by_labels(issue.labels, self._exclude_labels):
                    continue

                try:
                    linked_prs = self._backend.list_linked_prs(ref.owner, ref.repo, issue.number)
                except ApiError as exc:
                    self._logger.warning(
                        "Failed to fetch linked PRs",
                        extra={"repository": ref.full_name, "issue_number": issue.number, "error": str(exc)},
                    )
                    linked_prs = []

                yield ref, issue, linked_prs

    def _track_linked_prs(self, tracker: PRChainTracker, linked_prs: Sequence[LinkedPR]) -> ChainResult:
        results: List[Optional[ChainResult]] = []
        for linked in linked_prs:
            try:
                results.append(tracker.track(linked.number, self._production_pattern))
            except ApiError as exc:
                self._logger.warning(
                    "Tracking failed for linked PR",
                    extra={"pr_number": linked.number, "error": str(exc)},
                )
                results.append(None)
        return select_best_result(results)

    def _tracker_for(self, ref: RepositoryRef) -> PRChainTracker:
        return PRChainTracker(self._backend.pr_fetcher(ref.owner, ref.repo), logger=self._logger)

    def derive_issue_metrics(
        self,
        repositories: Sequence[str],
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        labels: Sequence[str] = (),
    ) -> Tuple[List[IssueCycleTime], List[IssueCodingTime]]:
        """Compute cycle and coding time together, sharing issue and linked-PR lookups."""
        cycle_times: List[IssueCycleTime] = []
        coding_times: List[IssueCodingTime] = []
        trackers: Dict[str, PRChainTracker] = {}

        for ref, issue, linked_prs in self._iter_issues(repositories, since, until, labels):
            if ref.full_name not in trackers:
                trackers[ref.full_name] = self._tracker_for(ref)
            tracker = trackers[ref.full_name]

            chain = self._track_linked_prs(tracker, linked_prs)
            cycle_times.append(build_cycle_time(issue, chain))
            coding_times.append(build_coding_time(issue, linked_prs))

        self._logger.info("Issues processed", extra={"issues": len(cycle_times)})
        return cycle_times, coding_times

    def get_cycle_time_data(
        self,
        repositories: Sequence[str],
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        labels: Sequence[str] = (),
    ) -> List[IssueCycleTime]:
        """Cycle time for every issue: issue creation to production merge."""
        cycle_times, _ = self.derive_issue_metrics(repositories, since=since, until=until, labels=labels)
        return cycle_times

    def get_coding_time_data(
        self,
        repositories: Sequence[str],
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        labels: Sequence[str] = (),
    ) -> List[IssueCodingTime]:
        """Coding time for every issue: issue creation to earliest linked PR creation."""
        return [
            build_coding_time(issue, linked_prs)
            for _, issue, linked_prs in self._iter_issues(repositories, since, until, labels)
        ]

    def list_pull_requests(
        self,
        repositories: Sequence[str],
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        merged_only: bool = True,
    ) -> List[PullRequest]:
        """List PRs across repositories; repositories that fail are skipped."""
        pull_requests: List[PullRequest] = []
        for ref in self._parse_repositories(repositories):
            try:
                prs = self._backend.list_pull_requests(ref.owner, ref.repo, since=since, until=until)
            except ApiError as exc:
                self._logger.warning(
                    "Failed to fetch pull requests, skipping repository",
                    extra={"repository": ref.full_name, "error": str(exc)},
                )
                continue

            for pr in prs:
                if merged_only and pr.merged_at is None:
                    continue
                if should_exclude_by_labels(pr.labels, self._exclude_labels):
                    continue
                pull_requests.append(pr)

        return pull_requests

    def get_rework_data(self, pull_requests: Sequence[PullRequest]) -> List[PRReworkData]:
        return self._grouper.run(
            pull_requests,
            self._backend.fetch_pr_details,
            calculate_rework,
            default_rework,
            description="PR rework details",
        )

    def get_review_data(self, pull_requests: Sequence[PullRequest]) -> List[PRReviewData]:
        return self._grouper.run(
            pull_requests,
            self._backend.fetch_pr_details,
            lambda detail, pr: calculate_review(detail, pr.repository),
            default_review,
            description="PR reviews",
        )

    def get_review_and_rework_data(
        self, pull_requests: Sequence[PullRequest]
    ) -> Tuple[List[PRReviewData], List[PRReworkData]]:
        """Derive review and rework records from one detail fetch per batch."""
        pairs = self._grouper.run(
            pull_requests,
            self._backend.fetch_pr_details,
            lambda detail, pr: (calculate_review(detail, pr.repository), calculate_rework(detail, pr)),
            lambda pr: (default_review(pr), default_rework(pr)),
            description="PR details",
        )
        return [review for review, _ in pairs], [rework for _, rework in pairs]

    def get_size_data(self, pull_requests: Sequence[PullRequest]) -> List[PRSizeData]:
        return self._grouper.run(
            pull_requests,
            self._backend.fetch_pr_sizes,
            lambda size, pr: calculate_size(size, pr.repository),
            default_size,
            description="PR size",
        )

    def _list_deployments(
        self, ref: RepositoryRef, since: Optional[datetime], until: Optional[datetime]
    ) -> List[Deployment]:
        try:
            deployments = self._backend.list_deployments(ref.owner, ref.repo, since=since, until=until)
        except ApiError as exc:
            self._logger.warning(
                "Failed to fetch deployments",
                extra={"repository": ref.full_name, "error": str(exc)},
            )
            return []
        return filter_by_environment(deployments, self._deploy_environment)

    def _list_workflow_runs(
        self, ref: RepositoryRef, since: Optional[datetime], until: Optional[datetime]
    ) -> List[WorkflowRun]:
        try:
            return self._backend.list_workflow_runs(ref.owner, ref.repo, since=since, until=until)
        except ApiError as exc:
            self._logger.warning(
                "Failed to fetch workflow runs",
                extra={"repository": ref.full_name, "error": str(exc)},
            )
            return []

    def get_dora_metrics(
        self,
        repositories: Sequence[str],
        pull_requests: Sequence[PullRequest],
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        period_days: int = DEFAULT_DORA_PERIOD_DAYS,
    ) -> List[DoraMetrics]:
        """One DORA record per repository.

        Lead time is measured over the merged PRs in ``pull_requests``.
        Deployment or workflow-run lookups that fail count as empty.
        """
        metrics: List[DoraMetrics] = []
        for ref in self._parse_repositories(repositories):
            deployments = self._list_deployments(ref, since, until)
            # A successful deployment means every measure is taken from deployments.
            has_success = any(deployment.status == DEPLOYMENT_SUCCESS_STATE for deployment in deployments)
            runs = [] if has_success else self._list_workflow_runs(ref, since, until)
            metrics.append(
                calculate_dora_metrics(
                    ref.full_name,
                    [pr for pr in pull_requests if pr.merged_at is not None],
                    deployments,
                    runs,
                    period_days=period_days,
                    patterns=self._deploy_workflow_patterns,
                )
            )
        return metrics
