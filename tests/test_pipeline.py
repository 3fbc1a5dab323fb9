"""Tests for the metrics derivation pipeline with a mocked backend."""

import sys
from pathlib import Path
from typing import Dict, Optional
from unittest.mock import Mock

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from deliverymetrics.errors import ForbiddenError, RetryExhaustedError, TransientApiError
from deliverymetrics.interfaces import PRFetcher
from deliverymetrics.models import (
    CommitInfo,
    Deployment,
    Issue,
    LinkedPR,
    MinimalPRInfo,
    PullRequest,
    PullRequestDetail,
    PullRequestSize,
    ReviewInfo,
    WorkflowRun,
)
from deliverymetrics.pipeline import MetricsDerivationPipeline


class TableFetcher(PRFetcher):
    def __init__(self, prs: Dict[int, MinimalPRInfo], next_by_sha: Dict[str, int]):
        self.prs = prs
        self.next_by_sha = next_by_sha

    def get_pr(self, number: int) -> Optional[MinimalPRInfo]:
        return self.prs.get(number)

    def find_pr_by_commit(self, sha: str, exclude_pr_number: int) -> Optional[int]:
        number = self.next_by_sha.get(sha)
        return None if number == exclude_pr_number else number


def _issue(number: int = 10, repository: str = "octo/app", labels=()) -> Issue:
    return Issue(
        number=number,
        title=f"Issue {number}",
        created_at="2024-01-01T00:00:00Z",
        state="closed",
        repository=repository,
        labels=tuple(labels),
    )


def _pull_request(number: int, repository: str = "octo/app", merged_at="2024-01-02T00:00:00Z", labels=()):
    return PullRequest(
        number=number,
        title=f"PR {number}",
        repository=repository,
        created_at="2024-01-01T09:00:00Z",
        merged_at=merged_at,
        state="closed",
        author="dev",
        labels=tuple(labels),
    )


def _scenario_fetcher() -> TableFetcher:
    return TableFetcher(
        {
            1: MinimalPRInfo(1, "main", "feature/login", "2024-01-01T10:00:00Z", "abc"),
            2: MinimalPRInfo(2, "production", "main", "2024-01-02T00:00:00Z", "def"),
        },
        {"abc": 2},
    )


def _backend(fetcher: Optional[PRFetcher] = None) -> Mock:
    backend = Mock()
    backend.pr_fetcher.return_value = fetcher or _scenario_fetcher()
    backend.list_issues.return_value = [_issue()]
    backend.list_linked_prs.return_value = [LinkedPR(1, "2024-01-01T05:00:00Z")]
    return backend


def test_derive_issue_metrics_end_to_end_scenario():
    """Verify issue -> feature PR -> production PR yields coding and cycle time."""
    backend = _backend()
    pipeline = MetricsDerivationPipeline(backend, production_pattern="production")

    cycle_times, coding_times = pipeline.derive_issue_metrics(["octo/app"])

    assert len(cycle_times) == 1
    cycle = cycle_times[0]
    assert cycle.production_merged_at == "2024-01-02T00:00:00Z"
    assert cycle.cycle_time_hours == pytest.approx(24.0)
    assert [item.pr_number for item in cycle.pr_chain] == [1, 2]
    assert coding_times[0].coding_time_hours == pytest.approx(5.0)
    assert coding_times[0].pr_number == 1
    backend.pr_fetcher.assert_called_once_with("octo", "app")


def test_get_cycle_time_data_picks_earliest_production_merge_among_linked_prs():
    """Verify the earliest production merge wins across linked PRs."""
    fetcher = TableFetcher(
        {
            1: MinimalPRInfo(1, "production", "a", "2024-01-03T00:00:00Z", "x"),
            2: MinimalPRInfo(2, "production", "b", "2024-01-02T00:00:00Z", "y"),
        },
        {},
    )
    backend = _backend(fetcher)
    backend.list_linked_prs.return_value = [
        LinkedPR(1, "2024-01-01T01:00:00Z"),
        LinkedPR(2, "2024-01-01T02:00:00Z"),
    ]

    records = MetricsDerivationPipeline(backend).get_cycle_time_data(["octo/app"])

    assert records[0].production_merged_at == "2024-01-02T00:00:00Z"
    assert [item.pr_number for item in records[0].pr_chain] == [2]


def test_get_cycle_time_data_without_linked_prs_has_null_cycle_time():
    """Verify issues without linked PRs are reported with null cycle time."""
    backend = _backend()
    backend.list_linked_prs.return_value = []

    records = MetricsDerivationPipeline(backend).get_cycle_time_data(["octo/app"])

    assert records[0].cycle_time_hours is None
    assert records[0].production_merged_at is None
    assert records[0].pr_chain == ()


def test_linked_pr_lookup_failure_degrades_to_no_linked_prs():
    """Verify a failing linked-PR lookup keeps the issue with null metrics."""
    backend = _backend()
    backend.list_linked_prs.side_effect = RetryExhaustedError("timeline", 4, TransientApiError("502"))

    cycle_times, coding_times = MetricsDerivationPipeline(backend).derive_issue_metrics(["octo/app"])

    assert cycle_times[0].cycle_time_hours is None
    assert coding_times[0].coding_time_hours is None


def test_tracking_failure_degrades_to_null_result():
    """Verify a fetcher error during tracking does not fail the issue."""
    fetcher = Mock(spec=PRFetcher)
    fetcher.get_pr.side_effect = ForbiddenError("no access")
    backend = _backend(fetcher)

    records = MetricsDerivationPipeline(backend).get_cycle_time_data(["octo/app"])

    assert records[0].cycle_time_hours is None
    assert records[0].pr_chain == ()


def test_repository_failures_and_malformed_names_are_skipped():
    """Verify one failing or malformed repository does not stop the run."""
    backend = _backend()

    def list_issues(owner, repo, **kwargs):
        if repo == "broken":
            raise RetryExhaustedError("issues", 4, TransientApiError("502"))
        return [_issue(repository=f"{owner}/{repo}")]

    backend.list_issues.side_effect = list_issues

    records = MetricsDerivationPipeline(backend).get_cycle_time_data(["octo/broken", "bad-name", "octo/app"])

    assert [record.repository for record in records] == ["octo/app"]


def test_excluded_labels_skip_issues():
    """Verify issues carrying an excluded label are not measured."""
    backend = _backend()
    backend.list_issues.return_value = [_issue(1, labels=["wontfix"]), _issue(2, labels=["bug"])]

    records = MetricsDerivationPipeline(backend, exclude_labels=["wontfix"]).get_coding_time_data(["octo/app"])

    assert [record.issue_number for record in records] == [2]


def test_list_pull_requests_keeps_merged_and_not_excluded():
    """Verify PR listing drops unmerged and excluded PRs and skips failing repositories."""
    backend = Mock()

    def list_pull_requests(owner, repo, **kwargs):
        if repo == "broken":
            raise ForbiddenError("403")
        return [
            _pull_request(1),
            _pull_request(2, merged_at=None),
            _pull_request(3, labels=["dependencies"]),
        ]

    backend.list_pull_requests.side_effect = list_pull_requests
    pipeline = MetricsDerivationPipeline(backend, exclude_labels=["dependencies"])

    prs = pipeline.list_pull_requests(["octo/broken", "octo/app"])

    assert [pr.number for pr in prs] == [1]
    assert len(pipeline.list_pull_requests(["octo/app"], merged_only=False)) == 2


def test_get_review_data_falls_back_to_defaults_for_failed_batches():
    """Verify review derivation uses defaults when a batch request fails."""
    detail = PullRequestDetail(
        number=1,
        title="PR 1",
        created_at="2024-01-01T09:00:00Z",
        merged_at="2024-01-01T12:00:00Z",
        reviews=(ReviewInfo("APPROVED", "2024-01-01T11:00:00Z"),),
    )
    backend = Mock()
    backend.fetch_pr_details.side_effect = [
        [detail],
        RetryExhaustedError("batch", 4, TransientApiError("502")),
    ]
    pipeline = MetricsDerivationPipeline(backend, batch_size=1)

    records = pipeline.get_review_data([_pull_request(1), _pull_request(2)])

    assert records[0].time_to_first_review_hours == pytest.approx(2.0)
    assert records[0].total_time_hours == pytest.approx(3.0)
    assert records[1].pr_number == 2
    assert records[1].time_to_first_review_hours is None


def test_get_rework_and_size_data_use_batched_fetches():
    """Verify rework and size records are built from batch results."""
    backend = Mock()
    backend.fetch_pr_details.return_value = [
        PullRequestDetail(1, "PR 1", "2024-01-01T09:00:00Z", "2024-01-02T00:00:00Z"),
        None,
    ]
    backend.fetch_pr_sizes.return_value = [
        PullRequestSize(1, "PR 1", "2024-01-01T09:00:00Z", None, 100, 50, 3),
        PullRequestSize(2, "PR 2", "2024-01-01T09:00:00Z", None, 1, 1, 1),
    ]
    pipeline = MetricsDerivationPipeline(backend)
    prs = [_pull_request(1), _pull_request(2)]

    rework = pipeline.get_rework_data(prs)
    sizes = pipeline.get_size_data(prs)

    backend.fetch_pr_details.assert_called_once_with("octo", "app", [1, 2])
    assert [record.total_commits for record in rework] == [0, 0]
    assert [record.lines_of_code for record in sizes] == [150, 2]


def test_get_review_and_rework_data_fetches_details_once():
    """Verify review and rework records come from a single detail fetch per batch."""
    detail = PullRequestDetail(
        number=1,
        title="PR 1",
        created_at="2024-01-01T09:00:00Z",
        merged_at="2024-01-01T12:00:00Z",
        commits=(
            CommitInfo("a", "2024-01-01T08:00:00Z"),
            CommitInfo("b", "2024-01-01T10:00:00Z"),
        ),
        reviews=(ReviewInfo("APPROVED", "2024-01-01T11:00:00Z"),),
    )
    backend = Mock()
    backend.fetch_pr_details.return_value = [detail, None]
    pipeline = MetricsDerivationPipeline(backend)

    reviews, rework = pipeline.get_review_and_rework_data([_pull_request(1), _pull_request(2)])

    backend.fetch_pr_details.assert_called_once_with("octo", "app", [1, 2])
    assert [record.pr_number for record in reviews] == [1, 2]
    assert reviews[0].time_to_first_review_hours == pytest.approx(2.0)
    assert reviews[1].time_to_first_review_hours is None
    assert rework[0].additional_commits == 1
    assert rework[0].total_commits == 2
    assert rework[1].total_commits == 0


def test_get_review_and_rework_data_defaults_both_for_failed_batch():
    """Verify a failed batch yields default review and rework records for its PRs."""
    backend = Mock()
    backend.fetch_pr_details.side_effect = RetryExhaustedError("batch", 4, TransientApiError("502"))
    pipeline = MetricsDerivationPipeline(backend)

    reviews, rework = pipeline.get_review_and_rework_data([_pull_request(1)])

    assert backend.fetch_pr_details.call_count == 1
    assert reviews[0].review_duration_hours is None
    assert rework[0].additional_commits == 0


def _deployment(created_at: str, status, environment: str = "production") -> Deployment:
    return Deployment(
        id=created_at,
        sha="abc",
        environment=environment,
        created_at=created_at,
        status=status,
        repository="octo/app",
    )


def test_get_dora_metrics_from_deployments():
    """Verify DORA measures are derived from deployments filtered by environment."""
    backend = Mock()
    backend.list_deployments.return_value = [
        _deployment("2024-01-02T02:00:00Z", "success"),
        _deployment("2024-01-03T00:00:00Z", "failure"),
        _deployment("2024-01-03T03:00:00Z", "success"),
        _deployment("2024-01-03T04:00:00Z", "failure", environment="staging"),
    ]
    pipeline = MetricsDerivationPipeline(backend, deploy_environment="prod")

    (record,) = pipeline.get_dora_metrics(["octo/app"], [_pull_request(1), _pull_request(2, merged_at=None)])

    backend.list_workflow_runs.assert_not_called()
    assert record.repository == "octo/app"
    assert record.deployment_count == 2
    assert record.deployment_frequency == "monthly"
    assert record.lead_time_hours == pytest.approx(17.0)
    assert record.merge_to_deploy_count == 1
    assert record.create_to_merge_count == 0
    assert (record.total_deployments, record.failed_deployments) == (3, 1)
    assert record.change_failure_rate == pytest.approx(33.3)
    assert record.change_failure_rate_level == "low"
    assert record.mttr_hours == pytest.approx(3.0)
    assert record.mttr_level == "high"


def test_get_dora_metrics_falls_back_to_workflow_runs_when_deployments_fail():
    """Verify a failed deployment lookup falls back to deployment workflow runs."""
    backend = Mock()
    backend.list_deployments.side_effect = ForbiddenError("403")
    backend.list_workflow_runs.return_value = [
        WorkflowRun(1, "deploy", "completed", "failure", "2024-01-05T00:00:00Z", "octo/app"),
        WorkflowRun(2, "Deploy to prod", "completed", "success", "2024-01-05T06:00:00Z", "octo/app"),
        WorkflowRun(3, "CI", "completed", "success", "2024-01-05T07:00:00Z", "octo/app"),
    ]
    pipeline = MetricsDerivationPipeline(backend)

    metrics = pipeline.get_dora_metrics(["octo/app", "not-a-repo"], [_pull_request(1)], period_days=7)

    assert len(metrics) == 1
    record = metrics[0]
    assert record.period_days == 7
    assert record.deployment_count == 1
    assert record.deployment_frequency == "weekly"
    assert record.lead_time_hours == pytest.approx(15.0)
    assert record.create_to_merge_count == 1
    assert record.change_failure_rate == pytest.approx(50.0)
    assert record.mttr_hours == pytest.approx(6.0)
