"""Domain models for pull-request chain tracking and delivery metrics.

These dataclasses model only the subset of GitHub payload fields needed by the
metrics pipeline. Timestamps are kept as the ISO-8601 strings returned by the
API; they are parsed only where an interval is computed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

UNKNOWN_BRANCH = "unknown"

READY_FOR_REVIEW_EVENT = "ReadyForReviewEvent"
FORCE_PUSH_EVENT = "HeadRefForcePushedEvent"

REVIEW_STATE_APPROVED = "APPROVED"
REVIEW_STATE_PENDING = "PENDING"

DEPLOYMENT_SUCCESS_STATE = "success"
DEPLOYMENT_FAILURE_STATES = ("failure", "error")

RUN_CONCLUSION_SUCCESS = "success"
RUN_CONCLUSION_FAILURE = "failure"


@dataclass(frozen=True, slots=True)
class MinimalPRInfo:
    """The fields of a pull request needed to take one step of a merge chain."""

    number: int
    base_branch: Optional[str]
    head_branch: Optional[str]
    merged_at: Optional[str]
    merge_commit_sha: Optional[str]


@dataclass(frozen=True, slots=True)
class PRChainItem:
    """One pull request visited while following a merge chain."""

    pr_number: int
    base_branch: str
    head_branch: str
    merged_at: Optional[str]

    @classmethod
    def from_pr_info(cls, pr: MinimalPRInfo) -> "PRChainItem":
        return cls(
            pr_number=pr.number,
            base_branch=pr.base_branch or UNKNOWN_BRANCH,
            head_branch=pr.head_branch or UNKNOWN_BRANCH,
            merged_at=pr.merged_at,
        )


@dataclass(frozen=True, slots=True)
class ChainResult:
    """Outcome of one production-merge walk."""

    production_merged_at: Optional[str]
    pr_chain: Tuple[PRChainItem, ...]


@dataclass(frozen=True, slots=True)
class Issue:
    """An issue whose lifetime is measured from ``created_at``."""

    number: int
    title: str
    created_at: str
    state: str
    repository: str
    labels: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class LinkedPR:
    """A pull request cross-referenced from an issue."""

    number: int
    created_at: Optional[str]


@dataclass(frozen=True, slots=True)
class PullRequest:
    """A pull request summary as returned by the listing endpoints."""

    number: int
    title: str
    repository: str
    created_at: str
    merged_at: Optional[str]
    state: str
    author: str
    labels: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class CommitInfo:
    sha: str
    committed_date: Optional[str]


@dataclass(frozen=True, slots=True)
class ReviewInfo:
    state: str
    submitted_at: Optional[str]
    author: Optional[str] = None


@dataclass(frozen=True, slots=True)
class TimelineEvent:
    """A PR timeline event; ``kind`` is one of the ``*_EVENT`` constants."""

    kind: str
    created_at: Optional[str]


@dataclass(frozen=True, slots=True)
class PullRequestDetail:
    """Commit, review and timeline activity of a single pull request."""

    number: int
    title: str
    created_at: str
    merged_at: Optional[str]
    commits: Tuple[CommitInfo, ...] = ()
    reviews: Tuple[ReviewInfo, ...] = ()
    timeline: Tuple[TimelineEvent, ...] = ()


@dataclass(frozen=True, slots=True)
class PullRequestSize:
    number: int
    title: str
    created_at: str
    merged_at: Optional[str]
    additions: int
    deletions: int
    changed_files: int


@dataclass(frozen=True, slots=True)
class IssueCycleTime:
    """Hours from issue creation to the detected production merge."""

    issue_number: int
    issue_title: str
    repository: str
    issue_created_at: str
    production_merged_at: Optional[str]
    cycle_time_hours: Optional[float]
    pr_chain: Tuple[PRChainItem, ...]


@dataclass(frozen=True, slots=True)
class IssueCodingTime:
    """Hours from issue creation to the earliest linked PR's creation."""

    issue_number: int
    issue_title: str
    repository: str
    issue_created_at: str
    pr_created_at: Optional[str]
    pr_number: Optional[int]
    coding_time_hours: Optional[float]


@dataclass(frozen=True, slots=True)
class PRReworkData:
    pr_number: int
    title: str
    repository: str
    created_at: str
    merged_at: Optional[str]
    additional_commits: int
    force_push_count: int
    total_commits: int


@dataclass(frozen=True, slots=True)
class PRReviewData:
    pr_number: int
    title: str
    repository: str
    created_at: str
    ready_for_review_at: str
    first_review_at: Optional[str]
    approved_at: Optional[str]
    merged_at: Optional[str]
    time_to_first_review_hours: Optional[float]
    review_duration_hours: Optional[float]
    time_to_merge_hours: Optional[float]
    total_time_hours: Optional[float]


@dataclass(frozen=True, slots=True)
class PRSizeData:
    pr_number: int
    title: str
    repository: str
    created_at: str
    merged_at: Optional[str]
    additions: int
    deletions: int
    lines_of_code: int
    files_changed: int


@dataclass(frozen=True, slots=True)
class Deployment:
    """A deployment and the state of its most recent status.

    ``status`` is lowercase (``success``, ``failure``, ``error``,
    ``inactive``, ``in_progress``, ``queued``, ``pending``) or ``None`` when
    the deployment has no status yet.
    """

    id: str
    sha: str
    environment: str
    created_at: str
    status: Optional[str]
    repository: str


@dataclass(frozen=True, slots=True)
class WorkflowRun:
    id: int
    name: str
    status: str
    conclusion: Optional[str]
    created_at: str
    repository: str


@dataclass(frozen=True, slots=True)
class LeadTime:
    """Mean lead time for changes and how each merged PR was measured."""

    hours: Optional[float]
    merge_to_deploy_count: int
    create_to_merge_count: int


@dataclass(frozen=True, slots=True)
class DoraMetrics:
    """The four DORA measures for one repository over one period."""

    repository: str
    period_days: int
    deployment_count: int
    deployments_per_day: float
    deployment_frequency: str
    deployment_frequency_level: str
    lead_time_hours: Optional[float]
    lead_time_level: Optional[str]
    merge_to_deploy_count: int
    create_to_merge_count: int
    total_deployments: int
    failed_deployments: int
    change_failure_rate: float
    change_failure_rate_level: Optional[str]
    mttr_hours: Optional[float]
    mttr_level: Optional[str]
