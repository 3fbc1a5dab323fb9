"""Per-entity metric derivations.

This module turns fetched issue and pull request data into the record types
of :mod:`deliverymetrics.models`:
- cycle time (issue creation to production merge)
- coding time (issue creation to earliest linked PR creation)
- rework (commits after PR creation, force pushes)
- review efficiency (ready, first review, approval, merge)
- PR size (lines and files changed)

All hour values are rounded to one decimal place.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from .models import (
    FORCE_PUSH_EVENT,
    READY_FOR_REVIEW_EVENT,
    REVIEW_STATE_APPROVED,
    REVIEW_STATE_PENDING,
    ChainResult,
    CommitInfo,
    Issue,
    IssueCodingTime,
    IssueCycleTime,
    LinkedPR,
    PRReviewData,
    PRReworkData,
    PRSizeData,
    PullRequest,
    PullRequestDetail,
    PullRequestSize,
    ReviewInfo,
    TimelineEvent,
)
from .timeutil import hours_between, is_earlier, parse_timestamp


def calculate_cycle_time_hours(issue_created_at: str, production_merged_at: Optional[str]) -> Optional[float]:
    """Hours from issue creation to production merge, ``None`` without a merge."""
    if production_merged_at is None:
        return None
    return hours_between(issue_created_at, production_merged_at)


def calculate_coding_time_hours(issue_created_at: str, pr_created_at: str) -> Optional[float]:
    return hours_between(issue_created_at, pr_created_at)


def build_cycle_time(issue: Issue, result: ChainResult) -> IssueCycleTime:
    cycle_time_hours = calculate_cycle_time_hours(issue.created_at, result.production_merged_at)

    # Keep both fields null together even for unparsable timestamps.
    production_merged_at = result.production_merged_at if cycle_time_hours is not None else None

    return IssueCycleTime(
        issue_number=issue.number,
        issue_title=issue.title,
        repository=issue.repository,
        issue_created_at=issue.created_at,
        production_merged_at=production_merged_at,
        cycle_time_hours=cycle_time_hours,
        pr_chain=result.pr_chain,
    )


def find_earliest_linked_pr(linked_prs: Sequence[LinkedPR]) -> Optional[LinkedPR]:
    """Return the linked PR with the minimum ``created_at``; ties keep the first."""
    earliest: Optional[LinkedPR] = None
    for pr in linked_prs:
        if parse_timestamp(pr.created_at) is None:
            continue
        if earliest is None or is_earlier(pr.created_at, earliest.created_at):
            earliest = pr
    return earliest


def build_coding_time(issue: Issue, linked_prs: Sequence[LinkedPR]) -> IssueCodingTime:
    earliest = find_earliest_linked_pr(linked_prs)
    if earliest is None or earliest.created_at is None:
        return IssueCodingTime(
            issue_number=issue.number,
            issue_title=issue.title,
            repository=issue.repository,
            issue_created_at=issue.created_at,
            pr_created_at=None,
            pr_number=None,
            coding_time_hours=None,
        )

    return IssueCodingTime(
        issue_number=issue.number,
        issue_title=issue.title,
        repository=issue.repository,
        issue_created_at=issue.created_at,
        pr_created_at=earliest.created_at,
        pr_number=earliest.number,
        coding_time_hours=calculate_coding_time_hours(issue.created_at, earliest.created_at),
    )


def count_additional_commits(commits: Sequence[CommitInfo], pr_created_at: str) -> int:
    """Count commits strictly after PR creation; commits at creation time do not count."""
    created = parse_timestamp(pr_created_at)
    if created is None:
        return 0

    count = 0
    for commit in commits:
        committed = parse_timestamp(commit.committed_date)
        if committed is not None and committed > created:
            count += 1
    return count


def count_force_pushes(timeline: Sequence[TimelineEvent]) -> int:
    return sum(1 for event in timeline if event.kind == FORCE_PUSH_EVENT)


def calculate_rework(detail: PullRequestDetail, pr: PullRequest) -> PRReworkData:
    return PRReworkData(
        pr_number=detail.number,
        title=detail.title,
        repository=pr.repository,
        created_at=detail.created_at,
        merged_at=detail.merged_at,
        additional_commits=count_additional_commits(detail.commits, pr.created_at),
        force_push_count=count_force_pushes(detail.timeline),
        total_commits=len(detail.commits),
    )


def default_rework(pr: PullRequest) -> PRReworkData:
    return PRReworkData(
        pr_number=pr.number,
        title=pr.title,
        repository=pr.repository,
        created_at=pr.created_at,
        merged_at=pr.merged_at,
        additional_commits=0,
        force_push_count=0,
        total_commits=0,
    )


def extract_ready_for_review_time(created_at: str, timeline: Sequence[TimelineEvent]) -> str:
    """Timestamp of the first ready-for-review event, else the PR creation time."""
    for event in timeline:
        if event.kind == READY_FOR_REVIEW_EVENT and event.created_at:
            return event.created_at
    return created_at


def submitted_reviews(reviews: Sequence[ReviewInfo]) -> List[ReviewInfo]:
    """Non-pending reviews with a submission time, oldest first."""
    valid = [
        review
        for review in reviews
        if review.state != REVIEW_STATE_PENDING and parse_timestamp(review.submitted_at) is not None
    ]
    return sorted(valid, key=lambda review: parse_timestamp(review.submitted_at))


def calculate_review(detail: PullRequestDetail, repository: str) -> PRReviewData:
    """Derive review-efficiency timings for a single PR.

    Business logic:
    - The review clock starts at the first ready-for-review event, or at PR
      creation when the PR was never a draft.
    - ``first_review_at`` is the earliest submitted review of any state.
    - ``approved_at`` is the earliest submitted ``APPROVED`` review, which is
      not necessarily the first review.
    - Each duration is ``None`` unless both of its endpoints are known.
    """
    ready_for_review_at = extract_ready_for_review_time(detail.created_at, detail.timeline)
    reviews = submitted_reviews(detail.reviews)

    first_review_at = reviews[0].submitted_at if reviews else None
    approved_at = next(
        (review.submitted_at for review in reviews if review.state == REVIEW_STATE_APPROVED),
        None,
    )

    return PRReviewData(
        pr_number=detail.number,
        title=detail.title,
        repository=repository,
        created_at=detail.created_at,
        ready_for_review_at=ready_for_review_at,
        first_review_at=first_review_at,
        approved_at=approved_at,
        merged_at=detail.merged_at,
        time_to_first_review_hours=hours_between(ready_for_review_at, first_review_at),
        review_duration_hours=hours_between(first_review_at, approved_at),
        time_to_merge_hours=hours_between(approved_at, detail.merged_at),
        total_time_hours=hours_between(ready_for_review_at, detail.merged_at),
    )


def default_review(pr: PullRequest) -> PRReviewData:
    return PRReviewData(
        pr_number=pr.number,
        title=pr.title,
        repository=pr.repository,
        created_at=pr.created_at,
        ready_for_review_at=pr.created_at,
        first_review_at=None,
        approved_at=None,
        merged_at=pr.merged_at,
        time_to_first_review_hours=None,
        review_duration_hours=None,
        time_to_merge_hours=None,
        total_time_hours=None,
    )


def calculate_size(size: PullRequestSize, repository: str) -> PRSizeData:
    return PRSizeData(
        pr_number=size.number,
        title=size.title,
        repository=repository,
        created_at=size.created_at,
        merged_at=size.merged_at,
        additions=size.additions,
        deletions=size.deletions,
        lines_of_code=size.additions + size.deletions,
        files_changed=size.changed_files,
    )


def default_size(pr: PullRequest) -> PRSizeData:
    return PRSizeData(
        pr_number=pr.number,
        title=pr.title,
        repository=pr.repository,
        created_at=pr.created_at,
        merged_at=pr.merged_at,
        additions=0,
        deletions=0,
        lines_of_code=0,
        files_changed=0,
    )
