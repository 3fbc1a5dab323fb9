"""DORA deployment metrics.

Derives the four DORA measures for one repository from its deployments,
workflow runs and merged pull requests:
- deployment frequency (successful deployments per day)
- lead time for changes (PR creation to deployment, or to merge)
- change failure rate (failed share of finished deployments)
- mean time to recovery (failure to next success)

Deployments are preferred throughout. A repository that records none falls
back to workflow runs whose name matches a deployment workflow pattern.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from .config import DEFAULT_DEPLOY_WORKFLOW_PATTERNS
from .models import (
    DEPLOYMENT_FAILURE_STATES,
    DEPLOYMENT_SUCCESS_STATE,
    RUN_CONCLUSION_FAILURE,
    RUN_CONCLUSION_SUCCESS,
    Deployment,
    DoraMetrics,
    LeadTime,
    PullRequest,
    WorkflowRun,
)
from .timeutil import SECONDS_PER_HOUR, parse_timestamp, round_hours

LEVEL_ELITE = "elite"
LEVEL_HIGH = "high"
LEVEL_MEDIUM = "medium"
LEVEL_LOW = "low"

FREQUENCY_DAILY = "daily"
FREQUENCY_WEEKLY = "weekly"
FREQUENCY_MONTHLY = "monthly"
FREQUENCY_YEARLY = "yearly"

# Deployments per day.
DEPLOYMENT_FREQUENCY_ELITE = 1.0
DEPLOYMENT_FREQUENCY_HIGH = 1 / 7
DEPLOYMENT_FREQUENCY_MEDIUM = 1 / 30

# Hours; shared by lead time and MTTR.
DURATION_ELITE_HOURS = 1.0
DURATION_HIGH_HOURS = 24.0
DURATION_MEDIUM_HOURS = 24.0 * 7

# Percent. Elite and high share one band.
CHANGE_FAILURE_RATE_HIGH = 15.0
CHANGE_FAILURE_RATE_MEDIUM = 30.0

# A deployment later than this after the merge is not attributed to the PR.
LEAD_TIME_DEPLOY_MATCH_THRESHOLD_HOURS = 24.0

DEFAULT_DORA_PERIOD_DAYS = 30


def _hours(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / SECONDS_PER_HOUR


def matches_any(name: Optional[str], patterns: Sequence[str]) -> bool:
    lowered = (name or "").lower()
    return any(pattern.lower() in lowered for pattern in patterns)


def filter_by_environment(deployments: Sequence[Deployment], environment: Optional[str]) -> List[Deployment]:
    """Keep deployments whose environment contains ``environment`` (case-insensitive)."""
    if not environment:
        return list(deployments)
    return [deployment for deployment in deployments if matches_any(deployment.environment, (environment,))]


def deployment_workflow_runs(runs: Sequence[WorkflowRun], patterns: Sequence[str]) -> List[WorkflowRun]:
    return [run for run in runs if matches_any(run.name, patterns)]


def get_frequency_category(deployments_per_day: float) -> str:
    if deployments_per_day >= 1:
        return FREQUENCY_DAILY
    if deployments_per_day >= 1 / 7:
        return FREQUENCY_WEEKLY
    if deployments_per_day >= 1 / 30:
        return FREQUENCY_MONTHLY
    return FREQUENCY_YEARLY


def get_deployment_frequency_level(deployments_per_day: float) -> str:
    if deployments_per_day >= DEPLOYMENT_FREQUENCY_ELITE:
        return LEVEL_ELITE
    if deployments_per_day >= DEPLOYMENT_FREQUENCY_HIGH:
        return LEVEL_HIGH
    if deployments_per_day >= DEPLOYMENT_FREQUENCY_MEDIUM:
        return LEVEL_MEDIUM
    return LEVEL_LOW


def _duration_level(hours: float) -> str:
    if hours < DURATION_ELITE_HOURS:
        return LEVEL_ELITE
    if hours < DURATION_HIGH_HOURS:
        return LEVEL_HIGH
    if hours < DURATION_MEDIUM_HOURS:
        return LEVEL_MEDIUM
    return LEVEL_LOW


def get_lead_time_level(hours: float) -> str:
    return _duration_level(hours)


def get_change_failure_rate_level(rate: float) -> str:
    if rate <= CHANGE_FAILURE_RATE_HIGH:
        return LEVEL_HIGH
    if rate <= CHANGE_FAILURE_RATE_MEDIUM:
        return LEVEL_MEDIUM
    return LEVEL_LOW


def get_mttr_level(hours: float) -> str:
    return _duration_level(hours)


def calculate_deployment_frequency(
    deployments: Sequence[Deployment],
    workflow_runs: Sequence[WorkflowRun],
    period_days: int,
    patterns: Sequence[str] = DEFAULT_DEPLOY_WORKFLOW_PATTERNS,
) -> Tuple[int, float, str]:
    """Count successful deployments over the period.

    Returns:
        ``(count, deployments_per_day, category)`` where category is one of
        daily, weekly, monthly or yearly.
    """
    count = sum(1 for deployment in deployments if deployment.status == DEPLOYMENT_SUCCESS_STATE)
    if count == 0:
        count = sum(
            1
            for run in deployment_workflow_runs(workflow_runs, patterns)
            if run.conclusion == RUN_CONCLUSION_SUCCESS
        )

    per_day = count / period_days if period_days > 0 else 0.0
    return count, per_day, get_frequency_category(per_day)


def calculate_lead_time(pull_requests: Sequence[PullRequest], deployments: Sequence[Deployment]) -> LeadTime:
    """Mean hours from PR creation to the deployment that shipped it.

    A merged PR is matched to the first successful deployment at or after
    its merge. When that deployment is within
    ``LEAD_TIME_DEPLOY_MATCH_THRESHOLD_HOURS`` of the merge, the PR is
    measured creation-to-deploy; otherwise creation-to-merge.
    """
    deploy_times = sorted(
        moment
        for moment in (
            parse_timestamp(deployment.created_at)
            for deployment in deployments
            if deployment.status == DEPLOYMENT_SUCCESS_STATE
        )
        if moment is not None
    )

    samples: List[float] = []
    merge_to_deploy = 0
    create_to_merge = 0
    for pr in pull_requests:
        created = parse_timestamp(pr.created_at)
        merged = parse_timestamp(pr.merged_at)
        if created is None or merged is None:
            continue

        deployed = next((moment for moment in deploy_times if moment >= merged), None)
        if deployed is not None and _hours(merged, deployed) <= LEAD_TIME_DEPLOY_MATCH_THRESHOLD_HOURS:
            samples.append(_hours(created, deployed))
            merge_to_deploy += 1
        else:
            samples.append(_hours(created, merged))
            create_to_merge += 1

    if not samples:
        return LeadTime(hours=None, merge_to_deploy_count=0, create_to_merge_count=0)

    return LeadTime(
        hours=round_hours(sum(samples) / len(samples)),
        merge_to_deploy_count=merge_to_deploy,
        create_to_merge_count=create_to_merge,
    )


def calculate_change_failure_rate(
    deployments: Sequence[Deployment],
    workflow_runs: Sequence[WorkflowRun],
    patterns: Sequence[str] = DEFAULT_DEPLOY_WORKFLOW_PATTERNS,
) -> Tuple[int, int, float]:
    """Return ``(total, failed, rate_percent)``; the rate is 0 with nothing to count."""
    with_status = [deployment for deployment in deployments if deployment.status is not None]
    if with_status:
        total = len(with_status)
        failed = sum(1 for deployment in with_status if deployment.status in DEPLOYMENT_FAILURE_STATES)
    else:
        finished = [run for run in deployment_workflow_runs(workflow_runs, patterns) if run.conclusion is not None]
        total = len(finished)
        failed = sum(1 for run in finished if run.conclusion == RUN_CONCLUSION_FAILURE)

    if total == 0:
        return 0, 0, 0.0
    return total, failed, round_hours(failed / total * 100)


def _recovery_events(
    deployments: Sequence[Deployment],
    workflow_runs: Sequence[WorkflowRun],
    patterns: Sequence[str],
) -> List[Tuple[datetime, bool, bool]]:
    events: List[Tuple[datetime, bool, bool]] = []
    with_status = [deployment for deployment in deployments if deployment.status is not None]
    if with_status:
        for deployment in with_status:
            moment = parse_timestamp(deployment.created_at)
            if moment is not None:
                events.append(
                    (
                        moment,
                        deployment.status in DEPLOYMENT_FAILURE_STATES,
                        deployment.status == DEPLOYMENT_SUCCESS_STATE,
                    )
                )
    else:
        for run in deployment_workflow_runs(workflow_runs, patterns):
            moment = parse_timestamp(run.created_at)
            if moment is not None:
                events.append(
                    (moment, run.conclusion == RUN_CONCLUSION_FAILURE, run.conclusion == RUN_CONCLUSION_SUCCESS)
                )

    events.sort(key=lambda event: event[0])
    return events


def calculate_mttr(
    deployments: Sequence[Deployment],
    workflow_runs: Sequence[WorkflowRun],
    patterns: Sequence[str] = DEFAULT_DEPLOY_WORKFLOW_PATTERNS,
) -> Optional[float]:
    """Mean hours from a failed deployment to the next successful one.

    Consecutive failures count from the latest one. ``None`` when no
    failure was followed by a recovery.
    """
    recoveries: List[float] = []
    last_failure: Optional[datetime] = None

    for moment, is_failure, is_success in _recovery_events(deployments, workflow_runs, patterns):
        if is_failure:
            last_failure = moment
        elif is_success and last_failure is not None:
            recoveries.append(_hours(last_failure, moment))
            last_failure = None

    if not recoveries:
        return None
    return round_hours(sum(recoveries) / len(recoveries))


def calculate_dora_metrics(
    repository: str,
    pull_requests: Sequence[PullRequest],
    deployments: Sequence[Deployment],
    workflow_runs: Sequence[WorkflowRun],
    period_days: int = DEFAULT_DORA_PERIOD_DAYS,
    patterns: Sequence[str] = DEFAULT_DEPLOY_WORKFLOW_PATTERNS,
) -> DoraMetrics:
    """Compute all four measures and their performance levels for one repository.

    Inputs belonging to other repositories are ignored.
    """
    repo_prs = [pr for pr in pull_requests if pr.repository == repository]
    repo_deployments = [deployment for deployment in deployments if deployment.repository == repository]
    repo_runs = [run for run in workflow_runs if run.repository == repository]

    count, per_day, category = calculate_deployment_frequency(repo_deployments, repo_runs, period_days, patterns)
    lead_time = calculate_lead_time(repo_prs, repo_deployments)
    total, failed, rate = calculate_change_failure_rate(repo_deployments, repo_runs, patterns)
    mttr = calculate_mttr(repo_deployments, repo_runs, patterns)

    return DoraMetrics(
        repository=repository,
        period_days=period_days,
        deployment_count=count,
        deployments_per_day=per_day,
        deployment_frequency=category,
        deployment_frequency_level=get_deployment_frequency_level(per_day),
        lead_time_hours=lead_time.hours,
        lead_time_level=None if lead_time.hours is None else get_lead_time_level(lead_time.hours),
        merge_to_deploy_count=lead_time.merge_to_deploy_count,
        create_to_merge_count=lead_time.create_to_merge_count,
        total_deployments=total,
        failed_deployments=failed,
        change_failure_rate=rate,
        change_failure_rate_level=get_change_failure_rate_level(rate) if total else None,
        mttr_hours=mttr,
        mttr_level=None if mttr is None else get_mttr_level(mttr),
    )
