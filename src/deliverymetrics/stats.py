"""Statistics and formatting helpers for delivery metrics reporting.

This module provides utilities for:
- Computing linear-interpolation percentiles from pre-sorted samples.
- Aggregating summary statistics (P50, P75, P90, count, avg, median, min, max).
- Summarizing rework across PRs.
- Formatting DORA deployment metrics per repository.
- Building a human-readable report of all derived metrics.
"""

from __future__ import annotations

import math
from typing import Dict, List, Optional, Sequence, cast

from .models import DoraMetrics, IssueCodingTime, IssueCycleTime, PRReviewData, PRReworkData, PRSizeData
from .timeutil import round_hours


def calculate_percentile(sorted_values: List[float], p: float) -> Optional[float]:
    """Calculate a percentile using linear interpolation.

    The input sequence is expected to already be sorted in ascending order.
    - Empty input returns ``None``.
    - ``p <= 0`` returns the first value.
    - ``p >= 100`` returns the last value.
    - Otherwise, percentile is linearly interpolated between adjacent ranks.

    Raises:
        ValueError: If ``p`` is outside ``[0, 100]``.
    """
    if not 0 <= p <= 100:
        raise ValueError("Percentile 'p' must be in the range [0, 100].")

    if not sorted_values:
        return None

    if p <= 0:
        return sorted_values[0]

    if p >= 100:
        return sorted_values[-1]

    position = (len(sorted_values) - 1) * (p / 100.0)
    lower_index = math.floor(position)
    upper_index = math.ceil(position)

    if lower_index == upper_index:
        return sorted_values[int(position)]

    lower_value = sorted_values[lower_index]
    upper_value = sorted_values[upper_index]
    return lower_value + (upper_value - lower_value) * (position - lower_index)


def _clean(samples: Sequence[Optional[float]]) -> List[float]:
    return sorted(
        sample
        for sample in samples
        if sample is not None and not math.isnan(sample) and sample >= 0
    )


def compute_statistics(samples: Sequence[Optional[float]]) -> Dict[str, Optional[float]]:
    """Compute P50, P75, P90, and sample count for hour samples.

    ``None``, NaN and negative values are ignored.
    """
    clean_samples = _clean(samples)

    return {
        "p50": calculate_percentile(clean_samples, 50),
        "p75": calculate_percentile(clean_samples, 75),
        "p90": calculate_percentile(clean_samples, 90),
        "count": cast(Optional[float], len(clean_samples)),
    }


def calculate_summary(values: Sequence[float]) -> Dict[str, Optional[float]]:
    """Average, median, min and max rounded to one decimal; ``None`` when empty."""
    if not values:
        return {"avg": None, "median": None, "min": None, "max": None}

    ordered = sorted(values)
    middle = len(ordered) // 2
    if len(ordered) % 2:
        median = ordered[middle]
    else:
        median = (ordered[middle - 1] + ordered[middle]) / 2

    return {
        "avg": round_hours(sum(ordered) / len(ordered)),
        "median": round_hours(median),
        "min": round_hours(ordered[0]),
        "max": round_hours(ordered[-1]),
    }


def summarize_rework(records: Sequence[PRReworkData]) -> Dict[str, Optional[float]]:
    """Aggregate additional-commit and force-push counts across PRs."""
    if not records:
        return {
            "pr_count": 0,
            "additional_commits_total": 0,
            "additional_commits_avg": None,
            "additional_commits_median": None,
            "additional_commits_max": None,
            "force_pushes_total": 0,
            "prs_with_force_push": 0,
            "force_push_rate": None,
        }

    commit_counts = [float(record.additional_commits) for record in records]
    commit_summary = calculate_summary(commit_counts)
    force_pushes_total = sum(record.force_push_count for record in records)
    prs_with_force_push = sum(1 for record in records if record.force_push_count > 0)

    return {
        "pr_count": len(records),
        "additional_commits_total": int(sum(commit_counts)),
        "additional_commits_avg": commit_summary["avg"],
        "additional_commits_median": commit_summary["median"],
        "additional_commits_max": commit_summary["max"],
        "force_pushes_total": force_pushes_total,
        "prs_with_force_push": prs_with_force_push,
        "force_push_rate": round_hours(prs_with_force_push / len(records) * 100),
    }


def format_hours(hours: Optional[float]) -> str:
    """Format an hour value as ``12.5h``, or ``"n/a"`` when missing."""
    if hours is None:
        return "n/a"
    return f"{hours:.1f}h"


def _format_value(value: Optional[float]) -> str:
    return "n/a" if value is None else f"{value:g}"


def _hour_section(title: str, samples: Sequence[Optional[float]]) -> List[str]:
    stats = compute_statistics(samples)
    count = int(cast(float, stats["count"]))
    return [
        title,
        f"   Samples: {count}",
        f"   P50: {format_hours(stats['p50'])}",
        f"   P75: {format_hours(stats['p75'])}",
        f"   P90: {format_hours(stats['p90'])}",
    ]


def _level(level: Optional[str]) -> str:
    return f" [{level}]" if level else ""


def _dora_section(record: DoraMetrics) -> List[str]:
    return [
        f"   {record.repository} (last {record.period_days} days)",
        f"      Deployment frequency: {record.deployment_count} deploys,"
        f" {record.deployments_per_day:.2f}/day ({record.deployment_frequency})"
        f"{_level(record.deployment_frequency_level)}",
        f"      Lead time for changes: {format_hours(record.lead_time_hours)}"
        f" (merge-to-deploy={record.merge_to_deploy_count} create-to-merge={record.create_to_merge_count})"
        f"{_level(record.lead_time_level)}",
        f"      Change failure rate: {_format_value(record.change_failure_rate)}%"
        f" ({record.failed_deployments}/{record.total_deployments}){_level(record.change_failure_rate_level)}",
        f"      Mean time to recovery: {format_hours(record.mttr_hours)}{_level(record.mttr_level)}",
    ]


def generate_report(
    repositories: Sequence[str],
    cycle_times: Sequence[IssueCycleTime],
    coding_times: Sequence[IssueCodingTime],
    reviews: Sequence[PRReviewData],
    rework: Sequence[PRReworkData],
    sizes: Sequence[PRSizeData],
    dora: Sequence[DoraMetrics] = (),
) -> str:
    """Generate a human-readable report of all derived metrics.

    Hour metrics are reported as P50/P75/P90 over the records that have a
    value; rework and size are reported as totals and averages. DORA
    measures are listed per repository when given.
    """
    reached_production = sum(1 for record in cycle_times if record.production_merged_at is not None)
    rework_summary = summarize_rework(rework)
    lines_summary = calculate_summary([float(size.lines_of_code) for size in sizes])
    files_summary = calculate_summary([float(size.files_changed) for size in sizes])

    lines = [f"Repositories: {', '.join(repositories)}", "Delivery Metrics Report", ""]
    lines += _hour_section(
        f"1) Cycle Time (Issue to Production) - {reached_production}/{len(cycle_times)} issues reached production",
        [record.cycle_time_hours for record in cycle_times],
    )
    lines.append("")
    lines += _hour_section(
        "2) Coding Time (Issue to First PR)",
        [record.coding_time_hours for record in coding_times],
    )
    lines.append("")
    lines += _hour_section(
        "3) Time to First Review",
        [record.time_to_first_review_hours for record in reviews],
    )
    lines += _hour_section(
        "   Review Duration (First Review to Approval)",
        [record.review_duration_hours for record in reviews],
    )
    lines += _hour_section(
        "   Time to Merge (Approval to Merge)",
        [record.time_to_merge_hours for record in reviews],
    )
    lines.append("")
    lines += [
        "4) Rework",
        f"   PRs: {rework_summary['pr_count']}",
        f"   Additional commits: total={rework_summary['additional_commits_total']}"
        f" avg={_format_value(rework_summary['additional_commits_avg'])}"
        f" max={_format_value(rework_summary['additional_commits_max'])}",
        f"   Force pushes: total={rework_summary['force_pushes_total']}"
        f" prs={rework_summary['prs_with_force_push']}"
        f" rate={_format_value(rework_summary['force_push_rate'])}%",
        "",
        "5) PR Size",
        f"   PRs: {len(sizes)}",
        f"   Lines of code: avg={_format_value(lines_summary['avg'])}"
        f" median={_format_value(lines_summary['median'])}"
        f" max={_format_value(lines_summary['max'])}",
        f"   Files changed: avg={_format_value(files_summary['avg'])}"
        f" max={_format_value(files_summary['max'])}",
    ]
    if dora:
        lines += ["", "6) DORA Metrics"]
        for record in dora:
            lines += _dora_section(record)

    return "\n".join(lines)
