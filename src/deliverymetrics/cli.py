"""Command-line argument parsing for the delivery metrics extractor."""

from __future__ import annotations

import argparse
from typing import Optional, Sequence

from .config import (
    API_MODES,
    DEFAULT_API_MODE,
    DEFAULT_BATCH_SIZE,
    DEFAULT_DEPLOY_WORKFLOW_PATTERNS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PRODUCTION_PATTERN,
)


def _positive_int(value: str) -> int:
    """Parse and validate a positive integer CLI value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive integer.
    """
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be an integer") from exc

    if parsed <= 0:
        raise argparse.ArgumentTypeError("must be greater than 0")

    return parsed


def _non_negative_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be an integer") from exc

    if parsed < 0:
        raise argparse.ArgumentTypeError("must be 0 or greater")

    return parsed


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for metrics generation.

    Returns:
        Parsed CLI arguments: repositories, API mode, production pattern,
        lookback days, batch size, retries, excluded labels, deployment
        environment, deployment workflow patterns and verbosity.
    """
    parser = argparse.ArgumentParser(
        prog="delivery-metrics",
        description=(
            "Derive delivery metrics (cycle time, coding time, review efficiency, "
            "rework, PR size and DORA deployment metrics) from GitHub issues, pull "
            "requests, deployments and workflow runs."
        ),
    )

    parser.add_argument(
        "--repo",
        dest="repositories",
        action="append",
        required=True,
        help="Repository to analyze as owner/repo (repeatable).",
    )
    parser.add_argument(
        "--api-mode",
        choices=API_MODES,
        default=DEFAULT_API_MODE,
        help=f"GitHub API flavour to use (default: {DEFAULT_API_MODE}).",
    )
    parser.add_argument(
        "--production-pattern",
        default=DEFAULT_PRODUCTION_PATTERN,
        help=(
            "Case-insensitive substring identifying production base branches "
            f"(default: {DEFAULT_PRODUCTION_PATTERN})."
        ),
    )
    parser.add_argument(
        "--days",
        type=_positive_int,
        default=None,
        help="Only include issues and PRs created in the last N days (default: no limit).",
    )
    parser.add_argument(
        "--batch-size",
        type=_positive_int,
        default=DEFAULT_BATCH_SIZE,
        help=f"PRs per combined detail request (default: {DEFAULT_BATCH_SIZE}).",
    )
    parser.add_argument(
        "--max-retries",
        type=_non_negative_int,
        default=DEFAULT_MAX_RETRIES,
        help=f"Retries per API call after the first attempt (default: {DEFAULT_MAX_RETRIES}).",
    )
    parser.add_argument(
        "--exclude-label",
        dest="exclude_labels",
        action="append",
        default=[],
        help="Skip issues and PRs carrying this label (repeatable).",
    )
    parser.add_argument(
        "--environment",
        dest="deploy_environment",
        default=None,
        help="Only count deployments whose environment contains this text (default: all environments).",
    )
    parser.add_argument(
        "--deploy-workflow-pattern",
        dest="deploy_workflow_patterns",
        action="append",
        default=None,
        help=(
            "Case-insensitive substring identifying deployment workflow runs, used when a "
            f"repository has no deployments (repeatable, default: {', '.join(DEFAULT_DEPLOY_WORKFLOW_PATTERNS)})."
        ),
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    return parser.parse_args(argv)
