"""Configuration parsing and validation for the delivery metrics extractor."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .errors import AuthenticationError, ConfigurationError

API_MODES = ("rest", "graphql")

DEFAULT_API_MODE = "graphql"
DEFAULT_PRODUCTION_PATTERN = "production"
DEFAULT_BATCH_SIZE = 10
DEFAULT_MAX_RETRIES = 3
DEFAULT_DEPLOY_WORKFLOW_PATTERNS = ("deploy",)


@dataclass(frozen=True)
class Config:
    """Validated runtime settings used by the metrics pipeline."""

    repositories: Tuple[str, ...]
    token: str
    api_mode: str = DEFAULT_API_MODE
    production_pattern: str = DEFAULT_PRODUCTION_PATTERN
    batch_size: int = DEFAULT_BATCH_SIZE
    max_retries: int = DEFAULT_MAX_RETRIES
    days: Optional[int] = None
    exclude_labels: Tuple[str, ...] = ()
    deploy_environment: Optional[str] = None
    deploy_workflow_patterns: Tuple[str, ...] = DEFAULT_DEPLOY_WORKFLOW_PATTERNS


def load_config(
    repositories: Sequence[str],
    api_mode: str = DEFAULT_API_MODE,
    production_pattern: str = DEFAULT_PRODUCTION_PATTERN,
    batch_size: int = DEFAULT_BATCH_SIZE,
    max_retries: int = DEFAULT_MAX_RETRIES,
    days: Optional[int] = None,
    exclude_labels: Sequence[str] = (),
    deploy_environment: Optional[str] = None,
    deploy_workflow_patterns: Optional[Sequence[str]] = None,
) -> Config:
    """Build and validate application configuration.

    Args:
        repositories: Repository names in ``owner/repo`` form.
        api_mode: ``"rest"`` or ``"graphql"``.
        production_pattern: Case-insensitive substring identifying a
            production base branch.
        batch_size: Number of PRs per combined detail request.
        max_retries: Retries per remote call after the first attempt.
        days: Optional lookback window in days; ``None`` means no bound.
        exclude_labels: Issues and PRs carrying any of these labels are skipped.
        deploy_environment: Case-insensitive substring selecting the
            deployment environments counted by the DORA metrics; ``None``
            counts every environment.
        deploy_workflow_patterns: Case-insensitive substrings identifying
            deployment workflow runs, used when a repository records no
            deployments. Defaults to ``("deploy",)``.

    Returns:
        A validated ``Config`` instance.

    Raises:
        ConfigurationError: If any value is out of range.
        AuthenticationError: If ``GITHUB_TOKEN`` is not configured.
    """
    cleaned_repositories = tuple(name.strip() for name in repositories if name and name.strip())
    if not cleaned_repositories:
        raise ConfigurationError("At least one repository ('owner/repo') must be given.")

    if api_mode not in API_MODES:
        raise ConfigurationError(
            f"Invalid value for 'api_mode': {api_mode!r}. Expected one of {', '.join(API_MODES)}."
        )

    if not production_pattern or not production_pattern.strip():
        raise ConfigurationError("Invalid value for 'production_pattern': must not be empty.")

    if batch_size <= 0:
        raise ConfigurationError("Invalid value for 'batch_size': expected an integer greater than 0.")

    if max_retries < 0:
        raise ConfigurationError("Invalid value for 'max_retries': expected an integer >= 0.")

    if days is not None and days <= 0:
        raise ConfigurationError("Invalid value for 'days': expected an integer greater than 0.")

    patterns = tuple(pattern.strip() for pattern in deploy_workflow_patterns or () if pattern and pattern.strip())
    environment = deploy_environment.strip() if deploy_environment and deploy_environment.strip() else None

    token: str = os.getenv("GITHUB_TOKEN", "").strip()
    if not token:
        raise AuthenticationError(
            "Missing required GitHub token. "
            "Set the 'GITHUB_TOKEN' environment variable before running the extractor."
        )

    return Config(
        repositories=cleaned_repositories,
        token=token,
        api_mode=api_mode,
        production_pattern=production_pattern.strip(),
        batch_size=batch_size,
        max_retries=max_retries,
        days=days,
        exclude_labels=tuple(label for label in exclude_labels if label),
        deploy_environment=environment,
        deploy_workflow_patterns=patterns or DEFAULT_DEPLOY_WORKFLOW_PATTERNS,
    )
