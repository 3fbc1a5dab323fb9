"""Entry point: wire configuration, backend and pipeline, then print the report."""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from .cli import parse_args
from .config import Config, load_config
from .dora import DEFAULT_DORA_PERIOD_DAYS
from .errors import ApiError, AuthenticationError, ConfigurationError, UnauthorizedError
from .github_client import GitHubGraphQLClient, GitHubRestClient
from .graphql_backend import GraphQLBackend
from .interfaces import MetricsBackend
from .pipeline import MetricsDerivationPipeline
from .rest_backend import RestBackend
from .retry import RetryableRequestExecutor
from .stats import generate_report

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNEXPECTED_ERROR = 1
EXIT_CONFIGURATION_ERROR = 2
EXIT_AUTHENTICATION_ERROR = 3
EXIT_API_ERROR = 4


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def build_backend(config: Config) -> MetricsBackend:
    """Create the backend selected by ``config.api_mode``."""
    executor = RetryableRequestExecutor(max_retries=config.max_retries)
    if config.api_mode == "rest":
        return RestBackend(GitHubRestClient(token=config.token), executor)
    return GraphQLBackend(
        GitHubGraphQLClient(token=config.token),
        executor,
        rest_client=GitHubRestClient(token=config.token),
    )


def orchestrate_metrics_generation(argv: Optional[Sequence[str]] = None) -> int:
    """Run one reporting pass and return a process exit code."""
    try:
        args = parse_args(argv)
        configure_logging(args.verbose)

        config = load_config(
            repositories=args.repositories,
            api_mode=args.api_mode,
            production_pattern=args.production_pattern,
            batch_size=args.batch_size,
            max_retries=args.max_retries,
            days=args.days,
            exclude_labels=args.exclude_labels,
            deploy_environment=args.deploy_environment,
            deploy_workflow_patterns=args.deploy_workflow_patterns,
        )

        since: Optional[datetime] = None
        until: Optional[datetime] = None
        if config.days is not None:
            until = datetime.now(timezone.utc)
            since = until - timedelta(days=config.days)
            print(f"Analyzing {len(config.repositories)} repositories over the last {config.days} days...")
        else:
            print(f"Analyzing all history of {len(config.repositories)} repositories...")

        pipeline = MetricsDerivationPipeline(
            build_backend(config),
            production_pattern=config.production_pattern,
            batch_size=config.batch_size,
            exclude_labels=config.exclude_labels,
            deploy_environment=config.deploy_environment,
            deploy_workflow_patterns=config.deploy_workflow_patterns,
        )

        cycle_times, coding_times = pipeline.derive_issue_metrics(config.repositories, since=since, until=until)
        pull_requests = pipeline.list_pull_requests(config.repositories, since=since, until=until)
        review_data, rework_data = pipeline.get_review_and_rework_data(pull_requests)
        size_data = pipeline.get_size_data(pull_requests)
        dora_metrics = pipeline.get_dora_metrics(
            config.repositories,
            pull_requests,
            since=since,
            until=until,
            period_days=config.days or DEFAULT_DORA_PERIOD_DAYS,
        )

        print(
            generate_report(
                repositories=config.repositories,
                cycle_times=cycle_times,
                coding_times=coding_times,
                reviews=review_data,
                rework=rework_data,
                sizes=size_data,
                dora=dora_metrics,
            )
        )
        return EXIT_OK
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return EXIT_CONFIGURATION_ERROR
    except (AuthenticationError, UnauthorizedError) as exc:
        logger.error("Authentication error: %s", exc)
        return EXIT_AUTHENTICATION_ERROR
    except ApiError as exc:
        logger.error("GitHub API error: %s", exc)
        return EXIT_API_ERROR
    except Exception:
        logger.exception("Unexpected error while generating metrics")
        return EXIT_UNEXPECTED_ERROR


def main() -> int:
    return orchestrate_metrics_generation()


if __name__ == "__main__":
    raise SystemExit(main())
