"""Tests for application orchestration in the main module."""

import sys
from argparse import Namespace
from pathlib import Path
from unittest.mock import Mock, patch

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from deliverymetrics.config import Config
from deliverymetrics.errors import AuthenticationError, ConfigurationError, RetryExhaustedError, UnauthorizedError
from deliverymetrics.graphql_backend import GraphQLBackend
from deliverymetrics.main import build_backend, orchestrate_metrics_generation
from deliverymetrics.rest_backend import RestBackend


def _args(days=30):
    return Namespace(
        repositories=["octo/app"],
        api_mode="graphql",
        production_pattern="production",
        days=days,
        batch_size=10,
        max_retries=3,
        exclude_labels=[],
        deploy_environment=None,
        deploy_workflow_patterns=None,
        verbose=False,
    )


def _config(days=30, api_mode="graphql"):
    return Config(repositories=("octo/app",), token="secret", api_mode=api_mode, days=days)


def test_orchestrate_metrics_generation_success(capsys):
    """Verify orchestration returns 0 and wires components correctly on success."""
    config = _config()
    backend = Mock()
    pipeline = Mock()
    pipeline.derive_issue_metrics.return_value = (["cycle"], ["coding"])
    pipeline.list_pull_requests.return_value = ["pr"]
    pipeline.get_review_and_rework_data.return_value = (["review"], ["rework"])
    pipeline.get_size_data.return_value = ["size"]
    pipeline.get_dora_metrics.return_value = ["dora"]

    with patch("deliverymetrics.main.parse_args", return_value=_args()), patch(
        "deliverymetrics.main.configure_logging"
    ), patch("deliverymetrics.main.load_config", return_value=config) as load_config_mock, patch(
        "deliverymetrics.main.build_backend", return_value=backend
    ) as build_backend_mock, patch(
        "deliverymetrics.main.MetricsDerivationPipeline", return_value=pipeline
    ) as pipeline_ctor_mock, patch(
        "deliverymetrics.main.generate_report", return_value="REPORT"
    ) as report_mock:
        exit_code = orchestrate_metrics_generation()

    assert exit_code == 0
    load_config_mock.assert_called_once_with(
        repositories=["octo/app"],
        api_mode="graphql",
        production_pattern="production",
        batch_size=10,
        max_retries=3,
        days=30,
        exclude_labels=[],
        deploy_environment=None,
        deploy_workflow_patterns=None,
    )
    build_backend_mock.assert_called_once_with(config)
    pipeline_ctor_mock.assert_called_once_with(
        backend,
        production_pattern="production",
        batch_size=10,
        exclude_labels=(),
        deploy_environment=None,
        deploy_workflow_patterns=("deploy",),
    )
    _, kwargs = pipeline.derive_issue_metrics.call_args
    assert kwargs["since"] is not None
    assert (kwargs["until"] - kwargs["since"]).days == 30
    pipeline.get_review_and_rework_data.assert_called_once_with(["pr"])
    pipeline.get_review_data.assert_not_called()
    pipeline.get_rework_data.assert_not_called()
    _, dora_kwargs = pipeline.get_dora_metrics.call_args
    assert dora_kwargs["period_days"] == 30
    report_mock.assert_called_once_with(
        repositories=("octo/app",),
        cycle_times=["cycle"],
        coding_times=["coding"],
        reviews=["review"],
        rework=["rework"],
        sizes=["size"],
        dora=["dora"],
    )
    assert "REPORT" in capsys.readouterr().out


def test_orchestrate_metrics_generation_with_days_none_uses_open_window(capsys):
    """Verify days=None runs over all history with no time filters."""
    pipeline = Mock()
    pipeline.derive_issue_metrics.return_value = ([], [])
    pipeline.get_review_and_rework_data.return_value = ([], [])

    with patch("deliverymetrics.main.parse_args", return_value=_args(days=None)), patch(
        "deliverymetrics.main.configure_logging"
    ), patch("deliverymetrics.main.load_config", return_value=_config(days=None)), patch(
        "deliverymetrics.main.build_backend", return_value=Mock()
    ), patch(
        "deliverymetrics.main.MetricsDerivationPipeline", return_value=pipeline
    ), patch(
        "deliverymetrics.main.generate_report", return_value="REPORT"
    ):
        exit_code = orchestrate_metrics_generation()

    assert exit_code == 0
    pipeline.derive_issue_metrics.assert_called_once_with(("octo/app",), since=None, until=None)
    pipeline.list_pull_requests.assert_called_once_with(("octo/app",), since=None, until=None)
    _, dora_kwargs = pipeline.get_dora_metrics.call_args
    assert dora_kwargs["period_days"] == 30
    assert dora_kwargs["since"] is None
    assert "all history" in capsys.readouterr().out


def test_orchestrate_metrics_generation_configuration_error_returns_config_exit_code():
    """Verify invalid configuration returns the configuration exit code."""
    with patch("deliverymetrics.main.parse_args", return_value=_args()), patch(
        "deliverymetrics.main.configure_logging"
    ), patch("deliverymetrics.main.load_config", side_effect=ConfigurationError("bad")):
        assert orchestrate_metrics_generation() == 2


def test_orchestrate_metrics_generation_missing_token_returns_auth_error():
    """Verify missing token failures return the authentication exit code."""
    with patch("deliverymetrics.main.parse_args", return_value=_args()), patch(
        "deliverymetrics.main.configure_logging"
    ), patch(
        "deliverymetrics.main.load_config",
        side_effect=AuthenticationError("Missing required GitHub token."),
    ):
        assert orchestrate_metrics_generation() == 3


def test_orchestrate_metrics_generation_rejected_token_returns_auth_error():
    """Verify a 401 that reaches the top level returns the authentication exit code."""
    with patch("deliverymetrics.main.parse_args", return_value=_args()), patch(
        "deliverymetrics.main.configure_logging"
    ), patch("deliverymetrics.main.load_config", return_value=_config()), patch(
        "deliverymetrics.main.build_backend", return_value=Mock()
    ), patch("deliverymetrics.main.MetricsDerivationPipeline") as pipeline_ctor_mock:
        pipeline_ctor_mock.return_value.derive_issue_metrics.side_effect = UnauthorizedError("401")
        assert orchestrate_metrics_generation() == 3


def test_orchestrate_metrics_generation_api_error_returns_api_exit_code():
    """Verify GitHub API failures return the API error exit code."""
    with patch("deliverymetrics.main.parse_args", return_value=_args()), patch(
        "deliverymetrics.main.configure_logging"
    ), patch("deliverymetrics.main.load_config", return_value=_config()), patch(
        "deliverymetrics.main.build_backend", return_value=Mock()
    ), patch("deliverymetrics.main.MetricsDerivationPipeline") as pipeline_ctor_mock:
        pipeline_ctor_mock.return_value.derive_issue_metrics.side_effect = RetryExhaustedError(
            "GraphQL issues octo/app", 4, None
        )
        assert orchestrate_metrics_generation() == 4


def test_orchestrate_metrics_generation_unexpected_error_returns_generic_exit_code():
    """Verify unexpected exceptions are mapped to the generic non-zero exit code."""
    with patch("deliverymetrics.main.parse_args", side_effect=RuntimeError("boom")):
        exit_code = orchestrate_metrics_generation()

    assert exit_code == 1


def test_build_backend_selects_implementation_by_api_mode():
    """Verify the backend is chosen once from the configured API mode."""
    assert isinstance(build_backend(_config(api_mode="rest")), RestBackend)
    assert isinstance(build_backend(_config(api_mode="graphql")), GraphQLBackend)
