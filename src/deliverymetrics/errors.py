"""Custom exception types for the delivery metrics extractor."""

from __future__ import annotations

from typing import Optional


class DeliveryMetricsError(Exception):
    """Base exception for all recoverable delivery metrics errors."""


class ConfigurationError(DeliveryMetricsError):
    """Raised when runtime configuration values are missing or invalid."""


class AuthenticationError(DeliveryMetricsError):
    """Raised when GitHub credentials are unavailable."""


class MalformedRepositoryError(DeliveryMetricsError):
    """Raised when a repository string is not of the form ``owner/repo``."""


class ApiError(DeliveryMetricsError):
    """Raised when a GitHub API request fails or returns an unexpected response."""


class FetchError(ApiError):
    """Raised when a remote call cannot be completed."""


class RateLimitedError(FetchError):
    """The API signalled that the rate limit was hit."""


class TransientApiError(FetchError):
    """A failure that may succeed on a later attempt (5xx, network, bad JSON)."""


class TerminalApiError(FetchError):
    """A failure that will not go away by retrying."""


class UnauthorizedError(TerminalApiError):
    """HTTP 401: the token was rejected."""


class ForbiddenError(TerminalApiError):
    """HTTP 403 or a GraphQL FORBIDDEN error."""


class NotFoundError(TerminalApiError):
    """The requested object (PR, commit, repository) does not exist."""


class RetryExhaustedError(FetchError):
    """Raised when every attempt of a retried request failed."""

    def __init__(self, description: str, attempts: int, last_error: Optional[Exception]) -> None:
        super().__init__(f"{description} failed after {attempts} attempts: {last_error}")
        self.description = description
        self.attempts = attempts
        self.last_error = last_error
