"""Thin GitHub REST and GraphQL transports.

Both clients return non-2xx responses and GraphQL errors as data. The
``raise_for_*`` helpers turn those results into the classified exceptions
that :class:`~deliverymetrics.retry.RetryableRequestExecutor` acts on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import requests

from .errors import (
    ForbiddenError,
    NotFoundError,
    RateLimitedError,
    TransientApiError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"
GITHUB_GRAPHQL_ENDPOINT = "https://api.github.com/graphql"
USER_AGENT = "delivery-metrics"


@dataclass(frozen=True)
class RestResponse:
    """Raw REST response: status, decoded JSON body (if any) and headers."""

    status_code: int
    body: Any
    headers: Mapping[str, str] = field(default_factory=dict)
    text: str = ""


@dataclass(frozen=True)
class GraphQLResponse:
    """Raw GraphQL response: HTTP status plus the ``data``/``errors`` members."""

    status_code: int
    data: Optional[Dict[str, Any]]
    errors: List[Dict[str, Any]] = field(default_factory=list)
    text: str = ""


class GitHubRestClient:
    """Small GitHub REST client that never raises on HTTP status."""

    def __init__(
        self,
        token: str,
        base_url: str = GITHUB_API_BASE,
        timeout_seconds: int = 30,
    ) -> None:
        """Initialize an authenticated REST session.

        Args:
            token: GitHub personal access token or installation token.
            base_url: API root, overridable for GitHub Enterprise.
            timeout_seconds: Per-request timeout in seconds.
        """
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds

        self._session = requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github.v3+json",
                "User-Agent": USER_AGENT,
            }
        )

    def _build_url(self, path: str) -> str:
        """Build a fully qualified API URL from a path below the API root."""
        return f"{self._base_url}/{path.lstrip('/')}"

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> RestResponse:
        """Execute a GET request.

        Raises:
            TransientApiError: If the request could not be sent at all.
        """
        url = self._build_url(path)
        try:
            response = self._session.get(url, params=params, timeout=self._timeout_seconds)
        except requests.RequestException as exc:
            raise TransientApiError(f"GitHub request failed: GET {url}: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        return RestResponse(
            status_code=response.status_code,
            body=body,
            headers=response.headers,
            text=response.text,
        )


class GitHubGraphQLClient:
    """Small GitHub GraphQL client that never raises on GraphQL errors."""

    def __init__(
        self,
        token: str,
        endpoint: str = GITHUB_GRAPHQL_ENDPOINT,
        timeout_seconds: int = 30,
    ) -> None:
        self._endpoint = endpoint
        self._timeout_seconds = timeout_seconds

        self._session = requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
            }
        )

    def execute(self, query: str, variables: Optional[Dict[str, Any]] = None) -> GraphQLResponse:
        """POST a GraphQL query.

        Raises:
            TransientApiError: If the request could not be sent at all.
        """
        payload = {"query": query, "variables": variables or {}}
        try:
            response = self._session.post(self._endpoint, json=payload, timeout=self._timeout_seconds)
        except requests.RequestException as exc:
            raise TransientApiError(f"GraphQL request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if not isinstance(body, dict):
            return GraphQLResponse(status_code=response.status_code, data=None, text=response.text)

        return GraphQLResponse(
            status_code=response.status_code,
            data=body.get("data"),
            errors=list(body.get("errors") or []),
            text=response.text,
        )


def _header(headers: Mapping[str, str], name: str) -> str:
    # Plain dicts are accepted as well as requests' case-insensitive mapping.
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return str(value).strip()
    return ""


def _is_rate_limited(response: RestResponse) -> bool:
    if response.status_code == 429:
        return True
    if response.status_code != 403:
        return False
    if _header(response.headers, "X-RateLimit-Remaining") == "0":
        return True
    if _header(response.headers, "Retry-After"):
        return True
    return "rate limit" in response.text.lower()


def raise_for_rest_response(response: RestResponse, description: str) -> Any:
    """Return the JSON body of a successful response or raise a classified error."""
    status_code = response.status_code

    if 200 <= status_code < 300:
        if response.body is None:
            raise TransientApiError(f"GitHub API returned invalid JSON: {description}")
        return response.body

    message = f"GitHub API error: {description} returned {status_code} - {response.text}"
    if _is_rate_limited(response):
        raise RateLimitedError(message)
    if status_code == 401:
        raise UnauthorizedError(message)
    if status_code == 403:
        raise ForbiddenError(message)
    if status_code == 404:
        raise NotFoundError(message)
    raise TransientApiError(message)


def raise_for_graphql_response(response: GraphQLResponse, description: str) -> Dict[str, Any]:
    """Return the ``data`` member of a GraphQL response or raise a classified error.

    Errors that come with partial data are logged and the data is returned,
    unless one of them is a rate-limit error.
    """
    if response.status_code == 401:
        raise UnauthorizedError(f"GraphQL HTTP error: {description} returned 401 - {response.text}")
    if response.status_code == 403 and "rate limit" not in response.text.lower():
        raise ForbiddenError(f"GraphQL HTTP error: {description} returned 403 - {response.text}")
    if response.status_code in (403, 429):
        raise RateLimitedError(f"GraphQL HTTP error: {description} returned {response.status_code}")
    if response.status_code != 200:
        raise TransientApiError(
            f"GraphQL HTTP error: {description} returned {response.status_code} - {response.text}"
        )

    if response.errors:
        messages = "; ".join(str(error.get("message", "")) for error in response.errors)
        types = {str(error.get("type", "")) for error in response.errors}

        if "RATE_LIMITED" in types:
            raise RateLimitedError(f"Rate limited: {description}: {messages}")

        if response.data:
            logger.warning(
                "GraphQL partial error",
                extra={"request": description, "errors": messages},
            )
            return response.data

        if "NOT_FOUND" in types or "Could not resolve" in messages:
            raise NotFoundError(f"GraphQL error: {description}: {messages}")
        if "FORBIDDEN" in types:
            raise ForbiddenError(f"GraphQL error: {description}: {messages}")
        raise TransientApiError(f"GraphQL error: {description}: {messages}")

    if response.data is None:
        raise TransientApiError(f"No data in GraphQL response: {description}")

    return response.data
