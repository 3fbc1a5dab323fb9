"""GitHub GraphQL implementation of the metrics backend.

One request per PR lookup (with a richer payload than REST), and one aliased
request per batch of PRs for the bulk detail and size queries.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from .fetchers import BasePRFetcher, CommitPRCandidate
from .github_client import GitHubGraphQLClient, GitHubRestClient, raise_for_graphql_response
from .interfaces import MetricsBackend, PRFetcher
from .models import (
    CommitInfo,
    Deployment,
    Issue,
    LinkedPR,
    MinimalPRInfo,
    PullRequest,
    PullRequestDetail,
    PullRequestSize,
    ReviewInfo,
    TimelineEvent,
    WorkflowRun,
)
from .queries import (
    COMMIT_ASSOCIATED_PRS_QUERY,
    DEPLOYMENTS_QUERY,
    ISSUE_WITH_LINKED_PRS_QUERY,
    ISSUES_QUERY,
    PULL_REQUEST_BRANCHES_QUERY,
    PULL_REQUESTS_QUERY,
    batch_alias,
    build_batch_pr_detail_query,
    build_batch_pr_size_query,
)
from .rest_backend import RestBackend
from .retry import RetryableRequestExecutor
from .timeutil import parse_timestamp, within_window

PAGE_SIZE = 100
DEFAULT_MAX_PAGES = 5


def _nodes(container: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not container:
        return []
    return [node for node in container.get("nodes") or [] if node]


def _label_names(node: Dict[str, Any]) -> tuple:
    return tuple(label["name"] for label in _nodes(node.get("labels")) if label.get("name"))


def _detail_from_node(node: Dict[str, Any]) -> PullRequestDetail:
    commits = tuple(
        CommitInfo(
            sha=str((item.get("commit") or {}).get("oid", "")),
            committed_date=(item.get("commit") or {}).get("committedDate"),
        )
        for item in _nodes(node.get("commits"))
    )
    reviews = tuple(
        ReviewInfo(
            state=str(item.get("state", "")),
            submitted_at=item.get("submittedAt"),
            author=(item.get("author") or {}).get("login"),
        )
        for item in _nodes(node.get("reviews"))
    )
    timeline = tuple(
        TimelineEvent(kind=str(item.get("__typename", "")), created_at=item.get("createdAt"))
        for item in _nodes(node.get("timelineItems"))
    )
    return PullRequestDetail(
        number=int(node["number"]),
        title=str(node.get("title") or ""),
        created_at=str(node.get("createdAt") or ""),
        merged_at=node.get("mergedAt"),
        commits=commits,
        reviews=reviews,
        timeline=timeline,
    )


def _size_from_node(node: Dict[str, Any]) -> PullRequestSize:
    return PullRequestSize(
        number=int(node["number"]),
        title=str(node.get("title") or ""),
        created_at=str(node.get("createdAt") or ""),
        merged_at=node.get("mergedAt"),
        additions=int(node.get("additions") or 0),
        deletions=int(node.get("deletions") or 0),
        changed_files=int(node.get("changedFiles") or 0),
    )


class _GraphQLCaller:
    def __init__(self, client: GitHubGraphQLClient, executor: RetryableRequestExecutor) -> None:
        self._client = client
        self._executor = executor

    def _query(self, query: str, variables: Dict[str, Any], description: str) -> Dict[str, Any]:
        return self._executor.execute(
            lambda: raise_for_graphql_response(self._client.execute(query, variables), description),
            description,
        )


class GraphQLPRFetcher(_GraphQLCaller, BasePRFetcher):
    """PRFetcher backed by two GraphQL queries."""

    def __init__(
        self,
        client: GitHubGraphQLClient,
        executor: RetryableRequestExecutor,
        owner: str,
        repo: str,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        _GraphQLCaller.__init__(self, client, executor)
        BasePRFetcher.__init__(self, owner, repo, logger)

    def _fetch_pr(self, number: int) -> Optional[MinimalPRInfo]:
        data = self._query(
            PULL_REQUEST_BRANCHES_QUERY,
            {"owner": self._owner, "name": self._repo, "number": number},
            f"GraphQL pullRequest {self.repository}#{number}",
        )
        node = (data.get("repository") or {}).get("pullRequest")
        if not node:
            return None

        return MinimalPRInfo(
            number=int(node["number"]),
            base_branch=node.get("baseRefName"),
            head_branch=node.get("headRefName"),
            merged_at=node.get("mergedAt"),
            merge_commit_sha=(node.get("mergeCommit") or {}).get("oid"),
        )

    def _fetch_commit_prs(self, sha: str) -> List[CommitPRCandidate]:
        data = self._query(
            COMMIT_ASSOCIATED_PRS_QUERY,
            {"owner": self._owner, "name": self._repo, "oid": sha},
            f"GraphQL associatedPullRequests {self.repository}@{sha}",
        )
        commit = (data.get("repository") or {}).get("object")
        if not commit:
            return []

        return [
            CommitPRCandidate(number=int(node["number"]), merged_at=node.get("mergedAt"))
            for node in _nodes(commit.get("associatedPullRequests"))
        ]


class GraphQLBackend(_GraphQLCaller, MetricsBackend):
    """Metrics backend using the GitHub GraphQL API.

    GraphQL exposes no Actions data, so workflow runs are read through the
    REST client when one is given.
    """

    def __init__(
        self,
        client: GitHubGraphQLClient,
        executor: RetryableRequestExecutor,
        max_pages: int = DEFAULT_MAX_PAGES,
        logger: Optional[logging.Logger] = None,
        rest_client: Optional[GitHubRestClient] = None,
    ) -> None:
        super().__init__(client, executor)
        self._max_pages = max_pages
        self._logger = logger or logging.getLogger(__name__)
        self._rest = RestBackend(rest_client, executor, max_pages, self._logger) if rest_client is not None else None

    def pr_fetcher(self, owner: str, repo: str) -> PRFetcher:
        return GraphQLPRFetcher(self._client, self._executor, owner, repo, logger=self._logger)

    def list_issues(
        self,
        owner: str,
        repo: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        labels: Sequence[str] = (),
    ) -> List[Issue]:
        issues: List[Issue] = []
        cursor: Optional[str] = None
        repository = f"{owner}/{repo}"

        for _ in range(self._max_pages):
            variables: Dict[str, Any] = {"owner": owner, "name": repo, "first": PAGE_SIZE, "after": cursor}
            if labels:
                variables["labels"] = list(labels)

            data = self._query(ISSUES_QUERY, variables, f"GraphQL issues {repository}")
            connection = (data.get("repository") or {}).get("issues") or {}

            reached_window_start = False
            for node in _nodes(connection):
                created = parse_timestamp(node.get("createdAt"))
                if since is not None and created is not None and created < since:
                    # Ordered newest first: everything after this is older.
                    reached_window_start = True
                    break
                if not within_window(node.get("createdAt"), since, until):
                    continue
                issues.append(
                    Issue(
                        number=int(node["number"]),
                        title=str(node.get("title") or ""),
                        created_at=str(node["createdAt"]),
                        state=str(node.get("state") or "").lower(),
                        repository=repository,
                        labels=_label_names(node),
                    )
                )

            page_info = connection.get("pageInfo") or {}
            if reached_window_start or not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")

        self._logger.info("Fetched issues", extra={"repository": repository, "issues": len(issues)})
        return issues

    def list_linked_prs(self, owner: str, repo: str, issue_number: int) -> List[LinkedPR]:
        repository = f"{owner}/{repo}"
        data = self._query(
            ISSUE_WITH_LINKED_PRS_QUERY,
            {"owner": owner, "name": repo, "number": issue_number},
            f"GraphQL linked PRs {repository}#{issue_number}",
        )
        issue = (data.get("repository") or {}).get("issue")
        if not issue:
            return []

        linked: List[LinkedPR] = []
        seen = set()
        for event in _nodes(issue.get("timelineItems")):
            source = event.get("source") or {}
            number = source.get("number")
            if number is None or number in seen:
                continue
            source_repo = (source.get("repository") or {}).get("nameWithOwner")
            if source_repo and source_repo != repository:
                continue
            seen.add(number)
            linked.append(LinkedPR(number=int(number), created_at=source.get("createdAt")))

        return linked

    def list_pull_requests(
        self,
        owner: str,
        repo: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[PullRequest]:
        pull_requests: List[PullRequest] = []
        cursor: Optional[str] = None
        repository = f"{owner}/{repo}"

        for _ in range(self._max_pages):
            data = self._query(
                PULL_REQUESTS_QUERY,
                {"owner": owner, "name": repo, "first": PAGE_SIZE, "after": cursor},
                f"GraphQL pullRequests {repository}",
            )
            connection = (data.get("repository") or {}).get("pullRequests") or {}

            for node in _nodes(connection):
                if not within_window(node.get("createdAt"), since, until):
                    continue
                pull_requests.append(
                    PullRequest(
                        number=int(node["number"]),
                        title=str(node.get("title") or ""),
                        repository=repository,
                        created_at=str(node["createdAt"]),
                        merged_at=node.get("mergedAt"),
                        state=str(node.get("state") or "").lower(),
                        author=(node.get("author") or {}).get("login") or "unknown",
                        labels=_label_names(node),
                    )
                )

            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")

        return pull_requests

    def fetch_pr_details(
        self, owner: str, repo: str, numbers: Sequence[int]
    ) -> List[Optional[PullRequestDetail]]:
        data = self._query(
            build_batch_pr_detail_query(numbers),
            {"owner": owner, "name": repo},
            f"GraphQL batch PR details {owner}/{repo} ({len(numbers)} PRs)",
        )
        repository = data.get("repository") or {}
        results: List[Optional[PullRequestDetail]] = []
        for index in range(len(numbers)):
            node = repository.get(batch_alias(index))
            results.append(_detail_from_node(node) if node else None)
        return results

    def fetch_pr_sizes(
        self, owner: str, repo: str, numbers: Sequence[int]
    ) -> List[Optional[PullRequestSize]]:
        data = self._query(
            build_batch_pr_size_query(numbers),
            {"owner": owner, "name": repo},
            f"GraphQL batch PR size {owner}/{repo} ({len(numbers)} PRs)",
        )
        repository = data.get("repository") or {}
        results: List[Optional[PullRequestSize]] = []
        for index in range(len(numbers)):
            node = repository.get(batch_alias(index))
            results.append(_size_from_node(node) if node else None)
        return results

    def list_deployments(
        self,
        owner: str,
        repo: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[Deployment]:
        deployments: List[Deployment] = []
        cursor: Optional[str] = None
        repository = f"{owner}/{repo}"

        for _ in range(self._max_pages):
            data = self._query(
                DEPLOYMENTS_QUERY,
                {"owner": owner, "name": repo, "first": PAGE_SIZE, "after": cursor},
                f"GraphQL deployments {repository}",
            )
            connection = (data.get("repository") or {}).get("deployments") or {}

            reached_window_start = False
            for node in _nodes(connection):
                created = parse_timestamp(node.get("createdAt"))
                if since is not None and created is not None and created < since:
                    reached_window_start = True
                    break
                if not within_window(node.get("createdAt"), since, until):
                    continue
                state = (node.get("latestStatus") or {}).get("state")
                deployments.append(
                    Deployment(
                        id="" if node.get("databaseId") is None else str(node["databaseId"]),
                        sha=str(node.get("commitOid") or ""),
                        environment=str(node.get("environment") or ""),
                        created_at=str(node["createdAt"]),
                        status=str(state).lower() if state else None,
                        repository=repository,
                    )
                )

            page_info = connection.get("pageInfo") or {}
            if reached_window_start or not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")

        self._logger.info("Fetched deployments", extra={"repository": repository, "deployments": len(deployments)})
        return deployments

    def list_workflow_runs(
        self,
        owner: str,
        repo: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[WorkflowRun]:
        if self._rest is None:
            self._logger.debug(
                "No REST client configured, skipping workflow runs",
                extra={"repository": f"{owner}/{repo}"},
            )
            return []
        return self._rest.list_workflow_runs(owner, repo, since=since, until=until)
