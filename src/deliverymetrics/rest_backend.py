"""GitHub REST implementation of the metrics backend.

Every entity costs one call (or one call per page). The bulk detail queries
are assembled from per-PR calls so that the pipeline can batch both backends
the same way.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Sequence

from .errors import NotFoundError
from .fetchers import BasePRFetcher, CommitPRCandidate
from .github_client import GitHubRestClient, raise_for_rest_response
from .interfaces import MetricsBackend, PRFetcher
from .models import (
    FORCE_PUSH_EVENT,
    READY_FOR_REVIEW_EVENT,
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
from .retry import RetryableRequestExecutor
from .timeutil import format_timestamp, within_window

PER_PAGE = 100
DEFAULT_MAX_PAGES = 5

_TIMELINE_EVENT_KINDS = {
    "ready_for_review": READY_FOR_REVIEW_EVENT,
    "head_ref_force_pushed": FORCE_PUSH_EVENT,
}


class _RestCaller:
    def __init__(
        self,
        client: GitHubRestClient,
        executor: RetryableRequestExecutor,
        max_pages: int = DEFAULT_MAX_PAGES,
    ) -> None:
        self._client = client
        self._executor = executor
        self._max_pages = max_pages

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        description = f"GET {path}"
        return self._executor.execute(
            lambda: raise_for_rest_response(self._client.get(path, params), description),
            description,
        )

    def _get_pages(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        max_pages: Optional[int] = None,
        items_key: Optional[str] = None,
    ) -> Iterator[List[Dict[str, Any]]]:
        """Yield list pages until an empty or short page (or the page limit).

        ``items_key`` names the list member of endpoints that wrap their
        results in an object, such as ``workflow_runs``.
        """
        page = 1
        while max_pages is None or page <= max_pages:
            query = dict(params or {})
            query.update({"per_page": PER_PAGE, "page": page})
            items = self._get(path, query)
            if items_key is not None:
                items = items.get(items_key) if isinstance(items, dict) else None
            if not isinstance(items, list) or not items:
                return
            yield items
            if len(items) < PER_PAGE:
                return
            page += 1


def _label_names(item: Dict[str, Any]) -> tuple:
    return tuple(label.get("name", "") for label in item.get("labels") or [] if label.get("name"))


class RestPRFetcher(_RestCaller, BasePRFetcher):
    """PRFetcher backed by ``/pulls/{n}`` and ``/commits/{sha}/pulls``."""

    def __init__(
        self,
        client: GitHubRestClient,
        executor: RetryableRequestExecutor,
        owner: str,
        repo: str,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        _RestCaller.__init__(self, client, executor)
        BasePRFetcher.__init__(self, owner, repo, logger)

    def _fetch_pr(self, number: int) -> Optional[MinimalPRInfo]:
        item = self._get(f"repos/{self._owner}/{self._repo}/pulls/{number}")
        if not item:
            return None

        return MinimalPRInfo(
            number=int(item["number"]),
            base_branch=(item.get("base") or {}).get("ref"),
            head_branch=(item.get("head") or {}).get("ref"),
            merged_at=item.get("merged_at"),
            merge_commit_sha=item.get("merge_commit_sha"),
        )

    def _fetch_commit_prs(self, sha: str) -> List[CommitPRCandidate]:
        items = self._get(f"repos/{self._owner}/{self._repo}/commits/{sha}/pulls")
        return [
            CommitPRCandidate(number=int(item["number"]), merged_at=item.get("merged_at"))
            for item in items or []
        ]


class RestBackend(_RestCaller, MetricsBackend):
    """Metrics backend using the GitHub REST v3 API."""

    def __init__(
        self,
        client: GitHubRestClient,
        executor: RetryableRequestExecutor,
        max_pages: int = DEFAULT_MAX_PAGES,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(client, executor, max_pages)
        self._logger = logger or logging.getLogger(__name__)

    def pr_fetcher(self, owner: str, repo: str) -> PRFetcher:
        return RestPRFetcher(self._client, self._executor, owner, repo, logger=self._logger)

    def list_issues(
        self,
        owner: str,
        repo: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        labels: Sequence[str] = (),
    ) -> List[Issue]:
        repository = f"{owner}/{repo}"
        params: Dict[str, Any] = {"state": "all", "sort": "created", "direction": "desc"}
        if labels:
            params["labels"] = ",".join(labels)
        if since is not None:
            params["since"] = format_timestamp(since)

        issues: List[Issue] = []
        for page in self._get_pages(f"repos/{owner}/{repo}/issues", params):
            for item in page:
                # The issues endpoint also returns pull requests.
                if item.get("pull_request"):
                    continue
                if not within_window(item.get("created_at"), since, until):
                    continue
                issues.append(
                    Issue(
                        number=int(item["number"]),
                        title=str(item.get("title") or ""),
                        created_at=str(item["created_at"]),
                        state=str(item.get("state") or ""),
                        repository=repository,
                        labels=_label_names(item),
                    )
                )

        self._logger.info("Fetched issues", extra={"repository": repository, "issues": len(issues)})
        return issues

    def list_linked_prs(self, owner: str, repo: str, issue_number: int) -> List[LinkedPR]:
        repository = f"{owner}/{repo}"
        linked: List[LinkedPR] = []
        seen = set()

        for page in self._get_pages(f"repos/{owner}/{repo}/issues/{issue_number}/timeline"):
            for event in page:
                if event.get("event") != "cross-referenced":
                    continue
                source_issue = (event.get("source") or {}).get("issue") or {}
                if not source_issue.get("pull_request"):
                    continue
                number = source_issue.get("number")
                source_repo = (source_issue.get("repository") or {}).get("full_name")
                if number is None or number in seen or source_repo != repository:
                    continue
                seen.add(number)
                linked.append(LinkedPR(number=int(number), created_at=source_issue.get("created_at")))

        return linked

    def list_pull_requests(
        self,
        owner: str,
        repo: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[PullRequest]:
        repository = f"{owner}/{repo}"
        params = {"state": "all", "sort": "updated", "direction": "desc"}
        pull_requests: List[PullRequest] = []

        for page in self._get_pages(f"repos/{owner}/{repo}/pulls", params, max_pages=self._max_pages):
            for item in page:
                if not within_window(item.get("created_at"), since, until):
                    continue
                pull_requests.append(
                    PullRequest(
                        number=int(item["number"]),
                        title=str(item.get("title") or ""),
                        repository=repository,
                        created_at=str(item["created_at"]),
                        merged_at=item.get("merged_at"),
                        state=str(item.get("state") or ""),
                        author=(item.get("user") or {}).get("login") or "unknown",
                        labels=_label_names(item),
                    )
                )

        return pull_requests

    def _fetch_detail(self, owner: str, repo: str, number: int) -> PullRequestDetail:
        base = f"repos/{owner}/{repo}"
        pr = self._get(f"{base}/pulls/{number}")

        commits: List[CommitInfo] = []
        for page in self._get_pages(f"{base}/pulls/{number}/commits", max_pages=self._max_pages):
            for item in page:
                commit = item.get("commit") or {}
                committed_date = (commit.get("committer") or {}).get("date") or (
                    commit.get("author") or {}
                ).get("date")
                commits.append(CommitInfo(sha=str(item.get("sha", "")), committed_date=committed_date))

        reviews: List[ReviewInfo] = []
        for page in self._get_pages(f"{base}/pulls/{number}/reviews", max_pages=self._max_pages):
            for item in page:
                reviews.append(
                    ReviewInfo(
                        state=str(item.get("state", "")),
                        submitted_at=item.get("submitted_at"),
                        author=(item.get("user") or {}).get("login"),
                    )
                )

        timeline: List[TimelineEvent] = []
        for page in self._get_pages(f"{base}/issues/{number}/timeline", max_pages=self._max_pages):
            for item in page:
                kind = _TIMELINE_EVENT_KINDS.get(str(item.get("event", "")))
                if kind is not None:
                    timeline.append(TimelineEvent(kind=kind, created_at=item.get("created_at")))

        return PullRequestDetail(
            number=int(pr["number"]),
            title=str(pr.get("title") or ""),
            created_at=str(pr.get("created_at") or ""),
            merged_at=pr.get("merged_at"),
            commits=tuple(commits),
            reviews=tuple(reviews),
            timeline=tuple(timeline),
        )

    def fetch_pr_details(
        self, owner: str, repo: str, numbers: Sequence[int]
    ) -> List[Optional[PullRequestDetail]]:
        results: List[Optional[PullRequestDetail]] = []
        for number in numbers:
            try:
                results.append(self._fetch_detail(owner, repo, number))
            except NotFoundError:
                self._logger.warning(
                    "Pull request not found while fetching details",
                    extra={"repository": f"{owner}/{repo}", "pr_number": number},
                )
                results.append(None)
        return results

    def fetch_pr_sizes(
        self, owner: str, repo: str, numbers: Sequence[int]
    ) -> List[Optional[PullRequestSize]]:
        results: List[Optional[PullRequestSize]] = []
        for number in numbers:
            try:
                item = self._get(f"repos/{owner}/{repo}/pulls/{number}")
            except NotFoundError:
                results.append(None)
                continue
            results.append(
                PullRequestSize(
                    number=int(item["number"]),
                    title=str(item.get("title") or ""),
                    created_at=str(item.get("created_at") or ""),
                    merged_at=item.get("merged_at"),
                    additions=int(item.get("additions") or 0),
                    deletions=int(item.get("deletions") or 0),
                    changed_files=int(item.get("changed_files") or 0),
                )
            )
        return results

    def _deployment_status(self, owner: str, repo: str, deployment_id: Any) -> Optional[str]:
        try:
            statuses = self._get(f"repos/{owner}/{repo}/deployments/{deployment_id}/statuses", {"per_page": 1})
        except NotFoundError:
            return None
        if not isinstance(statuses, list) or not statuses:
            return None
        state = statuses[0].get("state")
        return str(state).lower() if state else None

    def list_deployments(
        self,
        owner: str,
        repo: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[Deployment]:
        repository = f"{owner}/{repo}"
        deployments: List[Deployment] = []

        for page in self._get_pages(f"repos/{owner}/{repo}/deployments", max_pages=self._max_pages):
            for item in page:
                if not within_window(item.get("created_at"), since, until):
                    continue
                deployments.append(
                    Deployment(
                        id=str(item["id"]),
                        sha=str(item.get("sha") or ""),
                        environment=str(item.get("environment") or ""),
                        created_at=str(item["created_at"]),
                        status=self._deployment_status(owner, repo, item["id"]),
                        repository=repository,
                    )
                )

        self._logger.info("Fetched deployments", extra={"repository": repository, "deployments": len(deployments)})
        return deployments

    def list_workflow_runs(
        self,
        owner: str,
        repo: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[WorkflowRun]:
        repository = f"{owner}/{repo}"
        params: Dict[str, Any] = {}
        if since is not None:
            params["created"] = f">={since.date().isoformat()}"

        runs: List[WorkflowRun] = []
        pages = self._get_pages(
            f"repos/{owner}/{repo}/actions/runs", params, max_pages=self._max_pages, items_key="workflow_runs"
        )
        for page in pages:
            for item in page:
                if not within_window(item.get("created_at"), since, until):
                    continue
                runs.append(
                    WorkflowRun(
                        id=int(item["id"]),
                        name=str(item.get("name") or ""),
                        status=str(item.get("status") or ""),
                        conclusion=item.get("conclusion"),
                        created_at=str(item["created_at"]),
                        repository=repository,
                    )
                )

        self._logger.info("Fetched workflow runs", extra={"repository": repository, "runs": len(runs)})
        return runs
