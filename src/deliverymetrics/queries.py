"""GraphQL documents used by the GraphQL backend.

Batch queries alias each pull request as ``pr0``, ``pr1``, ... so results can
be mapped back to the PR at the same position in the batch.
"""

from __future__ import annotations

from typing import Sequence

BATCH_ALIAS_PREFIX = "pr"

PULL_REQUEST_BRANCHES_QUERY = """
query GetPullRequestBranches($owner: String!, $name: String!, $number: Int!) {
  repository(owner: $owner, name: $name) {
    pullRequest(number: $number) {
      number
      createdAt
      mergedAt
      baseRefName
      headRefName
      mergeCommit {
        oid
      }
    }
  }
}
"""

COMMIT_ASSOCIATED_PRS_QUERY = """
query GetCommitAssociatedPRs($owner: String!, $name: String!, $oid: GitObjectID!) {
  repository(owner: $owner, name: $name) {
    object(oid: $oid) {
      ... on Commit {
        associatedPullRequests(first: 10) {
          nodes {
            number
            mergedAt
            baseRefName
            headRefName
          }
        }
      }
    }
  }
}
"""

ISSUES_QUERY = """
query GetIssues(
  $owner: String!
  $name: String!
  $first: Int!
  $after: String
  $labels: [String!]
) {
  repository(owner: $owner, name: $name) {
    issues(
      first: $first
      after: $after
      labels: $labels
      orderBy: { field: CREATED_AT, direction: DESC }
    ) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        number
        title
        state
        createdAt
        labels(first: 20) {
          nodes {
            name
          }
        }
      }
    }
  }
}
"""

ISSUE_WITH_LINKED_PRS_QUERY = """
query GetIssueWithLinkedPRs($owner: String!, $name: String!, $number: Int!) {
  repository(owner: $owner, name: $name) {
    issue(number: $number) {
      number
      timelineItems(first: 100, itemTypes: [CROSS_REFERENCED_EVENT]) {
        nodes {
          ... on CrossReferencedEvent {
            source {
              ... on PullRequest {
                number
                createdAt
                repository {
                  nameWithOwner
                }
              }
            }
          }
        }
      }
    }
  }
}
"""

PULL_REQUESTS_QUERY = """
query GetPullRequests($owner: String!, $name: String!, $first: Int!, $after: String) {
  repository(owner: $owner, name: $name) {
    pullRequests(
      first: $first
      after: $after
      orderBy: { field: UPDATED_AT, direction: DESC }
    ) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        number
        title
        state
        createdAt
        mergedAt
        author {
          login
        }
        labels(first: 20) {
          nodes {
            name
          }
        }
      }
    }
  }
}
"""

DEPLOYMENTS_QUERY = """
query GetDeployments($owner: String!, $name: String!, $first: Int!, $after: String) {
  repository(owner: $owner, name: $name) {
    deployments(
      first: $first
      after: $after
      orderBy: { field: CREATED_AT, direction: DESC }
    ) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        databaseId
        environment
        createdAt
        commitOid
        state
        latestStatus {
          state
          createdAt
        }
      }
    }
  }
}
"""


_DETAIL_FIELDS = """
      number
      title
      createdAt
      mergedAt
      reviews(first: 50) {
        nodes {
          state
          submittedAt
          author {
            login
          }
        }
      }
      commits(first: 100) {
        nodes {
          commit {
            oid
            committedDate
          }
        }
      }
      timelineItems(first: 50, itemTypes: [READY_FOR_REVIEW_EVENT, HEAD_REF_FORCE_PUSHED_EVENT]) {
        nodes {
          __typename
          ... on ReadyForReviewEvent {
            createdAt
          }
          ... on HeadRefForcePushedEvent {
            createdAt
          }
        }
      }
"""

_SIZE_FIELDS = """
      number
      title
      createdAt
      mergedAt
      additions
      deletions
      changedFiles
"""


def batch_alias(index: int) -> str:
    return f"{BATCH_ALIAS_PREFIX}{index}"


def _build_batch_query(operation: str, pr_numbers: Sequence[int], fields: str) -> str:
    fragments = "\n".join(
        f"    {batch_alias(index)}: pullRequest(number: {int(number)}) {{{fields}    }}"
        for index, number in enumerate(pr_numbers)
    )
    return (
        f"query {operation}($owner: String!, $name: String!) {{\n"
        f"  repository(owner: $owner, name: $name) {{\n"
        f"{fragments}\n"
        f"  }}\n"
        f"}}\n"
    )


def build_batch_pr_detail_query(pr_numbers: Sequence[int]) -> str:
    """Build one query fetching reviews, commits and timeline for every PR."""
    return _build_batch_query("GetBatchPRDetails", pr_numbers, _DETAIL_FIELDS)


def build_batch_pr_size_query(pr_numbers: Sequence[int]) -> str:
    """Build one query fetching additions, deletions and changed files for every PR."""
    return _build_batch_query("GetBatchPRSize", pr_numbers, _SIZE_FIELDS)
