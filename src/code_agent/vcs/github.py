"""GitHub REST API implementation of the version-control capability."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any
from urllib.parse import quote

import httpx

from code_agent.config import GitHubSettings
from code_agent.http.client import JsonHttpClient, JsonResponse
from code_agent.orchestrator.errors import CapabilityError
from code_agent.orchestrator.models import GeneratedFile, MergeMethod, PullRequestRef
from code_agent.vcs.base import MergeResult, ReviewComments, comment_from_payload

logger = logging.getLogger(__name__)


class GitHubRestClient:
    """Branches through git refs, commits through blobs, a tree and a ref update."""

    def __init__(
        self,
        settings: GitHubSettings,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.owner = settings.owner
        self.repo = settings.repo
        self._client = JsonHttpClient(
            base_url=settings.api_url,
            timeout_seconds=settings.request_timeout_seconds,
            max_retries=settings.max_retries,
            headers={
                "Authorization": f"Bearer {settings.token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            transport=transport,
        )

    def branch_exists(self, name: str) -> bool:
        response = self._client.request("GET", self._repo_path(f"branches/{_quote_ref(name)}"))
        if response.status_code == 404:
            return False
        _ensure_success(response, "check branch")
        return True

    def create_branch(self, name: str, base: str) -> None:
        base_sha = self._ref_sha(base, action="create branch")
        response = self._client.request(
            "POST",
            self._repo_path("git/refs"),
            json_body={"ref": f"refs/heads/{name}", "sha": base_sha},
        )
        _ensure_success(response, "create branch")
        logger.info("Branch created: %s from %s", name, base)

    def commit_files(self, branch: str, files: Sequence[GeneratedFile], message: str) -> str:
        action = "create/update files"
        parent_sha = self._ref_sha(branch, action=action)
        parent = self._client.request("GET", self._repo_path(f"git/commits/{parent_sha}"))
        _ensure_success(parent, action)
        base_tree = _require_str(_nested(parent.payload, "tree", "sha"), action, "tree sha")

        tree_entries = []
        for item in files:
            blob = self._client.request(
                "POST",
                self._repo_path("git/blobs"),
                json_body={"content": item.content, "encoding": "utf-8"},
            )
            _ensure_success(blob, action)
            tree_entries.append(
                {
                    "path": item.path,
                    "mode": "100644",
                    "type": "blob",
                    "sha": _require_str(_nested(blob.payload, "sha"), action, "blob sha"),
                },
            )

        tree = self._client.request(
            "POST",
            self._repo_path("git/trees"),
            json_body={"base_tree": base_tree, "tree": tree_entries},
        )
        _ensure_success(tree, action)
        commit = self._client.request(
            "POST",
            self._repo_path("git/commits"),
            json_body={
                "message": message,
                "tree": _require_str(_nested(tree.payload, "sha"), action, "tree sha"),
                "parents": [parent_sha],
            },
        )
        _ensure_success(commit, action)
        commit_sha = _require_str(_nested(commit.payload, "sha"), action, "commit sha")
        update = self._client.request(
            "PATCH",
            self._repo_path(f"git/refs/heads/{_quote_ref(branch)}"),
            json_body={"sha": commit_sha},
        )
        _ensure_success(update, action)
        logger.info("Committed %d file(s) to %s: %s", len(files), branch, commit_sha)
        return commit_sha

    def open_review_request(self, title: str, body: str, head: str, base: str) -> PullRequestRef:
        response = self._client.request(
            "POST",
            self._repo_path("pulls"),
            json_body={"title": title, "body": body, "head": head, "base": base},
        )
        _ensure_success(response, "create pull request")
        number = _nested(response.payload, "number")
        url = _nested(response.payload, "html_url")
        if isinstance(number, bool) or not isinstance(number, int) or not isinstance(url, str):
            raise CapabilityError("Failed to create pull request: response lacks number/html_url")
        logger.info("Pull request opened: #%d %s", number, url)
        return PullRequestRef(number=number, url=url)

    def list_comments(self, number: int) -> ReviewComments:
        issue = self._client.request("GET", self._repo_path(f"issues/{number}/comments"))
        _ensure_success(issue, "fetch PR comments")
        review = self._client.request("GET", self._repo_path(f"pulls/{number}/comments"))
        _ensure_success(review, "fetch PR comments")
        return ReviewComments(
            issue_comments=_comments(issue.payload, "issue"),
            review_comments=_comments(review.payload, "review"),
        )

    def merge_review_request(self, number: int, method: MergeMethod) -> MergeResult:
        pull = self._client.request("GET", self._repo_path(f"pulls/{number}"))
        _ensure_success(pull, "merge pull request")
        merge = self._client.request(
            "PUT",
            self._repo_path(f"pulls/{number}/merge"),
            json_body={"merge_method": method.value},
        )
        _ensure_success(merge, "merge pull request")
        url = _nested(pull.payload, "html_url")
        sha = _nested(merge.payload, "sha")
        message = _nested(merge.payload, "message")
        return MergeResult(
            merged=bool(_nested(merge.payload, "merged")),
            url=url if isinstance(url, str) else None,
            sha=sha if isinstance(sha, str) else None,
            message=message if isinstance(message, str) else None,
        )

    def close(self) -> None:
        self._client.close()

    def _ref_sha(self, branch: str, *, action: str) -> str:
        response = self._client.request(
            "GET",
            self._repo_path(f"git/ref/heads/{_quote_ref(branch)}"),
        )
        _ensure_success(response, action)
        return _require_str(_nested(response.payload, "object", "sha"), action, "ref sha")

    def _repo_path(self, suffix: str) -> str:
        return f"/repos/{quote(self.owner, safe='')}/{quote(self.repo, safe='')}/{suffix}"


def _ensure_success(response: JsonResponse, action: str) -> None:
    if response.is_success:
        return
    raise CapabilityError(
        f"Failed to {action}: {response.error}",
        transient=response.is_transient,
    )


def _nested(payload: Any, *keys: str) -> Any:
    current = payload
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _require_str(value: Any, action: str, label: str) -> str:
    if not isinstance(value, str) or not value:
        raise CapabilityError(f"Failed to {action}: response lacks {label}")
    return value


def _comments(payload: Any, kind: str) -> list:
    if not isinstance(payload, list):
        raise CapabilityError("Failed to fetch PR comments: expected a JSON array")
    parsed = (comment_from_payload(item, kind) for item in payload)
    return [comment for comment in parsed if comment is not None]


def _quote_ref(name: str) -> str:
    return quote(name, safe="/")
