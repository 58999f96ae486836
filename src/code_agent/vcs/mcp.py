"""Model Context Protocol server client for GitHub operations."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from code_agent.http.client import JsonHttpClient
from code_agent.orchestrator.errors import CapabilityError
from code_agent.orchestrator.models import GeneratedFile, MergeMethod, PullRequestRef
from code_agent.vcs.base import MergeResult, ReviewComments, comment_from_payload

logger = logging.getLogger(__name__)


class McpGitHubClient:
    """Calls ``POST {server_url}/tools/<tool>`` with a JSON parameter object.

    The server does not expose branch lookups, so ``branch_exists`` is left to
    the REST client.
    """

    def __init__(
        self,
        server_url: str,
        *,
        timeout_seconds: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.server_url = server_url
        self._client = JsonHttpClient(
            base_url=server_url,
            timeout_seconds=timeout_seconds,
            max_retries=0,
            transport=transport,
        )

    def call_tool(self, tool_name: str, params: dict[str, Any]) -> dict[str, Any]:
        response = self._client.request("POST", f"/tools/{tool_name}", json_body=params)
        if not response.is_success:
            raise CapabilityError(
                f"MCP server error calling {tool_name}: {response.error}",
                transient=response.is_transient,
            )
        if not isinstance(response.payload, dict):
            raise CapabilityError(f"MCP tool {tool_name} returned a non-object payload")
        if response.payload.get("success") is False:
            error = response.payload.get("error") or "unknown error"
            raise CapabilityError(f"MCP tool {tool_name} failed: {error}")
        return response.payload

    def create_branch(self, name: str, base: str) -> None:
        self.call_tool("github_create_branch", {"branch": name, "base": base})

    def commit_files(self, branch: str, files: Sequence[GeneratedFile], message: str) -> str | None:
        result = self.call_tool(
            "github_create_commit",
            {
                "branch": branch,
                "files": [item.to_dict() for item in files],
                "message": message,
            },
        )
        commit = result.get("commit")
        return commit if isinstance(commit, str) else None

    def open_review_request(
        self,
        title: str,
        body: str,
        head: str,
        base: str,
    ) -> PullRequestRef | None:
        result = self.call_tool(
            "github_create_pull_request",
            {"title": title, "body": body, "head": head, "base": base},
        )
        pr = result.get("pr", result)
        if not isinstance(pr, dict):
            return None
        number = pr.get("number")
        url = pr.get("html_url", pr.get("url"))
        if isinstance(number, bool) or not isinstance(number, int) or not isinstance(url, str):
            logger.warning("MCP pull request response lacks number/url: %s", sorted(result))
            return None
        return PullRequestRef(number=number, url=url)

    def list_comments(self, number: int) -> ReviewComments:
        result = self.call_tool("github_get_pull_request_comments", {"pr_number": number})
        issue = result.get("comments", [])
        review = result.get("reviewComments", result.get("review_comments", []))
        if not isinstance(issue, list) or not isinstance(review, list):
            raise CapabilityError("MCP comments response must contain comment arrays")
        return ReviewComments(
            issue_comments=[
                comment
                for comment in (comment_from_payload(item, "issue") for item in issue)
                if comment is not None
            ],
            review_comments=[
                comment
                for comment in (comment_from_payload(item, "review") for item in review)
                if comment is not None
            ],
        )

    def merge_review_request(self, number: int, method: MergeMethod) -> MergeResult:
        result = self.call_tool(
            "github_merge_pull_request",
            {"pr_number": number, "merge_method": method.value},
        )
        pr = result.get("pr")
        url = pr.get("html_url") if isinstance(pr, dict) else None
        return MergeResult(
            merged=bool(result.get("merged", url is not None)),
            url=url if isinstance(url, str) else None,
        )

    def close(self) -> None:
        self._client.close()
