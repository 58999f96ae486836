"""MCP-first version control with per-call fallback to the REST client."""

from __future__ import annotations

from collections.abc import Sequence

from code_agent.orchestrator.fallback import call_with_fallback
from code_agent.orchestrator.models import GeneratedFile, MergeMethod, PullRequestRef
from code_agent.vcs.base import MergeResult, ReviewComments, VersionControl


class FallbackVersionControl:
    """Route each operation to ``primary`` and retry it once on ``fallback``.

    Branch existence checks always go to ``fallback``.
    """

    def __init__(self, primary: VersionControl, fallback: VersionControl) -> None:
        self.primary = primary
        self.fallback = fallback

    def create_branch(self, name: str, base: str) -> None:
        call_with_fallback(
            lambda: self.primary.create_branch(name, base),
            lambda: self.fallback.create_branch(name, base),
            operation="MCP create branch",
        )

    def branch_exists(self, name: str) -> bool:
        return self.fallback.branch_exists(name)

    def commit_files(self, branch: str, files: Sequence[GeneratedFile], message: str) -> str | None:
        return call_with_fallback(
            lambda: self.primary.commit_files(branch, files, message),
            lambda: self.fallback.commit_files(branch, files, message),
            operation="MCP commit files",
        )

    def open_review_request(
        self,
        title: str,
        body: str,
        head: str,
        base: str,
    ) -> PullRequestRef | None:
        return call_with_fallback(
            lambda: self.primary.open_review_request(title, body, head, base),
            lambda: self.fallback.open_review_request(title, body, head, base),
            operation="MCP open pull request",
        )

    def list_comments(self, number: int) -> ReviewComments:
        return call_with_fallback(
            lambda: self.primary.list_comments(number),
            lambda: self.fallback.list_comments(number),
            operation="MCP list comments",
        )

    def merge_review_request(self, number: int, method: MergeMethod) -> MergeResult:
        return call_with_fallback(
            lambda: self.primary.merge_review_request(number, method),
            lambda: self.fallback.merge_review_request(number, method),
            operation="MCP merge pull request",
        )

    def close(self) -> None:
        for client in (self.primary, self.fallback):
            close = getattr(client, "close", None)
            if close is not None:
                close()
