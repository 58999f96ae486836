"""Version-control capability contract consumed by the task manager."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from code_agent.orchestrator.models import GeneratedFile, MergeMethod, PullRequestRef


@dataclass(slots=True)
class ReviewComment:
    """Issue-style (``kind="issue"``) or inline review (``kind="review"``) comment."""

    id: int
    body: str
    user: str
    created_at: str
    kind: str = "issue"
    path: str | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "id": self.id,
            "body": self.body,
            "user": self.user,
            "created_at": self.created_at,
            "type": self.kind,
        }
        if self.path is not None:
            payload["path"] = self.path
        return payload


@dataclass(slots=True)
class ReviewComments:
    issue_comments: list[ReviewComment] = field(default_factory=list)
    review_comments: list[ReviewComment] = field(default_factory=list)


@dataclass(slots=True)
class MergeResult:
    """Merge outcome; ``url`` is the merged review request page when known."""

    merged: bool
    url: str | None = None
    sha: str | None = None
    message: str | None = None


class VersionControl(Protocol):
    """Branch, commit and review-request operations; failures raise ``CapabilityError``."""

    def create_branch(self, name: str, base: str) -> None: ...

    def branch_exists(self, name: str) -> bool: ...

    def commit_files(self, branch: str, files: Sequence[GeneratedFile], message: str) -> str | None:
        """Commit ``files`` on top of ``branch`` and return the commit sha when known."""

    def open_review_request(
        self,
        title: str,
        body: str,
        head: str,
        base: str,
    ) -> PullRequestRef | None: ...

    def list_comments(self, number: int) -> ReviewComments: ...

    def merge_review_request(self, number: int, method: MergeMethod) -> MergeResult: ...


def comment_from_payload(raw: object, kind: str) -> ReviewComment | None:
    """Normalize a GitHub-shaped comment object; returns ``None`` for junk entries."""

    if not isinstance(raw, dict):
        return None
    comment_id = raw.get("id")
    if isinstance(comment_id, bool) or not isinstance(comment_id, int):
        return None
    user = raw.get("user")
    if isinstance(user, dict):
        login = user.get("login")
    else:
        login = user
    created_at = raw.get("created_at", raw.get("createdAt", ""))
    path = raw.get("path")
    return ReviewComment(
        id=comment_id,
        body=str(raw.get("body") or ""),
        user=login if isinstance(login, str) and login else "unknown",
        created_at=str(created_at or ""),
        kind=kind,
        path=path if isinstance(path, str) else None,
    )
