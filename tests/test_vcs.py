from __future__ import annotations

import json
from collections.abc import Callable

import allure
import httpx
import pytest

from code_agent.config import GitHubSettings
from code_agent.orchestrator.errors import CapabilityError
from code_agent.orchestrator.models import GeneratedFile, MergeMethod, PullRequestRef
from code_agent.vcs import FallbackVersionControl, GitHubRestClient, McpGitHubClient
from conftest import FakeVersionControl

pytestmark = [
    allure.epic("Version Control"),
    allure.feature("GitHub Integrations"),
]

REPO = "/repos/acme/site"

Route = Callable[[httpx.Request], httpx.Response]


class RecordingTransport(httpx.MockTransport):
    """Route by ``(method, path)`` and keep every request for assertions."""

    def __init__(self, routes: dict[tuple[str, str], Route | httpx.Response]) -> None:
        self.routes = routes
        self.calls: list[tuple[str, str, object]] = []
        super().__init__(self._dispatch)

    def _dispatch(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, request.url.path, body))
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": "Not Found"})
        if isinstance(route, httpx.Response):
            return route
        return route(request)


def _github(transport: httpx.BaseTransport) -> GitHubRestClient:
    return GitHubRestClient(
        GitHubSettings(token="secret", owner="acme", repo="site"),
        transport=transport,
    )


def test_branch_exists_maps_404_to_false() -> None:
    transport = RecordingTransport(
        {("GET", f"{REPO}/branches/main"): httpx.Response(200, json={"name": "main"})},
    )
    client = _github(transport)

    assert client.branch_exists("main") is True
    assert client.branch_exists("feature/missing") is False


def test_branch_exists_raises_on_server_error() -> None:
    transport = RecordingTransport(
        {("GET", f"{REPO}/branches/main"): httpx.Response(502, json={"message": "Bad gateway"})},
    )

    with pytest.raises(CapabilityError, match="Failed to check branch: HTTP 502") as error:
        _github(transport).branch_exists("main")

    assert error.value.transient is True


def test_create_branch_points_new_ref_at_base_head() -> None:
    transport = RecordingTransport(
        {
            ("GET", f"{REPO}/git/ref/heads/main"): httpx.Response(
                200,
                json={"object": {"sha": "base-sha"}},
            ),
            ("POST", f"{REPO}/git/refs"): httpx.Response(201, json={"ref": "refs/heads/feature/x"}),
        },
    )

    _github(transport).create_branch("feature/x", "main")

    assert transport.calls[-1] == (
        "POST",
        f"{REPO}/git/refs",
        {"ref": "refs/heads/feature/x", "sha": "base-sha"},
    )


def test_create_branch_from_missing_base_fails() -> None:
    transport = RecordingTransport({})

    with pytest.raises(CapabilityError, match="Failed to create branch: HTTP 404: Not Found"):
        _github(transport).create_branch("feature/x", "nope")


def test_commit_files_builds_tree_and_moves_ref() -> None:
    blob_counter = iter(range(1, 10))
    transport = RecordingTransport(
        {
            ("GET", f"{REPO}/git/ref/heads/feature/x"): httpx.Response(
                200,
                json={"object": {"sha": "parent-sha"}},
            ),
            ("GET", f"{REPO}/git/commits/parent-sha"): httpx.Response(
                200,
                json={"tree": {"sha": "base-tree"}},
            ),
            ("POST", f"{REPO}/git/blobs"): lambda request: httpx.Response(
                201,
                json={"sha": f"blob-{next(blob_counter)}"},
            ),
            ("POST", f"{REPO}/git/trees"): httpx.Response(201, json={"sha": "new-tree"}),
            ("POST", f"{REPO}/git/commits"): httpx.Response(201, json={"sha": "new-commit"}),
            ("PATCH", f"{REPO}/git/refs/heads/feature/x"): httpx.Response(200, json={}),
        },
    )
    files = [
        GeneratedFile(path="index.html", content="<h1>Hi</h1>"),
        GeneratedFile(path="css/site.css", content="h1 {}"),
    ]

    sha = _github(transport).commit_files("feature/x", files, "feat: hello")

    assert sha == "new-commit"
    bodies = {(method, path): body for method, path, body in transport.calls}
    assert bodies[("POST", f"{REPO}/git/trees")] == {
        "base_tree": "base-tree",
        "tree": [
            {"path": "index.html", "mode": "100644", "type": "blob", "sha": "blob-1"},
            {"path": "css/site.css", "mode": "100644", "type": "blob", "sha": "blob-2"},
        ],
    }
    assert bodies[("POST", f"{REPO}/git/commits")] == {
        "message": "feat: hello",
        "tree": "new-tree",
        "parents": ["parent-sha"],
    }
    assert bodies[("PATCH", f"{REPO}/git/refs/heads/feature/x")] == {"sha": "new-commit"}


def test_open_review_request_returns_number_and_url() -> None:
    transport = RecordingTransport(
        {
            ("POST", f"{REPO}/pulls"): httpx.Response(
                201,
                json={"number": 12, "html_url": "https://github.com/acme/site/pull/12"},
            ),
        },
    )

    pr = _github(transport).open_review_request("feat: x", "body", "feature/x", "main")

    assert pr == PullRequestRef(number=12, url="https://github.com/acme/site/pull/12")
    assert transport.calls[0][2] == {
        "title": "feat: x",
        "body": "body",
        "head": "feature/x",
        "base": "main",
    }


def test_list_comments_combines_issue_and_review_threads() -> None:
    transport = RecordingTransport(
        {
            ("GET", f"{REPO}/issues/4/comments"): httpx.Response(
                200,
                json=[
                    {
                        "id": 1,
                        "body": "Nice",
                        "user": {"login": "octo"},
                        "created_at": "2026-01-01T00:00:00Z",
                    },
                    "junk",
                ],
            ),
            ("GET", f"{REPO}/pulls/4/comments"): httpx.Response(
                200,
                json=[{"id": 2, "body": "Rename", "user": {"login": "cat"}, "path": "a.py"}],
            ),
        },
    )

    comments = _github(transport).list_comments(4)

    assert [item.to_dict() for item in comments.issue_comments] == [
        {
            "id": 1,
            "body": "Nice",
            "user": "octo",
            "created_at": "2026-01-01T00:00:00Z",
            "type": "issue",
        },
    ]
    (review,) = comments.review_comments
    assert review.kind == "review"
    assert review.path == "a.py"


def test_merge_review_request_uses_method_and_reports_url() -> None:
    transport = RecordingTransport(
        {
            ("GET", f"{REPO}/pulls/9"): httpx.Response(
                200,
                json={"html_url": "https://github.com/acme/site/pull/9"},
            ),
            ("PUT", f"{REPO}/pulls/9/merge"): httpx.Response(
                200,
                json={"merged": True, "sha": "abc", "message": "Pull Request successfully merged"},
            ),
        },
    )

    result = _github(transport).merge_review_request(9, MergeMethod.SQUASH)

    assert result.merged is True
    assert result.url == "https://github.com/acme/site/pull/9"
    assert result.sha == "abc"
    assert transport.calls[-1][2] == {"merge_method": "squash"}


def test_requests_carry_token_header() -> None:
    seen: list[str] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers["Authorization"])
        return httpx.Response(200, json={})

    _github(httpx.MockTransport(_handler)).branch_exists("main")

    assert seen == ["Bearer secret"]


def _mcp(
    routes: dict[tuple[str, str], Route | httpx.Response],
) -> tuple[McpGitHubClient, RecordingTransport]:
    transport = RecordingTransport(routes)
    return McpGitHubClient("http://mcp.local", transport=transport), transport


def test_mcp_tools_receive_parameters() -> None:
    client, transport = _mcp(
        {
            ("POST", "/tools/github_create_branch"): httpx.Response(200, json={"success": True}),
            ("POST", "/tools/github_create_commit"): httpx.Response(
                200,
                json={"success": True, "commit": "c1"},
            ),
            ("POST", "/tools/github_create_pull_request"): httpx.Response(
                200,
                json={"pr": {"number": 3, "html_url": "https://github.com/acme/site/pull/3"}},
            ),
        },
    )

    client.create_branch("feature/x", "main")
    sha = client.commit_files("feature/x", [GeneratedFile("a.txt", "A")], "feat: a")
    pr = client.open_review_request("t", "b", "feature/x", "main")

    assert sha == "c1"
    assert pr == PullRequestRef(number=3, url="https://github.com/acme/site/pull/3")
    assert transport.calls[0][2] == {"branch": "feature/x", "base": "main"}
    assert transport.calls[1][2] == {
        "branch": "feature/x",
        "files": [{"path": "a.txt", "content": "A"}],
        "message": "feat: a",
    }


def test_mcp_tool_failure_raises_capability_error() -> None:
    client, _ = _mcp(
        {
            ("POST", "/tools/github_create_branch"): httpx.Response(
                200,
                json={"success": False, "error": "branch exists"},
            ),
        },
    )

    with pytest.raises(CapabilityError, match="github_create_branch failed: branch exists"):
        client.create_branch("feature/x", "main")


def test_mcp_comments_and_merge() -> None:
    client, _ = _mcp(
        {
            ("POST", "/tools/github_get_pull_request_comments"): httpx.Response(
                200,
                json={
                    "comments": [{"id": 1, "body": "ok", "user": "octo"}],
                    "reviewComments": [{"id": 2, "body": "fix", "user": {"login": "cat"}}],
                },
            ),
            ("POST", "/tools/github_merge_pull_request"): httpx.Response(
                200,
                json={"pr": {"html_url": "https://github.com/acme/site/pull/2"}},
            ),
        },
    )

    comments = client.list_comments(2)
    merged = client.merge_review_request(2, MergeMethod.REBASE)

    assert [item.user for item in comments.issue_comments] == ["octo"]
    assert [item.user for item in comments.review_comments] == ["cat"]
    assert merged.url == "https://github.com/acme/site/pull/2"
    assert merged.merged is True


def test_fallback_uses_rest_when_mcp_unreachable() -> None:
    def _refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    rest = FakeVersionControl()
    vcs = FallbackVersionControl(
        primary=McpGitHubClient("http://mcp.local", transport=httpx.MockTransport(_refuse)),
        fallback=rest,
    )

    vcs.create_branch("feature/x", "main")
    vcs.commit_files("feature/x", [GeneratedFile("a.txt", "A")], "feat: a")
    pr = vcs.open_review_request("t", "b", "feature/x", "main")

    assert [event[0] for event in rest.events] == [
        "create_branch",
        "commit_files",
        "open_review_request",
    ]
    assert pr is not None
    assert pr.number == 1


def test_fallback_prefers_primary_and_checks_branches_on_rest() -> None:
    primary = FakeVersionControl()
    rest = FakeVersionControl()
    rest.branches.add("feature/rest-only")
    vcs = FallbackVersionControl(primary=primary, fallback=rest)

    vcs.create_branch("feature/x", "main")

    assert vcs.branch_exists("feature/rest-only") is True
    assert [event[0] for event in primary.events] == ["create_branch"]
    assert [event[0] for event in rest.events] == ["branch_exists"]


def test_fallback_propagates_when_both_fail() -> None:
    primary = FakeVersionControl()
    rest = FakeVersionControl()
    primary.fail_on.add("merge_review_request")
    rest.fail_on.add("merge_review_request")

    with pytest.raises(CapabilityError, match="merge_review_request unavailable"):
        FallbackVersionControl(primary=primary, fallback=rest).merge_review_request(
            1,
            MergeMethod.MERGE,
        )
