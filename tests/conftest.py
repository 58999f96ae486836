"""Shared test fixtures: scripted LLM backend, in-memory version control, wired manager."""

from __future__ import annotations

import json
import sys
from collections.abc import Sequence
from pathlib import Path

import pytest

from code_agent.config import LlmSettings
from code_agent.orchestrator.backend.base import CompletionRequest
from code_agent.orchestrator.codegen import CodeGenerator
from code_agent.orchestrator.commit_messages import (
    FallbackCommitMessageWriter,
    LlmCommitMessageWriter,
)
from code_agent.orchestrator.errors import CapabilityError
from code_agent.orchestrator.manager import TaskManager
from code_agent.orchestrator.models import GeneratedFile, MergeMethod, PullRequestRef
from code_agent.orchestrator.planner import FallbackPlanner, LlmPlanner
from code_agent.orchestrator.prompts import COMMIT_SYSTEM_PROMPT, PLAN_SYSTEM_PROMPT
from code_agent.orchestrator.repository import TaskQueueRepository
from code_agent.orchestrator.workspace import BranchWorkspace
from code_agent.vcs.base import MergeResult, ReviewComments

ECHO_AGENT_COMMAND_TEMPLATE = (
    f"{sys.executable} -m code_agent.orchestrator.backend.echo_agent --prompt-file {{prompt_file}}"
)

HELLO_WORLD_HTML = "<!DOCTYPE html><html><body><h1>Hello, world!</h1></body></html>"


def files_json(files: dict[str, str]) -> str:
    return json.dumps({"files": [{"path": path, "content": body} for path, body in files.items()]})


def plan_json(*steps: dict[str, object]) -> str:
    return json.dumps({"steps": list(steps)})


class ScriptedBackend:
    """LLM backend answering by prompt kind; handlers may return text or raise."""

    def __init__(self) -> None:
        self.code = lambda request: files_json({"index.html": HELLO_WORLD_HTML})
        self.plan = lambda request: plan_json(
            {"id": "step-1", "description": "Build it", "order": 1},
        )
        self.commit = lambda request: "feat: add generated files"
        self.requests: list[CompletionRequest] = []

    def complete(self, request: CompletionRequest) -> str:
        self.requests.append(request)
        if request.system_prompt == PLAN_SYSTEM_PROMPT:
            handler = self.plan
        elif request.system_prompt == COMMIT_SYSTEM_PROMPT:
            handler = self.commit
        else:
            handler = self.code
        return handler(request)

    def requests_of_kind(self, kind: str) -> list[CompletionRequest]:
        prompts = {"plan": PLAN_SYSTEM_PROMPT, "commit": COMMIT_SYSTEM_PROMPT}
        if kind in prompts:
            return [item for item in self.requests if item.system_prompt == prompts[kind]]
        return [
            item
            for item in self.requests
            if item.system_prompt not in (PLAN_SYSTEM_PROMPT, COMMIT_SYSTEM_PROMPT)
        ]


class FakeVersionControl:
    """In-memory repository host recording every call in order."""

    def __init__(self) -> None:
        self.branches: set[str] = {"main"}
        self.events: list[tuple[str, ...]] = []
        self.commits: list[tuple[str, list[str], str]] = []
        self.pull_requests: list[dict[str, str]] = []
        self.fail_on: set[str] = set()
        self.comments = ReviewComments()
        self.merge_result = MergeResult(merged=True, url="https://github.com/acme/site/pull/1")
        self.close_calls = 0

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise CapabilityError(f"{operation} unavailable", transient=True)

    def branch_exists(self, name: str) -> bool:
        self._check("branch_exists")
        self.events.append(("branch_exists", name))
        return name in self.branches

    def create_branch(self, name: str, base: str) -> None:
        self._check("create_branch")
        if base not in self.branches:
            raise CapabilityError(f"base branch {base} missing")
        self.events.append(("create_branch", name, base))
        self.branches.add(name)

    def commit_files(self, branch: str, files: Sequence[GeneratedFile], message: str) -> str:
        self._check("commit_files")
        if branch not in self.branches:
            raise CapabilityError(f"branch {branch} missing")
        self.events.append(("commit_files", branch, message))
        self.commits.append((branch, [item.path for item in files], message))
        return f"sha-{len(self.commits)}"

    def open_review_request(self, title: str, body: str, head: str, base: str) -> PullRequestRef:
        self._check("open_review_request")
        self.events.append(("open_review_request", head, base))
        self.pull_requests.append({"title": title, "body": body, "head": head, "base": base})
        number = len(self.pull_requests)
        return PullRequestRef(number=number, url=f"https://github.com/acme/site/pull/{number}")

    def list_comments(self, number: int) -> ReviewComments:
        self._check("list_comments")
        self.events.append(("list_comments", str(number)))
        return self.comments

    def merge_review_request(self, number: int, method: MergeMethod) -> MergeResult:
        self._check("merge_review_request")
        self.events.append(("merge_review_request", str(number), method.value))
        return self.merge_result

    def close(self) -> None:
        self.close_calls += 1


@pytest.fixture()
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture()
def vcs() -> FakeVersionControl:
    return FakeVersionControl()


@pytest.fixture()
def workspace_root(tmp_path: Path) -> Path:
    return tmp_path / "workspace"


@pytest.fixture()
def manager(backend: ScriptedBackend, vcs: FakeVersionControl, workspace_root: Path) -> TaskManager:
    generator = CodeGenerator(backend, LlmSettings())
    return TaskManager(
        version_control=vcs,
        generator=generator,
        planner=FallbackPlanner(LlmPlanner(generator)),
        commit_writer=FallbackCommitMessageWriter(LlmCommitMessageWriter(generator)),
        workspace=BranchWorkspace(workspace_root),
    )


@pytest.fixture()
def repository(tmp_path: Path) -> TaskQueueRepository:
    repo = TaskQueueRepository(tmp_path / "data" / "tasks.json", lock_timeout_seconds=10)
    repo.init_store()
    return repo
