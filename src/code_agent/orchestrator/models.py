"""Domain models for the task queue, plans and execution results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from code_agent.orchestrator.common import from_iso, to_iso


class TaskStatus(str, Enum):
    """Durable task lifecycle states, one per queue partition."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(str, Enum):
    """Plan step lifecycle states."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"


class RunStatus(str, Enum):
    """In-memory status of one task processing run."""

    PROCESSING = "processing"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"


class MergeMethod(str, Enum):
    """Supported review request merge strategies."""

    MERGE = "merge"
    SQUASH = "squash"
    REBASE = "rebase"


@dataclass(slots=True)
class GeneratedFile:
    """One generated file, path relative to the repository root."""

    path: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "content": self.content}

    @classmethod
    def from_dict(cls, raw: object) -> GeneratedFile:
        if not isinstance(raw, dict):
            raise TypeError("file entry must be an object")
        path = raw.get("path")
        content = raw.get("content")
        if not isinstance(path, str) or not path.strip():
            raise ValueError("file.path must be a non-empty string")
        if not isinstance(content, str):
            raise TypeError("file.content must be a string")
        return cls(path=path, content=content)


@dataclass(slots=True)
class PullRequestRef:
    """Reference to an opened review request."""

    number: int
    url: str

    def to_dict(self) -> dict[str, object]:
        return {"number": self.number, "url": self.url}

    @classmethod
    def from_dict(cls, raw: object) -> PullRequestRef:
        if not isinstance(raw, dict):
            raise TypeError("pr must be an object")
        number = raw.get("number")
        url = raw.get("url")
        if not isinstance(number, int):
            raise TypeError("pr.number must be an integer")
        if not isinstance(url, str):
            raise TypeError("pr.url must be a string")
        return cls(number=number, url=url)


_KNOWN_OPTION_KEYS = frozenset(
    {
        "create_pr",
        "base_branch",
        "branch_name",
        "requirements",
        "existing_files",
        "multi_step",
    },
)


@dataclass(slots=True)
class TaskOptions:
    """Per-task settings with an open bag for forward-compatible fields."""

    create_pr: bool = True
    base_branch: str = "main"
    branch_name: str | None = None
    requirements: str | None = None
    existing_files: dict[str, str] = field(default_factory=dict)
    multi_step: bool = True
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, raw: dict[str, Any] | None) -> TaskOptions:
        """Apply defaults: PRs and planning stay on unless explicitly ``False``."""

        values = dict(raw or {})
        existing_files = values.get("existing_files") or {}
        if not isinstance(existing_files, dict) or not all(
            isinstance(path, str) and isinstance(content, str)
            for path, content in existing_files.items()
        ):
            raise TypeError("options.existing_files must map paths to string contents")
        branch_name = values.get("branch_name")
        requirements = values.get("requirements")
        return cls(
            create_pr=values.get("create_pr") is not False,
            base_branch=str(values.get("base_branch") or "main"),
            branch_name=str(branch_name) if branch_name else None,
            requirements=str(requirements) if requirements else None,
            existing_files=dict(existing_files),
            multi_step=values.get("multi_step") is not False,
            extra={key: value for key, value in values.items() if key not in _KNOWN_OPTION_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.extra)
        payload.update(
            {
                "create_pr": self.create_pr,
                "base_branch": self.base_branch,
                "branch_name": self.branch_name,
                "requirements": self.requirements,
                "existing_files": dict(self.existing_files),
                "multi_step": self.multi_step,
            },
        )
        return payload


@dataclass(slots=True)
class TaskResult:
    """Outcome of a successfully processed task."""

    task_id: str
    branch_name: str
    files: list[GeneratedFile]
    commit_message: str
    pr: PullRequestRef | None = None
    success: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "task_id": self.task_id,
            "branch_name": self.branch_name,
            "files": [item.to_dict() for item in self.files],
            "commit_message": self.commit_message,
            "pr": self.pr.to_dict() if self.pr is not None else None,
        }

    @classmethod
    def from_dict(cls, raw: object) -> TaskResult:
        if not isinstance(raw, dict):
            raise TypeError("result must be an object")
        files = raw.get("files", [])
        if not isinstance(files, list):
            raise TypeError("result.files must be an array")
        pr_raw = raw.get("pr")
        return cls(
            task_id=str(raw.get("task_id", "")),
            branch_name=str(raw.get("branch_name", "")),
            files=[GeneratedFile.from_dict(item) for item in files],
            commit_message=str(raw.get("commit_message", "")),
            pr=PullRequestRef.from_dict(pr_raw) if pr_raw is not None else None,
            success=bool(raw.get("success", True)),
        )


@dataclass(slots=True)
class Task:
    """Durable unit of work tracked through the queue partitions."""

    id: str
    description: str
    status: TaskStatus
    created_at: datetime
    options: TaskOptions = field(default_factory=TaskOptions)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    result: TaskResult | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "description": self.description,
            "status": self.status.value,
            "created_at": to_iso(self.created_at),
            "options": self.options.to_dict(),
        }
        optional: dict[str, Any] = {
            "started_at": to_iso(self.started_at),
            "completed_at": to_iso(self.completed_at),
            "failed_at": to_iso(self.failed_at),
            "result": self.result.to_dict() if self.result is not None else None,
            "error": self.error,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload

    @classmethod
    def from_dict(cls, raw: object) -> Task:
        if not isinstance(raw, dict):
            raise TypeError("task entry must be an object")
        task_id = raw.get("id")
        description = raw.get("description")
        created_at = raw.get("created_at")
        if not isinstance(task_id, str) or not task_id:
            raise ValueError("task.id must be a non-empty string")
        if not isinstance(description, str):
            raise TypeError("task.description must be a string")
        if not isinstance(created_at, str):
            raise TypeError("task.created_at must be an ISO timestamp")
        result_raw = raw.get("result")
        error = raw.get("error")
        return cls(
            id=task_id,
            description=description,
            status=TaskStatus(raw.get("status", TaskStatus.PENDING.value)),
            created_at=from_iso(created_at),
            options=TaskOptions.from_mapping(raw.get("options")),
            started_at=_optional_datetime(raw.get("started_at")),
            completed_at=_optional_datetime(raw.get("completed_at")),
            failed_at=_optional_datetime(raw.get("failed_at")),
            result=TaskResult.from_dict(result_raw) if result_raw is not None else None,
            error=str(error) if error is not None else None,
        )


@dataclass(slots=True)
class QueueSnapshot:
    """All four queue partitions, in queue order."""

    pending: list[Task] = field(default_factory=list)
    processing: list[Task] = field(default_factory=list)
    completed: list[Task] = field(default_factory=list)
    failed: list[Task] = field(default_factory=list)

    def partition(self, status: TaskStatus) -> list[Task]:
        return getattr(self, status.value)

    def all_tasks(self) -> list[Task]:
        return [*self.pending, *self.processing, *self.completed, *self.failed]

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {
            status.value: [task.to_dict() for task in self.partition(status)]
            for status in TaskStatus
        }

    @classmethod
    def from_dict(cls, raw: object) -> QueueSnapshot:
        if not isinstance(raw, dict):
            raise TypeError("queue document must be an object")
        snapshot = cls()
        for status in TaskStatus:
            entries = raw.get(status.value, [])
            if not isinstance(entries, list):
                raise TypeError(f"queue.{status.value} must be an array")
            snapshot.partition(status).extend(Task.from_dict(entry) for entry in entries)
        return snapshot


@dataclass(slots=True)
class QueueStats:
    """Derived partition counts."""

    pending: int
    processing: int
    completed: int
    failed: int

    @property
    def total(self) -> int:
        return self.pending + self.processing + self.completed + self.failed

    def to_dict(self) -> dict[str, int]:
        return {
            "pending": self.pending,
            "processing": self.processing,
            "completed": self.completed,
            "failed": self.failed,
            "total": self.total,
        }


@dataclass(slots=True)
class StepResult:
    """Files and commit message produced by one executed step."""

    files: list[GeneratedFile]
    commit_message: str


@dataclass(slots=True)
class PlanStep:
    """One ordered, dependency-gated unit of a plan."""

    id: str
    description: str
    order: int
    dependencies: tuple[str, ...] = ()
    status: StepStatus = StepStatus.PENDING
    result: StepResult | None = None
    error: str | None = None


@dataclass(slots=True)
class Plan:
    """Ordered breakdown of a task; lives only for one processing run."""

    steps: list[PlanStep]
    current_step_index: int = 0

    @property
    def is_multi_step(self) -> bool:
        return len(self.steps) > 1

    def step_by_id(self, step_id: str) -> PlanStep | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def unmet_dependencies(self, step: PlanStep) -> tuple[str, ...]:
        unmet: list[str] = []
        for dependency_id in step.dependencies:
            dependency = self.step_by_id(dependency_id)
            if dependency is None or dependency.status != StepStatus.COMPLETED:
                unmet.append(dependency_id)
        return tuple(unmet)


def _optional_datetime(value: object) -> datetime | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise TypeError("timestamps must be ISO strings")
    return from_iso(value)
