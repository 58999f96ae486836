"""Controllers for queue, worker and pull request CLI commands."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from code_agent.config import Settings
from code_agent.orchestrator.common import to_iso, utc_now
from code_agent.orchestrator.errors import TaskNotFoundError
from code_agent.orchestrator.models import MergeMethod, QueueStats, Task, TaskOptions, TaskStatus
from code_agent.orchestrator.services import build_repository, build_task_manager, build_worker


@dataclass(slots=True)
class TaskOptionsInput:
    """Raw CLI flags that shape ``TaskOptions``."""

    create_pr: bool = True
    base_branch: str = "main"
    branch_name: str | None = None
    requirements: str | None = None
    existing_files: tuple[Path, ...] = ()
    single_step: bool = False
    extra_options: tuple[str, ...] = ()


@dataclass(slots=True)
class TaskAddCommand:
    queue_file: Path | None
    description: str
    options: TaskOptionsInput


@dataclass(slots=True)
class TaskListCommand:
    queue_file: Path | None
    status: str | None


@dataclass(slots=True)
class TaskIdCommand:
    """CLI input for commands addressing one queued task."""

    queue_file: Path | None
    task_id: str


@dataclass(slots=True)
class QueueCommand:
    queue_file: Path | None


@dataclass(slots=True)
class WorkerCommand:
    """CLI input for worker execution."""

    queue_file: Path | None
    once: bool
    max_tasks: int | None
    max_idle_polls: int | None = None


@dataclass(slots=True)
class RunTaskCommand:
    """CLI input for processing one description without the queue."""

    description: str
    options: TaskOptionsInput


@dataclass(slots=True)
class PullRequestCommand:
    number: int
    merge_method: str = MergeMethod.MERGE.value


class TaskCliController:
    """Coordinates queue, worker and pull request CLI operations."""

    def add_task(self, command: TaskAddCommand) -> list[str]:
        settings = Settings.from_env(queue_file=command.queue_file)
        repository = build_repository(settings)
        task = repository.add_task(command.description, build_options(command.options))
        return [
            f"Task enqueued: task_id={task.id} status={task.status.value}",
            f"Queue file: {settings.queue_file}",
        ]

    def list_tasks(self, command: TaskListCommand) -> list[str]:
        settings = Settings.from_env(queue_file=command.queue_file)
        repository = build_repository(settings)
        if command.status is not None:
            tasks = repository.list_tasks(TaskStatus(command.status.strip().lower()))
        else:
            tasks = repository.list_tasks().all_tasks()

        lines = [f"Tasks: {len(tasks)}"]
        for task in tasks:
            lines.append(
                f"  {task.id} status={task.status.value} "
                f"created_at={to_iso(task.created_at)} description={_preview(task.description)}",
            )
        return lines

    def show_task(self, command: TaskIdCommand) -> list[str]:
        settings = Settings.from_env(queue_file=command.queue_file)
        task = build_repository(settings).get_task(command.task_id)
        if task is None:
            raise TaskNotFoundError(command.task_id)
        return _task_lines(task)

    def retry_task(self, command: TaskIdCommand) -> list[str]:
        settings = Settings.from_env(queue_file=command.queue_file)
        task = build_repository(settings).retry_task(command.task_id)
        return [f"Task re-queued: {task.id}"]

    def stats(self, command: QueueCommand) -> list[str]:
        settings = Settings.from_env(queue_file=command.queue_file)
        return [_stats_line(build_repository(settings).get_stats())]

    def health(self, command: QueueCommand) -> list[str]:
        settings = Settings.from_env(queue_file=command.queue_file)
        stats = build_repository(settings).get_stats()
        return [
            "Status: ok",
            f"Timestamp: {to_iso(utc_now())}",
            f"Queue file: {settings.queue_file}",
            _stats_line(stats),
        ]

    def run_worker(self, command: WorkerCommand) -> list[str]:
        settings = Settings.from_env(queue_file=command.queue_file)
        settings.validate_for_worker()
        worker = build_worker(settings)
        try:
            summary = (
                worker.run_once()
                if command.once
                else worker.run_loop(
                    max_tasks=command.max_tasks,
                    max_idle_polls=command.max_idle_polls,
                )
            )
        finally:
            worker.manager.close()
        return [
            "Worker summary: "
            f"processed={summary.processed} succeeded={summary.succeeded} "
            f"failed={summary.failed} idle_polls={summary.idle_polls}",
        ]

    def run_task(self, command: RunTaskCommand) -> list[str]:
        settings = Settings.from_env()
        settings.validate_for_worker()
        options = TaskOptions.from_mapping(build_options(command.options))
        manager = build_task_manager(settings)
        try:
            result = manager.process_task(command.description, options)
        finally:
            manager.close()
        lines = [
            f"Task completed: run_id={result.task_id} branch={result.branch_name}",
            f"Commit message: {result.commit_message}",
            f"Files: {len(result.files)}",
        ]
        lines.extend(f"  {item.path}" for item in result.files)
        if result.pr is not None:
            lines.append(f"PR: #{result.pr.number} {result.pr.url}")
        return lines

    def pr_comments(self, command: PullRequestCommand) -> list[str]:
        settings = Settings.from_env()
        settings.validate_for_worker()
        manager = build_task_manager(settings)
        try:
            comments = manager.get_pr_comments(command.number)
        finally:
            manager.close()
        lines = [
            f"PR #{command.number}: issue_comments={len(comments.issue_comments)} "
            f"review_comments={len(comments.review_comments)}",
        ]
        for comment in [*comments.issue_comments, *comments.review_comments]:
            location = f" path={comment.path}" if comment.path else ""
            lines.append(
                f"  [{comment.kind}] {comment.user} at {comment.created_at or '-'}{location}: "
                f"{_preview(comment.body)}",
            )
        return lines

    def pr_merge(self, command: PullRequestCommand) -> list[str]:
        settings = Settings.from_env()
        settings.validate_for_worker()
        manager = build_task_manager(settings)
        try:
            result = manager.merge_pr(command.number, MergeMethod(command.merge_method))
        finally:
            manager.close()
        return [f"PR merged: #{command.number} method={command.merge_method} url={result.url}"]


def build_options(raw: TaskOptionsInput) -> dict[str, Any]:
    """Translate CLI flags into the queue's option mapping."""

    options: dict[str, Any] = {}
    for item in raw.extra_options:
        key, separator, value = item.partition("=")
        if not separator or not key.strip():
            raise ValueError(f"Invalid --option {item!r}; expected key=value")
        options[key.strip()] = _parse_option_value(value)

    options.update(
        {
            "create_pr": raw.create_pr,
            "base_branch": raw.base_branch,
            "multi_step": not raw.single_step,
        },
    )
    if raw.branch_name:
        options["branch_name"] = raw.branch_name
    if raw.requirements:
        options["requirements"] = raw.requirements
    if raw.existing_files:
        options["existing_files"] = {
            path.as_posix(): path.read_text("utf-8") for path in raw.existing_files
        }
    return options


def _parse_option_value(value: str) -> Any:
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def _task_lines(task: Task) -> list[str]:
    lines = [
        f"Task: {task.id}",
        f"Status: {task.status.value}",
        f"Description: {task.description}",
        f"Created: {to_iso(task.created_at)}",
        f"Started: {to_iso(task.started_at) or '-'}",
        f"Completed: {to_iso(task.completed_at) or '-'}",
        f"Failed: {to_iso(task.failed_at) or '-'}",
        f"Error: {task.error or '-'}",
        f"Options: {json.dumps(_visible_options(task.options), ensure_ascii=False, sort_keys=True)}",
    ]
    if task.result is not None:
        lines.append(f"Branch: {task.result.branch_name}")
        lines.append(f"Commit message: {task.result.commit_message}")
        if task.result.pr is not None:
            lines.append(f"PR: #{task.result.pr.number} {task.result.pr.url}")
        lines.append(f"Files: {len(task.result.files)}")
        lines.extend(f"  {item.path}" for item in task.result.files)
    return lines


def _visible_options(options: TaskOptions) -> dict[str, Any]:
    payload = options.to_dict()
    payload["existing_files"] = sorted(options.existing_files)
    return payload


def _stats_line(stats: QueueStats) -> str:
    return (
        f"Queue: pending={stats.pending} processing={stats.processing} "
        f"completed={stats.completed} failed={stats.failed} total={stats.total}"
    )


def _preview(text: str, limit: int = 80) -> str:
    compact = " ".join(text.split())
    if len(compact) <= limit:
        return compact
    return compact[: limit - 3] + "..."
