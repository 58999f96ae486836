"""CLI entrypoint for code-agent."""

import logging
from collections.abc import Callable
from pathlib import Path

import rich_click as click

from code_agent import __version__
from code_agent.config import Settings
from code_agent.orchestrator.controllers import (
    PullRequestCommand,
    QueueCommand,
    RunTaskCommand,
    TaskAddCommand,
    TaskCliController,
    TaskIdCommand,
    TaskListCommand,
    TaskOptionsInput,
    WorkerCommand,
)
from code_agent.orchestrator.errors import (
    CapabilityError,
    QueueStoreError,
    TaskNotFoundError,
    UnmetDependencyError,
)
from code_agent.orchestrator.models import MergeMethod, TaskStatus

click.rich_click.USE_MARKDOWN = True
CONTROLLER = TaskCliController()

_USER_ERRORS = (
    TaskNotFoundError,
    CapabilityError,
    UnmetDependencyError,
    QueueStoreError,
    ValueError,
    TypeError,
    OSError,
)

queue_file_option = click.option(
    "--queue-file",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Queue JSON file. Defaults to CODE_AGENT_QUEUE_FILE or data/tasks.json.",
)


def task_options(command: Callable) -> Callable:
    """Shared flags that become ``TaskOptions`` for ``tasks add`` and ``run``."""

    decorators = [
        click.option(
            "--pr/--no-pr",
            "create_pr",
            default=True,
            show_default=True,
            help="Open a pull request once code is committed.",
        ),
        click.option("--base-branch", default="main", show_default=True, help="Base branch."),
        click.option(
            "--branch-name",
            default=None,
            help="Target branch. Defaults to feature/<run id>.",
        ),
        click.option("--requirements", default=None, help="Additional free-text requirements."),
        click.option(
            "--existing-file",
            "existing_files",
            multiple=True,
            type=click.Path(path_type=Path, exists=True, dir_okay=False),
            help="File passed to the generator as context. Can be repeated.",
        ),
        click.option(
            "--single-step",
            is_flag=True,
            default=False,
            help="Skip planning and generate everything in one step.",
        ),
        click.option(
            "--option",
            "extra_options",
            multiple=True,
            help="Extra task option as key=value (JSON values accepted). Can be repeated.",
        ),
    ]
    for decorator in reversed(decorators):
        command = decorator(command)
    return command


@click.group()
@click.version_option(version=__version__, prog_name="code-agent")
def code_agent() -> None:
    """Autonomous code-generation agent: task queue, worker and pull requests."""

    logging.basicConfig(
        level=Settings.from_env().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@code_agent.group()
def tasks() -> None:
    """Task queue commands."""


@tasks.command("add")
@click.argument("description")
@queue_file_option
@task_options
def tasks_add(  # noqa: PLR0913
    description: str,
    queue_file: Path | None,
    create_pr: bool,
    base_branch: str,
    branch_name: str | None,
    requirements: str | None,
    existing_files: tuple[Path, ...],
    single_step: bool,
    extra_options: tuple[str, ...],
) -> None:
    """Add a task to the pending queue."""

    _emit(
        lambda: CONTROLLER.add_task(
            TaskAddCommand(
                queue_file=queue_file,
                description=description,
                options=TaskOptionsInput(
                    create_pr=create_pr,
                    base_branch=base_branch,
                    branch_name=branch_name,
                    requirements=requirements,
                    existing_files=existing_files,
                    single_step=single_step,
                    extra_options=extra_options,
                ),
            ),
        ),
    )


@tasks.command("list")
@queue_file_option
@click.option(
    "--status",
    type=click.Choice([status.value for status in TaskStatus], case_sensitive=False),
    default=None,
    help="Optional status filter.",
)
def tasks_list(queue_file: Path | None, status: str | None) -> None:
    """List queued tasks."""

    _emit(lambda: CONTROLLER.list_tasks(TaskListCommand(queue_file=queue_file, status=status)))


@tasks.command("show")
@click.argument("task_id")
@queue_file_option
def tasks_show(task_id: str, queue_file: Path | None) -> None:
    """Show one task with its result or error."""

    _emit(lambda: CONTROLLER.show_task(TaskIdCommand(queue_file=queue_file, task_id=task_id)))


@tasks.command("retry")
@click.argument("task_id")
@queue_file_option
def tasks_retry(task_id: str, queue_file: Path | None) -> None:
    """Move a failed task back to pending."""

    _emit(lambda: CONTROLLER.retry_task(TaskIdCommand(queue_file=queue_file, task_id=task_id)))


@tasks.command("stats")
@queue_file_option
def tasks_stats(queue_file: Path | None) -> None:
    """Show task counts per queue partition."""

    _emit(lambda: CONTROLLER.stats(QueueCommand(queue_file=queue_file)))


@code_agent.command("health")
@queue_file_option
def health(queue_file: Path | None) -> None:
    """Check that the queue store is readable."""

    _emit(lambda: CONTROLLER.health(QueueCommand(queue_file=queue_file)))


@code_agent.command("worker")
@queue_file_option
@click.option(
    "--once/--loop",
    default=False,
    show_default=True,
    help="Process one task or keep polling the queue.",
)
@click.option(
    "--max-tasks",
    type=click.IntRange(min=1),
    default=None,
    help="Optional cap for processed tasks in loop mode.",
)
@click.option(
    "--max-idle-polls",
    type=click.IntRange(min=1),
    default=None,
    help="Exit after this many consecutive empty polls (default: poll forever).",
)
def worker(
    queue_file: Path | None,
    once: bool,
    max_tasks: int | None,
    max_idle_polls: int | None,
) -> None:
    """Run the autonomous task worker."""

    _emit(
        lambda: CONTROLLER.run_worker(
            WorkerCommand(
                queue_file=queue_file,
                once=once,
                max_tasks=max_tasks,
                max_idle_polls=max_idle_polls,
            ),
        ),
    )


@code_agent.command("run")
@click.argument("description")
@task_options
def run(  # noqa: PLR0913
    description: str,
    create_pr: bool,
    base_branch: str,
    branch_name: str | None,
    requirements: str | None,
    existing_files: tuple[Path, ...],
    single_step: bool,
    extra_options: tuple[str, ...],
) -> None:
    """Process one task immediately, bypassing the queue."""

    _emit(
        lambda: CONTROLLER.run_task(
            RunTaskCommand(
                description=description,
                options=TaskOptionsInput(
                    create_pr=create_pr,
                    base_branch=base_branch,
                    branch_name=branch_name,
                    requirements=requirements,
                    existing_files=existing_files,
                    single_step=single_step,
                    extra_options=extra_options,
                ),
            ),
        ),
    )


@code_agent.group()
def pr() -> None:
    """Pull request commands."""


@pr.command("comments")
@click.argument("number", type=click.IntRange(min=1))
def pr_comments(number: int) -> None:
    """List issue and review comments of a pull request."""

    _emit(lambda: CONTROLLER.pr_comments(PullRequestCommand(number=number)))


@pr.command("merge")
@click.argument("number", type=click.IntRange(min=1))
@click.option(
    "--method",
    type=click.Choice([method.value for method in MergeMethod], case_sensitive=False),
    default=MergeMethod.MERGE.value,
    show_default=True,
    help="Merge strategy.",
)
def pr_merge(number: int, method: str) -> None:
    """Merge a pull request."""

    _emit(
        lambda: CONTROLLER.pr_merge(
            PullRequestCommand(number=number, merge_method=method.lower()),
        ),
    )


def _emit(produce: Callable[[], list[str]]) -> None:
    try:
        lines = produce()
    except _USER_ERRORS as error:
        raise click.ClickException(str(error)) from error
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    code_agent()
