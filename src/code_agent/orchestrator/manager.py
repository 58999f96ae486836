"""Task-level state machine: plan, execute, commit, open the pull request."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence

from code_agent.orchestrator.codegen import CodeGenerator
from code_agent.orchestrator.commit_messages import CommitMessageWriter
from code_agent.orchestrator.common import new_task_id
from code_agent.orchestrator.errors import CapabilityError, UnmetDependencyError
from code_agent.orchestrator.executor import StepExecutor
from code_agent.orchestrator.models import (
    GeneratedFile,
    MergeMethod,
    Plan,
    PullRequestRef,
    RunStatus,
    StepStatus,
    TaskOptions,
    TaskResult,
)
from code_agent.orchestrator.planner import Planner
from code_agent.orchestrator.status import ActiveTaskStatus, TaskStatusRegistry
from code_agent.orchestrator.workspace import BranchWorkspace
from code_agent.vcs.base import MergeResult, ReviewComments, VersionControl

logger = logging.getLogger(__name__)


class TaskManager:
    """Drive one task from intake to a ``TaskResult`` or a raised error.

    The manager never touches the durable queue: the worker moves the task to
    ``completed`` or ``failed`` depending on whether ``process_task`` returns or
    raises. Plans are rebuilt on every call, so a retried task always starts
    again from its first step.

    When ``stop_requested_at`` reports a stop, remaining steps keep running for
    ``graceful_shutdown_seconds`` and the run is then aborted with a transient
    ``CapabilityError`` so the task stays retryable.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        version_control: VersionControl,
        generator: CodeGenerator,
        planner: Planner,
        commit_writer: CommitMessageWriter,
        workspace: BranchWorkspace,
        registry: TaskStatusRegistry | None = None,
        stop_requested_at: Callable[[], float | None] | None = None,
        graceful_shutdown_seconds: float = 10.0,
    ) -> None:
        self.version_control = version_control
        self.generator = generator
        self.planner = planner
        self.commit_writer = commit_writer
        self.workspace = workspace
        self.registry = registry or TaskStatusRegistry()
        self.stop_requested_at = stop_requested_at
        self.graceful_shutdown_seconds = graceful_shutdown_seconds
        self.executor = StepExecutor(
            generator=generator,
            workspace=workspace,
            commit_writer=commit_writer,
        )

    def process_task(self, description: str, options: TaskOptions | None = None) -> TaskResult:
        options = options or TaskOptions()
        run_id = new_task_id()
        branch_name = options.branch_name or f"feature/{run_id}"
        self.registry.start(run_id, description, branch_name)
        logger.info("Task run started: run_id=%s branch=%s", run_id, branch_name)

        try:
            if options.multi_step:
                plan = self.planner.generate_plan(description)
                if plan.is_multi_step:
                    self.registry.update(
                        run_id,
                        status=RunStatus.IN_PROGRESS,
                        plan=plan,
                        is_multi_step=True,
                    )
                    return self._process_multi_step(run_id, description, branch_name, plan, options)
            self._check_shutdown(run_id, "code generation")
            return self._process_single_step(run_id, description, branch_name, options)
        except Exception as error:
            current = self.registry.get(run_id)
            # a failed step has already recorded its own error
            if current is None or current.status != RunStatus.FAILED:
                self.registry.finish(run_id, RunStatus.FAILED, error=str(error))
            logger.warning("Task run failed: run_id=%s error=%s", run_id, error)
            raise

    def _process_single_step(
        self,
        run_id: str,
        description: str,
        branch_name: str,
        options: TaskOptions,
    ) -> TaskResult:
        files = self.generator.generate_code(
            description,
            existing_files=options.existing_files,
            requirements=options.requirements,
        )
        saved = self.workspace.save_files(files, branch_name)
        self._ensure_branch(branch_name, options.base_branch)
        commit_message = self.commit_writer.write(description, saved)
        self.version_control.commit_files(branch_name, saved, commit_message)

        pr: PullRequestRef | None = None
        if options.create_pr:
            pr = self.version_control.open_review_request(
                f"feat: {description}",
                f"Generated code for: {description}\n\nTask ID: {run_id}",
                branch_name,
                options.base_branch,
            )

        self.registry.finish(run_id, RunStatus.COMPLETED, files=saved, pr=pr)
        logger.info("Task run completed: run_id=%s files=%d", run_id, len(saved))
        return TaskResult(
            task_id=run_id,
            branch_name=branch_name,
            files=saved,
            commit_message=commit_message,
            pr=pr,
        )

    def _process_multi_step(  # noqa: PLR0913
        self,
        run_id: str,
        description: str,
        branch_name: str,
        plan: Plan,
        options: TaskOptions,
    ) -> TaskResult:
        self._ensure_branch(branch_name, options.base_branch)
        accumulated: list[GeneratedFile] = []
        pr: PullRequestRef | None = None

        for index, step in enumerate(plan.steps):
            self._check_shutdown(run_id, f"step {step.id}")
            unmet = plan.unmet_dependencies(step)
            if unmet:
                raise UnmetDependencyError(step.id, unmet)

            step.status = StepStatus.IN_PROGRESS
            plan.current_step_index = index
            self.registry.update(run_id, plan=plan, status=RunStatus.IN_PROGRESS)

            try:
                result = self.executor.execute_step(
                    step,
                    description,
                    branch_name,
                    options,
                    accumulated,
                )
                self.version_control.commit_files(branch_name, result.files, result.commit_message)
            except Exception as error:
                step.status = StepStatus.FAILED
                step.error = str(error)
                self.registry.finish(
                    run_id,
                    RunStatus.FAILED,
                    plan=plan,
                    error=f"Step {step.id} failed: {error}",
                )
                raise

            step.status = StepStatus.COMPLETED
            step.result = result
            accumulated = merge_files(accumulated, result.files)
            self.registry.update(run_id, plan=plan, files=accumulated)

            if index == 0 and options.create_pr and pr is None:
                pr = self.version_control.open_review_request(
                    f"feat: {description}",
                    _multi_step_pr_body(run_id, description, plan),
                    branch_name,
                    options.base_branch,
                )
                self.registry.update(run_id, pr=pr)

        commit_message = self.commit_writer.write(description, accumulated)
        self.registry.finish(run_id, RunStatus.COMPLETED, plan=plan, files=accumulated, pr=pr)
        logger.info(
            "Task run completed: run_id=%s steps=%d files=%d",
            run_id,
            len(plan.steps),
            len(accumulated),
        )
        return TaskResult(
            task_id=run_id,
            branch_name=branch_name,
            files=accumulated,
            commit_message=commit_message,
            pr=pr,
        )

    def _check_shutdown(self, run_id: str, next_stage: str) -> None:
        if self.stop_requested_at is None:
            return
        requested_at = self.stop_requested_at()
        if requested_at is None:
            return
        waited = time.monotonic() - requested_at
        if waited < self.graceful_shutdown_seconds:
            logger.info(
                "Shutdown pending, continuing with %s: run_id=%s waited=%.1fs",
                next_stage,
                run_id,
                waited,
            )
            return
        raise CapabilityError(
            f"Shutdown requested; stopped before {next_stage} after waiting {waited:.1f}s",
            transient=True,
        )

    def _ensure_branch(self, branch_name: str, base_branch: str) -> None:
        if self.version_control.branch_exists(branch_name):
            logger.debug("Branch %s exists, reusing it", branch_name)
            return
        self.version_control.create_branch(branch_name, base_branch)

    def get_pr_comments(self, number: int) -> ReviewComments:
        try:
            return self.version_control.list_comments(number)
        except CapabilityError as error:
            raise CapabilityError(
                f"Failed to get PR comments: {error}",
                transient=error.transient,
            ) from error

    def merge_pr(self, number: int, method: MergeMethod = MergeMethod.MERGE) -> MergeResult:
        try:
            result = self.version_control.merge_review_request(number, method)
        except CapabilityError as error:
            raise CapabilityError(
                f"Failed to merge PR: {error}",
                transient=error.transient,
            ) from error
        if not result.url:
            raise CapabilityError("Failed to merge PR: Invalid PR response from merge operation")
        return result

    def get_task_status(self, run_id: str) -> ActiveTaskStatus | None:
        return self.registry.get(run_id)

    def list_tasks(self) -> list[ActiveTaskStatus]:
        return self.registry.entries()

    def close(self) -> None:
        """Release HTTP clients held by the backend and version control."""

        for resource in (self.generator.backend, self.version_control):
            close = getattr(resource, "close", None)
            if close is not None:
                close()


def merge_files(
    accumulated: Sequence[GeneratedFile],
    new_files: Sequence[GeneratedFile],
) -> list[GeneratedFile]:
    """Append ``new_files``; a path seen before is replaced in its original position."""

    merged = list(accumulated)
    positions = {item.path: index for index, item in enumerate(merged)}
    for item in new_files:
        if item.path in positions:
            merged[positions[item.path]] = item
            continue
        positions[item.path] = len(merged)
        merged.append(item)
    return merged


def _multi_step_pr_body(run_id: str, description: str, plan: Plan) -> str:
    checklist = "\n".join(
        f"- [{'x' if step.status == StepStatus.COMPLETED else ' '}] {step.description}"
        for step in plan.steps
    )
    return f"Multi-step task: {description}\n\nTask ID: {run_id}\n\nSteps:\n{checklist}"
