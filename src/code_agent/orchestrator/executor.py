"""Execute one plan step against the code-generation capability."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from code_agent.orchestrator.codegen import CodeGenerator
from code_agent.orchestrator.commit_messages import CommitMessageWriter
from code_agent.orchestrator.models import GeneratedFile, PlanStep, StepResult, TaskOptions
from code_agent.orchestrator.prompts import build_step_description
from code_agent.orchestrator.workspace import BranchWorkspace

logger = logging.getLogger(__name__)


class StepExecutor:
    """Generate, save and describe the files of one step; committing is the caller's job."""

    def __init__(
        self,
        *,
        generator: CodeGenerator,
        workspace: BranchWorkspace,
        commit_writer: CommitMessageWriter,
    ) -> None:
        self.generator = generator
        self.workspace = workspace
        self.commit_writer = commit_writer

    def execute_step(  # noqa: PLR0913
        self,
        step: PlanStep,
        overall_description: str,
        branch_name: str,
        options: TaskOptions,
        accumulated_files: Sequence[GeneratedFile],
    ) -> StepResult:
        logger.info("Step started: step_id=%s branch=%s", step.id, branch_name)
        files = self.generator.generate_code(
            build_step_description(overall_description, step.description),
            existing_files=build_step_context(accumulated_files, options),
            requirements=options.requirements,
        )
        saved = self.workspace.save_files(files, branch_name)
        commit_message = self.commit_writer.write(step.description, saved)
        logger.info("Step finished: step_id=%s files=%d", step.id, len(saved))
        return StepResult(files=saved, commit_message=commit_message)


def build_step_context(
    accumulated_files: Sequence[GeneratedFile],
    options: TaskOptions,
) -> dict[str, str]:
    """Files from earlier steps, overridden by caller-supplied files with the same path."""

    context = {item.path: item.content for item in accumulated_files}
    context.update(options.existing_files)
    return context
