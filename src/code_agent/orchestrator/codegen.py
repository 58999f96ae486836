"""Code-generation capability on top of an LLM backend."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence

from code_agent.config import LlmSettings
from code_agent.orchestrator.backend.base import CompletionRequest, LlmBackend
from code_agent.orchestrator.errors import CapabilityError
from code_agent.orchestrator.models import GeneratedFile, PlanStep
from code_agent.orchestrator.output_parsing import parse_generated_files, parse_plan_steps
from code_agent.orchestrator.prompts import (
    CODE_SYSTEM_PROMPT,
    COMMIT_SYSTEM_PROMPT,
    PLAN_SYSTEM_PROMPT,
    build_code_prompt,
    build_commit_prompt,
    build_plan_prompt,
)

logger = logging.getLogger(__name__)


class CodeGenerator:
    """Files, plan steps and commit messages produced by one backend.

    Every method raises ``CapabilityError`` when the backend is unreachable or its
    output cannot be parsed; callers decide whether a fallback applies.
    """

    def __init__(
        self,
        backend: LlmBackend,
        settings: LlmSettings | None = None,
        *,
        shutdown_requested: Callable[[], bool] | None = None,
    ) -> None:
        self.backend = backend
        self.settings = settings or LlmSettings()
        self.shutdown_requested = shutdown_requested

    def generate_code(
        self,
        description: str,
        *,
        existing_files: Mapping[str, str] | None = None,
        requirements: str | None = None,
    ) -> list[GeneratedFile]:
        request = CompletionRequest(
            system_prompt=CODE_SYSTEM_PROMPT,
            user_prompt=build_code_prompt(
                description,
                existing_files=existing_files,
                requirements=requirements,
            ),
            model=self.settings.code_model,
            temperature=self.settings.code_temperature,
            json_output=True,
            shutdown_requested=self.shutdown_requested,
        )
        try:
            files = parse_generated_files(self.backend.complete(request))
        except CapabilityError as error:
            raise CapabilityError(
                f"Failed to generate code: {error}",
                transient=error.transient,
            ) from error
        logger.info("Generated %d file(s) for: %s", len(files), _preview(description))
        return files

    def generate_plan_steps(self, description: str) -> list[PlanStep]:
        request = CompletionRequest(
            system_prompt=PLAN_SYSTEM_PROMPT,
            user_prompt=build_plan_prompt(description),
            model=self.settings.plan_model,
            temperature=self.settings.code_temperature,
            json_output=True,
            shutdown_requested=self.shutdown_requested,
        )
        return parse_plan_steps(self.backend.complete(request))

    def generate_commit_message(self, description: str, paths: Sequence[str]) -> str:
        request = CompletionRequest(
            system_prompt=COMMIT_SYSTEM_PROMPT,
            user_prompt=build_commit_prompt(description, paths),
            model=self.settings.commit_model,
            temperature=self.settings.commit_temperature,
            max_tokens=self.settings.commit_max_tokens,
            shutdown_requested=self.shutdown_requested,
        )
        message = self.backend.complete(request).strip()
        if not message:
            raise CapabilityError("Commit message generation returned empty output")
        return message


def _preview(text: str, limit: int = 80) -> str:
    first_line = text.strip().splitlines()[0] if text.strip() else ""
    if len(first_line) <= limit:
        return first_line
    return first_line[: limit - 3] + "..."
