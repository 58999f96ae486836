"""Commit message writers with a deterministic templated fallback."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from code_agent.orchestrator.codegen import CodeGenerator
from code_agent.orchestrator.fallback import call_with_fallback
from code_agent.orchestrator.models import GeneratedFile


class CommitMessageWriter(Protocol):
    def write(self, description: str, files: Sequence[GeneratedFile]) -> str:
        """Return a short commit message for ``files``."""


class LlmCommitMessageWriter:
    def __init__(self, generator: CodeGenerator) -> None:
        self.generator = generator

    def write(self, description: str, files: Sequence[GeneratedFile]) -> str:
        return self.generator.generate_commit_message(description, [item.path for item in files])


class TemplateCommitMessageWriter:
    def write(self, description: str, files: Sequence[GeneratedFile]) -> str:  # noqa: ARG002
        return f"feat: {description}"


class FallbackCommitMessageWriter:
    """Use ``primary`` and fall back to ``feat: <description>`` on failure."""

    def __init__(
        self,
        primary: CommitMessageWriter,
        fallback: CommitMessageWriter | None = None,
    ) -> None:
        self.primary = primary
        self.fallback = fallback or TemplateCommitMessageWriter()

    def write(self, description: str, files: Sequence[GeneratedFile]) -> str:
        return call_with_fallback(
            lambda: self.primary.write(description, files),
            lambda: self.fallback.write(description, files),
            operation="Commit message generation",
        )
