"""Branch-scoped workspace where generated files are materialized before commit."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from code_agent.orchestrator.errors import CapabilityError
from code_agent.orchestrator.models import GeneratedFile


class BranchWorkspace:
    """Writes files under ``<root>/<branch name>/<relative path>``."""

    def __init__(self, root_dir: Path) -> None:
        self.root_dir = root_dir

    def branch_dir(self, branch_name: str) -> Path:
        return self.root_dir / branch_name

    def save_files(self, files: Sequence[GeneratedFile], branch_name: str) -> list[GeneratedFile]:
        """Persist files (overwriting) and return the saved set in input order."""

        base_dir = self.branch_dir(branch_name)
        base_resolved = base_dir.resolve()
        if not base_resolved.is_relative_to(self.root_dir.resolve()):
            raise CapabilityError(f"Branch name escapes workspace: {branch_name}")
        saved: list[GeneratedFile] = []
        for item in files:
            target = base_dir / item.path
            if not target.resolve().is_relative_to(base_resolved):
                raise CapabilityError(f"Generated file path escapes workspace: {item.path}")
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(item.content, "utf-8")
            except OSError as error:
                raise OSError(f"Failed to save code files: {error}") from error
            saved.append(GeneratedFile(path=item.path, content=item.content))
        return saved
