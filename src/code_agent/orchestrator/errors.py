"""Error taxonomy shared by queue, planner, executor and task manager."""

from __future__ import annotations


class TaskNotFoundError(LookupError):
    """Task id is absent from the partition an operation expects."""

    def __init__(self, task_id: str, partition: str | None = None) -> None:
        where = f" in {partition} queue" if partition else ""
        super().__init__(f"Task {task_id} not found{where}")
        self.task_id = task_id
        self.partition = partition


class CapabilityError(RuntimeError):
    """External capability (LLM or version control) failed or returned garbage."""

    def __init__(self, message: str, *, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient


class UnmetDependencyError(RuntimeError):
    """Plan step was reached before all of its dependencies completed."""

    def __init__(self, step_id: str, dependencies: tuple[str, ...]) -> None:
        super().__init__(f"Step {step_id} has unmet dependencies: {', '.join(dependencies)}")
        self.step_id = step_id
        self.dependencies = dependencies


class QueueStoreError(RuntimeError):
    """Durable queue document could not be read, parsed, locked or written."""
