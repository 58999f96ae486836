"""Process-lifetime registry of task runs owned by one task manager."""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from code_agent.orchestrator.common import to_iso, utc_now
from code_agent.orchestrator.models import GeneratedFile, Plan, PullRequestRef, RunStatus


@dataclass(slots=True)
class ActiveTaskStatus:
    """Observable progress of one processing run."""

    id: str
    description: str
    branch_name: str
    status: RunStatus
    started_at: datetime
    finished_at: datetime | None = None
    files: list[GeneratedFile] = field(default_factory=list)
    pr: PullRequestRef | None = None
    error: str | None = None
    plan: Plan | None = None
    is_multi_step: bool = False

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "description": self.description,
            "branch_name": self.branch_name,
            "status": self.status.value,
            "started_at": to_iso(self.started_at),
            "finished_at": to_iso(self.finished_at),
            "files": [item.path for item in self.files],
            "pr": self.pr.to_dict() if self.pr is not None else None,
            "error": self.error,
            "is_multi_step": self.is_multi_step,
        }
        if self.plan is not None:
            payload["current_step_index"] = self.plan.current_step_index
            payload["steps"] = [
                {"id": step.id, "description": step.description, "status": step.status.value}
                for step in self.plan.steps
            ]
        return payload


class TaskStatusRegistry:
    """Thread-safe map of run id to status; readers always get deep copies."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, ActiveTaskStatus] = {}

    def start(self, run_id: str, description: str, branch_name: str) -> ActiveTaskStatus:
        entry = ActiveTaskStatus(
            id=run_id,
            description=description,
            branch_name=branch_name,
            status=RunStatus.PROCESSING,
            started_at=utc_now(),
        )
        with self._lock:
            self._entries[run_id] = entry
        return copy.deepcopy(entry)

    def update(self, run_id: str, **changes: Any) -> ActiveTaskStatus:
        """Apply field changes; ``plan`` is stored as a snapshot, not a live reference."""

        if "plan" in changes and changes["plan"] is not None:
            changes["plan"] = copy.deepcopy(changes["plan"])
        with self._lock:
            entry = self._entries[run_id]
            for name, value in changes.items():
                setattr(entry, name, value)
            return copy.deepcopy(entry)

    def finish(self, run_id: str, status: RunStatus, **changes: Any) -> ActiveTaskStatus:
        return self.update(run_id, status=status, finished_at=utc_now(), **changes)

    def get(self, run_id: str) -> ActiveTaskStatus | None:
        with self._lock:
            entry = self._entries.get(run_id)
            return copy.deepcopy(entry) if entry is not None else None

    def entries(self) -> list[ActiveTaskStatus]:
        with self._lock:
            return [copy.deepcopy(entry) for entry in self._entries.values()]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
