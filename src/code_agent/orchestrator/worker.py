"""Queue worker that feeds pending tasks to the task manager one at a time."""

from __future__ import annotations

import logging
import signal
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from code_agent.orchestrator.common import to_iso, utc_now
from code_agent.orchestrator.errors import QueueStoreError
from code_agent.orchestrator.manager import TaskManager
from code_agent.orchestrator.models import QueueStats, Task
from code_agent.orchestrator.repository import TaskQueueRepository

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WorkerRunSummary:
    """Aggregate worker counters for CLI reporting."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    idle_polls: int = 0

    def add(self, other: WorkerRunSummary) -> None:
        self.processed += other.processed
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.idle_polls += other.idle_polls


@dataclass(slots=True)
class WorkerStatus:
    """Point-in-time view of the worker and its queue."""

    is_running: bool
    current_task: dict[str, str] | None
    stats: WorkerRunSummary
    started_at: datetime | None
    uptime_seconds: float
    queue: QueueStats

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_running": self.is_running,
            "current_task": self.current_task,
            "stats": {
                "processed": self.stats.processed,
                "succeeded": self.stats.succeeded,
                "failed": self.stats.failed,
                "started_at": to_iso(self.started_at),
                "uptime_seconds": round(self.uptime_seconds, 3),
            },
            "queue": self.queue.to_dict(),
        }


class AgentWorker:
    """Polls the queue, runs one task at a time, records the outcome durably.

    A stop request (SIGINT/SIGTERM or ``request_stop``) stops new dequeues at once.
    The task in flight gets the manager's grace period and then fails, which
    leaves it in the failed queue for ``retry_task``.
    """

    def __init__(
        self,
        *,
        repository: TaskQueueRepository,
        manager: TaskManager,
        poll_interval_seconds: float = 30.0,
        stats_interval_seconds: float = 60.0,
    ) -> None:
        self.repository = repository
        self.manager = manager
        self.poll_interval_seconds = poll_interval_seconds
        self.stats_interval_seconds = stats_interval_seconds
        self.stats = WorkerRunSummary()
        self._stop_requested = False
        self._stop_requested_at: float | None = None
        self._is_running = False
        self._started_at: datetime | None = None
        self._started_monotonic: float | None = None
        self._last_stats_log: float | None = None
        self._current_task: Task | None = None

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    @property
    def stop_requested_at(self) -> float | None:
        """Monotonic time of the first stop request."""

        return self._stop_requested_at

    def run_once(self) -> WorkerRunSummary:
        """Process at most one task from the queue."""

        summary = WorkerRunSummary()
        if self._stop_requested or self._current_task is not None:
            summary.idle_polls = 1
            return summary

        try:
            task = self.repository.get_next_task()
        except QueueStoreError:
            logger.exception("Queue poll failed")
            summary.idle_polls = 1
            return summary
        if task is None:
            summary.idle_polls = 1
            return summary

        summary.processed = 1
        self._current_task = task
        logger.info("Processing task: task_id=%s description=%s", task.id, task.description)
        try:
            result = self.manager.process_task(task.description, task.options)
            self.repository.complete_task(task.id, result)
        except Exception as error:  # noqa: BLE001
            summary.failed = 1
            logger.exception("Task failed: task_id=%s", task.id)
            self._record_failure(task, error)
        else:
            summary.succeeded = 1
            logger.info(
                "Task completed: task_id=%s branch=%s pr=%s",
                task.id,
                result.branch_name,
                result.pr.url if result.pr is not None else "-",
            )
        finally:
            self._current_task = None
            self.stats.add(summary)
        return summary

    def run_loop(
        self,
        *,
        max_tasks: int | None = None,
        max_idle_polls: int | None = None,
    ) -> WorkerRunSummary:
        """Run until stopped, ``max_tasks`` processed, or ``max_idle_polls`` empty polls in a row.

        ``max_idle_polls=None`` keeps polling an empty queue indefinitely.
        """

        aggregate = WorkerRunSummary()
        consecutive_idle = 0
        self._mark_started()
        try:
            with self._signal_handlers():
                while not self._stop_requested:
                    if max_tasks is not None and aggregate.processed >= max_tasks:
                        break

                    summary = self.run_once()
                    aggregate.add(summary)
                    self._maybe_log_stats()

                    if summary.processed == 0:
                        consecutive_idle += 1
                        if max_idle_polls is not None and consecutive_idle >= max_idle_polls:
                            break
                        self._sleep_with_stop(self.poll_interval_seconds)
                        continue

                    consecutive_idle = 0
        finally:
            self._is_running = False
            self.log_stats()
        return aggregate

    def request_stop(self, reason: str = "requested") -> None:
        if not self._stop_requested:
            logger.info("Worker stop requested (%s)", reason)
            self._stop_requested_at = time.monotonic()
        self._stop_requested = True

    def get_status(self) -> WorkerStatus:
        current = None
        if self._current_task is not None:
            current = {
                "id": self._current_task.id,
                "description": self._current_task.description,
            }
        uptime = 0.0
        if self._started_monotonic is not None:
            uptime = time.monotonic() - self._started_monotonic
        return WorkerStatus(
            is_running=self._is_running,
            current_task=current,
            stats=WorkerRunSummary(
                processed=self.stats.processed,
                succeeded=self.stats.succeeded,
                failed=self.stats.failed,
                idle_polls=self.stats.idle_polls,
            ),
            started_at=self._started_at,
            uptime_seconds=uptime,
            queue=self.repository.get_stats(),
        )

    def log_stats(self) -> None:
        queue = self.repository.get_stats()
        logger.info(
            "Worker stats: processed=%d succeeded=%d failed=%d "
            "queue pending=%d processing=%d completed=%d failed=%d",
            self.stats.processed,
            self.stats.succeeded,
            self.stats.failed,
            queue.pending,
            queue.processing,
            queue.completed,
            queue.failed,
        )

    def _record_failure(self, task: Task, error: Exception) -> None:
        try:
            self.repository.fail_task(task.id, error)
        except Exception:  # noqa: BLE001
            logger.exception("Could not record failure for task_id=%s", task.id)

    def _mark_started(self) -> None:
        self._is_running = True
        self._started_at = utc_now()
        self._started_monotonic = time.monotonic()
        self._last_stats_log = self._started_monotonic
        logger.info("Worker started (polling every %ss)", self.poll_interval_seconds)

    def _maybe_log_stats(self) -> None:
        now = time.monotonic()
        if self._last_stats_log is None or now - self._last_stats_log < self.stats_interval_seconds:
            return
        self._last_stats_log = now
        self.log_stats()

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = time.monotonic() + seconds
        while not self._stop_requested and time.monotonic() < deadline:
            time.sleep(min(0.1, max(0.0, deadline - time.monotonic())))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            self.request_stop(name)

        installed = False
        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
            installed = True
        except ValueError:
            # only the main thread may install handlers
            pass
        try:
            yield
        finally:
            if installed:
                signal.signal(signal.SIGINT, original_sigint)
                signal.signal(signal.SIGTERM, original_sigterm)
