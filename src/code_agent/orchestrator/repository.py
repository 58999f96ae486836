"""Durable task queue backed by a single JSON document."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from filelock import FileLock, Timeout

from code_agent.orchestrator.common import new_task_id, utc_now
from code_agent.orchestrator.errors import QueueStoreError, TaskNotFoundError
from code_agent.orchestrator.models import (
    QueueSnapshot,
    QueueStats,
    Task,
    TaskOptions,
    TaskResult,
    TaskStatus,
)

logger = logging.getLogger(__name__)


class TaskQueueRepository:
    """Queue persistence facade over ``pending/processing/completed/failed`` arrays.

    Every mutation is a read-modify-write of the whole document performed inside
    a critical section: an in-process ``RLock`` plus a cross-process ``FileLock``
    on ``<queue_file>.lock``. The document is replaced atomically, so readers never
    observe a task in two partitions or in none.
    """

    def __init__(self, queue_file: Path, *, lock_timeout_seconds: float = 30.0) -> None:
        self.queue_file = queue_file
        self.lock_timeout_seconds = lock_timeout_seconds
        self._thread_lock = threading.RLock()
        self._file_lock = FileLock(f"{queue_file}.lock", timeout=lock_timeout_seconds)

    def init_store(self) -> None:
        """Create the queue document with empty partitions if it does not exist."""

        with self._critical_section():
            if self.queue_file.exists():
                return
            self._save(QueueSnapshot())

    def add_task(self, description: str, options: dict[str, Any] | None = None) -> Task:
        """Append a new pending task."""

        task = Task(
            id=new_task_id(),
            description=description,
            status=TaskStatus.PENDING,
            created_at=utc_now(),
            options=TaskOptions.from_mapping(options),
        )
        with self._transaction() as snapshot:
            snapshot.pending.append(task)
        logger.info("Task enqueued: task_id=%s description=%s", task.id, description)
        return task

    def get_next_task(self) -> Task | None:
        """Move the head of the pending partition to processing (FIFO)."""

        with self._transaction() as snapshot:
            if not snapshot.pending:
                return None
            task = snapshot.pending.pop(0)
            task.status = TaskStatus.PROCESSING
            task.started_at = utc_now()
            snapshot.processing.append(task)
            return task

    def complete_task(self, task_id: str, result: TaskResult) -> Task:
        """Move a processing task to completed and attach its result."""

        with self._transaction() as snapshot:
            task = _pop_task(snapshot.processing, task_id)
            if task is None:
                raise TaskNotFoundError(task_id, TaskStatus.PROCESSING.value)
            task.status = TaskStatus.COMPLETED
            task.completed_at = utc_now()
            task.result = result
            snapshot.completed.append(task)
            return task

    def fail_task(self, task_id: str, error: BaseException | str) -> Task:
        """Move a processing (or still pending) task to failed."""

        with self._transaction() as snapshot:
            task = _pop_task(snapshot.processing, task_id)
            if task is None:
                task = _pop_task(snapshot.pending, task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            task.status = TaskStatus.FAILED
            task.failed_at = utc_now()
            task.error = str(error)
            snapshot.failed.append(task)
            return task

    def retry_task(self, task_id: str) -> Task:
        """Return a failed task to the end of the pending partition with a clean slate."""

        with self._transaction() as snapshot:
            task = _pop_task(snapshot.failed, task_id)
            if task is None:
                raise TaskNotFoundError(task_id, TaskStatus.FAILED.value)
            task.status = TaskStatus.PENDING
            task.created_at = utc_now()
            task.error = None
            task.failed_at = None
            task.started_at = None
            task.completed_at = None
            task.result = None
            snapshot.pending.append(task)
        logger.info("Task retried: task_id=%s description=%s", task.id, task.description)
        return task

    def get_task(self, task_id: str) -> Task | None:
        for task in self._read().all_tasks():
            if task.id == task_id:
                return task
        return None

    def list_tasks(self, status: TaskStatus | None = None) -> list[Task] | QueueSnapshot:
        """Return one partition, or the full snapshot when no filter is given."""

        snapshot = self._read()
        if status is None:
            return snapshot
        return list(snapshot.partition(status))

    def get_stats(self) -> QueueStats:
        snapshot = self._read()
        return QueueStats(
            pending=len(snapshot.pending),
            processing=len(snapshot.processing),
            completed=len(snapshot.completed),
            failed=len(snapshot.failed),
        )

    @contextmanager
    def _critical_section(self) -> Iterator[None]:
        with self._thread_lock:
            try:
                self.queue_file.parent.mkdir(parents=True, exist_ok=True)
                self._file_lock.acquire()
            except Timeout as error:
                raise QueueStoreError(
                    f"Timed out after {self.lock_timeout_seconds}s waiting for queue lock "
                    f"{self._file_lock.lock_file}",
                ) from error
            except OSError as error:
                raise QueueStoreError(f"Cannot lock queue file {self.queue_file}: {error}") from error
            try:
                yield
            finally:
                self._file_lock.release()

    @contextmanager
    def _transaction(self) -> Iterator[QueueSnapshot]:
        # Nothing is written when the body raises, so failed operations leave
        # the partitions untouched.
        with self._critical_section():
            snapshot = self._load()
            yield snapshot
            self._save(snapshot)

    def _read(self) -> QueueSnapshot:
        with self._critical_section():
            return self._load()

    def _load(self) -> QueueSnapshot:
        if not self.queue_file.exists():
            return QueueSnapshot()
        try:
            raw = json.loads(self.queue_file.read_text("utf-8"))
            return QueueSnapshot.from_dict(raw)
        except OSError as error:
            raise QueueStoreError(f"Cannot read queue file {self.queue_file}: {error}") from error
        except (ValueError, TypeError) as error:
            raise QueueStoreError(f"Corrupt queue file {self.queue_file}: {error}") from error

    def _save(self, snapshot: QueueSnapshot) -> None:
        payload = json.dumps(snapshot.to_dict(), ensure_ascii=False, indent=2, sort_keys=True)
        tmp_name: str | None = None
        try:
            self.queue_file.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.queue_file.parent,
                prefix=f".{self.queue_file.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.queue_file)
        except OSError as error:
            if tmp_name is not None and Path(tmp_name).exists():
                Path(tmp_name).unlink()
            raise QueueStoreError(f"Cannot write queue file {self.queue_file}: {error}") from error


def _pop_task(partition: list[Task], task_id: str) -> Task | None:
    for index, task in enumerate(partition):
        if task.id == task_id:
            return partition.pop(index)
    return None
