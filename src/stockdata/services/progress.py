"""Per-job progress counters with a single synchronized write path."""

from __future__ import annotations

import threading
from dataclasses import dataclass

import structlog
from sqlalchemy.exc import SQLAlchemyError

from ..repositories.task import TaskRepository


@dataclass(frozen=True)
class ProgressSnapshot:
    success: int
    failed: int
    total: int

    @property
    def completed(self) -> int:
        return self.success + self.failed

    @property
    def progress(self) -> int:
        """Percent of units reported back, truncated; an empty job counts as done"""
        if self.total <= 0:
            return 100
        return self.completed * 100 // self.total


class ProgressTracker:
    """Counts unit outcomes for one task and persists each new snapshot.

    Workers call :meth:`record` concurrently. The increment and the task row
    write happen under one lock, so the stored counters only ever move forward
    and no completion is lost.
    """

    def __init__(
        self,
        tasks: TaskRepository,
        task_id: str,
        total: int,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self._tasks = tasks
        self._task_id = task_id
        self._total = total
        self._success = 0
        self._failed = 0
        self._lock = threading.Lock()
        self._logger = logger or structlog.get_logger("progress")

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return ProgressSnapshot(self._success, self._failed, self._total)

    def record(self, succeeded: bool) -> ProgressSnapshot:
        with self._lock:
            if succeeded:
                self._success += 1
            else:
                self._failed += 1
            snap = ProgressSnapshot(self._success, self._failed, self._total)

            try:
                self._tasks.update_progress(
                    self._task_id, snap.progress, snap.success, snap.failed
                )
            except SQLAlchemyError as e:
                # Counters stay authoritative in memory; finalize writes them again
                self._logger.error(
                    "progress_update_failed", task_id=self._task_id, error=str(e)
                )

        if snap.completed % 100 == 0 or snap.completed == snap.total:
            self._logger.info(
                "fetch_progress",
                task_id=self._task_id,
                progress=snap.progress,
                success=snap.success,
                failed=snap.failed,
                total=snap.total,
            )
        return snap
