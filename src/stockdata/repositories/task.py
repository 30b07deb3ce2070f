"""
Fetch task repository: lifecycle transitions and progress snapshots
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Engine, select, update

from ..db.models import FetchTask
from ..dto import FetchTaskOut, Page, TaskStatus
from ..errors import TaskNotFoundError, TaskStateError
from .base import BaseRepository


class TaskRepository(BaseRepository[FetchTask]):
    """Repository for FetchTask records.

    Every mutation is a single UPDATE statement keyed by ``task_id``, so a call
    is applied atomically. Progress writes are ignored once ``end_time`` is set,
    and ``end_time`` itself can only be set once.
    """

    def __init__(self, engine: Engine) -> None:
        super().__init__(engine, FetchTask)

    def create(self, task_id: str, start_date: str, end_date: str) -> FetchTaskOut:
        """Insert a new task in the pending state"""
        with self._session_scope() as session:
            task = FetchTask(
                task_id=task_id,
                start_date=start_date,
                end_date=end_date,
                status=TaskStatus.PENDING.value,
                progress=0,
                total_count=0,
                success_count=0,
                failed_count=0,
                start_time=datetime.now(),
            )
            session.add(task)
            session.flush()
            return FetchTaskOut.model_validate(task)

    def mark_running(self, task_id: str, total_count: int) -> None:
        with self._session_scope() as session:
            result = session.execute(
                update(FetchTask)
                .where(FetchTask.task_id == task_id, FetchTask.end_time.is_(None))
                .values(status=TaskStatus.RUNNING.value, total_count=total_count)
            )
            if not result.rowcount:
                raise TaskStateError(f"Task {task_id} is missing or already finalized")

    def update_progress(
        self, task_id: str, progress: int, success_count: int, failed_count: int
    ) -> bool:
        """Overwrite the progress counters; returns False if the task is finalized"""
        with self._session_scope() as session:
            result = session.execute(
                update(FetchTask)
                .where(FetchTask.task_id == task_id, FetchTask.end_time.is_(None))
                .values(
                    progress=progress,
                    success_count=success_count,
                    failed_count=failed_count,
                )
            )
            return bool(result.rowcount)

    def finalize(
        self,
        task_id: str,
        status: TaskStatus,
        progress: int,
        success_count: int,
        failed_count: int,
        error_msg: str | None = None,
    ) -> FetchTaskOut:
        """Move the task to a terminal status and stamp end_time"""
        if status not in (TaskStatus.COMPLETED, TaskStatus.FAILED):
            raise TaskStateError(f"{status.value} is not a terminal status")

        with self._session_scope() as session:
            result = session.execute(
                update(FetchTask)
                .where(FetchTask.task_id == task_id, FetchTask.end_time.is_(None))
                .values(
                    status=status.value,
                    progress=progress,
                    success_count=success_count,
                    failed_count=failed_count,
                    error_msg=error_msg,
                    end_time=datetime.now(),
                )
            )
            if not result.rowcount:
                raise TaskStateError(f"Task {task_id} is missing or already finalized")

        return self.get_by_task_id(task_id)

    def get_by_task_id(self, task_id: str) -> FetchTaskOut:
        with self._session_scope() as session:
            task = session.scalar(select(FetchTask).where(FetchTask.task_id == task_id))
            if task is None:
                raise TaskNotFoundError(task_id)
            return FetchTaskOut.model_validate(task)

    def list_tasks(self, page: int = 1, page_size: int = 10) -> Page[FetchTaskOut]:
        """Get tasks newest first"""
        page, page_size = self._normalize_page(page, page_size, 10)
        query = select(FetchTask).order_by(FetchTask.created_at.desc(), FetchTask.id.desc())

        with self._session_scope() as session:
            rows, total = self._fetch_page(session, query, page, page_size)
            items = [FetchTaskOut.model_validate(row) for row in rows]

        return Page[FetchTaskOut](items=items, total=total, page=page, page_size=page_size)
